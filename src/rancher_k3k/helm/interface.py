# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Optional, Protocol, Sequence


class IHelm(Protocol):
    """Command-run adapter: install/upgrade a named chart at a version."""

    def add_repo(self, name: str, url: str, flags: Sequence[str] = ()) -> None: ...

    def update_repos(self, name: Optional[str] = None) -> None: ...

    def deployed_chart_version(self, release: str, namespace: str) -> Optional[str]: ...

    def upgrade_install(
        self,
        release: str,
        chart: str,
        namespace: str,
        *,
        version: Optional[str] = None,
        flags: Sequence[str] = (),
        create_namespace: bool = True,
    ) -> None: ...

    def uninstall(self, release: str, namespace: str) -> None: ...
