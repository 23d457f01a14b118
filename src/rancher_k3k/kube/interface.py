# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

from typing import Iterable, Optional, Protocol


class IKube(Protocol):
    """Manifest-apply and state-query adapter for one cluster."""

    def describe(self) -> str: ...

    def apply(self, content: str) -> None: ...

    def apply_objects(self, objects: Iterable[dict]) -> None: ...

    def get_field(self, kind: str, name: str, jsonpath: str, *, namespace: Optional[str] = None) -> Optional[str]: ...

    def get_json(self, kind: str, name: str, *, namespace: Optional[str] = None) -> Optional[dict]: ...

    def get_yaml(
        self,
        kind: str,
        name: Optional[str] = None,
        *,
        namespace: Optional[str] = None,
        all_namespaces: bool = False,
    ) -> str: ...

    def exists(self, kind: str, name: str, *, namespace: Optional[str] = None) -> bool: ...

    def patch(self, kind: str, name: str, patch: dict, *, namespace: Optional[str] = None) -> None: ...

    def delete(self, kind: str, name: str, *, namespace: Optional[str] = None) -> bool: ...

    def reachable(self) -> bool: ...

    def deployment_available(self, name: str, namespace: str) -> Optional[str]: ...

    def first_node_ip(self) -> Optional[str]: ...
