# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/helm/cli_runner.py
from __future__ import annotations

import json
import logging
import re
import subprocess
from typing import List, Optional, Sequence

from .errors import HelmError

log = logging.getLogger("rancher_k3k")

# "k3k-1.0.1" -> "1.0.1", "k3k-1.0.2-rc1" -> "1.0.2-rc1"
CHART_VERSION_RE = re.compile(r"-(v?\d+\.\d+\.\d+\S*)$")


class HelmCliRunner:
    """
    A pragmatic wrapper around the `helm` CLI.
    - Mirrors the human workflow: 'repo add/update', 'upgrade --install', 'uninstall', 'list'.
    - Testable by mocking subprocess.run.
    """

    def __init__(self, kube_context: str | None = None, env: dict[str, str] | None = None):
        self.kube_context = kube_context
        self.env = env or {}

    # ------------------------- internal helpers -------------------------

    def _base(self) -> list[str]:
        cmd = ["helm"]
        if self.kube_context:
            cmd += ["--kube-context", self.kube_context]
        return cmd

    def _run(
        self,
        argv: List[str],
        allow_rc: set[int] | None = None,
    ) -> subprocess.CompletedProcess:
        allow_rc = allow_rc or {0}
        log.debug("[helm] $ %s", " ".join(_redact(argv)))

        cp = subprocess.run(
            argv,
            check=False,
            text=True,
            capture_output=True,
            env=self.env or None,
        )

        if cp.returncode not in allow_rc:
            stderr = getattr(cp, "stderr", "") or ""
            raise HelmError(f"helm failed (rc={cp.returncode}) for {_redact(argv)!r}\n{stderr}")
        return cp

    # ------------------------- IHelm methods -------------------------

    def add_repo(self, name: str, url: str, flags: Sequence[str] = ()) -> None:
        argv = self._base() + ["repo", "add", name, url, "--force-update"] + list(flags)
        self._run(argv)

    def update_repos(self, name: str | None = None) -> None:
        argv = self._base() + ["repo", "update"]
        if name:
            argv.append(name)
        self._run(argv)

    def deployed_chart_version(self, release: str, namespace: str) -> Optional[str]:
        """
        Version of the chart behind a deployed release, None when not installed.
        """
        argv = self._base() + ["list", "-n", namespace, "--filter", f"^{release}$", "-o", "json"]
        cp = self._run(argv)
        try:
            items = json.loads(cp.stdout or "[]")
        except json.JSONDecodeError as e:
            raise HelmError(f"failed to parse helm list output: {e}") from e

        for item in items:
            if item.get("name") != release:
                continue
            if item.get("status") != "deployed":
                # failed/pending releases must be re-applied
                return ""
            return chart_version(item.get("chart", ""))
        return None

    def upgrade_install(
        self,
        release: str,
        chart: str,
        namespace: str,
        *,
        version: str | None = None,
        flags: Sequence[str] = (),
        create_namespace: bool = True,
    ) -> None:
        argv = self._base() + ["upgrade", "--install", release, chart, "-n", namespace]
        if version:
            argv += ["--version", version]
        if create_namespace:
            argv += ["--create-namespace"]
        argv += list(flags)
        self._run(argv)

    def uninstall(self, release: str, namespace: str) -> None:
        argv = self._base() + ["uninstall", release, "-n", namespace, "--ignore-not-found"]
        self._run(argv)


def _redact(argv: Sequence[str]) -> list[str]:
    out = list(argv)
    for i, arg in enumerate(out[:-1]):
        if arg == "--password":
            out[i + 1] = "****"
    return out


def chart_version(chart: str) -> str:
    """Version part of helm's `<name>-<version>` chart column."""
    m = CHART_VERSION_RE.search(chart)
    if m:
        return m.group(1)
    return chart.rpartition("-")[2]


def status_command(release: str, namespace: str, kube_context: str | None = None) -> str:
    cmd = "helm"
    if kube_context:
        cmd += f" --kube-context {kube_context}"
    return f"{cmd} status {release} -n {namespace}"
