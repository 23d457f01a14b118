# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/deploy/teardown.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from ..config.models import TargetSettings
from ..helm.errors import HelmError
from ..helm.interface import IHelm
from ..kube.interface import IKube
from ..kube.kubectl import KubectlError
from ..report import Report
from .rancher import K3K_RELEASE, K3K_SYSTEM_NS, TLS_SECRET
from .vcluster import ADDON_NAME, ADDON_NS

log = logging.getLogger("rancher_k3k")


def _attempt(report: Report, item: str, fn: Callable[[], bool], hint: Optional[str] = None) -> None:
    try:
        removed = fn()
    except (KubectlError, HelmError, OSError) as e:
        log.warning("[destroy] %s: %s", item, e)
        report.fail(item, str(e), hint)
        return
    if removed:
        log.info("[destroy] removed %s", item)
        report.removed.append(item)
    else:
        log.info("[destroy] %s not present", item)
        report.skipped.append(item)


def _delete(host: IKube, kind: str, name: str, namespace: Optional[str]) -> Tuple[str, Callable[[], bool], str]:
    where = f" -n {namespace}" if namespace else ""
    return (
        f"{kind}/{name}",
        lambda: host.delete(kind, name, namespace=namespace),
        f"{host.describe()} get {kind} {name}{where}",
    )


def _remove_file(path: Path) -> bool:
    if not path.exists():
        return False
    path.unlink()
    return True


def destroy_k3k(target: TargetSettings, *, host: IKube, helm: IHelm) -> Report:
    """
    Remove what the k3k flow created, host side first. Every item is
    attempted; failures are reported, not raised.
    """
    report = Report()
    ns = target.namespace
    items: List[Tuple[str, Callable[[], bool], Optional[str]]] = [
        _delete(host, "ingress", target.ingress_name, ns),
        _delete(host, "svc", target.traefik_service, ns),
        _delete(host, "secret", TLS_SECRET, ns),
        _delete(host, "clusters.k3k.io", target.cluster_name, ns),
    ]

    def uninstall() -> bool:
        if helm.deployed_chart_version(K3K_RELEASE, K3K_SYSTEM_NS) is None:
            return False
        helm.uninstall(K3K_RELEASE, K3K_SYSTEM_NS)
        return True

    items.append((f"helm release {K3K_RELEASE}", uninstall, f"helm status {K3K_RELEASE} -n {K3K_SYSTEM_NS}"))
    items.append((f"kubeconfig {target.kubeconfig_path}", lambda: _remove_file(target.kubeconfig_path), None))

    for item, fn, hint in items:
        _attempt(report, item, fn, hint)
    return report


def destroy_vcluster(*, host: IKube) -> Report:
    report = Report()

    def disable() -> bool:
        if not host.exists("addon", ADDON_NAME, namespace=ADDON_NS):
            return False
        host.patch("addon", ADDON_NAME, {"spec": {"enabled": False}}, namespace=ADDON_NS)
        return True

    _attempt(report, f"disable addon/{ADDON_NAME}", disable)
    for item, fn, hint in (
        _delete(host, "addon", ADDON_NAME, ADDON_NS),
        _delete(host, "namespace", ADDON_NS, None),
    ):
        _attempt(report, item, fn, hint)
    return report
