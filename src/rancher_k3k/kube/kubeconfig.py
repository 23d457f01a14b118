# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/kube/kubeconfig.py
from __future__ import annotations

import base64
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from ..config.models import TargetSettings
from .interface import IKube
from .kubectl import KubectlError

log = logging.getLogger("rancher_k3k")

KUBECONFIG_KEY = "kubeconfig.yaml"


def rewrite_server(kubeconfig_text: str, server: str) -> str:
    """Point every cluster entry at `server`."""
    doc = yaml.safe_load(kubeconfig_text) or {}
    clusters = doc.get("clusters") or []
    if not clusters:
        raise ValueError("kubeconfig has no clusters")
    for entry in clusters:
        entry.setdefault("cluster", {})["server"] = server
    return yaml.safe_dump(doc, sort_keys=False)


def node_port(host: IKube, target: TargetSettings, port: int = 443) -> Optional[str]:
    value = host.get_field(
        "svc", target.service_name,
        f'{{.spec.ports[?(@.port=={port})].nodePort}}',
        namespace=target.namespace,
    )
    return value or None


def server_endpoint(host: IKube, target: TargetSettings) -> str:
    ip = host.first_node_ip()
    port = node_port(host, target)
    if not ip or not port:
        raise KubectlError(
            f"cannot resolve NodePort endpoint for {target.service_name} (node_ip={ip}, node_port={port})"
        )
    return f"https://{ip}:{port}"


def extract(host: IKube, target: TargetSettings) -> str:
    """
    Read the kubeconfig the k3k controller stores on the host and rewrite
    its server to the NodePort endpoint reachable from outside the host.
    """
    encoded = host.get_field(
        "secret", target.kubeconfig_secret,
        "{.data.kubeconfig\\.yaml}",
        namespace=target.namespace,
    )
    if not encoded:
        raise KubectlError(
            f"secret {target.kubeconfig_secret} in {target.namespace} has no {KUBECONFIG_KEY}"
        )
    text = base64.b64decode(encoded).decode()
    return rewrite_server(text, server_endpoint(host, target))


def write(path: Path, content: str) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    os.chmod(path, 0o600)
    log.info("kubeconfig written to %s", path)
    return path
