# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/config/loader.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .models import DeployConfig, Settings

# Environment variable -> dotted field path
ENV_MAP: Dict[str, str] = {
    "DEPLOY_METHOD": "method",
    "RANCHER_HOSTNAME": "hostname",
    "BOOTSTRAP_PW": "bootstrap_password",
    "PVC_SIZE": "pvc_size",
    "STORAGE_CLASS": "storage_class",
    "TLS_SOURCE": "tls_source",
    "K3K_REPO": "k3k.repo",
    "K3K_VERSION": "k3k.version",
    "CERTMANAGER_REPO": "cert_manager.repo",
    "CERTMANAGER_VERSION": "cert_manager.version",
    "RANCHER_REPO": "rancher.repo",
    "RANCHER_VERSION": "rancher.version",
    "VCLUSTER_REPO": "vcluster.repo",
    "VCLUSTER_VERSION": "vcluster.version",
    "HELM_REPO_USER": "credentials.username",
    "HELM_REPO_PASS": "credentials.password",
    "PRIVATE_CA_PATH": "credentials.ca_path",
    "PRIVATE_REGISTRY": "credentials.registry",
    "K3K_NAMESPACE": "target.namespace",
    "K3K_CLUSTER": "target.cluster_name",
    "KUBE_CONTEXT": "target.kube_context",
    "K3K_KUBECONFIG": "target.kubeconfig_path",
    "BACKUP_S3_ENDPOINT": "backup.s3_endpoint",
    "BACKUP_S3_BUCKET": "backup.s3_bucket",
    "BACKUP_CREDENTIAL_SECRET": "backup.credential_secret",
}

# Fields that only a deploy needs; dropped when building plain Settings
DEPLOY_ONLY_KEYS = {
    "method",
    "hostname",
    "bootstrap_password",
    "pvc_size",
    "storage_class",
    "tls_source",
    "k3k",
    "cert_manager",
    "rancher",
    "vcluster",
}

NONINTERACTIVE_ENV = "RANCHER_K3K_NONINTERACTIVE"


def set_path(data: Dict[str, Any], dotted: str, value: Any) -> None:
    node = data
    parts = dotted.split(".")
    for part in parts[:-1]:
        node = node.setdefault(part, {})
    node[parts[-1]] = value


def get_path(data: Mapping[str, Any], dotted: str) -> Any:
    node: Any = data
    for part in dotted.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def load_raw(path: str | Path | None = None, env: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Merge the optional YAML file with the environment overlay.

    Empty environment values count as unset.
    """
    env = os.environ if env is None else env
    data: Dict[str, Any] = {}

    if path is not None:
        raw = Path(path).read_text()
        # expand environment variables like ${HELM_REPO_PASS}
        expanded = os.path.expandvars(raw)
        loaded = yaml.safe_load(expanded) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"config file {path} must contain a mapping")
        data.update(loaded)

    for var, dotted in ENV_MAP.items():
        value = env.get(var)
        if value:
            set_path(data, dotted, value)

    return data


def build_settings(raw: Mapping[str, Any]) -> Settings:
    shared = {k: v for k, v in raw.items() if k not in DEPLOY_ONLY_KEYS}
    return Settings.model_validate(shared)


CHART_KEYS = ("k3k", "cert_manager", "rancher", "vcluster")


def build_deploy_config(raw: Mapping[str, Any]) -> DeployConfig:
    """Chart sources given only partly (e.g. just a version) keep their default repo."""
    data = dict(raw)
    for key in CHART_KEYS:
        partial = data.get(key)
        if isinstance(partial, Mapping):
            data[key] = {**DeployConfig.model_fields[key].default.model_dump(), **partial}
    return DeployConfig.model_validate(data)


def is_non_interactive(env: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if env is None else env
    return env.get(NONINTERACTIVE_ENV, "").lower() in ("1", "true", "yes")
