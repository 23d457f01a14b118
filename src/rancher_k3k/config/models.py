# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/config/models.py
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PVC_SIZE_RE = re.compile(r"^[1-9][0-9]*(Mi|Gi|Ti)$")


class ChartSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo: str
    version: str


class CredentialBundle(BaseModel):
    """
    Optional registry / Helm repository credentials.

    Username and password come as a pair. The CA bundle, if set, must be a
    readable file.
    """

    model_config = ConfigDict(frozen=True)

    username: Optional[str] = None
    password: Optional[str] = None
    ca_path: Optional[Path] = None
    registry: Optional[str] = None

    @model_validator(mode="after")
    def _check_pairs(self) -> "CredentialBundle":
        if bool(self.username) != bool(self.password):
            raise ValueError("repository username and password must be set together")
        if self.ca_path is not None:
            if not self.ca_path.is_file():
                raise ValueError(f"CA certificate file not found: {self.ca_path}")
            if not os.access(self.ca_path, os.R_OK):
                raise ValueError(f"CA certificate file is not readable: {self.ca_path}")
        return self

    @property
    def has_auth(self) -> bool:
        return bool(self.username and self.password)

    @property
    def has_ca(self) -> bool:
        return self.ca_path is not None


class TargetSettings(BaseModel):
    """Where the virtual cluster lives on the host."""

    model_config = ConfigDict(frozen=True)

    namespace: str = "k3k-rancher"
    cluster_name: str = "rancher"
    kube_context: Optional[str] = None
    kubeconfig_path: Path = Path("~/.rancher-k3k/k3k-rancher-kubeconfig.yaml")

    @field_validator("kubeconfig_path")
    @classmethod
    def _expand(cls, v: Path) -> Path:
        return Path(v).expanduser()

    # Resource names derived by the k3k controller
    @property
    def kubeconfig_secret(self) -> str:
        return f"k3k-{self.cluster_name}-kubeconfig"

    @property
    def service_name(self) -> str:
        return f"k3k-{self.cluster_name}-service"

    @property
    def ingress_name(self) -> str:
        return f"k3k-{self.cluster_name}-ingress"

    @property
    def traefik_service(self) -> str:
        return f"k3k-{self.cluster_name}-traefik"


class BackupSettings(BaseModel):
    """rancher-backup operator storage."""

    model_config = ConfigDict(frozen=True)

    s3_endpoint: Optional[str] = None
    s3_bucket: Optional[str] = None
    credential_secret: str = "minio-backup-creds"
    credential_namespace: str = "cattle-resources-system"
    resource_set: str = "rancher-resource-set-full"
    insecure_tls: bool = True


class Settings(BaseModel):
    """Settings shared by every command."""

    model_config = ConfigDict(frozen=True)

    target: TargetSettings = TargetSettings()
    credentials: CredentialBundle = CredentialBundle()
    backup: BackupSettings = BackupSettings()


class DeployConfig(Settings):
    method: Literal["k3k", "vcluster"] = "k3k"
    hostname: str
    bootstrap_password: str = Field(min_length=12)
    pvc_size: str = "10Gi"
    storage_class: str = "harvester-longhorn"
    tls_source: Literal["rancher", "letsEncrypt", "secret"] = "rancher"

    k3k: ChartSource = ChartSource(repo="https://rancher.github.io/k3k", version="1.0.1")
    cert_manager: ChartSource = ChartSource(repo="https://charts.jetstack.io", version="v1.18.5")
    rancher: ChartSource = ChartSource(
        repo="https://releases.rancher.com/server-charts/latest", version="v2.13.2"
    )
    vcluster: ChartSource = ChartSource(repo="https://charts.loft.sh", version="v0.19.0")

    @field_validator("hostname")
    @classmethod
    def _hostname(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("hostname is required")
        return v

    @field_validator("pvc_size")
    @classmethod
    def _pvc_size(cls, v: str) -> str:
        if not PVC_SIZE_RE.match(v):
            raise ValueError(f"invalid PVC size {v!r}, expected e.g. 10Gi")
        return v
