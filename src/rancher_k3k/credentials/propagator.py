# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/credentials/propagator.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Tuple

from ..config.models import CredentialBundle
from ..render.template import Delete, Replace, Resolution, yaml_scalar

# In-cluster objects the HelmChart CRs point at
AUTH_SECRET_NAME = "helm-repo-auth"
CA_CONFIGMAP_NAME = "helm-repo-ca"

AUTH_SECRET_TOKEN = "__AUTH_SECRET__"
REPO_CA_TOKEN = "__REPO_CA__"
REGISTRY_TOKEN = "__EXTRA_RANCHER_VALUES__"


class TargetKind(str, Enum):
    CLI_AUTH_FLAGS = "command-line-auth-flags"
    SECRET_REFERENCE = "in-cluster-secret-reference"
    CONFIGMAP_REFERENCE = "in-cluster-configmap-reference"
    REGISTRY_SETTING = "application-level-registry-setting"


ALL_TARGETS = frozenset(TargetKind)


@dataclass(frozen=True)
class CredentialFragment:
    """Template resolutions and/or CLI flags derived for one target."""

    context: Mapping[str, Resolution] = field(default_factory=dict)
    flags: Tuple[str, ...] = ()


def auth_flags(bundle: CredentialBundle) -> List[str]:
    flags: List[str] = []
    if bundle.has_auth:
        flags += ["--username", bundle.username, "--password", bundle.password]
    flags += ca_flags(bundle)
    return flags


def ca_flags(bundle: CredentialBundle) -> List[str]:
    """CA-only flags for install/upgrade commands that take no credentials."""
    if bundle.ca_path is None:
        return []
    return ["--ca-file", str(bundle.ca_path)]


def _secret_reference(bundle: CredentialBundle) -> Resolution:
    if not bundle.has_auth:
        return Delete()
    return Replace(f"authSecret:\n  name: {AUTH_SECRET_NAME}")


def _configmap_reference(bundle: CredentialBundle) -> Resolution:
    if not bundle.has_ca:
        return Delete()
    return Replace(f"repoCAConfigMap:\n  name: {CA_CONFIGMAP_NAME}")


def _registry_setting(bundle: CredentialBundle) -> Resolution:
    lines: List[str] = []
    if bundle.registry:
        lines.append(f"systemDefaultRegistry: {yaml_scalar(bundle.registry)}")
    if bundle.has_ca:
        lines.append('privateCA: "true"')
    if not lines:
        return Delete()
    return Replace("\n".join(lines))


def propagate(
    bundle: CredentialBundle,
    targets: Iterable[TargetKind] = ALL_TARGETS,
) -> Dict[TargetKind, CredentialFragment]:
    """
    Derive every requested fragment from the bundle. Builds data only.
    """
    fragments: Dict[TargetKind, CredentialFragment] = {}
    for target in sorted(set(targets), key=lambda t: t.value):
        if target is TargetKind.CLI_AUTH_FLAGS:
            fragments[target] = CredentialFragment(flags=tuple(auth_flags(bundle)))
        elif target is TargetKind.SECRET_REFERENCE:
            fragments[target] = CredentialFragment(
                context={AUTH_SECRET_TOKEN: _secret_reference(bundle)}
            )
        elif target is TargetKind.CONFIGMAP_REFERENCE:
            fragments[target] = CredentialFragment(
                context={REPO_CA_TOKEN: _configmap_reference(bundle)}
            )
        elif target is TargetKind.REGISTRY_SETTING:
            fragments[target] = CredentialFragment(
                context={REGISTRY_TOKEN: _registry_setting(bundle)}
            )
    return fragments


def merged_context(fragments: Mapping[TargetKind, CredentialFragment]) -> Dict[str, Resolution]:
    context: Dict[str, Resolution] = {}
    for fragment in fragments.values():
        context.update(fragment.context)
    return context
