# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/deploy/accessors.py
"""
Accessor and PollSpec factories binding the generic poller to kubectl.
"""
from __future__ import annotations

from typing import Optional, Sequence

from ..kube.interface import IKube
from .poller import Accessor, PollSpec, ResourceRef
from .steps import Wait


def field_of(kube: IKube, kind: str, name: str, jsonpath: str, namespace: Optional[str] = None) -> Accessor:
    def _get() -> Optional[str]:
        return kube.get_field(kind, name, jsonpath, namespace=namespace)

    return _get


def existence_of(kube: IKube, kind: str, name: str, namespace: Optional[str] = None) -> Accessor:
    """Observes "present" once the object exists, None before."""

    def _get() -> Optional[str]:
        return "present" if kube.exists(kind, name, namespace=namespace) else None

    return _get


def ref(kube: IKube, kind: str, name: str, namespace: Optional[str] = None) -> ResourceRef:
    return ResourceRef(kind=kind, name=name, namespace=namespace, kubectl=kube.describe())


def deployment_available(
    kube: IKube,
    name: str,
    namespace: str,
    *,
    max_attempts: int = 60,
    delay: float = 5.0,
) -> Wait:
    spec = PollSpec(
        target=ref(kube, "deployment", name, namespace),
        description=f"deployment {name} available",
        success=("True",),
        max_attempts=max_attempts,
        delay=delay,
    )
    return Wait(spec, lambda: kube.deployment_available(name, namespace))


def field_equals(
    kube: IKube,
    kind: str,
    name: str,
    jsonpath: str,
    success: Sequence[str],
    *,
    namespace: Optional[str] = None,
    failure_patterns: Sequence[str] = (),
    description: Optional[str] = None,
    max_attempts: int = 60,
    delay: float = 5.0,
) -> Wait:
    spec = PollSpec(
        target=ref(kube, kind, name, namespace),
        description=description or f"{kind}/{name} {jsonpath} in {tuple(success)}",
        success=tuple(success),
        failure_patterns=tuple(failure_patterns),
        max_attempts=max_attempts,
        delay=delay,
    )
    return Wait(spec, field_of(kube, kind, name, jsonpath, namespace))


def exists(
    kube: IKube,
    kind: str,
    name: str,
    *,
    namespace: Optional[str] = None,
    max_attempts: int = 60,
    delay: float = 5.0,
) -> Wait:
    spec = PollSpec(
        target=ref(kube, kind, name, namespace),
        description=f"{kind}/{name} exists",
        success=("present",),
        max_attempts=max_attempts,
        delay=delay,
    )
    return Wait(spec, existence_of(kube, kind, name, namespace))
