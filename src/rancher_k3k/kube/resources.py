# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/kube/resources.py
"""
Plain-dict builders for the small objects the flows create directly, and
clean-up of captured objects before they are re-applied.
"""
from __future__ import annotations

import base64
import copy
from typing import Dict, Mapping, Optional

import yaml

LAST_APPLIED = "kubectl.kubernetes.io/last-applied-configuration"

_SERVER_METADATA = ("resourceVersion", "uid", "creationTimestamp", "managedFields", "selfLink", "generation")


def _b64(value: str | bytes) -> str:
    if isinstance(value, str):
        value = value.encode()
    return base64.b64encode(value).decode()


def namespace(name: str) -> dict:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": name}}


def secret(
    name: str,
    ns: str,
    data: Mapping[str, str | bytes],
    *,
    type_: str = "Opaque",
    labels: Optional[Dict[str, str]] = None,
) -> dict:
    meta: dict = {"name": name, "namespace": ns}
    if labels:
        meta["labels"] = dict(labels)
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": meta,
        "type": type_,
        "data": {k: _b64(v) for k, v in data.items()},
    }


def tls_secret(name: str, ns: str, *, cert_b64: str, key_b64: str) -> dict:
    """TLS secret from already base64-encoded material (as read from another secret)."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": ns},
        "type": "kubernetes.io/tls",
        "data": {"tls.crt": cert_b64, "tls.key": key_b64},
    }


def configmap(name: str, ns: str, data: Mapping[str, str]) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": ns},
        "data": dict(data),
    }


def sanitize(obj: dict) -> dict:
    """
    Strip server-populated fields so a captured object can be applied again.
    Works on single objects and on `kind: List` documents.
    """
    obj = copy.deepcopy(obj)
    if obj.get("kind") == "List" or ("items" in obj and "metadata" not in obj):
        obj["items"] = [sanitize(i) for i in obj.get("items") or []]
        return obj

    meta = obj.get("metadata") or {}
    for key in _SERVER_METADATA:
        meta.pop(key, None)
    annotations = meta.get("annotations")
    if annotations:
        annotations.pop(LAST_APPLIED, None)
        if not annotations:
            meta.pop("annotations")
    obj.pop("status", None)

    if obj.get("kind") == "Service":
        spec = obj.get("spec") or {}
        spec.pop("clusterIP", None)
        spec.pop("clusterIPs", None)
    return obj


def sanitize_yaml(text: str) -> str:
    docs = [d for d in yaml.safe_load_all(text) if d]
    return yaml.safe_dump_all([sanitize(d) for d in docs], sort_keys=False)


def data_matches(live: Optional[dict], desired: dict) -> bool:
    """True when a live Secret/ConfigMap already carries exactly the desired data."""
    if not live:
        return False
    return (live.get("data") or {}) == (desired.get("data") or {})
