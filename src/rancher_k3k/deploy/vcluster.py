# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/deploy/vcluster.py
from __future__ import annotations

import logging
from typing import Dict, List

import yaml

from ..config.models import DeployConfig
from ..credentials.propagator import TargetKind, merged_context, propagate
from ..kube.interface import IKube
from ..render.template import Replace, Resolution, load_template, render_text, yaml_scalar
from . import accessors
from .steps import Check, DeploymentStep

log = logging.getLogger("rancher_k3k")

ADDON_NAME = "rancher-vcluster"
ADDON_NS = "rancher-vcluster"
ADDON_TEMPLATE = "rancher-vcluster.yaml"

DEPLOY_SUCCESSFUL = "AddonDeploySuccessful"
DEPLOY_FAILED = "AddonDeployFailed"


def vcluster_context(cfg: DeployConfig) -> Dict[str, Resolution]:
    ctx: Dict[str, Resolution] = {
        "__VCLUSTER_REPO__": Replace(yaml_scalar(cfg.vcluster.repo)),
        "__VCLUSTER_VERSION__": Replace(yaml_scalar(cfg.vcluster.version)),
        "__RANCHER_VERSION__": Replace(yaml_scalar(cfg.rancher.version)),
        "__HOSTNAME__": Replace(yaml_scalar(cfg.hostname)),
        "__BOOTSTRAP_PW__": Replace(yaml_scalar(cfg.bootstrap_password)),
    }
    ctx.update(merged_context(propagate(cfg.credentials, {TargetKind.REGISTRY_SETTING})))
    return ctx


def render_manifests(cfg: DeployConfig) -> Dict[str, str]:
    return {ADDON_TEMPLATE: render_text(load_template(ADDON_TEMPLATE), vcluster_context(cfg), strict=True)}


def _addon_spec(manifest: str) -> dict:
    for doc in yaml.safe_load_all(manifest):
        if doc and doc.get("kind") == "Addon":
            return doc.get("spec") or {}
    raise ValueError(f"{ADDON_TEMPLATE} has no Addon document")


class RancherVClusterFlow:
    """
    Rancher through Harvester's experimental `rancher-vcluster` addon.

    A single step: apply the addon (disabled), enable it and wait for the
    addon controller to report a successful deploy. Drifted addons are
    patched in place rather than re-applied, so an enabled addon is never
    toggled off.
    """

    def __init__(self, cfg: DeployConfig, *, host: IKube, delay: float = 5.0):
        self.cfg = cfg
        self.host = host
        self.delay = delay
        self.manifests = render_manifests(cfg)
        self.desired = _addon_spec(self.manifests[ADDON_TEMPLATE])

    def steps(self) -> List[DeploymentStep]:
        return [self._addon()]

    def _drift(self, live_spec: dict) -> Dict[str, object]:
        patch: Dict[str, object] = {}
        for key in ("repo", "version", "chart"):
            if live_spec.get(key) != self.desired.get(key):
                patch[key] = self.desired.get(key)
        if (live_spec.get("valuesContent") or "").strip() != (self.desired.get("valuesContent") or "").strip():
            patch["valuesContent"] = self.desired.get("valuesContent")
        if not live_spec.get("enabled"):
            patch["enabled"] = True
        return patch

    def _addon(self) -> DeploymentStep:
        def check() -> Check:
            live = self.host.get_json("addon", ADDON_NAME, namespace=ADDON_NS)
            if live is None:
                return Check.ABSENT
            if self._drift(live.get("spec") or {}):
                return Check.OUTDATED
            status = (live.get("status") or {}).get("status")
            return Check.SATISFIED if status == DEPLOY_SUCCESSFUL else Check.OUTDATED

        def apply(check: Check) -> None:
            if check is Check.ABSENT:
                self.host.apply(self.manifests[ADDON_TEMPLATE])
                self.host.patch("addon", ADDON_NAME, {"spec": {"enabled": True}}, namespace=ADDON_NS)
                return
            live = self.host.get_json("addon", ADDON_NAME, namespace=ADDON_NS) or {}
            patch = self._drift(live.get("spec") or {})
            if patch:
                log.info("[vcluster] patching addon fields: %s", ", ".join(sorted(patch)))
                self.host.patch("addon", ADDON_NAME, {"spec": patch}, namespace=ADDON_NS)

        return DeploymentStep(
            name="vcluster-addon",
            description=f"addon {ADDON_NAME} (vcluster {self.cfg.vcluster.version}, Rancher {self.cfg.rancher.version})",
            precondition=check,
            action=apply,
            waits=[
                accessors.field_equals(
                    self.host,
                    "addon",
                    ADDON_NAME,
                    "{.status.status}",
                    (DEPLOY_SUCCESSFUL,),
                    namespace=ADDON_NS,
                    failure_patterns=(DEPLOY_FAILED,),
                    description=f"addon {ADDON_NAME} deployed",
                    max_attempts=120,
                    delay=self.delay,
                ),
            ],
        )
