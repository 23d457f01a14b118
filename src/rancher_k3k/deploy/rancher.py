# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/deploy/rancher.py
"""
Rancher inside a k3k virtual cluster on Harvester.

Every manifest is rendered in strict mode while the flow is built, so a
missing placeholder fails before anything touches a cluster. Each step's
precondition re-reads live state; re-running the flow skips what is
already in place and upgrades what drifted.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import yaml

from ..config.models import DeployConfig
from ..credentials.propagator import (
    AUTH_SECRET_NAME,
    CA_CONFIGMAP_NAME,
    TargetKind,
    ca_flags,
    merged_context,
    propagate,
)
from ..helm.cli_runner import status_command
from ..helm.interface import IHelm
from ..kube import kubeconfig, resources
from ..kube.interface import IKube
from ..kube.kubectl import KubectlError
from ..render.template import Replace, Resolution, load_template, render_text, yaml_scalar
from . import accessors
from .poller import PollSpec, ResourceRef
from .steps import Check, DeploymentStep, Wait

log = logging.getLogger("rancher_k3k")

K3K_RELEASE = "k3k"
K3K_CHART = "k3k/k3k"
K3K_SYSTEM_NS = "k3k-system"
HELMCHART_NS = "kube-system"
CATTLE_NS = "cattle-system"
CERT_MANAGER_NS = "cert-manager"
TLS_SECRET = "tls-rancher-ingress"
CA_SECRET = "tls-ca"

CLUSTER_TEMPLATE = "rancher-cluster.yaml"
CERT_MANAGER_TEMPLATE = "01-cert-manager.yaml"
RANCHER_TEMPLATE = "02-rancher.yaml"
HOST_INGRESS_TEMPLATE = "host-ingress.yaml"

UNCOMPARED_VALUES = ("bootstrapPassword",)


def same_version(a: Optional[str], b: Optional[str]) -> bool:
    """Chart versions compare equal with or without a leading "v"."""
    return (a or "").lstrip("v") == (b or "").lstrip("v")


def _inspect(kube: IKube, kind: str, name: str, namespace: str) -> str:
    return ResourceRef(kind, name, namespace, kubectl=kube.describe()).inspect_command()


# ---------------------------------------------------------------------
# Template contexts
# ---------------------------------------------------------------------
def chart_credentials(cfg: DeployConfig, *, registry: bool = False) -> Dict[str, Resolution]:
    targets = {TargetKind.SECRET_REFERENCE, TargetKind.CONFIGMAP_REFERENCE}
    if registry:
        targets.add(TargetKind.REGISTRY_SETTING)
    return merged_context(propagate(cfg.credentials, targets))


def cluster_context(cfg: DeployConfig) -> Dict[str, Resolution]:
    return {
        "__NAMESPACE__": Replace(cfg.target.namespace),
        "__CLUSTER_NAME__": Replace(cfg.target.cluster_name),
        "__STORAGE_CLASS__": Replace(cfg.storage_class),
        "__PVC_SIZE__": Replace(cfg.pvc_size),
    }


def cert_manager_context(cfg: DeployConfig) -> Dict[str, Resolution]:
    ctx: Dict[str, Resolution] = {
        "__CERTMANAGER_REPO__": Replace(yaml_scalar(cfg.cert_manager.repo)),
        "__CERTMANAGER_VERSION__": Replace(yaml_scalar(cfg.cert_manager.version)),
    }
    ctx.update(chart_credentials(cfg))
    return ctx


def rancher_context(cfg: DeployConfig) -> Dict[str, Resolution]:
    ctx: Dict[str, Resolution] = {
        "__RANCHER_REPO__": Replace(yaml_scalar(cfg.rancher.repo)),
        "__RANCHER_VERSION__": Replace(yaml_scalar(cfg.rancher.version)),
        "__HOSTNAME__": Replace(yaml_scalar(cfg.hostname)),
        "__BOOTSTRAP_PW__": Replace(yaml_scalar(cfg.bootstrap_password)),
        "__TLS_SOURCE__": Replace(cfg.tls_source),
    }
    ctx.update(chart_credentials(cfg, registry=True))
    return ctx


def host_ingress_context(cfg: DeployConfig) -> Dict[str, Resolution]:
    t = cfg.target
    return {
        "__NAMESPACE__": Replace(t.namespace),
        "__CLUSTER_NAME__": Replace(t.cluster_name),
        "__TRAEFIK_SERVICE__": Replace(t.traefik_service),
        "__INGRESS_NAME__": Replace(t.ingress_name),
        "__HOSTNAME__": Replace(yaml_scalar(cfg.hostname)),
    }


def render_manifests(cfg: DeployConfig) -> Dict[str, str]:
    """Rendered k3k-flow manifests keyed by template name. Strict."""
    contexts = {
        CLUSTER_TEMPLATE: cluster_context(cfg),
        CERT_MANAGER_TEMPLATE: cert_manager_context(cfg),
        RANCHER_TEMPLATE: rancher_context(cfg),
        HOST_INGRESS_TEMPLATE: host_ingress_context(cfg),
    }
    return {
        name: render_text(load_template(name), ctx, strict=True)
        for name, ctx in contexts.items()
    }


# ---------------------------------------------------------------------
# Live-state checks
# ---------------------------------------------------------------------
def objects_check(kube: IKube, objects: Sequence[dict]) -> Check:
    """Compare the data of Secrets/ConfigMaps with what is live."""
    live = [
        kube.get_json(o["kind"].lower(), o["metadata"]["name"], namespace=o["metadata"].get("namespace"))
        for o in objects
    ]
    if all(item is None for item in live):
        return Check.ABSENT
    if all(resources.data_matches(item, o) for item, o in zip(live, objects)):
        return Check.SATISFIED
    return Check.OUTDATED


def chart_values(values: Optional[dict]) -> Dict[str, str]:
    """`spec.set` as compared between runs; the bootstrap password only seeds a fresh install."""
    return {
        key: str(value)
        for key, value in (values or {}).items()
        if key not in UNCOMPARED_VALUES
    }


def helmchart_check(
    kube: IKube,
    name: str,
    expected: Dict[str, Optional[str]],
    deployments: Sequence[tuple[str, str]] = (),
    values: Optional[dict] = None,
) -> Check:
    """
    ABSENT when the HelmChart CR is missing, OUTDATED when any expected
    field or `spec.set` value differs or a workload is not Available yet.
    """
    live = kube.get_json("helmchart", name, namespace=HELMCHART_NS)
    if live is None:
        return Check.ABSENT

    spec = live.get("spec") or {}
    observed = {
        "repo": spec.get("repo"),
        "version": spec.get("version"),
        "authSecret": (spec.get("authSecret") or {}).get("name"),
        "repoCAConfigMap": (spec.get("repoCAConfigMap") or {}).get("name"),
    }
    for key, value in expected.items():
        if key == "version":
            if not same_version(observed[key], value):
                return Check.OUTDATED
        elif observed.get(key) != value:
            log.debug("[helmchart/%s] %s: live=%r wanted=%r", name, key, observed.get(key), value)
            return Check.OUTDATED

    if values is not None and chart_values(spec.get("set")) != chart_values(values):
        log.debug("[helmchart/%s] set: live=%r wanted=%r", name, spec.get("set"), values)
        return Check.OUTDATED

    for deploy, ns in deployments:
        if kube.deployment_available(deploy, ns) != "True":
            return Check.OUTDATED
    return Check.SATISFIED


# ---------------------------------------------------------------------
# Flow
# ---------------------------------------------------------------------
class RancherK3kFlow:
    """
    Builds the ordered k3k deployment steps.

    - host: kubectl against the Harvester cluster
    - virtual: kubectl against the k3k cluster (through the kubeconfig the
      `kubeconfig` step writes)
    - helm: installs the k3k controller on the host
    """

    def __init__(
        self,
        cfg: DeployConfig,
        *,
        host: IKube,
        helm: IHelm,
        virtual: IKube,
        delay: float = 5.0,
    ):
        self.cfg = cfg
        self.host = host
        self.helm = helm
        self.virtual = virtual
        self.delay = delay
        # RenderError surfaces here, before any external call
        self.manifests = render_manifests(cfg)

    def steps(self) -> List[DeploymentStep]:
        creds = self.cfg.credentials
        steps = [self._k3k_controller(), self._virtual_cluster(), self._kubeconfig()]
        if creds.has_ca:
            steps.append(self._private_ca())
        if creds.has_auth or creds.has_ca:
            steps.append(self._repo_credentials())
        steps += [
            self._cert_manager(),
            self._rancher(),
            self._tls_certificate(),
            self._host_ingress(),
        ]
        return steps

    # ------------------------- host side -------------------------

    def _k3k_controller(self) -> DeploymentStep:
        chart = self.cfg.k3k
        repo_flags = propagate(self.cfg.credentials, {TargetKind.CLI_AUTH_FLAGS})[TargetKind.CLI_AUTH_FLAGS].flags

        def check() -> Check:
            deployed = self.helm.deployed_chart_version(K3K_RELEASE, K3K_SYSTEM_NS)
            if deployed is None:
                return Check.ABSENT
            return Check.SATISFIED if same_version(deployed, chart.version) else Check.OUTDATED

        def apply(check: Check) -> None:
            self.helm.add_repo("k3k", chart.repo, repo_flags)
            self.helm.update_repos("k3k")
            self.helm.upgrade_install(
                K3K_RELEASE,
                K3K_CHART,
                K3K_SYSTEM_NS,
                version=chart.version,
                flags=ca_flags(self.cfg.credentials),
            )

        return DeploymentStep(
            name="k3k-controller",
            description=f"k3k chart {chart.version} in {K3K_SYSTEM_NS}",
            precondition=check,
            action=apply,
            waits=[
                accessors.deployment_available(self.host, "k3k", K3K_SYSTEM_NS, max_attempts=24, delay=self.delay),
            ],
            hint=status_command(K3K_RELEASE, K3K_SYSTEM_NS, self.cfg.target.kube_context),
        )

    def _virtual_cluster(self) -> DeploymentStep:
        cfg, t = self.cfg, self.cfg.target

        def check() -> Check:
            live = self.host.get_json("clusters.k3k.io", t.cluster_name, namespace=t.namespace)
            if live is None:
                return Check.ABSENT
            persistence = (live.get("spec") or {}).get("persistence") or {}
            if (
                persistence.get("storageRequestSize") != cfg.pvc_size
                or persistence.get("storageClassName") != cfg.storage_class
            ):
                return Check.OUTDATED
            phase = (live.get("status") or {}).get("phase")
            return Check.SATISFIED if phase == "Ready" else Check.OUTDATED

        def apply(check: Check) -> None:
            self.host.apply(self.manifests[CLUSTER_TEMPLATE])

        return DeploymentStep(
            name="virtual-cluster",
            description=f"k3k cluster {t.cluster_name} ({cfg.pvc_size} on {cfg.storage_class})",
            precondition=check,
            action=apply,
            waits=[
                accessors.field_equals(
                    self.host,
                    "clusters.k3k.io",
                    t.cluster_name,
                    "{.status.phase}",
                    ("Ready",),
                    namespace=t.namespace,
                    failure_patterns=("Failed",),
                    description=f"k3k cluster {t.cluster_name} Ready",
                    max_attempts=120,
                    delay=self.delay,
                ),
            ],
        )

    def _kubeconfig(self) -> DeploymentStep:
        t = self.cfg.target
        path = t.kubeconfig_path

        def reachable() -> Optional[str]:
            return "reachable" if self.virtual.reachable() else None

        def check() -> Check:
            if not path.exists():
                return Check.ABSENT
            return Check.SATISFIED if self.virtual.reachable() else Check.OUTDATED

        def apply(check: Check) -> None:
            kubeconfig.write(path, kubeconfig.extract(self.host, t))

        spec = PollSpec(
            target=ResourceRef(kind="nodes", kubectl=self.virtual.describe()),
            description="virtual cluster API reachable",
            success=("reachable",),
            max_attempts=12,
            delay=self.delay,
        )
        return DeploymentStep(
            name="kubeconfig",
            description=f"kubeconfig for {t.cluster_name} at {path}",
            precondition=check,
            action=apply,
            waits=[Wait(spec, reachable)],
            hint=_inspect(self.host, "secret", t.kubeconfig_secret, t.namespace),
        )

    # ------------------------- virtual cluster side -------------------------

    def _private_ca(self) -> DeploymentStep:
        ca_pem = self.cfg.credentials.ca_path.read_bytes()
        desired = resources.secret(CA_SECRET, CATTLE_NS, {"cacerts.pem": ca_pem})

        def check() -> Check:
            return objects_check(self.virtual, [desired])

        def apply(check: Check) -> None:
            self.virtual.apply_objects([resources.namespace(CATTLE_NS), desired])

        return DeploymentStep(
            name="private-ca",
            description=f"secret {CA_SECRET} in {CATTLE_NS}",
            precondition=check,
            action=apply,
            hint=_inspect(self.virtual, "secret", CA_SECRET, CATTLE_NS),
        )

    def _repo_credentials(self) -> DeploymentStep:
        creds = self.cfg.credentials
        objects: List[dict] = []
        if creds.has_auth:
            objects.append(
                resources.secret(
                    AUTH_SECRET_NAME,
                    HELMCHART_NS,
                    {"username": creds.username, "password": creds.password},
                    type_="kubernetes.io/basic-auth",
                )
            )
        if creds.has_ca:
            objects.append(
                resources.configmap(CA_CONFIGMAP_NAME, HELMCHART_NS, {"ca.crt": creds.ca_path.read_text()})
            )

        def check() -> Check:
            return objects_check(self.virtual, objects)

        def apply(check: Check) -> None:
            self.virtual.apply_objects(objects)

        names = ", ".join(f"{o['kind']}/{o['metadata']['name']}" for o in objects)
        return DeploymentStep(
            name="helm-repo-credentials",
            description=f"{names} in {HELMCHART_NS}",
            precondition=check,
            action=apply,
            hint=_inspect(self.virtual, objects[0]["kind"].lower(), objects[0]["metadata"]["name"], HELMCHART_NS),
        )

    def _chart_refs(self) -> Dict[str, Optional[str]]:
        creds = self.cfg.credentials
        return {
            "authSecret": AUTH_SECRET_NAME if creds.has_auth else None,
            "repoCAConfigMap": CA_CONFIGMAP_NAME if creds.has_ca else None,
        }

    def _cert_manager(self) -> DeploymentStep:
        chart = self.cfg.cert_manager
        workloads = [("cert-manager", CERT_MANAGER_NS), ("cert-manager-webhook", CERT_MANAGER_NS)]
        expected = {"repo": chart.repo, "version": chart.version, **self._chart_refs()}

        def check() -> Check:
            return helmchart_check(self.virtual, "cert-manager", expected, workloads)

        def apply(check: Check) -> None:
            self.virtual.apply(self.manifests[CERT_MANAGER_TEMPLATE])

        return DeploymentStep(
            name="cert-manager",
            description=f"cert-manager {chart.version}",
            precondition=check,
            action=apply,
            waits=[
                accessors.deployment_available(self.virtual, name, ns, max_attempts=60, delay=self.delay)
                for name, ns in workloads
            ],
            hint=_inspect(self.virtual, "helmchart", "cert-manager", HELMCHART_NS),
        )

    def _rancher(self) -> DeploymentStep:
        cfg = self.cfg
        chart = cfg.rancher
        expected = {
            "repo": chart.repo,
            "version": chart.version,
            **self._chart_refs(),
        }
        values = (yaml.safe_load(self.manifests[RANCHER_TEMPLATE])["spec"] or {}).get("set") or {}

        def check() -> Check:
            verdict = helmchart_check(self.virtual, "rancher", expected, [("rancher", CATTLE_NS)], values=values)
            if verdict is Check.SATISFIED and not self.virtual.exists("secret", TLS_SECRET, namespace=CATTLE_NS):
                return Check.OUTDATED
            return verdict

        def apply(check: Check) -> None:
            self.virtual.apply(self.manifests[RANCHER_TEMPLATE])

        return DeploymentStep(
            name="rancher",
            description=f"Rancher {chart.version} at https://{cfg.hostname}",
            precondition=check,
            action=apply,
            waits=[
                accessors.deployment_available(self.virtual, "rancher", CATTLE_NS, max_attempts=120, delay=self.delay),
                accessors.exists(self.virtual, "secret", TLS_SECRET, namespace=CATTLE_NS, max_attempts=30, delay=self.delay),
            ],
            hint=_inspect(self.virtual, "helmchart", "rancher", HELMCHART_NS),
        )

    # ------------------------- back on the host -------------------------

    def _desired_tls(self) -> dict:
        source = self.virtual.get_json("secret", TLS_SECRET, namespace=CATTLE_NS)
        data = (source or {}).get("data") or {}
        if not data.get("tls.crt") or not data.get("tls.key"):
            raise KubectlError(f"secret {TLS_SECRET} in {CATTLE_NS} has no certificate yet")
        return resources.tls_secret(
            TLS_SECRET,
            self.cfg.target.namespace,
            cert_b64=data["tls.crt"],
            key_b64=data["tls.key"],
        )

    def _tls_certificate(self) -> DeploymentStep:
        ns = self.cfg.target.namespace

        def check() -> Check:
            return objects_check(self.host, [self._desired_tls()])

        def apply(check: Check) -> None:
            self.host.apply_objects([self._desired_tls()])

        return DeploymentStep(
            name="tls-certificate",
            description=f"copy {TLS_SECRET} to {ns} on the host",
            precondition=check,
            action=apply,
            hint=_inspect(self.virtual, "secret", TLS_SECRET, CATTLE_NS),
        )

    def _host_ingress(self) -> DeploymentStep:
        cfg, t = self.cfg, self.cfg.target

        def check() -> Check:
            host_rule = self.host.get_field(
                "ingress", t.ingress_name, "{.spec.rules[0].host}", namespace=t.namespace
            )
            if host_rule is None:
                return Check.ABSENT
            if host_rule != cfg.hostname:
                return Check.OUTDATED
            if not self.host.exists("svc", t.traefik_service, namespace=t.namespace):
                return Check.OUTDATED
            return Check.SATISFIED

        def apply(check: Check) -> None:
            self.host.apply(self.manifests[HOST_INGRESS_TEMPLATE])

        return DeploymentStep(
            name="host-ingress",
            description=f"ingress {t.ingress_name} for {cfg.hostname}",
            precondition=check,
            action=apply,
            waits=[
                accessors.exists(self.host, "ingress", t.ingress_name, namespace=t.namespace, delay=self.delay),
            ],
        )
