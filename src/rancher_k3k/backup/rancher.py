# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/backup/rancher.py
"""
What a Rancher-on-k3k backup contains, and how a restore puts it back.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from ..config.models import Settings
from ..deploy import accessors
from ..deploy.poller import PollSpec, ResourceRef
from ..deploy.rancher import CATTLE_NS, TLS_SECRET
from ..deploy.steps import Wait
from ..errors import PreflightError
from ..kube import kubeconfig, resources
from ..kube.interface import IKube
from ..kube.kubectl import KubectlError
from ..render.template import template_paths
from .coordinator import BackupManifest, OperatorJob, ResourceCapture, RestoreItem, RestoreTarget

log = logging.getLogger("rancher_k3k")

BACKUP_CRD = "backups.resources.cattle.io"
RESTORE_CRD = "restores.resources.cattle.io"
OPERATOR_NS = "cattle-resources-system"
OPERATOR_DEPLOYMENT = "rancher-backup"
SCHEDULED_BACKUP = "rancher-scheduled-backup"
READY_STATUS = '{.status.conditions[?(@.type=="Ready")].status}'
READY_MESSAGE = '{.status.conditions[?(@.type=="Ready")].message}'


# ---------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------
def cluster_preflight(settings: Settings, host: IKube, virtual: IKube) -> Callable[[], None]:
    """
    The k3k cluster must exist and be Ready; the kubeconfig is refreshed
    from the host and the virtual cluster must answer.
    """
    t = settings.target
    ref = ResourceRef("clusters.k3k.io", t.cluster_name, t.namespace, kubectl=host.describe())

    def check() -> None:
        phase = host.get_field("clusters.k3k.io", t.cluster_name, "{.status.phase}", namespace=t.namespace)
        if phase is None:
            raise PreflightError(
                f"k3k cluster '{t.cluster_name}' not found in namespace '{t.namespace}'; run deploy first",
                hint=ref.inspect_command(),
            )
        if phase != "Ready":
            raise PreflightError(
                f"k3k cluster is not Ready (current status: {phase or 'unknown'})",
                hint=ref.inspect_command(),
            )
        try:
            kubeconfig.write(t.kubeconfig_path, kubeconfig.extract(host, t))
        except KubectlError as e:
            raise PreflightError(f"cannot extract kubeconfig: {e}", hint=ref.inspect_command()) from e
        if not virtual.reachable():
            raise PreflightError(
                "cannot connect to the k3k cluster",
                hint=f"{virtual.describe()} get nodes",
            )

    return check


# ---------------------------------------------------------------------
# Backup
# ---------------------------------------------------------------------
def _capture(
    kube: IKube,
    path: str,
    kind: str,
    name: Optional[str] = None,
    namespace: Optional[str] = None,
    all_namespaces: bool = False,
) -> ResourceCapture:
    selector = ResourceRef(kind, name, namespace, kubectl=kube.describe())

    def read() -> str:
        return kube.get_yaml(kind, name, namespace=namespace, all_namespaces=all_namespaces)

    return ResourceCapture(selector=selector, path=path, read=read)


def operator_backup_job(settings: Settings, virtual: IKube, *, timestamp: str, delay: float = 5.0) -> OperatorJob:
    name = f"manual-{timestamp}"
    b = settings.backup

    def storage() -> Optional[dict]:
        # reuse the scheduled backup's S3 location when there is one
        endpoint = virtual.get_field(BACKUP_CRD, SCHEDULED_BACKUP, "{.spec.storageLocation.s3.endpoint}")
        bucket = virtual.get_field(BACKUP_CRD, SCHEDULED_BACKUP, "{.spec.storageLocation.s3.bucketName}")
        endpoint = endpoint or b.s3_endpoint
        bucket = bucket or b.s3_bucket
        if not endpoint or not bucket:
            log.info("[backup] no S3 location configured, using operator default storage")
            return None
        log.info("[backup] using S3 storage %s/%s", endpoint, bucket)
        return s3_location(settings, endpoint=endpoint, bucket=bucket)

    def submit() -> None:
        spec: dict = {"resourceSetName": b.resource_set}
        location = storage()
        if location:
            spec["storageLocation"] = location
        virtual.apply_objects([
            {
                "apiVersion": "resources.cattle.io/v1",
                "kind": "Backup",
                "metadata": {"name": name},
                "spec": spec,
            }
        ])

    completion = accessors.field_equals(
        virtual,
        BACKUP_CRD,
        name,
        READY_STATUS,
        ("True",),
        description=f"operator backup {name} Ready",
        max_attempts=60,
        delay=delay,
    )
    return OperatorJob(
        name=name,
        submit=submit,
        completion=completion,
        available=lambda: virtual.exists("crd", BACKUP_CRD),
        artifact=lambda: virtual.get_field(BACKUP_CRD, name, "{.status.filename}"),
    )


def s3_location(settings: Settings, *, endpoint: str, bucket: str) -> dict:
    b = settings.backup
    return {
        "s3": {
            "credentialSecretName": b.credential_secret,
            "credentialSecretNamespace": b.credential_namespace,
            "bucketName": bucket,
            "endpoint": endpoint,
            "insecureTLSSkipVerify": b.insecure_tls,
        }
    }


def backup_manifest(
    settings: Settings,
    *,
    host: IKube,
    virtual: IKube,
    timestamp: str,
    delay: float = 5.0,
) -> BackupManifest:
    t = settings.target
    ns = t.namespace
    captures: List[ResourceCapture] = [
        _capture(host, "k3k-cluster.yaml", "clusters.k3k.io", t.cluster_name, ns),
        _capture(virtual, "helmcharts.yaml", "helmcharts", all_namespaces=True),
        _capture(virtual, "cattle-system-secrets.yaml", "secrets", namespace=CATTLE_NS),
        _capture(host, "host-ingress.yaml", "ingress", t.ingress_name, ns),
        _capture(host, "host-service.yaml", "svc", t.traefik_service, ns),
        _capture(host, "host-tls-secret.yaml", "secret", TLS_SECRET, ns),
        _capture(virtual, "clusterissuers.yaml", "clusterissuers"),
        _capture(virtual, "certificates.yaml", "certificates", all_namespaces=True),
        ResourceCapture(
            selector=ResourceRef("secret", t.kubeconfig_secret, ns, kubectl=host.describe()),
            path="k3k-kubeconfig.yaml",
            read=t.kubeconfig_path.read_text,
        ),
    ]
    return BackupManifest(
        captures=captures,
        files=template_paths(),
        job=operator_backup_job(settings, virtual, timestamp=timestamp, delay=delay),
        preflight=cluster_preflight(settings, host, virtual),
    )


# ---------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------
def _restore_item(kube: IKube, path: str, kind: str, name: str, namespace: str, fallback=None) -> RestoreItem:
    return RestoreItem(
        path=path,
        selector=ResourceRef(kind, name, namespace, kubectl=kube.describe()),
        exists=lambda: kube.exists(kind, name, namespace=namespace),
        apply=kube.apply,
        fallback=fallback,
    )


def restore_target(settings: Settings, *, host: IKube, virtual: IKube, delay: float = 5.0) -> RestoreTarget:
    t = settings.target
    ns = t.namespace
    cluster_ready = cluster_preflight(settings, host, virtual)

    def preflight() -> None:
        cluster_ready()
        if not virtual.exists("deployment", "rancher", namespace=CATTLE_NS):
            raise PreflightError(
                "Rancher deployment not found inside the k3k cluster; run deploy first, "
                "then re-run restore with --operator-restore",
                hint=f"{virtual.describe()} get deployment rancher -n {CATTLE_NS}",
            )

    def copy_tls() -> None:
        source = virtual.get_json("secret", TLS_SECRET, namespace=CATTLE_NS)
        data = (source or {}).get("data") or {}
        if not data.get("tls.crt") or not data.get("tls.key"):
            raise KubectlError(f"secret {TLS_SECRET} not found in {CATTLE_NS} of the k3k cluster")
        host.apply_objects([
            resources.tls_secret(TLS_SECRET, ns, cert_b64=data["tls.crt"], key_b64=data["tls.key"])
        ])

    return RestoreTarget(
        name="restore",
        preflight=preflight,
        items=[
            _restore_item(host, "host-ingress.yaml", "ingress", t.ingress_name, ns),
            _restore_item(host, "host-service.yaml", "svc", t.traefik_service, ns),
            _restore_item(host, "host-tls-secret.yaml", "secret", TLS_SECRET, ns, fallback=copy_tls),
        ],
        gates=[accessors.deployment_available(virtual, "rancher", CATTLE_NS, max_attempts=60, delay=delay)],
    )


def ready_or_message(virtual: IKube, kind: str, name: str) -> Callable[[], Optional[str]]:
    """Observes "True" once Ready, otherwise the Ready condition's message."""

    def _get() -> Optional[str]:
        status = virtual.get_field(kind, name, READY_STATUS)
        if status == "True":
            return status
        return virtual.get_field(kind, name, READY_MESSAGE) or status

    return _get


def operator_restore_job(
    settings: Settings,
    virtual: IKube,
    *,
    backup_filename: str,
    timestamp: str,
    delay: float = 5.0,
) -> OperatorJob:
    name = f"restore-{timestamp}"
    b = settings.backup
    prefix = virtual.describe()

    def preflight() -> None:
        if not virtual.exists("crd", RESTORE_CRD):
            raise PreflightError(
                "rancher-backup operator CRDs not found; install the rancher-backup operator first",
                hint=f"{prefix} get crd {RESTORE_CRD}",
            )
        if virtual.deployment_available(OPERATOR_DEPLOYMENT, OPERATOR_NS) != "True":
            raise PreflightError(
                f"rancher-backup operator deployment not available in {OPERATOR_NS}",
                hint=f"{prefix} get deployment {OPERATOR_DEPLOYMENT} -n {OPERATOR_NS}",
            )
        if not virtual.exists("secret", b.credential_secret, namespace=b.credential_namespace):
            raise PreflightError(
                f"S3 credentials secret '{b.credential_secret}' not found in {b.credential_namespace}",
                hint=f"{prefix} get secret {b.credential_secret} -n {b.credential_namespace}",
            )

    def submit() -> None:
        spec: dict = {"backupFilename": backup_filename}
        if b.s3_endpoint and b.s3_bucket:
            spec["storageLocation"] = s3_location(settings, endpoint=b.s3_endpoint, bucket=b.s3_bucket)
        virtual.apply_objects([
            {
                "apiVersion": "resources.cattle.io/v1",
                "kind": "Restore",
                "metadata": {"name": name},
                "spec": spec,
            }
        ])

    completion = Wait(
        PollSpec(
            target=ResourceRef(RESTORE_CRD, name, kubectl=prefix),
            description=f"operator restore {name} Ready",
            success=("True",),
            failure_patterns=("error", "Error"),
            max_attempts=120,
            delay=delay,
        ),
        ready_or_message(virtual, RESTORE_CRD, name),
    )
    return OperatorJob(
        name=name,
        submit=submit,
        completion=completion,
        preflight=preflight,
        follow_up=[accessors.deployment_available(virtual, "rancher", CATTLE_NS, max_attempts=60, delay=delay)],
    )
