# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/backup/coordinator.py
"""
Best-effort backup and idempotent restore of a set of external resources.

Per-item problems land in the Report; only preflight failures and failed
operator restores stop the run.
"""
from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from ..deploy.executor import await_condition, observe
from ..deploy.poller import ResourceRef
from ..deploy.steps import Wait
from ..errors import ActionError, PreflightError
from ..kube.resources import sanitize_yaml
from ..observers.dispatcher import EventBus
from ..observers.events import (
    ItemCaptured,
    ItemFailed,
    ItemRestored,
    JobFinished,
    JobSubmitted,
)
from ..report import Report

log = logging.getLogger("rancher_k3k")

ARTIFACT_FILE = "operator-backup-filename.txt"
# copied files land here so they never collide with capture paths
FILES_DIR = "manifests"


@dataclass(frozen=True)
class ResourceCapture:
    """One selector and the file (relative to the backup dir) it is written to."""

    selector: ResourceRef
    path: str
    read: Callable[[], str]

    @property
    def item(self) -> str:
        return self.path


@dataclass
class OperatorJob:
    """
    A long-running job run by an in-cluster operator (rancher-backup).

    - available: is the operator installed at all (backup skips the job if not)
    - preflight: raises PreflightError when the job cannot run (restore)
    - completion: polled after submit
    - artifact: read once the job succeeded (backup filename)
    - follow_up: dependent waits after success (service restart)
    """

    name: str
    submit: Callable[[], None]
    completion: Wait
    available: Optional[Callable[[], bool]] = None
    preflight: Optional[Callable[[], None]] = None
    artifact: Optional[Callable[[], Optional[str]]] = None
    follow_up: List[Wait] = field(default_factory=list)


@dataclass
class BackupManifest:
    captures: List[ResourceCapture] = field(default_factory=list)
    files: List[Path] = field(default_factory=list)
    job: Optional[OperatorJob] = None
    preflight: Optional[Callable[[], None]] = None


@dataclass(frozen=True)
class RestoreItem:
    """
    A captured resource that restore puts back when it is missing.
    `fallback` rebuilds it from live state when its file is absent.
    """

    path: str
    selector: ResourceRef
    exists: Callable[[], bool]
    apply: Callable[[str], None]
    fallback: Optional[Callable[[], None]] = None

    @property
    def item(self) -> str:
        return self.path


@dataclass
class RestoreTarget:
    name: str
    preflight: Callable[[], None]
    items: List[RestoreItem] = field(default_factory=list)
    gates: List[Wait] = field(default_factory=list)


# ---------------------------------------------------------------------
# Backup
# ---------------------------------------------------------------------
def backup(
    manifest: BackupManifest,
    out_dir: str | Path,
    *,
    bus: Optional[EventBus] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Report:
    bus = bus or EventBus(command="backup")
    out = Path(out_dir)
    report = Report()

    if manifest.preflight:
        manifest.preflight()

    out.mkdir(parents=True, exist_ok=True)
    log.info("[backup] writing to %s", out)

    for capture in manifest.captures:
        dest = out / capture.path
        try:
            dest.write_text(capture.read())
        except Exception as e:
            # collected, never fatal
            log.warning("[backup] %s: %s", capture.item, e)
            report.fail(capture.item, str(e), capture.selector.inspect_command())
            bus.publish(ItemFailed, item=capture.item, error=str(e))
            continue
        report.captured.append(capture.item)
        bus.publish(ItemCaptured, item=capture.item, path=str(dest))
        log.info("[backup] saved %s", capture.path)

    for src in manifest.files:
        src = Path(src)
        item = f"{FILES_DIR}/{src.name}"
        if not src.is_file():
            report.warn(f"file {src} not found, not copied")
            continue
        try:
            (out / FILES_DIR).mkdir(exist_ok=True)
            shutil.copy2(src, out / item)
        except OSError as e:
            report.fail(item, str(e))
            continue
        report.captured.append(item)

    if manifest.job is not None:
        _backup_job(manifest.job, out, report, bus, sleep)

    log.info("[backup] %s", report.summary())
    return report


def _backup_job(
    job: OperatorJob,
    out: Path,
    report: Report,
    bus: EventBus,
    sleep: Callable[[float], None],
) -> None:
    hint = job.completion.spec.target.inspect_command()

    try:
        if job.available is not None and not job.available():
            log.info("[backup] operator for %s not installed, skipping", job.name)
            report.skipped.append(job.name)
            return
        job.submit()
    except Exception as e:
        report.warn(f"operator backup {job.name} could not be submitted: {e}")
        bus.publish(JobFinished, name=job.name, status="not-submitted")
        return

    bus.publish(JobSubmitted, name=job.name)
    result = observe(job.name, job.completion, bus=bus, sleep=sleep)
    if not result.ok:
        report.warn(
            f"operator backup {job.name} did not complete ({result.status.value}, "
            f"last observed {result.last_observed!r}). Check: {hint}"
        )
        bus.publish(JobFinished, name=job.name, status=result.status.value)
        return

    artifact = None
    if job.artifact is not None:
        try:
            artifact = job.artifact()
        except Exception as e:
            report.warn(f"operator backup {job.name} finished but its artifact could not be read: {e}")
    artifact = artifact or "unknown"
    (out / ARTIFACT_FILE).write_text(artifact + "\n")
    report.artifact = artifact
    bus.publish(JobFinished, name=job.name, status=result.status.value, artifact=artifact)
    log.info("[backup] operator backup completed: %s", artifact)


# ---------------------------------------------------------------------
# Restore
# ---------------------------------------------------------------------
def restore(
    in_dir: str | Path,
    target: RestoreTarget,
    operator_job: Optional[OperatorJob] = None,
    *,
    bus: Optional[EventBus] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Report:
    bus = bus or EventBus(command="restore")
    src = Path(in_dir)
    if not src.is_dir():
        raise PreflightError(f"backup directory not found: {src}")

    target.preflight()
    if operator_job is not None and operator_job.preflight is not None:
        operator_job.preflight()

    report = Report()
    for item in target.items:
        _restore_item(item, src, report, bus)

    for wait in target.gates:
        await_condition(target.name, wait, bus=bus, sleep=sleep)

    if operator_job is not None:
        _restore_job(operator_job, report, bus, sleep)

    log.info("[restore] %s", report.summary())
    return report


def _restore_item(item: RestoreItem, src: Path, report: Report, bus: EventBus) -> None:
    hint = item.selector.inspect_command()
    try:
        if item.exists():
            log.info("[restore] %s already present", item.selector)
            report.skipped.append(item.item)
            bus.publish(ItemRestored, item=item.item, action="skipped")
            return

        path = src / item.path
        if path.is_file():
            item.apply(sanitize_yaml(path.read_text()))
            action = "applied"
        elif item.fallback is not None:
            log.info("[restore] %s missing from backup, rebuilding from live state", item.path)
            item.fallback()
            action = "fallback"
        else:
            report.warn(f"{item.path} not in backup and {item.selector} is missing")
            return
    except Exception as e:
        # collected, never fatal
        log.warning("[restore] %s: %s", item.item, e)
        report.fail(item.item, str(e), hint)
        bus.publish(ItemFailed, item=item.item, error=str(e))
        return

    report.restored.append(item.item)
    bus.publish(ItemRestored, item=item.item, action=action)
    log.info("[restore] %s %s", item.item, action)


def _restore_job(job: OperatorJob, report: Report, bus: EventBus, sleep: Callable[[float], None]) -> None:
    try:
        job.submit()
    except Exception as e:
        raise ActionError(
            f"could not submit {job.name}: {e}",
            step=job.name,
            hint=job.completion.spec.target.inspect_command(),
        ) from e
    bus.publish(JobSubmitted, name=job.name)

    result = await_condition(job.name, job.completion, bus=bus, sleep=sleep)
    bus.publish(JobFinished, name=job.name, status=result.status.value)
    log.info("[restore] %s completed", job.name)

    for wait in job.follow_up:
        await_condition(job.name, wait, bus=bus, sleep=sleep)
    report.artifact = job.name
