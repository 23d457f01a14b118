# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    command: str      # deploy/backup/restore/destroy
    context: Optional[str]  # host kube-context

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def now_ts() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_ctx(command: str, context: Optional[str], run_id: Optional[str] = None) -> Dict[str, Any]:
    """Fields shared by every event of one run; `ts` is stamped per event."""
    return {
        "run_id": run_id or str(uuid.uuid4()),
        "command": command,
        "context": context,
    }


# ---------------------------------------------------------------------
# Step lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StepStarted(BaseEvent):
    name: str
    check: str        # ABSENT | OUTDATED | SATISFIED

@dataclass(frozen=True)
class StepSkipped(BaseEvent):
    name: str

@dataclass(frozen=True)
class StepApplied(BaseEvent):
    name: str
    upgrade: bool
    duration_ms: int

@dataclass(frozen=True)
class StepFailed(BaseEvent):
    name: str
    error: str
    last_observed: Optional[str] = None


# ---------------------------------------------------------------------
# Wait lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class WaitStarted(BaseEvent):
    step: str
    target: str
    description: str
    max_attempts: int

@dataclass(frozen=True)
class WaitSucceeded(BaseEvent):
    step: str
    description: str
    attempts: int

@dataclass(frozen=True)
class WaitFailed(BaseEvent):
    step: str
    description: str
    status: str       # "timeout" | "observed-failure"
    last_observed: Optional[str] = None


# ---------------------------------------------------------------------
# Backup / restore
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ItemCaptured(BaseEvent):
    item: str
    path: str

@dataclass(frozen=True)
class ItemRestored(BaseEvent):
    item: str
    action: str       # "applied" | "skipped" | "fallback"

@dataclass(frozen=True)
class ItemFailed(BaseEvent):
    item: str
    error: str

@dataclass(frozen=True)
class JobSubmitted(BaseEvent):
    name: str

@dataclass(frozen=True)
class JobFinished(BaseEvent):
    name: str
    status: str
    artifact: Optional[str] = None


# ---------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunSummary(BaseEvent):
    complete: int
    skipped: int
    failed: int
