# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/deploy/steps.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from ..errors import StepError
from .poller import Accessor, PollSpec


class Check(str, Enum):
    """Verdict of a step's precondition against live state."""

    ABSENT = "ABSENT"          # install
    OUTDATED = "OUTDATED"      # exists, parameters differ: apply as upgrade
    SATISFIED = "SATISFIED"    # exists and up to date: skip


class StepState(str, Enum):
    PENDING = "PENDING"
    SKIPPED = "SKIPPED"
    RUNNING = "RUNNING"
    WAITING = "WAITING"
    COMPLETE = "COMPLETE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class Wait:
    spec: PollSpec
    accessor: Accessor


@dataclass
class DeploymentStep:
    name: str
    description: str
    precondition: Callable[[], Check]
    action: Callable[[Check], None]
    waits: List[Wait] = field(default_factory=list)
    hint: Optional[str] = None

    def inspect_hint(self) -> Optional[str]:
        """What to run by hand when the step fails outside a wait."""
        if self.hint:
            return self.hint
        if self.waits:
            return self.waits[0].spec.target.inspect_command()
        return None


@dataclass
class StepOutcome:
    name: str
    state: StepState = StepState.PENDING
    check: Optional[Check] = None
    error: Optional[str] = None
    last_observed: Optional[str] = None
    duration_ms: int = 0


@dataclass
class RunReport:
    outcomes: List[StepOutcome] = field(default_factory=list)
    error: Optional[StepError] = None

    def add(self, outcome: StepOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, state: StepState) -> int:
        return sum(1 for o in self.outcomes if o.state is state)

    @property
    def failed(self) -> Optional[StepOutcome]:
        for o in self.outcomes:
            if o.state is StepState.FAILED:
                return o
        return None

    @property
    def ok(self) -> bool:
        return self.failed is None

    def summary(self) -> str:
        return (
            f"COMPLETE={self.count(StepState.COMPLETE)} "
            f"SKIPPED={self.count(StepState.SKIPPED)} "
            f"FAILED={self.count(StepState.FAILED)}"
        )
