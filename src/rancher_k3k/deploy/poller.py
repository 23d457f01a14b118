# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/deploy/poller.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple

log = logging.getLogger("rancher_k3k")

Accessor = Callable[[], Optional[str]]


@dataclass(frozen=True)
class ResourceRef:
    """Identifies an external resource and how to inspect it by hand."""

    kind: str
    name: Optional[str] = None
    namespace: Optional[str] = None
    kubectl: str = "kubectl"

    def inspect_command(self) -> str:
        cmd = f"{self.kubectl} get {self.kind}"
        if self.name:
            cmd += f" {self.name}"
        if self.namespace:
            cmd += f" -n {self.namespace}"
        return cmd + " -o yaml"

    def __str__(self) -> str:
        where = f" in {self.namespace}" if self.namespace else ""
        return f"{self.kind}/{self.name or '*'}{where}"


@dataclass(frozen=True)
class PollSpec:
    target: ResourceRef
    description: str
    success: Tuple[str, ...] = ("True",)
    failure_patterns: Tuple[str, ...] = ()
    max_attempts: int = 60
    delay: float = 5.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")


class PollStatus(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    OBSERVED_FAILURE = "observed-failure"


@dataclass
class PollResult:
    status: PollStatus
    attempts: int
    last_observed: Optional[str] = None
    message: Optional[str] = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status is PollStatus.SUCCESS


def wait_for(
    spec: PollSpec,
    accessor: Accessor,
    *,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> PollResult:
    """
    Poll `accessor` until it reports a success value, a failure pattern, or
    the attempt budget runs out.

    Exceptions in `retry_on` and a None observation mean "not there yet".
    """
    last: Optional[str] = None
    errors: list[str] = []

    for attempt in range(1, spec.max_attempts + 1):
        try:
            observed = accessor()
        except retry_on as exc:
            observed = None
            errors.append(str(exc))
            log.debug("[poll] %s: attempt %d/%d not ready: %s",
                      spec.description, attempt, spec.max_attempts, exc)
        else:
            if observed is not None:
                last = observed

            if observed is not None and observed in spec.success:
                log.debug("[poll] %s: %s after %d attempt(s)", spec.description, observed, attempt)
                return PollResult(PollStatus.SUCCESS, attempt, last_observed=observed, errors=errors)

            if observed is not None and any(p in observed for p in spec.failure_patterns):
                log.debug("[poll] %s: failure observed: %s", spec.description, observed)
                return PollResult(
                    PollStatus.OBSERVED_FAILURE,
                    attempt,
                    last_observed=observed,
                    message=observed,
                    errors=errors,
                )

            log.debug("[poll] %s: attempt %d/%d observed %r",
                      spec.description, attempt, spec.max_attempts, observed)

        if attempt < spec.max_attempts:
            sleep(spec.delay)

    return PollResult(
        PollStatus.TIMEOUT,
        spec.max_attempts,
        last_observed=last,
        message=f"{spec.description} not reached after {spec.max_attempts} attempts",
        errors=errors,
    )
