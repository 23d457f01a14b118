# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/deploy/executor.py
from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence

from ..errors import ActionError, PostconditionFailed, PostconditionTimeout, StepError
from ..observers.dispatcher import EventBus
from ..observers.events import (
    RunSummary,
    StepApplied,
    StepFailed,
    StepSkipped,
    StepStarted,
    WaitFailed,
    WaitStarted,
    WaitSucceeded,
)
from .poller import PollResult, PollSpec, PollStatus, wait_for
from .steps import Check, DeploymentStep, RunReport, StepOutcome, StepState, Wait

log = logging.getLogger("rancher_k3k")


def observe(
    step: str,
    wait: Wait,
    *,
    bus: EventBus,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """Poll one wait-point and publish its lifecycle. Never raises."""
    spec = wait.spec
    bus.publish(
        WaitStarted,
        step=step,
        target=str(spec.target),
        description=spec.description,
        max_attempts=spec.max_attempts,
    )
    log.info("[%s] waiting for %s", step, spec.description)

    result = wait_for(spec, wait.accessor, sleep=sleep)
    if result.ok:
        bus.publish(WaitSucceeded, step=step, description=spec.description, attempts=result.attempts)
    else:
        bus.publish(
            WaitFailed,
            step=step,
            description=spec.description,
            status=result.status.value,
            last_observed=result.last_observed,
        )
    return result


def raise_for(step: str, spec: PollSpec, result: PollResult) -> None:
    """Turn an unsuccessful poll into the matching postcondition error."""
    if result.ok:
        return
    hint = spec.target.inspect_command()
    if result.status is PollStatus.OBSERVED_FAILURE:
        raise PostconditionFailed(
            f"{spec.description}: failure reported by {spec.target}",
            step=step,
            last_observed=result.last_observed,
            hint=hint,
        )
    message = result.message or f"{spec.description} timed out"
    if result.errors:
        message += f" (last error: {result.errors[-1]})"
    raise PostconditionTimeout(message, step=step, last_observed=result.last_observed, hint=hint)


def await_condition(
    step: str,
    wait: Wait,
    *,
    bus: EventBus,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    result = observe(step, wait, bus=bus, sleep=sleep)
    raise_for(step, wait.spec, result)
    return result


def _await(
    step: DeploymentStep,
    wait: Wait,
    outcome: StepOutcome,
    bus: EventBus,
    sleep: Callable[[float], None],
) -> None:
    result = observe(step.name, wait, bus=bus, sleep=sleep)
    outcome.last_observed = result.last_observed
    raise_for(step.name, wait.spec, result)


def _run_one(
    step: DeploymentStep,
    outcome: StepOutcome,
    bus: EventBus,
    sleep: Callable[[float], None],
) -> None:
    try:
        check = step.precondition()
    except Exception as e:
        raise ActionError(f"precondition check failed: {e}", step=step.name, hint=step.inspect_hint()) from e
    outcome.check = check
    bus.publish(StepStarted, name=step.name, check=check.value)

    if check is Check.SATISFIED:
        outcome.state = StepState.SKIPPED
        bus.publish(StepSkipped, name=step.name)
        log.info("[%s] already in place, skipping", step.name)
        return

    outcome.state = StepState.RUNNING
    verb = "upgrading" if check is Check.OUTDATED else "installing"
    log.info("[%s] %s: %s", step.name, verb, step.description)
    t0 = time.time()
    try:
        step.action(check)
    except StepError:
        raise
    except Exception as e:
        raise ActionError(str(e), step=step.name, hint=step.inspect_hint()) from e

    outcome.state = StepState.WAITING
    for wait in step.waits:
        _await(step, wait, outcome, bus, sleep)

    outcome.duration_ms = int((time.time() - t0) * 1000)
    outcome.state = StepState.COMPLETE
    bus.publish(StepApplied, name=step.name, upgrade=check is Check.OUTDATED, duration_ms=outcome.duration_ms)


def run_steps(
    steps: Sequence[DeploymentStep],
    *,
    bus: Optional[EventBus] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RunReport:
    """
    Run steps strictly in order. The first failure halts the run; steps
    already applied are left in place so a re-run resumes from live state.
    """
    bus = bus or EventBus()
    report = RunReport()

    for step in steps:
        outcome = StepOutcome(name=step.name)
        report.add(outcome)
        try:
            _run_one(step, outcome, bus, sleep)
        except StepError as e:
            outcome.state = StepState.FAILED
            outcome.error = str(e)
            if e.last_observed is not None:
                outcome.last_observed = e.last_observed
            bus.publish(StepFailed, name=step.name, error=str(e), last_observed=outcome.last_observed)
            log.error("[%s] failed: %s", step.name, e)
            report.error = e
            break

    _summarize(report, bus)
    return report


def _summarize(report: RunReport, bus: EventBus) -> None:
    bus.publish(
        RunSummary,
        complete=report.count(StepState.COMPLETE),
        skipped=report.count(StepState.SKIPPED),
        failed=report.count(StepState.FAILED),
    )
    log.info("run summary: %s", report.summary())
