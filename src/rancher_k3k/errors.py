# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/errors.py
from __future__ import annotations

from typing import Optional


class RancherK3kError(RuntimeError):
    """
    Base class for failures that stop a run.

    `hint` is the exact inspection command an operator should run next.
    """

    def __init__(self, message: str, *, hint: Optional[str] = None):
        super().__init__(message)
        self.hint = hint


class PreflightError(RancherK3kError):
    """Target system missing or not ready. Raised before any mutation."""


class RenderError(RancherK3kError):
    """Strict rendering left placeholders behind."""

    def __init__(self, message: str, *, tokens: list[str], hint: Optional[str] = None):
        super().__init__(message, hint=hint)
        self.tokens = tokens


class StepError(RancherK3kError):
    """A deployment step failed. Carries the step name and last observed state."""

    def __init__(
        self,
        message: str,
        *,
        step: str,
        last_observed: Optional[str] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message, hint=hint)
        self.step = step
        self.last_observed = last_observed


class ActionError(StepError):
    """The external command of a step failed."""


class PostconditionTimeout(StepError):
    """The command was accepted but the expected state never materialised."""


class PostconditionFailed(StepError):
    """The observed state reported an explicit failure."""
