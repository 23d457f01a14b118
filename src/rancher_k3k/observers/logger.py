# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/observers/logger.py
from __future__ import annotations
import logging
from .events import BaseEvent

# already on the run's log header
_RUN_FIELDS = ("ts", "run_id", "command", "context")


class LoggerObserver:
    """Writes every event into the per-run log file (DEBUG, so --debug shows them too)."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        fields = ", ".join(
            f"{k}={v}" for k, v in event.dict().items() if k not in _RUN_FIELDS and v is not None
        )
        self.logger.debug("[EVENT] %s: %s", event.__class__.__name__, fields)
