# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/observers/dispatcher.py
from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Optional
from .events import BaseEvent, new_ctx, now_ts
from .interface import Observer

log = logging.getLogger("rancher_k3k")


class EventBus:
    """
    Fans events out to observers. Carries the run context so emitters only
    pass event-specific fields.
    """

    def __init__(
        self,
        observers: Optional[List[Observer]] = None,
        *,
        command: str = "deploy",
        context: Optional[str] = None,
        run_id: Optional[str] = None,
        clock: Callable[[], str] = now_ts,
    ):
        self._observers = observers or []
        self.run_ctx: Dict[str, Any] = new_ctx(command, context, run_id)
        self._clock = clock

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception as e:
                # observers must not break deploys
                log.debug("observer %s failed on %s: %s",
                          ob.__class__.__name__, event.__class__.__name__, e)

    def publish(self, event_cls: type, **fields: Any) -> None:
        self.emit(event_cls(ts=self._clock(), **self.run_ctx, **fields))
