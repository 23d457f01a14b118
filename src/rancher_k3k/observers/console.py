# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/observers/console.py
import typer

from .events import BaseEvent

_HIDDEN = ("ts", "run_id", "command", "context")


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        color = typer.colors.RED if k.endswith("Failed") else None
        typer.secho(
            f"[{d['ts']}] {k} "
            + " ".join(f"{x}={y}" for x, y in d.items() if x not in _HIDDEN and y is not None),
            fg=color,
        )
