# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/report.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ItemFailure:
    item: str
    error: str
    hint: Optional[str] = None


@dataclass
class Report:
    """
    Per-item results of a best-effort operation (backup, restore, destroy).

    Nothing recorded here stops a run; fatal problems are raised instead.
    """

    captured: List[str] = field(default_factory=list)
    restored: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    failures: List[ItemFailure] = field(default_factory=list)
    artifact: Optional[str] = None

    def fail(self, item: str, error: str, hint: Optional[str] = None) -> None:
        self.failures.append(ItemFailure(item=item, error=error, hint=hint))

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def failed_items(self) -> List[str]:
        return [f.item for f in self.failures]

    @property
    def clean(self) -> bool:
        return not self.failures and not self.warnings

    def summary(self) -> str:
        return (
            f"CAPTURED={len(self.captured)} RESTORED={len(self.restored)} "
            f"SKIPPED={len(self.skipped)} REMOVED={len(self.removed)} "
            f"WARNINGS={len(self.warnings)} "
            f"FAILED={len(self.failures)}"
        )

    def lines(self) -> List[str]:
        out = [self.summary()]
        if self.artifact:
            out.append(f"artifact: {self.artifact}")
        for w in self.warnings:
            out.append(f"WARN  {w}")
        for f in self.failures:
            line = f"FAIL  {f.item}: {f.error}"
            if f.hint:
                line += f"  (inspect: {f.hint})"
            out.append(line)
        return out
