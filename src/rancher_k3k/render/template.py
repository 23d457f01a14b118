# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/render/template.py
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Union

from ..errors import RenderError

TOKEN_RE = re.compile(r"__[A-Z][A-Z0-9_]*__")

MANIFESTS_DIR = Path(__file__).resolve().parent.parent / "manifests"


@dataclass(frozen=True)
class Replace:
    """Substitute the token with `text`. Extra lines keep the placeholder's indentation."""

    text: str


@dataclass(frozen=True)
class Delete:
    """Drop every line that contains the token."""


Resolution = Union[Replace, Delete]
TemplateContext = Mapping[str, Resolution]


def _check_tokens(context: TemplateContext) -> None:
    for token, resolution in context.items():
        if not TOKEN_RE.fullmatch(token):
            raise ValueError(f"invalid placeholder token {token!r}")
        if not isinstance(resolution, (Replace, Delete)):
            raise TypeError(f"token {token} has no resolution policy: {resolution!r}")


def _indent_of(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def render(lines: Iterable[str], context: TemplateContext, *, strict: bool = False) -> List[str]:
    """
    Resolve placeholder tokens in a single pass.

    Lines holding a Delete token are dropped. Replace tokens are substituted
    in place; multi-line values continue at the placeholder line's
    indentation. Unknown tokens pass through unless `strict`. Only whole
    tokens match: `__A__` does not resolve anything inside `__X__A__`.
    """
    _check_tokens(context)
    unresolved: List[str] = []

    out: List[str] = []
    for line in lines:
        tokens = TOKEN_RE.findall(line)
        if any(isinstance(context.get(t), Delete) for t in tokens):
            continue
        for token in tokens:
            if token not in context and token not in unresolved:
                unresolved.append(token)
        if not any(t in context for t in tokens):
            out.append(line)
            continue
        indent = _indent_of(line)

        def substitute(m: re.Match) -> str:
            resolution = context.get(m.group(0))
            if not isinstance(resolution, Replace):
                return m.group(0)
            return ("\n" + indent).join(resolution.text.split("\n"))

        out.extend(TOKEN_RE.sub(substitute, line).split("\n"))

    if strict and unresolved:
        raise RenderError(
            f"unresolved placeholders: {', '.join(unresolved)}",
            tokens=unresolved,
        )
    return out


def render_text(text: str, context: TemplateContext, *, strict: bool = False) -> str:
    lines = render(text.splitlines(), context, strict=strict)
    rendered = "\n".join(lines)
    if text.endswith("\n") and lines:
        rendered += "\n"
    return rendered


def load_template(name: str) -> str:
    path = MANIFESTS_DIR / name
    if not path.exists():
        raise FileNotFoundError(f"manifest template not found: {path}")
    return path.read_text()


def template_paths() -> List[Path]:
    return sorted(MANIFESTS_DIR.glob("*.yaml"))


def yaml_scalar(value: object) -> str:
    """Double-quoted YAML scalar (JSON strings are valid YAML)."""
    return json.dumps(str(value))
