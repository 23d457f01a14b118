# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/cli/prompts.py
from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import typer

from ..config.loader import build_deploy_config, get_path, set_path
from ..config.models import DeployConfig


@dataclass(frozen=True)
class Question:
    field: str
    text: str
    hide: bool = False
    section: Optional[str] = None


QUESTIONS: List[Question] = [
    Question("method", "Deployment method (k3k/vcluster)"),
    Question("hostname", "Rancher hostname (e.g. rancher.example.com)"),
    Question("bootstrap_password", "Bootstrap password (min 12 chars)", hide=True),
    Question("pvc_size", "PVC size", section="Storage (10Gi base, 50Gi monitoring, 200Gi+ full observability)"),
    Question("storage_class", "Storage class"),
    Question("cert_manager.repo", "cert-manager chart repo", section="Helm chart repositories (Enter for public defaults)"),
    Question("cert_manager.version", "cert-manager version"),
    Question("rancher.repo", "Rancher chart repo"),
    Question("rancher.version", "Rancher version"),
    Question("k3k.repo", "k3k chart repo"),
    Question("k3k.version", "k3k version"),
    Question("credentials.username", "Helm repo username", section="Private repositories (Enter to skip)"),
    Question("credentials.registry", "Private registry URL (e.g. registry.example.com:5000)"),
    Question("credentials.ca_path", "CA certificate path (PEM bundle)"),
    Question("tls_source", "TLS source (rancher/letsEncrypt/secret)"),
]

DEFAULT_BOOTSTRAP_PW = "admin1234567"

PromptFn = Callable[..., Any]
ConfirmFn = Callable[..., bool]


def model_default(dotted: str) -> Any:
    head, _, rest = dotted.partition(".")
    info = DeployConfig.model_fields[head]
    if info.is_required():
        return None
    default = info.get_default(call_default_factory=True)
    if rest:
        return getattr(default, rest, None)
    return default


def _ask(q: Question, current: Any, prompt: PromptFn) -> str:
    default = current if current not in (None, "") else model_default(q.field)
    if q.field == "bootstrap_password" and not default:
        default = DEFAULT_BOOTSTRAP_PW
    kwargs: Dict[str, Any] = {"hide_input": q.hide}
    # "" lets Enter skip optional answers
    kwargs["default"] = "" if default is None else str(default)
    kwargs["show_default"] = not q.hide
    return str(prompt(q.text, **kwargs)).strip()


def summary(cfg: DeployConfig) -> List[str]:
    lines = [
        f"  Method:           {cfg.method}",
        f"  Hostname:         {cfg.hostname}",
        "  Password:         ****",
        f"  PVC Size:         {cfg.pvc_size}",
        f"  Storage Class:    {cfg.storage_class}",
        f"  cert-manager:     {cfg.cert_manager.repo} ({cfg.cert_manager.version})",
        f"  Rancher:          {cfg.rancher.repo} ({cfg.rancher.version})",
    ]
    if cfg.method == "k3k":
        lines.append(f"  k3k:              {cfg.k3k.repo} ({cfg.k3k.version})")
    else:
        lines.append(f"  vCluster:         {cfg.vcluster.repo} ({cfg.vcluster.version})")
    lines.append(f"  TLS Source:       {cfg.tls_source}")
    if cfg.credentials.username:
        lines.append(f"  Repo user:        {cfg.credentials.username}")
    if cfg.credentials.registry:
        lines.append(f"  Registry:         {cfg.credentials.registry}")
    if cfg.credentials.ca_path:
        lines.append(f"  CA Cert:          {cfg.credentials.ca_path}")
    return lines


def collect_deploy_config(
    raw: Mapping[str, Any],
    *,
    interactive: bool,
    prompt: PromptFn = typer.prompt,
    confirm: ConfirmFn = typer.confirm,
    echo: Callable[[str], None] = typer.echo,
) -> Optional[DeployConfig]:
    """
    Ask for every deploy setting, offering configured values as defaults.

    Non-interactive runs take the configuration as is. Returns None when
    the operator declines the summary.
    """
    if not interactive:
        return build_deploy_config(raw)

    data: Dict[str, Any] = copy.deepcopy(dict(raw))
    for q in QUESTIONS:
        if q.section:
            echo("")
            echo(q.section + ":")
        answer = _ask(q, get_path(data, q.field), prompt)
        if answer:
            set_path(data, q.field, answer)
        if q.field == "credentials.username" and answer:
            password = _ask(
                Question("credentials.password", "Helm repo password", hide=True),
                get_path(data, "credentials.password"),
                prompt,
            )
            if password:
                set_path(data, "credentials.password", password)

    cfg = build_deploy_config(data)

    echo("")
    echo("Configuration Summary:")
    for line in summary(cfg):
        echo(line)
    echo("")
    if not confirm("Proceed?", default=True):
        return None
    return cfg
