# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/rancher_k3k/cli/app.py
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from pydantic import ValidationError

from ..backup import coordinator
from ..backup.rancher import backup_manifest, operator_restore_job, restore_target
from ..config.loader import build_deploy_config, build_settings, is_non_interactive, load_raw
from ..config.models import DeployConfig, Settings
from ..deploy import teardown
from ..deploy.executor import run_steps
from ..deploy.rancher import RancherK3kFlow
from ..deploy.rancher import render_manifests as render_k3k
from ..deploy.vcluster import RancherVClusterFlow
from ..deploy.vcluster import render_manifests as render_vcluster
from ..errors import PreflightError, RancherK3kError, StepError
from ..helm.cli_runner import HelmCliRunner
from ..kube.kubectl import KubectlRunner
from ..logging.log import init_logging
from ..observers.console import ConsoleObserver
from ..observers.dispatcher import EventBus
from ..observers.jsonfile import JsonFileObserver
from ..observers.logger import LoggerObserver
from ..report import Report
from . import prompts

# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Rancher on Harvester (k3k / vCluster) deployment CLI")

LOG_DIR = Path.home() / ".rancher-k3k" / "logs"


@app.callback()
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(False, "--debug", help="Show the full kubectl/helm trace on the console"),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", exists=True, dir_okay=False, help="YAML file with deploy settings"
    ),
):
    ctx.obj = {"debug": debug, "config": config}


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _raw(ctx: typer.Context) -> Dict[str, Any]:
    try:
        return load_raw(ctx.obj["config"])
    except ValueError as e:
        typer.secho(f"ERROR: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _validated(build, raw: Dict[str, Any]):
    try:
        return build(raw)
    except ValidationError as e:
        typer.secho(f"ERROR: invalid configuration\n{e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _bus(ctx: typer.Context, command: str, kube_context: Optional[str]) -> EventBus:
    logger, run_id, _ = init_logging(command=command, verbose=ctx.obj["debug"], base_dir=LOG_DIR)
    observers = [
        ConsoleObserver(),
        LoggerObserver(logger),
        JsonFileObserver(LOG_DIR / f"{run_id}.jsonl"),
    ]
    return EventBus(observers, command=command, context=kube_context, run_id=run_id)


def _fail(e: RancherK3kError) -> None:
    typer.secho(f"ERROR: {e}", fg=typer.colors.RED, err=True)
    if isinstance(e, StepError):
        typer.secho(f"  step:          {e.step}", err=True)
        typer.secho(f"  last observed: {e.last_observed or 'nothing'}", err=True)
    if e.hint:
        typer.secho(f"  inspect with:  {e.hint}", err=True)
    raise typer.Exit(1)


def _print_report(report: Report) -> None:
    for line in report.lines():
        color = typer.colors.YELLOW if line.startswith(("WARN", "FAIL")) else None
        typer.secho(line, fg=color)


def _host(settings: Settings) -> KubectlRunner:
    host = KubectlRunner(context=settings.target.kube_context)
    if not host.reachable():
        _fail(PreflightError("cannot connect to the host cluster", hint=f"{host.describe()} cluster-info"))
    return host


def _timestamp() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S")


def _confirm(question: str, *, default: bool = False) -> bool:
    if is_non_interactive():
        return True
    return typer.confirm(question, default=default)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def deploy(ctx: typer.Context):
    """
    Deploy (or upgrade in place) Rancher. Prompts for every setting; set
    RANCHER_K3K_NONINTERACTIVE=1 to take them from the configuration.
    """
    raw = _raw(ctx)
    try:
        cfg = prompts.collect_deploy_config(raw, interactive=not is_non_interactive())
    except ValidationError as e:
        typer.secho(f"ERROR: invalid configuration\n{e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    if cfg is None:
        typer.echo("Aborted.")
        raise typer.Exit(0)

    bus = _bus(ctx, "deploy", cfg.target.kube_context)
    try:
        host = _host(cfg)
        if cfg.method == "k3k":
            flow = RancherK3kFlow(
                cfg,
                host=host,
                helm=HelmCliRunner(kube_context=cfg.target.kube_context),
                virtual=host.for_kubeconfig(cfg.target.kubeconfig_path),
            )
        else:
            flow = RancherVClusterFlow(cfg, host=host)
        report = run_steps(flow.steps(), bus=bus)
    except RancherK3kError as e:
        _fail(e)
        return

    typer.echo(report.summary())
    if not report.ok:
        _fail(report.error)

    typer.secho("Rancher deployed successfully!", fg=typer.colors.GREEN)
    typer.echo(f"  URL:            https://{cfg.hostname}")
    if cfg.method == "k3k":
        typer.echo(f"  k3k kubeconfig: {cfg.target.kubeconfig_path}")
        typer.echo(f"  export KUBECONFIG={cfg.target.kubeconfig_path}")
        typer.echo("  kubectl --insecure-skip-tls-verify get pods -A")


@app.command()
def render(ctx: typer.Context):
    """Print the rendered manifests without touching any cluster."""
    cfg: DeployConfig = _validated(build_deploy_config, _raw(ctx))
    try:
        manifests = render_k3k(cfg) if cfg.method == "k3k" else render_vcluster(cfg)
    except RancherK3kError as e:
        _fail(e)
        return
    for name, text in manifests.items():
        typer.echo(f"# --- {name}")
        typer.echo(text.rstrip("\n"))


@app.command()
def backup(
    ctx: typer.Context,
    out_dir: Optional[Path] = typer.Argument(None, help="Target directory [./backups/<timestamp>]"),
):
    """Back up the k3k cluster CR, Rancher resources and host ingress."""
    settings: Settings = _validated(build_settings, _raw(ctx))
    ts = _timestamp()
    out = out_dir or Path("backups") / ts

    bus = _bus(ctx, "backup", settings.target.kube_context)
    try:
        host = _host(settings)
        virtual = host.for_kubeconfig(settings.target.kubeconfig_path)
        manifest = backup_manifest(settings, host=host, virtual=virtual, timestamp=ts)
        report = coordinator.backup(manifest, out, bus=bus)
    except RancherK3kError as e:
        _fail(e)
        return

    _print_report(report)
    typer.secho(f"Backup completed: {out}", fg=typer.colors.GREEN)
    typer.echo(f"  To restore: rancher-k3k restore --from {out}")


@app.command()
def restore(
    ctx: typer.Context,
    from_dir: Path = typer.Option(..., "--from", help="Backup directory created by `backup`"),
    operator_restore: Optional[str] = typer.Option(
        None, "--operator-restore", help="rancher-backup archive to restore (e.g. manual-...tar.gz)"
    ),
):
    """Restore host resources from a backup and optionally run an operator restore."""
    if not from_dir.is_dir():
        _fail(PreflightError(f"backup directory not found: {from_dir}"))
    settings: Settings = _validated(build_settings, _raw(ctx))

    typer.echo(f"Restoring from: {from_dir}")
    if operator_restore:
        typer.echo(f"  Operator restore: {operator_restore}")
    typer.echo("  Contents: " + " ".join(sorted(p.name for p in from_dir.iterdir())))
    if not _confirm("Proceed?"):
        typer.echo("Aborted.")
        raise typer.Exit(0)

    bus = _bus(ctx, "restore", settings.target.kube_context)
    try:
        host = _host(settings)
        virtual = host.for_kubeconfig(settings.target.kubeconfig_path)
        target = restore_target(settings, host=host, virtual=virtual)
        job = None
        if operator_restore:
            job = operator_restore_job(settings, virtual, backup_filename=operator_restore, timestamp=_timestamp())
        report = coordinator.restore(from_dir, target, job, bus=bus)
    except RancherK3kError as e:
        _fail(e)
        return

    _print_report(report)
    hostname = virtual.first_ingress_host("cattle-system") or "unknown"
    typer.secho("Restore completed!", fg=typer.colors.GREEN)
    typer.echo(f"  URL: https://{hostname}")
    if not operator_restore:
        typer.echo("  Infrastructure restored. To restore Rancher data, re-run with:")
        typer.echo(f"    rancher-k3k restore --from {from_dir} --operator-restore <backup-filename.tar.gz>")


@app.command()
def destroy(ctx: typer.Context):
    """Remove what deploy created (best effort)."""
    raw = _raw(ctx)
    settings: Settings = _validated(build_settings, raw)
    method = raw.get("method", "k3k")
    if method not in ("k3k", "vcluster"):
        typer.secho(f"ERROR: unknown deploy method {method!r}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    if not _confirm(f"Remove the {method} Rancher deployment?"):
        typer.echo("Aborted.")
        raise typer.Exit(0)

    _bus(ctx, "destroy", settings.target.kube_context)
    host = _host(settings)
    if method == "k3k":
        report = teardown.destroy_k3k(
            settings.target, host=host, helm=HelmCliRunner(kube_context=settings.target.kube_context)
        )
    else:
        report = teardown.destroy_vcluster(host=host)
    _print_report(report)


if __name__ == "__main__":
    app()
