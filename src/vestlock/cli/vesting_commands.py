#!/usr/bin/env python3
"""
vestlock CLI Commands - Vesting Ledger Interface

Drives a locally stored vesting deployment:
- Deployment initialization from configuration
- Funding and approving holder balances
- Lock, claim and residual sweep
- Schedule, record, summary and event queries
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from vestlock.config_manager import ConfigManager
from vestlock.core.deployment import (
    VestingDeployment,
    deploy,
    load_deployment,
    save_deployment,
    storage_from_config,
)
from vestlock.core.logging_config import setup_logging
from vestlock.core.metrics import VestingMetrics
from vestlock.core.beneficiary_registry import normalize_address
from vestlock.core.vesting_exceptions import ConfigurationError, UnauthorizedError, VestingError

logger = logging.getLogger(__name__)
console = Console()


def _handle_cli_error(exc: Exception, exit_code: int = 1) -> None:
    """Centralized CLI error handler for consistent messaging/exit codes."""
    logger.error("CLI error: %s", exc, exc_info=True)
    console.print(f"[bold red]Error:[/] {exc}")
    sys.exit(exit_code)


def _format_time(timestamp: int | None) -> str:
    if timestamp is None:
        return "-"
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _emit_json(payload: dict[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def _load(ctx: click.Context) -> VestingDeployment:
    return load_deployment(
        ctx.obj["storage"],
        time_provider=ctx.obj["time_provider"],
        metrics=ctx.obj["metrics"],
    )


def _save(ctx: click.Context, deployment: VestingDeployment) -> None:
    save_deployment(deployment, ctx.obj["storage"])


@click.group()
@click.option(
    "--environment",
    default=None,
    help="Configuration environment (development, staging, production, testnet).",
)
@click.option("--config-dir", type=click.Path(file_okay=False), help="Directory with YAML config files.")
@click.option("--data-dir", type=click.Path(file_okay=False), help="Override storage.data_dir.")
@click.option("--now", "now", type=int, default=None, help="Override the clock (Unix seconds).")
@click.option("--json-output", is_flag=True, help="Output raw JSON")
@click.option("--verbose", is_flag=True, help="Write JSON logs to stderr.")
@click.pass_context
def cli(
    ctx: click.Context,
    environment: str | None,
    config_dir: str | None,
    data_dir: str | None,
    now: int | None,
    json_output: bool,
    verbose: bool,
):
    """vestlock - tranche vesting ledger."""
    overrides = {"storage.data_dir": data_dir} if data_dir else {}
    try:
        config = ConfigManager(environment=environment, config_dir=config_dir, cli_overrides=overrides)
    except ConfigurationError as exc:
        _handle_cli_error(exc)

    setup_logging(
        name="vestlock",
        log_file=config.logging.log_file or None,
        level=config.logging.level,
        environment=config.logging.environment,
        enable_console=verbose,
        enable_file=bool(config.logging.enable_file),
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["storage"] = storage_from_config(config)
    ctx.obj["json_output"] = json_output
    ctx.obj["time_provider"] = (lambda: now) if now is not None else None
    ctx.obj["metrics"] = VestingMetrics() if config.metrics.enabled else None


@cli.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing deployment.")
@click.pass_context
def init_deployment(ctx: click.Context, force: bool):
    """
    Create a new deployment from configuration.

    Example:
        vestlock init
    """
    storage = ctx.obj["storage"]
    if storage.exists() and not force:
        _handle_cli_error(click.ClickException("Deployment already exists (use --force to replace it)"))

    try:
        deployment = deploy(ctx.obj["config"], time_provider=ctx.obj["time_provider"])
        checksum = save_deployment(deployment, storage)
    except VestingError as exc:
        _handle_cli_error(exc)

    if ctx.obj["json_output"]:
        _emit_json(
            {
                "token": deployment.token.address,
                "custody": deployment.custody.custody_address,
                "checksum": checksum,
            }
        )
        return

    console.print(
        Panel.fit(
            f"Token: [cyan]{deployment.token.symbol}[/] {deployment.token.address}\n"
            f"Custody: {deployment.custody.custody_address}\n"
            f"Beneficiaries: {len(deployment.ledger.registry)}",
            title="Deployment created",
            border_style="green",
        )
    )


@cli.command("schedule")
@click.pass_context
def show_schedule(ctx: click.Context):
    """Show release checkpoints and the plan each belongs to."""
    try:
        ledger = _load(ctx).ledger
    except VestingError as exc:
        _handle_cli_error(exc)

    checkpoints = ledger.schedule.to_list()
    if ctx.obj["json_output"]:
        _emit_json(
            {
                "checkpoints": checkpoints,
                "sweep_time": ledger.schedule.sweep_time(ledger.grace_period),
            }
        )
        return

    table = Table(title="Release Schedule", box=box.ROUNDED)
    table.add_column("#", justify="right")
    table.add_column("Unlock time")
    table.add_column("Short plan", justify="right")
    table.add_column("Long plan", justify="right")
    for index, stamp in enumerate(checkpoints):
        table.add_row(
            str(index + 1),
            _format_time(stamp),
            "20%" if index < 5 else "-",
            "10%",
        )
    console.print(table)
    console.print(f"Residual sweep allowed from {_format_time(ledger.schedule.sweep_time(ledger.grace_period))}")


@cli.command("status")
@click.pass_context
def show_status(ctx: click.Context):
    """Show ledger totals and custody balance."""
    try:
        summary = _load(ctx).ledger.summary()
    except VestingError as exc:
        _handle_cli_error(exc)

    if ctx.obj["json_output"]:
        _emit_json(summary)
        return

    table = Table(title="Vesting Ledger", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    for key in ("beneficiary_count", "total_locked", "total_claimed", "custody_balance"):
        table.add_row(key.replace("_", " ").title(), f"{summary[key]:,}")
    table.add_row("First Unlock", _format_time(summary["first_unlock"]))
    table.add_row("Final Unlock", _format_time(summary["final_unlock"]))
    table.add_row("Sweep Time", _format_time(summary["sweep_time"]))
    console.print(table)


@cli.command("record")
@click.argument("address")
@click.pass_context
def show_record(ctx: click.Context, address: str):
    """Show a beneficiary's locked, claimed and claimable amounts."""
    try:
        ledger = _load(ctx).ledger
    except VestingError as exc:
        _handle_cli_error(exc)

    view = ledger.get_record(address)
    if view is None:
        _handle_cli_error(click.ClickException(f"No vesting record for {address}"))

    payload = {
        **view.to_dict(),
        "claimable": ledger.claimable_amount(address),
        "next_unlock": ledger.next_unlock_time(address),
    }
    if ctx.obj["json_output"]:
        _emit_json(payload)
        return

    table = Table(title=f"Record {view.beneficiary}", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Plan", view.plan_type.value)
    table.add_row("Locked", f"{view.total_locked:,}")
    table.add_row("Claimed", f"{view.total_claimed:,}")
    table.add_row("Claimable now", f"{payload['claimable']:,}")
    table.add_row("Next unlock", _format_time(payload["next_unlock"]))
    console.print(table)


@cli.command("fund")
@click.argument("holder")
@click.argument("amount", type=int)
@click.option("--caller", required=True, help="Token owner (the administrator).")
@click.pass_context
def fund_holder(ctx: click.Context, holder: str, amount: int, caller: str):
    """Mint AMOUNT base units of the vested token to HOLDER."""
    try:
        deployment = _load(ctx)
        deployment.token.mint(caller, holder, amount)
        _save(ctx, deployment)
    except VestingError as exc:
        _handle_cli_error(exc)

    balance = deployment.token.balance_of(holder)
    if ctx.obj["json_output"]:
        _emit_json({"holder": holder.lower(), "minted": amount, "balance": balance})
        return
    console.print(f"[green]Minted[/] {amount:,} to {holder} (balance {balance:,})")


@cli.command("approve")
@click.argument("holder")
@click.argument("amount", type=int)
@click.option("--caller", required=True, help="Signing identity; must be HOLDER.")
@click.pass_context
def approve_custody(ctx: click.Context, holder: str, amount: int, caller: str):
    """Let custody pull up to AMOUNT from HOLDER."""
    try:
        if normalize_address(caller) != normalize_address(holder):
            raise UnauthorizedError("Only the holder can approve custody on its own balance")
        deployment = _load(ctx)
        deployment.token.approve(holder, deployment.custody.custody_address, amount)
        _save(ctx, deployment)
    except VestingError as exc:
        _handle_cli_error(exc)

    if ctx.obj["json_output"]:
        _emit_json({"holder": holder.lower(), "allowance": amount})
        return
    console.print(f"[green]Approved[/] custody to pull {amount:,} from {holder}")


@cli.command("lock")
@click.argument("beneficiary")
@click.argument("amount", type=int)
@click.pass_context
def lock_tokens(ctx: click.Context, beneficiary: str, amount: int):
    """Lock AMOUNT base units for BENEFICIARY."""
    try:
        deployment = _load(ctx)
        deployment.ledger.lock(beneficiary, amount)
        _save(ctx, deployment)
    except VestingError as exc:
        _handle_cli_error(exc)

    view = deployment.ledger.get_record(beneficiary)
    if ctx.obj["json_output"]:
        _emit_json({"locked": amount, "record": view.to_dict()})
        return
    console.print(
        f"[green]Locked[/] {amount:,} for {view.beneficiary} "
        f"(total {view.total_locked:,}, {view.plan_type.value} plan)"
    )


@cli.command("claim")
@click.argument("beneficiary")
@click.pass_context
def claim_tokens(ctx: click.Context, beneficiary: str):
    """Claim everything BENEFICIARY is entitled to so far."""
    try:
        deployment = _load(ctx)
        released = deployment.ledger.claim(beneficiary)
        _save(ctx, deployment)
    except VestingError as exc:
        _handle_cli_error(exc)

    view = deployment.ledger.get_record(beneficiary)
    if ctx.obj["json_output"]:
        _emit_json({"released": released, "record": view.to_dict()})
        return
    console.print(
        f"[green]Released[/] {released:,} to {view.beneficiary} "
        f"({view.total_claimed:,} of {view.total_locked:,} claimed)"
    )


@cli.command("sweep")
@click.option("--caller", required=True, help="Administrator address.")
@click.option("--destination", required=True, help="Recipient of the residual custody balance.")
@click.option("--yes", is_flag=True, help="Skip confirmation.")
@click.pass_context
def sweep_residual(ctx: click.Context, caller: str, destination: str, yes: bool):
    """Sweep the entire custody balance after the grace period."""
    if not yes and not ctx.obj["json_output"]:
        click.confirm(
            "This transfers ALL custody funds, including unclaimed entitlement. Continue?",
            abort=True,
        )
    try:
        deployment = _load(ctx)
        swept = deployment.ledger.withdraw_residual(caller, destination)
        _save(ctx, deployment)
    except VestingError as exc:
        _handle_cli_error(exc)

    if ctx.obj["json_output"]:
        _emit_json({"swept": swept, "destination": destination.lower()})
        return
    console.print(f"[yellow]Swept[/] {swept:,} to {destination}")


@cli.command("events")
@click.option("--limit", default=20, show_default=True, help="Number of most recent events to show")
@click.pass_context
def list_events(ctx: click.Context, limit: int):
    """Show the lock/claim/sweep audit trail."""
    try:
        events = _load(ctx).ledger.events[-limit:] if limit > 0 else []
    except VestingError as exc:
        _handle_cli_error(exc)

    if ctx.obj["json_output"]:
        _emit_json({"events": [event.to_dict() for event in events]})
        return

    table = Table(title="Vesting Events", box=box.ROUNDED)
    table.add_column("Time")
    table.add_column("Type", style="cyan")
    table.add_column("Address")
    table.add_column("Amount", justify="right")
    for event in events:
        table.add_row(_format_time(event.timestamp), event.event_type, event.address, f"{event.amount:,}")
    console.print(table)


@cli.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8080, show_default=True, type=int)
@click.pass_context
def serve_api(ctx: click.Context, host: str, port: int):
    """Serve the read-only vesting API over HTTP."""
    from vestlock.api import create_app

    try:
        deployment = _load(ctx)
    except VestingError as exc:
        _handle_cli_error(exc)

    metrics = ctx.obj["metrics"]
    config = ctx.obj["config"]
    if metrics is not None:
        metrics.start_server(int(config.metrics.port))
    create_app(deployment.ledger, metrics).run(host=host, port=port)
