"""Click commands.

Exit codes: 0 on success, 1 on any validation or execution failure.  The
failure detail (stage, offending identities, identities already migrated)
is printed to stderr so a re-run can be judged safely.
"""

from __future__ import annotations

import asyncio
import signal
import sys

import click

from capimove import __version__
from capimove.client import MoveClient
from capimove.config import load_config
from capimove.errors import MoveError, RelocationError
from capimove.models.options import Kubeconfig, MoveOptions
from capimove.models.plan import MovePlan
from capimove.observability.logging import get_logger, setup_logging


@click.group()
@click.version_option(__version__, prog_name="capimove")
def cli() -> None:
    """Relocate Cluster API objects between management clusters."""


@cli.command()
@click.option("--kubeconfig", default="", help="Source management cluster kubeconfig (default loading rules if empty).")
@click.option("--kubeconfig-context", default="", help="Context within the source kubeconfig.")
@click.option("--to-kubeconfig", default="", help="Target management cluster kubeconfig.")
@click.option("--to-kubeconfig-context", default="", help="Context within the target kubeconfig.")
@click.option("-n", "--namespace", default="", help="Namespace to move; all namespaces if empty.")
@click.option("--dry-run", is_flag=True, help="Compute and print the move plan without changing anything.")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Override CAPIMOVE_LOG_LEVEL.",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "console"]),
    default=None,
    help="Override CAPIMOVE_LOG_FORMAT.",
)
def move(
    kubeconfig: str,
    kubeconfig_context: str,
    to_kubeconfig: str,
    to_kubeconfig_context: str,
    namespace: str,
    dry_run: bool,
    log_level: str | None,
    log_format: str | None,
) -> None:
    """Move all Cluster API objects in a namespace to another management cluster."""
    config = load_config()
    if log_level:
        config.log.level = log_level
    if log_format:
        config.log.format = log_format
    setup_logging(config.log)

    if not dry_run and not to_kubeconfig:
        raise click.UsageError("--to-kubeconfig is required unless --dry-run is set")

    options = MoveOptions(
        from_kubeconfig=Kubeconfig(path=kubeconfig, context=kubeconfig_context),
        to_kubeconfig=Kubeconfig(path=to_kubeconfig, context=to_kubeconfig_context) if to_kubeconfig else None,
        namespace=namespace,
        dry_run=dry_run,
    )
    client = MoveClient(config=config)

    try:
        plan = asyncio.run(_run(client, options))
    except MoveError as exc:
        _report_failure(exc)
        sys.exit(1)

    _print_plan(plan)


async def _run(client: MoveClient, options: MoveOptions) -> MovePlan:
    """Run the move with SIGINT/SIGTERM wired to the cancellation event."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    log = get_logger("cli")

    def _request_cancel() -> None:
        if not cancel_event.is_set():
            log.warning("cancellation_requested", detail="stopping at the next safe point")
            cancel_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _request_cancel)
    try:
        return await client.move(options, cancel_event=cancel_event)
    finally:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.remove_signal_handler(sig)


def _print_plan(plan: MovePlan) -> None:
    header = "Move plan (dry run)" if plan.dry_run else "Moved"
    click.echo(f"{header}: {plan.node_count} objects in {len(plan.waves)} waves")
    for wave in plan.waves:
        click.echo(f"  wave {wave.index}: " + ", ".join(str(identity) for identity in wave.identities))
    for identity in plan.orphans:
        click.echo(f"  orphan (moved as independent root): {identity}")
    for ref in plan.deferred:
        click.echo(f"  deferred reference: {ref.source} {ref.field_path} -> {ref.target}")


def _report_failure(exc: MoveError) -> None:
    click.echo(f"Error: move failed during {exc.stage}: {exc.message}", err=True)
    for identity in exc.identities:
        click.echo(f"  offending: {identity}", err=True)
    for identity in exc.migrated:
        click.echo(f"  migrated: {identity}", err=True)
    if isinstance(exc, RelocationError):
        for identity in exc.remaining:
            click.echo(f"  remaining on source: {identity}", err=True)
