"""CLI entry point.

Usage:
    unseenmail --config accounts.yaml            # watch until terminated
    unseenmail --config accounts.yaml --check    # validate config and exit
    unseenmail --config accounts.toml --dry-run  # log instead of notifying
    python -m unseenmail --config accounts.yaml

Signals while running:
    SIGINT/SIGTERM  stop all watchers and exit 0
    SIGUSR1         re-check every mailbox immediately
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from pathlib import Path

import click

from . import conventions
from .config import load_config
from .errors import ConfigError
from .fleet import Fleet
from .startup import setup_logging

logger = logging.getLogger(__name__)


async def _serve(fleet: Fleet) -> None:
    """Run the fleet with signal handlers installed."""
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(fleet.run())
    stopping = False
    installed: list[int] = []

    def _stop(signum: int) -> None:
        nonlocal stopping
        logger.info("Received signal %d, shutting down...", signum)
        stopping = True
        task.cancel()

    def _install(signum: int, callback, *args) -> None:
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, callback, *args)
            installed.append(signum)

    for signum in (signal.SIGINT, signal.SIGTERM):
        _install(signum, _stop, signum)
    if hasattr(signal, "SIGUSR1"):
        _install(signal.SIGUSR1, fleet.wake_all)

    try:
        await task
    except asyncio.CancelledError:
        if not stopping:
            raise
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)


@click.command(conventions.PACKAGE_NAME)
@click.option(
    "--config",
    "-c",
    "config_file",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Accounts file (YAML, or TOML with a .toml suffix)",
)
@click.option(
    "--log-file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write JSON logs to this file",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.option("--dry-run", is_flag=True, help="Log notifications instead of sending")
@click.option("--check", is_flag=True, help="Validate the config file and exit")
@click.version_option(package_name=conventions.PACKAGE_NAME)
def main(
    config_file: Path,
    log_file: Path | None,
    verbose: bool,
    dry_run: bool,
    check: bool,
) -> None:
    """Watch IMAP mailboxes and push an ntfy notification for new mail."""
    try:
        config = load_config(config_file)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1) from None

    if check:
        click.echo(f"{config_file}: {len(config.accounts)} account(s)")
        for account in config.accounts:
            click.echo(
                f"  {account.name}: {account.username}@{account.server}:"
                f"{account.port}/{account.mailbox} -> "
                f"{account.ntfy_url.rstrip('/')}/{account.ntfy_topic}"
            )
        return

    setup_logging(log_file, logging.DEBUG if verbose else logging.INFO)
    asyncio.run(_serve(Fleet(config, dry_run=dry_run)))
