"""fork-sync status command - look up the recorded outcome of a sync."""

import asyncio
from typing import Any, Optional

import typer

from fork_sync.cli.error_handler import handle_errors
from fork_sync.cli.exit_codes import ExitCode
from fork_sync.cli.output import console, print_json
from fork_sync.config import ForkSyncConfig, get_config
from fork_sync.store.connection import close_redis, get_redis
from fork_sync.store.status_store import StatusStore


async def _lookup(config: ForkSyncConfig, status_id: str, show_sensitive: bool) -> Optional[Any]:
    store = StatusStore(
        get_redis(config),
        key_prefix=config.status.key_prefix,
        default_ttl=config.status.ttl_seconds,
    )
    try:
        return await store.get(status_id, hide_sensitive=not show_sensitive)
    finally:
        await close_redis()


@handle_errors
def status(
    status_id: str = typer.Argument(..., help="Webhook/status id to look up."),
    show_sensitive: bool = typer.Option(
        False,
        "--show-sensitive",
        help="Include tokens and secrets in the output.",
    ),
) -> None:
    """Show the status record stored for an id.

    Example:
        fork-sync status 3f2a9c...
    """
    config = get_config()
    record = asyncio.run(_lookup(config, status_id, show_sensitive))

    if record is None:
        console.print(f"[yellow]No status recorded for {status_id}[/yellow] (missing or expired)")
        raise typer.Exit(code=ExitCode.NOT_FOUND)

    print_json(record)
