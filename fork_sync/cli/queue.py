"""fork-sync queue commands - inspect the job queue."""

import asyncio
from typing import Any, Dict

import typer

from fork_sync.cli.error_handler import handle_errors
from fork_sync.cli.output import console, print_json, print_key_value
from fork_sync.config import ForkSyncConfig, get_config
from fork_sync.store.connection import close_redis, get_redis
from fork_sync.store.job_queue import JobQueue

app = typer.Typer(help="Inspect the job queue.")


def _queue(config: ForkSyncConfig) -> JobQueue:
    return JobQueue(
        get_redis(config),
        queue_name=config.queue.name,
        namespace=config.queue.namespace,
    )


async def _size(config: ForkSyncConfig) -> int:
    try:
        return await _queue(config).size()
    finally:
        await close_redis()


async def _attributes(config: ForkSyncConfig) -> Dict[str, Any]:
    try:
        return await _queue(config).attributes()
    finally:
        await close_redis()


@app.command("size")
@handle_errors
def size() -> None:
    """Print the number of jobs waiting in the queue.

    Example:
        fork-sync queue size
    """
    config = get_config()
    console.print(asyncio.run(_size(config)))


@app.command("info")
@handle_errors
def info(
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output as JSON.",
    ),
) -> None:
    """Show queue attributes: creation time and message totals.

    Example:
        fork-sync queue info
    """
    config = get_config()
    attributes = asyncio.run(_attributes(config))

    if not attributes:
        console.print(f"[yellow]Queue {config.queue.name} has not been created yet[/yellow]")
        return

    if json_output:
        print_json(attributes)
    else:
        print_key_value(attributes, title=f"Queue {config.queue.name}")
