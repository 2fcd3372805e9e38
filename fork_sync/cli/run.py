"""fork-sync run commands - one-off cycle and the long-running dispatcher."""

import asyncio
import logging

import typer

from fork_sync.cli.error_handler import handle_errors
from fork_sync.cli.exit_codes import ExitCode
from fork_sync.cli.output import console, print_json, print_key_value
from fork_sync.config import ForkSyncConfig, ensure_directories, get_config
from fork_sync.daemon.service import create_cycle, run_daemon
from fork_sync.database.connection import dispose_engine
from fork_sync.models import CycleResult
from fork_sync.store.connection import close_redis, get_redis
from fork_sync.store.job_queue import JobQueue
from fork_sync.upstream import GitHubBranchResolver

logger = logging.getLogger(__name__)


async def _run_once(config: ForkSyncConfig) -> CycleResult:
    """Run a single cycle against the configured database, Redis and GitHub."""
    redis = get_redis(config)
    resolver = GitHubBranchResolver(config.github)
    try:
        job_queue = JobQueue(
            redis,
            queue_name=config.queue.name,
            namespace=config.queue.namespace,
        )
        await job_queue.initialize()
        cycle = create_cycle(config, job_queue, resolver)
        return await cycle.run_once()
    finally:
        await resolver.aclose()
        await close_redis()
        dispose_engine()


@handle_errors
def once(
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print the cycle summary as JSON.",
    ),
) -> None:
    """Run exactly one change detection cycle and exit.

    Exits with 0 when every candidate was evaluated; upstream lookup
    failures do not count as errors since those links are retried on the
    next run.

    Example:
        fork-sync once
        fork-sync once --json
    """
    config = get_config()
    result = asyncio.run(_run_once(config))

    summary = result.summary()
    if json_output:
        print_json(summary)
    else:
        print_key_value(
            {key.replace("_", " ").capitalize(): value for key, value in summary.items()},
            title="Change detection cycle",
        )

    if not result.success:
        raise typer.Exit(code=ExitCode.CYCLE_FAILED)


@handle_errors
def run_forever() -> None:
    """Run the dispatcher until SIGTERM or SIGINT."""
    config = get_config()
    ensure_directories(config)

    console.print("[bold green]Starting fork-sync dispatcher...[/bold green]")
    logger.info(
        f"Polling every {config.scheduler.interval_seconds}s, "
        f"staleness {config.scheduler.staleness}, queue {config.queue.name}"
    )

    asyncio.run(run_daemon(config))
    console.print("[dim]Dispatcher stopped[/dim]")
