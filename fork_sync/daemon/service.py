"""Dispatcher daemon for fork-sync.

This module provides the long-running dispatcher process:
- Wiring of the cycle, evaluator, job queue and upstream resolver
- Service lifecycle management (start/stop)
- Signal handling for graceful shutdown
"""

import asyncio
import logging
import signal
from typing import Optional

from redis.asyncio import Redis

from fork_sync.config import ForkSyncConfig
from fork_sync.database.connection import dispose_engine
from fork_sync.database.repositories import SqlCandidateRepository
from fork_sync.scheduler.cycle import ChangeDetectionCycle, CycleHandle
from fork_sync.scheduler.evaluator import LinkSyncEvaluator
from fork_sync.scheduler.protocols import CandidateRepository, UpstreamResolver
from fork_sync.store.connection import close_redis, get_redis
from fork_sync.store.job_queue import JobQueue
from fork_sync.upstream import GitHubBranchResolver

logger = logging.getLogger(__name__)


def create_cycle(
    config: ForkSyncConfig,
    job_queue: JobQueue,
    resolver: UpstreamResolver,
    repository: Optional[CandidateRepository] = None,
) -> ChangeDetectionCycle:
    """Create a change detection cycle from configuration.

    Args:
        config: fork-sync configuration
        job_queue: Queue that sync jobs are pushed to
        resolver: Upstream head SHA lookup
        repository: Link storage (defaults to the configured database)

    Returns:
        Configured ChangeDetectionCycle
    """
    if repository is None:
        repository = SqlCandidateRepository()

    scheduler_config = config.scheduler
    evaluator = LinkSyncEvaluator(
        job_queue=job_queue,
        repository=repository,
        resolver=resolver,
        fetch_timeout=scheduler_config.fetch_timeout,
        preserve_sha_on_missing_upstream=scheduler_config.preserve_sha_on_missing_upstream,
    )

    return ChangeDetectionCycle(
        repository=repository,
        evaluator=evaluator,
        staleness=scheduler_config.staleness_delta,
        interval_seconds=scheduler_config.interval_seconds,
        single_flight=scheduler_config.single_flight,
    )


class DispatcherDaemon:
    """Main daemon service for fork-sync.

    Owns the Redis client, the upstream resolver and the cycle handle, and
    tears them down in reverse order on stop.

    Example:
        daemon = DispatcherDaemon(config)

        # Start daemon
        await daemon.start()

        # Run until shutdown signal
        await daemon.run_until_shutdown()

        # Stop daemon
        await daemon.stop()
    """

    def __init__(
        self,
        config: ForkSyncConfig,
        redis: Optional[Redis] = None,
        resolver: Optional[GitHubBranchResolver] = None,
        repository: Optional[CandidateRepository] = None,
    ):
        """Initialize the daemon service.

        Args:
            config: fork-sync configuration
            redis: Redis client (defaults to the shared client)
            resolver: Upstream resolver (defaults to the GitHub API)
            repository: Link storage (defaults to the configured database)
        """
        self._config = config
        self._redis = redis
        self._resolver = resolver
        self._repository = repository
        self._job_queue: Optional[JobQueue] = None
        self._cycle: Optional[ChangeDetectionCycle] = None
        self._handle: Optional[CycleHandle] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start the daemon services.

        1. Ensure the job queue exists
        2. Create the upstream resolver
        3. Schedule the change detection cycle

        Raises:
            QueueError: If the job queue cannot be initialized
        """
        logger.info("Starting fork-sync dispatcher...")

        if self._redis is None:
            self._redis = get_redis(self._config)

        self._job_queue = JobQueue(
            self._redis,
            queue_name=self._config.queue.name,
            namespace=self._config.queue.namespace,
        )
        if await self._job_queue.initialize():
            logger.info(f"Created job queue {self._config.queue.name}")

        if self._resolver is None:
            self._resolver = GitHubBranchResolver(self._config.github)

        self._cycle = create_cycle(
            self._config,
            self._job_queue,
            self._resolver,
            self._repository,
        )
        self._handle = self._cycle.start()

        self._running = True
        logger.info("fork-sync dispatcher started successfully")

    async def stop(self) -> None:
        """Stop the daemon services.

        Stops ticking, waits up to ``scheduler.shutdown_timeout`` for
        running cycles, then closes clients.
        """
        logger.info("Stopping fork-sync dispatcher...")

        self._running = False

        if self._handle:
            self._handle.stop()
            drained = await self._handle.drain(self._config.scheduler.shutdown_timeout)
            if not drained:
                logger.warning("Shutting down with cycles still running")

        if self._resolver:
            try:
                await self._resolver.aclose()
            except Exception as e:
                logger.warning(f"Error closing upstream resolver: {e}")

        try:
            await close_redis()
        except Exception as e:
            logger.warning(f"Error closing Redis client: {e}")

        dispose_engine()
        logger.info("fork-sync dispatcher stopped")

    async def run_until_shutdown(self) -> None:
        """Run daemon until shutdown signal received.

        This method blocks until request_shutdown() is called,
        typically via a signal handler.
        """
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request daemon shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def handle(self) -> Optional[CycleHandle]:
        """Get the cycle handle, or None if not started."""
        return self._handle

    @property
    def job_queue(self) -> Optional[JobQueue]:
        return self._job_queue


async def run_daemon(config: ForkSyncConfig) -> None:
    """Run the dispatcher with signal handling.

    Sets up SIGTERM/SIGINT handlers for graceful shutdown and runs the
    daemon until one of them is received.

    Args:
        config: fork-sync configuration
    """
    daemon = DispatcherDaemon(config)

    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        """Handle shutdown signals.

        Args:
            sig: The signal that was received
        """
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        daemon.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_signal(signal.Signals(signum)))

    try:
        await daemon.start()
        await daemon.run_until_shutdown()
    finally:
        await daemon.stop()
