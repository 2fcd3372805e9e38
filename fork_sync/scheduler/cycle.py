"""Change detection cycle.

Every tick the cycle queries the links that are due for a check and
evaluates all of them concurrently. Ticks are driven by APScheduler's
AsyncIOScheduler; each tick runs the cycle as its own asyncio task so
that stopping the schedule never cancels a cycle that is still running.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Set

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MISSED
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from fork_sync.models import (
    CycleResult,
    EvaluationOutcome,
    EvaluationResult,
    utcnow,
)
from fork_sync.scheduler.evaluator import LinkSyncEvaluator
from fork_sync.scheduler.protocols import CandidateRepository

logger = logging.getLogger(__name__)

TICK_JOB_ID = "change-detection-cycle"


class ChangeDetectionCycle:
    """Polls eligible links and dispatches sync jobs for the changed ones.

    Example:
        cycle = ChangeDetectionCycle(repository, evaluator, timedelta(minutes=10))
        result = await cycle.run_once()

        handle = cycle.start()
        ...
        handle.stop()
        await handle.drain()
    """

    def __init__(
        self,
        repository: CandidateRepository,
        evaluator: LinkSyncEvaluator,
        staleness: timedelta,
        interval_seconds: float = 30,
        single_flight: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._evaluator = evaluator
        self.staleness = staleness
        self.interval_seconds = interval_seconds
        self.single_flight = single_flight
        self._clock = clock

    async def run_once(self) -> CycleResult:
        """
        Run a single cycle.

        Never raises: failures of individual candidates are recorded as
        ERROR results, and a failure of the cycle itself (for example the
        candidate query) is recorded on ``CycleResult.error``.

        Returns:
            Aggregate outcome of the cycle
        """
        started_at = self._clock()
        result = CycleResult(started_at=started_at)

        try:
            candidates = await asyncio.to_thread(
                self._repository.find_candidates,
                started_at - self.staleness,
            )

            incomplete = [c for c in candidates if not c.is_syncable]
            for candidate in incomplete:
                logger.warning(f"Skipping link {candidate.id}: disabled or missing upstream/fork fields")
            candidates = [c for c in candidates if c.is_syncable]

            if not candidates:
                logger.debug("No links to update")
                result.completed_at = self._clock()
                return result

            result.candidates = len(candidates)
            logger.info(f"Checking {len(candidates)} links for upstream changes")

            outcomes = await asyncio.gather(
                *(self._evaluator.evaluate(candidate) for candidate in candidates),
                return_exceptions=True,
            )

            for candidate, outcome in zip(candidates, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(f"Error syncing link {candidate.id}: {outcome!r}")
                    result.results.append(EvaluationResult(
                        link_id=candidate.id,
                        outcome=EvaluationOutcome.ERROR,
                        error=str(outcome) or type(outcome).__name__,
                    ))
                else:
                    result.results.append(outcome)

        except Exception as e:
            logger.error(f"Error in syncing job: {e}")
            result.error = str(e) or type(e).__name__

        result.completed_at = self._clock()
        logger.info(
            f"Cycle finished: {result.candidates} candidates, "
            f"{result.enqueued} enqueued, {result.unchanged} unchanged, "
            f"{result.upstream_missing} upstream missing, "
            f"{result.fetch_failed} fetch failed, {result.failed} errors"
        )
        return result

    def start(self) -> "CycleHandle":
        """
        Run a cycle now and then repeatedly every ``interval_seconds``.

        Must be called from within a running event loop.

        Returns:
            Handle controlling the schedule
        """
        handle = CycleHandle(self, self.interval_seconds, self.single_flight)
        handle.start()
        return handle


class CycleHandle:
    """Owns the repeating schedule of a ChangeDetectionCycle.

    With ``single_flight`` enabled a tick that fires while the previous
    cycle is still running is skipped. Without it, overlapping cycles can
    enqueue duplicate jobs for the same link.
    """

    def __init__(
        self,
        cycle: ChangeDetectionCycle,
        interval_seconds: float,
        single_flight: bool = True,
    ) -> None:
        self._cycle = cycle
        self.interval_seconds = interval_seconds
        self.single_flight = single_flight
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._tasks: Set[asyncio.Task] = set()
        self.last_result: Optional[CycleResult] = None
        self.cycles_started = 0
        self.ticks_skipped = 0

    @property
    def is_running(self) -> bool:
        """True while the schedule is active."""
        return self._scheduler is not None

    @property
    def in_flight(self) -> int:
        """Number of cycles currently running."""
        return len(self._tasks)

    def _create_scheduler(self) -> AsyncIOScheduler:
        """Create and configure APScheduler instance."""
        jobstores = {"default": MemoryJobStore()}

        executors = {"default": AsyncIOExecutor()}

        job_defaults = {
            "coalesce": True,  # Combine missed runs
            "max_instances": 1,
            "misfire_grace_time": max(1, int(self.interval_seconds)),
        }

        return AsyncIOScheduler(
            jobstores=jobstores,
            executors=executors,
            job_defaults=job_defaults,
            timezone="UTC",
            event_loop=asyncio.get_running_loop(),
        )

    def _setup_listeners(self) -> None:
        """Set up APScheduler event listeners."""
        if not self._scheduler:
            return

        def on_job_executed(event: Any) -> None:
            logger.debug(f"Tick {event.job_id} fired")

        def on_job_error(event: Any) -> None:
            exception = getattr(event, "exception", "Unknown error")
            logger.error(f"Tick {event.job_id} failed: {exception}")

        def on_job_missed(event: Any) -> None:
            logger.warning(f"Tick {event.job_id} missed scheduled run")

        self._scheduler.add_listener(on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(on_job_missed, EVENT_JOB_MISSED)

    def start(self) -> None:
        """Start ticking. The first tick fires immediately."""
        if self._scheduler is not None:
            logger.warning("Cycle already scheduled")
            return

        self._scheduler = self._create_scheduler()
        self._setup_listeners()
        self._scheduler.start()
        self._scheduler.add_job(
            func=self._tick,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=TICK_JOB_ID,
            name="Change detection cycle",
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
        )
        logger.info(f"Change detection scheduled every {self.interval_seconds}s")

    def stop(self) -> None:
        """Stop ticking. Cycles already running are left to finish."""
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info(f"Change detection stopped ({self.in_flight} cycles in flight)")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for in-flight cycles to finish.

        Args:
            timeout: Seconds to wait at most (None waits forever)

        Returns:
            True if no cycle is left running
        """
        if not self._tasks:
            return True

        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} cycles still running after {timeout}s")
        return not pending

    async def _tick(self) -> None:
        if self.single_flight and self._tasks:
            self.ticks_skipped += 1
            logger.warning("Previous cycle still running, skipping this tick")
            return

        task = asyncio.create_task(self._run_cycle())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.cycles_started += 1

    async def _run_cycle(self) -> None:
        self.last_result = await self._cycle.run_once()
