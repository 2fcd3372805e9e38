"""Per-link change detection.

The evaluator compares the head SHA of a link's upstream branch with the
last SHA on record, enqueues a sync job when they differ (or when the
link was never synced), and records the check on the link.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from fork_sync.exceptions import FetchError
from fork_sync.models import (
    EvaluationOutcome,
    EvaluationResult,
    LinkSyncCandidate,
    SyncJob,
    SyncReason,
    utcnow,
)
from fork_sync.scheduler.protocols import CandidateRepository, UpstreamResolver
from fork_sync.store.job_queue import JobQueue

logger = logging.getLogger(__name__)


class LinkSyncEvaluator:
    """Decides whether a candidate needs a sync job.

    Outcomes for one candidate:

    - upstream lookup fails or times out: nothing is enqueued and the
      link is left untouched, so it stays stale and is retried later
    - no SHA on record: enqueue (FIRST_SYNC)
    - upstream SHA differs from the one on record: enqueue (NEW_COMMITS)
    - SHA on record but the upstream is gone: warn, no enqueue
    - SHAs equal: no enqueue

    Every outcome except a failed lookup ends with the link's
    ``last_synced_at`` and ``upstream_last_sha`` being updated. A
    QueueError from the enqueue propagates before that update, leaving
    the link retryable.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        repository: CandidateRepository,
        resolver: UpstreamResolver,
        fetch_timeout: Optional[float] = 30.0,
        preserve_sha_on_missing_upstream: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Args:
            job_queue: Queue sync jobs are pushed to
            repository: Link storage used for bookkeeping
            resolver: Upstream head SHA lookup
            fetch_timeout: Seconds before a lookup counts as failed (None waits forever)
            preserve_sha_on_missing_upstream: Keep the stored SHA when the
                upstream can no longer be resolved instead of clearing it
            clock: Source of the ``last_synced_at`` timestamp
        """
        self._job_queue = job_queue
        self._repository = repository
        self._resolver = resolver
        self._fetch_timeout = fetch_timeout
        self._preserve_sha = preserve_sha_on_missing_upstream
        self._clock = clock

    async def _fetch_head_sha(self, candidate: LinkSyncCandidate) -> Optional[str]:
        try:
            return await asyncio.wait_for(self._resolver(candidate), timeout=self._fetch_timeout)
        except FetchError:
            raise
        except asyncio.TimeoutError as e:
            raise FetchError(
                f"Timed out after {self._fetch_timeout}s fetching upstream SHA",
                link_id=candidate.id,
            ) from e
        except Exception as e:
            raise FetchError(
                f"Error fetching upstream SHA: {e}",
                link_id=candidate.id,
            ) from e

    async def evaluate(self, candidate: LinkSyncCandidate) -> EvaluationResult:
        """
        Evaluate one candidate.

        Args:
            candidate: Link snapshot to check

        Returns:
            The evaluation outcome

        Raises:
            QueueError: If the job could not be enqueued
        """
        try:
            head_sha = await self._fetch_head_sha(candidate)
        except FetchError as e:
            logger.warning(f"Error fetching upstream sha for link {candidate.id}: {e.message}")
            return EvaluationResult(
                link_id=candidate.id,
                outcome=EvaluationOutcome.FETCH_FAILED,
                error=e.message,
            )

        last_sha = candidate.upstream.last_sha
        logger.debug(
            f"Updating link {candidate.id}, last updated = {candidate.last_synced_at}, "
            f"last known SHA = {last_sha}, current SHA = {head_sha}"
        )

        reason: Optional[SyncReason] = None
        stored_sha = head_sha

        if last_sha and not head_sha:
            logger.warning(
                f"Unable to fetch upstream sha for link {candidate.id}; "
                f"{candidate.upstream.full_name} may have been deleted"
            )
            outcome = EvaluationOutcome.UPSTREAM_MISSING
            if self._preserve_sha:
                stored_sha = last_sha
        elif not last_sha:
            reason = SyncReason.FIRST_SYNC
            outcome = EvaluationOutcome.ENQUEUED
        elif last_sha != head_sha:
            reason = SyncReason.NEW_COMMITS
            outcome = EvaluationOutcome.ENQUEUED
        else:
            logger.debug(f"Link {candidate.id} didn't change, update not required")
            outcome = EvaluationOutcome.UNCHANGED

        message_id = None
        if reason is not None:
            message_id = await self._job_queue.push(SyncJob.automatic(candidate))
            logger.info(
                f"Update enqueued successfully for link {candidate.id}. "
                f"REASON = {reason.value} (message {message_id})"
            )

        updated = await asyncio.to_thread(
            self._repository.mark_checked,
            candidate.id,
            self._clock(),
            stored_sha,
        )
        if not updated:
            logger.warning(f"Link {candidate.id} disappeared before it could be marked as checked")

        return EvaluationResult(
            link_id=candidate.id,
            outcome=outcome,
            reason=reason,
            head_sha=head_sha,
            message_id=message_id,
        )
