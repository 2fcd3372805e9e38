"""Tests for the per-link change detection evaluator."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from fork_sync.exceptions import FetchError, QueueError
from fork_sync.models import EvaluationOutcome, SyncReason
from fork_sync.scheduler.evaluator import LinkSyncEvaluator
from fork_sync.store.job_queue import JobQueue

CHECKED_AT = datetime(2024, 6, 1, 12, 0, 0)


@pytest.fixture
def repository() -> Mock:
    repository = Mock()
    repository.mark_checked.return_value = True
    return repository


@pytest_asyncio.fixture
async def job_queue(fake_redis) -> JobQueue:
    job_queue = JobQueue(fake_redis)
    await job_queue.initialize()
    return job_queue


def _evaluator(job_queue, repository, resolver, **kwargs) -> LinkSyncEvaluator:
    return LinkSyncEvaluator(
        job_queue=job_queue,
        repository=repository,
        resolver=resolver,
        clock=lambda: CHECKED_AT,
        **kwargs,
    )


class TestEnqueueDecisions:
    """Tests for the enqueue decision table."""

    @pytest.mark.asyncio
    async def test_first_sync(self, job_queue, repository, make_candidate) -> None:
        """No stored SHA: one FIRST_SYNC job, then bookkeeping."""
        candidate = make_candidate(last_sha=None)
        evaluator = _evaluator(job_queue, repository, AsyncMock(return_value="abc"))

        result = await evaluator.evaluate(candidate)

        assert result.outcome == EvaluationOutcome.ENQUEUED
        assert result.reason == SyncReason.FIRST_SYNC
        assert result.head_sha == "abc"
        assert await job_queue.size() == 1
        repository.mark_checked.assert_called_once_with(candidate.id, CHECKED_AT, "abc")

    @pytest.mark.asyncio
    async def test_new_commits(self, job_queue, repository, make_candidate) -> None:
        candidate = make_candidate(last_sha="abc")
        evaluator = _evaluator(job_queue, repository, AsyncMock(return_value="def"))

        result = await evaluator.evaluate(candidate)

        assert result.reason == SyncReason.NEW_COMMITS
        message = await job_queue.pop()
        assert message.id == result.message_id
        assert message.data["type"] == "AUTOMATIC"
        assert message.data["link"]["id"] == candidate.id
        assert message.data["link"]["upstreamLastSHA"] == "abc"
        assert message.data["user"]["id"] == candidate.owner.id
        assert message.data["fromRequest"] is None
        repository.mark_checked.assert_called_once_with(candidate.id, CHECKED_AT, "def")

    @pytest.mark.asyncio
    async def test_unchanged(self, job_queue, repository, make_candidate) -> None:
        """Same SHA: no job, but last_synced_at still advances."""
        candidate = make_candidate(last_sha="abc")
        evaluator = _evaluator(job_queue, repository, AsyncMock(return_value="abc"))

        result = await evaluator.evaluate(candidate)

        assert result.outcome == EvaluationOutcome.UNCHANGED
        assert result.reason is None
        assert await job_queue.size() == 0
        repository.mark_checked.assert_called_once_with(candidate.id, CHECKED_AT, "abc")

    @pytest.mark.asyncio
    async def test_upstream_missing_clears_sha(self, job_queue, repository, make_candidate) -> None:
        """Upstream gone: no job, stored SHA overwritten with None."""
        candidate = make_candidate(last_sha="abc")
        evaluator = _evaluator(job_queue, repository, AsyncMock(return_value=None))

        result = await evaluator.evaluate(candidate)

        assert result.outcome == EvaluationOutcome.UPSTREAM_MISSING
        assert await job_queue.size() == 0
        repository.mark_checked.assert_called_once_with(candidate.id, CHECKED_AT, None)

    @pytest.mark.asyncio
    async def test_upstream_missing_preserves_sha(self, job_queue, repository, make_candidate) -> None:
        candidate = make_candidate(last_sha="abc")
        evaluator = _evaluator(
            job_queue,
            repository,
            AsyncMock(return_value=None),
            preserve_sha_on_missing_upstream=True,
        )

        result = await evaluator.evaluate(candidate)

        assert result.outcome == EvaluationOutcome.UPSTREAM_MISSING
        repository.mark_checked.assert_called_once_with(candidate.id, CHECKED_AT, "abc")

    @pytest.mark.asyncio
    async def test_never_synced_and_missing_upstream_enqueues(
        self, job_queue, repository, make_candidate
    ) -> None:
        """Without a stored SHA the link is enqueued even if the head is unknown."""
        candidate = make_candidate(last_sha=None)
        evaluator = _evaluator(job_queue, repository, AsyncMock(return_value=None))

        result = await evaluator.evaluate(candidate)

        assert result.reason == SyncReason.FIRST_SYNC
        assert await job_queue.size() == 1


class TestFailures:
    """Tests for fetch and queue failures."""

    @pytest.mark.asyncio
    async def test_fetch_error_skips_enqueue_and_bookkeeping(
        self, job_queue, repository, make_candidate
    ) -> None:
        candidate = make_candidate(last_sha=None)
        resolver = AsyncMock(side_effect=FetchError("rate limited", status_code=403))
        evaluator = _evaluator(job_queue, repository, resolver)

        result = await evaluator.evaluate(candidate)

        assert result.outcome == EvaluationOutcome.FETCH_FAILED
        assert "rate limited" in result.error
        assert await job_queue.size() == 0
        repository.mark_checked.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_resolver_error_is_fetch_failure(
        self, job_queue, repository, make_candidate
    ) -> None:
        resolver = AsyncMock(side_effect=RuntimeError("boom"))
        evaluator = _evaluator(job_queue, repository, resolver)

        result = await evaluator.evaluate(make_candidate())

        assert result.outcome == EvaluationOutcome.FETCH_FAILED
        repository.mark_checked.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_timeout(self, job_queue, repository, make_candidate) -> None:
        async def never_resolves(candidate):
            await asyncio.Event().wait()

        evaluator = _evaluator(job_queue, repository, never_resolves, fetch_timeout=0.05)

        result = await evaluator.evaluate(make_candidate())

        assert result.outcome == EvaluationOutcome.FETCH_FAILED
        assert "Timed out" in result.error
        repository.mark_checked.assert_not_called()

    @pytest.mark.asyncio
    async def test_queue_error_propagates_before_bookkeeping(
        self, repository, make_candidate
    ) -> None:
        """A failed push leaves the link stale so it is retried."""
        job_queue = Mock()
        job_queue.push = AsyncMock(side_effect=QueueError("redis down"))
        evaluator = _evaluator(job_queue, repository, AsyncMock(return_value="def"))

        with pytest.raises(QueueError):
            await evaluator.evaluate(make_candidate(last_sha="abc"))

        repository.mark_checked.assert_not_called()

    @pytest.mark.asyncio
    async def test_vanished_link_still_reports_outcome(
        self, job_queue, repository, make_candidate
    ) -> None:
        repository.mark_checked.return_value = False
        evaluator = _evaluator(job_queue, repository, AsyncMock(return_value="abc"))

        result = await evaluator.evaluate(make_candidate(last_sha="abc"))

        assert result.outcome == EvaluationOutcome.UNCHANGED
