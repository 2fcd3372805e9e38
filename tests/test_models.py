"""Tests for domain types and job serialization."""

from datetime import datetime

from fork_sync.models import (
    CycleResult,
    EvaluationOutcome,
    EvaluationResult,
    JobType,
    SyncJob,
)


class TestLinkSyncCandidate:
    """Tests for candidate snapshots."""

    def test_is_syncable(self, make_candidate):
        assert make_candidate().is_syncable
        assert not make_candidate(enabled=False).is_syncable
        assert not make_candidate(name="").is_syncable

    def test_to_dict_uses_record_field_names(self, make_candidate):
        data = make_candidate(link_id=3, last_sha="abc").to_dict()

        assert data["id"] == 3
        assert data["upstreamOwner"] == "upstream-org"
        assert data["upstreamRepo"] == "project-3"
        assert data["upstreamBranch"] == "main"
        assert data["upstreamLastSHA"] == "abc"
        assert data["forkOwner"] == "octocat"
        assert data["webhookId"] == "hook-3"
        assert data["ownerId"] == 7
        assert data["owner"]["githubId"] == "583231"


class TestSyncJob:
    """Tests for SyncJob."""

    def test_automatic_job(self, make_candidate):
        candidate = make_candidate()

        job = SyncJob.automatic(candidate)

        assert job.type == JobType.AUTOMATIC
        assert job.user == candidate.owner
        assert job.from_request is None
        assert set(job.to_dict()) == {"type", "user", "link", "fromRequest"}

    def test_job_without_owner(self, make_candidate):
        job = SyncJob.automatic(make_candidate(owner=None))

        assert job.to_dict()["user"] is None


class TestCycleResult:
    """Tests for aggregate counters."""

    def test_counters_and_summary(self):
        result = CycleResult(
            started_at=datetime(2024, 6, 1, 12, 0),
            candidates=4,
            results=[
                EvaluationResult(1, EvaluationOutcome.ENQUEUED),
                EvaluationResult(2, EvaluationOutcome.UNCHANGED),
                EvaluationResult(3, EvaluationOutcome.UPSTREAM_MISSING),
                EvaluationResult(4, EvaluationOutcome.FETCH_FAILED),
            ],
        )

        summary = result.summary()

        assert summary["enqueued"] == 1
        assert summary["unchanged"] == 1
        assert summary["upstream_missing"] == 1
        assert summary["fetch_failed"] == 1
        assert summary["failed"] == 0
        assert summary["success"] is True
        assert summary["started_at"] == "2024-06-01T12:00:00"
        assert summary["completed_at"] is None

    def test_error_result_fails_cycle(self):
        result = CycleResult(
            started_at=datetime(2024, 6, 1),
            results=[EvaluationResult(1, EvaluationOutcome.ERROR, error="boom")],
        )

        assert result.failed == 1
        assert result.success is False
