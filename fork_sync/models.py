"""Domain types shared by the scheduler, evaluator and job queue.

Candidates are immutable snapshots of Link rows taken when a cycle
queries the repository. Snapshots serialize to the camelCase keys of
the original Link/User records so that job consumers can read them
without knowing about this package.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching database storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobType(Enum):
    """Origin of a sync job."""

    AUTOMATIC = "AUTOMATIC"  # Enqueued by the change detection cycle
    MANUAL = "MANUAL"  # Enqueued by the webhook surface


class SyncReason(Enum):
    """Why the evaluator enqueued a job."""

    FIRST_SYNC = "FIRST_SYNC"
    NEW_COMMITS = "NEW_COMMITS"


class EvaluationOutcome(Enum):
    """Result of evaluating a single candidate."""

    ENQUEUED = "enqueued"
    UNCHANGED = "unchanged"
    UPSTREAM_MISSING = "upstream_missing"
    FETCH_FAILED = "fetch_failed"
    ERROR = "error"


@dataclass(frozen=True)
class UserSnapshot:
    """Owner of a link, as embedded in job payloads."""

    id: int
    username: Optional[str] = None
    email: Optional[str] = None
    github_id: Optional[str] = None
    access_token: Optional[str] = None
    public_scope: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "githubId": self.github_id,
            "accessToken": self.access_token,
            "publicScope": self.public_scope,
        }


@dataclass(frozen=True)
class UpstreamDescriptor:
    """Upstream side of a link."""

    type: Optional[str]
    owner: Optional[str]
    repo: Optional[str]
    branch: Optional[str] = None
    last_sha: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class ForkDescriptor:
    """Fork side of a link."""

    type: Optional[str]
    owner: Optional[str]
    repo: Optional[str]
    branch: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class LinkSyncCandidate:
    """A link eligible for a sync check.

    Attributes:
        id: Link primary key
        name: Human-readable link name
        enabled: Whether the link is enabled
        last_synced_at: When the link was last checked
        upstream: Upstream repository and branch, with the last known SHA
        fork: Fork repository and branch
        owner: Snapshot of the owning user, if loaded
        webhook_id: External identifier used for status records
    """

    id: int
    name: str
    enabled: bool
    last_synced_at: Optional[datetime]
    upstream: UpstreamDescriptor
    fork: ForkDescriptor
    owner: Optional[UserSnapshot] = None
    webhook_id: Optional[str] = None

    @property
    def is_syncable(self) -> bool:
        """True when every identifying upstream and fork field is set."""
        return bool(self.enabled and self.name) and all(
            value is not None
            for value in (
                self.upstream.type,
                self.upstream.owner,
                self.upstream.repo,
                self.fork.type,
                self.fork.owner,
                self.fork.repo,
            )
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the link snapshot carried by job payloads."""
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "webhookId": self.webhook_id,
            "lastSyncedAt": _isoformat(self.last_synced_at),
            "upstreamType": self.upstream.type,
            "upstreamOwner": self.upstream.owner,
            "upstreamRepo": self.upstream.repo,
            "upstreamBranch": self.upstream.branch,
            "upstreamLastSHA": self.upstream.last_sha,
            "forkType": self.fork.type,
            "forkOwner": self.fork.owner,
            "forkRepo": self.fork.repo,
            "forkBranch": self.fork.branch,
            "ownerId": self.owner.id if self.owner else None,
            "owner": self.owner.to_dict() if self.owner else None,
        }


@dataclass
class SyncJob:
    """A pending fork synchronization.

    Serializes to ``{type, user, link, fromRequest}``.
    """

    type: JobType
    link: LinkSyncCandidate
    user: Optional[UserSnapshot] = None
    from_request: Optional[Dict[str, Any]] = None

    @classmethod
    def automatic(cls, candidate: LinkSyncCandidate) -> "SyncJob":
        """Build the job the change detection cycle enqueues for a candidate."""
        return cls(
            type=JobType.AUTOMATIC,
            link=candidate,
            user=candidate.owner,
            from_request=None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "user": self.user.to_dict() if self.user else None,
            "link": self.link.to_dict(),
            "fromRequest": self.from_request,
        }


@dataclass(frozen=True)
class QueueMessage:
    """A message popped from the job queue."""

    id: str
    data: Any
    sent_at: Optional[datetime] = None


@dataclass
class EvaluationResult:
    """Outcome of evaluating one candidate."""

    link_id: int
    outcome: EvaluationOutcome
    reason: Optional[SyncReason] = None
    head_sha: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def enqueued(self) -> bool:
        return self.outcome == EvaluationOutcome.ENQUEUED


@dataclass
class CycleResult:
    """Aggregate outcome of one change detection cycle.

    Attributes:
        started_at: When the cycle started
        completed_at: When every candidate task finished
        candidates: Number of eligible candidates found
        results: Per-candidate evaluation results
        error: Aggregate error if the cycle itself failed
    """

    started_at: datetime
    completed_at: Optional[datetime] = None
    candidates: int = 0
    results: List[EvaluationResult] = field(default_factory=list)
    error: Optional[str] = None

    def _count(self, outcome: EvaluationOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def enqueued(self) -> int:
        return self._count(EvaluationOutcome.ENQUEUED)

    @property
    def unchanged(self) -> int:
        return self._count(EvaluationOutcome.UNCHANGED)

    @property
    def upstream_missing(self) -> int:
        return self._count(EvaluationOutcome.UPSTREAM_MISSING)

    @property
    def fetch_failed(self) -> int:
        return self._count(EvaluationOutcome.FETCH_FAILED)

    @property
    def failed(self) -> int:
        return self._count(EvaluationOutcome.ERROR)

    @property
    def success(self) -> bool:
        """False when the cycle errored or any candidate raised.

        Fetch failures are expected and retried, so they do not count.
        """
        return self.error is None and self.failed == 0

    def summary(self) -> Dict[str, Any]:
        return {
            "started_at": _isoformat(self.started_at),
            "completed_at": _isoformat(self.completed_at),
            "candidates": self.candidates,
            "enqueued": self.enqueued,
            "unchanged": self.unchanged,
            "upstream_missing": self.upstream_missing,
            "fetch_failed": self.fetch_failed,
            "failed": self.failed,
            "success": self.success,
            "error": self.error,
        }
