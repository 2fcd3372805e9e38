"""Interfaces the change detection cycle depends on."""

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Protocol, runtime_checkable

from fork_sync.models import LinkSyncCandidate

# Resolves a candidate's upstream branch to its head SHA (None if it is gone)
UpstreamResolver = Callable[[LinkSyncCandidate], Awaitable[Optional[str]]]


@runtime_checkable
class CandidateRepository(Protocol):
    """Read/write access to links, as used by the cycle and the evaluator.

    Methods are synchronous; callers run them off the event loop.
    """

    def find_candidates(self, stale_before: datetime) -> List[LinkSyncCandidate]:  # pragma: no cover - Protocol only
        """Return every eligible link last checked before ``stale_before``."""

    def mark_checked(
        self,
        link_id: int,
        checked_at: datetime,
        upstream_sha: Optional[str],
    ) -> bool:  # pragma: no cover - Protocol only
        """Record a completed check. Returns False if the link is gone."""
