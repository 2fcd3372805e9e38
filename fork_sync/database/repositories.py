"""Database repositories for fork-sync.

Provides the data access the change detection cycle needs: selecting
links that are due for a sync check and recording the outcome of that
check. Everything else about links and users is owned by the web
application.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Callable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from fork_sync.database.connection import get_db_session
from fork_sync.database.models import Link, User
from fork_sync.models import LinkSyncCandidate


class UserRepository:
    """
    Repository for user records.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def create(self, **kwargs: Any) -> User:
        """
        Create a new user record.

        Args:
            **kwargs: User attributes

        Returns:
            Created user instance
        """
        user = User(**kwargs)
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user


class LinkRepository:
    """
    Repository for link records.

    Provides the eligibility query used to pick sync candidates and the
    bookkeeping update written after each check.
    """

    def __init__(self, session: Session):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
        """
        self.session = session

    def get_sync_candidates(self, stale_before: datetime) -> List[Link]:
        """
        Get links that are due for a sync check.

        A link qualifies when it is enabled, has a name, every upstream
        and fork identifying column is set, and it was last checked
        before ``stale_before`` (or never).

        Args:
            stale_before: Links checked at or after this time are skipped

        Returns:
            Eligible links with their owners loaded
        """
        return self.session.query(Link).filter(
            Link.name != "",
            Link.enabled.is_(True),
            or_(
                Link.last_synced_at.is_(None),
                Link.last_synced_at < stale_before,
            ),
            Link.upstream_type.isnot(None),
            Link.upstream_owner.isnot(None),
            Link.upstream_repo.isnot(None),
            Link.fork_type.isnot(None),
            Link.fork_owner.isnot(None),
            Link.fork_repo.isnot(None),
        ).order_by(Link.id).all()

    def create(self, **kwargs: Any) -> Link:
        """
        Create a new link record.

        Args:
            **kwargs: Link attributes

        Returns:
            Created link instance
        """
        link = Link(**kwargs)
        self.session.add(link)
        self.session.commit()
        self.session.refresh(link)
        return link

    def update_sync_state(
        self,
        link_id: int,
        last_synced_at: datetime,
        upstream_last_sha: Optional[str],
    ) -> bool:
        """
        Record that a link was checked against its upstream.

        Args:
            link_id: ID of the link
            last_synced_at: When the check happened
            upstream_last_sha: Head SHA observed during the check

        Returns:
            True if the link was updated, False if it no longer exists
        """
        updated = self.session.query(Link).filter(Link.id == link_id).update(
            {
                Link.last_synced_at: last_synced_at,
                Link.upstream_last_sha: upstream_last_sha,
            },
            synchronize_session=False,
        )
        self.session.commit()
        return updated > 0


class SqlCandidateRepository:
    """
    Candidate repository backed by the relational database.

    Opens a short-lived session per call so that candidate tasks running
    concurrently in one cycle never share a session.

    Example:
        repository = SqlCandidateRepository()
        candidates = repository.find_candidates(utcnow() - timedelta(minutes=10))
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager[Session]] = get_db_session,
    ) -> None:
        self._session_factory = session_factory

    def find_candidates(self, stale_before: datetime) -> List[LinkSyncCandidate]:
        with self._session_factory() as session:
            links = LinkRepository(session).get_sync_candidates(stale_before)
            return [link.to_candidate() for link in links]

    def mark_checked(
        self,
        link_id: int,
        checked_at: datetime,
        upstream_sha: Optional[str],
    ) -> bool:
        with self._session_factory() as session:
            return LinkRepository(session).update_sync_state(
                link_id,
                last_synced_at=checked_at,
                upstream_last_sha=upstream_sha,
            )
