"""
SQLAlchemy models for the fork-sync database.

Only the columns the change detection cycle reads or writes carry
behavior here; the remaining Link columns are kept so that rows written
by the web application round-trip unchanged.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

from fork_sync.models import (
    ForkDescriptor,
    LinkSyncCandidate,
    UpstreamDescriptor,
    UserSnapshot,
    utcnow,
)

# Create base class for all models
Base = declarative_base()


class User(Base):
    """
    User model.

    Owns links; the stored access token is used for upstream lookups
    and travels with every job enqueued for the user's links.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[Optional[str]] = mapped_column(String, unique=True, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    github_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    access_token: Mapped[str] = mapped_column(String, nullable=False)

    # Did the user register with the public scope (open source repos only)?
    public_scope: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_logged_in_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    def to_snapshot(self) -> UserSnapshot:
        """Convert to an immutable snapshot detached from the session."""
        return UserSnapshot(
            id=self.id,
            username=self.username,
            email=self.email,
            github_id=self.github_id,
            access_token=self.access_token,
            public_scope=self.public_scope,
        )


class Link(Base):
    """
    Link model.

    Pairs an upstream repository/branch with a fork repository/branch.
    ``upstream_last_sha`` stores the last known commit at the head of
    ``upstream_branch``.
    """

    __tablename__ = "links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False)

    webhook_id: Mapped[str] = mapped_column(
        String,
        default=lambda: uuid4().hex,
        index=True,
    )

    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=utcnow, nullable=True
    )

    # Upstream
    upstream_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    upstream_owner: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    upstream_repo: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    upstream_is_fork: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    upstream_branches: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    upstream_branch: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    upstream_last_sha: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Fork
    fork_type: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    fork_owner: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    fork_repo: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    fork_branches: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fork_branch: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    owner_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True, index=True
    )
    owner: Mapped[Optional[User]] = relationship("User", lazy="joined")

    def to_candidate(self) -> LinkSyncCandidate:
        """Convert to an immutable candidate snapshot."""
        return LinkSyncCandidate(
            id=self.id,
            name=self.name,
            enabled=self.enabled,
            last_synced_at=self.last_synced_at,
            webhook_id=self.webhook_id,
            owner=self.owner.to_snapshot() if self.owner else None,
            upstream=UpstreamDescriptor(
                type=self.upstream_type,
                owner=self.upstream_owner,
                repo=self.upstream_repo,
                branch=self.upstream_branch,
                last_sha=self.upstream_last_sha,
            ),
            fork=ForkDescriptor(
                type=self.fork_type,
                owner=self.fork_owner,
                repo=self.fork_repo,
                branch=self.fork_branch,
            ),
        )


# Candidate query filters on these
Index("ix_links_enabled_last_synced_at", Link.enabled, Link.last_synced_at)
