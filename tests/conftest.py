"""Shared fixtures for fork-sync tests."""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fork_sync.config import clear_config_cache
from fork_sync.database.models import Base
from fork_sync.models import (
    ForkDescriptor,
    LinkSyncCandidate,
    UpstreamDescriptor,
    UserSnapshot,
)


@pytest.fixture(autouse=True)
def _reset_config_cache():
    """Keep the global configuration from leaking between tests."""
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """A private in-memory Redis server."""
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server: fakeredis.FakeServer) -> fakeredis.FakeAsyncRedis:
    """asyncio Redis client bound to the private server."""
    return fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def owner() -> UserSnapshot:
    return UserSnapshot(
        id=7,
        username="octocat",
        email="octocat@example.com",
        github_id="583231",
        access_token="gho_secret",
        public_scope=False,
    )


@pytest.fixture
def make_candidate(owner: UserSnapshot) -> Callable[..., LinkSyncCandidate]:
    """Factory for link candidates with sensible defaults."""

    def _make(
        link_id: int = 1,
        last_sha: Optional[str] = None,
        branch: Optional[str] = "main",
        enabled: bool = True,
        last_synced_at: Optional[datetime] = None,
        **kwargs: Any,
    ) -> LinkSyncCandidate:
        return LinkSyncCandidate(
            id=link_id,
            name=kwargs.pop("name", f"link-{link_id}"),
            enabled=enabled,
            last_synced_at=last_synced_at or datetime(2024, 1, 1) - timedelta(hours=1),
            upstream=UpstreamDescriptor(
                type="repo",
                owner="upstream-org",
                repo=f"project-{link_id}",
                branch=branch,
                last_sha=last_sha,
            ),
            fork=ForkDescriptor(
                type="repo",
                owner="octocat",
                repo=f"project-{link_id}",
                branch="main",
            ),
            owner=kwargs.pop("owner", owner),
            webhook_id=kwargs.pop("webhook_id", f"hook-{link_id}"),
        )

    return _make


@pytest.fixture
def session_factory(tmp_path):
    """Session context manager backed by a SQLite file in tmp_path."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'links.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

    @contextmanager
    def factory():
        session = SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    yield factory
    engine.dispose()
