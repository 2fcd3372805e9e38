"""Database layer for fork-sync.

SQLAlchemy models, session management and repositories for links and users.
"""

from fork_sync.database.connection import (
    create_tables,
    dispose_engine,
    get_db_session,
    init_engine,
)
from fork_sync.database.models import Base, Link, User
from fork_sync.database.repositories import (
    LinkRepository,
    SqlCandidateRepository,
    UserRepository,
)

__all__ = [
    "Base",
    "Link",
    "User",
    "LinkRepository",
    "SqlCandidateRepository",
    "UserRepository",
    "create_tables",
    "dispose_engine",
    "get_db_session",
    "init_engine",
]
