"""Redis-backed job queue and status store."""

from fork_sync.store.connection import close_redis, get_redis
from fork_sync.store.job_queue import JobQueue
from fork_sync.store.status_store import StatusStore

__all__ = [
    "JobQueue",
    "StatusStore",
    "close_redis",
    "get_redis",
]
