"""
Redis connection management for fork-sync.

The job queue and the status store share one asyncio Redis client per
process, created lazily from ``queue.redis_url``.
"""

from __future__ import annotations

import logging
from typing import Optional

from redis.asyncio import Redis

from fork_sync.config import ForkSyncConfig, get_config

logger = logging.getLogger(__name__)

# Global client (lazy-loaded)
_redis: Optional[Redis] = None


def get_redis(config: Optional[ForkSyncConfig] = None) -> Redis:
    """
    Get or create the shared Redis client.

    Args:
        config: fork-sync configuration (uses global if not provided)

    Returns:
        asyncio Redis client returning decoded strings
    """
    global _redis

    if _redis is not None:
        return _redis

    if config is None:
        config = get_config()

    _redis = Redis.from_url(config.queue.redis_url, decode_responses=True)
    logger.debug("Redis client created")
    return _redis


async def close_redis() -> None:
    """Close the shared Redis client. Call at application shutdown."""
    global _redis

    if _redis is not None:
        await _redis.aclose()
        logger.debug("Redis client closed")
    _redis = None
