"""TTL-keyed status records in Redis.

Job consumers record the outcome of a sync under the link's webhook id.
The records expire on their own; nothing ever cleans them up explicitly.
"""

import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from fork_sync.exceptions import StatusStoreError

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "webhook:status"
DEFAULT_TTL_SECONDS = 24 * 60 * 60

# Stripped from payloads unless the caller asks for them
SENSITIVE_FIELDS = frozenset({
    "accessToken",
    "access_token",
    "token",
    "password",
    "secret",
    "webhookSecret",
})


def strip_sensitive(value: Any) -> Any:
    """Return a copy of ``value`` with sensitive keys removed at every depth."""
    if isinstance(value, dict):
        return {
            k: strip_sensitive(v)
            for k, v in value.items()
            if k not in SENSITIVE_FIELDS
        }
    if isinstance(value, list):
        return [strip_sensitive(item) for item in value]
    return value


class StatusStore:
    """Status records keyed by an external identifier.

    Example:
        store = StatusStore(get_redis())
        await store.set(link.webhook_id, {"status": "done"})
        status = await store.get(link.webhook_id)
    """

    def __init__(
        self,
        redis: Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        default_ttl: int = DEFAULT_TTL_SECONDS,
    ) -> None:
        self._redis = redis
        self.key_prefix = key_prefix
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    async def set(self, key: str, status: Any, ttl: Optional[int] = None) -> str:
        """
        Store a status payload, overwriting any previous value.

        Args:
            key: Status identifier
            status: JSON-serializable payload
            ttl: Expiry in seconds (defaults to the store's TTL)

        Returns:
            The Redis key that was written

        Raises:
            StatusStoreError: If the payload cannot be serialized or written
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= 0:
            raise StatusStoreError(f"TTL must be positive, got {ttl}")

        redis_key = self._key(key)
        try:
            payload = json.dumps(status)
        except (TypeError, ValueError) as e:
            raise StatusStoreError(
                f"Status for {key} is not JSON-serializable: {e}"
            ) from e

        try:
            await self._redis.set(redis_key, payload, ex=ttl)
        except RedisError as e:
            raise StatusStoreError(
                f"Failed to write status for {key}: {e}",
                details={"key": redis_key},
            ) from e

        logger.debug(f"Stored status {redis_key} (ttl={ttl}s)")
        return redis_key

    async def get(self, key: str, hide_sensitive: bool = True) -> Optional[Any]:
        """
        Look up a status payload.

        Args:
            key: Status identifier
            hide_sensitive: Remove tokens, passwords and secrets from the result

        Returns:
            The payload, or None if the key is missing or expired

        Raises:
            StatusStoreError: If Redis fails or the stored value is not JSON
        """
        redis_key = self._key(key)
        try:
            raw = await self._redis.get(redis_key)
        except RedisError as e:
            raise StatusStoreError(
                f"Failed to read status for {key}: {e}",
                details={"key": redis_key},
            ) from e

        if raw is None:
            return None

        try:
            status = json.loads(raw)
        except ValueError as e:
            raise StatusStoreError(
                f"Stored status for {key} is not valid JSON: {e}",
                details={"key": redis_key},
            ) from e

        return strip_sensitive(status) if hide_sensitive else status

    async def delete(self, key: str) -> bool:
        """
        Remove a status record.

        Returns:
            True if a record was removed
        """
        try:
            return await self._redis.delete(self._key(key)) > 0
        except RedisError as e:
            raise StatusStoreError(f"Failed to delete status for {key}: {e}") from e
