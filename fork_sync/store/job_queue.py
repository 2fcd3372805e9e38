"""Durable FIFO job queue on top of Redis, stored in the RSMQ layout.

Job workers consume the queue with an rsmq client, so the keys, message
ids and attribute fields written here are the ones rsmq reads:

    ``<ns>:QUEUES``     set of queue names
    ``<ns>:<qname>``    sorted set of message ids scored by visible-at (ms)
    ``<ns>:<qname>:Q``  hash of queue attributes and message bodies

Delivery guarantee: ``pop()`` removes the message in one transaction and
hands it to the caller. There is no visibility timeout, no acknowledgement
and no redelivery. If the consumer crashes after popping, the job is lost.
Producers that need stronger guarantees must track outcomes through the
status store instead of relying on the queue.
"""

import json
import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from fork_sync.exceptions import QueueError, QueueExistsError
from fork_sync.models import QueueMessage, SyncJob

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_NAME = "webhookQueue"
DEFAULT_NAMESPACE = "rsmq"

# rsmq createQueue defaults
DEFAULT_VISIBILITY_TIMEOUT = 30
DEFAULT_DELAY = 0
DEFAULT_MAX_SIZE = 65536

_ID_ALPHABET = string.ascii_letters + string.digits
_BASE36_DIGITS = string.digits + string.ascii_lowercase
_EPOCH = datetime(1970, 1, 1)


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits)) or "0"


def make_message_id(seconds: int, microseconds: int) -> str:
    """Build an rsmq message id: base36 microsecond timestamp plus 22 random chars."""
    timestamp = int(f"{seconds}{microseconds:06d}")
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(22))
    return _to_base36(timestamp).rjust(10, "0") + suffix


def message_sent_at(message_id: str) -> Optional[datetime]:
    """Decode the send time embedded in an rsmq message id."""
    try:
        return _EPOCH + timedelta(microseconds=int(message_id[:10], 36))
    except (ValueError, OverflowError):
        return None


class JobQueue:
    """Redis-backed FIFO queue of sync jobs.

    Example:
        queue = JobQueue(get_redis(), "webhookQueue")
        await queue.initialize()
        message_id = await queue.push(SyncJob.automatic(candidate))
        message = await queue.pop()
    """

    def __init__(
        self,
        redis: Redis,
        queue_name: str = DEFAULT_QUEUE_NAME,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self._redis = redis
        self.queue_name = queue_name
        self.namespace = namespace

    @property
    def _messages_key(self) -> str:
        return f"{self.namespace}:{self.queue_name}"

    @property
    def _attributes_key(self) -> str:
        return f"{self.namespace}:{self.queue_name}:Q"

    @property
    def _queues_key(self) -> str:
        return f"{self.namespace}:QUEUES"

    async def _server_time(self) -> Tuple[int, int]:
        seconds, microseconds = await self._redis.time()
        return int(seconds), int(microseconds)

    async def create_queue(self) -> None:
        """Create the queue.

        Raises:
            QueueExistsError: If the queue already exists
            QueueError: If Redis is unavailable
        """
        try:
            seconds, _ = await self._server_time()
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hsetnx(self._attributes_key, "vt", DEFAULT_VISIBILITY_TIMEOUT)
                pipe.hsetnx(self._attributes_key, "delay", DEFAULT_DELAY)
                pipe.hsetnx(self._attributes_key, "maxsize", DEFAULT_MAX_SIZE)
                pipe.hsetnx(self._attributes_key, "created", seconds)
                pipe.hsetnx(self._attributes_key, "modified", seconds)
                created, *_ = await pipe.execute()
            if created:
                await self._redis.sadd(self._queues_key, self.queue_name)
        except RedisError as e:
            raise QueueError(f"Failed to create queue {self.queue_name}: {e}") from e

        if not created:
            raise QueueExistsError(
                f"Queue {self.queue_name} already exists",
                details={"namespace": self.namespace},
            )

        logger.info(f"Created queue {self.queue_name}")

    async def initialize(self) -> bool:
        """Ensure the queue exists.

        Returns:
            True if the queue was created, False if it already existed

        Raises:
            QueueError: On any failure other than the queue already existing
        """
        try:
            await self.create_queue()
        except QueueExistsError:
            logger.debug(f"Queue {self.queue_name} already exists")
            return False
        return True

    async def push(self, job: Union[SyncJob, Mapping[str, Any]]) -> str:
        """Serialize a job and append it to the queue.

        Args:
            job: Job to enqueue

        Returns:
            Unique message id

        Raises:
            QueueError: If the job cannot be serialized, the queue does not
                exist, the message is too large or Redis is unavailable
        """
        payload = job.to_dict() if isinstance(job, SyncJob) else dict(job)
        try:
            body = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise QueueError(f"Job for {self.queue_name} is not JSON serializable: {e}") from e

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hmget(self._attributes_key, "delay", "maxsize")
                pipe.time()
                (delay, maxsize), (seconds, microseconds) = await pipe.execute()

            if maxsize is None:
                raise QueueError(
                    f"Queue {self.queue_name} not found",
                    details={"namespace": self.namespace},
                )
            if int(maxsize) != -1 and len(body) > int(maxsize):
                raise QueueError(
                    f"Message for {self.queue_name} exceeds {maxsize} characters",
                    details={"size": len(body)},
                )

            message_id = make_message_id(int(seconds), int(microseconds))
            visible_at = int(seconds) * 1000 + int(microseconds) // 1000 + int(delay or 0) * 1000

            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.zadd(self._messages_key, {message_id: visible_at})
                pipe.hset(self._attributes_key, message_id, body)
                pipe.hincrby(self._attributes_key, "totalsent", 1)
                await pipe.execute()
        except RedisError as e:
            raise QueueError(f"Failed to push message to {self.queue_name}: {e}") from e

        logger.debug(f"Pushed message {message_id} to {self.queue_name}")
        return message_id

    async def pop(self) -> Optional[QueueMessage]:
        """Remove and return the oldest visible message.

        Non-blocking: returns None straight away when the queue is empty.
        The message is gone from Redis once this returns.

        Returns:
            The oldest message, or None if the queue is empty

        Raises:
            QueueError: If Redis is unavailable or the message is corrupt
        """
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(self._messages_key)
                        seconds, microseconds = await pipe.time()
                        now_ms = int(seconds) * 1000 + int(microseconds) // 1000
                        ids = await pipe.zrangebyscore(
                            self._messages_key, "-inf", now_ms, start=0, num=1
                        )
                        if not ids:
                            return None

                        message_id = ids[0]
                        pipe.multi()
                        pipe.hget(self._attributes_key, message_id)
                        pipe.zrem(self._messages_key, message_id)
                        pipe.hdel(
                            self._attributes_key,
                            message_id,
                            f"{message_id}:rc",
                            f"{message_id}:fr",
                        )
                        pipe.hincrby(self._attributes_key, "totalrecv", 1)
                        body, _, _, received = await pipe.execute(raise_on_error=False)
                        break
                    except WatchError:
                        continue
        except RedisError as e:
            raise QueueError(f"Failed to pop message from {self.queue_name}: {e}") from e

        if isinstance(received, Exception):
            logger.warning(f"Could not update totalrecv of {self.queue_name}: {received}")

        try:
            if isinstance(body, Exception):
                raise body
            data = json.loads(body)
        except (RedisError, ValueError, TypeError) as e:
            raise QueueError(
                f"Corrupt message {message_id} in {self.queue_name}: {e}",
                details={"raw": str(body)[:200]},
            ) from e

        return QueueMessage(id=message_id, data=data, sent_at=message_sent_at(message_id))

    async def size(self) -> int:
        """Number of messages in the queue."""
        try:
            return await self._redis.zcard(self._messages_key)
        except RedisError as e:
            raise QueueError(f"Failed to read size of {self.queue_name}: {e}") from e

    async def attributes(self) -> Dict[str, Any]:
        """Queue metadata as rsmq reports it.

        Returns:
            Dictionary of attributes, empty if the queue was never created
        """
        fields = ("vt", "delay", "maxsize", "totalrecv", "totalsent", "created", "modified")
        try:
            seconds, microseconds = await self._server_time()
            now_ms = seconds * 1000 + microseconds // 1000
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hmget(self._attributes_key, *fields)
                pipe.zcard(self._messages_key)
                pipe.zcount(self._messages_key, now_ms, "+inf")
                values, msgs, hidden = await pipe.execute()
        except RedisError as e:
            raise QueueError(f"Failed to read attributes of {self.queue_name}: {e}") from e

        if values[0] is None:
            return {}

        attributes: Dict[str, Any] = {"name": self.queue_name}
        attributes.update({name: int(value or 0) for name, value in zip(fields, values)})
        attributes["msgs"] = msgs
        attributes["hiddenmsgs"] = hidden
        return attributes
