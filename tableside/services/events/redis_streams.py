"""
Redis Streams Event Bus

Events are appended to one capped Redis stream with XADD and read with
XREAD by every subscription independently, so a single publish fans out
to all readers.

At-least-once:
    - publish retries XADD on connection errors; a retry after a write
      that actually landed produces a duplicate entry
    - a subscription tracks the id of the last entry it handed out and,
      after a connection error, resumes reading from that id

A subscription starts at the stream tail seen when it was opened, so
it never replays history. The stream is capped at event_stream_maxlen
entries (approximate trim), which bounds how far behind a slow reader
may fall before entries are trimmed away underneath it.
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from tableside.services.events.base import BaseEventBus, BaseSubscription, OrderEvent

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError)
EVENT_FIELD = "event"


class RedisStreamSubscription(BaseSubscription):

    def __init__(
        self,
        client: aioredis.Redis,
        stream_key: str,
        last_id: str,
        block_ms: int = 5000,
        batch_size: int = 100,
    ):
        self._client = client
        self._stream_key = stream_key
        self._last_id = last_id
        self._block_ms = block_ms
        self._batch_size = batch_size
        self._buffer: list[tuple[str, OrderEvent]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def last_id(self) -> str:
        return self._last_id

    async def _fill(self, block_ms: int) -> None:
        response = await self._client.xread(
            {self._stream_key: self._last_id},
            count=self._batch_size,
            block=block_ms,
        )
        for _stream, entries in response or []:
            for entry_id, fields in entries:
                try:
                    event = OrderEvent.from_json(fields[EVENT_FIELD])
                except (KeyError, ValueError):
                    logger.exception(f"Skipping malformed entry {entry_id} on {self._stream_key}")
                    self._last_id = entry_id
                    continue
                self._buffer.append((entry_id, event))

    async def receive(self, timeout: Optional[float] = None) -> Optional[OrderEvent]:
        # With no timeout, keep issuing XREAD blocks until an event or close()
        block_ms = self._block_ms if timeout is None else max(1, int(timeout * 1000))
        while not self._closed:
            if not self._buffer:
                try:
                    await self._fill(block_ms)
                except TRANSIENT_ERRORS as e:
                    # The next read resumes from the last handed-out id
                    logger.warning(f"Stream read failed, will resume after {self._last_id}: {e}")
                    await asyncio.sleep(min(1.0, timeout or 1.0))
                    if timeout is not None:
                        return None
                    continue

            if self._buffer:
                entry_id, event = self._buffer.pop(0)
                self._last_id = entry_id
                return event
            if timeout is not None:
                return None
        return None

    async def close(self) -> None:
        self._closed = True
        self._buffer.clear()


class RedisEventBus(BaseEventBus):
    """
    Event bus backed by a Redis stream.

    Attributes:
        stream_key: Name of the Redis stream
        maxlen: Approximate maximum number of retained entries
        publish_retries: Attempts per publish before the error propagates
        block_ms: XREAD block time for open-ended receives
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        stream_key: str = "order-events",
        maxlen: int = 10000,
        publish_retries: int = 3,
        block_ms: int = 5000,
        retry_delay: float = 0.1,
        client: Optional[aioredis.Redis] = None,
    ):
        if client is None:
            client = aioredis.from_url(redis_url, decode_responses=True)
        self.client = client
        self.stream_key = stream_key
        self.maxlen = maxlen
        self.publish_retries = publish_retries
        self.block_ms = block_ms
        self.retry_delay = retry_delay

        logger.info(
            f"RedisEventBus initialized "
            f"(stream={stream_key}, maxlen={maxlen}, retries={publish_retries})"
        )

    @property
    def provider_name(self) -> str:
        return "redis"

    async def publish(self, event: OrderEvent) -> None:
        for attempt in range(1, self.publish_retries + 1):
            try:
                await self.client.xadd(
                    self.stream_key,
                    {EVENT_FIELD: event.to_json()},
                    maxlen=self.maxlen,
                    approximate=True,
                )
                return
            except TRANSIENT_ERRORS as e:
                if attempt == self.publish_retries:
                    logger.error(
                        f"Giving up publishing {event.event_type.value} for order "
                        f"{event.order_id} after {attempt} attempts: {e}"
                    )
                    raise
                logger.warning(
                    f"Publish attempt {attempt} for order {event.order_id} failed, retrying: {e}"
                )
                await asyncio.sleep(self.retry_delay * attempt)

    async def subscribe(self) -> RedisStreamSubscription:
        latest = await self.client.xrevrange(self.stream_key, count=1)
        last_id = latest[0][0] if latest else "0-0"
        return RedisStreamSubscription(
            self.client,
            self.stream_key,
            last_id=last_id,
            block_ms=self.block_ms,
        )

    async def health_check(self) -> bool:
        try:
            return bool(await self.client.ping())
        except TRANSIENT_ERRORS as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self.client.aclose()
