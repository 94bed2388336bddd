"""
In-Memory Event Bus

Single-process fan-out over asyncio queues. Each subscription owns an
unbounded queue and publish enqueues into every one of them, so nothing
is dropped while a subscription is open and per-order ordering follows
publish order.

Only suitable when the API runs as a single process (development, tests).
"""

import asyncio
import logging
from typing import Optional

from tableside.services.events.base import (
    BaseEventBus,
    BaseSubscription,
    OrderEvent,
    wait_or_none,
)

logger = logging.getLogger(__name__)


class InMemorySubscription(BaseSubscription):

    def __init__(self, bus: "InMemoryEventBus"):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _deliver(self, event: OrderEvent) -> None:
        self._queue.put_nowait(event)

    async def receive(self, timeout: Optional[float] = None) -> Optional[OrderEvent]:
        if self._closed and self._queue.empty():
            return None
        # A None item is the wake-up left behind by close()
        return await wait_or_none(self._queue.get(), timeout)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._detach(self)
        self._queue.put_nowait(None)


class InMemoryEventBus(BaseEventBus):
    """
    In-process event bus.

    Attributes:
        published: Count of events accepted by publish()
    """

    def __init__(self):
        self._subscriptions: set[InMemorySubscription] = set()
        self.published = 0

    @property
    def provider_name(self) -> str:
        return "memory"

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, event: OrderEvent) -> None:
        self.published += 1
        for subscription in list(self._subscriptions):
            subscription._deliver(event)
        logger.debug(
            f"Published {event.event_type.value} for order {event.order_id} "
            f"to {len(self._subscriptions)} subscription(s)"
        )

    async def subscribe(self) -> InMemorySubscription:
        subscription = InMemorySubscription(self)
        self._subscriptions.add(subscription)
        return subscription

    def _detach(self, subscription: InMemorySubscription) -> None:
        self._subscriptions.discard(subscription)

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.close()
