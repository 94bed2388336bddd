"""
Subscription Gateway

Turns an event bus subscription into a per-restaurant push stream.

Filtering happens here, server-side: a stream only ever yields events of
its own restaurant. Redelivered events (same order, type and timestamp)
are suppressed within a bounded window. Records are rendered as
newline-delimited JSON:

    {"order_id": "...", "status": "preparing", "event_type": "status_changed", "timestamp": "..."}

The gateway is transport agnostic; the HTTP layer wraps lines() in a
streaming response. Closing the generator (client gone) closes the
subscription, and nothing here touches the Order Store.
"""

import json
import logging
from collections import deque
from typing import AsyncIterator, Optional

from tableside.services.events.base import BaseEventBus, BaseSubscription, OrderEvent

logger = logging.getLogger(__name__)


class RestaurantStream:
    """An open, restaurant-filtered view of the event bus."""

    def __init__(
        self,
        restaurant_id: str,
        subscription: BaseSubscription,
        dedupe_window: int = 256,
    ):
        self.restaurant_id = restaurant_id
        self._subscription = subscription
        self._seen: deque = deque(maxlen=dedupe_window or None)
        self._seen_keys: set = set()
        self._dedupe_window = dedupe_window

    @property
    def closed(self) -> bool:
        return self._subscription.closed

    def _is_duplicate(self, event: OrderEvent) -> bool:
        if not self._dedupe_window:
            return False
        key = event.dedupe_key
        if key in self._seen_keys:
            return True
        if len(self._seen) == self._dedupe_window:
            self._seen_keys.discard(self._seen[0])
        self._seen.append(key)
        self._seen_keys.add(key)
        return False

    async def receive(self, timeout: Optional[float] = None) -> Optional[OrderEvent]:
        """
        Next matching event, or None once the timeout elapses without one.
        Events of other restaurants are consumed and dropped.
        """
        while True:
            event = await self._subscription.receive(timeout=timeout)
            if event is None:
                return None
            if event.restaurant_id != self.restaurant_id:
                continue
            if self._is_duplicate(event):
                logger.debug(f"Dropping redelivered event {event.dedupe_key}")
                continue
            return event

    async def events(self) -> AsyncIterator[OrderEvent]:
        while not self.closed:
            event = await self.receive(timeout=1.0)
            if event is not None:
                yield event

    async def lines(self) -> AsyncIterator[str]:
        """NDJSON records until the consumer stops iterating."""
        try:
            async for event in self.events():
                yield json.dumps(event.stream_record()) + "\n"
        finally:
            await self.close()

    async def close(self) -> None:
        if not self._subscription.closed:
            await self._subscription.close()
            logger.info(f"Order stream closed for restaurant {self.restaurant_id}")


class SubscriptionGateway:
    """
    Opens restaurant streams over a shared event bus.

    Example:
        >>> gateway = SubscriptionGateway(get_event_bus())
        >>> stream = await gateway.open("restaurant-1")
        >>> async for line in stream.lines():
        ...     send(line)
    """

    def __init__(self, bus: BaseEventBus, dedupe_window: int = 256):
        self.bus = bus
        self.dedupe_window = dedupe_window

    async def open(self, restaurant_id: str) -> RestaurantStream:
        """Subscribe now; events published after this returns are observed."""
        subscription = await self.bus.subscribe()
        logger.info(f"Order stream opened for restaurant {restaurant_id} ({self.bus.provider_name} bus)")
        return RestaurantStream(restaurant_id, subscription, dedupe_window=self.dedupe_window)
