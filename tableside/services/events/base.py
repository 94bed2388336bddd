"""
Event Bus Abstract Base Class

Defines the order event message and the publish/subscribe contract shared
by every event bus implementation.

Delivery guarantee: at-least-once. A published event reaches every
subscription that was open at publish time, possibly more than once
(publisher retry, reconnect after a lost read). Consumers dedupe on
OrderEvent.dedupe_key or treat events as hints and re-read the order.

Ordering: events of one order are delivered in publish order. Nothing is
promised across different orders.
"""

import asyncio
import enum
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


class EventType(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"


@dataclass(frozen=True)
class OrderEvent:
    """
    Order lifecycle message.

    Attributes:
        order_id: Order the event is about
        restaurant_id: Restaurant owning the order (subscription filter key)
        table_id: Table the order was placed from
        status: Order status after the change
        event_type: created, updated or status_changed
        timestamp: When the change was published (UTC)
    """
    order_id: str
    restaurant_id: str
    table_id: str
    status: str
    event_type: EventType
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def dedupe_key(self) -> tuple[str, str, str]:
        return (self.order_id, self.event_type.value, self.timestamp.isoformat())

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "order_id": self.order_id,
            "restaurant_id": self.restaurant_id,
            "table_id": self.table_id,
            "status": self.status,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def stream_record(self) -> dict:
        """The subset pushed to streaming subscribers."""
        return {
            "order_id": self.order_id,
            "status": self.status,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "OrderEvent":
        return cls(
            order_id=data["order_id"],
            restaurant_id=data["restaurant_id"],
            table_id=data["table_id"],
            status=data["status"],
            event_type=EventType(data["event_type"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )

    @classmethod
    def from_json(cls, raw: str) -> "OrderEvent":
        return cls.from_dict(json.loads(raw))


class BaseSubscription(ABC):
    """
    A live subscription to the event bus.

    Only events published after the subscription was opened are seen.
    Usable as an async context manager and as an async iterator:

        async with await bus.subscribe() as subscription:
            async for event in subscription:
                ...
    """

    @abstractmethod
    async def receive(self, timeout: Optional[float] = None) -> Optional[OrderEvent]:
        """
        Wait for the next event.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            The next event, or None if the timeout elapsed first
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Stop receiving and release resources. Safe to call twice."""
        pass

    @property
    @abstractmethod
    def closed(self) -> bool:
        pass

    async def __aenter__(self) -> "BaseSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> OrderEvent:
        while not self.closed:
            event = await self.receive(timeout=1.0)
            if event is not None:
                return event
        raise StopAsyncIteration


class BaseEventBus(ABC):
    """
    Abstract base class for event buses.

    Example:
        >>> bus = get_event_bus()
        >>> subscription = await bus.subscribe()
        >>> await bus.publish(event)
        >>> await subscription.receive(timeout=1.0)
        OrderEvent(...)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the event bus backend."""
        pass

    @abstractmethod
    async def publish(self, event: OrderEvent) -> None:
        """
        Publish an event to every open subscription.

        Raises:
            Exception: If the event could not be handed to the transport
        """
        pass

    @abstractmethod
    async def subscribe(self) -> BaseSubscription:
        """Open a subscription starting at the current end of the stream."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None


async def wait_or_none(awaitable, timeout: Optional[float]):
    """Await with an optional timeout, returning None when it elapses."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError:
        return None
