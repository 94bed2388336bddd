"""
Event Bus Factory

Returns the event bus selected by EVENT_BUS_BACKEND:
    - memory → InMemoryEventBus (single process)
    - redis  → RedisEventBus over a Redis stream

Usage:
    from tableside.services.events import get_event_bus

    bus = get_event_bus()
    await bus.publish(event)
"""

import logging
from functools import lru_cache

from tableside.core.config import EventBusBackend, get_settings
from tableside.services.events.base import (
    BaseEventBus,
    BaseSubscription,
    EventType,
    OrderEvent,
)
from tableside.services.events.gateway import RestaurantStream, SubscriptionGateway
from tableside.services.events.memory import InMemoryEventBus
from tableside.services.events.redis_streams import RedisEventBus

logger = logging.getLogger(__name__)


@lru_cache()
def get_event_bus() -> BaseEventBus:
    """
    Get the configured event bus instance.

    Cached, so every producer and every gateway in the process share
    one bus.
    """
    settings = get_settings()

    if settings.event_bus_backend == EventBusBackend.REDIS:
        logger.info(f"Event Bus: Using RedisEventBus (stream={settings.event_stream_key})")
        return RedisEventBus(
            redis_url=settings.redis_url,
            stream_key=settings.event_stream_key,
            maxlen=settings.event_stream_maxlen,
            publish_retries=settings.event_publish_retries,
            block_ms=settings.event_read_block_ms,
        )

    logger.info("Event Bus: Using InMemoryEventBus")
    return InMemoryEventBus()


def reset_event_bus() -> None:
    """Clear the cached event bus instance."""
    get_event_bus.cache_clear()
    logger.debug("Event bus cache cleared")


__all__ = [
    "get_event_bus",
    "reset_event_bus",
    "BaseEventBus",
    "BaseSubscription",
    "EventType",
    "OrderEvent",
    "RestaurantStream",
    "SubscriptionGateway",
    "InMemoryEventBus",
    "RedisEventBus",
]
