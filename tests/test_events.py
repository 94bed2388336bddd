"""Tests for the in-memory and Redis Streams event buses."""

import asyncio
from datetime import datetime, timezone

import pytest
from fakeredis import aioredis as fake_aioredis
from redis.exceptions import ConnectionError as RedisConnectionError

from tableside.services.events import (
    EventType,
    InMemoryEventBus,
    OrderEvent,
    RedisEventBus,
)


def make_event(order_id="order-1", restaurant_id="restaurant-1", status="pending",
               event_type=EventType.CREATED):
    return OrderEvent(
        order_id=order_id,
        restaurant_id=restaurant_id,
        table_id="table-1",
        status=status,
        event_type=event_type,
    )


def test_event_json_keeps_timestamp_and_type():
    event = OrderEvent(
        order_id="o",
        restaurant_id="r",
        table_id="t",
        status="ready",
        event_type=EventType.STATUS_CHANGED,
        timestamp=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
    )
    restored = OrderEvent.from_json(event.to_json())

    assert restored == event
    assert restored.dedupe_key == ("o", "status_changed", "2024-05-01T12:30:00+00:00")
    assert set(event.stream_record()) == {"order_id", "status", "event_type", "timestamp"}


class TestInMemoryEventBus:

    async def test_publish_fans_out_to_every_subscription(self):
        bus = InMemoryEventBus()
        first = await bus.subscribe()
        second = await bus.subscribe()

        await bus.publish(make_event())

        assert (await first.receive(timeout=1)).order_id == "order-1"
        assert (await second.receive(timeout=1)).order_id == "order-1"

    async def test_late_subscription_does_not_see_earlier_events(self):
        bus = InMemoryEventBus()
        await bus.publish(make_event())

        subscription = await bus.subscribe()
        assert await subscription.receive(timeout=0.05) is None

    async def test_events_of_one_order_keep_publish_order(self):
        bus = InMemoryEventBus()
        subscription = await bus.subscribe()
        statuses = ["pending", "preparing", "ready", "delivered"]

        for status in statuses:
            await bus.publish(make_event(status=status, event_type=EventType.STATUS_CHANGED))

        received = [(await subscription.receive(timeout=1)).status for _ in statuses]
        assert received == statuses

    async def test_close_detaches_and_wakes_receiver(self):
        bus = InMemoryEventBus()
        subscription = await bus.subscribe()
        assert bus.subscriber_count == 1

        await subscription.close()
        await bus.publish(make_event())

        assert bus.subscriber_count == 0
        assert subscription.closed
        assert await subscription.receive(timeout=0.05) is None

    async def test_context_manager_closes_subscription(self):
        bus = InMemoryEventBus()
        async with await bus.subscribe() as subscription:
            assert not subscription.closed
        assert subscription.closed
        assert bus.subscriber_count == 0


class TestRedisEventBus:

    @pytest.fixture
    async def client(self):
        client = fake_aioredis.FakeRedis(decode_responses=True)
        yield client
        await client.flushall()

    @pytest.fixture
    def bus(self, client):
        return RedisEventBus(client=client, stream_key="test-orders", retry_delay=0)

    async def test_subscriber_receives_published_event(self, bus):
        subscription = await bus.subscribe()
        event = make_event()

        await bus.publish(event)

        received = await subscription.receive(timeout=1)
        assert received == event

    async def test_subscription_starts_at_stream_tail(self, bus):
        await bus.publish(make_event(order_id="old"))
        subscription = await bus.subscribe()
        await bus.publish(make_event(order_id="new"))

        received = await subscription.receive(timeout=1)
        assert received.order_id == "new"

    async def test_every_subscription_reads_independently(self, bus):
        first = await bus.subscribe()
        second = await bus.subscribe()

        await bus.publish(make_event(order_id="a"))
        await bus.publish(make_event(order_id="b"))

        assert [(await first.receive(timeout=1)).order_id for _ in range(2)] == ["a", "b"]
        assert [(await second.receive(timeout=1)).order_id for _ in range(2)] == ["a", "b"]

    async def test_publish_retries_transient_errors(self, bus, client, monkeypatch):
        real_xadd = client.xadd
        calls = []

        async def flaky_xadd(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise RedisConnectionError("connection reset")
            return await real_xadd(*args, **kwargs)

        monkeypatch.setattr(client, "xadd", flaky_xadd)
        subscription = await bus.subscribe()

        await bus.publish(make_event())

        assert len(calls) == 2
        assert (await subscription.receive(timeout=1)).order_id == "order-1"

    async def test_publish_gives_up_after_retries(self, bus, client, monkeypatch):
        async def broken_xadd(*args, **kwargs):
            raise RedisConnectionError("down")

        monkeypatch.setattr(client, "xadd", broken_xadd)

        with pytest.raises(RedisConnectionError):
            await bus.publish(make_event())

    async def test_read_error_resumes_from_last_entry(self, bus, client, monkeypatch):
        subscription = await bus.subscribe()
        await bus.publish(make_event(order_id="a"))
        assert (await subscription.receive(timeout=1)).order_id == "a"

        await bus.publish(make_event(order_id="b"))
        real_xread = client.xread
        failures = []

        async def flaky_xread(*args, **kwargs):
            if not failures:
                failures.append(1)
                raise RedisConnectionError("lost")
            return await real_xread(*args, **kwargs)

        monkeypatch.setattr(client, "xread", flaky_xread)

        assert await subscription.receive(timeout=0.01) is None
        assert (await subscription.receive(timeout=1)).order_id == "b"

    async def test_receive_without_timeout_outlasts_empty_blocks(self, bus, client, monkeypatch):
        subscription = await bus.subscribe()
        await bus.publish(make_event(order_id="late"))
        real_xread = client.xread
        empty_reads = []

        async def slow_xread(*args, **kwargs):
            # Two block windows expire before the entry is handed out
            if len(empty_reads) < 2:
                empty_reads.append(1)
                return []
            return await real_xread(*args, **kwargs)

        monkeypatch.setattr(client, "xread", slow_xread)

        received = await asyncio.wait_for(subscription.receive(timeout=None), timeout=2)
        assert received.order_id == "late"
        assert len(empty_reads) == 2

    async def test_health_check(self, bus):
        assert await bus.health_check() is True
