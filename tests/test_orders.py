"""Tests for OrderService: creation, pricing, atomicity and status changes."""

import asyncio
from decimal import Decimal

import pytest

from tableside.core.config import Settings
from tableside.core.errors import InternalError, InvalidArgumentError, NotFoundError
from tableside.models import Order, OrderItem, OrderItemOption, OrderStatusHistory
from tableside.schemas import OrderCreate
from tableside.services.catalog import InMemoryCatalogReader
from tableside.services.events import EventType
from tableside.services.orders import OrderLocks, OrderService

from conftest import count_rows, make_order_request


class TestCreateOrder:

    async def test_two_burgers_total_twenty_and_pending(self, order_service, bus):
        order = await order_service.create_order(make_order_request([("burger", 2)]))

        assert order.status == "pending"
        assert order.total_amount == Decimal("20.00")
        assert bus.published == 1

        fetched = await order_service.get_order(order.id)
        assert fetched.total_amount == Decimal("20.00")

    async def test_total_matches_lines_and_options(self, order_service, session):
        request = make_order_request([
            ("burger", 2, [("cheese", 2), ("no-bun", 1)]),
            ("fries", 1, [("large", 1)]),
        ])
        order = await order_service.create_order(request)

        # 20.00 + 2.00 - 0.50 + 3.50 + 0.75
        assert order.total_amount == Decimal("25.75")

        items = await order_service.get_order_items(order.id)
        options = []
        for item in items:
            assert item.total_price == item.unit_price * item.quantity
            options.extend(await order_service.get_order_item_options(item.id))

        assert len(items) == 2
        assert len(options) == 3
        for option in options:
            assert option.total_price_adjustment == option.unit_price_adjustment * option.quantity

        line_sum = sum(i.total_price for i in items)
        option_sum = sum(o.total_price_adjustment for o in options)
        assert order.total_amount == line_sum + option_sum

    async def test_negative_adjustment_is_stored_as_snapshot(self, order_service):
        order = await order_service.create_order(
            make_order_request([("burger", 1, [("no-bun", 1)])])
        )
        items = await order_service.get_order_items(order.id)
        options = await order_service.get_order_item_options(items[0].id)

        assert options[0].unit_price_adjustment == Decimal("-0.50")
        assert order.total_amount == Decimal("9.50")

    async def test_catalog_price_change_does_not_touch_existing_order(
        self, order_service, catalog, session
    ):
        first = await order_service.create_order(make_order_request([("burger", 1)]))
        catalog.set_price("burger", "12.00")
        second = await order_service.create_order(make_order_request([("burger", 1)]))

        session.expire_all()
        first_items = await order_service.get_order_items(first.id)
        second_items = await order_service.get_order_items(second.id)

        assert first_items[0].unit_price == Decimal("10.00")
        assert (await order_service.get_order(first.id)).total_amount == Decimal("10.00")
        assert second_items[0].unit_price == Decimal("12.00")

    async def test_unknown_menu_item_leaves_nothing_behind(self, order_service, session, bus):
        request = make_order_request([("burger", 1), ("fries", 1), ("ghost", 1)])

        with pytest.raises(NotFoundError, match="ghost"):
            await order_service.create_order(request)

        assert await count_rows(session, Order) == 0
        assert await count_rows(session, OrderItem) == 0
        assert await count_rows(session, OrderItemOption) == 0
        assert await count_rows(session, OrderStatusHistory) == 0
        assert bus.published == 0

    async def test_unknown_option_leaves_nothing_behind(self, order_service, session, bus):
        request = make_order_request([("burger", 1, [("cheese", 1), ("truffle", 1)])])

        with pytest.raises(NotFoundError, match="truffle"):
            await order_service.create_order(request)

        assert await count_rows(session, Order) == 0
        assert await count_rows(session, OrderItem) == 0
        assert bus.published == 0

    async def test_empty_cart_is_invalid(self, order_service, session):
        request = OrderCreate.model_construct(
            restaurant_id="restaurant-1",
            table_id="table-1",
            client_id="client",
            client_name=None,
            items=[],
            notes=None,
        )
        with pytest.raises(InvalidArgumentError):
            await order_service.create_order(request)
        assert await count_rows(session, Order) == 0

    async def test_slow_catalog_times_out_without_writing(self, session, bus):
        class StalledCatalog(InMemoryCatalogReader):
            async def price_of(self, menu_item_id):
                await asyncio.sleep(5)

        service = OrderService(
            session, StalledCatalog(), bus, Settings(catalog_timeout_seconds=0.05)
        )
        with pytest.raises(InternalError, match="timed out"):
            await service.create_order(make_order_request())

        assert await count_rows(session, Order) == 0
        assert bus.published == 0

    async def test_created_event_carries_initial_status(self, order_service, bus):
        subscription = await bus.subscribe()
        order = await order_service.create_order(make_order_request())

        event = await subscription.receive(timeout=1)
        assert event.event_type == EventType.CREATED
        assert event.status == "pending"
        assert event.order_id == order.id
        assert event.restaurant_id == order.restaurant_id
        assert event.table_id == "table-7"


class TestUpdateStatus:

    async def test_scenario_preparing_after_create(self, order_service):
        order = await order_service.create_order(make_order_request([("burger", 2)]))

        updated = await order_service.update_status(order.id, "preparing")
        history = await order_service.get_status_history(order.id)

        assert updated.status == "preparing"
        assert len(history) == 2
        assert history[0].status == "preparing"
        assert history[-1].status == "pending"

    async def test_history_grows_by_one_per_call(self, order_service):
        order = await order_service.create_order(make_order_request())
        statuses = ["preparing", "ready", "preparing", "ready", "delivered"]

        for count, status in enumerate(statuses, start=1):
            await order_service.update_status(order.id, status, notes=f"step {count}")
            history = await order_service.get_status_history(order.id)
            current = await order_service.get_order(order.id)

            assert len(history) == count + 1
            assert history[0].status == current.status == status

    async def test_without_initial_entry_history_counts_only_updates(self, session, catalog, bus):
        service = OrderService(session, catalog, bus, Settings(record_initial_status=False))
        order = await service.create_order(make_order_request())
        assert await service.get_status_history(order.id) == []

        await service.update_status(order.id, "preparing")
        await service.update_status(order.id, "ready")

        history = await service.get_status_history(order.id)
        assert [h.status for h in history] == ["ready", "preparing"]

    async def test_unknown_order_is_not_found(self, order_service, session, bus):
        with pytest.raises(NotFoundError):
            await order_service.update_status("missing", "preparing")
        assert await count_rows(session, OrderStatusHistory) == 0
        assert bus.published == 0

    async def test_blank_status_is_invalid(self, order_service):
        order = await order_service.create_order(make_order_request())
        with pytest.raises(InvalidArgumentError):
            await order_service.update_status(order.id, "   ")

    async def test_free_form_status_accepted_by_default(self, order_service):
        order = await order_service.create_order(make_order_request())
        updated = await order_service.update_status(order.id, "on_hold")
        assert updated.status == "on_hold"

    async def test_status_changed_event_follows_commit(self, order_service, bus):
        order = await order_service.create_order(make_order_request())
        subscription = await bus.subscribe()

        await order_service.update_status(order.id, "preparing")

        event = await subscription.receive(timeout=1)
        assert event.event_type == EventType.STATUS_CHANGED
        assert event.status == "preparing"
        assert bus.published == 2


class TestEnforcedTransitions:

    @pytest.fixture
    def strict_service(self, session, catalog, bus):
        return OrderService(session, catalog, bus, Settings(enforce_status_transitions=True))

    async def test_happy_path(self, strict_service):
        order = await strict_service.create_order(make_order_request())
        for status in ["preparing", "ready", "delivered"]:
            order = await strict_service.update_status(order.id, status)
        assert order.status == "delivered"

    async def test_skipping_a_step_is_rejected(self, strict_service, bus):
        order = await strict_service.create_order(make_order_request())
        with pytest.raises(InvalidArgumentError, match="Cannot move"):
            await strict_service.update_status(order.id, "ready")

        assert (await strict_service.get_order(order.id)).status == "pending"
        assert len(await strict_service.get_status_history(order.id)) == 1
        assert bus.published == 1

    async def test_unknown_status_is_rejected(self, strict_service):
        order = await strict_service.create_order(make_order_request())
        with pytest.raises(InvalidArgumentError, match="Unknown status"):
            await strict_service.update_status(order.id, "on_hold")

    async def test_terminal_status_cannot_change(self, strict_service):
        order = await strict_service.create_order(make_order_request())
        await strict_service.update_status(order.id, "cancelled")
        with pytest.raises(InvalidArgumentError):
            await strict_service.update_status(order.id, "preparing")


class TestUpdateNotes:

    async def test_notes_update_publishes_updated_event(self, order_service, bus):
        order = await order_service.create_order(make_order_request(notes="window"))
        subscription = await bus.subscribe()

        updated = await order_service.update_notes(order.id, "patio")

        assert updated.notes == "patio"
        event = await subscription.receive(timeout=1)
        assert event.event_type == EventType.UPDATED

    async def test_unknown_order_is_not_found(self, order_service):
        with pytest.raises(NotFoundError):
            await order_service.update_notes("missing", "x")


def test_order_locks_are_shared_per_order_id():
    locks = OrderLocks()
    first = locks.for_order("a")
    assert locks.for_order("a") is first
    assert locks.for_order("b") is not first


async def test_concurrent_status_updates_agree_on_the_last_write(pooled_session_maker, catalog, bus, settings):
    async with pooled_session_maker() as session:
        order = await OrderService(session, catalog, bus, settings).create_order(make_order_request())
    subscription = await bus.subscribe()
    statuses = [f"step-{n}" for n in range(5)]

    async def update(status):
        async with pooled_session_maker() as session:
            await OrderService(session, catalog, bus, settings).update_status(order.id, status)

    await asyncio.gather(*(update(status) for status in statuses))

    events = [await subscription.receive(timeout=1) for _ in statuses]
    async with pooled_session_maker() as session:
        service = OrderService(session, catalog, bus, settings)
        current = await service.get_order(order.id)
        history = await service.get_status_history(order.id)

    assert sorted(e.status for e in events) == statuses
    assert len(history) == len(statuses) + 1
    assert history[-1].status == "pending"
    assert sorted(h.status for h in history[:-1]) == statuses
    assert current.status == history[0].status == events[-1].status
    # History newest-first is the reverse of the publish order
    assert [h.status for h in reversed(history[:-1])] == [e.status for e in events]
