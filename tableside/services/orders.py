"""
Order Service

The only writer of order state. Orchestrates the catalog reader, the
Order Store and the event bus.

create_order:
    1. validate the cart shape (no store access yet)
    2. price every line and option through the catalog, each lookup
       bounded by catalog_timeout_seconds
    3. one transaction: order row (total 0), line items, options, final
       total, initial history entry; any failure rolls all of it back
    4. publish "created" once the transaction has committed

update_status:
    row lock, status change and history append in one transaction, then
    publish "status_changed".

Writers of the same order id are serialised in-process from the start of
their transaction until their event is published, so one order's events
leave in commit order.
"""

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import Settings, get_settings
from tableside.core.errors import (
    InternalError,
    InvalidArgumentError,
    NotFoundError,
    OrderingError,
)
from tableside.models import (
    STATUS_TRANSITIONS,
    Order,
    OrderItem,
    OrderItemOption,
    OrderStatus,
    OrderStatusHistory,
    generate_id,
    utcnow,
)
from tableside.schemas import CartLine, OrderCreate
from tableside.services.catalog import BaseCatalogReader, to_money
from tableside.services.events import BaseEventBus, EventType, OrderEvent

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class OrderLocks:
    """asyncio locks keyed by order id, dropped once nobody holds them."""

    def __init__(self):
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()

    def for_order(self, order_id: str) -> asyncio.Lock:
        lock = self._locks.get(order_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[order_id] = lock
        return lock


order_locks = OrderLocks()


@dataclass
class PricedOption:
    option_id: str
    quantity: int
    unit_price_adjustment: Decimal

    @property
    def total_price_adjustment(self) -> Decimal:
        return to_money(self.unit_price_adjustment * self.quantity)


@dataclass
class PricedLine:
    line: CartLine
    unit_price: Decimal
    options: list[PricedOption] = field(default_factory=list)

    @property
    def total_price(self) -> Decimal:
        return to_money(self.unit_price * self.line.quantity)


class OrderService:
    """
    Order use cases bound to one database session.

    Attributes:
        session: Request-scoped AsyncSession
        catalog: Price source for menu items and options
        bus: Event bus receiving order lifecycle events
    """

    def __init__(
        self,
        session: AsyncSession,
        catalog: BaseCatalogReader,
        bus: BaseEventBus,
        settings: Optional[Settings] = None,
    ):
        self.session = session
        self.catalog = catalog
        self.bus = bus
        self.settings = settings or get_settings()

    # =========================================================================
    # TRANSACTION / PUBLISH HELPERS
    # =========================================================================

    @asynccontextmanager
    async def _transaction(self, action: str):
        """Commit on success; roll back and re-raise as a domain error otherwise."""
        try:
            yield
            await self.session.commit()
        except OrderingError:
            await self.session.rollback()
            raise
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.exception(f"Store failure while trying to {action}")
            raise InternalError(f"Failed to {action}") from e

    async def _publish(self, order: Order, event_type: EventType) -> None:
        event = OrderEvent(
            order_id=order.id,
            restaurant_id=order.restaurant_id,
            table_id=order.table_id,
            status=order.status,
            event_type=event_type,
        )
        try:
            await self.bus.publish(event)
        except Exception as e:
            logger.exception(f"Order {order.id} committed but {event_type.value} event was not published")
            raise InternalError(f"Order {order.id} saved but its event could not be published") from e

    # =========================================================================
    # PRICING
    # =========================================================================

    async def _lookup(self, coro, label: str) -> Decimal:
        try:
            return await asyncio.wait_for(coro, self.settings.catalog_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Catalog lookup for {label} timed out")
            raise InternalError(f"Catalog lookup for {label} timed out")
        except OrderingError:
            raise
        except Exception as e:
            logger.exception(f"Catalog lookup for {label} failed")
            raise InternalError(f"Catalog lookup for {label} failed") from e

    async def _price_cart(self, lines: list[CartLine]) -> list[PricedLine]:
        priced = []
        for line in lines:
            unit_price = await self._lookup(
                self.catalog.price_of(line.menu_item_id),
                f"menu item {line.menu_item_id}",
            )
            priced_line = PricedLine(line=line, unit_price=unit_price)
            for option in line.options:
                adjustment = await self._lookup(
                    self.catalog.price_adjustment_of(option.option_id),
                    f"option {option.option_id}",
                )
                priced_line.options.append(
                    PricedOption(
                        option_id=option.option_id,
                        quantity=option.quantity,
                        unit_price_adjustment=adjustment,
                    )
                )
            priced.append(priced_line)
        return priced

    @staticmethod
    def _validate_cart(request: OrderCreate) -> None:
        if not request.items:
            raise InvalidArgumentError("An order needs at least one item")
        for index, line in enumerate(request.items):
            if line.quantity <= 0:
                raise InvalidArgumentError(f"Item {index}: quantity must be positive")
            for option in line.options:
                if option.quantity <= 0:
                    raise InvalidArgumentError(
                        f"Item {index}: option {option.option_id} quantity must be positive"
                    )

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def create_order(self, request: OrderCreate) -> Order:
        """
        Create an order from a cart, priced from the catalog.

        Raises:
            InvalidArgumentError: Empty cart or non-positive quantity
            NotFoundError: Unknown menu item or option; nothing is written
            InternalError: Catalog timeout, store or publish failure
        """
        self._validate_cart(request)
        priced = await self._price_cart(request.items)

        order_id = generate_id()
        async with order_locks.for_order(order_id):
            async with self._transaction("create order"):
                order = Order(
                    id=order_id,
                    restaurant_id=request.restaurant_id,
                    table_id=request.table_id,
                    client_id=request.client_id,
                    client_name=request.client_name,
                    status=OrderStatus.PENDING.value,
                    total_amount=ZERO,
                    notes=request.notes,
                )
                self.session.add(order)
                await self.session.flush()

                total = ZERO
                for priced_line in priced:
                    item = OrderItem(
                        id=generate_id(),
                        order_id=order.id,
                        menu_item_id=priced_line.line.menu_item_id,
                        quantity=priced_line.line.quantity,
                        unit_price=priced_line.unit_price,
                        total_price=priced_line.total_price,
                        notes=priced_line.line.notes,
                    )
                    self.session.add(item)
                    await self.session.flush()
                    total += item.total_price

                    for option in priced_line.options:
                        self.session.add(
                            OrderItemOption(
                                order_item_id=item.id,
                                option_id=option.option_id,
                                quantity=option.quantity,
                                unit_price_adjustment=option.unit_price_adjustment,
                                total_price_adjustment=option.total_price_adjustment,
                            )
                        )
                        total += option.total_price_adjustment
                    await self.session.flush()

                order.total_amount = to_money(total)
                if self.settings.record_initial_status:
                    self.session.add(
                        OrderStatusHistory(order_id=order.id, status=order.status)
                    )

            logger.info(
                f"Order {order.id} created for restaurant {order.restaurant_id} "
                f"({len(priced)} line(s), total {order.total_amount})"
            )
            await self._publish(order, EventType.CREATED)

        return order

    def _check_transition(self, current: str, requested: str) -> None:
        try:
            target = OrderStatus(requested)
        except ValueError:
            valid = [s.value for s in OrderStatus]
            raise InvalidArgumentError(f"Unknown status '{requested}'. Options: {valid}")
        try:
            allowed = STATUS_TRANSITIONS[OrderStatus(current)]
        except ValueError:
            # Legacy free-form status: any known status may follow it
            return
        if target not in allowed:
            raise InvalidArgumentError(f"Cannot move order from '{current}' to '{requested}'")

    async def update_status(
        self,
        order_id: str,
        status: str,
        notes: Optional[str] = None,
    ) -> Order:
        """
        Set an order's status and append it to the history.

        Any non-empty status is accepted unless enforce_status_transitions
        is enabled, in which case the closed OrderStatus enum and the
        STATUS_TRANSITIONS table apply.

        Raises:
            InvalidArgumentError: Blank status, or rejected transition
            NotFoundError: Unknown order id
        """
        status = (status or "").strip()
        if not status:
            raise InvalidArgumentError("Status must not be empty")

        async with order_locks.for_order(order_id):
            async with self._transaction("update order status"):
                result = await self.session.execute(
                    select(Order).where(Order.id == order_id).with_for_update()
                )
                order = result.scalar_one_or_none()
                if order is None:
                    raise NotFoundError("Order not found")

                if self.settings.enforce_status_transitions:
                    self._check_transition(order.status, status)

                previous = order.status
                order.status = status
                order.updated_at = utcnow()
                self.session.add(
                    OrderStatusHistory(order_id=order.id, status=status, notes=notes)
                )

            logger.info(f"Order {order.id} status {previous} -> {status}")
            await self._publish(order, EventType.STATUS_CHANGED)

        return order

    async def update_notes(self, order_id: str, notes: Optional[str]) -> Order:
        """
        Replace the order-level notes. Publishes an "updated" event.

        Raises:
            NotFoundError: Unknown order id
        """
        async with order_locks.for_order(order_id):
            async with self._transaction("update order notes"):
                result = await self.session.execute(
                    select(Order).where(Order.id == order_id).with_for_update()
                )
                order = result.scalar_one_or_none()
                if order is None:
                    raise NotFoundError("Order not found")

                order.notes = notes
                order.updated_at = utcnow()

            logger.info(f"Order {order.id} notes updated")
            await self._publish(order, EventType.UPDATED)

        return order

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_order(self, order_id: str) -> Order:
        result = await self.session.execute(select(Order).where(Order.id == order_id))
        order = result.scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order not found")
        return order

    async def get_order_items(self, order_id: str) -> list[OrderItem]:
        result = await self.session.execute(
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.created_at, OrderItem.id)
        )
        return list(result.scalars().all())

    async def get_order_item_options(self, order_item_id: str) -> list[OrderItemOption]:
        result = await self.session.execute(
            select(OrderItemOption)
            .where(OrderItemOption.order_item_id == order_item_id)
            .order_by(OrderItemOption.created_at, OrderItemOption.id)
        )
        return list(result.scalars().all())

    async def get_status_history(self, order_id: str) -> list[OrderStatusHistory]:
        """History entries, newest first."""
        result = await self.session.execute(
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at.desc(), OrderStatusHistory.id.desc())
        )
        return list(result.scalars().all())
