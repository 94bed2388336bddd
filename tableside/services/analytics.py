"""
Analytics Service

Nightly aggregation of one UTC day of orders into summary rows, and the
read side that sums those rows over a date range.

Each aggregation run builds its own DailyMetricsAccumulator keyed by
restaurant id and throws it away afterwards; no totals are kept between
runs. Re-running a day replaces that day's rows.

Processing time is measured from order creation to the first "delivered"
history entry; orders without one are left out of the processing stats.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import InvalidArgumentError
from tableside.models import (
    DailyMenuItemMetrics,
    DailyRestaurantMetrics,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
)
from tableside.schemas import (
    MenuItemMetricsEntry,
    MenuItemMetricsResponse,
    ProcessingTimeMetricsResponse,
    RestaurantMetricsResponse,
)
from tableside.services.catalog import to_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class MenuItemDay:
    quantity_sold: int = 0
    total_revenue: Decimal = ZERO


@dataclass
class RestaurantDay:
    total_orders: int = 0
    total_revenue: Decimal = ZERO
    processing_seconds: list[int] = field(default_factory=list)
    menu_items: dict[str, MenuItemDay] = field(default_factory=lambda: defaultdict(MenuItemDay))


class DailyMetricsAccumulator:
    """Per-run totals for a single day, keyed by restaurant id."""

    def __init__(self, day: date):
        self.day = day
        self._restaurants: dict[str, RestaurantDay] = defaultdict(RestaurantDay)

    @property
    def restaurant_ids(self) -> list[str]:
        return sorted(self._restaurants)

    def get(self, restaurant_id: str) -> RestaurantDay:
        return self._restaurants[restaurant_id]

    def add_order(self, restaurant_id: str, total_amount: Decimal) -> None:
        restaurant = self._restaurants[restaurant_id]
        restaurant.total_orders += 1
        restaurant.total_revenue += to_money(total_amount)

    def add_line_item(
        self,
        restaurant_id: str,
        menu_item_id: str,
        quantity: int,
        total_price: Decimal,
    ) -> None:
        item = self._restaurants[restaurant_id].menu_items[menu_item_id]
        item.quantity_sold += quantity
        item.total_revenue += to_money(total_price)

    def add_processing_time(self, restaurant_id: str, seconds: int) -> None:
        self._restaurants[restaurant_id].processing_seconds.append(max(0, seconds))

    def restaurant_rows(self) -> list[DailyRestaurantMetrics]:
        rows = []
        for restaurant_id in self.restaurant_ids:
            restaurant = self._restaurants[restaurant_id]
            seconds = restaurant.processing_seconds
            rows.append(
                DailyRestaurantMetrics(
                    restaurant_id=restaurant_id,
                    date=self.day,
                    total_orders=restaurant.total_orders,
                    total_revenue=restaurant.total_revenue,
                    processed_orders=len(seconds),
                    total_processing_seconds=sum(seconds),
                    min_processing_seconds=min(seconds) if seconds else None,
                    max_processing_seconds=max(seconds) if seconds else None,
                )
            )
        return rows

    def menu_item_rows(self) -> list[DailyMenuItemMetrics]:
        rows = []
        for restaurant_id in self.restaurant_ids:
            for menu_item_id, item in sorted(self._restaurants[restaurant_id].menu_items.items()):
                rows.append(
                    DailyMenuItemMetrics(
                        restaurant_id=restaurant_id,
                        menu_item_id=menu_item_id,
                        date=self.day,
                        quantity_sold=item.quantity_sold,
                        total_revenue=item.total_revenue,
                    )
                )
        return rows


def day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


async def collect_day(session: AsyncSession, day: date) -> DailyMetricsAccumulator:
    """Read one UTC day of orders into a fresh accumulator."""
    start, end = day_bounds(day)
    in_window = (Order.created_at >= start, Order.created_at < end)
    accumulator = DailyMetricsAccumulator(day)

    orders = await session.execute(
        select(Order.restaurant_id, Order.total_amount).where(*in_window)
    )
    for restaurant_id, total_amount in orders:
        accumulator.add_order(restaurant_id, total_amount)

    items = await session.execute(
        select(
            Order.restaurant_id,
            OrderItem.menu_item_id,
            OrderItem.quantity,
            OrderItem.total_price,
        )
        .join(Order, Order.id == OrderItem.order_id)
        .where(*in_window)
    )
    for restaurant_id, menu_item_id, quantity, total_price in items:
        accumulator.add_line_item(restaurant_id, menu_item_id, quantity, total_price)

    delivered = await session.execute(
        select(
            Order.restaurant_id,
            Order.created_at,
            func.min(OrderStatusHistory.created_at),
        )
        .join(OrderStatusHistory, OrderStatusHistory.order_id == Order.id)
        .where(*in_window, OrderStatusHistory.status == OrderStatus.DELIVERED.value)
        .group_by(Order.id, Order.restaurant_id, Order.created_at)
    )
    for restaurant_id, created_at, delivered_at in delivered:
        accumulator.add_processing_time(
            restaurant_id, int((delivered_at - created_at).total_seconds())
        )

    return accumulator


async def store_day(session: AsyncSession, accumulator: DailyMetricsAccumulator) -> None:
    """Replace the stored rows of the accumulator's day in one transaction."""
    try:
        await session.execute(
            delete(DailyRestaurantMetrics).where(DailyRestaurantMetrics.date == accumulator.day)
        )
        await session.execute(
            delete(DailyMenuItemMetrics).where(DailyMenuItemMetrics.date == accumulator.day)
        )
        session.add_all(accumulator.restaurant_rows())
        session.add_all(accumulator.menu_item_rows())
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def aggregate_day(session: AsyncSession, day: date) -> dict:
    """Collect and store one day. Returns a small summary for logging."""
    accumulator = await collect_day(session, day)
    await store_day(session, accumulator)

    summary = {
        "date": day.isoformat(),
        "restaurants": len(accumulator.restaurant_ids),
        "orders": sum(accumulator.get(r).total_orders for r in accumulator.restaurant_ids),
    }
    logger.info(
        f"Aggregated {summary['orders']} order(s) across "
        f"{summary['restaurants']} restaurant(s) for {summary['date']}"
    )
    return summary


class AnalyticsService:
    """Read side over the daily metrics tables."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _check_range(start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise InvalidArgumentError("start_date must not be after end_date")

    async def restaurant_metrics(
        self,
        restaurant_id: str,
        start_date: date,
        end_date: date,
    ) -> RestaurantMetricsResponse:
        self._check_range(start_date, end_date)
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(DailyRestaurantMetrics.total_orders), 0),
                func.coalesce(func.sum(DailyRestaurantMetrics.total_revenue), 0),
            ).where(
                DailyRestaurantMetrics.restaurant_id == restaurant_id,
                DailyRestaurantMetrics.date.between(start_date, end_date),
            )
        )
        total_orders, total_revenue = result.one()
        total_orders = int(total_orders)
        total_revenue = to_money(total_revenue)
        average = to_money(total_revenue / total_orders) if total_orders else ZERO

        return RestaurantMetricsResponse(
            total_orders=total_orders,
            total_revenue=total_revenue,
            average_order_value=average,
        )

    async def menu_item_metrics(
        self,
        restaurant_id: str,
        start_date: date,
        end_date: date,
    ) -> MenuItemMetricsResponse:
        self._check_range(start_date, end_date)
        quantity = func.sum(DailyMenuItemMetrics.quantity_sold)
        result = await self.session.execute(
            select(
                DailyMenuItemMetrics.menu_item_id,
                quantity,
                func.sum(DailyMenuItemMetrics.total_revenue),
            )
            .where(
                DailyMenuItemMetrics.restaurant_id == restaurant_id,
                DailyMenuItemMetrics.date.between(start_date, end_date),
            )
            .group_by(DailyMenuItemMetrics.menu_item_id)
            .order_by(quantity.desc(), DailyMenuItemMetrics.menu_item_id)
        )
        return MenuItemMetricsResponse(
            metrics=[
                MenuItemMetricsEntry(
                    menu_item_id=menu_item_id,
                    quantity_sold=int(sold),
                    total_revenue=to_money(revenue),
                )
                for menu_item_id, sold, revenue in result
            ]
        )

    async def processing_time_metrics(
        self,
        restaurant_id: str,
        start_date: date,
        end_date: date,
    ) -> ProcessingTimeMetricsResponse:
        self._check_range(start_date, end_date)
        result = await self.session.execute(
            select(
                func.coalesce(func.sum(DailyRestaurantMetrics.processed_orders), 0),
                func.coalesce(func.sum(DailyRestaurantMetrics.total_processing_seconds), 0),
                func.min(DailyRestaurantMetrics.min_processing_seconds),
                func.max(DailyRestaurantMetrics.max_processing_seconds),
            ).where(
                DailyRestaurantMetrics.restaurant_id == restaurant_id,
                DailyRestaurantMetrics.date.between(start_date, end_date),
            )
        )
        processed, total_seconds, fastest, slowest = result.one()
        processed = int(processed)
        average: float = round(int(total_seconds) / processed, 1) if processed else 0.0

        return ProcessingTimeMetricsResponse(
            processed_orders=processed,
            average_processing_time=average,
            min_processing_time=fastest,
            max_processing_time=slowest,
        )
