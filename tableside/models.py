"""
SQLAlchemy Database Models

Order Store tables:
- orders / order_items / order_item_options (priced at order time)
- order_status_history (append-only)
- reviews (one per order, enforced by the review service)

Read-only catalog tables owned by the menu subsystem, and the daily
analytics tables written by the aggregation job, live here too so that
the whole schema shares one metadata object.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)

from tableside.database import Base


def generate_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Two-decimal fixed point; values round-trip as decimal.Decimal
Money = Numeric(10, 2, asdecimal=True)


class OrderStatus(str, enum.Enum):
    """Known order statuses, used when transitions are enforced."""
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# Allowed next statuses for each status; terminal statuses map to nothing.
STATUS_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


class Order(Base):
    """
    One order placed from a table.

    total_amount always equals the sum of the line item totals plus the
    option adjustments once the create transaction has committed.
    Status is a plain string; see OrderStatus for the closed variant.
    """
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=generate_id)

    restaurant_id = Column(String(36), nullable=False, index=True)
    table_id = Column(String(36), nullable=False)

    # Anonymous device token, not a user account
    client_id = Column(String(64), nullable=False, index=True)
    client_name = Column(String(100), nullable=True)

    status = Column(String(50), nullable=False, default=OrderStatus.PENDING.value, index=True)
    total_amount = Column(Money, nullable=False, default=0)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Order {self.id} - restaurant {self.restaurant_id} - {self.status} - {self.total_amount}>"


class OrderItem(Base):
    """A cart line, with the menu price captured when the order was placed."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = Column(String(36), nullable=False, index=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Money, nullable=False)
    total_price = Column(Money, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<OrderItem {self.id} - {self.quantity} x {self.menu_item_id} @ {self.unit_price}>"


class OrderItemOption(Base):
    """An option selected on a line; the adjustment may be negative."""
    __tablename__ = "order_item_options"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_item_options_quantity_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    order_item_id = Column(String(36), ForeignKey("order_items.id"), nullable=False, index=True)
    option_id = Column(String(36), nullable=False)

    quantity = Column(Integer, nullable=False)
    unit_price_adjustment = Column(Money, nullable=False)
    total_price_adjustment = Column(Money, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class OrderStatusHistory(Base):
    """Append-only record of status changes."""
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(50), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<OrderStatusHistory {self.order_id} -> {self.status}>"


class Review(Base):
    """
    Post-order rating. restaurant_id is copied from the order at
    submission time so restaurant listings need no join.
    """
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("order_id", name="uq_reviews_order"),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    restaurant_id = Column(String(36), nullable=False, index=True)
    client_id = Column(String(64), nullable=False)
    client_name = Column(String(100), nullable=True)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)


# =============================================================================
# CATALOG (owned by the menu subsystem, read-only here)
# =============================================================================

class MenuItem(Base):
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=generate_id)
    restaurant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Money, nullable=False)


class MenuItemOption(Base):
    __tablename__ = "menu_item_options"

    id = Column(String(36), primary_key=True, default=generate_id)
    menu_item_id = Column(String(36), ForeignKey("menu_items.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    price_adjustment = Column(Money, nullable=False, default=0)


# =============================================================================
# ANALYTICS (written by the nightly aggregation job)
# =============================================================================

class DailyRestaurantMetrics(Base):
    """Per restaurant, per UTC day summary."""
    __tablename__ = "daily_restaurant_metrics"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "date", name="uq_daily_restaurant_metrics_day"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(String(36), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    total_orders = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Money, nullable=False, default=0)

    # Seconds from order creation to the first "delivered" history entry
    processed_orders = Column(Integer, nullable=False, default=0)
    total_processing_seconds = Column(Integer, nullable=False, default=0)
    min_processing_seconds = Column(Integer, nullable=True)
    max_processing_seconds = Column(Integer, nullable=True)


class DailyMenuItemMetrics(Base):
    """Per menu item, per UTC day sales."""
    __tablename__ = "daily_menu_item_metrics"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "menu_item_id", "date", name="uq_daily_menu_item_metrics_day"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    restaurant_id = Column(String(36), nullable=False, index=True)
    menu_item_id = Column(String(36), nullable=False)
    date = Column(Date, nullable=False, index=True)
    quantity_sold = Column(Integer, nullable=False, default=0)
    total_revenue = Column(Money, nullable=False, default=0)
