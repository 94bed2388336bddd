"""Shared fixtures: in-memory SQLite store, in-memory catalog and event bus."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("EVENT_BUS_BACKEND", "memory")
os.environ.setdefault("CATALOG_BACKEND", "memory")

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tableside import models  # noqa: F401  (registers tables on Base.metadata)
from tableside.core.config import Settings
from tableside.database import Base
from tableside.schemas import CartLine, OptionSelection, OrderCreate
from tableside.services.catalog import InMemoryCatalogReader
from tableside.services.events import InMemoryEventBus
from tableside.services.orders import OrderService

RESTAURANT = "restaurant-1"
OTHER_RESTAURANT = "restaurant-2"
CLIENT = "client-abc"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def pooled_session_maker(tmp_path):
    """Sessions on separate connections to one file database, for concurrent writers."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def catalog():
    return InMemoryCatalogReader(
        items={"burger": "10.00", "fries": "3.50", "soda": "2.25"},
        options={"cheese": "1.00", "no-bun": "-0.50", "large": "0.75"},
    )


@pytest.fixture
def bus():
    return InMemoryEventBus()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def order_service(session, catalog, bus, settings):
    return OrderService(session, catalog, bus, settings)


def make_order_request(lines=None, restaurant_id=RESTAURANT, client_id=CLIENT, **overrides) -> OrderCreate:
    """OrderCreate for the given (menu_item_id, quantity[, options]) tuples."""
    lines = lines or [("burger", 2)]
    items = []
    for line in lines:
        menu_item_id, quantity, *rest = line
        options = [OptionSelection(option_id=o, quantity=q) for o, q in (rest[0] if rest else [])]
        items.append(CartLine(menu_item_id=menu_item_id, quantity=quantity, options=options))
    data = {
        "restaurant_id": restaurant_id,
        "table_id": "table-7",
        "client_id": client_id,
        "client_name": "Guest",
        "items": items,
    }
    data.update(overrides)
    return OrderCreate(**data)


async def count_rows(session, model) -> int:
    return await session.scalar(select(func.count()).select_from(model))
