"""
SQL Catalog Reader

Reads prices from the menu subsystem's tables in the shared database.
Every lookup runs in its own short session so no catalog read ever joins
the order write transaction.
"""

import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tableside.core.errors import NotFoundError
from tableside.models import MenuItem, MenuItemOption
from tableside.services.catalog.base import BaseCatalogReader, to_money

logger = logging.getLogger(__name__)


class SqlCatalogReader(BaseCatalogReader):
    """Catalog reader over the menu_items and menu_item_options tables."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @property
    def provider_name(self) -> str:
        return "sql"

    async def price_of(self, menu_item_id: str) -> Decimal:
        async with self._session_maker() as session:
            result = await session.execute(
                select(MenuItem.price).where(MenuItem.id == menu_item_id)
            )
            price = result.scalar_one_or_none()

        if price is None:
            raise NotFoundError(f"Menu item {menu_item_id} not found")
        return to_money(price)

    async def price_adjustment_of(self, option_id: str) -> Decimal:
        async with self._session_maker() as session:
            result = await session.execute(
                select(MenuItemOption.price_adjustment).where(MenuItemOption.id == option_id)
            )
            adjustment = result.scalar_one_or_none()

        if adjustment is None:
            raise NotFoundError(f"Menu option {option_id} not found")
        return to_money(adjustment)
