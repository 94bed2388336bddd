"""
In-Memory Catalog Reader

Dictionary backed catalog used in development and by the test-suite.
Prices can be changed at runtime, which is how price freezing is exercised.
"""

import logging
from decimal import Decimal
from typing import Optional

from tableside.core.errors import NotFoundError
from tableside.services.catalog.base import BaseCatalogReader, to_money

logger = logging.getLogger(__name__)


class InMemoryCatalogReader(BaseCatalogReader):
    """
    Catalog reader over plain dictionaries.

    Example:
        >>> catalog = InMemoryCatalogReader(items={"burger": "10.00"})
        >>> await catalog.price_of("burger")
        Decimal('10.00')
    """

    def __init__(
        self,
        items: Optional[dict] = None,
        options: Optional[dict] = None,
    ):
        self._items = {k: to_money(v) for k, v in (items or {}).items()}
        self._options = {k: to_money(v) for k, v in (options or {}).items()}

    @property
    def provider_name(self) -> str:
        return "memory"

    def set_price(self, menu_item_id: str, price) -> None:
        self._items[menu_item_id] = to_money(price)

    def set_price_adjustment(self, option_id: str, adjustment) -> None:
        self._options[option_id] = to_money(adjustment)

    async def price_of(self, menu_item_id: str) -> Decimal:
        try:
            return self._items[menu_item_id]
        except KeyError:
            raise NotFoundError(f"Menu item {menu_item_id} not found")

    async def price_adjustment_of(self, option_id: str) -> Decimal:
        try:
            return self._options[option_id]
        except KeyError:
            raise NotFoundError(f"Menu option {option_id} not found")
