"""
Catalog Reader Abstract Base Class

Read-only view of the menu subsystem's pricing catalog, as seen from the
order subsystem. Prices returned here are snapshotted onto order lines;
nothing in the order subsystem keeps a live reference to them.

Implementations:
    - SqlCatalogReader: menu tables in the shared database
    - HttpCatalogReader: the menu service's HTTP API
    - InMemoryCatalogReader: a dictionary, for development and tests
"""

from abc import ABC, abstractmethod
from decimal import Decimal, ROUND_HALF_UP

CENTS = Decimal("0.01")


def to_money(value) -> Decimal:
    """Quantize any numeric value to two decimal places without using floats."""
    if isinstance(value, float):
        value = repr(value)
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class BaseCatalogReader(ABC):
    """
    Abstract base class for catalog readers.

    Both lookups raise NotFoundError for unknown ids. Any other failure
    propagates to the caller, which decides how to surface it.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the catalog backend."""
        pass

    @abstractmethod
    async def price_of(self, menu_item_id: str) -> Decimal:
        """
        Current price of a menu item.

        Raises:
            NotFoundError: If the menu item does not exist
        """
        pass

    @abstractmethod
    async def price_adjustment_of(self, option_id: str) -> Decimal:
        """
        Current price adjustment of a menu item option (may be negative).

        Raises:
            NotFoundError: If the option does not exist
        """
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None
