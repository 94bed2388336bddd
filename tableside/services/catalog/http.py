"""
HTTP Catalog Reader

Reads prices from the menu service over HTTP:

    GET {base_url}/menu-items/{id}          -> {"price": 10.00, ...}
    GET {base_url}/menu-item-options/{id}   -> {"price_adjustment": -1.50, ...}

A 404 from the menu service is reported as NotFoundError; any other
non-success status raises httpx.HTTPStatusError for the caller to handle.
"""

import logging
from decimal import Decimal
from typing import Optional

import httpx

from tableside.core.errors import NotFoundError
from tableside.services.catalog.base import BaseCatalogReader, to_money

logger = logging.getLogger(__name__)


class HttpCatalogReader(BaseCatalogReader):
    """
    Catalog reader backed by the menu service API.

    Attributes:
        base_url: Menu service root URL
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )
        logger.info(f"HttpCatalogReader initialized (base_url={base_url})")

    @property
    def provider_name(self) -> str:
        return "http"

    async def _fetch_field(self, path: str, field: str, label: str, ident: str) -> Decimal:
        response = await self.client.get(path)
        if response.status_code == 404:
            raise NotFoundError(f"{label} {ident} not found")
        response.raise_for_status()

        payload = response.json(parse_float=Decimal)
        if field not in payload:
            raise ValueError(f"Menu service response for {label} {ident} has no '{field}'")
        return to_money(payload[field])

    async def price_of(self, menu_item_id: str) -> Decimal:
        return await self._fetch_field(
            f"/menu-items/{menu_item_id}", "price", "Menu item", menu_item_id
        )

    async def price_adjustment_of(self, option_id: str) -> Decimal:
        return await self._fetch_field(
            f"/menu-item-options/{option_id}", "price_adjustment", "Menu option", option_id
        )

    async def close(self) -> None:
        await self.client.aclose()
