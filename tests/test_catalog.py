"""Tests for the catalog readers."""

from decimal import Decimal

import httpx
import pytest

from tableside.core.errors import InternalError, NotFoundError
from tableside.models import MenuItem, MenuItemOption
from tableside.services.catalog import HttpCatalogReader, SqlCatalogReader, to_money
from tableside.services.orders import OrderService

from conftest import make_order_request


def test_to_money_rounds_half_up_to_cents():
    assert to_money("10") == Decimal("10.00")
    assert to_money("2.345") == Decimal("2.35")
    assert to_money(Decimal("-0.5")) == Decimal("-0.50")


def menu_service(request: httpx.Request) -> httpx.Response:
    routes = {
        "/menu-items/burger": {"id": "burger", "price": 10.1},
        "/menu-item-options/no-bun": {"id": "no-bun", "price_adjustment": -0.5},
        "/menu-items/broken": {"id": "broken"},
    }
    if request.url.path == "/menu-items/flaky":
        return httpx.Response(503)
    if request.url.path in routes:
        return httpx.Response(200, json=routes[request.url.path])
    return httpx.Response(404, json={"detail": "not found"})


@pytest.fixture
async def http_catalog():
    reader = HttpCatalogReader(
        base_url="http://menu.test", transport=httpx.MockTransport(menu_service)
    )
    yield reader
    await reader.close()


class TestHttpCatalogReader:

    async def test_prices_are_exact_decimals(self, http_catalog):
        assert await http_catalog.price_of("burger") == Decimal("10.10")
        assert await http_catalog.price_adjustment_of("no-bun") == Decimal("-0.50")

    async def test_unknown_ids_are_not_found(self, http_catalog):
        with pytest.raises(NotFoundError):
            await http_catalog.price_of("ghost")
        with pytest.raises(NotFoundError):
            await http_catalog.price_adjustment_of("ghost")

    async def test_server_error_propagates(self, http_catalog):
        with pytest.raises(httpx.HTTPStatusError):
            await http_catalog.price_of("flaky")

    async def test_order_creation_reports_catalog_failure_as_internal(
        self, http_catalog, session, bus, settings
    ):
        service = OrderService(session, http_catalog, bus, settings)
        with pytest.raises(InternalError):
            await service.create_order(make_order_request([("flaky", 1)]))
        with pytest.raises(InternalError):
            await service.create_order(make_order_request([("broken", 1)]))


class TestSqlCatalogReader:

    @pytest.fixture
    async def sql_catalog(self, session_maker):
        async with session_maker() as session:
            session.add(MenuItem(id="pasta", restaurant_id="restaurant-1", name="Pasta", price=Decimal("12.50")))
            session.add(MenuItemOption(id="parmesan", menu_item_id="pasta", name="Parmesan", price_adjustment=Decimal("0.80")))
            await session.commit()
        return SqlCatalogReader(session_maker)

    async def test_reads_current_prices(self, sql_catalog):
        assert await sql_catalog.price_of("pasta") == Decimal("12.50")
        assert await sql_catalog.price_adjustment_of("parmesan") == Decimal("0.80")

    async def test_missing_rows_are_not_found(self, sql_catalog):
        with pytest.raises(NotFoundError):
            await sql_catalog.price_of("ghost")
        with pytest.raises(NotFoundError):
            await sql_catalog.price_adjustment_of("ghost")
