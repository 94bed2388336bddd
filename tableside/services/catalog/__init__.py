"""
Catalog Reader Factory

Returns the catalog reader selected by CATALOG_BACKEND:
    - sql    → SqlCatalogReader over the shared database (default)
    - http   → HttpCatalogReader against the menu service
    - memory → InMemoryCatalogReader (empty; development only)

Usage:
    from tableside.services.catalog import get_catalog_reader

    catalog = get_catalog_reader()
    price = await catalog.price_of(menu_item_id)
"""

import logging
from functools import lru_cache

from tableside.core.config import CatalogBackend, get_settings
from tableside.database import async_session_maker
from tableside.services.catalog.base import BaseCatalogReader, to_money
from tableside.services.catalog.http import HttpCatalogReader
from tableside.services.catalog.memory import InMemoryCatalogReader
from tableside.services.catalog.sql import SqlCatalogReader

logger = logging.getLogger(__name__)


@lru_cache()
def get_catalog_reader() -> BaseCatalogReader:
    """
    Get the configured catalog reader instance.

    The instance is cached so the HTTP client and its connection pool
    are shared across requests.
    """
    settings = get_settings()

    if settings.catalog_backend == CatalogBackend.HTTP:
        logger.info(f"Catalog Reader: Using HttpCatalogReader ({settings.catalog_base_url})")
        return HttpCatalogReader(
            base_url=settings.catalog_base_url,
            timeout=settings.catalog_timeout_seconds,
        )
    if settings.catalog_backend == CatalogBackend.MEMORY:
        logger.info("Catalog Reader: Using InMemoryCatalogReader")
        return InMemoryCatalogReader()

    logger.info("Catalog Reader: Using SqlCatalogReader")
    return SqlCatalogReader(async_session_maker)


def reset_catalog_reader() -> None:
    """Clear the cached catalog reader instance."""
    get_catalog_reader.cache_clear()
    logger.debug("Catalog reader cache cleared")


__all__ = [
    "get_catalog_reader",
    "reset_catalog_reader",
    "to_money",
    "BaseCatalogReader",
    "SqlCatalogReader",
    "HttpCatalogReader",
    "InMemoryCatalogReader",
]
