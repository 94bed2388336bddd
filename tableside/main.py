"""
FastAPI Application Entry Point

Tableside Ordering Backend - order subsystem HTTP surface.

Endpoints:
    - POST /: Create order
    - GET /orders/{id}: Fetch order
    - PATCH /orders/{id}: Update order notes
    - POST /orders/{id}/status: Update order status
    - GET /orders/{id}/items, /order-items/{item_id}/options: Line projections
    - GET /orders/{id}/history: Status history
    - GET /restaurants/{restaurant_id}/orders/stream: NDJSON event stream
    - POST /orders/{order_id}/review, GET /restaurant/{restaurant_id}/reviews
    - GET /restaurant/{id}/metrics|menu-metrics|processing-times: Analytics
    - GET /health: System health check
"""

import asyncio
import logging
import secrets
import sys
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from tableside.core.config import Settings, get_settings, setup_logging
from tableside.core.errors import OrderingError, PermissionDeniedError
from tableside.database import engine, get_db, init_db
from tableside.schemas import (
    ErrorResponse,
    HealthResponse,
    MenuItemMetricsResponse,
    NotesUpdate,
    OrderCreate,
    OrderItemOptionResponse,
    OrderItemOptionsResponse,
    OrderItemResponse,
    OrderItemsResponse,
    OrderResponse,
    ProcessingTimeMetricsResponse,
    RestaurantMetricsResponse,
    ReviewCreate,
    ReviewResponse,
    ReviewsResponse,
    StatusHistoryEntryResponse,
    StatusHistoryResponse,
    StatusUpdate,
)
from tableside.services.analytics import AnalyticsService
from tableside.services.catalog import BaseCatalogReader, get_catalog_reader
from tableside.services.events import BaseEventBus, SubscriptionGateway, get_event_bus
from tableside.services.orders import OrderService
from tableside.services.reviews import ReviewService

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()

    bus = get_event_bus()
    catalog = get_catalog_reader()
    logger.info(f"Event Bus: {bus.provider_name}")
    logger.info(f"Catalog Reader: {catalog.provider_name}")

    for problem in settings.validate_production_config():
        logger.warning(f"Configuration: {problem}")

    logger.info("Application ready")

    yield  # Application runs

    logger.info("Shutting down...")
    await bus.close()
    await catalog.close()
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Table-side restaurant ordering: atomic order creation, status "
        "tracking, real-time order streams, reviews and analytics."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_order_service(
    db: AsyncSession = Depends(get_db),
    catalog: BaseCatalogReader = Depends(get_catalog_reader),
    bus: BaseEventBus = Depends(get_event_bus),
    app_settings: Settings = Depends(get_settings),
) -> OrderService:
    return OrderService(db, catalog, bus, app_settings)


def get_review_service(
    db: AsyncSession = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
) -> ReviewService:
    return ReviewService(db, app_settings)


def get_analytics_service(db: AsyncSession = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)


def get_gateway(
    bus: BaseEventBus = Depends(get_event_bus),
    app_settings: Settings = Depends(get_settings),
) -> SubscriptionGateway:
    return SubscriptionGateway(bus, dedupe_window=app_settings.stream_dedupe_window)


def require_stream_key(
    x_stream_key: Optional[str] = Header(None, alias="x-stream-key"),
    app_settings: Settings = Depends(get_settings),
) -> None:
    """Enforce STREAM_API_KEY on the order stream when one is configured."""
    expected = app_settings.stream_api_key
    if expected and not secrets.compare_digest(x_stream_key or "", expected):
        raise PermissionDeniedError("Invalid or missing stream key")


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    bus: BaseEventBus = Depends(get_event_bus),
) -> HealthResponse:
    """Verify the Order Store and the event bus are reachable."""

    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    bus_status = "healthy" if await bus.health_check() else "unhealthy"

    overall = "operational" if db_status == bus_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        event_bus=bus_status,
        timestamp=datetime.now(timezone.utc),
    )


# =============================================================================
# ORDER ENDPOINTS
# =============================================================================

@app.post(
    "/",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """
    Create an order from a cart.

    Prices come from the catalog, never from the request. Either the whole
    order is stored with a consistent total, or nothing is.
    """
    logger.info(
        f"Creating order for restaurant {order_data.restaurant_id}, "
        f"table {order_data.table_id} ({len(order_data.items)} line(s))"
    )
    order = await service.create_order(order_data)
    return OrderResponse.model_validate(order)


@app.get(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Get a specific order by ID."""
    return OrderResponse.model_validate(await service.get_order(order_id))


@app.patch(
    "/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def update_order_notes(
    order_id: str,
    update: NotesUpdate,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Replace the order-level notes."""
    return OrderResponse.model_validate(await service.update_notes(order_id, update.notes))


@app.post(
    "/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def update_order_status(
    order_id: str,
    update: StatusUpdate,
    service: OrderService = Depends(get_order_service),
) -> OrderResponse:
    """Change an order's status and record it in the history."""
    order = await service.update_status(order_id, update.status, update.notes)
    return OrderResponse.model_validate(order)


@app.get(
    "/orders/{order_id}/items",
    response_model=OrderItemsResponse,
    tags=["Orders"],
)
async def get_order_items(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderItemsResponse:
    items = await service.get_order_items(order_id)
    return OrderItemsResponse(items=[OrderItemResponse.model_validate(i) for i in items])


@app.get(
    "/order-items/{item_id}/options",
    response_model=OrderItemOptionsResponse,
    tags=["Orders"],
)
async def get_order_item_options(
    item_id: str,
    service: OrderService = Depends(get_order_service),
) -> OrderItemOptionsResponse:
    options = await service.get_order_item_options(item_id)
    return OrderItemOptionsResponse(
        options=[OrderItemOptionResponse.model_validate(o) for o in options]
    )


@app.get(
    "/orders/{order_id}/history",
    response_model=StatusHistoryResponse,
    tags=["Orders"],
)
async def get_order_history(
    order_id: str,
    service: OrderService = Depends(get_order_service),
) -> StatusHistoryResponse:
    """Status history, newest first."""
    history = await service.get_status_history(order_id)
    return StatusHistoryResponse(
        history=[StatusHistoryEntryResponse.model_validate(h) for h in history]
    )


# =============================================================================
# STREAMING
# =============================================================================

@app.get(
    "/restaurants/{restaurant_id}/orders/stream",
    tags=["Streaming"],
    responses={**ERROR_RESPONSES, 403: {"model": ErrorResponse}},
    summary="Real-time order events for one restaurant",
    dependencies=[Depends(require_stream_key)],
)
async def stream_orders(
    restaurant_id: str,
    gateway: SubscriptionGateway = Depends(get_gateway),
) -> StreamingResponse:
    """
    Newline-delimited JSON, one record per order event of this restaurant.
    Only events published after the connection opens are sent.
    """
    stream = await gateway.open(restaurant_id)
    return StreamingResponse(stream.lines(), media_type="application/x-ndjson")


# =============================================================================
# REVIEWS
# =============================================================================

@app.post(
    "/orders/{order_id}/review",
    response_model=ReviewResponse,
    responses=ERROR_RESPONSES,
    tags=["Reviews"],
)
async def submit_review(
    order_id: str,
    review: ReviewCreate,
    service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """Review an order. Only the client that placed it may do so."""
    return ReviewResponse.model_validate(await service.submit_review(order_id, review))


@app.get(
    "/restaurant/{restaurant_id}/reviews",
    response_model=ReviewsResponse,
    tags=["Reviews"],
)
async def get_restaurant_reviews(
    restaurant_id: str,
    service: ReviewService = Depends(get_review_service),
) -> ReviewsResponse:
    """All reviews of a restaurant, newest first."""
    reviews = await service.get_restaurant_reviews(restaurant_id)
    return ReviewsResponse(reviews=[ReviewResponse.model_validate(r) for r in reviews])


# =============================================================================
# ANALYTICS
# =============================================================================

@app.get(
    "/restaurant/{restaurant_id}/metrics",
    response_model=RestaurantMetricsResponse,
    responses=ERROR_RESPONSES,
    tags=["Analytics"],
)
async def get_restaurant_metrics(
    restaurant_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: AnalyticsService = Depends(get_analytics_service),
) -> RestaurantMetricsResponse:
    return await service.restaurant_metrics(restaurant_id, start_date, end_date)


@app.get(
    "/restaurant/{restaurant_id}/menu-metrics",
    response_model=MenuItemMetricsResponse,
    responses=ERROR_RESPONSES,
    tags=["Analytics"],
)
async def get_menu_item_metrics(
    restaurant_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: AnalyticsService = Depends(get_analytics_service),
) -> MenuItemMetricsResponse:
    return await service.menu_item_metrics(restaurant_id, start_date, end_date)


@app.get(
    "/restaurant/{restaurant_id}/processing-times",
    response_model=ProcessingTimeMetricsResponse,
    responses=ERROR_RESPONSES,
    tags=["Analytics"],
)
async def get_processing_time_metrics(
    restaurant_id: str,
    start_date: date = Query(...),
    end_date: date = Query(...),
    service: AnalyticsService = Depends(get_analytics_service),
) -> ProcessingTimeMetricsResponse:
    return await service.processing_time_metrics(restaurant_id, start_date, end_date)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderingError)
async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Render domain errors as {success, error, detail}."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are invalid arguments."""
    detail = "; ".join(
        f"{'.'.join(str(p) for p in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "invalid_argument", "detail": detail},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "internal",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )
