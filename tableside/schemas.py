"""
Pydantic Schemas for Request/Response Validation

Money fields are decimal.Decimal end to end; JSON renders them as strings
so no binary floating point is involved between the store and the client.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class OptionSelection(BaseModel):
    """An add-on option chosen for a cart line."""
    option_id: str = Field(..., min_length=1, max_length=36)
    quantity: int = Field(default=1, ge=1, examples=[1])


class CartLine(BaseModel):
    """Single line of a cart. Prices always come from the catalog."""
    menu_item_id: str = Field(..., min_length=1, max_length=36)
    quantity: int = Field(..., ge=1, examples=[2])
    options: List[OptionSelection] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=500)


class OrderCreate(BaseModel):
    """Request schema for creating a new order."""
    restaurant_id: str = Field(..., min_length=1, max_length=36)
    table_id: str = Field(..., min_length=1, max_length=36)
    client_id: str = Field(..., min_length=1, max_length=64)
    client_name: Optional[str] = Field(None, max_length=100, examples=["Table 4 guest"])
    items: List[CartLine] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)


class StatusUpdate(BaseModel):
    """Request schema for changing an order's status."""
    status: str = Field(..., min_length=1, max_length=50, examples=["preparing"])
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("status")
    @classmethod
    def strip_status(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Status must not be blank")
        return v


class NotesUpdate(BaseModel):
    """Request schema for replacing an order's notes."""
    notes: Optional[str] = Field(None, max_length=500)


class ReviewCreate(BaseModel):
    """Request schema for reviewing an order."""
    client_id: str = Field(..., min_length=1, max_length=64)
    client_name: Optional[str] = Field(None, max_length=100)
    rating: int = Field(..., ge=1, le=5, examples=[5])
    comment: Optional[str] = Field(None, max_length=2000)


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class OrderResponse(BaseModel):
    """Response schema for a single order."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    restaurant_id: str
    table_id: str
    client_id: str
    client_name: Optional[str]
    status: str
    total_amount: Decimal
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    menu_item_id: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


class OrderItemOptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_item_id: str
    option_id: str
    quantity: int
    unit_price_adjustment: Decimal
    total_price_adjustment: Decimal
    created_at: datetime
    updated_at: datetime


class StatusHistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: str
    status: str
    notes: Optional[str]
    created_at: datetime


class OrderItemsResponse(BaseModel):
    items: List[OrderItemResponse]


class OrderItemOptionsResponse(BaseModel):
    options: List[OrderItemOptionResponse]


class StatusHistoryResponse(BaseModel):
    history: List[StatusHistoryEntryResponse]


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    restaurant_id: str
    client_id: str
    client_name: Optional[str]
    rating: int
    comment: Optional[str]
    created_at: datetime


class ReviewsResponse(BaseModel):
    reviews: List[ReviewResponse]


# =============================================================================
# ANALYTICS SCHEMAS
# =============================================================================

class RestaurantMetricsResponse(BaseModel):
    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal


class MenuItemMetricsEntry(BaseModel):
    menu_item_id: str
    quantity_sold: int
    total_revenue: Decimal


class MenuItemMetricsResponse(BaseModel):
    metrics: List[MenuItemMetricsEntry]


class ProcessingTimeMetricsResponse(BaseModel):
    processed_orders: int
    average_processing_time: float
    min_processing_time: Optional[int]
    max_processing_time: Optional[int]


# =============================================================================
# GENERIC SCHEMAS
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    database: str
    event_bus: str
    timestamp: datetime
