"""Inventory schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import Field, field_validator

from requisition_crm.schemas.base import (
    BaseCreateSchema, BaseUpdateSchema, BaseResponseSchema, PaginatedResponse
)
from requisition_crm.schemas.delivery import PhotoRef


class InventoryItemCreate(BaseCreateSchema):
    item_name: str = Field(..., min_length=1, max_length=200)
    unit: str = Field("units", min_length=1, max_length=20)
    central_stock: Decimal = Field(Decimal("0"), ge=0, description="Opening stock")
    vendor_ids: List[UUID] = Field(default_factory=list)


class InventoryItemUpdate(BaseUpdateSchema):
    item_name: Optional[str] = Field(None, min_length=1, max_length=200)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    vendor_ids: Optional[List[UUID]] = None
    is_active: Optional[bool] = None


class StockAdjustment(BaseCreateSchema):
    """Positive quantity receives stock, negative writes it off."""
    quantity: Decimal
    reason: str = Field(..., min_length=1)

    @field_validator("quantity")
    @classmethod
    def not_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("quantity cannot be zero")
        return v


class InventoryItemResponse(BaseResponseSchema):
    id: UUID
    item_name: str
    unit: str
    central_stock: Decimal
    vendor_ids: List[UUID] = Field(default_factory=list)
    images: List[PhotoRef] = Field(default_factory=list)
    is_active: bool
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class InventoryListResponse(PaginatedResponse):
    items: List[InventoryItemResponse]


class StockMovementResponse(BaseResponseSchema):
    id: UUID
    inventory_item_id: UUID
    movement_type: str
    quantity: Decimal
    balance_before: Decimal
    balance_after: Decimal
    request_id: Optional[UUID] = None
    reference_number: Optional[str] = None
    reason: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime


class StockAvailabilityResponse(BaseResponseSchema):
    """How a request would be filled from stock and from vendors."""
    inventory_item_id: Optional[UUID] = None
    required: Decimal
    on_hand: Decimal
    from_stock: Decimal
    from_vendor: Decimal
    covers_request: bool
    suggested_vendor_ids: List[UUID] = Field(default_factory=list)
