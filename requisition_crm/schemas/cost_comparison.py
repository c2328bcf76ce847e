"""Cost comparison schemas."""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, List
from uuid import UUID

from pydantic import Field

from requisition_crm.schemas.base import BaseCreateSchema, BaseResponseSchema


class VendorQuoteInput(BaseCreateSchema):
    vendor_id: UUID
    unit_price: Decimal = Field(..., ge=0)
    quoted_quantity: Optional[Decimal] = Field(None, gt=0)
    unit: Optional[str] = Field(None, max_length=20)
    discount_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    gst_percent: Optional[Decimal] = Field(None, ge=0, le=100)


class CostComparisonUpsert(BaseCreateSchema):
    """Quotes in display order. Replaces whatever was saved before."""
    vendor_quotes: List[VendorQuoteInput] = Field(default_factory=list)
    is_direct_delivery: bool = False


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class CostComparisonReview(BaseCreateSchema):
    action: ReviewAction
    selected_vendor_id: Optional[UUID] = None
    notes: Optional[str] = None


class VendorQuoteResponse(BaseResponseSchema):
    position: int
    vendor_id: UUID
    unit_price: Decimal
    quoted_quantity: Optional[Decimal] = None
    unit: Optional[str] = None
    discount_percent: Optional[Decimal] = None
    gst_percent: Optional[Decimal] = None
    net_unit_price: Optional[Decimal] = None


class CostComparisonResponse(BaseResponseSchema):
    id: UUID
    request_id: UUID
    vendor_quotes: List[VendorQuoteResponse]
    is_direct_delivery: bool
    status: str
    selected_vendor_id: Optional[UUID] = None
    manager_notes: Optional[str] = None
    created_by: Optional[UUID] = None
    submitted_at: Optional[datetime] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
