"""Purchase order schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import Field

from requisition_crm.models.purchase_order import POStatus
from requisition_crm.models.request import RequestStatus
from requisition_crm.schemas.base import BaseCreateSchema, BaseResponseSchema, PaginatedResponse
from requisition_crm.schemas.request import RequestResponse


class POFromRequestCreate(BaseCreateSchema):
    """Issue an order against a request whose cost comparison was approved.

    ``unit_rate`` and ``gst_tax_rate`` default to the selected vendor's
    quote; ``quantity`` defaults to the whole request.
    """
    vendor_id: UUID
    valid_till: datetime
    unit_rate: Optional[Decimal] = Field(None, gt=0)
    gst_tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    quantity: Optional[Decimal] = Field(None, gt=0)
    hsn_sac_code: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None
    expected_status: Optional[RequestStatus] = None


class DirectPOCreate(BaseCreateSchema):
    """Emergency order raised without a request or cost comparison."""
    item_description: str = Field(..., min_length=1)
    quantity: Decimal
    unit: str = Field("units", min_length=1, max_length=20)
    vendor_id: UUID
    unit_rate: Decimal
    gst_tax_rate: Decimal = Field(..., ge=0, le=100)
    delivery_site_id: UUID
    valid_till: datetime
    hsn_sac_code: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class POStatusUpdate(BaseCreateSchema):
    status: POStatus
    actual_delivery_date: Optional[datetime] = None


class PurchaseOrderResponse(BaseResponseSchema):
    id: UUID
    po_number: str
    request_id: Optional[UUID] = None
    item_description: str
    hsn_sac_code: Optional[str] = None
    quantity: Decimal
    unit: str
    vendor_id: UUID
    delivery_site_id: UUID
    unit_rate: Decimal
    gst_tax_rate: Decimal
    total_amount: Decimal
    valid_till: datetime
    status: str
    is_direct: bool
    is_expired: bool
    notes: Optional[str] = None
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime
    actual_delivery_date: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[UUID] = None


class POListResponse(PaginatedResponse):
    items: List[PurchaseOrderResponse]


class POIssueResponse(BaseResponseSchema):
    purchase_order: PurchaseOrderResponse
    request: RequestResponse
    remainder: Optional[RequestResponse] = None
