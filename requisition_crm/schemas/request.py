"""Request schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from uuid import UUID

from pydantic import Field

from requisition_crm.models.request import RequestStatus
from requisition_crm.schemas.base import (
    BaseCreateSchema, BaseUpdateSchema, BaseResponseSchema, PaginatedResponse
)


# ==================== Inputs ====================

class RequestItemCreate(BaseCreateSchema):
    item_name: str = Field(..., min_length=1, max_length=255)
    quantity: Decimal = Field(..., gt=0)
    unit: str = Field("units", min_length=1, max_length=20)
    description: Optional[str] = None
    is_urgent: bool = False
    required_by: Optional[datetime] = None
    notes: Optional[str] = None


class RequestCreate(BaseCreateSchema):
    """One submission; every item shares the allocated request number."""
    site_id: UUID
    items: List[RequestItemCreate] = Field(..., min_length=1)
    as_draft: bool = Field(False, description="Keep as draft instead of submitting")


class RequestUpdate(BaseUpdateSchema):
    item_name: Optional[str] = Field(None, min_length=1, max_length=255)
    quantity: Optional[Decimal] = Field(None, gt=0)
    unit: Optional[str] = Field(None, min_length=1, max_length=20)
    description: Optional[str] = None
    is_urgent: Optional[bool] = None
    required_by: Optional[datetime] = None
    notes: Optional[str] = None
    expected_status: Optional[RequestStatus] = None


class RequestTransition(BaseCreateSchema):
    """Body for plain status actions (submit, approve, forward)."""
    expected_status: Optional[RequestStatus] = Field(
        None, description="Status the caller last saw; a mismatch returns 409"
    )
    notes: Optional[str] = None


class RequestReject(BaseCreateSchema):
    reason: str = Field(..., min_length=1)
    expected_status: Optional[RequestStatus] = None


class ReadyForDeliveryRequest(BaseCreateSchema):
    quantity: Decimal = Field(..., gt=0, description="Quantity moving to delivery")
    expected_status: Optional[RequestStatus] = None
    notes: Optional[str] = None


# ==================== Responses ====================

class RequestResponse(BaseResponseSchema):
    id: UUID
    request_number: str
    item_order: int
    split_sequence: int
    parent_request_id: Optional[UUID] = None
    item_name: str
    quantity: Decimal
    delivered_quantity: Decimal
    remaining_quantity: Decimal
    unit: str
    description: Optional[str] = None
    is_urgent: bool
    notes: Optional[str] = None
    status: str
    version: int
    site_id: UUID
    creator_id: UUID
    required_by: Optional[datetime] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[UUID] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    delivery_marked_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class RequestBatchResponse(BaseResponseSchema):
    request_number: str
    items: List[RequestResponse]


class RequestListResponse(PaginatedResponse):
    items: List[RequestResponse]


class RequestSplitResponse(BaseResponseSchema):
    """Item moved forward plus the remainder left behind, if any."""
    request: RequestResponse
    remainder: Optional[RequestResponse] = None


class RequestStatusHistoryResponse(BaseResponseSchema):
    id: UUID
    request_id: UUID
    from_status: Optional[str] = None
    to_status: str
    action: str
    version: int
    actor_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime


class NextNumberResponse(BaseResponseSchema):
    scope: str
    next_number: str
