"""Delivery challan schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from requisition_crm.models.delivery import DeliveryType, PaymentStatus, REQUIRED_FIELDS_BY_TYPE
from requisition_crm.models.request import RequestStatus
from requisition_crm.schemas.base import BaseCreateSchema, BaseUpdateSchema, BaseResponseSchema
from requisition_crm.schemas.request import RequestResponse


class PhotoRef(BaseModel):
    """Reference to an object already uploaded to storage."""
    url: str = Field(..., min_length=1)
    key: str = Field(..., min_length=1)


class DeliveryCreate(BaseCreateSchema):
    quantity: Decimal = Field(..., gt=0)
    delivery_type: DeliveryType
    purchase_order_id: Optional[UUID] = None

    delivery_person: Optional[str] = Field(None, max_length=100)
    delivery_contact: Optional[str] = Field(None, max_length=20)
    vehicle_number: Optional[str] = Field(None, max_length=20)
    transport_name: Optional[str] = Field(None, max_length=100)
    transport_id: Optional[str] = Field(None, max_length=50)
    receiver_name: Optional[str] = Field(None, max_length=100)
    purchaser_name: Optional[str] = Field(None, max_length=100)

    loading_photo: Optional[PhotoRef] = None
    invoice_photo: Optional[PhotoRef] = None
    receipt_photo: Optional[PhotoRef] = None

    payment_amount: Optional[Decimal] = Field(None, ge=0)
    expected_status: Optional[RequestStatus] = None

    @model_validator(mode="after")
    def check_fields_for_type(self):
        missing = [
            name for name in REQUIRED_FIELDS_BY_TYPE[self.delivery_type]
            if not (getattr(self, name) or "").strip()
        ]
        if missing:
            raise ValueError(
                f"{self.delivery_type.value} delivery requires: {', '.join(missing)}"
            )
        return self


class PaymentUpdate(BaseUpdateSchema):
    payment_status: PaymentStatus
    payment_amount: Optional[Decimal] = Field(None, ge=0)


class DeliveryResponse(BaseResponseSchema):
    id: UUID
    delivery_number: str
    request_id: UUID
    purchase_order_id: Optional[UUID] = None
    quantity: Decimal
    delivery_type: str
    delivery_person: Optional[str] = None
    delivery_contact: Optional[str] = None
    vehicle_number: Optional[str] = None
    transport_name: Optional[str] = None
    transport_id: Optional[str] = None
    receiver_name: Optional[str] = None
    purchaser_name: Optional[str] = None
    loading_photo: Optional[PhotoRef] = None
    invoice_photo: Optional[PhotoRef] = None
    receipt_photo: Optional[PhotoRef] = None
    payment_amount: Optional[Decimal] = None
    payment_status: str
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class DeliveryRecordResponse(BaseResponseSchema):
    delivery: DeliveryResponse
    request: RequestResponse
