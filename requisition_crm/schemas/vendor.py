"""Vendor schemas."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import Field, EmailStr

from requisition_crm.schemas.base import (
    BaseCreateSchema, BaseUpdateSchema, BaseResponseSchema, PaginatedResponse
)


class VendorCreate(BaseCreateSchema):
    company_name: str = Field(..., min_length=1, max_length=200)
    contact_person: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    gst_number: Optional[str] = Field(None, min_length=15, max_length=15, description="GSTIN")
    address: Optional[str] = None


class VendorUpdate(BaseUpdateSchema):
    company_name: Optional[str] = Field(None, min_length=1, max_length=200)
    contact_person: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=20)
    email: Optional[EmailStr] = None
    gst_number: Optional[str] = Field(None, min_length=15, max_length=15)
    address: Optional[str] = None
    is_active: Optional[bool] = None


class VendorResponse(BaseResponseSchema):
    id: UUID
    company_name: str
    contact_person: Optional[str] = None
    phone_number: Optional[str] = None
    email: Optional[str] = None
    gst_number: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class VendorListResponse(PaginatedResponse):
    items: List[VendorResponse]
