"""Site schemas."""
from datetime import datetime
from typing import Optional, List
from uuid import UUID

from pydantic import Field

from requisition_crm.schemas.base import (
    BaseCreateSchema, BaseUpdateSchema, BaseResponseSchema, PaginatedResponse
)


class SiteCreate(BaseCreateSchema):
    name: str = Field(..., min_length=1, max_length=200)
    code: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    description: Optional[str] = None


class SiteUpdate(BaseUpdateSchema):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    code: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class SiteResponse(BaseResponseSchema):
    id: UUID
    name: str
    code: Optional[str] = None
    address: Optional[str] = None
    description: Optional[str] = None
    is_active: bool
    created_by: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime


class SiteListResponse(PaginatedResponse):
    items: List[SiteResponse]
