"""API endpoints for vendor master data."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from requisition_crm.api.deps import DB, CurrentPrincipal, require_roles
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.models.vendor import Vendor
from requisition_crm.schemas.base import PaginatedResponse
from requisition_crm.schemas.vendor import VendorCreate, VendorUpdate, VendorResponse, VendorListResponse
from requisition_crm.services.reference_data_service import ReferenceDataService


router = APIRouter()

manage_vendors = require_roles(UserRole.PURCHASE_OFFICER, UserRole.MANAGER)


@router.get("", response_model=VendorListResponse)
async def list_vendors(
    db: DB,
    principal: CurrentPrincipal,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    is_active: Optional[bool] = True,
    search: Optional[str] = None,
):
    items, total = await ReferenceDataService(db, Vendor).list(
        is_active=is_active, search=search, skip=skip, limit=limit
    )
    return VendorListResponse(
        items=[VendorResponse.model_validate(v) for v in items],
        **PaginatedResponse.envelope(total, skip, limit),
    )


@router.post("", response_model=VendorResponse, status_code=status.HTTP_201_CREATED)
async def create_vendor(
    data: VendorCreate,
    db: DB,
    principal: Principal = Depends(manage_vendors),
):
    return await ReferenceDataService(db, Vendor).create(data.model_dump(), principal)


@router.get("/{vendor_id}", response_model=VendorResponse)
async def get_vendor(vendor_id: UUID, db: DB, principal: CurrentPrincipal):
    return await ReferenceDataService(db, Vendor).get(vendor_id)


@router.patch("/{vendor_id}", response_model=VendorResponse)
async def update_vendor(
    vendor_id: UUID,
    data: VendorUpdate,
    db: DB,
    principal: Principal = Depends(manage_vendors),
):
    return await ReferenceDataService(db, Vendor).update(
        vendor_id, data.model_dump(exclude_unset=True), principal
    )


@router.delete("/{vendor_id}", response_model=VendorResponse)
async def disable_vendor(
    vendor_id: UUID,
    db: DB,
    principal: Principal = Depends(manage_vendors),
):
    """Soft delete: the vendor stays referenced by past quotes and orders."""
    return await ReferenceDataService(db, Vendor).disable(vendor_id, principal)
