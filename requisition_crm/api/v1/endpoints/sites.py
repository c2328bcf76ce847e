"""API endpoints for sites."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from requisition_crm.api.deps import DB, CurrentPrincipal, require_roles
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.models.site import Site
from requisition_crm.schemas.base import PaginatedResponse
from requisition_crm.schemas.site import SiteCreate, SiteUpdate, SiteResponse, SiteListResponse
from requisition_crm.services.reference_data_service import ReferenceDataService


router = APIRouter()

manage_sites = require_roles(UserRole.MANAGER)


@router.get("", response_model=SiteListResponse)
async def list_sites(
    db: DB,
    principal: CurrentPrincipal,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    is_active: Optional[bool] = True,
    search: Optional[str] = None,
):
    items, total = await ReferenceDataService(db, Site).list(
        is_active=is_active, search=search, skip=skip, limit=limit
    )
    return SiteListResponse(
        items=[SiteResponse.model_validate(s) for s in items],
        **PaginatedResponse.envelope(total, skip, limit),
    )


@router.post("", response_model=SiteResponse, status_code=status.HTTP_201_CREATED)
async def create_site(
    data: SiteCreate,
    db: DB,
    principal: Principal = Depends(manage_sites),
):
    return await ReferenceDataService(db, Site).create(data.model_dump(), principal)


@router.get("/{site_id}", response_model=SiteResponse)
async def get_site(site_id: UUID, db: DB, principal: CurrentPrincipal):
    return await ReferenceDataService(db, Site).get(site_id)


@router.patch("/{site_id}", response_model=SiteResponse)
async def update_site(
    site_id: UUID,
    data: SiteUpdate,
    db: DB,
    principal: Principal = Depends(manage_sites),
):
    return await ReferenceDataService(db, Site).update(
        site_id, data.model_dump(exclude_unset=True), principal
    )


@router.delete("/{site_id}", response_model=SiteResponse)
async def disable_site(
    site_id: UUID,
    db: DB,
    principal: Principal = Depends(manage_sites),
):
    return await ReferenceDataService(db, Site).disable(site_id, principal)
