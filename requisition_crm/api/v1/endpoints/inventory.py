"""API endpoints for central store inventory."""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from requisition_crm.api.deps import DB, CurrentPrincipal, require_roles
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.schemas.base import PaginatedResponse
from requisition_crm.schemas.delivery import PhotoRef
from requisition_crm.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemUpdate,
    InventoryItemResponse,
    InventoryListResponse,
    StockAdjustment,
    StockMovementResponse,
    StockAvailabilityResponse,
)
from requisition_crm.services.inventory_service import InventoryService
from requisition_crm.services.request_service import RequestService


router = APIRouter()

manage_inventory = require_roles(UserRole.PURCHASE_OFFICER)


@router.get("/inventory", response_model=InventoryListResponse)
async def list_inventory(
    db: DB,
    principal: CurrentPrincipal,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    search: Optional[str] = None,
    in_stock: Optional[bool] = None,
    is_active: Optional[bool] = True,
):
    items, total = await InventoryService(db).list(
        search=search, in_stock=in_stock, is_active=is_active, skip=skip, limit=limit
    )
    return InventoryListResponse(
        items=[InventoryItemResponse.model_validate(i) for i in items],
        **PaginatedResponse.envelope(total, skip, limit),
    )


@router.post("/inventory", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    data: InventoryItemCreate,
    db: DB,
    principal: Principal = Depends(manage_inventory),
):
    return await InventoryService(db).create(
        data.item_name, data.unit, data.central_stock, data.vendor_ids, principal
    )


@router.get("/inventory/{item_id}", response_model=InventoryItemResponse)
async def get_inventory_item(item_id: UUID, db: DB, principal: CurrentPrincipal):
    return await InventoryService(db).get(item_id)


@router.patch("/inventory/{item_id}", response_model=InventoryItemResponse)
async def update_inventory_item(
    item_id: UUID,
    data: InventoryItemUpdate,
    db: DB,
    principal: Principal = Depends(manage_inventory),
):
    return await InventoryService(db).update(item_id, data.model_dump(exclude_unset=True), principal)


@router.delete("/inventory/{item_id}", response_model=InventoryItemResponse)
async def disable_inventory_item(
    item_id: UUID,
    db: DB,
    principal: Principal = Depends(manage_inventory),
):
    """Soft delete: movements keep pointing at the item."""
    return await InventoryService(db).disable(item_id, principal)


@router.post(
    "/inventory/{item_id}/stock-adjustments",
    response_model=StockMovementResponse,
    status_code=status.HTTP_201_CREATED,
)
async def adjust_stock(
    item_id: UUID,
    data: StockAdjustment,
    db: DB,
    principal: Principal = Depends(manage_inventory),
):
    return await InventoryService(db).adjust_stock(item_id, data.quantity, data.reason, principal)


@router.get("/inventory/{item_id}/movements", response_model=List[StockMovementResponse])
async def list_stock_movements(item_id: UUID, db: DB, principal: CurrentPrincipal):
    return await InventoryService(db).movements(item_id)


@router.post("/inventory/{item_id}/images", response_model=InventoryItemResponse)
async def add_inventory_image(item_id: UUID, data: PhotoRef, db: DB, principal: CurrentPrincipal):
    """The file is already in storage; only its reference is kept here."""
    return await InventoryService(db).add_image(item_id, data.model_dump(), principal)


@router.delete("/inventory/{item_id}/images", response_model=InventoryItemResponse)
async def remove_inventory_image(
    item_id: UUID,
    db: DB,
    principal: CurrentPrincipal,
    key: str = Query(..., min_length=1),
):
    return await InventoryService(db).remove_image(item_id, key, principal)


@router.get("/requests/{request_id}/stock-availability", response_model=StockAvailabilityResponse)
async def get_stock_availability(request_id: UUID, db: DB, principal: CurrentPrincipal):
    request = await RequestService(db).get(request_id)
    stock = await InventoryService(db).availability(request)
    return StockAvailabilityResponse(
        inventory_item_id=stock.item.id if stock.item else None,
        required=stock.required,
        on_hand=stock.on_hand,
        from_stock=stock.from_stock,
        from_vendor=stock.from_vendor,
        covers_request=stock.covers_request,
        suggested_vendor_ids=stock.suggested_vendor_ids,
    )
