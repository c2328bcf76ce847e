"""API endpoints for purchase orders."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from requisition_crm.api.deps import DB, CurrentPrincipal
from requisition_crm.models.document_sequence import DocumentScope
from requisition_crm.models.purchase_order import POStatus
from requisition_crm.schemas.base import PaginatedResponse
from requisition_crm.schemas.purchase_order import (
    POFromRequestCreate, DirectPOCreate, POStatusUpdate,
    PurchaseOrderResponse, POListResponse, POIssueResponse,
)
from requisition_crm.schemas.request import RequestResponse, NextNumberResponse
from requisition_crm.services.document_sequence_service import DocumentSequenceService
from requisition_crm.services.purchase_order_service import PurchaseOrderService


router = APIRouter()


@router.post("/from-request/{request_id}", response_model=POIssueResponse, status_code=status.HTTP_201_CREATED)
async def create_po_from_request(
    request_id: UUID,
    data: POFromRequestCreate,
    db: DB,
    principal: CurrentPrincipal,
):
    """Issue a PO to the vendor approved in the request's cost comparison."""
    po, request, remainder = await PurchaseOrderService(db).create_from_approved_request(
        request_id, data, principal
    )
    return POIssueResponse(
        purchase_order=PurchaseOrderResponse.model_validate(po),
        request=RequestResponse.model_validate(request),
        remainder=RequestResponse.model_validate(remainder) if remainder else None,
    )


@router.post("/direct", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_direct_po(data: DirectPOCreate, db: DB, principal: CurrentPrincipal):
    """Emergency PO without a request or cost comparison."""
    return await PurchaseOrderService(db).create_direct_po(data, principal)


@router.get("", response_model=POListResponse)
async def list_purchase_orders(
    db: DB,
    principal: CurrentPrincipal,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    status: Optional[POStatus] = None,
    vendor_id: Optional[UUID] = None,
    site_id: Optional[UUID] = None,
    is_direct: Optional[bool] = None,
    request_id: Optional[UUID] = None,
):
    items, total = await PurchaseOrderService(db).list(
        status=status.value if status else None,
        vendor_id=vendor_id,
        site_id=site_id,
        is_direct=is_direct,
        request_id=request_id,
        skip=skip,
        limit=limit,
    )
    return POListResponse(
        items=[PurchaseOrderResponse.model_validate(po) for po in items],
        **PaginatedResponse.envelope(total, skip, limit),
    )


@router.get("/next-number", response_model=NextNumberResponse)
async def preview_next_po_number(db: DB, principal: CurrentPrincipal):
    """Preview the next PO number. Not reserved."""
    next_number = await DocumentSequenceService(db).preview_next_number(DocumentScope.PURCHASE_ORDER)
    return NextNumberResponse(scope=DocumentScope.PURCHASE_ORDER.value, next_number=next_number)


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order(po_id: UUID, db: DB, principal: CurrentPrincipal):
    return await PurchaseOrderService(db).get(po_id)


@router.put("/{po_id}/status", response_model=PurchaseOrderResponse)
async def update_po_status(
    po_id: UUID,
    data: POStatusUpdate,
    db: DB,
    principal: CurrentPrincipal,
):
    return await PurchaseOrderService(db).update_status(
        po_id, data.status.value, principal,
        actual_delivery_date=data.actual_delivery_date,
    )


@router.post("/{po_id}/cancel", response_model=PurchaseOrderResponse)
async def cancel_purchase_order(po_id: UUID, db: DB, principal: CurrentPrincipal):
    return await PurchaseOrderService(db).cancel(po_id, principal)
