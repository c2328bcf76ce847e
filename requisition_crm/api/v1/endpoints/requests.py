"""API endpoints for material requests."""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from requisition_crm.api.deps import DB, CurrentPrincipal, require_roles
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.models.document_sequence import DocumentScope
from requisition_crm.models.request import RequestStatus
from requisition_crm.schemas.base import PaginatedResponse
from requisition_crm.schemas.request import (
    RequestCreate, RequestUpdate, RequestTransition, RequestReject, ReadyForDeliveryRequest,
    RequestResponse, RequestBatchResponse, RequestListResponse, RequestSplitResponse,
    RequestStatusHistoryResponse, NextNumberResponse,
)
from requisition_crm.services.document_sequence_service import DocumentSequenceService
from requisition_crm.services.request_service import RequestService


router = APIRouter()


@router.post("", response_model=RequestBatchResponse, status_code=status.HTTP_201_CREATED)
async def create_requests(
    data: RequestCreate,
    db: DB,
    principal: Principal = Depends(require_roles(UserRole.SITE_ENGINEER)),
):
    """Raise one request per item under a shared request number."""
    requests = await RequestService(db).create_requests(
        site_id=data.site_id,
        items=data.items,
        principal=principal,
        as_draft=data.as_draft,
    )
    return RequestBatchResponse(
        request_number=requests[0].request_number,
        items=[RequestResponse.model_validate(r) for r in requests],
    )


@router.get("", response_model=RequestListResponse)
async def list_requests(
    db: DB,
    principal: CurrentPrincipal,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    status: Optional[RequestStatus] = None,
    site_id: Optional[UUID] = None,
    creator_id: Optional[UUID] = None,
    request_number: Optional[str] = None,
    is_urgent: Optional[bool] = None,
):
    """List requests. Site engineers only see their own."""
    if principal.role == UserRole.SITE_ENGINEER:
        creator_id = principal.id

    items, total = await RequestService(db).list(
        status=status.value if status else None,
        site_id=site_id,
        creator_id=creator_id,
        request_number=request_number,
        is_urgent=is_urgent,
        skip=skip,
        limit=limit,
    )
    return RequestListResponse(
        items=[RequestResponse.model_validate(r) for r in items],
        **PaginatedResponse.envelope(total, skip, limit),
    )


@router.get("/next-number", response_model=NextNumberResponse)
async def preview_next_request_number(db: DB, principal: CurrentPrincipal):
    """Preview the next request number. Not reserved."""
    next_number = await DocumentSequenceService(db).preview_next_number(DocumentScope.REQUEST)
    return NextNumberResponse(scope=DocumentScope.REQUEST.value, next_number=next_number)


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(request_id: UUID, db: DB, principal: CurrentPrincipal):
    return await RequestService(db).get(request_id)


@router.get("/{request_id}/history", response_model=List[RequestStatusHistoryResponse])
async def get_request_history(request_id: UUID, db: DB, principal: CurrentPrincipal):
    """Status trail, oldest first."""
    return await RequestService(db).history(request_id)


@router.patch("/{request_id}", response_model=RequestResponse)
async def update_request(
    request_id: UUID,
    data: RequestUpdate,
    db: DB,
    principal: CurrentPrincipal,
):
    changes = data.model_dump(exclude_unset=True, exclude={"expected_status"})
    return await RequestService(db).update_details(
        request_id, principal, changes,
        expected_status=data.expected_status.value if data.expected_status else None,
    )


@router.post("/{request_id}/submit", response_model=RequestResponse)
async def submit_request(
    request_id: UUID,
    db: DB,
    principal: CurrentPrincipal,
    data: Optional[RequestTransition] = None,
):
    data = data or RequestTransition()
    return await RequestService(db).submit(request_id, principal, _expected(data.expected_status))


@router.post("/{request_id}/approve", response_model=RequestResponse)
async def approve_request(
    request_id: UUID,
    db: DB,
    principal: CurrentPrincipal,
    data: Optional[RequestTransition] = None,
):
    data = data or RequestTransition()
    return await RequestService(db).approve(
        request_id, principal, _expected(data.expected_status), notes=data.notes
    )


@router.post("/{request_id}/reject", response_model=RequestResponse)
async def reject_request(
    request_id: UUID,
    data: RequestReject,
    db: DB,
    principal: CurrentPrincipal,
):
    return await RequestService(db).reject(
        request_id, principal, data.reason, _expected(data.expected_status)
    )


@router.post("/{request_id}/forward-to-cc", response_model=RequestResponse)
async def forward_to_cost_comparison(
    request_id: UUID,
    db: DB,
    principal: CurrentPrincipal,
    data: Optional[RequestTransition] = None,
):
    data = data or RequestTransition()
    return await RequestService(db).forward_to_cost_comparison(
        request_id, principal, _expected(data.expected_status)
    )


@router.post("/{request_id}/ready-for-delivery", response_model=RequestSplitResponse)
async def mark_ready_for_delivery(
    request_id: UUID,
    data: ReadyForDeliveryRequest,
    db: DB,
    principal: CurrentPrincipal,
):
    """Move part or all of the quantity to delivery; the rest stays ready_for_po."""
    request, remainder = await RequestService(db).mark_ready_for_delivery(
        request_id, data.quantity, principal,
        expected_status=_expected(data.expected_status),
        notes=data.notes,
    )
    return RequestSplitResponse(
        request=RequestResponse.model_validate(request),
        remainder=RequestResponse.model_validate(remainder) if remainder else None,
    )


def _expected(value: Optional[RequestStatus]) -> Optional[str]:
    return value.value if value else None
