"""API endpoints for the cost comparison sub-workflow."""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from requisition_crm.api.deps import DB, CurrentPrincipal, require_roles
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.schemas.cost_comparison import (
    CostComparisonUpsert, CostComparisonReview, CostComparisonResponse,
)
from requisition_crm.schemas.request import RequestTransition
from requisition_crm.services.cost_comparison_service import CostComparisonService


router = APIRouter()


@router.get("/cost-comparisons/pending", response_model=List[CostComparisonResponse])
async def list_pending_cost_comparisons(
    db: DB,
    principal: Principal = Depends(require_roles(UserRole.MANAGER)),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
):
    """Manager review queue, oldest submission first."""
    items, _ = await CostComparisonService(db).list_pending(skip=skip, limit=limit)
    return items


@router.get("/requests/{request_id}/cost-comparison", response_model=CostComparisonResponse)
async def get_cost_comparison(request_id: UUID, db: DB, principal: CurrentPrincipal):
    return await CostComparisonService(db).get(request_id)


@router.put("/requests/{request_id}/cost-comparison", response_model=CostComparisonResponse)
async def save_cost_comparison(
    request_id: UUID,
    data: CostComparisonUpsert,
    db: DB,
    principal: CurrentPrincipal,
):
    """Create or overwrite the quotes. Does not submit."""
    return await CostComparisonService(db).upsert(
        request_id, data.vendor_quotes, data.is_direct_delivery, principal
    )


@router.post("/requests/{request_id}/cost-comparison/submit", response_model=CostComparisonResponse)
async def submit_cost_comparison(
    request_id: UUID,
    db: DB,
    principal: CurrentPrincipal,
    data: Optional[RequestTransition] = None,
):
    expected = data.expected_status.value if data and data.expected_status else None
    return await CostComparisonService(db).submit(request_id, principal, expected)


@router.post("/requests/{request_id}/cost-comparison/resubmit", response_model=CostComparisonResponse)
async def resubmit_cost_comparison(
    request_id: UUID,
    data: CostComparisonUpsert,
    db: DB,
    principal: CurrentPrincipal,
):
    """Revise a rejected comparison and send it back for review."""
    return await CostComparisonService(db).resubmit(
        request_id, data.vendor_quotes, data.is_direct_delivery, principal
    )


@router.post("/requests/{request_id}/cost-comparison/review", response_model=CostComparisonResponse)
async def review_cost_comparison(
    request_id: UUID,
    data: CostComparisonReview,
    db: DB,
    principal: CurrentPrincipal,
):
    return await CostComparisonService(db).review(
        request_id, data.action, principal,
        selected_vendor_id=data.selected_vendor_id,
        notes=data.notes,
    )
