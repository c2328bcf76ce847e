"""API endpoints for delivery challans."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from requisition_crm.api.deps import DB, CurrentPrincipal
from requisition_crm.schemas.delivery import (
    DeliveryCreate, PaymentUpdate, DeliveryResponse, DeliveryRecordResponse,
)
from requisition_crm.schemas.request import RequestResponse
from requisition_crm.services.delivery_service import DeliveryService


router = APIRouter()


@router.post(
    "/requests/{request_id}/deliveries",
    response_model=DeliveryRecordResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_delivery(
    request_id: UUID,
    data: DeliveryCreate,
    db: DB,
    principal: CurrentPrincipal,
):
    delivery, request = await DeliveryService(db).record_delivery(request_id, data, principal)
    return DeliveryRecordResponse(
        delivery=DeliveryResponse.model_validate(delivery),
        request=RequestResponse.model_validate(request),
    )


@router.get("/requests/{request_id}/deliveries", response_model=List[DeliveryResponse])
async def list_deliveries(request_id: UUID, db: DB, principal: CurrentPrincipal):
    return await DeliveryService(db).list_for_request(request_id)


@router.get("/deliveries/{delivery_id}", response_model=DeliveryResponse)
async def get_delivery(delivery_id: UUID, db: DB, principal: CurrentPrincipal):
    return await DeliveryService(db).get(delivery_id)


@router.patch("/deliveries/{delivery_id}/payment", response_model=DeliveryResponse)
async def update_delivery_payment(
    delivery_id: UUID,
    data: PaymentUpdate,
    db: DB,
    principal: CurrentPrincipal,
):
    return await DeliveryService(db).update_payment(delivery_id, data, principal)
