"""
Delivery challans.

Each challan records goods physically reaching the site for a request in
delivery_stage. Quantities are drawn down through the quantity ledger;
the request closes as delivered when nothing remains.
"""
import logging
import uuid
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from requisition_crm.core.exceptions import NotFound, PermissionDenied, ValidationFailed
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.models.delivery import (
    Delivery, DeliveryType, PaymentStatus, REQUIRED_FIELDS_BY_TYPE,
)
from requisition_crm.models.document_sequence import DocumentScope
from requisition_crm.models.purchase_order import PurchaseOrder, POStatus
from requisition_crm.models.request import Request
from requisition_crm.schemas.delivery import DeliveryCreate, PaymentUpdate
from requisition_crm.services.document_sequence_service import DocumentSequenceService
from requisition_crm.services.quantity_ledger import split_quantity
from requisition_crm.services.request_service import RequestService
from requisition_crm.services.request_state_machine import RequestAction


logger = logging.getLogger(__name__)

PAYMENT_ROLES = (UserRole.PURCHASE_OFFICER, UserRole.MANAGER)


class DeliveryService:
    """Record challans and their payments."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.requests = RequestService(db)

    async def get(self, delivery_id: uuid.UUID) -> Delivery:
        delivery = await self.db.get(Delivery, delivery_id)
        if delivery is None:
            raise NotFound("Delivery", delivery_id)
        return delivery

    async def list_for_request(self, request_id: uuid.UUID) -> List[Delivery]:
        await self.requests.get(request_id)
        result = await self.db.execute(
            select(Delivery)
            .where(Delivery.request_id == request_id)
            .order_by(Delivery.created_at, Delivery.delivery_number)
        )
        return list(result.scalars().all())

    async def record_delivery(
        self,
        request_id: uuid.UUID,
        data: DeliveryCreate,
        principal: Principal,
    ) -> Tuple[Delivery, Request]:
        """
        Record a challan against a delivery_stage request.

        Raises:
            AlreadyTerminal: request is already delivered
            InvalidTransition: request is not in delivery_stage
            InvalidQuantity: quantity is not positive or exceeds what remains
            ValidationFailed: contact fields missing for the delivery type
        """
        request = await self.requests.get(request_id)
        self.requests.validate_action(request, RequestAction.RECORD_DELIVERY, principal, data.expected_status)

        delivery_type = DeliveryType(data.delivery_type)
        missing = [
            name for name in REQUIRED_FIELDS_BY_TYPE[delivery_type]
            if not (getattr(data, name) or "").strip()
        ]
        if missing:
            raise ValidationFailed(
                f"{delivery_type.value} delivery requires: {', '.join(missing)}",
                {"missing": missing}
            )

        split = split_quantity(request.remaining_quantity, data.quantity)
        purchase_order_id = await self._resolve_purchase_order(request, data.purchase_order_id)

        delivery_number = await DocumentSequenceService(self.db, actor_id=principal.id).next_number(
            DocumentScope.DELIVERY_CHALLAN
        )

        action = RequestAction.COMPLETE_DELIVERY if split.is_full else RequestAction.RECORD_DELIVERY
        await self.requests.transition(
            request, action, principal,
            notes=f"{delivery_number}: {split.deliver_amount} {request.unit}",
            delivered_quantity=(request.delivered_quantity or Decimal("0")) + split.deliver_amount,
        )

        delivery = Delivery(
            delivery_number=delivery_number,
            request_id=request.id,
            purchase_order_id=purchase_order_id,
            quantity=split.deliver_amount,
            delivery_type=delivery_type.value,
            delivery_person=data.delivery_person,
            delivery_contact=data.delivery_contact,
            vehicle_number=data.vehicle_number,
            transport_name=data.transport_name,
            transport_id=data.transport_id,
            receiver_name=data.receiver_name,
            purchaser_name=data.purchaser_name,
            loading_photo=data.loading_photo.model_dump() if data.loading_photo else None,
            invoice_photo=data.invoice_photo.model_dump() if data.invoice_photo else None,
            receipt_photo=data.receipt_photo.model_dump() if data.receipt_photo else None,
            payment_amount=data.payment_amount,
            payment_status=PaymentStatus.PENDING.value,
            created_by=principal.id,
        )
        self.db.add(delivery)
        await self.db.flush()

        logger.info(
            "Recorded %s for %s: %s delivered, %s remaining",
            delivery_number, request.request_number, split.deliver_amount, split.remainder
        )
        return delivery, request

    async def update_payment(
        self,
        delivery_id: uuid.UUID,
        data: PaymentUpdate,
        principal: Principal,
    ) -> Delivery:
        """Payment fields are the only part of a challan that changes after creation."""
        if not principal.has_role(*PAYMENT_ROLES):
            raise PermissionDenied(
                "Only purchase officers and managers can update payments",
                {"role": principal.role.value}
            )
        delivery = await self.get(delivery_id)

        amount = data.payment_amount if data.payment_amount is not None else delivery.payment_amount
        status = PaymentStatus(data.payment_status)
        if status == PaymentStatus.PAID and amount is None:
            raise ValidationFailed("payment_amount is required to mark a delivery paid")

        delivery.payment_amount = amount
        delivery.payment_status = status.value
        await self.db.flush()

        logger.info(
            "Payment for %s set to %s (%s) by %s",
            delivery.delivery_number, status.value, amount, principal.id
        )
        return delivery

    async def _resolve_purchase_order(
        self,
        request: Request,
        purchase_order_id: Optional[uuid.UUID],
    ) -> Optional[uuid.UUID]:
        """Use the given PO, or the request's open PO when there is exactly one."""
        if purchase_order_id is not None:
            po = await self.db.get(PurchaseOrder, purchase_order_id)
            if po is None:
                raise NotFound("PurchaseOrder", purchase_order_id)
            if po.request_id != request.id:
                raise ValidationFailed(
                    "Purchase order was not issued for this request",
                    {"purchase_order_id": str(purchase_order_id)}
                )
            return po.id

        result = await self.db.execute(
            select(PurchaseOrder.id).where(
                PurchaseOrder.request_id == request.id,
                PurchaseOrder.status == POStatus.ORDERED.value,
            )
        )
        ids = list(result.scalars().all())
        return ids[0] if len(ids) == 1 else None
