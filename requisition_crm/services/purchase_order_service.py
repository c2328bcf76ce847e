"""
Purchase order issuance.

Two paths create orders:

- from a request whose cost comparison was approved (request ->
  delivery_stage, partial quantities split the request), and
- direct POs, the emergency path with no request or cost comparison.

Both validate everything before a PO number is allocated, so a rejected
order never burns a number.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from requisition_crm.config import settings
from requisition_crm.core.clock import as_utc, utcnow
from requisition_crm.core.exceptions import (
    AlreadyTerminal, InvalidTransition, NotFound, PermissionDenied, StaleStateError, ValidationFailed,
)
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.models.cost_comparison import CCStatus
from requisition_crm.models.document_sequence import DocumentScope
from requisition_crm.models.purchase_order import PurchaseOrder, POStatus
from requisition_crm.models.request import Request
from requisition_crm.models.site import Site
from requisition_crm.models.vendor import Vendor
from requisition_crm.schemas.purchase_order import POFromRequestCreate, DirectPOCreate
from requisition_crm.services import po_state_machine
from requisition_crm.services.cost_comparison_service import CostComparisonService
from requisition_crm.services.document_sequence_service import DocumentSequenceService
from requisition_crm.services.quantity_ledger import require_positive, round_money, to_decimal
from requisition_crm.services.request_service import RequestService
from requisition_crm.services.request_state_machine import RequestAction, check_role


logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")

# Roles allowed to change an issued order's status
PO_STATUS_ROLES = (UserRole.PURCHASE_OFFICER, UserRole.MANAGER)


def calculate_total(quantity, unit_rate, gst_tax_rate) -> Decimal:
    """quantity x rate x (1 + gst/100), rounded half-up to 2 places."""
    q = to_decimal(quantity, "quantity")
    rate = to_decimal(unit_rate, "unit_rate")
    gst = to_decimal(gst_tax_rate, "gst_tax_rate")
    return round_money(q * rate * (1 + gst / HUNDRED))


class PurchaseOrderService:
    """Issue and track purchase orders."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.requests = RequestService(db)
        self.cost_comparisons = CostComparisonService(db)

    # ==================== Reads ====================

    async def get(self, po_id: uuid.UUID) -> PurchaseOrder:
        result = await self.db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == po_id)
            .execution_options(populate_existing=True)
        )
        po = result.scalar_one_or_none()
        if po is None:
            raise NotFound("PurchaseOrder", po_id)
        return po

    async def list(
        self,
        status: Optional[str] = None,
        vendor_id: Optional[uuid.UUID] = None,
        site_id: Optional[uuid.UUID] = None,
        is_direct: Optional[bool] = None,
        request_id: Optional[uuid.UUID] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[PurchaseOrder], int]:
        filters = []
        if status:
            filters.append(PurchaseOrder.status == POStatus(status).value)
        if vendor_id:
            filters.append(PurchaseOrder.vendor_id == vendor_id)
        if site_id:
            filters.append(PurchaseOrder.delivery_site_id == site_id)
        if is_direct is not None:
            filters.append(PurchaseOrder.is_direct == is_direct)
        if request_id:
            filters.append(PurchaseOrder.request_id == request_id)

        query = select(PurchaseOrder)
        count_query = select(func.count(PurchaseOrder.id))
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        total = (await self.db.execute(count_query)).scalar() or 0
        result = await self.db.execute(
            query.order_by(PurchaseOrder.created_at.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_direct(self, skip: int = 0, limit: int = 50) -> Tuple[List[PurchaseOrder], int]:
        return await self.list(is_direct=True, skip=skip, limit=limit)

    # ==================== Creation ====================

    async def create_from_approved_request(
        self,
        request_id: uuid.UUID,
        data: POFromRequestCreate,
        principal: Principal,
    ) -> Tuple[PurchaseOrder, Request, Optional[Request]]:
        """
        Issue a PO for a ready_for_po request.

        Returns:
            (po, request, remainder); remainder is the ready_for_po sibling
            created when only part of the quantity was ordered.
        """
        request = await self.requests.get(request_id)
        self.requests.validate_action(request, RequestAction.ISSUE_PO, principal, data.expected_status)

        cc = await self.cost_comparisons.find(request_id)
        if cc is None or cc.status != CCStatus.CC_APPROVED.value:
            raise InvalidTransition(
                "Request has no approved cost comparison",
                {"cost_comparison_status": cc.status if cc else None}
            )
        if cc.selected_vendor_id is None:
            raise InvalidTransition(
                "Direct-delivery cost comparison has no selected vendor to order from",
                {"request_id": str(request_id)}
            )
        if data.vendor_id != cc.selected_vendor_id:
            raise ValidationFailed(
                "Vendor does not match the vendor selected in the cost comparison",
                {"vendor_id": str(data.vendor_id), "selected_vendor_id": str(cc.selected_vendor_id)}
            )
        await self._require_active(Vendor, data.vendor_id)

        quote = cc.quote_for(data.vendor_id)
        unit_rate = data.unit_rate
        if unit_rate is None and quote is not None:
            unit_rate = quote.net_unit_price
        if unit_rate is None:
            raise ValidationFailed("unit_rate is required when the vendor has no quote")
        unit_rate = self._require_rate(unit_rate)

        if data.gst_tax_rate is not None:
            gst_tax_rate = data.gst_tax_rate
        elif quote is not None and quote.gst_percent is not None:
            gst_tax_rate = quote.gst_percent
        else:
            gst_tax_rate = Decimal(str(settings.DEFAULT_GST_RATE))
        gst_tax_rate = self._require_gst(gst_tax_rate)

        self._require_future(data.valid_till)
        split = self.requests.plan_split(request, data.quantity)

        # Everything validated; from here on a number is consumed
        po_number = await DocumentSequenceService(self.db, actor_id=principal.id).next_number(
            DocumentScope.PURCHASE_ORDER
        )
        request, remainder = await self.requests.advance_with_split(
            request, RequestAction.ISSUE_PO, split.deliver_amount, principal,
            expected_status=data.expected_status,
            notes=f"PO {po_number}",
        )

        po = PurchaseOrder(
            po_number=po_number,
            request_id=request.id,
            item_description=request.item_name if not request.description
            else f"{request.item_name} - {request.description}",
            hsn_sac_code=data.hsn_sac_code,
            quantity=split.deliver_amount,
            unit=request.unit,
            vendor_id=data.vendor_id,
            delivery_site_id=request.site_id,
            unit_rate=unit_rate,
            gst_tax_rate=gst_tax_rate,
            total_amount=calculate_total(split.deliver_amount, unit_rate, gst_tax_rate),
            valid_till=data.valid_till,
            status=POStatus.ORDERED.value,
            is_direct=False,
            notes=data.notes,
            created_by=principal.id,
        )
        self.db.add(po)
        await self.db.flush()

        logger.info(
            "Issued %s for %s: %s %s @ %s (+%s%% GST) = %s",
            po_number, request.request_number, po.quantity, po.unit,
            po.unit_rate, po.gst_tax_rate, po.total_amount
        )
        return po, request, remainder

    async def create_direct_po(self, data: DirectPOCreate, principal: Principal) -> PurchaseOrder:
        """Emergency order with no request or cost comparison behind it."""
        check_role(RequestAction.ISSUE_PO, principal.role)

        quantity = require_positive(data.quantity, "quantity")
        unit_rate = self._require_rate(data.unit_rate)
        gst_tax_rate = self._require_gst(data.gst_tax_rate)
        await self._require_active(Vendor, data.vendor_id)
        await self._require_active(Site, data.delivery_site_id)
        self._require_future(data.valid_till)

        po_number = await DocumentSequenceService(self.db, actor_id=principal.id).next_number(
            DocumentScope.PURCHASE_ORDER
        )
        po = PurchaseOrder(
            po_number=po_number,
            request_id=None,
            item_description=data.item_description,
            hsn_sac_code=data.hsn_sac_code,
            quantity=quantity,
            unit=data.unit,
            vendor_id=data.vendor_id,
            delivery_site_id=data.delivery_site_id,
            unit_rate=unit_rate,
            gst_tax_rate=gst_tax_rate,
            total_amount=calculate_total(quantity, unit_rate, gst_tax_rate),
            valid_till=data.valid_till,
            status=POStatus.ORDERED.value,
            is_direct=True,
            notes=data.notes,
            created_by=principal.id,
        )
        self.db.add(po)
        await self.db.flush()

        logger.info("Issued direct %s: %s %s = %s", po_number, quantity, data.unit, po.total_amount)
        return po

    # ==================== Status ====================

    async def update_status(
        self,
        po_id: uuid.UUID,
        status: str,
        principal: Principal,
        actual_delivery_date: Optional[datetime] = None,
    ) -> PurchaseOrder:
        """
        Move an ordered PO to delivered or cancelled.

        Raises:
            AlreadyTerminal: PO is already delivered or cancelled
            InvalidTransition: target is not delivered/cancelled
            ValidationFailed: delivered without actual_delivery_date
        """
        if not principal.has_role(*PO_STATUS_ROLES):
            raise PermissionDenied(
                "Only purchase officers and managers can update purchase orders",
                {"role": principal.role.value}
            )
        po = await self.get(po_id)
        new_status = POStatus(status).value
        try:
            values = po_state_machine.transition_values(
                po.status, new_status,
                user_id=principal.id,
                actual_delivery_date=actual_delivery_date,
            )
        except (AlreadyTerminal, InvalidTransition, ValidationFailed) as e:
            logger.warning("Rejected %s -> %s on %s: %s", po.status, new_status, po.po_number, e.message)
            raise

        values["updated_at"] = utcnow()
        result = await self.db.execute(
            update(PurchaseOrder)
            .where(PurchaseOrder.id == po.id, PurchaseOrder.status == po.status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            current = await self.get(po_id)
            if po_state_machine.is_terminal(current.status):
                raise AlreadyTerminal(
                    f"PO is already {current.status}",
                    {"current_status": current.status}
                )
            raise StaleStateError("PO was changed by someone else; reload and retry")

        from_status = po.status
        for key, value in values.items():
            set_committed_value(po, key, value)

        logger.info(
            "%s: %s -> %s (%s) by %s",
            po.po_number, from_status, new_status,
            po_state_machine.get_transition_action(from_status, new_status), principal.id
        )
        return po

    async def cancel(self, po_id: uuid.UUID, principal: Principal) -> PurchaseOrder:
        return await self.update_status(po_id, POStatus.CANCELLED.value, principal)

    # ==================== Validation helpers ====================

    async def _require_active(self, model, entity_id: uuid.UUID):
        entity = await self.db.get(model, entity_id)
        if entity is None:
            raise NotFound(model.__name__, entity_id)
        if not entity.is_active:
            raise ValidationFailed(
                f"{model.__name__} is disabled",
                {"id": str(entity_id)}
            )
        return entity

    @staticmethod
    def _require_rate(value) -> Decimal:
        rate = to_decimal(value, "unit_rate")
        if rate <= 0:
            raise ValidationFailed("unit_rate must be greater than zero", {"unit_rate": str(rate)})
        return rate

    @staticmethod
    def _require_gst(value) -> Decimal:
        gst = to_decimal(value, "gst_tax_rate")
        if gst < 0 or gst > HUNDRED:
            raise ValidationFailed("gst_tax_rate must be between 0 and 100", {"gst_tax_rate": str(gst)})
        return gst

    @staticmethod
    def _require_future(valid_till: datetime) -> None:
        if valid_till is None or as_utc(valid_till) <= utcnow():
            raise ValidationFailed(
                "valid_till must be in the future",
                {"valid_till": valid_till.isoformat() if valid_till else None}
            )
