"""
Cost comparison sub-workflow.

The purchase officer collects vendor quotes for a ready_for_cc request and
submits them; a manager approves one vendor (request -> ready_for_po) or
sends the comparison back (request -> ready_for_cc). The comparison status
and the request status always move in the same transaction.
"""
import logging
import uuid
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from requisition_crm.core.clock import utcnow
from requisition_crm.core.exceptions import (
    EmptyQuoteSet, InvalidTransition, NotFound, StaleStateError, ValidationFailed,
)
from requisition_crm.core.security import Principal
from requisition_crm.models.cost_comparison import (
    CostComparison, CostComparisonQuote, CCStatus, CC_EDITABLE_STATUSES,
)
from requisition_crm.models.request import Request, RequestStatus
from requisition_crm.models.vendor import Vendor
from requisition_crm.schemas.cost_comparison import VendorQuoteInput, ReviewAction
from requisition_crm.services.inventory_service import InventoryService
from requisition_crm.services.request_service import RequestService
from requisition_crm.services.request_state_machine import RequestAction, check_role


logger = logging.getLogger(__name__)


class CostComparisonService:
    """Quote collection and manager review for one request."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.requests = RequestService(db)
        self.inventory = InventoryService(db)

    # ==================== Reads ====================

    async def find(self, request_id: uuid.UUID) -> Optional[CostComparison]:
        result = await self.db.execute(
            select(CostComparison)
            .options(selectinload(CostComparison.vendor_quotes))
            .where(CostComparison.request_id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get(self, request_id: uuid.UUID) -> CostComparison:
        cc = await self.find(request_id)
        if cc is None:
            raise NotFound("CostComparison", request_id)
        return cc

    async def list_pending(self, skip: int = 0, limit: int = 50) -> Tuple[List[CostComparison], int]:
        """Manager queue: comparisons waiting for review, oldest first."""
        total = (await self.db.execute(
            select(func.count(CostComparison.id))
            .where(CostComparison.status == CCStatus.CC_PENDING.value)
        )).scalar() or 0

        result = await self.db.execute(
            select(CostComparison)
            .options(selectinload(CostComparison.vendor_quotes))
            .where(CostComparison.status == CCStatus.CC_PENDING.value)
            .order_by(CostComparison.submitted_at)
            .offset(skip).limit(limit)
        )
        return list(result.scalars().all()), total

    # ==================== Editing ====================

    async def upsert(
        self,
        request_id: uuid.UUID,
        vendor_quotes: List[VendorQuoteInput],
        is_direct_delivery: bool,
        principal: Principal,
    ) -> CostComparison:
        """
        Save quotes for the request, replacing any saved before.

        No status changes; the comparison stays draft (or cc_rejected).
        Direct delivery needs the whole quantity in central stock.
        """
        check_role(RequestAction.SUBMIT_CC, principal.role)
        request = await self.requests.get(request_id)
        self._require_request_status(request, "edit quotes for")

        cc = await self.find(request_id)
        if cc is not None and cc.status not in CC_EDITABLE_STATUSES:
            raise InvalidTransition(
                f"Cost comparison in '{cc.status}' status cannot be edited",
                {"status": cc.status}
            )

        await self._validate_quotes(vendor_quotes)
        if is_direct_delivery:
            await self.inventory.require_stock_for(request)
        cc = await self._write(cc, request, vendor_quotes, is_direct_delivery, principal)

        logger.info(
            "Saved %d quote(s) for %s (direct=%s) by %s",
            len(vendor_quotes), request.request_number, is_direct_delivery, principal.id
        )
        return cc

    async def submit(
        self,
        request_id: uuid.UUID,
        principal: Principal,
        expected_status: Optional[str] = None,
    ) -> CostComparison:
        """Send the comparison to the manager: CC -> cc_pending, request -> cc_pending."""
        request = await self.requests.get(request_id)
        cc = await self.get(request_id)
        return await self._submit(request, cc, principal, expected_status)

    async def resubmit(
        self,
        request_id: uuid.UUID,
        vendor_quotes: List[VendorQuoteInput],
        is_direct_delivery: bool,
        principal: Principal,
    ) -> CostComparison:
        """Revise a rejected comparison and submit it again in one step."""
        check_role(RequestAction.SUBMIT_CC, principal.role)
        request = await self.requests.get(request_id)
        cc = await self.get(request_id)
        if cc.status != CCStatus.CC_REJECTED.value:
            raise InvalidTransition(
                f"Only a rejected cost comparison can be resubmitted (status is '{cc.status}')",
                {"status": cc.status}
            )
        self._require_request_status(request, "resubmit quotes for")

        await self._validate_quotes(vendor_quotes)
        self._require_quotes(vendor_quotes, is_direct_delivery)

        cc = await self._write(cc, request, vendor_quotes, is_direct_delivery, principal)
        cc.manager_notes = None
        await self.db.flush()
        return await self._submit(request, cc, principal)

    async def _submit(
        self,
        request: Request,
        cc: CostComparison,
        principal: Principal,
        expected_status: Optional[str] = None,
    ) -> CostComparison:
        if cc.status not in CC_EDITABLE_STATUSES:
            raise InvalidTransition(
                f"Cost comparison in '{cc.status}' status cannot be submitted",
                {"status": cc.status}
            )
        self._require_quotes(cc.vendor_quotes, cc.is_direct_delivery)
        self.requests.validate_action(request, RequestAction.SUBMIT_CC, principal, expected_status)
        if cc.is_direct_delivery:
            await self.inventory.require_stock_for(request)

        await self._set_status(cc, CCStatus.CC_PENDING, submitted_at=utcnow())
        await self.requests.transition(request, RequestAction.SUBMIT_CC, principal)

        logger.info("Cost comparison for %s submitted by %s", request.request_number, principal.id)
        return cc

    # ==================== Review ====================

    async def review(
        self,
        request_id: uuid.UUID,
        action: ReviewAction,
        principal: Principal,
        selected_vendor_id: Optional[uuid.UUID] = None,
        notes: Optional[str] = None,
    ) -> CostComparison:
        """
        Approve one quoted vendor or send the comparison back.

        Raises:
            StaleStateError: comparison was already reviewed
            InvalidTransition: comparison was never submitted
            ValidationFailed: vendor not quoted, or reject without notes
            InvalidQuantity: direct delivery and stock ran short since submit
        """
        action = ReviewAction(action)
        request_action = (
            RequestAction.APPROVE_CC if action == ReviewAction.APPROVE else RequestAction.REJECT_CC
        )
        check_role(request_action, principal.role)

        request = await self.requests.get(request_id)
        cc = await self.get(request_id)

        if cc.status in (CCStatus.CC_APPROVED.value, CCStatus.CC_REJECTED.value):
            logger.warning("Review of %s ignored: already %s", request.request_number, cc.status)
            raise StaleStateError(
                f"Cost comparison was already reviewed ({cc.status})",
                {"status": cc.status}
            )
        if cc.status != CCStatus.CC_PENDING.value:
            raise InvalidTransition(
                f"Cost comparison in '{cc.status}' status has not been submitted",
                {"status": cc.status}
            )

        now = utcnow()
        if action == ReviewAction.APPROVE:
            if selected_vendor_id is None:
                if not cc.is_direct_delivery:
                    raise ValidationFailed("A vendor must be selected to approve")
            elif selected_vendor_id not in cc.quoted_vendor_ids:
                raise ValidationFailed(
                    "Selected vendor is not one of the quoted vendors",
                    {"selected_vendor_id": str(selected_vendor_id)}
                )
            self.requests.validate_action(request, request_action, principal)
            await self._set_status(
                cc, CCStatus.CC_APPROVED,
                selected_vendor_id=selected_vendor_id,
                manager_notes=notes,
                reviewed_by=principal.id,
                reviewed_at=now,
            )
            if cc.is_direct_delivery:
                await self.inventory.issue_for_request(request, request.quantity, principal)
        else:
            if not notes or not notes.strip():
                raise ValidationFailed("Notes are required to reject a cost comparison")
            self.requests.validate_action(request, request_action, principal)
            await self._set_status(
                cc, CCStatus.CC_REJECTED,
                selected_vendor_id=None,
                manager_notes=notes.strip(),
                reviewed_by=principal.id,
                reviewed_at=now,
            )

        await self.requests.transition(request, request_action, principal, notes=notes)
        logger.info(
            "Cost comparison for %s %s by %s",
            request.request_number, cc.status, principal.id
        )
        return cc

    # ==================== Helpers ====================

    @staticmethod
    def _require_request_status(request: Request, verb: str) -> None:
        if request.status != RequestStatus.READY_FOR_CC.value:
            raise InvalidTransition(
                f"Cannot {verb} a request in '{request.status}' status",
                {"current_status": request.status, "required_status": RequestStatus.READY_FOR_CC.value}
            )

    @staticmethod
    def _require_quotes(quotes, is_direct_delivery: bool) -> None:
        if not quotes and not is_direct_delivery:
            raise EmptyQuoteSet("At least one vendor quote is required unless delivery is direct")

    async def _validate_quotes(self, vendor_quotes: List[VendorQuoteInput]) -> None:
        seen = set()
        for quote in vendor_quotes:
            if Decimal(str(quote.unit_price)) < 0:
                raise ValidationFailed(
                    "Unit price cannot be negative",
                    {"vendor_id": str(quote.vendor_id)}
                )
            if quote.vendor_id in seen:
                raise ValidationFailed(
                    "Each vendor can be quoted only once",
                    {"vendor_id": str(quote.vendor_id)}
                )
            seen.add(quote.vendor_id)

        if not seen:
            return
        result = await self.db.execute(select(Vendor).where(Vendor.id.in_(seen)))
        vendors = {vendor.id: vendor for vendor in result.scalars().all()}
        for vendor_id in seen:
            vendor = vendors.get(vendor_id)
            if vendor is None:
                raise NotFound("Vendor", vendor_id)
            if not vendor.is_active:
                raise ValidationFailed("Vendor is disabled", {"vendor_id": str(vendor_id)})

    async def _write(
        self,
        cc: Optional[CostComparison],
        request: Request,
        vendor_quotes: List[VendorQuoteInput],
        is_direct_delivery: bool,
        principal: Principal,
    ) -> CostComparison:
        if cc is None:
            cc = CostComparison(
                request_id=request.id,
                status=CCStatus.DRAFT.value,
                created_by=principal.id,
                vendor_quotes=[],
            )
            self.db.add(cc)
        else:
            # Old rows go first so re-quoting the same vendor does not hit the unique key
            cc.vendor_quotes.clear()
            await self.db.flush()

        cc.is_direct_delivery = is_direct_delivery
        cc.selected_vendor_id = None
        cc.vendor_quotes.extend(
            CostComparisonQuote(
                position=position,
                vendor_id=quote.vendor_id,
                unit_price=quote.unit_price,
                quoted_quantity=quote.quoted_quantity,
                unit=quote.unit,
                discount_percent=quote.discount_percent,
                gst_percent=quote.gst_percent,
            )
            for position, quote in enumerate(vendor_quotes)
        )
        await self.db.flush()
        return cc

    async def _set_status(self, cc: CostComparison, new_status: CCStatus, **values) -> None:
        """Compare-and-set on the comparison's status."""
        values.setdefault("updated_at", utcnow())
        result = await self.db.execute(
            update(CostComparison)
            .where(CostComparison.id == cc.id, CostComparison.status == cc.status)
            .values(status=new_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("Stale write on cost comparison %s (status=%s)", cc.id, cc.status)
            raise StaleStateError(
                "Cost comparison was changed by someone else; reload and retry",
                {"cost_comparison_id": str(cc.id), "status": cc.status}
            )
        set_committed_value(cc, "status", new_status.value)
        for key, value in values.items():
            set_committed_value(cc, key, value)
