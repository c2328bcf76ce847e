"""
Request service.

Owns every write to ``requests``. Status changes go through
``request_state_machine`` for validation and are persisted with a
compare-and-set UPDATE, so two callers acting on the same version cannot
both win. Each status write appends a ``request_status_history`` row in the
same transaction.
"""
import logging
import uuid
from decimal import Decimal
from typing import Optional, List, Tuple, Any

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from requisition_crm.config import settings
from requisition_crm.core.clock import utcnow
from requisition_crm.core.exceptions import (
    ProcurementError, NotFound, PermissionDenied, StaleStateError, ValidationFailed
)
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.models.cost_comparison import CostComparison, CostComparisonQuote
from requisition_crm.models.document_sequence import DocumentScope
from requisition_crm.models.request import Request, RequestStatus, RequestStatusHistory
from requisition_crm.models.site import Site
from requisition_crm.schemas.request import RequestItemCreate
from requisition_crm.services.document_sequence_service import DocumentSequenceService
from requisition_crm.services.quantity_ledger import split_quantity, require_positive, QuantitySplit
from requisition_crm.services.request_state_machine import (
    RequestAction, check_role, validate_transition, can_edit_details, get_rule,
)


logger = logging.getLogger(__name__)

DETAIL_FIELDS = ("item_name", "quantity", "unit", "description", "is_urgent", "required_by", "notes")


class RequestService:
    """Request lifecycle operations."""

    def __init__(self, db: AsyncSession, auto_advance: Optional[bool] = None):
        self.db = db
        self.auto_advance = (
            settings.AUTO_ADVANCE_APPROVED_TO_CC if auto_advance is None else auto_advance
        )

    # ==================== Reads ====================

    async def get(self, request_id: uuid.UUID) -> Request:
        result = await self.db.execute(
            select(Request)
            .where(Request.id == request_id)
            .execution_options(populate_existing=True)
        )
        request = result.scalar_one_or_none()
        if request is None:
            raise NotFound("Request", request_id)
        return request

    async def list(
        self,
        status: Optional[str] = None,
        site_id: Optional[uuid.UUID] = None,
        creator_id: Optional[uuid.UUID] = None,
        request_number: Optional[str] = None,
        is_urgent: Optional[bool] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Request], int]:
        filters = []
        if status:
            filters.append(Request.status == RequestStatus(status).value)
        if site_id:
            filters.append(Request.site_id == site_id)
        if creator_id:
            filters.append(Request.creator_id == creator_id)
        if request_number:
            filters.append(Request.request_number == request_number)
        if is_urgent is not None:
            filters.append(Request.is_urgent == is_urgent)

        query = select(Request)
        count_query = select(func.count(Request.id))
        if filters:
            query = query.where(and_(*filters))
            count_query = count_query.where(and_(*filters))

        total = (await self.db.execute(count_query)).scalar() or 0

        query = query.order_by(
            Request.created_at.desc(),
            Request.request_number,
            Request.item_order,
            Request.split_sequence,
        ).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total

    async def history(self, request_id: uuid.UUID) -> List[RequestStatusHistory]:
        await self.get(request_id)
        result = await self.db.execute(
            select(RequestStatusHistory)
            .where(RequestStatusHistory.request_id == request_id)
            .order_by(RequestStatusHistory.version)
        )
        return list(result.scalars().all())

    # ==================== Creation ====================

    async def create_requests(
        self,
        site_id: uuid.UUID,
        items: List[RequestItemCreate],
        principal: Principal,
        as_draft: bool = False,
    ) -> List[Request]:
        """
        Create one request per item under a single REQ number.

        Items get ``item_order`` 1..n in the order given.
        """
        if not principal.has_role(UserRole.SITE_ENGINEER):
            raise PermissionDenied(
                "Only site engineers can raise requests",
                {"role": principal.role.value}
            )
        if not items:
            raise ValidationFailed("At least one item is required")

        site = await self.db.get(Site, site_id)
        if site is None:
            raise NotFound("Site", site_id)
        if not site.is_active:
            raise ValidationFailed("Site is disabled", {"site_id": str(site_id)})

        quantities = [require_positive(item.quantity, "quantity") for item in items]

        numbering = DocumentSequenceService(self.db, actor_id=principal.id)
        request_number = await numbering.next_number(DocumentScope.REQUEST)

        status = RequestStatus.DRAFT if as_draft else RequestStatus.PENDING
        requests = []
        for order, (item, quantity) in enumerate(zip(items, quantities), start=1):
            request = Request(
                request_number=request_number,
                item_order=order,
                split_sequence=0,
                item_name=item.item_name,
                quantity=quantity,
                delivered_quantity=Decimal("0"),
                unit=item.unit,
                description=item.description,
                is_urgent=item.is_urgent,
                required_by=item.required_by,
                notes=item.notes,
                status=status.value,
                version=1,
                site_id=site_id,
                creator_id=principal.id,
            )
            self.db.add(request)
            requests.append(request)

        await self.db.flush()
        for request in requests:
            self._record_history(request, None, "create", principal)
        await self.db.flush()

        logger.info(
            "Created %s with %d item(s) as %s by %s",
            request_number, len(requests), status.value, principal.id
        )
        return requests

    # ==================== Transitions ====================

    async def submit(
        self,
        request_id: uuid.UUID,
        principal: Principal,
        expected_status: Optional[str] = None,
    ) -> Request:
        request = await self.get(request_id)
        self._check_owner(request, principal)
        return await self.transition(request, RequestAction.SUBMIT, principal, expected_status)

    async def approve(
        self,
        request_id: uuid.UUID,
        principal: Principal,
        expected_status: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Request:
        """Approve, then move on to ready_for_cc when auto-advance is on."""
        request = await self.get(request_id)
        now = utcnow()
        await self.transition(
            request, RequestAction.APPROVE, principal, expected_status,
            notes=notes, approved_by=principal.id, approved_at=now,
        )
        if self.auto_advance:
            await self._apply(request, RequestAction.FORWARD_TO_CC, principal, notes="Auto-advanced after approval")
        return request

    async def reject(
        self,
        request_id: uuid.UUID,
        principal: Principal,
        reason: str,
        expected_status: Optional[str] = None,
    ) -> Request:
        request = await self.get(request_id)
        if not reason or not reason.strip():
            raise ValidationFailed("Rejection reason is required")
        return await self.transition(
            request, RequestAction.REJECT, principal, expected_status,
            notes=reason,
            rejection_reason=reason.strip(),
            rejected_by=principal.id,
            rejected_at=utcnow(),
        )

    async def forward_to_cost_comparison(
        self,
        request_id: uuid.UUID,
        principal: Principal,
        expected_status: Optional[str] = None,
    ) -> Request:
        request = await self.get(request_id)
        return await self.transition(request, RequestAction.FORWARD_TO_CC, principal, expected_status)

    async def mark_ready_for_delivery(
        self,
        request_id: uuid.UUID,
        quantity: Any,
        principal: Principal,
        expected_status: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Tuple[Request, Optional[Request]]:
        """
        Move ``quantity`` of a ready_for_po item to delivery_stage.

        Returns:
            (request, remainder) where remainder is the sibling left in
            ready_for_po, or None when the whole quantity moved.
        """
        request = await self.get(request_id)
        return await self.advance_with_split(
            request, RequestAction.MARK_READY_FOR_DELIVERY, quantity, principal,
            expected_status=expected_status, notes=notes,
            delivery_marked_at=utcnow(),
        )

    async def update_details(
        self,
        request_id: uuid.UUID,
        principal: Principal,
        changes: dict,
        expected_status: Optional[str] = None,
    ) -> Request:
        """Edit item fields while the request is still editable for the caller's role."""
        request = await self.get(request_id)

        if expected_status is not None and RequestStatus(expected_status).value != request.status:
            self._log_rejected(request, "update_details", principal, "stale view")
            raise StaleStateError(
                f"Request is '{request.status}', not '{RequestStatus(expected_status).value}'",
                {"current_status": request.status}
            )
        if not can_edit_details(request.status, principal.role):
            self._log_rejected(request, "update_details", principal, "not editable")
            raise PermissionDenied(
                f"Role '{principal.role.value}' cannot edit a request in '{request.status}' status",
                {"status": request.status, "role": principal.role.value}
            )
        self._check_owner(request, principal)

        values = {k: v for k, v in changes.items() if k in DETAIL_FIELDS}
        if "quantity" in values:
            if values["quantity"] is None:
                raise ValidationFailed("Quantity cannot be cleared")
            values["quantity"] = require_positive(values["quantity"], "quantity")
        for required in ("item_name", "unit"):
            if required in values and not values[required]:
                raise ValidationFailed(f"{required} cannot be empty")
        if not values:
            return request

        from_status = request.status
        await self._compare_and_set(request, **values)
        self._record_history(request, from_status, "update_details", principal,
                             notes=", ".join(sorted(values)))
        await self.db.flush()
        logger.info("Updated %s fields %s by %s", self._label(request), sorted(values), principal.id)
        return request

    # ==================== Shared machinery ====================

    def validate_action(
        self,
        request: Request,
        action: RequestAction,
        principal: Principal,
        expected_status: Optional[str] = None,
    ) -> RequestStatus:
        """Role and status checks without writing. Logs rejections."""
        try:
            check_role(action, principal.role)
            return validate_transition(request.status, action, expected_status)
        except ProcurementError as e:
            self._log_rejected(request, RequestAction(action).value, principal, e.message)
            raise

    async def transition(
        self,
        request: Request,
        action: RequestAction,
        principal: Principal,
        expected_status: Optional[str] = None,
        notes: Optional[str] = None,
        **values,
    ) -> Request:
        """Validate and apply one status action."""
        self.validate_action(request, action, principal, expected_status)
        await self._apply(request, action, principal, notes=notes, **values)
        return request

    async def advance_with_split(
        self,
        request: Request,
        action: RequestAction,
        quantity: Any,
        principal: Principal,
        expected_status: Optional[str] = None,
        notes: Optional[str] = None,
        **values,
    ) -> Tuple[Request, Optional[Request]]:
        """
        Apply ``action`` to ``quantity`` of the item.

        A partial quantity shrinks the item to that amount and creates a
        remainder sibling that stays in the prior status, carrying a copy of
        the approved cost comparison.
        """
        self.validate_action(request, action, principal, expected_status)
        split = self.plan_split(request, quantity)
        sequence = None if split.is_full else await self._next_split_sequence(request)

        prior_status = request.status
        await self._apply(
            request, action, principal, notes=notes,
            quantity=split.deliver_amount, **values
        )

        remainder = None
        if not split.is_full:
            remainder = await self._create_remainder(request, split, prior_status, principal, sequence)
        return request, remainder

    def plan_split(self, request: Request, quantity: Any) -> QuantitySplit:
        return split_quantity(request.quantity, request.quantity if quantity is None else quantity)

    async def _apply(
        self,
        request: Request,
        action: RequestAction,
        principal: Principal,
        notes: Optional[str] = None,
        **values,
    ) -> None:
        to_status = get_rule(action).to_status
        from_status = request.status
        await self._compare_and_set(request, status=to_status.value, **values)
        self._record_history(request, from_status, RequestAction(action).value, principal, notes)
        await self.db.flush()
        logger.info(
            "%s: %s -> %s (%s) by %s",
            self._label(request), from_status, to_status.value,
            RequestAction(action).value, principal.id
        )

    async def _compare_and_set(self, request: Request, **values) -> None:
        """
        Write ``values`` only if the row still has the status and version we read.

        Raises:
            StaleStateError: another transaction changed the request first
        """
        values.setdefault("updated_at", utcnow())
        new_version = request.version + 1
        result = await self.db.execute(
            update(Request)
            .where(
                Request.id == request.id,
                Request.status == request.status,
                Request.version == request.version,
            )
            .values(version=new_version, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Stale write on %s (status=%s, version=%s)",
                self._label(request), request.status, request.version
            )
            raise StaleStateError(
                "Request was changed by someone else; reload and retry",
                {"request_id": str(request.id), "status": request.status, "version": request.version}
            )

        for key, value in values.items():
            set_committed_value(request, key, value)
        set_committed_value(request, "version", new_version)

    async def _next_split_sequence(self, request: Request) -> int:
        """Next free split_sequence within the item's lineage."""
        max_sequence = (await self.db.execute(
            select(func.max(Request.split_sequence)).where(
                Request.request_number == request.request_number,
                Request.item_order == request.item_order,
            )
        )).scalar() or 0
        return max_sequence + 1

    async def _create_remainder(
        self,
        request: Request,
        split: QuantitySplit,
        status: str,
        principal: Principal,
        sequence: int,
    ) -> Request:
        """
        Insert the remainder sibling in a savepoint.

        Raises:
            StaleStateError: another split of the same item took ``sequence`` first
        """
        remainder = Request(
            request_number=request.request_number,
            item_order=request.item_order,
            split_sequence=sequence,
            parent_request_id=request.id,
            item_name=request.item_name,
            quantity=split.remainder,
            delivered_quantity=Decimal("0"),
            unit=request.unit,
            description=request.description,
            is_urgent=request.is_urgent,
            notes=request.notes,
            status=status,
            version=1,
            site_id=request.site_id,
            creator_id=request.creator_id,
            required_by=request.required_by,
            approved_by=request.approved_by,
            approved_at=request.approved_at,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(remainder)
        except IntegrityError:
            logger.warning(
                "Split sequence %s of %s/%s taken concurrently",
                sequence, request.request_number, request.item_order
            )
            raise StaleStateError(
                "Item was split by someone else; reload and retry",
                {"request_id": str(request.id), "split_sequence": sequence}
            )

        await self._copy_cost_comparison(request.id, remainder.id)
        self._record_history(
            remainder, None, "split", principal,
            notes=f"Remainder of {self._label(request)} after moving {split.deliver_amount}"
        )
        await self.db.flush()

        logger.info(
            "Split %s: %s moved on, %s left as %s in %s",
            request.request_number, split.deliver_amount, split.remainder,
            self._label(remainder), status
        )
        return remainder

    async def _copy_cost_comparison(self, source_request_id: uuid.UUID, target_request_id: uuid.UUID) -> None:
        result = await self.db.execute(
            select(CostComparison)
            .options(selectinload(CostComparison.vendor_quotes))
            .where(CostComparison.request_id == source_request_id)
        )
        source = result.scalar_one_or_none()
        if source is None:
            return

        copy = CostComparison(
            request_id=target_request_id,
            is_direct_delivery=source.is_direct_delivery,
            status=source.status,
            selected_vendor_id=source.selected_vendor_id,
            manager_notes=source.manager_notes,
            created_by=source.created_by,
            submitted_at=source.submitted_at,
            reviewed_by=source.reviewed_by,
            reviewed_at=source.reviewed_at,
            vendor_quotes=[
                CostComparisonQuote(
                    position=quote.position,
                    vendor_id=quote.vendor_id,
                    unit_price=quote.unit_price,
                    quoted_quantity=quote.quoted_quantity,
                    unit=quote.unit,
                    discount_percent=quote.discount_percent,
                    gst_percent=quote.gst_percent,
                )
                for quote in source.vendor_quotes
            ],
        )
        self.db.add(copy)

    def _record_history(
        self,
        request: Request,
        from_status: Optional[str],
        action: str,
        principal: Principal,
        notes: Optional[str] = None,
    ) -> None:
        self.db.add(RequestStatusHistory(
            request_id=request.id,
            from_status=from_status,
            to_status=request.status,
            action=action,
            version=request.version,
            actor_id=principal.id,
            notes=notes,
        ))

    @staticmethod
    def _check_owner(request: Request, principal: Principal) -> None:
        """Site engineers may only act on requests they raised."""
        if principal.role == UserRole.SITE_ENGINEER and request.creator_id != principal.id:
            raise PermissionDenied(
                "Site engineers can only act on their own requests",
                {"request_id": str(request.id)}
            )

    @staticmethod
    def _label(request: Request) -> str:
        label = f"{request.request_number}/{request.item_order}"
        if request.split_sequence:
            label += f".{request.split_sequence}"
        return label

    def _log_rejected(self, request: Request, action: str, principal: Principal, reason: str) -> None:
        logger.warning(
            "Rejected %s on %s (status=%s) by %s: %s",
            action, self._label(request), request.status, principal.id, reason
        )
