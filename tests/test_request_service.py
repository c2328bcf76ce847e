import uuid
from decimal import Decimal

import pytest
from sqlalchemy import update

from requisition_crm.core.exceptions import (
    AlreadyTerminal, InvalidQuantity, InvalidTransition, NotFound, PermissionDenied, StaleStateError,
    ValidationFailed,
)
from requisition_crm.models.request import Request
from requisition_crm.models.site import Site
from requisition_crm.schemas.request import RequestItemCreate
from requisition_crm.services.cost_comparison_service import CostComparisonService
from requisition_crm.services.request_service import RequestService
from requisition_crm.services.request_state_machine import RequestAction


def items(*names_and_quantities):
    return [
        RequestItemCreate(item_name=name, quantity=Decimal(qty), unit="bags")
        for name, qty in names_and_quantities
    ]


class TestCreate:

    async def test_items_share_one_number(self, db, engineer, site):
        created = await RequestService(db).create_requests(
            site.id, items(("Cement", "100"), ("Sand", "12.5")), engineer
        )

        assert len(created) == 2
        assert created[0].request_number == created[1].request_number
        assert created[0].request_number.startswith("REQ-")
        assert created[0].request_number.endswith("-0001")
        assert [r.item_order for r in created] == [1, 2]
        assert all(r.status == "pending" for r in created)
        assert all(r.split_sequence == 0 for r in created)

    async def test_next_submission_gets_next_number(self, db, engineer, site):
        service = RequestService(db)
        first = await service.create_requests(site.id, items(("Cement", "1")), engineer)
        second = await service.create_requests(site.id, items(("Cement", "1")), engineer)
        assert first[0].request_number.endswith("-0001")
        assert second[0].request_number.endswith("-0002")

    async def test_draft(self, db, engineer, site):
        created = await RequestService(db).create_requests(
            site.id, items(("Cement", "5")), engineer, as_draft=True
        )
        assert created[0].status == "draft"

    async def test_only_site_engineers(self, db, manager, site):
        with pytest.raises(PermissionDenied):
            await RequestService(db).create_requests(site.id, items(("Cement", "5")), manager)

    async def test_unknown_site(self, db, engineer):
        with pytest.raises(NotFound):
            await RequestService(db).create_requests(uuid.uuid4(), items(("Cement", "5")), engineer)

    async def test_disabled_site(self, db, engineer):
        site = Site(name="Closed site", is_active=False)
        db.add(site)
        await db.flush()
        with pytest.raises(ValidationFailed):
            await RequestService(db).create_requests(site.id, items(("Cement", "5")), engineer)

    async def test_history_starts_with_create(self, db, engineer, site):
        service = RequestService(db)
        created = await service.create_requests(site.id, items(("Cement", "5")), engineer)
        history = await service.history(created[0].id)
        assert [(h.action, h.from_status, h.to_status) for h in history] == [
            ("create", None, "pending"),
        ]


class TestTransitions:

    async def test_submit_draft(self, workflow, engineer):
        request = await workflow.raise_request(as_draft=True)
        request = await workflow.requests.submit(request.id, engineer)
        assert request.status == "pending"
        assert request.version == 2

    async def test_submit_someone_elses_request(self, workflow, other_engineer):
        request = await workflow.raise_request(as_draft=True)
        with pytest.raises(PermissionDenied):
            await workflow.requests.submit(request.id, other_engineer)

    async def test_approve_auto_advances_to_cost_comparison(self, workflow, manager):
        request = await workflow.raise_request()
        request = await workflow.requests.approve(request.id, manager)

        assert request.status == "ready_for_cc"
        assert request.approved_by == manager.id
        assert request.approved_at is not None

        history = await workflow.requests.history(request.id)
        assert [h.action for h in history] == ["create", "approve", "forward_to_cost_comparison"]
        assert [h.version for h in history] == [1, 2, 3]

    async def test_approve_without_auto_advance(self, db, workflow, manager, officer):
        request = await workflow.raise_request()
        service = RequestService(db, auto_advance=False)

        request = await service.approve(request.id, manager)
        assert request.status == "approved"

        request = await service.forward_to_cost_comparison(request.id, officer)
        assert request.status == "ready_for_cc"

    async def test_engineer_cannot_approve(self, workflow, engineer):
        request = await workflow.raise_request()
        with pytest.raises(PermissionDenied):
            await workflow.requests.approve(request.id, engineer)
        assert (await workflow.requests.get(request.id)).status == "pending"

    async def test_reject_requires_reason(self, workflow, manager):
        request = await workflow.raise_request()
        with pytest.raises(ValidationFailed):
            await workflow.requests.reject(request.id, manager, reason="  ")

    async def test_rejected_is_final(self, workflow, manager):
        request = await workflow.raise_request()
        request = await workflow.requests.reject(request.id, manager, reason="Duplicate of REQ-0007")

        assert request.status == "rejected"
        assert request.rejection_reason == "Duplicate of REQ-0007"
        with pytest.raises(AlreadyTerminal):
            await workflow.requests.approve(request.id, manager)
        with pytest.raises(AlreadyTerminal):
            await workflow.requests.reject(request.id, manager, reason="again")

    async def test_stale_expected_status(self, workflow, manager):
        request = await workflow.raise_request()
        await workflow.requests.approve(request.id, manager)
        with pytest.raises(StaleStateError):
            await workflow.requests.reject(request.id, manager, "late", expected_status="pending")

    async def test_concurrent_change_loses(self, db, workflow, manager):
        request = await workflow.raise_request()
        service = RequestService(db)
        stale = await service.get(request.id)

        # Another writer bumps the row after we read it
        await db.execute(
            update(Request)
            .where(Request.id == stale.id)
            .values(version=stale.version + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(StaleStateError):
            await service.transition(stale, RequestAction.APPROVE, manager)

        fresh = await service.get(request.id)
        assert fresh.status == "pending"
        assert fresh.version == 2


class TestReadyForDelivery:

    async def test_partial_quantity_splits(self, db, workflow, officer):
        request = await workflow.ready_for_po("100")

        moved, remainder = await workflow.requests.mark_ready_for_delivery(
            request.id, Decimal("60"), officer
        )

        assert moved.id == request.id
        assert moved.status == "delivery_stage"
        assert moved.quantity == Decimal("60")
        assert moved.delivery_marked_at is not None

        assert remainder.status == "ready_for_po"
        assert remainder.quantity == Decimal("40")
        assert remainder.parent_request_id == request.id
        assert remainder.request_number == request.request_number
        assert remainder.item_order == request.item_order
        assert remainder.split_sequence == 1

        copied = await CostComparisonService(db).get(remainder.id)
        assert copied.status == "cc_approved"
        assert copied.selected_vendor_id == workflow.vendors[1].id
        assert len(copied.vendor_quotes) == 2

    async def test_full_quantity_does_not_split(self, workflow, engineer):
        request = await workflow.ready_for_po("100")
        moved, remainder = await workflow.requests.mark_ready_for_delivery(
            request.id, Decimal("100"), engineer
        )
        assert remainder is None
        assert moved.quantity == Decimal("100")

    async def test_second_split_takes_next_sequence(self, workflow, officer):
        request = await workflow.ready_for_po("100")
        _, first = await workflow.requests.mark_ready_for_delivery(request.id, Decimal("60"), officer)
        _, second = await workflow.requests.mark_ready_for_delivery(first.id, Decimal("10"), officer)

        assert second.split_sequence == 2
        assert second.parent_request_id == first.id
        assert second.quantity == Decimal("30")

    @pytest.mark.parametrize("quantity", ["0", "-5", "100.5"])
    async def test_bad_quantity(self, workflow, officer, quantity):
        request = await workflow.ready_for_po("100")
        with pytest.raises(InvalidQuantity):
            await workflow.requests.mark_ready_for_delivery(request.id, Decimal(quantity), officer)
        assert (await workflow.requests.get(request.id)).status == "ready_for_po"

    async def test_wrong_status(self, workflow, officer):
        request = await workflow.ready_for_cc()
        with pytest.raises(InvalidTransition):
            await workflow.requests.mark_ready_for_delivery(request.id, Decimal("1"), officer)


class TestUpdateDetails:

    async def test_engineer_edits_pending(self, workflow, engineer):
        request = await workflow.raise_request()
        request = await workflow.requests.update_details(
            request.id, engineer, {"quantity": Decimal("80"), "is_urgent": True}
        )
        assert request.quantity == Decimal("80")
        assert request.is_urgent is True
        assert request.version == 2

        history = await workflow.requests.history(request.id)
        assert history[-1].action == "update_details"
        assert history[-1].to_status == "pending"

    async def test_engineer_locked_out_after_approval(self, workflow, engineer):
        request = await workflow.ready_for_cc()
        with pytest.raises(PermissionDenied):
            await workflow.requests.update_details(request.id, engineer, {"quantity": Decimal("1")})

    async def test_officer_edits_during_cost_comparison(self, workflow, officer):
        request = await workflow.ready_for_cc()
        request = await workflow.requests.update_details(request.id, officer, {"unit": "tonnes"})
        assert request.unit == "tonnes"

    async def test_quantity_must_stay_positive(self, workflow, engineer):
        request = await workflow.raise_request()
        with pytest.raises(InvalidQuantity):
            await workflow.requests.update_details(request.id, engineer, {"quantity": Decimal("0")})

    async def test_stale_view(self, workflow, engineer):
        request = await workflow.raise_request()
        with pytest.raises(StaleStateError):
            await workflow.requests.update_details(
                request.id, engineer, {"unit": "kg"}, expected_status="draft"
            )


class TestList:

    async def test_filters(self, workflow, engineer, other_engineer, site, manager):
        mine = await workflow.raise_request()
        theirs = (await workflow.requests.create_requests(
            site.id, items(("Bricks", "500")), other_engineer
        ))[0]
        await workflow.requests.approve(theirs.id, manager)

        rows, total = await workflow.requests.list(creator_id=engineer.id)
        assert total == 1
        assert rows[0].id == mine.id

        rows, total = await workflow.requests.list(status="ready_for_cc")
        assert [r.id for r in rows] == [theirs.id]

        rows, total = await workflow.requests.list(site_id=site.id, limit=1)
        assert total == 2
        assert len(rows) == 1

    async def test_get_missing(self, db):
        with pytest.raises(NotFound):
            await RequestService(db).get(uuid.uuid4())
