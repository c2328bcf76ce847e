from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from requisition_crm.core.exceptions import (
    AlreadyTerminal, InvalidQuantity, InvalidTransition, PermissionDenied, ValidationFailed,
)
from requisition_crm.models.cost_comparison import CostComparisonQuote
from requisition_crm.models.document_sequence import DocumentScope
from requisition_crm.models.purchase_order import PurchaseOrder
from requisition_crm.schemas.purchase_order import POFromRequestCreate, DirectPOCreate
from requisition_crm.services.cost_comparison_service import CostComparisonService
from requisition_crm.services.document_sequence_service import DocumentSequenceService
from requisition_crm.services.purchase_order_service import PurchaseOrderService, calculate_total


def days_from_now(days):
    return datetime.now(timezone.utc) + timedelta(days=days)


def issue(vendor, **extra):
    return POFromRequestCreate(vendor_id=vendor.id, valid_till=days_from_now(14), **extra)


def direct(vendor, site, **overrides):
    fields = dict(
        item_description="TMT bars 12mm",
        quantity=Decimal("2"),
        unit="tonnes",
        vendor_id=vendor.id,
        unit_rate=Decimal("56000"),
        gst_tax_rate=Decimal("18"),
        delivery_site_id=site.id,
        valid_till=days_from_now(3),
    )
    fields.update(overrides)
    return DirectPOCreate(**fields)


async def po_numbers_used(db):
    return await DocumentSequenceService(db).current_number(DocumentScope.PURCHASE_ORDER)


class TestTotals:

    @pytest.mark.parametrize("quantity,rate,gst,expected", [
        ("5", "9.0", "18", "53.10"),
        ("3", "33.333", "0", "100.00"),
        ("1", "0.005", "0", "0.01"),
        ("2.5", "100", "5", "262.50"),
    ])
    def test_calculate_total(self, quantity, rate, gst, expected):
        assert calculate_total(Decimal(quantity), Decimal(rate), Decimal(gst)) == Decimal(expected)

    def test_expired_only_while_ordered(self):
        po = PurchaseOrder(status="ordered", valid_till=days_from_now(-1))
        assert po.is_expired
        po.status = "delivered"
        assert not po.is_expired


class TestIssueFromRequest:

    async def test_selected_vendor_quote_sets_rate(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("5", prices=("10.5", "9.0"), select=1)

        po, request, remainder = await PurchaseOrderService(db).create_from_approved_request(
            request.id, issue(vendors[1]), officer
        )

        assert po.unit_rate == Decimal("9.0")
        assert po.gst_tax_rate == Decimal("18")
        assert po.total_amount == Decimal("53.10")
        assert po.po_number.startswith("PO-")
        assert po.po_number.endswith("-0001")
        assert po.status == "ordered"
        assert po.is_direct is False
        assert po.delivery_site_id == workflow.site.id
        assert request.status == "delivery_stage"
        assert remainder is None

    async def test_quote_gst_is_used(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("5", gst="12")
        po, _, _ = await PurchaseOrderService(db).create_from_approved_request(
            request.id, issue(vendors[1]), officer
        )
        assert po.total_amount == Decimal("50.40")

    async def test_quote_discount_lowers_rate(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("5", discount="10")
        po, _, _ = await PurchaseOrderService(db).create_from_approved_request(
            request.id, issue(vendors[1]), officer
        )
        assert po.unit_rate == Decimal("8.1")
        assert po.total_amount == Decimal("47.79")

    def test_net_price_rounds_to_rate_precision(self):
        quote = CostComparisonQuote(unit_price=Decimal("33.3333"), discount_percent=Decimal("12.5"))
        assert quote.net_unit_price == Decimal("29.1666")
        assert CostComparisonQuote(unit_price=Decimal("9.0")).net_unit_price == Decimal("9.0")

    async def test_explicit_rate_overrides_quote(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("5")
        po, _, _ = await PurchaseOrderService(db).create_from_approved_request(
            request.id, issue(vendors[1], unit_rate=Decimal("8.5"), gst_tax_rate=Decimal("0")), officer
        )
        assert po.total_amount == Decimal("42.50")

    async def test_partial_order_splits_request(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("100")
        service = PurchaseOrderService(db)

        po, ordered, remainder = await service.create_from_approved_request(
            request.id, issue(vendors[1], quantity=Decimal("60")), officer
        )

        assert po.quantity == Decimal("60")
        assert ordered.quantity == Decimal("60")
        assert ordered.status == "delivery_stage"
        assert remainder.quantity == Decimal("40")
        assert remainder.status == "ready_for_po"

        # The remainder keeps the approved comparison and can be ordered on its own
        second, _, none_left = await service.create_from_approved_request(
            remainder.id, issue(vendors[1]), officer
        )
        assert second.quantity == Decimal("40")
        assert second.po_number.endswith("-0002")
        assert none_left is None

    async def test_vendor_must_match_selection(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("5", select=1)
        with pytest.raises(ValidationFailed):
            await PurchaseOrderService(db).create_from_approved_request(
                request.id, issue(vendors[0]), officer
            )
        assert await po_numbers_used(db) == 0

    async def test_past_valid_till_burns_no_number(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("5")
        data = POFromRequestCreate(vendor_id=vendors[1].id, valid_till=days_from_now(-1))
        with pytest.raises(ValidationFailed):
            await PurchaseOrderService(db).create_from_approved_request(request.id, data, officer)
        assert await po_numbers_used(db) == 0
        assert (await workflow.requests.get(request.id)).status == "ready_for_po"

    async def test_quantity_above_request(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("5")
        with pytest.raises(InvalidQuantity):
            await PurchaseOrderService(db).create_from_approved_request(
                request.id, issue(vendors[1], quantity=Decimal("6")), officer
            )
        assert await po_numbers_used(db) == 0

    async def test_request_not_ready(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_cc()
        with pytest.raises(InvalidTransition):
            await PurchaseOrderService(db).create_from_approved_request(
                request.id, issue(vendors[1]), officer
            )

    async def test_manager_cannot_issue(self, db, workflow, manager, vendors):
        request = await workflow.ready_for_po("5")
        with pytest.raises(PermissionDenied):
            await PurchaseOrderService(db).create_from_approved_request(
                request.id, issue(vendors[1]), manager
            )

    async def test_direct_delivery_comparison_has_no_vendor(self, db, workflow, stocked, officer, manager, vendors):
        request = await workflow.ready_for_cc()
        cc_service = CostComparisonService(db)
        await cc_service.upsert(request.id, [], True, officer)
        await cc_service.submit(request.id, officer)
        await cc_service.review(request.id, "approve", manager)

        with pytest.raises(InvalidTransition):
            await PurchaseOrderService(db).create_from_approved_request(
                request.id, issue(vendors[0]), officer
            )


class TestDirectPO:

    async def test_direct_po(self, db, officer, vendors, site):
        po = await PurchaseOrderService(db).create_direct_po(direct(vendors[0], site), officer)

        assert po.is_direct is True
        assert po.request_id is None
        assert po.total_amount == Decimal("132160.00")
        assert po.po_number.endswith("-0001")

    async def test_past_valid_till_consumes_no_number(self, db, officer, vendors, site):
        service = PurchaseOrderService(db)
        with pytest.raises(ValidationFailed):
            await service.create_direct_po(direct(vendors[0], site, valid_till=days_from_now(-1)), officer)
        assert await po_numbers_used(db) == 0

        po = await service.create_direct_po(direct(vendors[0], site), officer)
        assert po.po_number.endswith("-0001")

    async def test_quantity_and_rate_must_be_positive(self, db, officer, vendors, site):
        service = PurchaseOrderService(db)
        with pytest.raises(InvalidQuantity):
            await service.create_direct_po(direct(vendors[0], site, quantity=Decimal("0")), officer)
        with pytest.raises(ValidationFailed):
            await service.create_direct_po(direct(vendors[0], site, unit_rate=Decimal("-1")), officer)

    async def test_disabled_vendor(self, db, officer, vendors, site):
        with pytest.raises(ValidationFailed):
            await PurchaseOrderService(db).create_direct_po(direct(vendors[2], site), officer)

    async def test_engineer_cannot_raise(self, db, engineer, vendors, site):
        with pytest.raises(PermissionDenied):
            await PurchaseOrderService(db).create_direct_po(direct(vendors[0], site), engineer)

    async def test_listed_separately(self, db, workflow, officer, vendors, site):
        service = PurchaseOrderService(db)
        request = await workflow.ready_for_po("5")
        await service.create_from_approved_request(request.id, issue(vendors[1]), officer)
        await service.create_direct_po(direct(vendors[0], site), officer)

        rows, total = await service.list_direct()
        assert total == 1
        assert rows[0].is_direct

        rows, total = await service.list(request_id=request.id)
        assert total == 1


class TestStatus:

    @pytest.fixture
    async def po(self, db, officer, vendors, site):
        return await PurchaseOrderService(db).create_direct_po(direct(vendors[0], site), officer)

    async def test_delivered_once(self, db, po, officer):
        service = PurchaseOrderService(db)
        delivered_on = days_from_now(0)

        updated = await service.update_status(po.id, "delivered", officer, actual_delivery_date=delivered_on)
        assert updated.status == "delivered"
        assert updated.actual_delivery_date == delivered_on

        with pytest.raises(AlreadyTerminal):
            await service.update_status(po.id, "delivered", officer, actual_delivery_date=delivered_on)

    async def test_delivered_needs_date(self, db, po, officer):
        with pytest.raises(ValidationFailed):
            await PurchaseOrderService(db).update_status(po.id, "delivered", officer)

    async def test_cancel_once(self, db, po, manager):
        service = PurchaseOrderService(db)
        cancelled = await service.cancel(po.id, manager)
        assert cancelled.status == "cancelled"
        assert cancelled.cancelled_by == manager.id

        with pytest.raises(AlreadyTerminal):
            await service.cancel(po.id, manager)
        with pytest.raises(AlreadyTerminal):
            await service.update_status(po.id, "delivered", manager, actual_delivery_date=days_from_now(0))

    async def test_back_to_ordered_is_invalid(self, db, po, officer):
        with pytest.raises(InvalidTransition):
            await PurchaseOrderService(db).update_status(po.id, "ordered", officer)

    async def test_engineer_cannot_update(self, db, po, engineer):
        with pytest.raises(PermissionDenied):
            await PurchaseOrderService(db).cancel(po.id, engineer)
