from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from requisition_crm.core.exceptions import (
    AlreadyTerminal, InvalidQuantity, InvalidTransition, PermissionDenied, ValidationFailed,
)
from requisition_crm.models.delivery import DeliveryType
from requisition_crm.models.document_sequence import DocumentScope
from requisition_crm.schemas.delivery import DeliveryCreate, PaymentUpdate
from requisition_crm.schemas.purchase_order import POFromRequestCreate
from requisition_crm.services.delivery_service import DeliveryService
from requisition_crm.services.document_sequence_service import DocumentSequenceService
from requisition_crm.services.purchase_order_service import PurchaseOrderService


def challan(quantity, **extra):
    fields = dict(
        quantity=Decimal(quantity),
        delivery_type="private",
        delivery_person="Suresh",
        delivery_contact="9876543210",
        vehicle_number="MH12AB1234",
    )
    fields.update(extra)
    return DeliveryCreate(**fields)


class TestRecord:

    async def test_partial_then_final(self, db, workflow, engineer):
        request = await workflow.delivery_stage("100")
        service = DeliveryService(db)

        first, request = await service.record_delivery(request.id, challan("60"), engineer)
        assert first.delivery_number.startswith("DC-")
        assert first.delivery_number.endswith("-0001")
        assert first.payment_status == "pending"
        assert request.status == "delivery_stage"
        assert request.delivered_quantity == Decimal("60")
        assert request.remaining_quantity == Decimal("40")

        second, request = await service.record_delivery(request.id, challan("40"), engineer)
        assert second.delivery_number.endswith("-0002")
        assert request.status == "delivered"
        assert request.remaining_quantity == 0

        history = await workflow.requests.history(request.id)
        assert [h.action for h in history[-2:]] == ["record_delivery", "complete_delivery"]

        assert [d.id for d in await service.list_for_request(request.id)] == [first.id, second.id]

    async def test_more_than_remaining(self, db, workflow, officer):
        request = await workflow.delivery_stage("10")
        with pytest.raises(InvalidQuantity):
            await DeliveryService(db).record_delivery(request.id, challan("10.5"), officer)
        assert await DocumentSequenceService(db).current_number(DocumentScope.DELIVERY_CHALLAN) == 0

    async def test_nothing_after_delivered(self, db, workflow, officer):
        request = await workflow.delivery_stage("10")
        service = DeliveryService(db)
        await service.record_delivery(request.id, challan("10"), officer)
        with pytest.raises(AlreadyTerminal):
            await service.record_delivery(request.id, challan("1"), officer)

    async def test_request_must_be_in_delivery_stage(self, db, workflow, officer):
        request = await workflow.ready_for_po("10")
        with pytest.raises(InvalidTransition):
            await DeliveryService(db).record_delivery(request.id, challan("1"), officer)

    async def test_manager_cannot_record(self, db, workflow, manager):
        request = await workflow.delivery_stage("10")
        with pytest.raises(PermissionDenied):
            await DeliveryService(db).record_delivery(request.id, challan("1"), manager)

    async def test_photos_are_kept(self, db, workflow, officer):
        request = await workflow.delivery_stage("10")
        photo = {"url": "https://files.example.com/dc/1.jpg", "key": "dc/1.jpg"}
        delivery, _ = await DeliveryService(db).record_delivery(
            request.id, challan("10", invoice_photo=photo), officer
        )
        assert delivery.invoice_photo == photo
        assert delivery.loading_photo is None


class TestContactFields:

    def test_private_needs_vehicle(self):
        with pytest.raises(ValidationError):
            challan("1", vehicle_number=None)

    def test_vendor_needs_transport_name(self):
        with pytest.raises(ValidationError):
            DeliveryCreate(quantity=Decimal("1"), delivery_type="vendor")
        DeliveryCreate(quantity=Decimal("1"), delivery_type="vendor", transport_name="VRL Logistics")

    def test_public_needs_person_and_contact(self):
        DeliveryCreate(
            quantity=Decimal("1"), delivery_type="public",
            delivery_person="Auto driver", delivery_contact="9000000000",
        )

    async def test_service_checks_fields_too(self, db, workflow, officer):
        request = await workflow.delivery_stage("10")
        data = DeliveryCreate.model_construct(
            quantity=Decimal("1"), delivery_type=DeliveryType.PUBLIC, delivery_person="  ",
        )
        with pytest.raises(ValidationFailed) as exc:
            await DeliveryService(db).record_delivery(request.id, data, officer)
        assert exc.value.details["missing"] == ["delivery_person", "delivery_contact"]


class TestPurchaseOrderLink:

    async def test_links_the_open_po(self, db, workflow, officer, vendors):
        request = await workflow.ready_for_po("10")
        po, request, _ = await PurchaseOrderService(db).create_from_approved_request(
            request.id,
            POFromRequestCreate(
                vendor_id=vendors[1].id,
                valid_till=datetime.now(timezone.utc) + timedelta(days=7),
            ),
            officer,
        )

        delivery, _ = await DeliveryService(db).record_delivery(request.id, challan("4"), officer)
        assert delivery.purchase_order_id == po.id

    async def test_po_from_another_request(self, db, workflow, officer, vendors):
        service = PurchaseOrderService(db)
        valid_till = datetime.now(timezone.utc) + timedelta(days=7)
        first = await workflow.ready_for_po("10")
        other_po, _, _ = await service.create_from_approved_request(
            first.id, POFromRequestCreate(vendor_id=vendors[1].id, valid_till=valid_till), officer
        )
        second = await workflow.delivery_stage("10")

        with pytest.raises(ValidationFailed):
            await DeliveryService(db).record_delivery(
                second.id, challan("1", purchase_order_id=other_po.id), officer
            )


class TestPayment:

    @pytest.fixture
    async def delivery(self, db, workflow, officer):
        request = await workflow.delivery_stage("10")
        delivery, _ = await DeliveryService(db).record_delivery(request.id, challan("10"), officer)
        return delivery

    async def test_mark_paid(self, db, delivery, manager):
        updated = await DeliveryService(db).update_payment(
            delivery.id, PaymentUpdate(payment_status="paid", payment_amount=Decimal("1500")), manager
        )
        assert updated.payment_status == "paid"
        assert updated.payment_amount == Decimal("1500")

    async def test_paid_needs_amount(self, db, delivery, officer):
        with pytest.raises(ValidationFailed):
            await DeliveryService(db).update_payment(
                delivery.id, PaymentUpdate(payment_status="paid"), officer
            )

    async def test_engineer_cannot_update_payment(self, db, delivery, engineer):
        with pytest.raises(PermissionDenied):
            await DeliveryService(db).update_payment(
                delivery.id, PaymentUpdate(payment_status="paid", payment_amount=Decimal("1")), engineer
            )
