import uuid
from decimal import Decimal

import pytest

from requisition_crm.core.exceptions import InvalidQuantity, NotFound, PermissionDenied, ValidationFailed


@pytest.fixture
def inventory(workflow):
    return workflow.inventory


def ledger(movements):
    return sorted((m.balance_after, m.quantity, m.movement_type) for m in movements)


class TestItems:

    async def test_opening_stock_is_recorded(self, inventory, stocked, officer):
        assert stocked.central_stock == Decimal("500")
        assert stocked.name_key == "cement opc 53"

        movements = await inventory.movements(stocked.id)
        assert len(movements) == 1
        assert movements[0].movement_type == "OPENING"
        assert movements[0].balance_before == Decimal("0")
        assert movements[0].balance_after == Decimal("500")
        assert movements[0].created_by == officer.id

    async def test_empty_item_has_no_movements(self, inventory, officer):
        item = await inventory.create("Binding Wire", "kg", Decimal("0"), [], officer)
        assert item.central_stock == Decimal("0")
        assert await inventory.movements(item.id) == []

    async def test_name_is_unique_ignoring_case_and_spacing(self, inventory, stocked, officer):
        with pytest.raises(ValidationFailed):
            await inventory.create("  cement   OPC 53", "bags", Decimal("1"), [], officer)

    async def test_find_by_name(self, inventory, stocked):
        assert (await inventory.find_by_name("CEMENT opc  53")).id == stocked.id
        assert await inventory.find_by_name("Cement OPC 43") is None

    async def test_only_purchase_officer_manages_items(self, inventory, manager, engineer):
        for principal in (manager, engineer):
            with pytest.raises(PermissionDenied):
                await inventory.create("TMT Bar 12mm", "kg", Decimal("10"), [], principal)

    async def test_suggested_vendors_must_exist(self, inventory, officer, vendors):
        item = await inventory.create("TMT Bar 12mm", "kg", Decimal("0"), [vendors[1].id], officer)
        assert item.suggested_vendor_ids == [vendors[1].id]

        with pytest.raises(NotFound):
            await inventory.update(item.id, {"vendor_ids": [vendors[0].id, uuid.uuid4()]}, officer)

    async def test_rename_rekeys(self, inventory, stocked, officer):
        item = await inventory.update(stocked.id, {"item_name": "Cement PPC"}, officer)
        assert item.name_key == "cement ppc"
        assert await inventory.find_by_name("Cement OPC 53") is None

    async def test_stock_cannot_be_edited_directly(self, inventory, stocked, officer):
        with pytest.raises(ValidationFailed):
            await inventory.update(stocked.id, {"central_stock": Decimal("900")}, officer)

    async def test_disabled_item_is_not_matched(self, inventory, stocked, officer):
        await inventory.disable(stocked.id, officer)
        assert await inventory.find_by_name("Cement OPC 53") is None

        rows, total = await inventory.list()
        assert total == 0
        rows, total = await inventory.list(is_active=None)
        assert total == 1

    async def test_list_filters(self, inventory, stocked, officer):
        await inventory.create("Binding Wire", "kg", Decimal("0"), [], officer)

        rows, total = await inventory.list(search="wire")
        assert [i.item_name for i in rows] == ["Binding Wire"]

        rows, total = await inventory.list(in_stock=True)
        assert [i.id for i in rows] == [stocked.id]

        rows, total = await inventory.list(in_stock=False)
        assert total == 1
        assert rows[0].item_name == "Binding Wire"


class TestImages:

    async def test_site_engineer_adds_officer_removes(self, inventory, stocked, engineer, officer, manager):
        photo = {"url": "https://files.example.com/inv/1.jpg", "key": "inv/1.jpg"}
        item = await inventory.add_image(stocked.id, photo, engineer)
        assert item.images == [photo]

        with pytest.raises(PermissionDenied):
            await inventory.add_image(stocked.id, {"url": "u", "key": "k"}, manager)
        with pytest.raises(PermissionDenied):
            await inventory.remove_image(stocked.id, "inv/1.jpg", engineer)

        item = await inventory.remove_image(stocked.id, "inv/1.jpg", officer)
        assert item.images == []

    async def test_same_key_twice(self, inventory, stocked, officer):
        photo = {"url": "https://files.example.com/inv/1.jpg", "key": "inv/1.jpg"}
        await inventory.add_image(stocked.id, photo, officer)
        with pytest.raises(ValidationFailed):
            await inventory.add_image(stocked.id, photo, officer)

    async def test_remove_unknown_key(self, inventory, stocked, officer):
        with pytest.raises(NotFound):
            await inventory.remove_image(stocked.id, "missing.jpg", officer)


class TestAdjustments:

    async def test_receive_and_write_off(self, inventory, stocked, officer):
        await inventory.adjust_stock(stocked.id, Decimal("50"), "Received from yard", officer)
        movement = await inventory.adjust_stock(stocked.id, Decimal("-100"), "Damaged in rain", officer)

        assert movement.movement_type == "ADJUSTMENT_MINUS"
        assert movement.balance_before == Decimal("550")
        assert movement.balance_after == Decimal("450")
        assert stocked.central_stock == Decimal("450")

        assert ledger(await inventory.movements(stocked.id)) == [
            (Decimal("450"), Decimal("-100"), "ADJUSTMENT_MINUS"),
            (Decimal("500"), Decimal("500"), "OPENING"),
            (Decimal("550"), Decimal("50"), "ADJUSTMENT_PLUS"),
        ]

    async def test_cannot_go_below_zero(self, inventory, stocked, officer):
        with pytest.raises(InvalidQuantity) as exc:
            await inventory.adjust_stock(stocked.id, Decimal("-500.5"), "Count correction", officer)
        assert Decimal(exc.value.details["on_hand"]) == Decimal("500")
        assert stocked.central_stock == Decimal("500")
        assert len(await inventory.movements(stocked.id)) == 1

        await inventory.adjust_stock(stocked.id, Decimal("-500"), "Count correction", officer)
        assert stocked.central_stock == Decimal("0")

    async def test_zero_and_missing_reason(self, inventory, stocked, officer):
        with pytest.raises(InvalidQuantity):
            await inventory.adjust_stock(stocked.id, Decimal("0"), "Nothing", officer)
        with pytest.raises(ValidationFailed):
            await inventory.adjust_stock(stocked.id, Decimal("5"), "  ", officer)

    async def test_disabled_item_cannot_move(self, inventory, stocked, officer):
        await inventory.disable(stocked.id, officer)
        with pytest.raises(ValidationFailed):
            await inventory.adjust_stock(stocked.id, Decimal("5"), "Late receipt", officer)


class TestAvailability:

    async def test_partial_stock_splits_with_vendors(self, inventory, workflow, officer, vendors):
        await inventory.create("Cement OPC 53", "bags", Decimal("60"), [vendors[0].id], officer)
        request = await workflow.ready_for_cc("100")

        stock = await inventory.availability(request)
        assert stock.on_hand == Decimal("60")
        assert stock.from_stock == Decimal("60")
        assert stock.from_vendor == Decimal("40")
        assert not stock.covers_request
        assert stock.suggested_vendor_ids == [vendors[0].id]

    async def test_unstocked_item(self, inventory, workflow):
        request = await workflow.ready_for_cc("100")
        stock = await inventory.availability(request)
        assert stock.item is None
        assert stock.from_vendor == Decimal("100")
        assert not stock.covers_request

    async def test_full_stock_covers_request(self, inventory, workflow, stocked):
        request = await workflow.ready_for_cc("100")
        stock = await inventory.availability(request)
        assert stock.covers_request
        assert stock.from_stock == Decimal("100")


class TestDirectDelivery:

    async def test_needs_a_stocked_item(self, workflow, officer):
        request = await workflow.ready_for_cc("100")
        with pytest.raises(ValidationFailed):
            await workflow.cost_comparisons.upsert(request.id, [], True, officer)

    async def test_needs_enough_stock(self, workflow, officer):
        await workflow.stock("80")
        request = await workflow.ready_for_cc("100")
        with pytest.raises(InvalidQuantity) as exc:
            await workflow.cost_comparisons.upsert(request.id, [], True, officer)
        assert Decimal(exc.value.details["on_hand"]) == Decimal("80")
        assert Decimal(exc.value.details["required"]) == Decimal("100")

    async def test_approval_issues_stock(self, workflow, stocked, officer, manager):
        request = await workflow.ready_for_cc("100")
        await workflow.cost_comparisons.upsert(request.id, [], True, officer)
        await workflow.cost_comparisons.submit(request.id, officer)
        await workflow.cost_comparisons.review(request.id, "approve", manager)

        assert stocked.central_stock == Decimal("400")
        issue = [m for m in await workflow.inventory.movements(stocked.id) if m.movement_type == "ISSUE"]
        assert len(issue) == 1
        assert issue[0].quantity == Decimal("-100")
        assert issue[0].request_id == request.id
        assert issue[0].reference_number == request.request_number
        assert issue[0].created_by == manager.id

    async def test_vendor_sourced_approval_leaves_stock(self, workflow, stocked):
        await workflow.ready_for_po("100")
        assert stocked.central_stock == Decimal("500")

    async def test_stock_gone_before_approval(self, workflow, stocked, officer, manager):
        request = await workflow.ready_for_cc("100")
        await workflow.cost_comparisons.upsert(request.id, [], True, officer)
        await workflow.cost_comparisons.submit(request.id, officer)
        await workflow.inventory.adjust_stock(stocked.id, Decimal("-450"), "Sent to Tower A", officer)

        with pytest.raises(InvalidQuantity):
            await workflow.cost_comparisons.review(request.id, "approve", manager)
        assert stocked.central_stock == Decimal("50")

    async def test_resubmit_rechecks_stock(self, workflow, stocked, officer, manager):
        request = await workflow.ready_for_cc("100")
        await workflow.cost_comparisons.upsert(request.id, [], True, officer)
        await workflow.cost_comparisons.submit(request.id, officer)
        await workflow.cost_comparisons.review(request.id, "reject", manager, notes="Check site stock first")
        await workflow.inventory.adjust_stock(stocked.id, Decimal("-450"), "Sent to Tower A", officer)

        with pytest.raises(InvalidQuantity):
            await workflow.cost_comparisons.resubmit(request.id, [], True, officer)
