"""
Central store inventory.

Stock moves only through ``_move``: one conditional UPDATE that refuses to
take ``central_stock`` below zero, followed by a StockMovement row in the
same transaction. Two sessions issuing the last units cannot both succeed.
"""
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from requisition_crm.core.clock import utcnow
from requisition_crm.core.exceptions import InvalidQuantity, NotFound, PermissionDenied, ValidationFailed
from requisition_crm.core.security import Principal, UserRole
from requisition_crm.models.inventory import (
    InventoryItem, StockMovement, StockMovementType, normalize_item_name,
)
from requisition_crm.models.request import Request
from requisition_crm.models.vendor import Vendor
from requisition_crm.services.quantity_ledger import require_positive, to_decimal


logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Item master and stock levels
MANAGE_ROLES = (UserRole.PURCHASE_OFFICER,)
# Site engineers photograph what arrives at site
IMAGE_ROLES = (UserRole.PURCHASE_OFFICER, UserRole.SITE_ENGINEER)


@dataclass
class StockAvailability:
    """How much of a request the central store can cover."""
    item: Optional[InventoryItem]
    required: Decimal
    on_hand: Decimal
    from_stock: Decimal
    from_vendor: Decimal
    suggested_vendor_ids: List[uuid.UUID] = field(default_factory=list)

    @property
    def covers_request(self) -> bool:
        return self.item is not None and self.from_vendor == ZERO


class InventoryService:
    """Inventory items, stock checks and stock movements."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Reads ====================

    async def get(self, item_id: uuid.UUID) -> InventoryItem:
        item = await self.db.get(InventoryItem, item_id)
        if item is None:
            raise NotFound("InventoryItem", item_id)
        return item

    async def find_by_name(self, item_name: str) -> Optional[InventoryItem]:
        result = await self.db.execute(
            select(InventoryItem)
            .where(
                InventoryItem.name_key == normalize_item_name(item_name),
                InventoryItem.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        search: Optional[str] = None,
        in_stock: Optional[bool] = None,
        is_active: Optional[bool] = True,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[InventoryItem], int]:
        filters = []
        if is_active is not None:
            filters.append(InventoryItem.is_active == is_active)
        if search:
            filters.append(InventoryItem.name_key.contains(normalize_item_name(search)))
        if in_stock is True:
            filters.append(InventoryItem.central_stock > 0)
        elif in_stock is False:
            filters.append(InventoryItem.central_stock <= 0)

        total = (await self.db.execute(
            select(func.count(InventoryItem.id)).where(*filters)
        )).scalar() or 0
        result = await self.db.execute(
            select(InventoryItem)
            .where(*filters)
            .order_by(InventoryItem.name_key)
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def movements(self, item_id: uuid.UUID) -> List[StockMovement]:
        await self.get(item_id)
        result = await self.db.execute(
            select(StockMovement)
            .where(StockMovement.inventory_item_id == item_id)
            .order_by(StockMovement.created_at)
        )
        return list(result.scalars().all())

    async def availability(self, request: Request) -> StockAvailability:
        """
        Split a request between central stock and vendors.

        Stock covers as much as it can; vendors supply the rest.
        """
        required = to_decimal(request.quantity)
        item = await self.find_by_name(request.item_name)
        if item is None:
            return StockAvailability(
                item=None, required=required, on_hand=ZERO,
                from_stock=ZERO, from_vendor=required,
            )
        on_hand = to_decimal(item.central_stock)
        from_stock = min(on_hand, required)
        return StockAvailability(
            item=item,
            required=required,
            on_hand=on_hand,
            from_stock=from_stock,
            from_vendor=required - from_stock,
            suggested_vendor_ids=item.suggested_vendor_ids,
        )

    async def require_stock_for(self, request: Request) -> StockAvailability:
        """
        Check that the central store can deliver the whole request.

        Raises:
            ValidationFailed: the item is not stocked
            InvalidQuantity: stock on hand is below the requested quantity
        """
        stock = await self.availability(request)
        if stock.item is None:
            raise ValidationFailed(
                f"'{request.item_name}' is not stocked; direct delivery is not possible",
                {"item_name": request.item_name}
            )
        if not stock.covers_request:
            raise InvalidQuantity(
                f"Only {stock.on_hand} {stock.item.unit} of '{stock.item.item_name}' in stock",
                {"on_hand": str(stock.on_hand), "required": str(stock.required)}
            )
        return stock

    # ==================== Item master ====================

    async def create(
        self,
        item_name: str,
        unit: str,
        central_stock,
        vendor_ids: List[uuid.UUID],
        principal: Principal,
    ) -> InventoryItem:
        self._check_role(principal, MANAGE_ROLES, "manage inventory")
        opening = to_decimal(central_stock, "central_stock")
        if opening < 0:
            raise InvalidQuantity("Opening stock cannot be negative", {"central_stock": str(opening)})
        await self._validate_vendors(vendor_ids)

        item = InventoryItem(
            item_name=item_name.strip(),
            name_key=normalize_item_name(item_name),
            unit=unit,
            central_stock=ZERO,
            vendor_ids=[str(v) for v in vendor_ids],
            images=[],
            is_active=True,
            created_by=principal.id,
        )
        self.db.add(item)
        await self._flush(item_name)

        if opening > 0:
            await self._move(item, opening, StockMovementType.OPENING, principal, reason="Opening stock")
        logger.info("Created inventory item %s (%s %s) by %s", item.item_name, opening, unit, principal.id)
        return item

    async def update(self, item_id: uuid.UUID, changes: dict, principal: Principal) -> InventoryItem:
        """Edit name, unit or suggested vendors. Stock changes go through adjust_stock."""
        self._check_role(principal, MANAGE_ROLES, "manage inventory")
        item = await self.get(item_id)

        if "central_stock" in changes:
            raise ValidationFailed("Use a stock adjustment to change central_stock")
        if changes.get("item_name") is not None:
            item.item_name = changes["item_name"].strip()
            item.name_key = normalize_item_name(changes["item_name"])
        if changes.get("unit") is not None:
            item.unit = changes["unit"]
        if changes.get("vendor_ids") is not None:
            await self._validate_vendors(changes["vendor_ids"])
            item.vendor_ids = [str(v) for v in changes["vendor_ids"]]
        if changes.get("is_active") is not None:
            item.is_active = changes["is_active"]

        await self._flush(item.item_name)
        logger.info("Updated inventory item %s fields %s by %s", item.id, sorted(changes), principal.id)
        return item

    async def disable(self, item_id: uuid.UUID, principal: Principal) -> InventoryItem:
        self._check_role(principal, MANAGE_ROLES, "manage inventory")
        item = await self.get(item_id)
        item.is_active = False
        await self.db.flush()
        logger.info("Disabled inventory item %s by %s", item.id, principal.id)
        return item

    async def add_image(self, item_id: uuid.UUID, photo: dict, principal: Principal) -> InventoryItem:
        self._check_role(principal, IMAGE_ROLES, "add inventory images")
        item = await self.get(item_id)
        if any(image["key"] == photo["key"] for image in item.images):
            raise ValidationFailed("Image already attached", {"key": photo["key"]})
        item.images = [*item.images, {"url": photo["url"], "key": photo["key"]}]
        await self.db.flush()
        return item

    async def remove_image(self, item_id: uuid.UUID, key: str, principal: Principal) -> InventoryItem:
        self._check_role(principal, MANAGE_ROLES, "remove inventory images")
        item = await self.get(item_id)
        remaining = [image for image in item.images if image["key"] != key]
        if len(remaining) == len(item.images):
            raise NotFound("InventoryImage", key)
        item.images = remaining
        await self.db.flush()
        return item

    # ==================== Stock ====================

    async def adjust_stock(
        self,
        item_id: uuid.UUID,
        quantity,
        reason: str,
        principal: Principal,
    ) -> StockMovement:
        """Receive (positive) or write off (negative) stock by hand."""
        self._check_role(principal, MANAGE_ROLES, "adjust stock")
        delta = to_decimal(quantity)
        if delta == 0:
            raise InvalidQuantity("Adjustment quantity cannot be zero")
        if not reason or not reason.strip():
            raise ValidationFailed("A reason is required for stock adjustments")

        item = await self.get(item_id)
        if not item.is_active:
            raise ValidationFailed("Inventory item is disabled", {"inventory_item_id": str(item.id)})
        movement_type = StockMovementType.ADJUSTMENT_PLUS if delta > 0 else StockMovementType.ADJUSTMENT_MINUS
        return await self._move(item, delta, movement_type, principal, reason=reason.strip())

    async def issue_for_request(
        self,
        request: Request,
        quantity,
        principal: Principal,
        reference_number: Optional[str] = None,
    ) -> StockMovement:
        """
        Take ``quantity`` out of stock for a direct delivery.

        Raises:
            ValidationFailed: the item is not stocked
            InvalidQuantity: not enough stock left
        """
        amount = require_positive(quantity)
        item = await self.find_by_name(request.item_name)
        if item is None:
            raise ValidationFailed(
                f"'{request.item_name}' is not stocked",
                {"item_name": request.item_name}
            )
        return await self._move(
            item, -amount, StockMovementType.ISSUE, principal,
            reason=f"Direct delivery for {request.request_number}/{request.item_order}",
            request_id=request.id,
            reference_number=reference_number or request.request_number,
        )

    async def _move(
        self,
        item: InventoryItem,
        delta: Decimal,
        movement_type: StockMovementType,
        principal: Principal,
        reason: Optional[str] = None,
        request_id: Optional[uuid.UUID] = None,
        reference_number: Optional[str] = None,
    ) -> StockMovement:
        """Apply ``delta`` in one statement; never below zero."""
        result = await self.db.execute(
            update(InventoryItem)
            .where(
                InventoryItem.id == item.id,
                InventoryItem.is_active.is_(True),
                InventoryItem.central_stock + delta >= 0,
            )
            .values(central_stock=InventoryItem.central_stock + delta, updated_at=utcnow())
            .returning(InventoryItem.central_stock)
            .execution_options(synchronize_session=False)
        )
        balance_after = result.scalar_one_or_none()
        if balance_after is None:
            current = (await self.db.execute(
                select(InventoryItem.central_stock).where(InventoryItem.id == item.id)
            )).scalar()
            logger.warning(
                "Stock move of %s on %s refused (on hand %s)", delta, item.item_name, current
            )
            raise InvalidQuantity(
                f"Not enough '{item.item_name}' in stock",
                {"on_hand": str(current), "requested": str(-delta)}
            )

        balance_after = to_decimal(balance_after)
        set_committed_value(item, "central_stock", balance_after)
        movement = StockMovement(
            inventory_item_id=item.id,
            movement_type=movement_type.value,
            quantity=delta,
            balance_before=balance_after - delta,
            balance_after=balance_after,
            request_id=request_id,
            reference_number=reference_number,
            reason=reason,
            created_by=principal.id,
        )
        self.db.add(movement)
        await self.db.flush()

        logger.info(
            "%s %s %s of %s (now %s) by %s",
            movement_type.value, delta, item.unit, item.item_name, balance_after, principal.id
        )
        return movement

    # ==================== Helpers ====================

    async def _validate_vendors(self, vendor_ids: List[uuid.UUID]) -> None:
        if not vendor_ids:
            return
        result = await self.db.execute(select(Vendor.id).where(Vendor.id.in_(set(vendor_ids))))
        known = set(result.scalars().all())
        for vendor_id in vendor_ids:
            if vendor_id not in known:
                raise NotFound("Vendor", vendor_id)

    async def _flush(self, item_name: str) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise ValidationFailed(
                f"An inventory item named '{item_name}' already exists",
                {"item_name": item_name}
            ) from e

    @staticmethod
    def _check_role(principal: Principal, roles, verb: str) -> None:
        if not principal.has_role(*roles):
            raise PermissionDenied(
                f"Role '{principal.role.value}' cannot {verb}",
                {"role": principal.role.value}
            )
