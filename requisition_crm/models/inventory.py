"""Central store stock.

Items are matched to requests by name, case and spacing ignored. Every
change to ``central_stock`` writes a StockMovement row with the balance
before and after.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from requisition_crm.database import Base
from requisition_crm.db_types import UUIDType, JSONType, QuantityType


def normalize_item_name(name: str) -> str:
    """Key used to match request items against stock."""
    return " ".join(name.split()).lower()


class StockMovementType(str, Enum):
    """Stock movement type enum."""
    OPENING = "OPENING"  # Stock entered with the item
    ISSUE = "ISSUE"  # Direct delivery against a request
    ADJUSTMENT_PLUS = "ADJUSTMENT_PLUS"
    ADJUSTMENT_MINUS = "ADJUSTMENT_MINUS"


class InventoryItem(Base):
    """One stocked material with its on-hand quantity in the central store."""
    __tablename__ = "inventory_items"
    __table_args__ = (
        UniqueConstraint("name_key", name="uq_inventory_item_name"),
        CheckConstraint("central_stock >= 0", name="ck_inventory_stock_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    item_name: Mapped[str] = mapped_column(String(200), nullable=False)
    name_key: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        index=True,
        comment="Lower-cased item name used for matching"
    )
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="units")
    central_stock: Mapped[Decimal] = mapped_column(QuantityType, nullable=False, default=Decimal("0"))

    # Vendors that usually supply this item, as id strings
    vendor_ids: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)
    # [{"url": ..., "key": ...}]
    images: Mapped[List[dict]] = mapped_column(JSONType, nullable=False, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    @property
    def suggested_vendor_ids(self) -> List[uuid.UUID]:
        return [uuid.UUID(str(v)) for v in self.vendor_ids or []]

    def __repr__(self) -> str:
        return f"<InventoryItem(name='{self.item_name}', stock={self.central_stock})>"


class StockMovement(Base):
    """Stock movement history/ledger."""
    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    movement_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # Positive for in, negative for out
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)

    # Related document
    request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    reference_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<StockMovement({self.movement_type} {self.quantity})>"
