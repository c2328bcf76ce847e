"""Purchase order model.

Orders are either issued from a request whose cost comparison was approved
or raised directly (``is_direct``) without any request. Orders are never
deleted; ``cancelled`` is the soft terminal state.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_crm.database import Base
from requisition_crm.db_types import UUIDType, QuantityType, MoneyType, RateType, PercentType
from requisition_crm.core.clock import as_utc, utcnow

if TYPE_CHECKING:
    from requisition_crm.models.vendor import Vendor
    from requisition_crm.models.site import Site


class POStatus(str, Enum):
    """Purchase order status. Moves one way only."""
    ORDERED = "ordered"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PurchaseOrder(Base):
    """Issued purchase order."""
    __tablename__ = "purchase_orders"
    __table_args__ = (
        Index("ix_purchase_orders_vendor_status", "vendor_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    po_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="PO-25-26-0001"
    )
    # Weak reference: the order outlives any change to the request
    request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Item
    item_description: Mapped[str] = mapped_column(Text, nullable=False)
    hsn_sac_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="units")

    # Parties
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False
    )
    delivery_site_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sites.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Pricing, frozen at creation
    unit_rate: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    gst_tax_rate: Mapped[Decimal] = mapped_column(PercentType, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)

    valid_till: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=POStatus.ORDERED.value,
        nullable=False,
        index=True
    )
    is_direct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Audit
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
    actual_delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    vendor: Mapped["Vendor"] = relationship("Vendor")
    delivery_site: Mapped["Site"] = relationship("Site")

    @property
    def is_expired(self) -> bool:
        """Still ordered but past its validity. Display only."""
        return (
            self.status == POStatus.ORDERED.value
            and self.valid_till is not None
            and as_utc(self.valid_till) < utcnow()
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in (POStatus.DELIVERED.value, POStatus.CANCELLED.value)

    def __repr__(self) -> str:
        return f"<PurchaseOrder(po_number='{self.po_number}', status='{self.status}')>"
