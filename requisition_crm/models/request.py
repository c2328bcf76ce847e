"""Material request models.

A request is one line item of a site engineer's requisition. Items
submitted together share a ``request_number`` and are told apart by
``item_order``. Quantity splits produce lineage-linked siblings that keep
the number and order and take the next ``split_sequence``.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy import UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import inspect as sa_inspect

from requisition_crm.database import Base
from requisition_crm.db_types import UUIDType, QuantityType

if TYPE_CHECKING:
    from requisition_crm.models.site import Site
    from requisition_crm.models.cost_comparison import CostComparison
    from requisition_crm.models.delivery import Delivery


class RequestStatus(str, Enum):
    """Request lifecycle status."""
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    READY_FOR_CC = "ready_for_cc"
    CC_PENDING = "cc_pending"
    READY_FOR_PO = "ready_for_po"
    DELIVERY_STAGE = "delivery_stage"
    DELIVERED = "delivered"


class Request(Base):
    """One requisition line item."""
    __tablename__ = "requests"
    __table_args__ = (
        UniqueConstraint(
            "request_number", "item_order", "split_sequence",
            name="uq_request_number_item_split"
        ),
        CheckConstraint("quantity > 0", name="ck_request_quantity_positive"),
        CheckConstraint(
            "delivered_quantity >= 0 AND delivered_quantity <= quantity",
            name="ck_request_delivered_within_quantity"
        ),
        Index("ix_requests_site_status", "site_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    request_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        index=True,
        comment="REQ-25-26-0001, shared by items submitted together"
    )
    item_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        comment="1-based position within the submission"
    )
    split_sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="0 for the original item, n for the n-th split remainder"
    )
    parent_request_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("requests.id", ondelete="SET NULL"),
        nullable=True,
        comment="Item this remainder was split from"
    )

    # Item
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    delivered_quantity: Mapped[Decimal] = mapped_column(
        QuantityType,
        nullable=False,
        default=Decimal("0"),
        comment="Sum of delivery challan quantities"
    )
    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="units")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_urgent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(30),
        default=RequestStatus.PENDING.value,
        nullable=False,
        index=True
    )
    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
        comment="Incremented on every status write"
    )

    # Ownership
    site_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("sites.id", ondelete="RESTRICT"),
        nullable=False
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    required_by: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Approval
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Delivery
    delivery_marked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
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

    # Relationships
    site: Mapped["Site"] = relationship("Site")
    cost_comparison: Mapped[Optional["CostComparison"]] = relationship(
        "CostComparison",
        back_populates="request",
        uselist=False,
        cascade="all, delete-orphan"
    )
    deliveries: Mapped[List["Delivery"]] = relationship(
        "Delivery",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="Delivery.created_at"
    )
    status_history: Mapped[List["RequestStatusHistory"]] = relationship(
        "RequestStatusHistory",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RequestStatusHistory.version"
    )

    @property
    def remaining_quantity(self) -> Decimal:
        return self.quantity - (self.delivered_quantity or Decimal("0"))

    def __repr__(self) -> str:
        try:
            if sa_inspect(self).detached:
                return f"<Request(id={self.id})>"
            return f"<Request(number='{self.request_number}', item={self.item_order}, status='{self.status}')>"
        except Exception:
            return f"<Request(id={getattr(self, 'id', 'unknown')})>"


class RequestStatusHistory(Base):
    """Audit trail of request status transitions."""
    __tablename__ = "request_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Request version after this entry; orders the trail"
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    request: Mapped["Request"] = relationship("Request", back_populates="status_history")
