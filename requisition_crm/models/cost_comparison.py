"""Cost comparison models.

One cost comparison per request. Vendor quotes are kept as ordered child
rows so that the selected vendor can be checked against them with a
foreign key instead of scanning a JSON blob.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_crm.database import Base
from requisition_crm.db_types import UUIDType, QuantityType, RateType, PercentType

if TYPE_CHECKING:
    from requisition_crm.models.request import Request
    from requisition_crm.models.vendor import Vendor


class CCStatus(str, Enum):
    """Cost comparison status."""
    DRAFT = "draft"
    CC_PENDING = "cc_pending"
    CC_APPROVED = "cc_approved"
    CC_REJECTED = "cc_rejected"


# Statuses from which quotes may still be edited or submitted
CC_EDITABLE_STATUSES = {CCStatus.DRAFT.value, CCStatus.CC_REJECTED.value}


class CostComparison(Base):
    """Vendor quotes collected for one request, reviewed by a manager."""
    __tablename__ = "cost_comparisons"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        unique=True
    )

    is_direct_delivery: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=CCStatus.DRAFT.value,
        nullable=False,
        index=True
    )
    selected_vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=True
    )
    manager_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Workflow
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

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
    request: Mapped["Request"] = relationship("Request", back_populates="cost_comparison")
    selected_vendor: Mapped[Optional["Vendor"]] = relationship("Vendor")
    vendor_quotes: Mapped[List["CostComparisonQuote"]] = relationship(
        "CostComparisonQuote",
        back_populates="cost_comparison",
        cascade="all, delete-orphan",
        order_by="CostComparisonQuote.position"
    )

    @property
    def quoted_vendor_ids(self) -> set[uuid.UUID]:
        return {quote.vendor_id for quote in self.vendor_quotes}

    def quote_for(self, vendor_id: uuid.UUID) -> Optional["CostComparisonQuote"]:
        for quote in self.vendor_quotes:
            if quote.vendor_id == vendor_id:
                return quote
        return None

    def __repr__(self) -> str:
        return f"<CostComparison(request_id={self.request_id}, status='{self.status}')>"


class CostComparisonQuote(Base):
    """One vendor's quote inside a cost comparison."""
    __tablename__ = "cost_comparison_quotes"
    __table_args__ = (
        UniqueConstraint(
            "cost_comparison_id", "vendor_id",
            name="uq_cc_quote_vendor"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    cost_comparison_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("cost_comparisons.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False
    )

    unit_price: Mapped[Decimal] = mapped_column(RateType, nullable=False)
    quoted_quantity: Mapped[Optional[Decimal]] = mapped_column(QuantityType, nullable=True)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    discount_percent: Mapped[Optional[Decimal]] = mapped_column(PercentType, nullable=True)
    gst_percent: Mapped[Optional[Decimal]] = mapped_column(PercentType, nullable=True)

    cost_comparison: Mapped["CostComparison"] = relationship(
        "CostComparison", back_populates="vendor_quotes"
    )
    vendor: Mapped["Vendor"] = relationship("Vendor")

    @property
    def net_unit_price(self) -> Decimal:
        """Unit price after the quoted discount, at rate precision."""
        if not self.discount_percent:
            return self.unit_price
        net = self.unit_price * (1 - self.discount_percent / Decimal("100"))
        return net.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
