"""
Document Sequence Model for Atomic Number Generation

• Financial year based numbering (April-March)
• Continuous sequence within financial year (NO daily reset)
• Atomic increment with a single UPDATE ... RETURNING
• Format: {SCOPE}{SEP}{FY}{SEP}{SEQUENCE}

DOCUMENT FORMATS:
━━━━━━━━━━━━━━━━
• REQ: REQ-25-26-0001  (Material Request)
• PO:  PO-25-26-0001   (Purchase Order)
• DC:  DC-25-26-0001   (Delivery Challan)
"""

import uuid
from datetime import datetime, timezone
from typing import Optional
from enum import Enum

from sqlalchemy import String, Integer, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from requisition_crm.database import Base
from requisition_crm.db_types import UUIDType


class DocumentScope(str, Enum):
    """Business concepts that carry their own counter."""
    REQUEST = "REQ"
    PURCHASE_ORDER = "PO"
    DELIVERY_CHALLAN = "DC"


class DocumentSequenceAudit(Base):
    """
    Audit log for document sequence operations.

    One row per allocation, written in the same transaction as the
    document that consumed the number.
    """
    __tablename__ = "document_sequence_audit"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    scope: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True
    )
    period: Mapped[str] = mapped_column(
        String(10),
        nullable=False
    )
    operation: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="GET_NEXT, INITIALIZE"
    )
    old_number: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )
    new_number: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )
    document_number: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True
    )
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )


class DocumentSequence(Base):
    """
    Per-scope, per-period counter.

    Example:
        scope = "PO"
        period = "25-26"
        current_number = 42
        → Next PO number: PO-25-26-0043
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "scope", "period",
            name="uq_document_sequence_scope_period"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    scope: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="REQ, PO, DC"
    )
    document_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Human readable name"
    )

    # Financial Year (April-March)
    period: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="e.g., 25-26 for FY 2025-26"
    )

    # High-water mark
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )

    # Formatting
    padding_length: Mapped[int] = mapped_column(
        Integer,
        default=4,
        nullable=False
    )
    separator: Mapped[str] = mapped_column(
        String(5),
        default="-",
        nullable=False
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

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

    def format_number(self, number: int) -> str:
        return format_document_number(
            self.scope, self.period, number, self.padding_length, self.separator
        )

    def preview_next_number(self) -> str:
        """What the next number would be, without incrementing."""
        return self.format_number(self.current_number + 1)

    @staticmethod
    def get_financial_year(now: Optional[datetime] = None) -> str:
        """
        Get financial year string.

        Indian financial year: April to March
        - Jan 2026 → FY 25-26
        - Apr 2026 → FY 26-27
        """
        now = now or datetime.now(timezone.utc)
        if now.month >= 4:  # April onwards
            fy_start = now.year
        else:  # Jan-Mar
            fy_start = now.year - 1
        fy_end = fy_start + 1

        return f"{fy_start % 100:02d}-{fy_end % 100:02d}"

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.scope}/{self.period}: {self.current_number})>"


def format_document_number(
    scope: str,
    period: str,
    number: int,
    padding: int,
    separator: str
) -> str:
    seq = str(number).zfill(padding)
    return f"{scope}{separator}{period}{separator}{seq}"
