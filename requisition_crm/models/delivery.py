"""Delivery challan model."""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from requisition_crm.database import Base
from requisition_crm.db_types import UUIDType, JSONType, QuantityType, MoneyType

if TYPE_CHECKING:
    from requisition_crm.models.request import Request
    from requisition_crm.models.purchase_order import PurchaseOrder


class DeliveryType(str, Enum):
    """Who moves the goods."""
    PRIVATE = "private"  # own vehicle
    PUBLIC = "public"    # hired / public transport
    VENDOR = "vendor"    # vendor's transporter


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


# Fields each delivery type must carry
REQUIRED_FIELDS_BY_TYPE = {
    DeliveryType.PRIVATE: ("delivery_person", "delivery_contact", "vehicle_number"),
    DeliveryType.PUBLIC: ("delivery_person", "delivery_contact"),
    DeliveryType.VENDOR: ("transport_name",),
}


class Delivery(Base):
    """
    Delivery challan.

    Immutable once recorded apart from the payment fields.
    Photo columns hold ``{"url": ..., "key": ...}`` references to object storage.
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_delivery_quantity_positive"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    delivery_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="DC-25-26-0001"
    )

    request_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    purchase_order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="SET NULL"),
        nullable=True
    )

    quantity: Mapped[Decimal] = mapped_column(QuantityType, nullable=False)
    delivery_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Party / contact
    delivery_person: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    delivery_contact: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    vehicle_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    transport_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    transport_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    receiver_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    purchaser_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Photos
    loading_photo: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    invoice_photo: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)
    receipt_photo: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Payment
    payment_amount: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.PENDING.value,
        nullable=False
    )

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

    request: Mapped["Request"] = relationship("Request", back_populates="deliveries")
    purchase_order: Mapped[Optional["PurchaseOrder"]] = relationship("PurchaseOrder")

    def __repr__(self) -> str:
        return f"<Delivery(number='{self.delivery_number}', quantity={self.quantity})>"
