"""
Quantity Ledger

Splits a line item's quantity into the part that moves forward and the
remainder that stays behind. Pure functions; no persistence and no memory
of earlier splits.

    split = split_quantity(Decimal("100"), Decimal("60"))
    split.deliver_amount  -> Decimal("60")
    split.remainder       -> Decimal("40")
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

from requisition_crm.core.exceptions import InvalidQuantity


Number = Union[Decimal, int, float, str]

TWO_PLACES = Decimal("0.01")


def to_decimal(value: Number, field: str = "quantity") -> Decimal:
    """Coerce through ``str`` so float artefacts (0.1 + 0.2) never enter the ledger."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise InvalidQuantity(
                f"{field} is not a number",
                {"field": field, "value": str(value)}
            ) from e
    if not result.is_finite():
        raise InvalidQuantity(
            f"{field} must be finite",
            {"field": field, "value": str(value)}
        )
    return result


@dataclass(frozen=True)
class QuantitySplit:
    """Result of a split. ``deliver_amount + remainder`` equals the original total."""
    deliver_amount: Decimal
    remainder: Decimal

    @property
    def is_full(self) -> bool:
        """Whole quantity moves on; no remainder sibling is needed."""
        return self.remainder == 0


def split_quantity(total: Number, deliver_amount: Number) -> QuantitySplit:
    """
    Split ``total`` into ``deliver_amount`` and what is left.

    Raises:
        InvalidQuantity: total is not positive, or deliver_amount is not
            in (0, total].
    """
    total_d = to_decimal(total, "total")
    amount_d = to_decimal(deliver_amount, "deliver_amount")

    if total_d <= 0:
        raise InvalidQuantity(
            "Total quantity must be greater than zero",
            {"total": str(total_d)}
        )
    if amount_d <= 0:
        raise InvalidQuantity(
            "Quantity must be greater than zero",
            {"deliver_amount": str(amount_d)}
        )
    if amount_d > total_d:
        raise InvalidQuantity(
            f"Quantity {amount_d} exceeds available {total_d}",
            {"deliver_amount": str(amount_d), "total": str(total_d)}
        )

    return QuantitySplit(deliver_amount=amount_d, remainder=total_d - amount_d)


def require_positive(value: Number, field: str = "quantity") -> Decimal:
    """Validate a standalone quantity or rate."""
    result = to_decimal(value, field)
    if result <= 0:
        raise InvalidQuantity(
            f"{field} must be greater than zero",
            {"field": field, "value": str(result)}
        )
    return result


def round_display(value: Number) -> Decimal:
    """Round to at most 2 decimal places. Display only, never stored."""
    value_d = to_decimal(value, "value")
    if value_d.as_tuple().exponent >= -2:
        return value_d
    return value_d.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
