"""
Purchase Order State Machine

This module is the SINGLE SOURCE OF TRUTH for all PO status transitions.

    ordered ──> delivered   (terminal)
       └──────> cancelled   (terminal)

Expiry is not a state: an ordered PO past ``valid_till`` is shown as
expired but can still be delivered or cancelled.
"""

from typing import Dict, List

from requisition_crm.core.clock import utcnow
from requisition_crm.core.exceptions import AlreadyTerminal, InvalidTransition, ValidationFailed
from requisition_crm.models.purchase_order import POStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
PO_TRANSITIONS: Dict[str, List[str]] = {
    POStatus.ORDERED.value: [
        POStatus.DELIVERED.value,   # Goods received
        POStatus.CANCELLED.value,   # Cancel order
    ],
    POStatus.DELIVERED.value: [],   # Terminal state - no transitions
    POStatus.CANCELLED.value: [],   # Terminal state - no transitions
}

# Human-readable action names for each transition
TRANSITION_ACTIONS: Dict[tuple, str] = {
    (POStatus.ORDERED.value, POStatus.DELIVERED.value): "Mark Delivered",
    (POStatus.ORDERED.value, POStatus.CANCELLED.value): "Cancel",
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in PO_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    return PO_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def is_terminal(status: str) -> bool:
    """Is this a terminal (final) state?"""
    return status in (POStatus.DELIVERED.value, POStatus.CANCELLED.value)


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Validate a status transition.

    Raises:
        AlreadyTerminal: PO is delivered or cancelled
        InvalidTransition: target is not reachable from current_status
    """
    if is_terminal(current_status):
        raise AlreadyTerminal(
            f"PO in '{current_status}' status cannot be modified. This is a terminal state.",
            {"current_status": current_status, "requested_status": new_status}
        )
    if not can_transition(current_status, new_status):
        allowed = get_allowed_transitions(current_status)
        raise InvalidTransition(
            f"Cannot change PO from '{current_status}' to '{new_status}'. "
            f"Allowed transitions: {', '.join(allowed)}",
            {"current_status": current_status, "requested_status": new_status, "allowed": allowed}
        )


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_values(
    current_status: str,
    new_status: str,
    user_id=None,
    actual_delivery_date=None,
) -> Dict[str, object]:
    """
    Validate a transition and return the columns it sets.

    Args:
        current_status: Status the caller read
        new_status: Target status
        user_id: ID of user performing the action (for audit)
        actual_delivery_date: Required when marking delivered
    """
    validate_transition(current_status, new_status)

    values: Dict[str, object] = {"status": new_status}
    now = utcnow()

    if new_status == POStatus.DELIVERED.value:
        if actual_delivery_date is None:
            raise ValidationFailed("actual_delivery_date is required to mark a PO delivered")
        values["actual_delivery_date"] = actual_delivery_date

    elif new_status == POStatus.CANCELLED.value:
        values["cancelled_at"] = now
        values["cancelled_by"] = user_id

    return values

