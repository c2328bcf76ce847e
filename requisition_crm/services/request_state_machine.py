"""
Request State Machine

This module is the SINGLE SOURCE OF TRUTH for request status transitions.
Services look up the action here, validate it against the current status
and the caller's role, and only then write.

    draft ──submit──> pending ──approve──> approved ──forward──> ready_for_cc
      │                  │                                         │    ^
      └─────approve──────┘──reject──> rejected (terminal)     submit_cc  reject_cc
                                                                   v    │
                                     ready_for_po <──approve_cc── cc_pending
                                          │
                            issue_po / mark_ready_for_delivery
                                          v
                                   delivery_stage ──record_delivery──> delivered (terminal)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, FrozenSet

from requisition_crm.core.exceptions import (
    AlreadyTerminal, InvalidTransition, StaleStateError, PermissionDenied,
)
from requisition_crm.core.security import UserRole
from requisition_crm.models.request import RequestStatus


# =============================================================================
# ACTIONS
# =============================================================================

class RequestAction(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    FORWARD_TO_CC = "forward_to_cost_comparison"
    SUBMIT_CC = "submit_cost_comparison"
    APPROVE_CC = "approve_cost_comparison"
    REJECT_CC = "reject_cost_comparison"
    ISSUE_PO = "issue_purchase_order"
    MARK_READY_FOR_DELIVERY = "mark_ready_for_delivery"
    RECORD_DELIVERY = "record_delivery"
    COMPLETE_DELIVERY = "complete_delivery"


@dataclass(frozen=True)
class TransitionRule:
    from_statuses: FrozenSet[RequestStatus]
    to_status: RequestStatus
    roles: FrozenSet[UserRole]
    label: str


def _rule(from_statuses, to_status, roles, label) -> TransitionRule:
    return TransitionRule(frozenset(from_statuses), to_status, frozenset(roles), label)


S = RequestStatus
R = UserRole

TRANSITION_RULES: Dict[RequestAction, TransitionRule] = {
    RequestAction.SUBMIT: _rule(
        [S.DRAFT], S.PENDING,
        [R.SITE_ENGINEER], "Submit for Approval"),
    RequestAction.APPROVE: _rule(
        [S.DRAFT, S.PENDING], S.APPROVED,
        [R.MANAGER], "Approve"),
    RequestAction.REJECT: _rule(
        [S.PENDING], S.REJECTED,
        [R.MANAGER], "Reject"),
    RequestAction.FORWARD_TO_CC: _rule(
        [S.APPROVED], S.READY_FOR_CC,
        [R.PURCHASE_OFFICER, R.MANAGER], "Forward to Cost Comparison"),
    RequestAction.SUBMIT_CC: _rule(
        [S.READY_FOR_CC], S.CC_PENDING,
        [R.PURCHASE_OFFICER], "Submit Cost Comparison"),
    RequestAction.APPROVE_CC: _rule(
        [S.CC_PENDING], S.READY_FOR_PO,
        [R.MANAGER], "Approve Cost Comparison"),
    RequestAction.REJECT_CC: _rule(
        [S.CC_PENDING], S.READY_FOR_CC,
        [R.MANAGER], "Reject Cost Comparison"),
    RequestAction.ISSUE_PO: _rule(
        [S.READY_FOR_PO], S.DELIVERY_STAGE,
        [R.PURCHASE_OFFICER], "Issue Purchase Order"),
    RequestAction.MARK_READY_FOR_DELIVERY: _rule(
        [S.READY_FOR_PO], S.DELIVERY_STAGE,
        [R.PURCHASE_OFFICER, R.SITE_ENGINEER], "Mark Ready for Delivery"),
    RequestAction.RECORD_DELIVERY: _rule(
        [S.DELIVERY_STAGE], S.DELIVERY_STAGE,
        [R.PURCHASE_OFFICER, R.SITE_ENGINEER], "Record Partial Delivery"),
    RequestAction.COMPLETE_DELIVERY: _rule(
        [S.DELIVERY_STAGE], S.DELIVERED,
        [R.PURCHASE_OFFICER, R.SITE_ENGINEER], "Record Final Delivery"),
}

del S, R

TERMINAL_STATUSES = frozenset({RequestStatus.REJECTED, RequestStatus.DELIVERED})

# Who may edit item details, and while in which statuses
EDITABLE_STATUSES_BY_ROLE: Dict[UserRole, FrozenSet[RequestStatus]] = {
    UserRole.SITE_ENGINEER: frozenset({RequestStatus.DRAFT, RequestStatus.PENDING}),
    UserRole.PURCHASE_OFFICER: frozenset({RequestStatus.READY_FOR_CC}),
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_rule(action: RequestAction) -> TransitionRule:
    return TRANSITION_RULES[RequestAction(action)]


def can_transition(current_status: str, action: RequestAction) -> bool:
    """Check if an action is allowed from the current status."""
    return RequestStatus(current_status) in get_rule(action).from_statuses


def get_allowed_actions(current_status: str) -> List[RequestAction]:
    """Actions available from the current status, in declaration order."""
    status = RequestStatus(current_status)
    return [action for action, rule in TRANSITION_RULES.items() if status in rule.from_statuses]


def is_terminal(status: str) -> bool:
    return RequestStatus(status) in TERMINAL_STATUSES


def can_edit_details(status: str, role: UserRole) -> bool:
    return RequestStatus(status) in EDITABLE_STATUSES_BY_ROLE.get(role, frozenset())


def check_role(action: RequestAction, role: UserRole) -> None:
    """Raise PermissionDenied when ``role`` may not perform ``action``."""
    rule = get_rule(action)
    if role not in rule.roles:
        raise PermissionDenied(
            f"Role '{UserRole(role).value}' cannot {rule.label.lower()}",
            {"action": RequestAction(action).value, "role": UserRole(role).value}
        )


def validate_transition(
    current_status: str,
    action: RequestAction,
    expected_status: Optional[str] = None,
) -> RequestStatus:
    """
    Validate an action against the current status.

    ``expected_status`` is the status the caller last saw; when it no longer
    matches, the caller is acting on a stale view.

    Returns:
        The status the request moves to.

    Raises:
        StaleStateError: expected_status differs from current_status
        AlreadyTerminal: current_status is final
        InvalidTransition: action not allowed from current_status
    """
    rule = get_rule(action)

    if expected_status is not None and RequestStatus(expected_status) != RequestStatus(current_status):
        raise StaleStateError(
            f"Request is '{current_status}', not '{RequestStatus(expected_status).value}'",
            {"current_status": current_status, "expected_status": RequestStatus(expected_status).value}
        )

    if RequestStatus(current_status) not in rule.from_statuses:
        allowed = [s.value for s in sorted(rule.from_statuses, key=lambda s: s.value)]
        if is_terminal(current_status):
            raise AlreadyTerminal(
                f"Request in '{current_status}' status is final and cannot {rule.label.lower()}",
                {"action": RequestAction(action).value, "current_status": current_status}
            )
        raise InvalidTransition(
            f"Cannot {rule.label.lower()} a request in '{current_status}' status",
            {
                "action": RequestAction(action).value,
                "current_status": current_status,
                "allowed_from": allowed,
            }
        )

    return rule.to_status
