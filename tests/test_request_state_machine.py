import pytest

from requisition_crm.core.exceptions import (
    AlreadyTerminal, InvalidTransition, PermissionDenied, StaleStateError, ValidationFailed,
)
from requisition_crm.core.security import UserRole
from requisition_crm.models.request import RequestStatus
from requisition_crm.services import po_state_machine
from requisition_crm.services.request_state_machine import (
    RequestAction, TRANSITION_RULES, can_transition, check_role, get_allowed_actions,
    is_terminal, can_edit_details, validate_transition,
)


HAPPY_PATH = [
    (RequestStatus.DRAFT, RequestAction.SUBMIT, RequestStatus.PENDING),
    (RequestStatus.PENDING, RequestAction.APPROVE, RequestStatus.APPROVED),
    (RequestStatus.APPROVED, RequestAction.FORWARD_TO_CC, RequestStatus.READY_FOR_CC),
    (RequestStatus.READY_FOR_CC, RequestAction.SUBMIT_CC, RequestStatus.CC_PENDING),
    (RequestStatus.CC_PENDING, RequestAction.APPROVE_CC, RequestStatus.READY_FOR_PO),
    (RequestStatus.READY_FOR_PO, RequestAction.ISSUE_PO, RequestStatus.DELIVERY_STAGE),
    (RequestStatus.DELIVERY_STAGE, RequestAction.COMPLETE_DELIVERY, RequestStatus.DELIVERED),
]


@pytest.mark.parametrize("current,action,expected", HAPPY_PATH)
def test_happy_path(current, action, expected):
    assert validate_transition(current.value, action) == expected


def test_every_action_has_a_rule():
    assert set(TRANSITION_RULES) == set(RequestAction)


def test_cc_rejection_returns_to_ready_for_cc():
    assert validate_transition("cc_pending", RequestAction.REJECT_CC) == RequestStatus.READY_FOR_CC


def test_manager_can_approve_a_draft_directly():
    assert can_transition("draft", RequestAction.APPROVE)


def test_reject_only_from_pending():
    assert not can_transition("draft", RequestAction.REJECT)
    assert not can_transition("approved", RequestAction.REJECT)


@pytest.mark.parametrize("status", ["rejected", "delivered"])
def test_terminal_statuses_allow_nothing(status):
    assert is_terminal(status)
    assert get_allowed_actions(status) == []
    with pytest.raises(AlreadyTerminal) as exc:
        validate_transition(status, RequestAction.APPROVE)
    assert "final" in exc.value.message
    assert exc.value.details["current_status"] == status


def test_illegal_move_reports_allowed_sources():
    with pytest.raises(InvalidTransition) as exc:
        validate_transition("pending", RequestAction.ISSUE_PO)
    assert exc.value.details["allowed_from"] == ["ready_for_po"]


def test_stale_expected_status():
    with pytest.raises(StaleStateError) as exc:
        validate_transition("approved", RequestAction.APPROVE, expected_status="pending")
    assert exc.value.details["current_status"] == "approved"
    assert isinstance(exc.value, InvalidTransition)


def test_allowed_actions_from_ready_for_po():
    assert get_allowed_actions("ready_for_po") == [
        RequestAction.ISSUE_PO, RequestAction.MARK_READY_FOR_DELIVERY,
    ]


class TestRoles:

    def test_engineer_cannot_approve(self):
        with pytest.raises(PermissionDenied):
            check_role(RequestAction.APPROVE, UserRole.SITE_ENGINEER)

    def test_only_purchase_officer_issues_po(self):
        check_role(RequestAction.ISSUE_PO, UserRole.PURCHASE_OFFICER)
        with pytest.raises(PermissionDenied):
            check_role(RequestAction.ISSUE_PO, UserRole.MANAGER)

    def test_engineer_and_officer_record_deliveries(self):
        check_role(RequestAction.RECORD_DELIVERY, UserRole.SITE_ENGINEER)
        check_role(RequestAction.RECORD_DELIVERY, UserRole.PURCHASE_OFFICER)

    def test_edit_windows(self):
        assert can_edit_details("pending", UserRole.SITE_ENGINEER)
        assert not can_edit_details("approved", UserRole.SITE_ENGINEER)
        assert can_edit_details("ready_for_cc", UserRole.PURCHASE_OFFICER)
        assert not can_edit_details("pending", UserRole.MANAGER)


class TestPurchaseOrderStates:

    def test_ordered_can_be_delivered_or_cancelled(self):
        assert po_state_machine.get_allowed_transitions("ordered") == ["delivered", "cancelled"]

    @pytest.mark.parametrize("status", ["delivered", "cancelled"])
    def test_terminal(self, status):
        with pytest.raises(AlreadyTerminal):
            po_state_machine.validate_transition(status, "cancelled")

    def test_ordered_to_ordered_is_invalid(self):
        with pytest.raises(InvalidTransition):
            po_state_machine.validate_transition("ordered", "ordered")

    def test_delivered_needs_a_date(self):
        with pytest.raises(ValidationFailed):
            po_state_machine.transition_values("ordered", "delivered")

    def test_cancel_records_actor(self):
        values = po_state_machine.transition_values("ordered", "cancelled", user_id="u-1")
        assert values["status"] == "cancelled"
        assert values["cancelled_by"] == "u-1"
        assert values["cancelled_at"] is not None
