"""
Tests for the approval decision function
"""
import pytest

from app.core.errors import FinalApprovalAdminOnly, NotAuthorizedApprover, RequestNotActionable
from app.models.leave import ApprovalDecision, ApprovalLevelName, LeaveStatus
from app.services.approval_service import ApproverIdentity, evaluate_approval

SUPERVISOR_ID = 10
MANAGER_ID = 20

admin = ApproverIdentity(user_id=1, role="admin", employee_id=None)
supervisor = ApproverIdentity(user_id=2, role="approver", employee_id=SUPERVISOR_ID)
manager = ApproverIdentity(user_id=3, role="approver", employee_id=MANAGER_ID)
stranger = ApproverIdentity(user_id=4, role="approver", employee_id=99)
no_profile = ApproverIdentity(user_id=5, role="approver", employee_id=None)


def _evaluate(status, approver, action=ApprovalDecision.APPROVED):
    return evaluate_approval(status, approver, SUPERVISOR_ID, MANAGER_ID, action)


@pytest.mark.parametrize("status", ["submitted", "reported"])
@pytest.mark.parametrize("approver", [admin, supervisor, manager])
def test_level1_allowed_for_admin_supervisor_and_manager(status, approver):
    outcome = _evaluate(status, approver)
    assert outcome.allowed
    assert outcome.level == ApprovalLevelName.LEVEL1
    assert outcome.resulting_status == LeaveStatus.APPROVED_LVL1


@pytest.mark.parametrize("approver", [stranger, no_profile])
def test_level1_denied_for_unrelated_approver(approver):
    outcome = _evaluate(LeaveStatus.SUBMITTED.value, approver)
    assert not outcome.allowed
    assert outcome.error is NotAuthorizedApprover
    with pytest.raises(NotAuthorizedApprover):
        outcome.raise_for_denial()


def test_level1_rejection():
    outcome = _evaluate("submitted", manager, ApprovalDecision.REJECTED)
    assert outcome.allowed
    assert outcome.resulting_status == LeaveStatus.REJECTED


@pytest.mark.parametrize("approver", [supervisor, manager, stranger])
def test_final_level_is_admin_only(approver):
    outcome = _evaluate("approved_lvl1", approver)
    assert not outcome.allowed
    assert outcome.level == ApprovalLevelName.LEVEL2
    assert outcome.error is FinalApprovalAdminOnly


def test_final_level_admin():
    approved = _evaluate("approved_lvl1", admin)
    rejected = _evaluate("approved_lvl1", admin, ApprovalDecision.REJECTED)
    assert approved.allowed and approved.resulting_status == LeaveStatus.APPROVED_FINAL
    assert rejected.allowed and rejected.resulting_status == LeaveStatus.REJECTED


@pytest.mark.parametrize("status", ["approved_final", "rejected", "cancelled"])
def test_closed_statuses_not_actionable(status):
    outcome = _evaluate(status, admin)
    assert not outcome.allowed
    assert outcome.error is RequestNotActionable


def test_action_accepts_plain_string():
    outcome = _evaluate("submitted", admin, "rejected")
    assert outcome.resulting_status == LeaveStatus.REJECTED
