"""
Approval authorization - who may approve or reject a leave request, at
which level, and what status the request moves to.

Level 1 (supervisor): the request's chosen supervisor or the requester's
direct manager; admins always. Level 2 (final): admins only.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Type

from sqlalchemy.orm import Session

from app.core.errors import (
    DomainError,
    FinalApprovalAdminOnly,
    NotAuthorizedApprover,
    RequestNotActionable,
)
from app.models.leave import ApprovalDecision, ApprovalLevelName, LeaveRequest, LeaveStatus
from app.models.user import Role, User
from app.services.directory_service import EmployeeId, UserId, employee_for

logger = logging.getLogger(__name__)

LEVEL1_STATUSES = (LeaveStatus.SUBMITTED, LeaveStatus.REPORTED)


@dataclass(frozen=True)
class ApproverIdentity:
    user_id: UserId
    role: str
    employee_id: Optional[EmployeeId] = None
    approval_level: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


@dataclass(frozen=True)
class ApprovalOutcome:
    allowed: bool
    level: ApprovalLevelName
    resulting_status: Optional[LeaveStatus] = None
    error: Optional[Type[DomainError]] = None

    def raise_for_denial(self) -> None:
        if not self.allowed:
            raise self.error()


def _resulting(action: ApprovalDecision, approved_status: LeaveStatus) -> LeaveStatus:
    return approved_status if action == ApprovalDecision.APPROVED else LeaveStatus.REJECTED


def evaluate_approval(
    status: str,
    approver: ApproverIdentity,
    supervisor_id: Optional[EmployeeId],
    manager_id: Optional[EmployeeId],
    action: ApprovalDecision,
) -> ApprovalOutcome:
    """
    Pure decision function.

    Args:
        status: current request status
        approver: acting identity (role plus employee profile id, if any)
        supervisor_id: supervisor chosen on the request
        manager_id: requester's direct manager
        action: approved or rejected

    Returns:
        ApprovalOutcome with allowed flag, level, resulting status or error class
    """
    action = ApprovalDecision(action)

    if status in LEVEL1_STATUSES:
        if approver.is_admin:
            return ApprovalOutcome(True, ApprovalLevelName.LEVEL1, _resulting(action, LeaveStatus.APPROVED_LVL1))
        related = approver.employee_id is not None and (
            approver.employee_id == supervisor_id or approver.employee_id == manager_id
        )
        if not related:
            return ApprovalOutcome(False, ApprovalLevelName.LEVEL1, error=NotAuthorizedApprover)
        return ApprovalOutcome(True, ApprovalLevelName.LEVEL1, _resulting(action, LeaveStatus.APPROVED_LVL1))

    if status == LeaveStatus.APPROVED_LVL1:
        if not approver.is_admin:
            return ApprovalOutcome(False, ApprovalLevelName.LEVEL2, error=FinalApprovalAdminOnly)
        return ApprovalOutcome(True, ApprovalLevelName.LEVEL2, _resulting(action, LeaveStatus.APPROVED_FINAL))

    return ApprovalOutcome(False, ApprovalLevelName.LEVEL1, error=RequestNotActionable)


def approver_identity(db: Session, user: User) -> ApproverIdentity:
    profile = employee_for(db, user.id)
    return ApproverIdentity(
        user_id=user.id,
        role=user.role,
        employee_id=profile.id if profile else None,
        approval_level=user.approval_level,
    )


def authorize_approval(
    db: Session,
    leave_request: LeaveRequest,
    user: User,
    action: ApprovalDecision,
) -> ApprovalOutcome:
    """Load the relationships for a request and evaluate the acting user"""
    requester = employee_for(db, leave_request.user_id)
    outcome = evaluate_approval(
        status=leave_request.status,
        approver=approver_identity(db, user),
        supervisor_id=leave_request.supervisor_id,
        manager_id=requester.manager_id if requester else None,
        action=action,
    )
    if not outcome.allowed:
        logger.info(
            "approval denied: leave_request_id=%s user_id=%s status=%s reason=%s",
            leave_request.id, user.id, leave_request.status, outcome.error.code,
        )
    return outcome
