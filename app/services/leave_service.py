"""
Leave service - leave request lifecycle

Dated requests (leave type requires_dates) carry a start/end range counted in
Mon-Fri working days and may hold balance; reported requests carry the day the
absence occurred and start in status "reported". Both go through the same
two-level approval afterwards.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Union

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from app.core.deps import can_act_as_approver
from app.core.errors import (
    Forbidden,
    InsufficientBalance,
    InvalidDateRange,
    InvalidStatusTransition,
    InvalidSupervisor,
    LeavePolicyViolation,
    NoBalanceFound,
    NotFound,
    OpenEndedNotAllowed,
    OverlappingRequest,
    ReportingWindowExceeded,
)
from app.models.employee import Employee
from app.models.leave import (
    ACTIVE_LEAVE_STATUSES,
    EDITABLE_LEAVE_STATUSES,
    ApprovalDecision,
    LeaveApprovalEntry,
    LeaveRequest,
    LeaveStatus,
    LeaveType,
)
from app.models.user import Role, User
from app.services import ledger_service
from app.services.approval_service import authorize_approval
from app.services.directory_service import EmployeeId, UserId, employee_for, require_employee_for
from app.services.leave_type_service import get_leave_type
from app.utils.datetime_utils import now_utc, today
from app.utils.enums import enum_to_str

logger = logging.getLogger(__name__)

LIST_LIMIT = 100

CANCELLABLE_STATUSES = (LeaveStatus.SUBMITTED, LeaveStatus.REPORTED, LeaveStatus.APPROVED_LVL1)
CLOSABLE_STATUSES = (LeaveStatus.REPORTED, LeaveStatus.APPROVED_LVL1, LeaveStatus.APPROVED_FINAL)


@dataclass(frozen=True)
class DatedLeave:
    start_date: date
    end_date: date


@dataclass(frozen=True)
class ReportedLeave:
    occurred_on: date
    is_open_ended: bool = False
    duration_days: Optional[float] = None


LeaveShape = Union[DatedLeave, ReportedLeave]


def count_working_days(start_date: date, end_date: date) -> int:
    """Number of Mon-Fri dates in [start_date, end_date] inclusive"""
    if start_date > end_date:
        return 0
    count = 0
    current = start_date
    while current <= end_date:
        if current.weekday() < 5:
            count += 1
        current += timedelta(days=1)
    return count


def leave_shape(leave_type: LeaveType, data: dict) -> LeaveShape:
    """Pick the request variant from the leave type's requires_dates flag"""
    if leave_type.requires_dates:
        if not data.get("start_date") or not data.get("end_date"):
            raise LeavePolicyViolation("start_date and end_date are required for this leave type")
        return DatedLeave(start_date=data["start_date"], end_date=data["end_date"])
    if not data.get("occurred_on"):
        raise LeavePolicyViolation("occurred_on is required for this leave type")
    return ReportedLeave(
        occurred_on=data["occurred_on"],
        is_open_ended=bool(data.get("is_open_ended")),
        duration_days=data.get("duration_days"),
    )


def _is_admin(user: User) -> bool:
    return user.role == Role.ADMIN.value


def _balance_year(leave_request: LeaveRequest) -> int:
    return leave_request.start_date.year


def _holds_balance(leave_request: LeaveRequest) -> bool:
    return bool(
        leave_request.is_dated
        and leave_request.leave_type.requires_balance
        and leave_request.total_days
    )


def _log_transition(leave_request_id: int, before: str, after: str, action: str) -> None:
    logger.info(
        "leave status transition: leave_request_id=%s before=%s after=%s action=%s",
        leave_request_id, before, after, action,
    )


def resolve_supervisor(
    db: Session,
    employee: Employee,
    supervisor_id: Optional[EmployeeId],
) -> Optional[EmployeeId]:
    """
    Validate an explicitly chosen supervisor, or fall back to the employee's manager.

    The supervisor's linked user must be an approver/admin or carry
    approval_level=level1.
    """
    if supervisor_id is None:
        return employee.manager_id

    if supervisor_id == employee.id:
        raise InvalidSupervisor("You cannot select yourself as supervisor")
    supervisor = db.query(Employee).filter(Employee.id == supervisor_id).first()
    if not supervisor:
        raise InvalidSupervisor("Selected supervisor does not exist")
    if not supervisor.user or not supervisor.user.is_active or not can_act_as_approver(supervisor.user):
        raise InvalidSupervisor()
    return supervisor.id


def _check_documents(leave_type: LeaveType, documents: Optional[List[str]]) -> None:
    if leave_type.requires_attachment and not documents:
        raise LeavePolicyViolation(f"{leave_type.name} requires at least one supporting document")


def _dated_total(leave_type: LeaveType, shape: DatedLeave) -> float:
    """Date policy for the dated flow; returns total working days"""
    if shape.start_date > shape.end_date:
        raise InvalidDateRange()

    current = today()
    if leave_type.allow_future_applications:
        if shape.start_date < current:
            raise LeavePolicyViolation("Cannot request leave for past dates")
    elif shape.start_date > current:
        raise LeavePolicyViolation(f"{leave_type.name} cannot be applied for future dates")

    total = count_working_days(shape.start_date, shape.end_date)
    if total == 0:
        raise LeavePolicyViolation("Selected range contains no working days")
    if leave_type.max_consecutive_days and total > leave_type.max_consecutive_days:
        raise LeavePolicyViolation(
            f"{leave_type.name} allows at most {leave_type.max_consecutive_days} consecutive working days"
        )
    return float(total)


def _check_reported(leave_type: LeaveType, shape: ReportedLeave, check_window: bool = True) -> None:
    """check_window=False skips the reporting window (edits that keep occurred_on)"""
    current = today()
    if shape.occurred_on > current:
        raise LeavePolicyViolation("occurred_on cannot be in the future")
    if check_window and leave_type.max_retroactive_days is not None:
        days_ago = (current - shape.occurred_on).days
        if days_ago > leave_type.max_retroactive_days:
            raise ReportingWindowExceeded(
                f"{leave_type.name} must be reported within {leave_type.max_retroactive_days} days "
                f"(occurred {days_ago} days ago)"
            )
    if shape.is_open_ended and not leave_type.is_open_ended_allowed:
        raise OpenEndedNotAllowed()


def validate_overlap(
    db: Session,
    user_id: UserId,
    start_date: date,
    end_date: date,
    exclude_id: Optional[int] = None,
) -> None:
    """Reject a range that intersects another active dated request of the same user"""
    active = [s.value for s in ACTIVE_LEAVE_STATUSES]
    query = db.query(LeaveRequest.id).filter(
        LeaveRequest.user_id == user_id,
        LeaveRequest.status.in_(active),
        LeaveRequest.start_date.isnot(None),
        LeaveRequest.start_date <= end_date,
        LeaveRequest.end_date >= start_date,
    )
    if exclude_id is not None:
        query = query.filter(LeaveRequest.id != exclude_id)
    clash = query.first()
    if clash:
        raise OverlappingRequest(f"Overlapping leave request exists (request {clash.id})")


def _check_balance(
    db: Session,
    employee_id: EmployeeId,
    leave_type: LeaveType,
    year: int,
    requested: float,
) -> None:
    bal = ledger_service.get_balance_row(db, employee_id, leave_type.id, year)
    if not bal:
        raise NoBalanceFound(f"No {leave_type.name} balance found for {year}")
    available = ledger_service.remaining(bal)
    if requested > available:
        raise InsufficientBalance(
            f"Insufficient leave balance. Requested: {requested:g}, Available: {available:g}"
        )


def submit_leave(db: Session, user: User, data: dict) -> LeaveRequest:
    """
    Submit a leave request for the current user.

    Args:
        db: Database session
        user: requesting user
        data: leave_type_id, reason, documents, supervisor_id and the shape
            fields (start_date/end_date or occurred_on/is_open_ended/duration_days)

    Returns:
        Persisted LeaveRequest (status submitted or reported)
    """
    employee = require_employee_for(db, user.id)
    supervisor_id = resolve_supervisor(db, employee, data.get("supervisor_id"))

    leave_type = get_leave_type(db, data["leave_type_id"])
    if not leave_type.is_active:
        raise NotFound("Leave type not found")
    documents = data.get("documents") or None
    _check_documents(leave_type, documents)

    shape = leave_shape(leave_type, data)
    leave_request = LeaveRequest(
        user_id=user.id,
        leave_type_id=leave_type.id,
        reason=data["reason"],
        supervisor_id=supervisor_id,
        documents=documents,
    )

    if isinstance(shape, DatedLeave):
        total = _dated_total(leave_type, shape)
        validate_overlap(db, user.id, shape.start_date, shape.end_date)
        if leave_type.requires_balance:
            _check_balance(db, employee.id, leave_type, shape.start_date.year, total)
        leave_request.start_date = shape.start_date
        leave_request.end_date = shape.end_date
        leave_request.total_days = total
        leave_request.status = LeaveStatus.SUBMITTED.value
    else:
        _check_reported(leave_type, shape)
        leave_request.occurred_on = shape.occurred_on
        leave_request.is_open_ended = shape.is_open_ended
        leave_request.duration_days = shape.duration_days
        leave_request.status = LeaveStatus.REPORTED.value

    db.add(leave_request)
    db.flush()
    if isinstance(shape, DatedLeave) and leave_type.requires_balance:
        ledger_service.adjust(
            db, employee.id, leave_type.id, shape.start_date.year, pending_delta=leave_request.total_days
        )
    db.commit()
    db.refresh(leave_request)

    logger.info(
        "leave request submitted: leave_request_id=%s user_id=%s leave_type=%s status=%s total_days=%s",
        leave_request.id, user.id, leave_type.name, leave_request.status, leave_request.total_days,
    )
    return leave_request


def get_leave_request(db: Session, leave_request_id: int) -> LeaveRequest:
    leave_request = (
        db.query(LeaveRequest)
        .options(
            joinedload(LeaveRequest.leave_type),
            joinedload(LeaveRequest.supervisor),
            joinedload(LeaveRequest.approval_history),
        )
        .filter(LeaveRequest.id == leave_request_id)
        .first()
    )
    if not leave_request:
        raise NotFound("Leave request not found")
    return leave_request


def _can_view(db: Session, leave_request: LeaveRequest, user: User) -> bool:
    if leave_request.user_id == user.id or user.role in (Role.ADMIN.value, Role.APPROVER.value):
        return True
    if not can_act_as_approver(user):
        return False
    # level1 supervisors: requests they supervise or that come from their reports
    approver = employee_for(db, user.id)
    if not approver:
        return False
    if leave_request.supervisor_id == approver.id:
        return True
    owner = employee_for(db, leave_request.user_id)
    return bool(owner and owner.manager_id == approver.id)


def get_leave_request_for(db: Session, leave_request_id: int, user: User) -> LeaveRequest:
    """Employees read their own requests plus the ones they supervise"""
    leave_request = get_leave_request(db, leave_request_id)
    if not _can_view(db, leave_request, user):
        raise Forbidden("You can only view your own leave requests")
    return leave_request


def _visibility_filter(db: Session, user: User, pending: bool = False):
    """SQL condition limiting requests to the user's scope; None means unrestricted (admin)"""
    if _is_admin(user):
        return None
    if not can_act_as_approver(user):
        return LeaveRequest.user_id == user.id

    approver = employee_for(db, user.id)
    if not approver:
        return LeaveRequest.user_id == user.id
    conditions = [Employee.manager_id == approver.id]
    # Department-wide scope belongs to the approver role, not the level1 attribute
    if user.role == Role.APPROVER.value and approver.department:
        conditions.append(Employee.department == approver.department)
    rows = (
        db.query(Employee.user_id)
        .filter(or_(*conditions), Employee.id != approver.id, Employee.user_id.isnot(None))
        .all()
    )
    scope = [
        LeaveRequest.user_id.in_([user_id for (user_id,) in rows]),
        LeaveRequest.supervisor_id == approver.id,
    ]
    if pending:
        # Nobody decides their own request
        return and_(or_(*scope), LeaveRequest.user_id != user.id)
    return or_(LeaveRequest.user_id == user.id, *scope)


def list_leave_requests(
    db: Session,
    user: User,
    status: Optional[LeaveStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    pending: bool = False,
    mine: bool = False,
) -> List[LeaveRequest]:
    """
    List leave requests visible to the user, newest first.

    - employee: own requests
    - approval_level=level1: own, direct reports and requests they supervise
    - approver: own, direct reports, same-department colleagues and supervised requests
    - admin: everything
    pending=True narrows to statuses the caller can act on and drops own requests.
    """
    query = db.query(LeaveRequest).options(
        joinedload(LeaveRequest.leave_type),
        joinedload(LeaveRequest.supervisor),
    )

    if mine:
        query = query.filter(LeaveRequest.user_id == user.id)
    else:
        scope = _visibility_filter(db, user, pending=pending)
        if scope is not None:
            query = query.filter(scope)

    if pending:
        actionable = [LeaveStatus.SUBMITTED.value, LeaveStatus.REPORTED.value]
        if _is_admin(user):
            actionable.append(LeaveStatus.APPROVED_LVL1.value)
        query = query.filter(LeaveRequest.status.in_(actionable))
    elif status:
        query = query.filter(LeaveRequest.status == enum_to_str(status))

    if start_date:
        query = query.filter(LeaveRequest.start_date >= start_date)
    if end_date:
        query = query.filter(LeaveRequest.start_date <= end_date)

    return (
        query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc())
        .limit(LIST_LIMIT)
        .all()
    )


def update_leave(db: Session, leave_request_id: int, user: User, data: dict) -> LeaveRequest:
    """
    Edit a request that has not been decided yet.

    Dated edits re-run date policy, overlap and balance checks and move
    pending by the difference in total_days.
    """
    leave_request = get_leave_request(db, leave_request_id)
    if user.role == Role.EMPLOYEE.value and leave_request.user_id != user.id:
        raise Forbidden("You can only edit your own leave requests")
    if leave_request.status not in EDITABLE_LEAVE_STATUSES:
        raise InvalidStatusTransition("Only submitted or reported requests can be edited")

    leave_type = leave_request.leave_type
    owner = require_employee_for(db, leave_request.user_id)

    # Validate everything before touching the row
    changes = {}
    if "supervisor_id" in data:
        changes["supervisor_id"] = resolve_supervisor(db, owner, data["supervisor_id"])
    if data.get("reason") is not None:
        changes["reason"] = data["reason"]
    if "documents" in data:
        _check_documents(leave_type, data["documents"])
        changes["documents"] = data["documents"] or None

    pending_delta = 0.0
    if leave_request.is_dated:
        if "start_date" in data or "end_date" in data:
            shape = DatedLeave(
                start_date=data.get("start_date") or leave_request.start_date,
                end_date=data.get("end_date") or leave_request.end_date,
            )
            total = _dated_total(leave_type, shape)
            validate_overlap(db, leave_request.user_id, shape.start_date, shape.end_date, exclude_id=leave_request.id)
            if leave_type.requires_balance:
                if shape.start_date.year != leave_request.start_date.year:
                    raise LeavePolicyViolation("Cannot move a request into a different balance year")
                pending_delta = total - float(leave_request.total_days or 0)
                if pending_delta > 0:
                    _check_balance(db, owner.id, leave_type, shape.start_date.year, pending_delta)
            changes.update(start_date=shape.start_date, end_date=shape.end_date, total_days=total)
    elif any(field in data for field in ("occurred_on", "is_open_ended", "duration_days")):
        shape = ReportedLeave(
            occurred_on=data.get("occurred_on") or leave_request.occurred_on,
            is_open_ended=bool(data.get("is_open_ended", leave_request.is_open_ended)),
            duration_days=data.get("duration_days", leave_request.duration_days),
        )
        _check_reported(leave_type, shape, check_window=shape.occurred_on != leave_request.occurred_on)
        changes.update(
            occurred_on=shape.occurred_on,
            is_open_ended=shape.is_open_ended,
            duration_days=shape.duration_days,
        )

    for field, value in changes.items():
        setattr(leave_request, field, value)

    if pending_delta:
        ledger_service.adjust(
            db, owner.id, leave_type.id, _balance_year(leave_request), pending_delta=pending_delta
        )
    db.commit()
    db.refresh(leave_request)
    logger.info("leave request updated: leave_request_id=%s pending_delta=%s", leave_request.id, pending_delta)
    return leave_request


def decide_leave(
    db: Session,
    leave_request_id: int,
    user: User,
    action: ApprovalDecision,
    comment: Optional[str] = None,
) -> LeaveRequest:
    """
    Approve or reject at the level implied by the current status.

    The status change and history entry commit together; ledger effects
    follow in their own commit and never undo the decision.
    """
    leave_request = get_leave_request(db, leave_request_id)
    outcome = authorize_approval(db, leave_request, user, action)
    outcome.raise_for_denial()

    before = leave_request.status
    after = outcome.resulting_status.value
    leave_request.approval_history.append(LeaveApprovalEntry(
        approver_user_id=user.id,
        level=outcome.level.value,
        decision=enum_to_str(action),
        comment=comment,
        timestamp=now_utc(),
    ))
    leave_request.status = after
    db.commit()
    _log_transition(leave_request.id, before, after, enum_to_str(action))

    if _holds_balance(leave_request):
        owner = employee_for(db, leave_request.user_id)
        total = float(leave_request.total_days)
        if owner and after == LeaveStatus.APPROVED_FINAL.value:
            ledger_service.apply_best_effort(
                db, owner.id, leave_request.leave_type_id, _balance_year(leave_request), "final approval",
                pending_delta=-total, used_delta=total, allocated_delta=-total,
            )
        elif owner and after == LeaveStatus.REJECTED.value:
            ledger_service.apply_best_effort(
                db, owner.id, leave_request.leave_type_id, _balance_year(leave_request), "rejection",
                pending_delta=-total,
            )
        elif not owner:
            logger.warning("no employee profile for user_id=%s; ledger not adjusted", leave_request.user_id)

    db.refresh(leave_request)
    return leave_request


def cancel_leave(db: Session, leave_request_id: int, user: User) -> dict:
    """
    Cancel and delete a request, reversing its balance effect.

    Returns:
        Snapshot of the deleted request for notification dispatch
    """
    leave_request = get_leave_request(db, leave_request_id)
    status = leave_request.status

    if _is_admin(user):
        allowed = status in CANCELLABLE_STATUSES or status == LeaveStatus.APPROVED_FINAL
    elif can_act_as_approver(user):
        allowed = status in CANCELLABLE_STATUSES
    else:
        if leave_request.user_id != user.id:
            raise Forbidden("You can only cancel your own leave requests")
        allowed = status in CANCELLABLE_STATUSES
    if not allowed:
        if status == LeaveStatus.APPROVED_FINAL:
            raise Forbidden("Only admins can cancel a finally approved request")
        raise InvalidStatusTransition(f"Cannot cancel a request with status {status}")

    snapshot = {
        "id": leave_request.id,
        "user_id": leave_request.user_id,
        "supervisor_id": leave_request.supervisor_id,
        "leave_type_name": leave_request.leave_type.name,
        "start_date": leave_request.start_date,
        "end_date": leave_request.end_date,
        "occurred_on": leave_request.occurred_on,
        "status": status,
    }
    holds_balance = _holds_balance(leave_request)
    total = float(leave_request.total_days or 0)
    leave_type_id = leave_request.leave_type_id
    year = _balance_year(leave_request) if leave_request.is_dated else None

    leave_request.status = LeaveStatus.CANCELLED.value
    db.flush()
    db.delete(leave_request)
    db.commit()
    _log_transition(snapshot["id"], status, LeaveStatus.CANCELLED.value, "cancel")

    if holds_balance:
        owner = employee_for(db, snapshot["user_id"])
        if owner and status == LeaveStatus.APPROVED_FINAL.value:
            ledger_service.apply_best_effort(
                db, owner.id, leave_type_id, year, "cancellation",
                used_delta=-total, allocated_delta=total,
            )
        elif owner:
            ledger_service.apply_best_effort(
                db, owner.id, leave_type_id, year, "cancellation", pending_delta=-total,
            )
    return snapshot


def undo_final_approval(db: Session, leave_request_id: int, user: User) -> LeaveRequest:
    """Admin only: regress approved_final to approved_lvl1 and restore pending"""
    if not _is_admin(user):
        raise Forbidden("Only admins can undo a final approval")
    leave_request = get_leave_request(db, leave_request_id)
    if leave_request.status != LeaveStatus.APPROVED_FINAL:
        raise InvalidStatusTransition("Only finally approved requests can be reverted")

    before = leave_request.status
    leave_request.status = LeaveStatus.APPROVED_LVL1.value
    db.commit()
    _log_transition(leave_request.id, before, leave_request.status, "undo_final")

    if _holds_balance(leave_request):
        owner = employee_for(db, leave_request.user_id)
        total = float(leave_request.total_days)
        if owner:
            ledger_service.apply_best_effort(
                db, owner.id, leave_request.leave_type_id, _balance_year(leave_request), "undo final approval",
                used_delta=-total, pending_delta=total, allocated_delta=total,
            )
    db.refresh(leave_request)
    return leave_request


def close_open_ended(db: Session, leave_request_id: int, user: User, closed_on: date) -> LeaveRequest:
    """Record the end of an open-ended reported absence"""
    if not can_act_as_approver(user):
        raise Forbidden("Only approvers can close open-ended requests")
    leave_request = get_leave_request(db, leave_request_id)
    if leave_request.is_dated or not leave_request.is_open_ended:
        raise InvalidStatusTransition("Request is not open-ended")
    if leave_request.status not in CLOSABLE_STATUSES:
        raise InvalidStatusTransition(f"A {leave_request.status} request cannot be closed")
    if closed_on < leave_request.occurred_on:
        raise InvalidDateRange("closed_on must be on or after occurred_on")

    leave_request.closed_on = closed_on
    leave_request.duration_days = float((closed_on - leave_request.occurred_on).days + 1)
    leave_request.is_open_ended = False
    db.commit()
    db.refresh(leave_request)
    logger.info(
        "open-ended leave closed: leave_request_id=%s closed_on=%s duration_days=%s",
        leave_request.id, closed_on, leave_request.duration_days,
    )
    return leave_request
