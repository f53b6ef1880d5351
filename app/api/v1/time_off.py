"""
Time-off endpoints - leave types, balances and leave requests
"""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user, require_roles, require_approver, can_act_as_approver
from app.core.errors import Forbidden
from app.models.leave import LeaveStatus
from app.models.user import User, Role
from app.schemas.leave import (
    LeaveTypeCreate,
    LeaveTypeUpdate,
    LeaveTypeOut,
    BalanceOut,
    BalanceListResponse,
    AllocateRequest,
    BulkAllocateRequest,
    BulkAllocateResponse,
    BulkAllocateResult,
    LeaveRequestCreate,
    LeaveRequestUpdate,
    LeaveRequestOut,
    LeaveRequestListResponse,
    ApprovalActionRequest,
    CloseOpenEndedRequest,
)
from app.services import leave_service, leave_type_service, ledger_service, notification_service
from app.services.directory_service import get_employee, require_employee_for
from app.utils.datetime_utils import today

router = APIRouter()


def _request_data(payload, exclude_unset: bool = False) -> dict:
    data = payload.model_dump(exclude_unset=exclude_unset)
    if data.get("documents") is not None:
        data["documents"] = [str(url) for url in data["documents"]]
    return data


def _list_response(requests) -> LeaveRequestListResponse:
    items = [LeaveRequestOut.from_request(r) for r in requests]
    return LeaveRequestListResponse(items=items, total=len(items))


# --- Leave types ---


@router.get("/leave-types", response_model=List[LeaveTypeOut])
async def list_leave_types(
    include_inactive: bool = Query(False, description="Admins only: include deactivated types"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """List leave types. Non-admins only ever see active types."""
    include_inactive = include_inactive and current_user.role == Role.ADMIN.value
    return leave_type_service.list_leave_types(db, include_inactive=include_inactive)


@router.get("/leave-types/{leave_type_id}", response_model=LeaveTypeOut)
async def get_leave_type(
    leave_type_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return leave_type_service.get_leave_type(db, leave_type_id)


@router.post("/leave-types", response_model=LeaveTypeOut, status_code=201)
async def create_leave_type(
    payload: LeaveTypeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    """
    Create a leave type (admin only)

    When default_days > 0 every existing employee receives a balance row for
    the current year.
    """
    return leave_type_service.create_leave_type(db, payload.model_dump())


@router.put("/leave-types/{leave_type_id}", response_model=LeaveTypeOut)
async def update_leave_type(
    leave_type_id: int,
    payload: LeaveTypeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    return leave_type_service.update_leave_type(db, leave_type_id, payload.model_dump(exclude_unset=True))


@router.delete("/leave-types/{leave_type_id}", response_model=LeaveTypeOut)
async def deactivate_leave_type(
    leave_type_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    """Soft delete (is_active=false)"""
    return leave_type_service.deactivate_leave_type(db, leave_type_id)


# --- Balances ---


@router.get("/balances/me", response_model=BalanceListResponse)
async def my_balances(
    year: Optional[int] = Query(None, description="Calendar year, defaults to the current year"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    employee = require_employee_for(db, current_user.id)
    year = year or today().year
    items = [BalanceOut.model_validate(b) for b in ledger_service.list_balances(db, employee.id, year)]
    return BalanceListResponse(employee_id=employee.id, year=year, items=items)


@router.get("/balances/employee/{employee_id}", response_model=BalanceListResponse)
async def employee_balances(
    employee_id: int,
    year: Optional[int] = Query(None, description="Calendar year, defaults to the current year"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Balances of one employee (approvers/admins, or the employee themself)"""
    employee = get_employee(db, employee_id)
    if employee.user_id != current_user.id and not can_act_as_approver(current_user):
        raise Forbidden("You can only view your own balances")
    year = year or today().year
    items = [BalanceOut.model_validate(b) for b in ledger_service.list_balances(db, employee.id, year)]
    return BalanceListResponse(employee_id=employee.id, year=year, items=items)


@router.post("/balances/allocate", response_model=BalanceOut)
async def allocate_balance(
    payload: AllocateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    """Set allocated / carry_over for one (employee, leave type, year)"""
    return ledger_service.allocate(
        db,
        employee_id=payload.employee_id,
        leave_type_id=payload.leave_type_id,
        year=payload.year,
        allocated=payload.allocated,
        carry_over=payload.carry_over,
    )


@router.post("/balances/bulk-allocate", response_model=BulkAllocateResponse)
async def bulk_allocate_balances(
    payload: BulkAllocateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    """Allocate many rows; failed items are reported, not fatal"""
    results = ledger_service.bulk_allocate(
        db, payload.year, [item.model_dump() for item in payload.allocations]
    )
    out = [
        BulkAllocateResult(
            success=r["success"],
            allocation=r["allocation"],
            balance=BalanceOut.model_validate(r["balance"]) if r.get("balance") is not None else None,
            error=r.get("error"),
        )
        for r in results
    ]
    succeeded = sum(1 for r in out if r.success)
    return BulkAllocateResponse(succeeded=succeeded, failed=len(out) - succeeded, results=out)


# --- Leave requests ---


@router.get("/requests", response_model=LeaveRequestListResponse)
async def list_requests(
    status: Optional[LeaveStatus] = Query(None, description="Filter by status"),
    start_date: Optional[date] = Query(None, description="Start date on or after"),
    end_date: Optional[date] = Query(None, description="Start date on or before"),
    pending: bool = Query(False, description="Only requests the caller can act on"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    List leave requests visible to the caller (newest first, max 100)

    - employee: own requests
    - approver: direct reports and same-department colleagues
    - admin: all requests
    """
    requests = leave_service.list_leave_requests(
        db, current_user, status=status, start_date=start_date, end_date=end_date, pending=pending
    )
    return _list_response(requests)


@router.get("/requests/pending/mine", response_model=LeaveRequestListResponse)
async def my_pending_approvals(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver),
):
    """Requests waiting on the caller's decision"""
    return _list_response(leave_service.list_leave_requests(db, current_user, pending=True))


@router.get("/requests/mine", response_model=LeaveRequestListResponse)
async def my_requests(
    status: Optional[LeaveStatus] = Query(None, description="Filter by status"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _list_response(leave_service.list_leave_requests(db, current_user, status=status, mine=True))


@router.get("/requests/{leave_request_id}", response_model=LeaveRequestOut)
async def get_request(
    leave_request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    leave_request = leave_service.get_leave_request_for(db, leave_request_id, current_user)
    return LeaveRequestOut.from_request(leave_request)


@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
async def submit_request(
    payload: LeaveRequestCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Submit a leave request for yourself

    Dated leave types: working days (Mon-Fri) are counted, overlaps are
    rejected and, when the type requires balance, the days are reserved as
    pending. Reported leave types: occurred_on must fall inside the reporting
    window. The supervisor is notified in the background.
    """
    leave_request = leave_service.submit_leave(db, current_user, _request_data(payload))
    background_tasks.add_task(notification_service.dispatch_submitted, leave_request.id)
    return LeaveRequestOut.from_request(leave_request)


@router.put("/requests/{leave_request_id}", response_model=LeaveRequestOut)
async def update_request(
    leave_request_id: int,
    payload: LeaveRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Edit a request while it is still submitted or reported"""
    leave_request = leave_service.update_leave(
        db, leave_request_id, current_user, _request_data(payload, exclude_unset=True)
    )
    return LeaveRequestOut.from_request(leave_request)


@router.delete("/requests/{leave_request_id}/cancel")
async def cancel_request(
    leave_request_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Cancel and delete a request

    Employees: own requests while submitted, reported or approved_lvl1.
    Approvers: any request in those statuses. Admins: also approved_final.
    Reserved or consumed balance is given back.
    """
    snapshot = leave_service.cancel_leave(db, leave_request_id, current_user)
    background_tasks.add_task(notification_service.dispatch_cancelled, snapshot, current_user.id)
    return {"message": "Leave request cancelled", "id": snapshot["id"]}


@router.post("/requests/{leave_request_id}/approve", response_model=LeaveRequestOut)
async def decide_request(
    leave_request_id: int,
    payload: ApprovalActionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver),
):
    """
    Approve or reject at the current level

    - submitted / reported: level 1, by the chosen supervisor, the employee's
      manager, or an admin
    - approved_lvl1: final level, admins only
    """
    leave_request = leave_service.decide_leave(
        db, leave_request_id, current_user, payload.status, payload.comment
    )
    level = leave_request.approval_history[-1].level
    background_tasks.add_task(
        notification_service.dispatch_status_change,
        leave_request.id,
        current_user.id,
        payload.status,
        level,
        payload.comment,
    )
    return LeaveRequestOut.from_request(leave_request)


@router.post("/requests/{leave_request_id}/close", response_model=LeaveRequestOut)
async def close_request(
    leave_request_id: int,
    payload: CloseOpenEndedRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_approver),
):
    """Close an open-ended reported absence and fix its duration"""
    leave_request = leave_service.close_open_ended(db, leave_request_id, current_user, payload.closed_on)
    return LeaveRequestOut.from_request(leave_request)


@router.post("/requests/{leave_request_id}/undo-final", response_model=LeaveRequestOut)
async def undo_final(
    leave_request_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    """Revert a final approval back to approved_lvl1 (admin only)"""
    leave_request = leave_service.undo_final_approval(db, leave_request_id, current_user)
    return LeaveRequestOut.from_request(leave_request)
