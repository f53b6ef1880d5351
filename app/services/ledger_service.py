"""
Leave Balance Ledger

- One row per (employee_id, leave_type_id, year).
- remaining = allocated + carry_over - used - pending, derived on read.
- Workflow mutations go through adjust(), a single atomic UPDATE with
  column increments so concurrent approvals/cancellations on the same row
  never lose an update.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.core.errors import NotFound
from app.models.employee import Employee
from app.models.leave import LeaveBalance, LeaveType
from app.services.directory_service import EmployeeId
from app.utils.datetime_utils import today

logger = logging.getLogger(__name__)


def remaining(balance: LeaveBalance) -> float:
    """Available days for a ledger row"""
    return balance.remaining


def get_balance_row(
    db: Session,
    employee_id: EmployeeId,
    leave_type_id: int,
    year: int,
) -> Optional[LeaveBalance]:
    return (
        db.query(LeaveBalance)
        .filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        .first()
    )


def get_or_init(
    db: Session,
    employee_id: EmployeeId,
    leave_type_id: int,
    year: int,
) -> LeaveBalance:
    """Return the ledger row, creating it with zeroed counters when missing (flushes, no commit)"""
    bal = get_balance_row(db, employee_id, leave_type_id, year)
    if bal:
        return bal

    bal = LeaveBalance(
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        year=year,
        allocated=0,
        used=0,
        pending=0,
        carry_over=0,
    )
    db.add(bal)
    db.flush()
    return bal


def adjust(
    db: Session,
    employee_id: EmployeeId,
    leave_type_id: int,
    year: int,
    allocated_delta: float = 0,
    used_delta: float = 0,
    pending_delta: float = 0,
) -> bool:
    """
    Atomically increment ledger counters. Does not commit.

    Returns:
        True if a row was updated, False if no row exists for the key
    """
    stmt = (
        update(LeaveBalance)
        .where(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type_id == leave_type_id,
            LeaveBalance.year == year,
        )
        .values(
            allocated=LeaveBalance.allocated + allocated_delta,
            used=LeaveBalance.used + used_delta,
            pending=LeaveBalance.pending + pending_delta,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    # Rows already loaded in this session are stale after a bulk UPDATE
    for obj in list(db.identity_map.values()):
        if isinstance(obj, LeaveBalance):
            db.expire(obj)
    logger.debug(
        "ledger adjust: employee_id=%s leave_type_id=%s year=%s allocated%+g used%+g pending%+g rows=%s",
        employee_id, leave_type_id, year, allocated_delta, used_delta, pending_delta, result.rowcount,
    )
    return result.rowcount > 0


def apply_best_effort(
    db: Session,
    employee_id: EmployeeId,
    leave_type_id: int,
    year: int,
    reason: str,
    **deltas: float,
) -> bool:
    """
    Adjust and commit the ledger after a workflow transition has already
    been committed. Failures are logged and swallowed; the transition stands.
    """
    try:
        touched = adjust(db, employee_id, leave_type_id, year, **deltas)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception(
            "ledger adjustment failed after %s: employee_id=%s leave_type_id=%s year=%s deltas=%s",
            reason, employee_id, leave_type_id, year, deltas,
        )
        return False
    if not touched:
        logger.warning(
            "ledger adjustment after %s found no balance row: employee_id=%s leave_type_id=%s year=%s",
            reason, employee_id, leave_type_id, year,
        )
    return touched


def list_balances(
    db: Session,
    employee_id: EmployeeId,
    year: int,
) -> List[LeaveBalance]:
    return (
        db.query(LeaveBalance)
        .options(joinedload(LeaveBalance.leave_type))
        .filter(LeaveBalance.employee_id == employee_id, LeaveBalance.year == year)
        .order_by(LeaveBalance.leave_type_id)
        .all()
    )


def allocate(
    db: Session,
    employee_id: EmployeeId,
    leave_type_id: int,
    year: int,
    allocated: float,
    carry_over: float = 0,
    commit: bool = True,
) -> LeaveBalance:
    """Upsert a ledger row with absolute allocated/carry_over values"""
    if not db.query(Employee.id).filter(Employee.id == employee_id).first():
        raise NotFound("Employee not found")
    if not db.query(LeaveType.id).filter(LeaveType.id == leave_type_id).first():
        raise NotFound("Leave type not found")

    bal = get_or_init(db, employee_id, leave_type_id, year)
    bal.allocated = allocated
    bal.carry_over = carry_over
    if commit:
        db.commit()
        db.refresh(bal)
    logger.info(
        "balance allocated: employee_id=%s leave_type_id=%s year=%s allocated=%s carry_over=%s",
        employee_id, leave_type_id, year, allocated, carry_over,
    )
    return bal


def bulk_allocate(
    db: Session,
    year: int,
    allocations: List[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    """
    Allocate many rows; one bad item does not abort the batch.

    Each allocation: {employee_id, leave_type_id, allocated, carry_over?}
    """
    results: List[Dict[str, Any]] = []
    for item in allocations:
        try:
            bal = allocate(
                db,
                employee_id=item["employee_id"],
                leave_type_id=item["leave_type_id"],
                year=year,
                allocated=item["allocated"],
                carry_over=item.get("carry_over") or 0,
            )
            results.append({"success": True, "balance": bal, "allocation": item})
        except NotFound as exc:
            db.rollback()
            results.append({"success": False, "error": exc.detail, "allocation": item})
        except (KeyError, IntegrityError) as exc:
            db.rollback()
            logger.warning("bulk allocation item failed: %s (%s)", item, exc)
            results.append({"success": False, "error": str(exc), "allocation": item})
    return results


def allocate_default_for_leave_type(db: Session, leave_type: LeaveType, year: Optional[int] = None) -> int:
    """
    Give every existing employee a row for a newly created leave type
    (allocated = default_days). Existing rows are left alone. Does not commit.

    Returns:
        Number of rows created
    """
    if not leave_type.default_days or leave_type.default_days <= 0:
        return 0
    year = year or today().year
    existing = {
        employee_id
        for (employee_id,) in db.query(LeaveBalance.employee_id).filter(
            LeaveBalance.leave_type_id == leave_type.id,
            LeaveBalance.year == year,
        )
    }
    created = 0
    for (employee_id,) in db.query(Employee.id).all():
        if employee_id in existing:
            continue
        db.add(LeaveBalance(
            employee_id=employee_id,
            leave_type_id=leave_type.id,
            year=year,
            allocated=leave_type.default_days,
            used=0,
            pending=0,
            carry_over=0,
        ))
        created += 1
    logger.info(
        "default allocation for leave type %s (%s days): %s employees, year %s",
        leave_type.name, leave_type.default_days, created, year,
    )
    return created


def allocate_defaults_for_employee(db: Session, employee_id: EmployeeId, year: Optional[int] = None) -> int:
    """Onboarding: one row per active leave type with default_days > 0. Does not commit."""
    year = year or today().year
    created = 0
    leave_types = db.query(LeaveType).filter(LeaveType.is_active == True).all()  # noqa: E712
    for leave_type in leave_types:
        if not leave_type.default_days or leave_type.default_days <= 0:
            continue
        if get_balance_row(db, employee_id, leave_type.id, year):
            continue
        db.add(LeaveBalance(
            employee_id=employee_id,
            leave_type_id=leave_type.id,
            year=year,
            allocated=leave_type.default_days,
            used=0,
            pending=0,
            carry_over=0,
        ))
        created += 1
    return created
