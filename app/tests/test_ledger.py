"""
Tests for the leave balance ledger
"""
import pytest
from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.models.leave import LeaveBalance, LeaveType
from app.services import ledger_service


@pytest.fixture
def balance(db: Session, employee, annual_leave):
    row = ledger_service.allocate(db, employee.id, annual_leave.id, 2026, allocated=10, carry_over=2)
    return row


def test_remaining_is_derived(balance):
    balance.used = 3
    balance.pending = 1.5
    assert ledger_service.remaining(balance) == pytest.approx(7.5)


def test_adjust_increments_counters(db: Session, employee, annual_leave, balance):
    touched = ledger_service.adjust(db, employee.id, annual_leave.id, 2026, pending_delta=4)
    db.commit()
    db.refresh(balance)

    assert touched is True
    assert balance.pending == pytest.approx(4)
    assert balance.allocated == pytest.approx(10)
    assert balance.used == pytest.approx(0)
    assert balance.remaining == pytest.approx(8)


def test_adjust_applies_all_deltas_in_one_update(db: Session, employee, annual_leave, balance):
    ledger_service.adjust(db, employee.id, annual_leave.id, 2026, pending_delta=5)
    ledger_service.adjust(
        db, employee.id, annual_leave.id, 2026, pending_delta=-5, used_delta=5, allocated_delta=-5
    )
    db.commit()
    db.refresh(balance)

    assert (balance.allocated, balance.used, balance.pending) == (5, 5, 0)


def test_adjust_without_row_touches_nothing(db: Session, employee, annual_leave):
    assert ledger_service.adjust(db, employee.id, annual_leave.id, 1999, pending_delta=1) is False


def test_get_or_init_creates_zeroed_row(db: Session, employee, annual_leave):
    row = ledger_service.get_or_init(db, employee.id, annual_leave.id, 2030)
    db.commit()

    assert row.id is not None
    assert (row.allocated, row.used, row.pending, row.carry_over) == (0, 0, 0, 0)
    assert ledger_service.get_or_init(db, employee.id, annual_leave.id, 2030).id == row.id


def test_allocate_overwrites_absolute_values(db: Session, employee, annual_leave, balance):
    ledger_service.allocate(db, employee.id, annual_leave.id, 2026, allocated=15, carry_over=0)

    rows = db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee.id).all()
    assert len(rows) == 1
    assert rows[0].allocated == 15
    assert rows[0].carry_over == 0


def test_allocate_unknown_employee(db: Session, annual_leave):
    with pytest.raises(NotFound):
        ledger_service.allocate(db, 12345, annual_leave.id, 2026, allocated=5)


def test_bulk_allocate_reports_failures_without_aborting(db: Session, employee, annual_leave):
    results = ledger_service.bulk_allocate(db, 2026, [
        {"employee_id": employee.id, "leave_type_id": annual_leave.id, "allocated": 12},
        {"employee_id": 999, "leave_type_id": annual_leave.id, "allocated": 3},
    ])

    assert [r["success"] for r in results] == [True, False]
    assert results[1]["error"] == "Employee not found"
    assert ledger_service.get_balance_row(db, employee.id, annual_leave.id, 2026).allocated == 12


def test_apply_best_effort_swallows_failures(db: Session, employee, annual_leave, balance, monkeypatch):
    def broken_adjust(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(ledger_service, "adjust", broken_adjust)

    assert ledger_service.apply_best_effort(
        db, employee.id, annual_leave.id, 2026, "final approval", pending_delta=-1
    ) is False


def test_defaults_for_new_employee(db: Session, employee_user, manager, make_employee):
    db.add_all([
        LeaveType(name="Vacation", default_days=20, requires_dates=True, requires_balance=True),
        LeaveType(name="Unpaid", default_days=0, requires_dates=True),
        LeaveType(name="Retired", default_days=5, is_active=False),
    ])
    db.commit()
    new_hire = make_employee(employee_user, "New Hire", manager=manager)

    created = ledger_service.allocate_defaults_for_employee(db, new_hire.id, year=2026)
    db.commit()

    rows = ledger_service.list_balances(db, new_hire.id, 2026)
    assert created == 1
    assert [(r.leave_type.name, r.allocated) for r in rows] == [("Vacation", 20)]
