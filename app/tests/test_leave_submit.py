"""
Tests for leave request submission
"""
from datetime import date, timedelta

import pytest
from fastapi import status
from sqlalchemy.orm import Session

from app.models.leave import LeaveBalance, LeaveRequest, LeaveType
from app.models.user import Role, ApprovalLevel
from app.utils.datetime_utils import today

REQUESTS_URL = "/api/v1/time-off/requests"


def _submit(client, headers, leave_type, **fields):
    body = {"leave_type_id": leave_type.id, "reason": "Family trip"}
    body.update({k: v.isoformat() if isinstance(v, date) else v for k, v in fields.items()})
    return client.post(REQUESTS_URL, json=body, headers=headers)


def test_dated_submission_reserves_pending(client, db: Session, employee, employee_user, annual_leave,
                                           annual_balance, work_week, auth_headers):
    monday, friday = work_week

    response = _submit(client, auth_headers(employee_user.email), annual_leave, start_date=monday, end_date=friday)

    assert response.status_code == status.HTTP_201_CREATED, response.text
    data = response.json()
    assert data["status"] == "submitted"
    assert data["total_days"] == 5
    assert data["user_id"] == employee_user.id
    assert data["employee"]["name"] == "Eve Employee"
    assert data["leave_type"]["name"] == "Annual Leave"
    # supervisor defaults to the direct manager
    assert data["supervisor"]["id"] == employee.manager_id

    db.refresh(annual_balance)
    assert annual_balance.pending == 5
    assert annual_balance.allocated == 10
    assert annual_balance.used == 0
    assert annual_balance.remaining == 5


def test_insufficient_balance_leaves_ledger_untouched(client, db: Session, employee, employee_user, annual_leave,
                                                      annual_balance, work_week, auth_headers):
    annual_balance.allocated = 3
    db.commit()
    monday, friday = work_week

    response = _submit(client, auth_headers(employee_user.email), annual_leave, start_date=monday, end_date=friday)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "InsufficientBalance"
    db.refresh(annual_balance)
    assert (annual_balance.allocated, annual_balance.used, annual_balance.pending) == (3, 0, 0)
    assert db.query(LeaveRequest).count() == 0


def test_missing_balance_row(client, employee, employee_user, annual_leave, work_week, auth_headers):
    monday, friday = work_week

    response = _submit(client, auth_headers(employee_user.email), annual_leave, start_date=monday, end_date=friday)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "NoBalanceFound"


def test_overlapping_request_rejected(client, employee, employee_user, annual_leave, annual_balance,
                                      work_week, auth_headers):
    headers = auth_headers(employee_user.email)
    monday, friday = work_week
    first = _submit(client, headers, annual_leave, start_date=monday, end_date=monday + timedelta(days=1))

    second = _submit(client, headers, annual_leave, start_date=monday + timedelta(days=1), end_date=friday)

    assert first.status_code == status.HTTP_201_CREATED
    assert second.status_code == status.HTTP_400_BAD_REQUEST
    assert second.json()["code"] == "OverlappingRequest"


def test_start_after_end_rejected(client, employee, employee_user, annual_leave, annual_balance,
                                  work_week, auth_headers):
    monday, friday = work_week

    response = _submit(client, auth_headers(employee_user.email), annual_leave, start_date=friday, end_date=monday)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "InvalidDateRange"


def test_future_applications_flag_rejects_past_start(client, employee, employee_user, annual_leave,
                                                    annual_balance, auth_headers):
    last_week = today() - timedelta(days=7)

    response = _submit(client, auth_headers(employee_user.email), annual_leave, start_date=last_week, end_date=last_week)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "LeavePolicyViolation"


def test_without_future_applications_future_start_rejected(client, db: Session, employee, employee_user,
                                                          work_week, auth_headers):
    leave_type = LeaveType(name="Compassionate", requires_dates=True, allow_future_applications=False)
    db.add(leave_type)
    db.commit()
    monday, friday = work_week

    response = _submit(client, auth_headers(employee_user.email), leave_type, start_date=monday, end_date=friday)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "LeavePolicyViolation"


def test_weekend_only_range_rejected(client, employee, employee_user, annual_leave, annual_balance,
                                     work_week, auth_headers):
    _, friday = work_week
    saturday = friday + timedelta(days=1)

    response = _submit(
        client, auth_headers(employee_user.email), annual_leave,
        start_date=saturday, end_date=saturday + timedelta(days=1),
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "no working days" in response.json()["error"]


def test_max_consecutive_days(client, db: Session, employee, employee_user, annual_leave, annual_balance,
                              work_week, auth_headers):
    annual_leave.max_consecutive_days = 3
    db.commit()
    monday, friday = work_week

    response = _submit(client, auth_headers(employee_user.email), annual_leave, start_date=monday, end_date=friday)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "LeavePolicyViolation"


def test_reporting_window_exceeded(client, employee, employee_user, sick_leave, auth_headers):
    response = _submit(
        client, auth_headers(employee_user.email), sick_leave,
        occurred_on=today() - timedelta(days=3), is_open_ended=True,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "ReportingWindowExceeded"


def test_reported_submission(client, db: Session, employee, employee_user, sick_leave, auth_headers):
    response = _submit(
        client, auth_headers(employee_user.email), sick_leave,
        occurred_on=today() - timedelta(days=1), is_open_ended=True,
    )

    assert response.status_code == status.HTTP_201_CREATED, response.text
    data = response.json()
    assert data["status"] == "reported"
    assert data["is_open_ended"] is True
    assert data["start_date"] is None
    assert data["total_days"] is None
    assert db.query(LeaveBalance).count() == 0


def test_open_ended_not_allowed(client, db: Session, employee, employee_user, sick_leave, auth_headers):
    sick_leave.is_open_ended_allowed = False
    db.commit()

    response = _submit(
        client, auth_headers(employee_user.email), sick_leave, occurred_on=today(), is_open_ended=True,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "OpenEndedNotAllowed"


def test_future_occurrence_rejected(client, employee, employee_user, sick_leave, auth_headers):
    response = _submit(
        client, auth_headers(employee_user.email), sick_leave, occurred_on=today() + timedelta(days=1),
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_attachment_required(client, db: Session, employee, employee_user, sick_leave, auth_headers):
    sick_leave.requires_attachment = True
    db.commit()
    headers = auth_headers(employee_user.email)

    without = _submit(client, headers, sick_leave, occurred_on=today())
    with_doc = _submit(
        client, headers, sick_leave, occurred_on=today(), documents=["https://files.example.com/note.pdf"],
    )

    assert without.status_code == status.HTTP_400_BAD_REQUEST
    assert with_doc.status_code == status.HTTP_201_CREATED
    assert with_doc.json()["documents"] == ["https://files.example.com/note.pdf"]


def test_supervisor_must_be_able_to_approve(client, employee, employee_user, sick_leave, make_user,
                                            make_employee, auth_headers):
    peer = make_employee(make_user("peer@example.com", Role.EMPLOYEE), "Pat Peer")

    response = _submit(
        client, auth_headers(employee_user.email), sick_leave, occurred_on=today(), supervisor_id=peer.id,
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "InvalidSupervisor"


def test_level1_attribute_makes_a_valid_supervisor(client, employee, employee_user, sick_leave, make_user,
                                                   make_employee, auth_headers):
    lead_user = make_user("lead@example.com", Role.EMPLOYEE, approval_level=ApprovalLevel.LEVEL1.value)
    lead = make_employee(lead_user, "Lee Lead")

    response = _submit(
        client, auth_headers(employee_user.email), sick_leave, occurred_on=today(), supervisor_id=lead.id,
    )

    assert response.status_code == status.HTTP_201_CREATED, response.text
    assert response.json()["supervisor_id"] == lead.id


def test_user_without_profile_cannot_submit(client, sick_leave, make_user, auth_headers):
    user = make_user("ghost@example.com")

    response = _submit(client, auth_headers(user.email), sick_leave, occurred_on=today())

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"] == "Employee profile not found"


def test_missing_reason_is_a_400(client, employee, employee_user, sick_leave, auth_headers):
    response = client.post(
        REQUESTS_URL,
        json={"leave_type_id": sick_leave.id, "occurred_on": today().isoformat()},
        headers=auth_headers(employee_user.email),
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "ValidationError"


def test_submission_requires_token(client, sick_leave):
    response = client.post(REQUESTS_URL, json={"leave_type_id": sick_leave.id, "reason": "x"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
