"""
Tests for workflow notifications and the notification inbox endpoints
"""
import asyncio

import pytest
from fastapi import status
from sqlalchemy.orm import Session

from app.models.notification import Notification, NotificationType
from app.services import email_service, notification_service

REQUESTS_URL = "/api/v1/time-off/requests"
NOTIFICATIONS_URL = "/api/v1/notifications"


@pytest.fixture
def submitted(client, employee, employee_user, annual_leave, annual_balance, work_week, auth_headers):
    monday, friday = work_week
    response = client.post(
        REQUESTS_URL,
        json={
            "leave_type_id": annual_leave.id,
            "reason": "Family trip",
            "start_date": monday.isoformat(),
            "end_date": friday.isoformat(),
        },
        headers=auth_headers(employee_user.email),
    )
    assert response.status_code == status.HTTP_201_CREATED, response.text
    return response.json()


def test_submit_notifies_supervisor(db: Session, submitted, manager_user, employee_user):
    notification = db.query(Notification).filter(Notification.recipient_user_id == manager_user.id).one()

    assert notification.type == NotificationType.LEAVE_REQUEST_SUBMITTED.value
    assert notification.title == "New Leave Request"
    assert "Eve Employee" in notification.message
    assert "Annual Leave" in notification.message
    assert notification.sender_user_id == employee_user.id
    assert notification.related_entity_id == submitted["id"]
    assert notification.is_read is False


def test_approval_notifies_requester(client, db: Session, submitted, manager_user, employee_user, auth_headers):
    response = client.post(
        f"{REQUESTS_URL}/{submitted['id']}/approve",
        json={"status": "approved", "comment": "Have fun"},
        headers=auth_headers(manager_user.email),
    )
    assert response.status_code == status.HTTP_200_OK

    notification = db.query(Notification).filter(Notification.recipient_user_id == employee_user.id).one()
    assert notification.type == NotificationType.LEAVE_REQUEST_APPROVED.value
    assert notification.title == "Leave Request Approved"
    assert notification.priority == "medium"
    assert "Level 1" in notification.message
    assert "Have fun" in notification.message
    assert notification.meta_json == {"status": "approved_lvl1", "level": "level1"}


def test_rejection_is_high_priority(client, db: Session, submitted, manager_user, employee_user, auth_headers):
    response = client.post(
        f"{REQUESTS_URL}/{submitted['id']}/approve",
        json={"status": "rejected"},
        headers=auth_headers(manager_user.email),
    )
    assert response.status_code == status.HTTP_200_OK

    notification = db.query(Notification).filter(Notification.recipient_user_id == employee_user.id).one()
    assert notification.type == NotificationType.LEAVE_REQUEST_REJECTED.value
    assert notification.title == "Leave Request Rejected"
    assert notification.priority == "high"


def test_cancel_notifies_supervisor(client, db: Session, submitted, manager_user, employee_user, auth_headers):
    response = client.delete(f"{REQUESTS_URL}/{submitted['id']}/cancel", headers=auth_headers(employee_user.email))
    assert response.status_code == status.HTTP_200_OK

    kinds = [
        n.type
        for n in db.query(Notification).filter(Notification.recipient_user_id == manager_user.id).order_by(Notification.id)
    ]
    assert kinds == [
        NotificationType.LEAVE_REQUEST_SUBMITTED.value,
        NotificationType.LEAVE_REQUEST_CANCELLED.value,
    ]


def test_dispatch_for_missing_request_is_silent(db: Session):
    asyncio.run(notification_service.dispatch_submitted(9999))
    assert db.query(Notification).count() == 0


def test_failing_dispatch_does_not_break_request(client, db: Session, employee, employee_user, annual_leave,
                                                 annual_balance, work_week, auth_headers, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(notification_service.email_service, "send_submitted_email", broken)
    monday, friday = work_week
    response = client.post(
        REQUESTS_URL,
        json={
            "leave_type_id": annual_leave.id,
            "reason": "Trip",
            "start_date": monday.isoformat(),
            "end_date": friday.isoformat(),
        },
        headers=auth_headers(employee_user.email),
    )

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["status"] == "submitted"


def test_inbox_lists_and_counts(client, submitted, manager_user, auth_headers):
    headers = auth_headers(manager_user.email)

    listing = client.get(NOTIFICATIONS_URL, headers=headers)
    assert listing.status_code == status.HTTP_200_OK
    data = listing.json()
    assert data["total"] == 1
    assert data["unread"] == 1
    assert data["items"][0]["type"] == "leave_request_submitted"

    count = client.get(f"{NOTIFICATIONS_URL}/unread-count", headers=headers)
    assert count.json() == {"unread": 1}


def test_mark_read_and_read_all(client, db: Session, submitted, manager_user, auth_headers):
    headers = auth_headers(manager_user.email)
    notification_service.notify(
        db, manager_user.id, NotificationType.GENERAL, "Reminder", "Review pending requests"
    )
    first_id = client.get(NOTIFICATIONS_URL, headers=headers).json()["items"][-1]["id"]

    marked = client.post(f"{NOTIFICATIONS_URL}/{first_id}/read", headers=headers)
    assert marked.status_code == status.HTTP_200_OK
    assert marked.json()["is_read"] is True
    assert client.get(f"{NOTIFICATIONS_URL}/unread-count", headers=headers).json() == {"unread": 1}

    read_all = client.post(f"{NOTIFICATIONS_URL}/read-all", headers=headers)
    assert read_all.json() == {"updated": 1}
    unread = client.get(NOTIFICATIONS_URL, params={"unread_only": True}, headers=headers).json()
    assert unread["total"] == 0


def test_delete_notification(client, db: Session, submitted, manager_user, auth_headers):
    headers = auth_headers(manager_user.email)
    notification_id = client.get(NOTIFICATIONS_URL, headers=headers).json()["items"][0]["id"]

    response = client.delete(f"{NOTIFICATIONS_URL}/{notification_id}", headers=headers)

    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert db.query(Notification).count() == 0


def test_cannot_touch_someone_elses_notification(client, submitted, manager_user, employee_user, auth_headers):
    notification_id = client.get(NOTIFICATIONS_URL, headers=auth_headers(manager_user.email)).json()["items"][0]["id"]
    employee_headers = auth_headers(employee_user.email)

    assert client.post(f"{NOTIFICATIONS_URL}/{notification_id}/read", headers=employee_headers).status_code == 404
    assert client.delete(f"{NOTIFICATIONS_URL}/{notification_id}", headers=employee_headers).status_code == 404


@pytest.fixture
def sent_bodies(monkeypatch):
    bodies = []

    async def capture(to_email, subject, body, subtype="html"):
        bodies.append(body)
        return True

    monkeypatch.setattr(email_service, "send_email", capture)
    return bodies


def test_email_bodies_escape_user_text(sent_bodies):
    fields = {
        "leave_request_id": 7,
        "employee_name": "Eve <b>Employee</b>",
        "leave_type_name": "Annual Leave",
        "start_date": "2030-01-07",
        "end_date": "2030-01-11",
        "reason": "<script>alert(1)</script>",
        "decision": "rejected",
        "level_label": "Level 1",
        "approver_name": "Max Manager",
        "comment": "<img src=x onerror=alert(1)>",
    }

    asyncio.run(email_service.send_submitted_email("manager@example.com", fields))
    asyncio.run(email_service.send_status_change_email("employee@example.com", fields))
    asyncio.run(email_service.send_cancelled_email("manager@example.com", fields))

    submitted_body, status_body, cancelled_body = sent_bodies
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in submitted_body
    assert "<script>" not in submitted_body
    assert "&lt;img src=x onerror=alert(1)&gt;" in status_body
    assert "<img" not in status_body
    assert "Eve &lt;b&gt;Employee&lt;/b&gt;" in cancelled_body
    assert "<b>" not in cancelled_body
