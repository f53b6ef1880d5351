"""
Notification service - in-app notifications and the fire-and-forget
dispatchers run after leave workflow transitions

Dispatchers are scheduled with FastAPI BackgroundTasks once the transition has
committed. They open their own session and log every failure; nothing they do
can change the outcome of the request that scheduled them.
"""
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.errors import NotFound
from app.core.logging import get_logger
from app.db.session import SessionLocal
from app.models.employee import Employee
from app.models.leave import ApprovalDecision, ApprovalLevelName, LeaveRequest
from app.models.notification import Notification, NotificationPriority, NotificationType
from app.models.user import User
from app.services import email_service
from app.utils.enums import enum_to_str

logger = get_logger(__name__)

LEAVE_ENTITY = "leave_request"


def notify(
    db: Session,
    recipient_user_id: int,
    kind: NotificationType,
    title: str,
    message: str,
    sender_user_id: Optional[int] = None,
    related_entity_id: Optional[int] = None,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    action_url: Optional[str] = None,
    meta: Optional[dict] = None,
) -> Notification:
    """Persist one notification row and commit"""
    notification = Notification(
        recipient_user_id=recipient_user_id,
        sender_user_id=sender_user_id,
        type=enum_to_str(kind),
        title=title,
        message=message,
        related_entity_type=LEAVE_ENTITY if related_entity_id is not None else None,
        related_entity_id=related_entity_id,
        priority=enum_to_str(priority),
        action_url=action_url,
        meta_json=meta,
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)
    return notification


def list_notifications(
    db: Session,
    user_id: int,
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 20,
) -> Tuple[List[Notification], int]:
    query = db.query(Notification).filter(Notification.recipient_user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712
    total = query.count()
    items = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return items, total


def unread_count(db: Session, user_id: int) -> int:
    return (
        db.query(Notification)
        .filter(Notification.recipient_user_id == user_id, Notification.is_read == False)  # noqa: E712
        .count()
    )


def _get_own(db: Session, user_id: int, notification_id: int) -> Notification:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.recipient_user_id == user_id)
        .first()
    )
    if not notification:
        raise NotFound("Notification not found")
    return notification


def mark_read(db: Session, user_id: int, notification_id: int) -> Notification:
    notification = _get_own(db, user_id, notification_id)
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    updated = (
        db.query(Notification)
        .filter(Notification.recipient_user_id == user_id, Notification.is_read == False)  # noqa: E712
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return updated


def delete_notification(db: Session, user_id: int, notification_id: int) -> None:
    notification = _get_own(db, user_id, notification_id)
    db.delete(notification)
    db.commit()


def _display_name(db: Session, user: Optional[User]) -> str:
    if user is None:
        return "Unknown"
    profile = db.query(Employee).filter(Employee.user_id == user.id).first()
    return profile.name if profile else user.email


def _period_fields(leave_request) -> dict:
    return {
        "start_date": leave_request.start_date,
        "end_date": leave_request.end_date,
        "occurred_on": leave_request.occurred_on,
    }


def _period_text(fields: dict) -> str:
    if fields.get("start_date"):
        return f"from {fields['start_date']} to {fields['end_date']}"
    return f"on {fields.get('occurred_on')}"


async def dispatch_submitted(leave_request_id: int) -> None:
    """Notify and email the supervisor of a new request"""
    db = SessionLocal()
    try:
        leave_request = db.query(LeaveRequest).filter(LeaveRequest.id == leave_request_id).first()
        if not leave_request:
            logger.warning("submitted dispatch: leave request %s no longer exists", leave_request_id)
            return
        supervisor = leave_request.supervisor
        if not supervisor or not supervisor.user_id:
            logger.info("submitted dispatch: leave_request_id=%s has no supervisor to notify", leave_request_id)
            return

        employee_name = _display_name(db, leave_request.user)
        fields = {
            "leave_request_id": leave_request.id,
            "employee_name": employee_name,
            "leave_type_name": leave_request.leave_type.name,
            "reason": leave_request.reason,
            **_period_fields(leave_request),
        }
        notify(
            db,
            recipient_user_id=supervisor.user_id,
            kind=NotificationType.LEAVE_REQUEST_SUBMITTED,
            title="New Leave Request",
            message=(
                f"{employee_name} has submitted a leave request for "
                f"{fields['leave_type_name']} {_period_text(fields)}"
            ),
            sender_user_id=leave_request.user_id,
            related_entity_id=leave_request.id,
            action_url=f"/time-off/requests/{leave_request.id}",
        )
        recipient_email = supervisor.user.email if supervisor.user else supervisor.email
        await email_service.send_submitted_email(recipient_email, fields)
    except Exception:
        db.rollback()
        logger.exception("submitted dispatch failed: leave_request_id=%s", leave_request_id)
    finally:
        db.close()


async def dispatch_status_change(
    leave_request_id: int,
    approver_user_id: int,
    decision: ApprovalDecision,
    level: ApprovalLevelName,
    comment: Optional[str] = None,
) -> None:
    """Notify and email the requester after an approval decision"""
    db = SessionLocal()
    try:
        leave_request = db.query(LeaveRequest).filter(LeaveRequest.id == leave_request_id).first()
        if not leave_request:
            logger.warning("status dispatch: leave request %s no longer exists", leave_request_id)
            return
        approver = db.query(User).filter(User.id == approver_user_id).first()
        decision = ApprovalDecision(decision)
        level_label = "Final" if ApprovalLevelName(level) == ApprovalLevelName.LEVEL2 else "Level 1"
        fields = {
            "leave_request_id": leave_request.id,
            "leave_type_name": leave_request.leave_type.name,
            "decision": decision.value,
            "level_label": level_label,
            "approver_name": _display_name(db, approver),
            "comment": comment,
            **_period_fields(leave_request),
        }
        message = (
            f"Your leave request for {fields['leave_type_name']} has been {decision.value} "
            f"({level_label}) by {fields['approver_name']}."
        )
        if comment:
            message += f" Comment: {comment}"
        approved = decision == ApprovalDecision.APPROVED
        notify(
            db,
            recipient_user_id=leave_request.user_id,
            kind=NotificationType.LEAVE_REQUEST_APPROVED if approved else NotificationType.LEAVE_REQUEST_REJECTED,
            title=f"Leave Request {decision.value.capitalize()}",
            message=message,
            sender_user_id=approver_user_id,
            related_entity_id=leave_request.id,
            priority=NotificationPriority.MEDIUM if approved else NotificationPriority.HIGH,
            action_url=f"/time-off/requests/{leave_request.id}",
            meta={"status": leave_request.status, "level": enum_to_str(level)},
        )
        await email_service.send_status_change_email(leave_request.user.email, fields)
    except Exception:
        db.rollback()
        logger.exception("status dispatch failed: leave_request_id=%s", leave_request_id)
    finally:
        db.close()


async def dispatch_cancelled(snapshot: dict, actor_user_id: int) -> None:
    """Tell the supervisor a request they were handling is gone"""
    db = SessionLocal()
    try:
        supervisor = None
        if snapshot.get("supervisor_id"):
            supervisor = db.query(Employee).filter(Employee.id == snapshot["supervisor_id"]).first()
        if not supervisor or not supervisor.user_id or supervisor.user_id == actor_user_id:
            logger.info("cancel dispatch: nobody to notify for leave_request_id=%s", snapshot.get("id"))
            return

        owner = db.query(User).filter(User.id == snapshot["user_id"]).first()
        fields = {
            "employee_name": _display_name(db, owner),
            "leave_type_name": snapshot["leave_type_name"],
            "start_date": snapshot.get("start_date"),
            "end_date": snapshot.get("end_date"),
            "occurred_on": snapshot.get("occurred_on"),
        }
        notify(
            db,
            recipient_user_id=supervisor.user_id,
            kind=NotificationType.LEAVE_REQUEST_CANCELLED,
            title="Leave Request Cancelled",
            message=(
                f"The {fields['leave_type_name']} request of {fields['employee_name']} "
                f"{_period_text(fields)} has been cancelled"
            ),
            sender_user_id=actor_user_id,
            priority=NotificationPriority.LOW,
            meta={"leave_request_id": snapshot.get("id"), "previous_status": snapshot.get("status")},
        )
        recipient_email = supervisor.user.email if supervisor.user else supervisor.email
        await email_service.send_cancelled_email(recipient_email, fields)
    except Exception:
        db.rollback()
        logger.exception("cancel dispatch failed: leave_request_id=%s", snapshot.get("id"))
    finally:
        db.close()
