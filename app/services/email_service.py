"""
Email service - leave workflow emails over SMTP via fastapi-mail

With MAIL_SUPPRESS_SEND the message is built but never delivered, which is
what local runs and the test suite use.
"""
import html
import logging
from typing import Optional

from fastapi_mail import ConnectionConfig, FastMail, MessageSchema, MessageType
from pydantic import SecretStr

from app.core.config import settings

logger = logging.getLogger(__name__)


def _connection_config() -> ConnectionConfig:
    return ConnectionConfig(
        MAIL_USERNAME=settings.MAIL_USERNAME,
        MAIL_PASSWORD=SecretStr(settings.MAIL_PASSWORD),
        MAIL_FROM=settings.MAIL_FROM,
        MAIL_PORT=settings.MAIL_PORT,
        MAIL_SERVER=settings.MAIL_SERVER,
        MAIL_STARTTLS=settings.MAIL_STARTTLS,
        MAIL_SSL_TLS=settings.MAIL_SSL_TLS,
        USE_CREDENTIALS=bool(settings.MAIL_USERNAME),
        VALIDATE_CERTS=True,
        SUPPRESS_SEND=1 if settings.MAIL_SUPPRESS_SEND else 0,
    )


async def send_email(to_email: str, subject: str, body: str, subtype: str = "html") -> bool:
    """
    Send one email. Never raises; failures are logged.

    Returns:
        True if the message was handed to the mail backend
    """
    try:
        message = MessageSchema(
            subject=subject,
            recipients=[to_email],
            body=body,
            subtype=MessageType.html if subtype == "html" else MessageType.plain,
        )
        await FastMail(_connection_config()).send_message(message)
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)
        return False
    logger.info("Email sent to %s (suppressed=%s): %s", to_email, settings.MAIL_SUPPRESS_SEND, subject)
    return True


def _escaped(fields: dict) -> dict:
    """HTML-escape user supplied text before it goes into a message body"""
    return {key: html.escape(value) if isinstance(value, str) else value for key, value in fields.items()}


def _leave_period(fields: dict) -> str:
    if fields.get("start_date"):
        return f"{fields['start_date']} to {fields['end_date']}"
    return f"occurred on {fields.get('occurred_on')}"


async def send_submitted_email(to_email: str, fields: dict) -> bool:
    """Tell the supervisor a request is waiting for them"""
    link = f"{settings.FRONTEND_URL}/time-off/requests/{fields['leave_request_id']}"
    subject = f"New leave request from {fields['employee_name']}"
    fields = _escaped(fields)
    body = f"""
    <p>{fields['employee_name']} has submitted a {fields['leave_type_name']} request
    ({_leave_period(fields)}).</p>
    <p>Reason: {fields.get('reason') or '-'}</p>
    <p><a href="{link}">Review the request</a></p>
    """
    return await send_email(to_email, subject, body)


async def send_status_change_email(to_email: str, fields: dict) -> bool:
    """Tell the employee their request was approved or rejected"""
    link = f"{settings.FRONTEND_URL}/time-off/requests/{fields['leave_request_id']}"
    decision = fields["decision"].capitalize()
    subject = f"Leave request {decision}"
    fields = _escaped(fields)
    comment: Optional[str] = fields.get("comment")
    body = f"""
    <p>Your {fields['leave_type_name']} request ({_leave_period(fields)}) has been
    {fields['decision']} ({fields['level_label']}) by {fields['approver_name']}.</p>
    {f"<p>Comment: {comment}</p>" if comment else ""}
    <p><a href="{link}">View the request</a></p>
    """
    return await send_email(to_email, subject, body)


async def send_cancelled_email(to_email: str, fields: dict) -> bool:
    subject = f"Leave request cancelled by {fields['employee_name']}"
    fields = _escaped(fields)
    body = f"""
    <p>The {fields['leave_type_name']} request ({_leave_period(fields)}) from
    {fields['employee_name']} has been cancelled.</p>
    """
    return await send_email(to_email, subject, body)
