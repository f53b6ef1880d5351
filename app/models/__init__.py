"""
Database models
"""
from app.models.user import User, Role, ApprovalLevel
from app.models.employee import Employee
from app.models.leave import (
    LeaveType,
    LeaveBalance,
    LeaveRequest,
    LeaveApprovalEntry,
    LeaveStatus,
    ApprovalDecision,
    ApprovalLevelName,
    ACTIVE_LEAVE_STATUSES,
    EDITABLE_LEAVE_STATUSES,
)
from app.models.notification import Notification, NotificationType, NotificationPriority
from app.models.token import RefreshToken

__all__ = [
    "User",
    "Role",
    "ApprovalLevel",
    "Employee",
    "LeaveType",
    "LeaveBalance",
    "LeaveRequest",
    "LeaveApprovalEntry",
    "LeaveStatus",
    "ApprovalDecision",
    "ApprovalLevelName",
    "ACTIVE_LEAVE_STATUSES",
    "EDITABLE_LEAVE_STATUSES",
    "Notification",
    "NotificationType",
    "NotificationPriority",
    "RefreshToken",
]
