"""
Leave models
"""
from sqlalchemy import (
    Column,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    Numeric,
    Boolean,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import text
import enum
from app.db.base import Base


class LeaveStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    REPORTED = "reported"
    APPROVED_LVL1 = "approved_lvl1"
    APPROVED_FINAL = "approved_final"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ApprovalDecision(str, enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalLevelName(str, enum.Enum):
    LEVEL1 = "level1"
    LEVEL2 = "level2"


# Statuses that hold dates on the calendar (overlap check)
ACTIVE_LEAVE_STATUSES = (
    LeaveStatus.SUBMITTED,
    LeaveStatus.APPROVED_LVL1,
    LeaveStatus.APPROVED_FINAL,
)

# Statuses in which the requester may still edit the request
EDITABLE_LEAVE_STATUSES = (LeaveStatus.SUBMITTED, LeaveStatus.REPORTED)


def _days_column(**kwargs):
    return Column(Numeric(6, 2, asdecimal=False), **kwargs)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False, index=True)
    default_days = _days_column(nullable=False, default=0)
    carry_over_rules = Column(Text, nullable=True)
    max_consecutive_days = Column(Integer, nullable=True)
    eligibility = Column(Text, nullable=True)
    # Policy flags
    requires_approval = Column(Boolean, nullable=False, default=True)
    requires_balance = Column(Boolean, nullable=False, default=False)
    requires_dates = Column(Boolean, nullable=False, default=False)
    allow_future_applications = Column(Boolean, nullable=False, default=False)
    is_open_ended_allowed = Column(Boolean, nullable=False, default=False)
    max_retroactive_days = Column(Integer, nullable=True, default=10)
    requires_attachment = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )


class LeaveBalance(Base):
    """
    Ledger row: one per (employee_id, leave_type_id, year).
    remaining = allocated + carry_over - used - pending (derived, never stored).
    """
    __tablename__ = "leave_balances"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    year = Column(Integer, nullable=False, index=True)
    allocated = _days_column(nullable=False, default=0)
    used = _days_column(nullable=False, default=0)
    pending = _days_column(nullable=False, default=0)
    carry_over = _days_column(nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    # Relationships
    employee = relationship("Employee", backref="leave_balances")
    leave_type = relationship("LeaveType")

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="uq_leave_balances_employee_type_year"),
    )

    @property
    def remaining(self) -> float:
        return (
            float(self.allocated or 0)
            + float(self.carry_over or 0)
            - float(self.used or 0)
            - float(self.pending or 0)
        )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    # Requesting login identity (users.id), not the employee profile id
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = Column(Integer, ForeignKey("leave_types.id"), nullable=False, index=True)
    # Dated flow
    start_date = Column(Date, nullable=True, index=True)
    end_date = Column(Date, nullable=True, index=True)
    total_days = _days_column(nullable=True)
    # Reported (non-dated) flow
    occurred_on = Column(Date, nullable=True, index=True)
    is_open_ended = Column(Boolean, nullable=False, default=False)
    closed_on = Column(Date, nullable=True)
    duration_days = _days_column(nullable=True)
    reported_on = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)

    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default=LeaveStatus.SUBMITTED.value, index=True)
    supervisor_id = Column(Integer, ForeignKey("employees.id"), nullable=True, index=True)
    documents = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=text("CURRENT_TIMESTAMP"), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    # Relationships
    user = relationship("User", foreign_keys=[user_id])
    leave_type = relationship("LeaveType")
    supervisor = relationship("Employee", foreign_keys=[supervisor_id])
    approval_history = relationship(
        "LeaveApprovalEntry",
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by="LeaveApprovalEntry.id",
    )

    __table_args__ = (
        Index("ix_leave_requests_user_status", "user_id", "status"),
        Index("ix_leave_requests_dates", "start_date", "end_date"),
    )

    @property
    def is_dated(self) -> bool:
        return self.start_date is not None


class LeaveApprovalEntry(Base):
    """Append-only approval history for a leave request"""
    __tablename__ = "leave_approval_history"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(
        Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    approver_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    level = Column(String(10), nullable=False)
    decision = Column(String(10), nullable=False)
    comment = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    # Relationships
    leave_request = relationship("LeaveRequest", back_populates="approval_history")
    approver = relationship("User", foreign_keys=[approver_user_id])
