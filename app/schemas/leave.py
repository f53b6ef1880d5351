"""
Time-off schemas - leave types, balances and leave requests
"""
from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, field_serializer, model_validator, HttpUrl
from app.models.leave import LeaveStatus, ApprovalDecision
from app.schemas.employee import EmployeeRef
from app.utils.datetime_utils import iso_8601_utc


# --- Leave types ---


class LeaveTypeBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Leave type name (unique)")
    default_days: float = Field(0, ge=0, description="Days allocated to every employee per year")
    carry_over_rules: Optional[str] = Field(None, description="Free-text carry over policy")
    max_consecutive_days: Optional[int] = Field(None, gt=0, description="Cap on working days per request")
    eligibility: Optional[str] = Field(None, description="Free-text eligibility policy")
    requires_approval: bool = True
    requires_balance: bool = False
    requires_dates: bool = Field(False, description="Dated flow (start/end) instead of reported flow")
    allow_future_applications: bool = Field(
        False, description="True: start date may not be in the past. False: start date may not be in the future"
    )
    is_open_ended_allowed: bool = False
    max_retroactive_days: Optional[int] = Field(10, ge=0, description="Reporting window for reported leave")
    requires_attachment: bool = False


class LeaveTypeCreate(LeaveTypeBase):
    """Schema for creating a leave type"""


class LeaveTypeUpdate(BaseModel):
    """Schema for partially updating a leave type"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    default_days: Optional[float] = Field(None, ge=0)
    carry_over_rules: Optional[str] = None
    max_consecutive_days: Optional[int] = Field(None, gt=0)
    eligibility: Optional[str] = None
    requires_approval: Optional[bool] = None
    requires_balance: Optional[bool] = None
    requires_dates: Optional[bool] = None
    allow_future_applications: Optional[bool] = None
    is_open_ended_allowed: Optional[bool] = None
    max_retroactive_days: Optional[int] = Field(None, ge=0)
    requires_attachment: Optional[bool] = None
    is_active: Optional[bool] = None


class LeaveTypeOut(LeaveTypeBase):
    """Schema for leave type output"""
    id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class LeaveTypeRef(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


# --- Balances ---


class BalanceOut(BaseModel):
    """One ledger row; remaining = allocated + carry_over - used - pending"""
    id: int
    employee_id: int
    leave_type_id: int
    leave_type: Optional[LeaveTypeRef] = None
    year: int
    allocated: float
    used: float
    pending: float
    carry_over: float
    remaining: float

    model_config = ConfigDict(from_attributes=True)


class BalanceListResponse(BaseModel):
    employee_id: int
    year: int
    items: List[BalanceOut]


class AllocationItem(BaseModel):
    employee_id: int
    leave_type_id: int
    allocated: float = Field(..., ge=0)
    carry_over: float = Field(0, ge=0)


class AllocateRequest(AllocationItem):
    """Schema for allocating one balance row"""
    year: int = Field(..., ge=2000, le=2100)


class BulkAllocateRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    allocations: List[AllocationItem] = Field(..., min_length=1)


class BulkAllocateResult(BaseModel):
    success: bool
    allocation: AllocationItem
    balance: Optional[BalanceOut] = None
    error: Optional[str] = None


class BulkAllocateResponse(BaseModel):
    succeeded: int
    failed: int
    results: List[BulkAllocateResult]


# --- Leave requests ---


class LeaveRequestCreate(BaseModel):
    """
    Schema for submitting a leave request.

    Dated leave types take start_date/end_date; reported leave types take
    occurred_on (and optionally is_open_ended / duration_days).
    """
    leave_type_id: int = Field(..., description="Leave type ID")
    reason: str = Field(..., min_length=1, description="Reason for leave")
    start_date: Optional[date] = Field(None, description="First day (dated leave)")
    end_date: Optional[date] = Field(None, description="Last day (dated leave)")
    occurred_on: Optional[date] = Field(None, description="Day the absence started (reported leave)")
    is_open_ended: bool = Field(False, description="Absence has no known end yet")
    duration_days: Optional[float] = Field(None, gt=0, description="Explicit duration for reported leave")
    supervisor_id: Optional[int] = Field(None, description="Chosen supervisor (employee id); defaults to manager")
    documents: Optional[List[HttpUrl]] = Field(None, description="Supporting document URLs")

    @model_validator(mode="after")
    def check_shape(self) -> "LeaveRequestCreate":
        if (self.start_date is None) != (self.end_date is None):
            raise ValueError("start_date and end_date must be given together")
        return self


class LeaveRequestUpdate(BaseModel):
    """Schema for editing a submitted/reported request; only sent fields change"""
    reason: Optional[str] = Field(None, min_length=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    occurred_on: Optional[date] = None
    is_open_ended: Optional[bool] = None
    duration_days: Optional[float] = Field(None, gt=0)
    supervisor_id: Optional[int] = None
    documents: Optional[List[HttpUrl]] = None


class ApprovalActionRequest(BaseModel):
    """Schema for approving or rejecting at the current level"""
    status: ApprovalDecision = Field(..., description="approved or rejected")
    comment: Optional[str] = Field(None, max_length=1000, description="Optional comment")


class CloseOpenEndedRequest(BaseModel):
    closed_on: date = Field(..., description="Last day of the absence")


class ApprovalHistoryOut(BaseModel):
    approver_user_id: int
    level: str
    decision: str
    comment: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("timestamp")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)


class LeaveRequestOut(BaseModel):
    """Schema for leave request output"""
    id: int
    user_id: int
    employee: Optional[EmployeeRef] = None
    leave_type_id: int
    leave_type: Optional[LeaveTypeRef] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_days: Optional[float] = None
    occurred_on: Optional[date] = None
    is_open_ended: bool = False
    closed_on: Optional[date] = None
    duration_days: Optional[float] = None
    reported_on: Optional[datetime] = None
    reason: str
    status: LeaveStatus
    supervisor_id: Optional[int] = None
    supervisor: Optional[EmployeeRef] = None
    documents: Optional[List[str]] = None
    approval_history: List[ApprovalHistoryOut] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("reported_on", "created_at", "updated_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)

    @classmethod
    def from_request(cls, leave_request) -> "LeaveRequestOut":
        """Populate the requester summary through the user -> employee link"""
        out = cls.model_validate(leave_request)
        profile = leave_request.user.employee if leave_request.user else None
        if profile is not None:
            out.employee = EmployeeRef.model_validate(profile)
        return out


class LeaveRequestListResponse(BaseModel):
    items: List[LeaveRequestOut]
    total: int
