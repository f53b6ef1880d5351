"""
User schemas
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_serializer, field_validator
from app.core.security import validate_password
from app.models.user import Role, ApprovalLevel
from app.utils.datetime_utils import iso_8601_utc


class UserCreate(BaseModel):
    """Schema for creating a login identity (admin only)"""
    email: EmailStr = Field(..., description="Login email (unique)")
    password: str = Field(..., min_length=6, max_length=72, description="Initial password")
    role: Role = Field(default=Role.EMPLOYEE, description="employee, approver or admin")
    approval_level: Optional[ApprovalLevel] = Field(None, description="Lets a non-approver act as level 1 supervisor")
    department: Optional[str] = Field(None, description="Department attribute carried in the token")

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class UserOut(BaseModel):
    """Schema for user output"""
    id: int
    email: str
    role: Role
    approval_level: Optional[str] = None
    department: Optional[str] = None
    is_active: bool
    employee_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)

    @classmethod
    def from_user(cls, user) -> "UserOut":
        out = cls.model_validate(user)
        out.employee_id = user.employee.id if user.employee else None
        return out
