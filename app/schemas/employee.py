"""
Employee schemas
"""
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_serializer
from app.utils.datetime_utils import iso_8601_utc


class EmployeeCreate(BaseModel):
    """Schema for creating an employee profile"""
    name: str = Field(..., min_length=1, description="Employee name")
    email: EmailStr = Field(..., description="Work email (unique)")
    phone: Optional[str] = Field(None, description="Phone number")
    department: Optional[str] = Field(None, description="Department name")
    position: Optional[str] = Field(None, description="Job title")
    hire_date: Optional[date] = Field(None, description="Hire date")
    manager_id: Optional[int] = Field(None, description="Direct manager (employee id)")
    user_id: Optional[int] = Field(None, description="Linked login identity (user id)")


class EmployeeUpdate(BaseModel):
    """Schema for updating an employee profile"""
    name: Optional[str] = Field(None, min_length=1, description="Employee name")
    phone: Optional[str] = Field(None, description="Phone number")
    department: Optional[str] = Field(None, description="Department name")
    position: Optional[str] = Field(None, description="Job title")
    hire_date: Optional[date] = Field(None, description="Hire date")
    manager_id: Optional[int] = Field(None, description="Direct manager (employee id)")
    user_id: Optional[int] = Field(None, description="Linked login identity (user id)")


class EmployeeRef(BaseModel):
    """Minimal employee summary (supervisor, requester)"""
    id: int
    name: str
    email: str
    department: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class EmployeeOut(BaseModel):
    """Schema for employee output"""
    id: int
    user_id: Optional[int] = None
    name: str
    email: str
    phone: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None
    hire_date: Optional[date] = None
    manager_id: Optional[int] = None
    manager: Optional[EmployeeRef] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", "updated_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)
