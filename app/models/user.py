"""
User (login identity) model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from app.db.base import Base


class Role(str, enum.Enum):
    EMPLOYEE = "employee"
    APPROVER = "approver"
    ADMIN = "admin"


class ApprovalLevel(str, enum.Enum):
    LEVEL1 = "level1"
    LEVEL2 = "level2"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default=Role.EMPLOYEE.value)
    # Attributes carried in the token alongside the role
    department = Column(String, nullable=True)
    approval_level = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    employee = relationship("Employee", back_populates="user", uselist=False)

    @property
    def attributes(self) -> dict:
        attrs = {}
        if self.department:
            attrs["department"] = self.department
        if self.approval_level:
            attrs["approval_level"] = self.approval_level
        return attrs
