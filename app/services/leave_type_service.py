"""
Leave Type Policy Registry
"""
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import Conflict, NotFound
from app.models.leave import LeaveType
from app.services import ledger_service

logger = logging.getLogger(__name__)


def list_leave_types(db: Session, include_inactive: bool = False) -> List[LeaveType]:
    query = db.query(LeaveType)
    if not include_inactive:
        query = query.filter(LeaveType.is_active == True)  # noqa: E712
    return query.order_by(LeaveType.name).all()


def get_leave_type(db: Session, leave_type_id: int) -> LeaveType:
    leave_type = db.query(LeaveType).filter(LeaveType.id == leave_type_id).first()
    if not leave_type:
        raise NotFound("Leave type not found")
    return leave_type


def get_leave_type_by_name(db: Session, name: str) -> Optional[LeaveType]:
    return db.query(LeaveType).filter(LeaveType.name == name).first()


def create_leave_type(db: Session, data: dict) -> LeaveType:
    """
    Create a leave type. When default_days > 0 every existing employee gets
    a ledger row for the current year with allocated = default_days.
    """
    if get_leave_type_by_name(db, data["name"]):
        raise Conflict("Leave type name already exists")

    leave_type = LeaveType(**data)
    db.add(leave_type)
    db.flush()
    ledger_service.allocate_default_for_leave_type(db, leave_type)
    db.commit()
    db.refresh(leave_type)
    logger.info("leave type created: id=%s name=%s", leave_type.id, leave_type.name)
    return leave_type


def update_leave_type(db: Session, leave_type_id: int, data: dict) -> LeaveType:
    leave_type = get_leave_type(db, leave_type_id)
    new_name = data.get("name")
    if new_name and new_name != leave_type.name:
        clash = get_leave_type_by_name(db, new_name)
        if clash:
            raise Conflict("Leave type name already exists")
    for field, value in data.items():
        setattr(leave_type, field, value)
    db.commit()
    db.refresh(leave_type)
    return leave_type


def deactivate_leave_type(db: Session, leave_type_id: int) -> LeaveType:
    """Soft delete; historical requests keep referencing the type"""
    leave_type = get_leave_type(db, leave_type_id)
    leave_type.is_active = False
    db.commit()
    db.refresh(leave_type)
    logger.info("leave type deactivated: id=%s", leave_type_id)
    return leave_type
