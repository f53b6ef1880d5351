"""
Directory service - users (login identities) and employee profiles

Leave requests are owned by a user id while balances and reporting lines
hang off the employee profile; the two id spaces are kept apart with
UserId / EmployeeId and joined only through employee_for().
"""
import logging
from typing import List, NewType, Optional

from sqlalchemy.orm import Session

from app.core.errors import Conflict, NotFound
from app.core.security import hash_password, validate_password
from app.models.employee import Employee
from app.models.user import User, Role

logger = logging.getLogger(__name__)

UserId = NewType("UserId", int)
EmployeeId = NewType("EmployeeId", int)


def employee_for(db: Session, user_id: UserId) -> Optional[Employee]:
    """Employee profile linked to a login identity"""
    return db.query(Employee).filter(Employee.user_id == user_id).first()


def require_employee_for(db: Session, user_id: UserId) -> Employee:
    employee = employee_for(db, user_id)
    if not employee:
        raise NotFound("Employee profile not found")
    return employee


def get_employee(db: Session, employee_id: EmployeeId) -> Employee:
    employee = db.query(Employee).filter(Employee.id == employee_id).first()
    if not employee:
        raise NotFound(f"Employee with id {employee_id} not found")
    return employee


def get_user(db: Session, user_id: UserId) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFound(f"User with id {user_id} not found")
    return user


def list_users(db: Session) -> List[User]:
    return db.query(User).order_by(User.email).all()


def create_user(
    db: Session,
    email: str,
    password: str,
    role: Role = Role.EMPLOYEE,
    approval_level: Optional[str] = None,
    department: Optional[str] = None,
) -> User:
    email = email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise Conflict("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(validate_password(password)),
        role=Role(role).value,
        approval_level=approval_level,
        department=department,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user created: id=%s role=%s", user.id, user.role)
    return user


def list_employees(
    db: Session,
    department: Optional[str] = None,
    manager_id: Optional[EmployeeId] = None,
) -> List[Employee]:
    query = db.query(Employee)
    if department:
        query = query.filter(Employee.department == department)
    if manager_id:
        query = query.filter(Employee.manager_id == manager_id)
    return query.order_by(Employee.name).all()


def _validate_links(db: Session, user_id: Optional[int], manager_id: Optional[int], employee_id: Optional[int] = None) -> None:
    if user_id is not None:
        get_user(db, user_id)
        linked = employee_for(db, user_id)
        if linked and linked.id != employee_id:
            raise Conflict("User is already linked to another employee profile")
    if manager_id is not None:
        if employee_id is not None and manager_id == employee_id:
            raise Conflict("Employee cannot be their own manager")
        get_employee(db, manager_id)


def create_employee(db: Session, data: dict) -> Employee:
    """Create a profile and give it the default balances for the current year"""
    from app.services import ledger_service

    if db.query(Employee).filter(Employee.email == data["email"]).first():
        raise Conflict("Employee email already exists")
    _validate_links(db, data.get("user_id"), data.get("manager_id"))

    employee = Employee(**data)
    db.add(employee)
    db.flush()
    created = ledger_service.allocate_defaults_for_employee(db, employee.id)
    db.commit()
    db.refresh(employee)
    logger.info("employee created: id=%s default balances=%s", employee.id, created)
    return employee


def update_employee(db: Session, employee_id: EmployeeId, data: dict) -> Employee:
    employee = get_employee(db, employee_id)
    _validate_links(db, data.get("user_id"), data.get("manager_id"), employee_id=employee.id)
    for field, value in data.items():
        setattr(employee, field, value)
    db.commit()
    db.refresh(employee)
    return employee
