"""
Employee profile endpoints
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user, require_roles
from app.models.user import User, Role
from app.schemas.employee import EmployeeCreate, EmployeeUpdate, EmployeeOut
from app.services import directory_service

router = APIRouter()


@router.post("", response_model=EmployeeOut, status_code=201)
async def create_employee(
    payload: EmployeeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    """
    Create an employee profile (admin only)

    The new employee receives default balances for every active leave type
    with default_days > 0.
    """
    return directory_service.create_employee(db, payload.model_dump())


@router.get("", response_model=List[EmployeeOut])
async def list_employees(
    department: Optional[str] = Query(None, description="Filter by department"),
    manager_id: Optional[int] = Query(None, description="Filter by direct manager"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN, Role.APPROVER)),
):
    return directory_service.list_employees(db, department=department, manager_id=manager_id)


@router.get("/me", response_model=EmployeeOut)
async def my_profile(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return directory_service.require_employee_for(db, current_user.id)


@router.get("/{employee_id}", response_model=EmployeeOut)
async def get_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return directory_service.get_employee(db, employee_id)


@router.put("/{employee_id}", response_model=EmployeeOut)
async def update_employee(
    employee_id: int,
    payload: EmployeeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    return directory_service.update_employee(db, employee_id, payload.model_dump(exclude_unset=True))
