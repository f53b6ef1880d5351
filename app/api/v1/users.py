"""
User (login identity) endpoints - admin only
"""
from typing import List
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.core.deps import get_db, require_roles
from app.models.user import User, Role
from app.schemas.user import UserCreate, UserOut
from app.services import directory_service

router = APIRouter()


@router.post("", response_model=UserOut, status_code=201)
async def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    user = directory_service.create_user(
        db,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        approval_level=payload.approval_level.value if payload.approval_level else None,
        department=payload.department,
    )
    return UserOut.from_user(user)


@router.get("", response_model=List[UserOut])
async def list_users(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.ADMIN)),
):
    return [UserOut.from_user(u) for u in directory_service.list_users(db)]
