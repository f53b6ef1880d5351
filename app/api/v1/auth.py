"""
Authentication endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.core.deps import get_db, get_current_user
from app.models.user import User
from app.schemas.auth import LoginRequest, RefreshRequest, TokenResponse
from app.schemas.user import UserOut
from app.services import token_service

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Authenticate with email and password

    Returns a short-lived access token carrying the role and attributes, and
    a refresh token that can be exchanged once at /auth/refresh.
    """
    return token_service.login(db, login_data.email, login_data.password)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    payload: RefreshRequest,
    db: Session = Depends(get_db)
):
    """
    Rotate a refresh token

    The presented token is revoked and replaced. Presenting a token that was
    already rotated revokes every refresh token of the user.
    """
    return token_service.rotate(db, payload.refresh_token)


@router.post("/logout")
async def logout(
    payload: RefreshRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    token_service.revoke(db, payload.refresh_token, current_user)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserOut)
async def me(current_user: User = Depends(get_current_user)):
    """Current user with role, attributes and linked employee id"""
    return UserOut.from_user(current_user)
