"""
Token service - login, refresh token rotation and logout

Every refresh token is recorded by jti. Using a token rotates it: the row is
revoked and points at its replacement. Presenting an already revoked token is
treated as reuse and revokes every live token of that user.
"""
import logging
from typing import Dict, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from app.models.token import RefreshToken
from app.models.user import User
from app.utils.datetime_utils import ensure_utc, now_utc

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def authenticate(db: Session, email: str, password: str) -> User:
    """Check credentials; inactive accounts are refused with 403"""
    user = db.query(User).filter(User.email == email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        raise _unauthorized("Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    return user


def access_claims(user: User) -> Dict:
    # JWT 'sub' claim must be a string
    return {"sub": str(user.id), "role": user.role, **user.attributes}


def issue_tokens(db: Session, user: User) -> Tuple[Dict, RefreshToken]:
    """
    Create an access/refresh pair and record the refresh jti (flushes, no commit)
    """
    refresh = create_refresh_token(str(user.id))
    row = RefreshToken(jti=refresh["jti"], user_id=user.id, expires_at=refresh["expires_at"])
    db.add(row)
    db.flush()
    tokens = {
        "access_token": create_access_token(access_claims(user)),
        "refresh_token": refresh["token"],
        "token_type": "bearer",
    }
    return tokens, row


def login(db: Session, email: str, password: str) -> Dict:
    user = authenticate(db, email, password)
    tokens, _ = issue_tokens(db, user)
    db.commit()
    logger.info("login: user_id=%s", user.id)
    return tokens


def _load_refresh(db: Session, refresh_token: str) -> RefreshToken:
    try:
        payload = decode_token(refresh_token, expected_type=REFRESH_TOKEN_TYPE)
    except ValueError:
        raise _unauthorized("Invalid refresh token")
    row = db.query(RefreshToken).filter(RefreshToken.jti == payload.get("jti")).first()
    if not row or str(row.user_id) != payload.get("sub"):
        raise _unauthorized("Invalid refresh token")
    return row


def revoke_all(db: Session, user_id: int) -> int:
    revoked = (
        db.query(RefreshToken)
        .filter(RefreshToken.user_id == user_id, RefreshToken.revoked_at.is_(None))
        .update({RefreshToken.revoked_at: now_utc()}, synchronize_session=False)
    )
    db.commit()
    return revoked


def rotate(db: Session, refresh_token: str) -> Dict:
    """Exchange a live refresh token for a new pair"""
    row = _load_refresh(db, refresh_token)

    if row.revoked_at is not None:
        revoked = revoke_all(db, row.user_id)
        logger.warning(
            "refresh token reuse detected: user_id=%s jti=%s revoked=%s", row.user_id, row.jti, revoked
        )
        raise _unauthorized("Refresh token has been revoked")
    if ensure_utc(row.expires_at) <= now_utc():
        raise _unauthorized("Refresh token expired")

    user = db.query(User).filter(User.id == row.user_id).first()
    if not user or not user.is_active:
        raise _unauthorized("User not found or inactive")

    tokens, replacement = issue_tokens(db, user)
    row.revoked_at = now_utc()
    row.replaced_by = replacement.jti
    db.commit()
    logger.info("refresh token rotated: user_id=%s", user.id)
    return tokens


def revoke(db: Session, refresh_token: str, user: User) -> None:
    """Logout: revoke one refresh token belonging to the caller"""
    row = _load_refresh(db, refresh_token)
    if row.user_id != user.id:
        raise _unauthorized("Invalid refresh token")
    if row.revoked_at is None:
        row.revoked_at = now_utc()
        db.commit()
    logger.info("logout: user_id=%s", user.id)
