"""
Authentication schemas
"""
from typing import Optional
from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Login request schema"""
    email: str = Field(..., min_length=3, description="Account email")
    password: str = Field(..., min_length=1, description="Password")


class RefreshRequest(BaseModel):
    """Refresh / logout request schema"""
    refresh_token: str = Field(..., description="Refresh token issued at login or last refresh")


class TokenResponse(BaseModel):
    """Token response schema"""
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
