from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, field_validator
import re

USER_NAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,50}$")


# ─── Request Schemas ──────────────────────────────────────────────────────────
class SignupRequest(BaseModel):
    userName: str
    email:    EmailStr
    password: str

    @field_validator("userName")
    @classmethod
    def user_name_format(cls, v: str) -> str:
        v = v.strip()
        if not USER_NAME_RE.match(v):
            raise ValueError("userName must be 3-50 characters: letters, digits, '_', '.' or '-'")
        return v

    @field_validator("password")
    @classmethod
    def password_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class LoginRequest(BaseModel):
    userName: str
    password: str


class RefreshTokenRequest(BaseModel):
    """
    Fallback for clients that cannot send the refresh cookie.
    Left untyped: a non-string value counts as no token rather than a 422.
    """
    refreshToken: Any = None


# ─── Response Schemas ─────────────────────────────────────────────────────────
class UserOut(BaseModel):
    id:        int
    userName:  str
    email:     str
    isActive:  bool
    createdAt: datetime | None = None
    lastLogin: datetime | None = None

    model_config = {"from_attributes": True}


class SessionResponse(BaseModel):
    user:         UserOut
    accessToken:  str
    refreshToken: str
    tokenType:    str = "Bearer"
