# app/schemas/auth.py
from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel

from app.schemas.user import UserRead


class AuthStatus(SQLModel):
    is_authenticated: bool
    user: UserRead | None = None


class MobileGoogleLogin(SQLModel):
    """Mobile sign-in: the app hands us the Google ID token it obtained."""

    model_config = ConfigDict(extra="forbid")

    id_token: str

    @field_validator("id_token")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("id_token cannot be empty")
        return v


class RefreshRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    refresh_token: str


class TokenPair(SQLModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead
