# app/schemas/user.py
from datetime import datetime

from sqlmodel import SQLModel


class UserRead(SQLModel):
    """
    Sanitized user identity returned to clients.

    Same shape whether the caller authenticated with the session
    cookie or a bearer token; the Google subject id is never exposed.
    """

    id: int
    username: str
    email: str | None
    display_name: str | None
    profile_picture: str | None
    tokens: int
    created_at: datetime
