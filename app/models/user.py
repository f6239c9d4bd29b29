# app/models/user.py
from datetime import datetime, timezone

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Account created on first Google sign-in.

    Identity:
      - google_id: OAuth subject ("sub") from Google
      - username: generated as "user_<first 8 chars of google_id>"

    Billing:
      - tokens: current balance. Only the ledger service writes it, and
        every write is mirrored by a TokenTransaction row.
    """

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)

    username: str = Field(unique=True, index=True)

    email: str | None = Field(default=None, index=True)

    google_id: str | None = Field(
        default=None,
        unique=True,
        index=True,
        description="Google OAuth subject id",
    )

    display_name: str | None = None
    profile_picture: str | None = None

    tokens: int = Field(
        default=0,
        description="Token balance; never negative",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )


class UserSession(SQLModel, table=True):
    """
    Server-side browser session.

    The signed session cookie only carries `sid`; deleting the row
    logs the browser out everywhere the cookie was copied to.
    """

    __tablename__ = "sessions"

    sid: str = Field(primary_key=True)

    user_id: int = Field(foreign_key="users.id", index=True)

    data: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    expires_at: datetime = Field(index=True)
