# app/models/headshot.py
from datetime import datetime, timezone

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field


class HeadshotBase(SQLModel):
    """
    Columns shared by live and archived headshots.

    `meta` is stored in a column named "metadata"; the attribute name
    itself is reserved by SQLAlchemy's declarative base.
    """

    user_id: int = Field(foreign_key="users.id", index=True)
    model_id: int = Field(foreign_key="models.id", index=True)

    style: str
    # Durable local copy; empty until the download finished
    file_path: str | None = None
    # Provider URL (temporary, expires after about an hour)
    image_url: str
    replicate_prediction_id: str
    prompt: str | None = None

    favorite: bool = False

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class Headshot(HeadshotBase, table=True):
    __tablename__ = "headshots"

    id: int | None = Field(default=None, primary_key=True)

    meta: dict | None = Field(default=None, sa_column=Column("metadata", JSON))


class DeletedHeadshot(HeadshotBase, table=True):
    """
    Append-only archive written right before a Headshot row is removed.

    Audit trail only; there is no restore path.
    """

    __tablename__ = "deleted_headshots"

    id: int | None = Field(default=None, primary_key=True)

    headshot_id: int = Field(index=True, description="Id of the removed headshot")

    meta: dict | None = Field(default=None, sa_column=Column("metadata", JSON))

    deleted_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


class ExampleHeadshot(SQLModel, table=True):
    """Public gallery entry promoted from a real headshot."""

    __tablename__ = "example_headshots"

    id: int | None = Field(default=None, primary_key=True)

    headshot_id: int | None = Field(default=None, index=True)

    style: str
    file_path: str
    image_url: str
    prompt: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
