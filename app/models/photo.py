# app/models/photo.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class UploadedPhoto(SQLModel, table=True):
    """
    One user-submitted training image.

    `path` is the absolute location on local disk, under
    DATA_DIR/uploads/<user_id>/.
    """

    __tablename__ = "uploaded_photos"

    id: int | None = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="users.id", index=True)

    filename: str = Field(description="Original client filename")
    file_size: int = Field(ge=0, description="Size in bytes")
    path: str = Field(description="Storage path on local disk")

    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
