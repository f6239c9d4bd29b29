# app/schemas/photo.py
from datetime import datetime

from sqlmodel import SQLModel


class PhotoRead(SQLModel):
    """Uploaded photo as seen by its owner (no storage path)."""

    id: int
    user_id: int
    filename: str
    file_size: int
    uploaded_at: datetime
