# app/models/training.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field

# Lifecycle: training -> completed | failed | canceled
STATUS_TRAINING = "training"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELED = "canceled"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED, STATUS_CANCELED})


class TrainedModel(SQLModel, table=True):
    """
    One training job on Replicate and the personalized model it produces.

    Rows are never deleted; they accumulate as the user's training history.
    """

    __tablename__ = "models"

    id: int | None = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="users.id", index=True)

    # Destination model name on Replicate (owner is configured globally)
    replicate_model_id: str
    replicate_training_id: str | None = Field(default=None, index=True)
    # Filled in once training succeeds
    replicate_version_id: str | None = None

    # training | completed | failed | canceled
    status: str = Field(default=STATUS_TRAINING, index=True)

    progress: int = Field(default=0, ge=0, le=100)
    error: str | None = None

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    completed_at: datetime | None = None
