# app/schemas/training.py
from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

ModelStatus = Literal["training", "completed", "failed", "canceled"]


class TrainRequest(SQLModel):
    """
    Payload for starting a training run.

    photo_ids must reference photos owned by the caller.
    """

    model_config = ConfigDict(extra="forbid")

    photo_ids: list[int] = Field(min_length=1)

    @field_validator("photo_ids")
    @classmethod
    def dedupe(cls, v: list[int]) -> list[int]:
        return list(dict.fromkeys(v))


class TrainResponse(SQLModel):
    id: int
    status: ModelStatus
    message: str


class ModelRead(SQLModel):
    id: int
    user_id: int
    replicate_model_id: str
    replicate_version_id: str | None
    replicate_training_id: str | None
    status: ModelStatus
    progress: int
    error: str | None
    created_at: datetime
    completed_at: datetime | None


class ModelStatusRead(ModelRead):
    """ModelRead plus a human-readable status line for the UI."""

    message: str | None = None


class TrainingWebhookPayload(SQLModel):
    """
    Replicate training webhook body.

    Only the fields we act on are declared; Replicate sends many more.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    status: str
    logs: str | None = None
    webhook: str | None = None
    output: Any = None
    error: Any = None
