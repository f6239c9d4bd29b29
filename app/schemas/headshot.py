# app/schemas/headshot.py
from datetime import datetime
from typing import Any, Literal

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel

Gender = Literal["male", "female"]


class GenerateRequest(SQLModel):
    """
    Payload for generating one headshot.

    - style: key of the style table (unknown styles fall back to Corporate)
    - prompt: optional free text appended to the style template
    """

    model_config = ConfigDict(extra="forbid")

    model_id: int
    style: str
    gender: Gender
    prompt: str | None = None

    @field_validator("style")
    @classmethod
    def style_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("style cannot be empty")
        return v

    @field_validator("prompt")
    @classmethod
    def normalize_prompt(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class HeadshotRead(SQLModel):
    id: int
    user_id: int
    model_id: int
    style: str
    file_path: str | None
    image_url: str
    replicate_prediction_id: str
    prompt: str | None
    meta: dict[str, Any] | None
    favorite: bool
    created_at: datetime


class ExampleRead(SQLModel):
    id: int
    headshot_id: int | None
    style: str
    image_url: str
    prompt: str | None
    created_at: datetime
