# app/schemas/payment.py
from datetime import datetime
from typing import Any

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel


class PackageRead(SQLModel):
    """One purchasable token package."""

    key: str
    price_id: str
    tokens: int
    amount: int
    currency: str


class CheckoutRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    price_id: str

    @field_validator("price_id")
    @classmethod
    def not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Price ID is required")
        return v


class CheckoutResponse(SQLModel):
    url: str


class BalanceRead(SQLModel):
    balance: int


class TransactionRead(SQLModel):
    id: int
    type: str
    reference_id: int | None
    tokens: int
    meta: dict[str, Any] | None
    created_at: datetime


class PaymentRead(SQLModel):
    id: int
    stripe_payment_id: str
    amount: int
    currency: str
    status: str
    created_at: datetime
