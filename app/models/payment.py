# app/models/payment.py
from datetime import datetime, timezone

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field

# pending | succeeded | failed | expired
PAYMENT_PENDING = "pending"
PAYMENT_SUCCEEDED = "succeeded"
PAYMENT_FAILED = "failed"
PAYMENT_EXPIRED = "expired"


class Payment(SQLModel, table=True):
    """
    One Stripe Checkout session.

    Only the Stripe webhook (or the stale-payment sweep) moves a row
    out of "pending".
    """

    __tablename__ = "payments"

    id: int | None = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="users.id", index=True)

    stripe_payment_id: str = Field(
        unique=True,
        index=True,
        description="Stripe Checkout session id",
    )

    amount: int = Field(description="Amount in the smallest currency unit")
    currency: str = "usd"

    status: str = Field(default=PAYMENT_PENDING, index=True)

    # {"tokens": 10, "priceId": "...", "sessionId": "..."}
    meta: dict | None = Field(default=None, sa_column=Column("metadata", JSON))

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


# Ledger entry types
TX_PURCHASE = "purchase"
TX_TRAIN_MODEL = "train_model"
TX_GENERATE_HEADSHOT = "generate_headshot"
TX_REFUND = "refund"


class TokenTransaction(SQLModel, table=True):
    """
    Append-only ledger entry.

    `tokens` is the signed delta: negative for consumption, positive for
    purchases and refunds. The sum over a user equals User.tokens.
    """

    __tablename__ = "token_transactions"

    id: int | None = Field(default=None, primary_key=True)

    user_id: int = Field(foreign_key="users.id", index=True)

    type: str = Field(index=True)

    # TrainedModel.id, Headshot.id or Payment.id depending on type
    reference_id: int | None = None

    tokens: int

    meta: dict | None = Field(default=None, sa_column=Column("metadata", JSON))

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
