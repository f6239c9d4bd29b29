# app/repositories/payment_repo.py
from datetime import datetime

from sqlalchemy import func, update
from sqlmodel import Session, select

from app.models.payment import (
    Payment,
    TokenTransaction,
    PAYMENT_PENDING,
    PAYMENT_SUCCEEDED,
)


class PaymentRepository:
    """
    Data access layer for payments and the token transaction log.

    NOTE:
      - Nothing here commits except create(); crediting a payment and
        flipping its status is one transaction owned by the service.
    """

    # ---- Payments ----

    def get_by_stripe_id(self, session: Session, stripe_payment_id: str) -> Payment | None:
        stmt = select(Payment).where(Payment.stripe_payment_id == stripe_payment_id)
        return session.exec(stmt).first()

    def list_for_user(self, session: Session, user_id: int) -> list[Payment]:
        stmt = (
            select(Payment)
            .where(Payment.user_id == user_id)
            .order_by(Payment.created_at.desc())
        )
        return list(session.exec(stmt).all())

    def create(self, session: Session, payment: Payment) -> Payment:
        session.add(payment)
        session.commit()
        session.refresh(payment)
        return payment

    def mark_succeeded(self, session: Session, payment_id: int) -> bool:
        """
        Flip a payment to succeeded unless it already is.

        Returns True only for the call that performed the flip.
        """
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status != PAYMENT_SUCCEEDED)
            .values(status=PAYMENT_SUCCEEDED)
        )
        return session.exec(stmt).rowcount == 1

    def mark_pending_as(self, session: Session, payment_id: int, status: str) -> bool:
        stmt = (
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PAYMENT_PENDING)
            .values(status=status)
        )
        return session.exec(stmt).rowcount == 1

    def expire_pending_before(self, session: Session, cutoff: datetime, status: str) -> int:
        stmt = (
            update(Payment)
            .where(Payment.status == PAYMENT_PENDING, Payment.created_at < cutoff)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        return session.exec(stmt).rowcount

    # ---- Token transactions ----

    def add_transaction(self, session: Session, tx: TokenTransaction) -> TokenTransaction:
        session.add(tx)
        session.flush()
        return tx

    def list_transactions(
        self,
        session: Session,
        user_id: int,
        limit: int = 100,
    ) -> list[TokenTransaction]:
        stmt = (
            select(TokenTransaction)
            .where(TokenTransaction.user_id == user_id)
            .order_by(TokenTransaction.created_at.desc(), TokenTransaction.id.desc())
            .limit(limit)
        )
        return list(session.exec(stmt).all())

    def sum_deltas(self, session: Session, user_id: int) -> int:
        stmt = select(func.coalesce(func.sum(TokenTransaction.tokens), 0)).where(
            TokenTransaction.user_id == user_id
        )
        value = session.exec(stmt).one()
        return int(value or 0)

    def charged_amount(self, session: Session, type: str, reference_id: int) -> int:
        """Total tokens debited for (type, reference_id), as a positive number."""
        stmt = select(func.coalesce(func.sum(TokenTransaction.tokens), 0)).where(
            TokenTransaction.type == type,
            TokenTransaction.reference_id == reference_id,
            TokenTransaction.tokens < 0,
        )
        value = session.exec(stmt).one()
        return -int(value or 0)
