# app/services/ledger_service.py
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from sqlmodel import Session

from app.core.errors import InsufficientTokens, NotFound
from app.models.payment import TokenTransaction, TX_REFUND
from app.repositories.payment_repo import PaymentRepository
from app.repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Token balance + append-only transaction log.

    Rules:
      - Every balance change writes exactly one TokenTransaction in the
        same transaction, so User.tokens always equals the sum of deltas.
      - Debits are a single conditional UPDATE (`tokens >= amount`), so
        concurrent requests cannot overdraw and a rejected debit changes
        nothing.
      - deduct()/add() commit by default; pass commit=False to fold them
        into a larger transaction owned by the caller.
    """

    def __init__(self, user_repo: UserRepository, payment_repo: PaymentRepository):
        self.user_repo = user_repo
        self.payment_repo = payment_repo

    # ----- Reads -----

    def balance(self, session: Session, user_id: int) -> int:
        tokens = self.user_repo.get_tokens(session, user_id)
        if tokens is None:
            raise NotFound("User not found")
        return int(tokens)

    def check_balance(self, session: Session, user_id: int, required: int) -> int:
        """
        Admission gate before a costly operation.

        Returns the current balance, or raises InsufficientTokens (402).
        """
        current = self.user_repo.get_tokens(session, user_id) or 0
        if current < required:
            raise InsufficientTokens(required=required, current=current)
        return current

    def history(self, session: Session, user_id: int, limit: int = 100) -> list[TokenTransaction]:
        return self.payment_repo.list_transactions(session, user_id, limit=limit)

    def reconcile(self, session: Session, user_id: int) -> tuple[int, int]:
        """Return (User.tokens, sum of ledger deltas); equal when healthy."""
        return self.balance(session, user_id), self.payment_repo.sum_deltas(session, user_id)

    # ----- Mutations -----

    def deduct(
        self,
        session: Session,
        user_id: int,
        amount: int,
        type: str,
        reference_id: int | None = None,
        metadata: dict[str, Any] | None = None,
        *,
        commit: bool = True,
    ) -> TokenTransaction:
        self._check_amount(amount)

        if not self.user_repo.debit_tokens(session, user_id, amount):
            current = self.user_repo.get_tokens(session, user_id)
            session.rollback()
            if current is None:
                raise NotFound("User not found")
            raise InsufficientTokens(required=amount, current=current)

        tx = self.payment_repo.add_transaction(
            session,
            TokenTransaction(
                user_id=user_id,
                type=type,
                reference_id=reference_id,
                tokens=-amount,
                meta=metadata,
            ),
        )
        if commit:
            session.commit()
        logger.info("Deducted %s tokens from user %s (%s)", amount, user_id, type)
        return tx

    def add(
        self,
        session: Session,
        user_id: int,
        amount: int,
        type: str,
        reference_id: int | None = None,
        metadata: dict[str, Any] | None = None,
        *,
        commit: bool = True,
    ) -> TokenTransaction:
        self._check_amount(amount)

        if not self.user_repo.credit_tokens(session, user_id, amount):
            session.rollback()
            raise NotFound("User not found")

        tx = self.payment_repo.add_transaction(
            session,
            TokenTransaction(
                user_id=user_id,
                type=type,
                reference_id=reference_id,
                tokens=amount,
                meta=metadata,
            ),
        )
        if commit:
            session.commit()
        logger.info("Added %s tokens to user %s (%s)", amount, user_id, type)
        return tx

    # ----- Compensation -----

    def refund(
        self,
        session: Session,
        user_id: int,
        amount: int,
        reference_id: int | None = None,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TokenTransaction:
        """
        Credit back a previous charge.

        Rolls back whatever half-finished work is pending in the session
        first, so the refund commits cleanly after a failed operation.
        """
        session.rollback()
        meta = dict(metadata or {})
        if reason:
            meta["reason"] = reason
        return self.add(session, user_id, amount, TX_REFUND, reference_id, meta or None)

    @contextmanager
    def charged(
        self,
        session: Session,
        user_id: int,
        amount: int,
        type: str,
        reference_id: int | None = None,
        metadata: dict[str, Any] | None = None,
        refund_reason: str | None = None,
    ) -> Iterator[TokenTransaction]:
        """
        Charge, run the block, refund if the block raises.

            with ledger.charged(session, user.id, 1, TX_GENERATE_HEADSHOT):
                ...call the provider...

        The original exception is re-raised after the refund.
        """
        tx = self.deduct(session, user_id, amount, type, reference_id, metadata)
        try:
            yield tx
        except Exception:
            logger.warning("Operation %s failed for user %s; refunding %s tokens", type, user_id, amount)
            self.refund(
                session,
                user_id,
                amount,
                reference_id=reference_id,
                reason=refund_reason or f"{type}_failed",
            )
            raise

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or amount <= 0:
            raise ValueError(f"Token amount must be a positive integer, got {amount!r}")
