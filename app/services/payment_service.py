# app/services/payment_service.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import stripe
from sqlmodel import Session

from app.core.config import Settings
from app.core.errors import UpstreamProviderError, ValidationError
from app.core.stripe_client import PaymentClient, PriceTable, TokenPackage
from app.models.payment import (
    Payment,
    TokenTransaction,
    PAYMENT_EXPIRED,
    PAYMENT_FAILED,
    PAYMENT_PENDING,
    TX_PURCHASE,
)
from app.models.user import User
from app.repositories.payment_repo import PaymentRepository
from app.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

EVENT_COMPLETED = "checkout.session.completed"
EVENT_EXPIRED = "checkout.session.expired"
EVENT_ASYNC_FAILED = "checkout.session.async_payment_failed"


class PaymentService:
    """
    Token purchases through Stripe Checkout.

    Flow:
      1. create_checkout() opens a hosted checkout and records a pending Payment
         keyed by the checkout session id.
      2. Stripe calls the webhook; handle_webhook() verifies the signature
         and credits the tokens exactly once.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        ledger: LedgerService,
        client: PaymentClient,
        prices: PriceTable,
        settings: Settings,
    ):
        self.payment_repo = payment_repo
        self.ledger = ledger
        self.client = client
        self.prices = prices
        self.settings = settings

    # ----- Reads -----

    def list_packages(self) -> list[TokenPackage]:
        return self.prices.packages()

    def balance(self, session: Session, user: User) -> int:
        return self.ledger.balance(session, user.id)

    def transactions(self, session: Session, user: User, limit: int = 100) -> list[TokenTransaction]:
        return self.ledger.history(session, user.id, limit=limit)

    def payments(self, session: Session, user: User) -> list[Payment]:
        return self.payment_repo.list_for_user(session, user.id)

    # ----- Checkout -----

    def create_checkout(self, session: Session, user: User, price_id: str) -> str:
        """
        Open a Stripe Checkout session for one package.

        Returns the hosted checkout URL.

        Raises:
            ValidationError (400): unknown price id.
            UpstreamProviderError (502): Stripe refused the session.
        """
        package = self.prices.by_price_id(price_id)
        if package is None:
            raise ValidationError("Invalid price ID")

        client_url = self.settings.CLIENT_URL.rstrip("/")
        try:
            checkout = self.client.create_checkout_session(
                price_id=package.price_id,
                success_url=f"{client_url}/payment/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{client_url}/payment/cancel",
                metadata={"userId": str(user.id), "tokens": str(package.tokens)},
            )
        except stripe.StripeError:
            logger.exception("Stripe checkout session creation failed for user %s", user.id)
            raise UpstreamProviderError("Failed to create checkout session")

        self.payment_repo.create(
            session,
            Payment(
                user_id=user.id,
                stripe_payment_id=checkout.id,
                amount=checkout.amount_total if checkout.amount_total is not None else package.amount,
                currency=checkout.currency or package.currency,
                status=PAYMENT_PENDING,
                meta={
                    "tokens": package.tokens,
                    "priceId": package.price_id,
                    "sessionId": checkout.id,
                },
            ),
        )
        logger.info("Checkout %s opened for user %s (%s tokens)", checkout.id, user.id, package.tokens)
        return checkout.url

    # ----- Webhook -----

    def handle_webhook(self, session: Session, payload: bytes, signature: str | None) -> dict[str, Any]:
        """
        Verify and apply one Stripe event.

        Returns {"received": True, "handled": <bool>}; unrelated event
        types are acknowledged and ignored.
        """
        if not signature:
            raise ValidationError("Missing Stripe-Signature header")
        try:
            event = self.client.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Rejected Stripe webhook: %s", e)
            raise ValidationError("Webhook signature verification failed")

        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        session_id = obj.get("id")

        if event_type == EVENT_COMPLETED:
            handled = self._complete(session, session_id, obj.get("metadata") or {})
        elif event_type == EVENT_EXPIRED:
            handled = self._close(session, session_id, PAYMENT_EXPIRED)
        elif event_type == EVENT_ASYNC_FAILED:
            handled = self._close(session, session_id, PAYMENT_FAILED)
        else:
            logger.info("Ignoring Stripe event %s", event_type)
            handled = False

        return {"received": True, "handled": handled}

    def _complete(self, session: Session, session_id: str | None, metadata: dict) -> bool:
        """
        Credit a completed checkout.

        The status flip is guarded by status != 'succeeded' and shares one
        commit with the credit, so a redelivered event credits nothing.
        """
        payment = self.payment_repo.get_by_stripe_id(session, session_id) if session_id else None
        if payment is None:
            raise ValidationError("Payment not found")

        try:
            tokens = int((payment.meta or {}).get("tokens") or metadata.get("tokens"))
        except (TypeError, ValueError):
            tokens = 0
        if tokens <= 0:
            raise ValidationError("Invalid payment metadata")

        meta_user = metadata.get("userId")
        if meta_user is not None and str(meta_user) != str(payment.user_id):
            raise ValidationError("Invalid payment metadata")

        payment_id = payment.id
        user_id = payment.user_id
        if not self.payment_repo.mark_succeeded(session, payment_id):
            session.rollback()
            logger.info("Payment %s already credited; ignoring duplicate event", payment_id)
            return False

        self.ledger.add(
            session,
            user_id,
            tokens,
            TX_PURCHASE,
            reference_id=payment_id,
            metadata={"sessionId": session_id},
            commit=False,
        )
        session.commit()
        logger.info("Payment %s succeeded; credited %s tokens to user %s", payment_id, tokens, user_id)
        return True

    def _close(self, session: Session, session_id: str | None, status: str) -> bool:
        payment = self.payment_repo.get_by_stripe_id(session, session_id) if session_id else None
        if payment is None:
            logger.warning("Stripe event for unknown checkout %s", session_id)
            return False
        changed = self.payment_repo.mark_pending_as(session, payment.id, status)
        session.commit()
        if changed:
            logger.info("Payment %s marked %s", payment.id, status)
        return changed

    # ----- Reconciliation -----

    def expire_stale(self, session: Session, older_than: timedelta | None = None) -> int:
        """Flip pending payments older than the window to expired; returns the count."""
        window = older_than or timedelta(hours=self.settings.PAYMENT_PENDING_HOURS)
        cutoff = datetime.now(timezone.utc) - window
        count = self.payment_repo.expire_pending_before(session, cutoff, PAYMENT_EXPIRED)
        session.commit()
        logger.info("Expired %s stale pending payments", count)
        return count
