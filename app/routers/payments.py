# app/routers/payments.py
from fastapi import APIRouter, Depends, Header, Query, Request
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool

from app.core.auth import require_auth
from app.database import get_session
from app.dependencies import get_payment_service
from app.models.user import User
from app.schemas.payment import (
    BalanceRead,
    CheckoutRequest,
    CheckoutResponse,
    PackageRead,
    PaymentRead,
    TransactionRead,
)
from app.services.payment_service import PaymentService

router = APIRouter(prefix="/stripe", tags=["Payments"])


# -------- Public --------


@router.get("/packages", response_model=list[PackageRead])
def list_packages(service: PaymentService = Depends(get_payment_service)):
    """Token packages on sale (10 / 30 / 70 tokens)."""
    return [PackageRead.model_validate(p, from_attributes=True) for p in service.list_packages()]


# -------- Authenticated --------


@router.post("/create-checkout-session", response_model=CheckoutResponse)
def create_checkout_session(
    payload: CheckoutRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
):
    """Open a Stripe Checkout session and return its hosted URL."""
    url = service.create_checkout(session, current_user, payload.price_id)
    return CheckoutResponse(url=url)


@router.get("/balance", response_model=BalanceRead)
def get_balance(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
):
    return BalanceRead(balance=service.balance(session, current_user))


@router.get("/transactions", response_model=list[TransactionRead])
def list_transactions(
    limit: int = Query(default=100, ge=1, le=500),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
):
    return service.transactions(session, current_user, limit)


@router.get("/payments", response_model=list[PaymentRead])
def list_payments(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: PaymentService = Depends(get_payment_service),
):
    return service.payments(session, current_user)


# -------- Stripe callback --------


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    service: PaymentService = Depends(get_payment_service),
    session: Session = Depends(get_session),
):
    """
    Stripe event receiver.

    The raw body is needed for signature verification, so this endpoint
    reads the request itself instead of declaring a body model. The
    credit and its commit are blocking, so they go to the threadpool.
    """
    payload = await request.body()
    return await run_in_threadpool(service.handle_webhook, session, payload, stripe_signature)
