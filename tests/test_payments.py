# tests/test_payments.py
import asyncio
import json
from datetime import datetime, timedelta, timezone

from sqlmodel import select

from app.core.config import get_settings
from app.core.stripe_client import build_price_table
from app.dependencies import get_payment_service, ledger, payment_repo
from app.main import app
from app.models.payment import Payment, TX_PURCHASE
from app.services.payment_service import PaymentService
from conftest import FakePaymentClient, auth_headers, balance, make_user


def stripe_event(event_type, session_id, metadata=None):
    return json.dumps(
        {
            "id": "evt_1",
            "type": event_type,
            "data": {"object": {"id": session_id, "metadata": metadata or {}}},
        }
    ).encode()


def post_webhook(client, payload, signature=FakePaymentClient.VALID_SIGNATURE):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post("/api/stripe/webhook", content=payload, headers=headers)


def payment_status(session, stripe_id):
    session.expire_all()
    return payment_repo.get_by_stripe_id(session, stripe_id).status


def checkout(client, user, price_id="price_10"):
    return client.post(
        "/api/stripe/create-checkout-session",
        json={"price_id": price_id},
        headers=auth_headers(user),
    )


def test_packages_are_public(client):
    r = client.get("/api/stripe/packages")

    assert r.status_code == 200
    assert [(p["price_id"], p["tokens"], p["amount"]) for p in r.json()] == [
        ("price_10", 10, 1000),
        ("price_30", 30, 2500),
        ("price_70", 70, 5000),
    ]


def test_scenario_c_webhook_credits_once(client, session, payments):
    """Checkout for 10 tokens -> pending; webhook twice -> +10 exactly once."""
    user = make_user(session, tokens=0)

    r = checkout(client, user)
    assert r.status_code == 200, r.text
    assert r.json()["url"] == "https://checkout.stripe.test/cs_test_1"
    assert payments.sessions[0]["metadata"] == {"userId": str(user.id), "tokens": "10"}
    assert payment_status(session, "cs_test_1") == "pending"

    event = stripe_event("checkout.session.completed", "cs_test_1", {"userId": str(user.id), "tokens": "10"})
    r = post_webhook(client, event)
    assert r.status_code == 200
    assert r.json() == {"received": True, "handled": True}
    assert payment_status(session, "cs_test_1") == "succeeded"
    assert balance(session, user.id) == 10

    r = post_webhook(client, event)
    assert r.status_code == 200
    assert r.json()["handled"] is False
    assert balance(session, user.id) == 10

    purchases = [t for t in ledger.history(session, user.id) if t.type == TX_PURCHASE]
    assert len(purchases) == 1
    assert purchases[0].tokens == 10


def test_checkout_unknown_price(client, session):
    user = make_user(session)
    r = checkout(client, user, price_id="price_nope")
    assert r.status_code == 400
    assert session.exec(select(Payment)).all() == []


def test_checkout_requires_auth(client):
    r = client.post("/api/stripe/create-checkout-session", json={"price_id": "price_10"})
    assert r.status_code == 401


def test_webhook_rejects_bad_signature(client, session):
    user = make_user(session)
    checkout(client, user)
    event = stripe_event("checkout.session.completed", "cs_test_1", {"userId": str(user.id), "tokens": "10"})

    assert post_webhook(client, event, signature="t=1,v1=forged").status_code == 400
    assert post_webhook(client, event, signature=None).status_code == 400
    assert payment_status(session, "cs_test_1") == "pending"
    assert balance(session, user.id) == 0


def test_webhook_unknown_session(client):
    event = stripe_event("checkout.session.completed", "cs_missing", {"tokens": "10"})
    assert post_webhook(client, event).status_code == 400


def test_webhook_expired_and_failed(client, session):
    user = make_user(session)
    checkout(client, user)
    checkout(client, user, price_id="price_30")

    post_webhook(client, stripe_event("checkout.session.expired", "cs_test_1"))
    post_webhook(client, stripe_event("checkout.session.async_payment_failed", "cs_test_2"))

    assert payment_status(session, "cs_test_1") == "expired"
    assert payment_status(session, "cs_test_2") == "failed"
    assert balance(session, user.id) == 0


def test_other_events_are_acknowledged(client):
    r = post_webhook(client, stripe_event("payment_intent.created", "pi_1"))
    assert r.json() == {"received": True, "handled": False}


def test_expire_stale_sweep(session, payments):
    user = make_user(session)
    old = Payment(
        user_id=user.id,
        stripe_payment_id="cs_old",
        amount=1000,
        status="pending",
        meta={"tokens": 10},
        created_at=datetime.now(timezone.utc) - timedelta(hours=48),
    )
    fresh = Payment(user_id=user.id, stripe_payment_id="cs_fresh", amount=1000, status="pending", meta={"tokens": 10})
    session.add_all([old, fresh])
    session.commit()
    service = PaymentService(payment_repo, ledger, payments, build_price_table(get_settings()), get_settings())

    assert service.expire_stale(session) == 1
    assert payment_status(session, "cs_old") == "expired"
    assert payment_status(session, "cs_fresh") == "pending"


def test_balance_and_transactions(client, session):
    user = make_user(session)
    ledger.add(session, user.id, 30, TX_PURCHASE, reference_id=1)
    ledger.deduct(session, user.id, 6, "train_model", reference_id=2)

    assert client.get("/api/stripe/balance", headers=auth_headers(user)).json() == {"balance": 24}
    txs = client.get("/api/stripe/transactions", headers=auth_headers(user)).json()
    assert [(t["type"], t["tokens"]) for t in txs] == [("train_model", -6), (TX_PURCHASE, 30)]


def test_webhook_is_handled_in_the_threadpool(client):
    threads = []

    class RecordingService:
        def handle_webhook(self, session, payload, signature):
            try:
                asyncio.get_running_loop()
                threads.append("event-loop")
            except RuntimeError:
                threads.append("worker")
            return {"received": True, "handled": False}

    app.dependency_overrides[get_payment_service] = lambda: RecordingService()

    r = post_webhook(client, stripe_event("payment_intent.created", "pi_1"))

    assert r.status_code == 200
    assert threads == ["worker"]
