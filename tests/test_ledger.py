# tests/test_ledger.py
import pytest

from app.core.errors import InsufficientTokens, NotFound
from app.models.payment import TX_GENERATE_HEADSHOT, TX_PURCHASE, TX_REFUND
from app.repositories.payment_repo import PaymentRepository
from app.repositories.user_repo import UserRepository
from app.services.ledger_service import LedgerService
from conftest import balance, make_user


@pytest.fixture
def ledger():
    return LedgerService(UserRepository(), PaymentRepository())


def test_add_and_deduct_write_transactions(session, ledger):
    user = make_user(session)

    ledger.add(session, user.id, 10, TX_PURCHASE, reference_id=1)
    tx = ledger.deduct(session, user.id, 3, TX_GENERATE_HEADSHOT, reference_id=7, metadata={"style": "Casual"})

    assert balance(session, user.id) == 7
    assert tx.tokens == -3
    assert tx.meta == {"style": "Casual"}
    history = ledger.history(session, user.id)
    assert [t.tokens for t in history] == [-3, 10]


def test_deduct_more_than_balance_changes_nothing(session, ledger):
    user = make_user(session, tokens=0)
    ledger.add(session, user.id, 2, TX_PURCHASE)

    with pytest.raises(InsufficientTokens) as exc:
        ledger.deduct(session, user.id, 5, TX_GENERATE_HEADSHOT)

    assert exc.value.status_code == 402
    assert exc.value.required == 5
    assert exc.value.current == 2
    assert balance(session, user.id) == 2
    assert len(ledger.history(session, user.id)) == 1


def test_check_balance(session, ledger):
    user = make_user(session)
    ledger.add(session, user.id, 6, TX_PURCHASE)

    assert ledger.check_balance(session, user.id, 6) == 6
    with pytest.raises(InsufficientTokens):
        ledger.check_balance(session, user.id, 7)


def test_unknown_user(session, ledger):
    with pytest.raises(NotFound):
        ledger.balance(session, 999)
    with pytest.raises(NotFound):
        ledger.add(session, 999, 1, TX_PURCHASE)


@pytest.mark.parametrize("amount", [0, -1, 1.5])
def test_amount_must_be_positive_int(session, ledger, amount):
    user = make_user(session)
    with pytest.raises(ValueError):
        ledger.add(session, user.id, amount, TX_PURCHASE)


def test_charged_refunds_when_block_raises(session, ledger):
    user = make_user(session)
    ledger.add(session, user.id, 5, TX_PURCHASE)

    with pytest.raises(RuntimeError):
        with ledger.charged(session, user.id, 2, TX_GENERATE_HEADSHOT, reference_id=3):
            raise RuntimeError("provider down")

    assert balance(session, user.id) == 5
    types = [t.type for t in ledger.history(session, user.id)]
    assert types == [TX_REFUND, TX_GENERATE_HEADSHOT, TX_PURCHASE]


def test_charged_keeps_charge_on_success(session, ledger):
    user = make_user(session)
    ledger.add(session, user.id, 5, TX_PURCHASE)

    with ledger.charged(session, user.id, 2, TX_GENERATE_HEADSHOT):
        pass

    assert balance(session, user.id) == 3


def test_reconcile_after_mixed_operations(session, ledger):
    user = make_user(session)

    ledger.add(session, user.id, 30, TX_PURCHASE)
    ledger.deduct(session, user.id, 6, "train_model", reference_id=1)
    ledger.refund(session, user.id, 6, reference_id=1, reason="training_failed")
    for _ in range(4):
        ledger.deduct(session, user.id, 1, TX_GENERATE_HEADSHOT)
    with pytest.raises(InsufficientTokens):
        ledger.deduct(session, user.id, 100, TX_GENERATE_HEADSHOT)

    tokens, total = ledger.reconcile(session, user.id)
    assert tokens == total == 26

    refunds = [t for t in ledger.history(session, user.id) if t.type == TX_REFUND]
    assert [(r.tokens, r.meta) for r in refunds] == [(6, {"reason": "training_failed"})]
