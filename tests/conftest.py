# tests/conftest.py
import json
import os

# Settings are read once and cached, so the environment must be ready
# before anything under app/ is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret")
os.environ.setdefault("GOOGLE_CLIENT_ID", "google-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "google-client-secret")
os.environ.setdefault("REPLICATE_API_TOKEN", "r8_test")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")
os.environ.setdefault("STRIPE_PRICE_10_TOKENS", "price_10")
os.environ.setdefault("STRIPE_PRICE_30_TOKENS", "price_30")
os.environ.setdefault("STRIPE_PRICE_70_TOKENS", "price_70")
os.environ.setdefault("TRAINING_POLL_ENABLED", "false")

import pytest
import stripe
from fastapi.testclient import TestClient
from replicate.webhook import InvalidSignatureError
from sqlmodel import SQLModel, Session

from app.core.auth import create_access_token
from app.core.config import get_settings
from app.core.google_oauth import GoogleAuthError, GoogleProfile
from app.core.replicate_client import GenerationResult, TrainingStatus
from app.core.stripe_client import CheckoutSession, build_price_table
from app.database import engine
from app.dependencies import (
    get_google_client,
    get_image_fetcher,
    get_inference_client,
    get_mailer,
    get_payment_client,
    get_price_table,
)
from app.main import app
from app.models.training import TrainedModel, STATUS_COMPLETED
from app.models.user import User


# -------- Fakes for the external providers --------


class FakeInference:
    WEBHOOK_SIGNATURE = "v1,valid"

    def __init__(self):
        self.trainings: list[dict] = []
        self.generations: list[dict] = []
        self.training_status = TrainingStatus(id="tr_1", status="processing")
        self.fail_training = False
        self.fail_generation = False

    def ensure_model(self, name: str) -> str:
        return name

    def start_training(self, model_name: str, input_images_url: str, webhook_url: str) -> str:
        if self.fail_training:
            raise RuntimeError("trainer unavailable")
        self.trainings.append(
            {"model": model_name, "input_images": input_images_url, "webhook": webhook_url}
        )
        return f"tr_{len(self.trainings)}"

    def get_training(self, training_id: str) -> TrainingStatus:
        if isinstance(self.training_status, Exception):
            raise self.training_status
        return self.training_status

    def generate(self, model_name: str, version_id: str, prompt: str) -> GenerationResult:
        if self.fail_generation:
            raise RuntimeError("prediction failed")
        self.generations.append({"model": model_name, "version": version_id, "prompt": prompt})
        n = len(self.generations)
        return GenerationResult(image_url=f"https://replicate.test/out/{n}.png", prediction_id=f"pred_{n}")

    def verify_webhook(self, headers, body: bytes) -> None:
        if headers.get("webhook-signature") != self.WEBHOOK_SIGNATURE:
            raise InvalidSignatureError("Webhook signature is invalid")


class FakePaymentClient:
    VALID_SIGNATURE = "t=1,v1=valid"

    def __init__(self):
        self.sessions: list[dict] = []

    def create_checkout_session(self, price_id, success_url, cancel_url, metadata):
        session_id = f"cs_test_{len(self.sessions) + 1}"
        self.sessions.append({"price_id": price_id, "metadata": metadata, "success_url": success_url})
        return CheckoutSession(
            id=session_id,
            url=f"https://checkout.stripe.test/{session_id}",
            amount_total=1000,
            currency="usd",
        )

    def construct_event(self, payload: bytes, signature: str) -> dict:
        if signature != self.VALID_SIGNATURE:
            raise stripe.SignatureVerificationError("No signatures found", signature)
        return json.loads(payload)


class FakeGoogle:
    def __init__(self):
        self.profile = GoogleProfile(
            sub="1234567890abcdef",
            email="jane@example.com",
            name="Jane Doe",
            picture="https://example.com/jane.png",
        )

    def authorization_url(self, state: str) -> str:
        return f"https://accounts.google.test/auth?state={state}"

    def exchange_code(self, code: str) -> GoogleProfile:
        if code != "good-code":
            raise GoogleAuthError("bad code")
        return self.profile

    def verify_id_token(self, id_token: str) -> GoogleProfile:
        if id_token != "good-id-token":
            raise GoogleAuthError("Invalid Google ID token")
        return self.profile


class FakeMailer:
    def __init__(self):
        self.sent: list[tuple[str, int]] = []

    def send_model_completion_email(self, to_email: str, model_id: int) -> bool:
        self.sent.append((to_email, model_id))
        return True


# -------- Fixtures --------


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(get_settings(), "DATA_DIR", tmp_path / "data")
    return tmp_path / "data"


@pytest.fixture
def session():
    SQLModel.metadata.create_all(engine)
    with Session(engine) as s:
        yield s
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def inference():
    return FakeInference()


@pytest.fixture
def payments():
    return FakePaymentClient()


@pytest.fixture
def google():
    return FakeGoogle()


@pytest.fixture
def mail():
    return FakeMailer()


@pytest.fixture
def client(session, inference, payments, google, mail):
    app.dependency_overrides[get_inference_client] = lambda: inference
    app.dependency_overrides[get_payment_client] = lambda: payments
    app.dependency_overrides[get_price_table] = lambda: build_price_table(get_settings())
    app.dependency_overrides[get_google_client] = lambda: google
    app.dependency_overrides[get_mailer] = lambda: mail
    app.dependency_overrides[get_image_fetcher] = lambda: (lambda url: b"\x89PNG fake image")
    yield TestClient(app)
    app.dependency_overrides.clear()


# -------- Helpers --------


def make_user(session: Session, tokens: int = 0, username: str = "user_alice", email: str = "alice@example.com") -> User:
    user = User(username=username, email=email, google_id=f"g-{username}", tokens=tokens)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def make_completed_model(session: Session, user: User) -> TrainedModel:
    model = TrainedModel(
        user_id=user.id,
        replicate_model_id=user.username,
        replicate_training_id="tr_done",
        replicate_version_id="duchovs/user_alice:abc123",
        status=STATUS_COMPLETED,
        progress=100,
    )
    session.add(model)
    session.commit()
    session.refresh(model)
    return model


def balance(session: Session, user_id: int) -> int:
    session.expire_all()
    return session.get(User, user_id).tokens


@pytest.fixture
def user(session):
    return make_user(session)
