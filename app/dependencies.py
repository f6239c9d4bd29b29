# app/dependencies.py
"""
Service wiring for the routers.

Repositories are stateless and shared. Provider clients are exposed as
their own dependencies so tests can replace them through
`app.dependency_overrides`:

    app.dependency_overrides[get_inference_client] = lambda: FakeInference()
"""

from fastapi import Depends

from app.core.config import Settings, get_settings
from app.core.email_client import Mailer, mailer
from app.core.google_oauth import GoogleOAuthClient, google_client
from app.core.replicate_client import InferenceClient, replicate_client
from app.core.stripe_client import PaymentClient, PriceTable, price_table, stripe_client
from app.database import new_session
from app.repositories.headshot_repo import HeadshotRepository
from app.repositories.model_repo import ModelRepository
from app.repositories.payment_repo import PaymentRepository
from app.repositories.photo_repo import PhotoRepository
from app.repositories.user_repo import UserRepository
from app.services.auth_service import AuthService
from app.services.example_service import ExampleService
from app.services.headshot_service import HeadshotService, download_image
from app.services.ledger_service import LedgerService
from app.services.payment_service import PaymentService
from app.services.training_service import TrainingService
from app.services.upload_service import UploadService

user_repo = UserRepository()
photo_repo = PhotoRepository()
model_repo = ModelRepository()
headshot_repo = HeadshotRepository()
payment_repo = PaymentRepository()

ledger = LedgerService(user_repo, payment_repo)


# -------- Provider clients --------


def get_inference_client() -> InferenceClient:
    return replicate_client()


def get_payment_client() -> PaymentClient:
    return stripe_client()


def get_price_table() -> PriceTable:
    return price_table()


def get_google_client() -> GoogleOAuthClient:
    return google_client()


def get_mailer() -> Mailer:
    return mailer()


def get_image_fetcher():
    """Downloads generated images from the provider URL."""
    return download_image


# -------- Services --------


def get_ledger() -> LedgerService:
    return ledger


def get_upload_service() -> UploadService:
    return UploadService(photo_repo)


def get_auth_service(settings: Settings = Depends(get_settings)) -> AuthService:
    return AuthService(user_repo, settings)


def get_example_service() -> ExampleService:
    return ExampleService(headshot_repo)


def get_training_service(
    inference: InferenceClient = Depends(get_inference_client),
    mail: Mailer = Depends(get_mailer),
    settings: Settings = Depends(get_settings),
) -> TrainingService:
    return TrainingService(
        model_repo=model_repo,
        photo_repo=photo_repo,
        user_repo=user_repo,
        payment_repo=payment_repo,
        ledger=ledger,
        inference=inference,
        mailer=mail,
        settings=settings,
        session_factory=new_session,
    )


def get_headshot_service(
    inference: InferenceClient = Depends(get_inference_client),
    fetch_image=Depends(get_image_fetcher),
    settings: Settings = Depends(get_settings),
) -> HeadshotService:
    return HeadshotService(
        headshot_repo, model_repo, ledger, inference, settings, fetch_image=fetch_image
    )


def get_payment_service(
    client: PaymentClient = Depends(get_payment_client),
    prices: PriceTable = Depends(get_price_table),
    settings: Settings = Depends(get_settings),
) -> PaymentService:
    return PaymentService(payment_repo, ledger, client, prices, settings)
