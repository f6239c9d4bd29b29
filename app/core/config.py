# app/core/config.py
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - DATABASE_URL (Postgres in production, sqlite for local/tests)
      - SESSION_SECRET (signs the browser session cookie)
      - JWT_SECRET / REFRESH_TOKEN_SECRET (mobile access/refresh tokens)
      - REPLICATE_API_TOKEN
      - STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET
      - STRIPE_PRICE_10_TOKENS / STRIPE_PRICE_30_TOKENS / STRIPE_PRICE_70_TOKENS
      - GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET

    Everything else has a default suitable for local development.
    """

    PROJECT_NAME: str = "Headshot Studio API"
    API_PREFIX: str = "/api"

    # Where the web client lives (OAuth + checkout redirects land here)
    CLIENT_URL: str = "http://localhost:5173"
    # Public URL of this API, used for provider callbacks
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # DB
    DATABASE_URL: str

    # Local file storage root (uploads/, generated/, examples/)
    DATA_DIR: Path = Path("data")

    # Sessions / JWT
    SESSION_SECRET: str
    SESSION_MAX_AGE_DAYS: int = 30
    JWT_SECRET: str
    REFRESH_TOKEN_SECRET: str
    JWT_ALG: str = "HS256"
    ACCESS_TOKEN_MINUTES: int = 60
    REFRESH_TOKEN_DAYS: int = 7
    ARCHIVE_TOKEN_MINUTES: int = 120

    # Google OAuth
    GOOGLE_CLIENT_ID: str
    GOOGLE_CLIENT_SECRET: str
    GOOGLE_REDIRECT_PATH: str = "/auth/google/callback"

    # Replicate
    REPLICATE_API_TOKEN: str
    REPLICATE_OWNER: str = "duchovs"
    REPLICATE_TRAINER: str = "ostris/flux-dev-lora-trainer"
    REPLICATE_TRAINER_VERSION: str = (
        "c6e78d2501e8088876e99ef21e4460d0dc121af7a4b786b9a4c2d75c620e300d"
    )
    REPLICATE_HARDWARE: str = "gpu-a100-large"
    # Signing secret for training webhooks ("whsec_..."); unset skips verification
    REPLICATE_WEBHOOK_SECRET: str | None = None

    # Stripe
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    STRIPE_PRICE_10_TOKENS: str
    STRIPE_PRICE_30_TOKENS: str
    STRIPE_PRICE_70_TOKENS: str
    # Pending checkout sessions older than this are swept to "expired"
    PAYMENT_PENDING_HOURS: int = 24

    # Token costs
    TRAINING_COST_TOKENS: int = 6
    GENERATION_COST_TOKENS: int = 1

    # Training status polling (backup for the webhook)
    TRAINING_POLL_ENABLED: bool = True
    TRAINING_POLL_MAX_ATTEMPTS: int = 120
    TRAINING_POLL_INTERVAL_SECONDS: float = 30.0

    # SMTP (completion emails); unset host disables sending
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USERNAME: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_FROM_EMAIL: str | None = None
    SMTP_FROM_NAME: str = "Headshot AI"
    SMTP_USE_TLS: bool = True
    SMTP_USE_SSL: bool = False

    # Optional Discord webhook for login notifications
    DISCORD_WEBHOOK_URL: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
