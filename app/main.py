# app/main.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from app.core.config import get_settings
from app.core.errors import InternalError
from app.database import create_db_and_tables

# Import models so SQLModel metadata is populated before create_all()
from app.models import user as _user_models  # noqa: F401
from app.models import photo as _photo_models  # noqa: F401
from app.models import training as _training_models  # noqa: F401
from app.models import headshot as _headshot_models  # noqa: F401
from app.models import payment as _payment_models  # noqa: F401

# Routers
from app.routers.auth import router as auth_router, oauth_router
from app.routers.uploads import router as uploads_router, archive_router
from app.routers.training import router as training_router
from app.routers.headshots import router as headshots_router
from app.routers.examples import router as examples_router
from app.routers.payments import router as payments_router
from app.routers.webhooks import router as webhooks_router

settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.
      - Make sure the local storage root exists.

    Shutdown:
      - Nothing to clean up; poller threads are daemons.
    """
    logger.info("Startup: connecting to database...")
    try:
        create_db_and_tables()
        logger.info("Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"Startup: DB connection FAILED: {e}")
        raise
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    yield


app = FastAPI(
    title=settings.PROJECT_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


# --- Middleware ---

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Signed cookie; carries only the OAuth state and the server-side session id
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SESSION_SECRET,
    max_age=settings.SESSION_MAX_AGE_DAYS * 24 * 60 * 60,
    same_site="lax",
    https_only=settings.PUBLIC_BASE_URL.startswith("https"),
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log anything unexpected server-side; clients get a generic 500."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content={"detail": error.detail})


# Browser OAuth redirect flow (no prefix)
app.include_router(oauth_router)

# JSON API
app.include_router(auth_router, prefix=settings.API_PREFIX)
app.include_router(uploads_router, prefix=settings.API_PREFIX)
app.include_router(archive_router, prefix=settings.API_PREFIX)
app.include_router(training_router, prefix=settings.API_PREFIX)
app.include_router(headshots_router, prefix=settings.API_PREFIX)
app.include_router(examples_router, prefix=settings.API_PREFIX)
app.include_router(payments_router, prefix=settings.API_PREFIX)
app.include_router(webhooks_router, prefix=settings.API_PREFIX)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "headshot-studio-backend"}
