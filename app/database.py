# app/database.py
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from app.core.config import get_settings

settings = get_settings()

# ---------------------------------------------------------
# Postgres in production, sqlite for local dev and tests.
#
# Postgres:
#   - sslmode=require unless connecting to localhost
#   - small pool, pre-ping to drop dead pooled connections
#
# sqlite:
#   - check_same_thread=False: sync endpoints and the training
#     poller run on worker threads
#   - in-memory URLs share one connection (StaticPool), otherwise
#     every thread would see its own empty database
# ---------------------------------------------------------

db_url = settings.DATABASE_URL


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url:
            kwargs["poolclass"] = StaticPool
        return kwargs

    return {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 5,
    }


if db_url.startswith("postgres") and "sslmode=" not in db_url:
    if "localhost" not in db_url and "127.0.0.1" not in db_url:
        db_url = db_url + ("&" if "?" in db_url else "?") + "sslmode=require"

engine = create_engine(
    db_url,
    echo=False,  # set to True if you want to debug SQL queries
    **_engine_kwargs(db_url),
)


def create_db_and_tables() -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    This is called once on application startup.
    """
    SQLModel.metadata.create_all(engine)


def new_session() -> Session:
    """
    Open a standalone Session outside of a request.

    Used by background work (training poller, scripts); callers own
    closing it, typically with `with new_session() as session:`.
    """
    return Session(engine)


def get_session():
    """
    FastAPI dependency that yields a SQLModel Session.

    Usage:

        from fastapi import Depends

        @router.get("/example")
        def example_endpoint(session: Session = Depends(get_session)):
            ...
    """
    with Session(engine) as session:
        yield session
