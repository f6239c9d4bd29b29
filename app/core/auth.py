# app/core/auth.py
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session

from app.core.config import get_settings
from app.core.errors import Unauthorized
from app.database import get_session
from app.models.user import User
from app.repositories.user_repo import UserRepository

settings = get_settings()

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so we can fall back to the browser session cookie.
bearer_scheme = HTTPBearer(auto_error=False)

user_repo = UserRepository()

ACCESS = "access"
REFRESH = "refresh"
ARCHIVE = "archive"

# Key inside the signed cookie session holding the server-side session id
SESSION_KEY = "sid"


# ---------------------------------------------------------------------------
# JWT helpers
# ---------------------------------------------------------------------------


def _encode(claims: dict[str, Any], secret: str, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + lifetime}
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALG)


def create_access_token(user: User) -> str:
    return _encode(
        {"sub": str(user.id), "email": user.email or "", "type": ACCESS},
        settings.JWT_SECRET,
        timedelta(minutes=settings.ACCESS_TOKEN_MINUTES),
    )


def create_refresh_token(user: User) -> str:
    return _encode(
        {"sub": str(user.id), "type": REFRESH},
        settings.REFRESH_TOKEN_SECRET,
        timedelta(days=settings.REFRESH_TOKEN_DAYS),
    )


def create_archive_token(user_id: int) -> str:
    """Short-lived token that lets Replicate download one user's photo archive."""
    return _encode(
        {"sub": str(user_id), "type": ARCHIVE},
        settings.JWT_SECRET,
        timedelta(minutes=settings.ARCHIVE_TOKEN_MINUTES),
    )


def decode_token(token: str, expected_type: str) -> int:
    """
    Decode and verify one of our JWTs and return the user id.

    Verification:
      - signature (HS256; refresh tokens use their own secret)
      - expiration time (exp)
      - `type` claim matches expected_type

    Raises:
        Unauthorized: if the token is invalid, expired or of the wrong type.
    """
    secret = settings.REFRESH_TOKEN_SECRET if expected_type == REFRESH else settings.JWT_SECRET
    try:
        claims = jwt.decode(token, secret, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise Unauthorized("Invalid or expired token")

    if claims.get("type") != expected_type:
        raise Unauthorized("Invalid token type")

    try:
        return int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthorized("Invalid sub in token")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the caller from a bearer JWT or the browser session.

    Flow:
      1. Authorization header present => must be a valid access token.
      2. Otherwise look up the server-side session referenced by the
         signed session cookie.
      3. Neither => anonymous => None.

    Raises:
        Unauthorized: bearer token present but invalid, or its user is gone.
    """
    if credentials is not None:
        user_id = decode_token(credentials.credentials, ACCESS)
        user = user_repo.get_by_id(session, user_id)
        if user is None:
            raise Unauthorized("User no longer exists")
        return user

    sid = request.session.get(SESSION_KEY) if "session" in request.scope else None
    if not sid:
        return None

    user_session = user_repo.get_active_session(session, sid)
    if user_session is None:
        return None
    return user_repo.get_by_id(session, user_session.user_id)


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        Unauthorized: if the caller is anonymous.
    """
    if user is None:
        raise Unauthorized("Unauthorized. No valid session or token provided.")
    return user
