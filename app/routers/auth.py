# app/routers/auth.py
import logging
import secrets

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlmodel import Session

from app.core.auth import SESSION_KEY, get_current_user
from app.core.config import get_settings
from app.core.errors import UpstreamProviderError, Unauthorized
from app.core.google_oauth import GoogleAuthError, GoogleOAuthClient
from app.database import get_session
from app.dependencies import get_auth_service, get_google_client
from app.models.user import User
from app.schemas.auth import AuthStatus, MobileGoogleLogin, RefreshRequest, TokenPair
from app.schemas.user import UserRead
from app.services.auth_service import AuthService

logger = logging.getLogger(__name__)
settings = get_settings()

# Browser OAuth flow lives outside the /api prefix
oauth_router = APIRouter(prefix="/auth/google", tags=["Auth"])
router = APIRouter(prefix="/auth", tags=["Auth"])

STATE_KEY = "oauth_state"


# -------- Browser (Google OAuth redirect flow) --------


@oauth_router.get("")
def google_login(
    request: Request,
    google: GoogleOAuthClient = Depends(get_google_client),
):
    """Redirect the browser to Google's consent screen."""
    state = secrets.token_urlsafe(24)
    request.session[STATE_KEY] = state
    return RedirectResponse(google.authorization_url(state), status_code=302)


@oauth_router.get("/callback")
def google_callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    session: Session = Depends(get_session),
    google: GoogleOAuthClient = Depends(get_google_client),
    service: AuthService = Depends(get_auth_service),
):
    """
    Finish the OAuth flow.

    On success a server-side session is created and the browser goes back
    to the client app; on any failure it lands on the client's /login.
    """
    client_url = settings.CLIENT_URL.rstrip("/")
    expected = request.session.pop(STATE_KEY, None)
    if not code or not state or state != expected:
        logger.warning("OAuth callback with missing or mismatched state")
        return RedirectResponse(f"{client_url}/login", status_code=302)

    try:
        profile = google.exchange_code(code)
    except GoogleAuthError:
        logger.exception("Google code exchange failed")
        return RedirectResponse(f"{client_url}/login", status_code=302)

    user = service.upsert_from_google(session, profile)
    request.session[SESSION_KEY] = service.create_browser_session(session, user)
    return RedirectResponse(client_url, status_code=302)


# -------- API --------


@router.get("/user", response_model=AuthStatus)
def auth_status(current_user: User | None = Depends(get_current_user)):
    """Who am I. Anonymous callers get is_authenticated=false, not a 401."""
    if current_user is None:
        return AuthStatus(is_authenticated=False)
    return AuthStatus(is_authenticated=True, user=UserRead.model_validate(current_user))


@router.get("/logout")
def logout(
    request: Request,
    session: Session = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
):
    """Drop the server-side session and clear the cookie session."""
    service.logout(session, request.session.get(SESSION_KEY))
    request.session.clear()
    return {"success": True}


@router.post("/mobile/google", response_model=TokenPair)
def mobile_google_login(
    payload: MobileGoogleLogin,
    session: Session = Depends(get_session),
    google: GoogleOAuthClient = Depends(get_google_client),
    service: AuthService = Depends(get_auth_service),
):
    """
    Mobile sign-in with a Google ID token.

    Returns an access/refresh JWT pair plus the user.
    """
    try:
        profile = google.verify_id_token(payload.id_token)
    except GoogleAuthError as e:
        logger.warning("Mobile Google login rejected: %s", e)
        raise Unauthorized("Invalid Google ID token")
    except Exception:
        logger.exception("Google token verification failed")
        raise UpstreamProviderError("Could not verify Google ID token")

    user = service.upsert_from_google(session, profile)
    return service.issue_token_pair(user)


@router.post("/refresh", response_model=TokenPair)
def refresh_tokens(
    payload: RefreshRequest,
    session: Session = Depends(get_session),
    service: AuthService = Depends(get_auth_service),
):
    """Exchange a refresh token for a new pair (401 when invalid or expired)."""
    return service.refresh(session, payload.refresh_token)
