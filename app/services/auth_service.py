# app/services/auth_service.py
import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlmodel import Session

from app.core.auth import (
    REFRESH,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from app.core.config import Settings
from app.core.errors import Unauthorized
from app.core.google_oauth import GoogleProfile
from app.core.notifier import send_discord_notification
from app.models.user import User, UserSession
from app.repositories.user_repo import UserRepository
from app.schemas.auth import TokenPair
from app.schemas.user import UserRead

logger = logging.getLogger(__name__)


class AuthService:
    """
    Sign-in flows on top of a verified Google profile.

    Responsibilities:
      - create or refresh the User row for a Google identity
      - browser sessions (server-side row, sid in the signed cookie)
      - mobile JWT pairs and their refresh
    """

    def __init__(self, repo: UserRepository, settings: Settings, notify=send_discord_notification):
        self.repo = repo
        self.settings = settings
        self.notify = notify

    # ----- Users -----

    def upsert_from_google(self, session: Session, profile: GoogleProfile) -> User:
        """
        First login creates the user; later logins refresh the profile.

        New users get username "user_<first 8 chars of the Google id>" and
        a zero token balance.
        """
        user = self.repo.get_by_google_id(session, profile.sub)
        if user is None:
            user = self.repo.create(
                session,
                User(
                    username=f"user_{profile.sub[:8]}",
                    email=profile.email,
                    google_id=profile.sub,
                    display_name=profile.name,
                    profile_picture=profile.picture,
                ),
            )
            logger.info("Created user %s for Google account", user.id)
        else:
            user.email = profile.email or user.email
            user.display_name = profile.name or user.display_name
            user.profile_picture = profile.picture or user.profile_picture
            user = self.repo.update(session, user)

        self.notify(f"User {user.display_name or user.username} just logged in...")
        return user

    # ----- Browser sessions -----

    def create_browser_session(self, session: Session, user: User) -> str:
        """Persist a server-side session and return its sid for the cookie."""
        now = datetime.now(timezone.utc)
        row = self.repo.create_session(
            session,
            UserSession(
                sid=secrets.token_urlsafe(32),
                user_id=user.id,
                data={"login": "google"},
                created_at=now,
                expires_at=now + timedelta(days=self.settings.SESSION_MAX_AGE_DAYS),
            ),
        )
        return row.sid

    def logout(self, session: Session, sid: str | None) -> None:
        if sid:
            self.repo.delete_session(session, sid)

    # ----- Mobile tokens -----

    def issue_token_pair(self, user: User) -> TokenPair:
        return TokenPair(
            access_token=create_access_token(user),
            refresh_token=create_refresh_token(user),
            expires_in=self.settings.ACCESS_TOKEN_MINUTES * 60,
            user=UserRead.model_validate(user),
        )

    def refresh(self, session: Session, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        Raises:
            Unauthorized: token invalid/expired, or the user is gone.
        """
        user_id = decode_token(refresh_token, REFRESH)
        user = self.repo.get_by_id(session, user_id)
        if user is None:
            raise Unauthorized("User no longer exists")
        return self.issue_token_pair(user)
