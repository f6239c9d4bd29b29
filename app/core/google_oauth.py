# app/core/google_oauth.py
"""
Google OAuth 2.0 helpers (authorization-code flow + ID-token check).

Plain httpx calls against Google's public endpoints:
  - authorization_url(): where to send the browser
  - exchange_code(): code -> access token -> userinfo profile
  - verify_id_token(): mobile apps hand us an ID token directly
"""

from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlencode

import httpx

from app.core.config import get_settings

AUTHORIZE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"
TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"


class GoogleAuthError(Exception):
    pass


@dataclass(frozen=True)
class GoogleProfile:
    sub: str
    email: str | None
    name: str | None
    picture: str | None


def _profile_from_claims(claims: dict) -> GoogleProfile:
    sub = claims.get("sub")
    if not sub:
        raise GoogleAuthError("Google profile has no subject id")
    return GoogleProfile(
        sub=str(sub),
        email=claims.get("email"),
        name=claims.get("name"),
        picture=claims.get("picture"),
    )


class GoogleOAuthClient:
    def __init__(self, client_id: str, client_secret: str, redirect_uri: str):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid profile email",
            "state": state,
            "prompt": "select_account",
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> GoogleProfile:
        r = httpx.post(
            TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
            timeout=20.0,
        )
        if r.status_code != 200:
            raise GoogleAuthError(f"Code exchange failed ({r.status_code})")
        access_token = r.json().get("access_token")
        if not access_token:
            raise GoogleAuthError("Code exchange returned no access token")

        r = httpx.get(
            USERINFO_URL,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=20.0,
        )
        if r.status_code != 200:
            raise GoogleAuthError(f"Userinfo request failed ({r.status_code})")
        return _profile_from_claims(r.json())

    def verify_id_token(self, id_token: str) -> GoogleProfile:
        """
        Validate an ID token via Google's tokeninfo endpoint.

        Google checks signature and expiry; we check the audience.
        """
        r = httpx.get(TOKENINFO_URL, params={"id_token": id_token}, timeout=20.0)
        if r.status_code != 200:
            raise GoogleAuthError("Invalid Google ID token")
        claims = r.json()
        if claims.get("aud") != self.client_id:
            raise GoogleAuthError("Google ID token was issued for another client")
        return _profile_from_claims(claims)


@lru_cache
def google_client() -> GoogleOAuthClient:
    settings = get_settings()
    return GoogleOAuthClient(
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        redirect_uri=settings.PUBLIC_BASE_URL.rstrip("/") + settings.GOOGLE_REDIRECT_PATH,
    )
