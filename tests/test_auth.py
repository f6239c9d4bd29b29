# tests/test_auth.py
from dataclasses import replace
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from sqlmodel import select

from app.core import auth
from app.core.auth import ARCHIVE, REFRESH, create_refresh_token, decode_token
from app.models.user import User
from conftest import auth_headers, make_user


def browser_login(client, code="good-code"):
    r = client.get("/auth/google", follow_redirects=False)
    assert r.status_code == 302
    state = parse_qs(urlparse(r.headers["location"]).query)["state"][0]
    return client.get(f"/auth/google/callback?code={code}&state={state}", follow_redirects=False)


def test_anonymous_status(client):
    r = client.get("/api/auth/user")
    assert r.status_code == 200
    assert r.json() == {"is_authenticated": False, "user": None}


def test_bearer_status(client, session):
    user = make_user(session, tokens=4)

    r = client.get("/api/auth/user", headers=auth_headers(user))

    body = r.json()
    assert body["is_authenticated"] is True
    assert body["user"]["username"] == "user_alice"
    assert body["user"]["tokens"] == 4
    assert "google_id" not in body["user"]


def test_invalid_bearer_is_rejected(client):
    r = client.get("/api/auth/user", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_refresh_token_cannot_be_used_as_access_token(client, session):
    user = make_user(session)
    headers = {"Authorization": f"Bearer {create_refresh_token(user)}"}
    assert client.get("/api/auth/user", headers=headers).status_code == 401


def test_browser_login_creates_user_and_session(client, session, google):
    r = browser_login(client)

    assert r.status_code == 302
    assert r.headers["location"] == "http://localhost:5173"

    users = session.exec(select(User)).all()
    assert len(users) == 1
    assert users[0].username == "user_12345678"
    assert users[0].display_name == "Jane Doe"
    assert users[0].tokens == 0

    status = client.get("/api/auth/user").json()
    assert status["is_authenticated"] is True
    assert status["user"]["email"] == "jane@example.com"

    assert client.get("/api/auth/logout").json() == {"success": True}
    assert client.get("/api/auth/user").json()["is_authenticated"] is False


def test_repeat_login_refreshes_profile(client, session, google):
    browser_login(client)
    client.get("/api/auth/logout")
    google.profile = replace(google.profile, email="jane@new.example.com", name="Jane D.", picture=None)

    browser_login(client)

    session.expire_all()
    users = session.exec(select(User)).all()
    assert len(users) == 1
    assert users[0].display_name == "Jane D."
    assert users[0].email == "jane@new.example.com"
    assert users[0].profile_picture == "https://example.com/jane.png"


def test_callback_with_wrong_state_redirects_to_login(client, session):
    client.get("/auth/google", follow_redirects=False)

    r = client.get("/auth/google/callback?code=good-code&state=forged", follow_redirects=False)

    assert r.headers["location"] == "http://localhost:5173/login"
    assert session.exec(select(User)).all() == []


def test_mobile_login_and_refresh(client, session):
    r = client.post("/api/auth/mobile/google", json={"id_token": "good-id-token"})
    assert r.status_code == 200, r.text
    pair = r.json()
    assert pair["token_type"] == "bearer"
    assert pair["expires_in"] == 3600
    assert pair["user"]["username"] == "user_12345678"

    headers = {"Authorization": f"Bearer {pair['access_token']}"}
    assert client.get("/api/auth/user", headers=headers).json()["is_authenticated"] is True

    r = client.post("/api/auth/refresh", json={"refresh_token": pair["refresh_token"]})
    assert r.status_code == 200
    assert decode_token(r.json()["refresh_token"], REFRESH) == pair["user"]["id"]


def test_mobile_login_rejects_bad_token(client):
    r = client.post("/api/auth/mobile/google", json={"id_token": "forged"})
    assert r.status_code == 401


def test_refresh_rejects_garbage_and_access_tokens(client, session):
    user = make_user(session)
    assert client.post("/api/auth/refresh", json={"refresh_token": "garbage"}).status_code == 401

    access = auth_headers(user)["Authorization"].split()[1]
    assert client.post("/api/auth/refresh", json={"refresh_token": access}).status_code == 401


def test_expired_refresh_token(client, session):
    user = make_user(session)
    expired = auth._encode(
        {"sub": str(user.id), "type": REFRESH},
        auth.settings.REFRESH_TOKEN_SECRET,
        timedelta(seconds=-10),
    )
    assert client.post("/api/auth/refresh", json={"refresh_token": expired}).status_code == 401


def test_archive_token_round_trip():
    token = auth.create_archive_token(7)
    assert decode_token(token, ARCHIVE) == 7
