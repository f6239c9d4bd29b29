# tests/test_headshots.py
from pathlib import Path

from sqlmodel import select

from app.models.headshot import DeletedHeadshot, Headshot
from app.models.payment import TX_GENERATE_HEADSHOT, TX_REFUND
from app.models.training import TrainedModel, STATUS_TRAINING
from app.dependencies import get_image_fetcher, ledger
from app.main import app
from conftest import auth_headers, balance, make_completed_model, make_user


def generate(client, user, model_id, style="Corporate", gender="female", prompt=None):
    body = {"model_id": model_id, "style": style, "gender": gender}
    if prompt is not None:
        body["prompt"] = prompt
    return client.post("/api/headshots/generate", json=body, headers=auth_headers(user))


def test_scenario_b_generate_then_favorite(client, session, inference, data_dir):
    """Balance 1, generate -> 0 with one headshot; favorite flips, balance unchanged."""
    user = make_user(session, tokens=1)
    model = make_completed_model(session, user)

    r = generate(client, user, model.id, style="Casual", gender="male", prompt="wearing glasses")
    assert r.status_code == 200, r.text
    headshot = r.json()

    assert headshot["favorite"] is False
    assert headshot["image_url"] == "https://replicate.test/out/1.png"
    assert headshot["replicate_prediction_id"] == "pred_1"
    assert balance(session, user.id) == 0

    stored = Path(headshot["file_path"])
    assert stored == (data_dir / "generated" / str(user.id) / f"headshot_{headshot['id']}.png").resolve()
    assert stored.read_bytes() == b"\x89PNG fake image"

    call = inference.generations[0]
    assert call["version"] == "duchovs/user_alice:abc123"
    assert "TOK man" in call["prompt"]
    assert call["prompt"].endswith("Additional details: wearing glasses")

    r = client.patch(f"/api/headshots/{headshot['id']}/favorite", headers=auth_headers(user))
    assert r.status_code == 200
    assert r.json()["favorite"] is True
    assert balance(session, user.id) == 0

    history = ledger.history(session, user.id)
    assert [(t.type, t.tokens) for t in history] == [(TX_GENERATE_HEADSHOT, -1)]


def test_generate_rejects_model_not_completed_without_charge(client, session, inference):
    user = make_user(session, tokens=3)
    model = TrainedModel(user_id=user.id, replicate_model_id=user.username, status=STATUS_TRAINING)
    session.add(model)
    session.commit()

    r = generate(client, user, model.id)

    assert r.status_code == 400
    assert balance(session, user.id) == 3
    assert inference.generations == []


def test_generate_requires_tokens(client, session):
    user = make_user(session, tokens=0)
    model = make_completed_model(session, user)

    r = generate(client, user, model.id)

    assert r.status_code == 402
    assert r.json()["detail"]["required"] == 1


def test_generate_failure_refunds_token(client, session, inference):
    user = make_user(session, tokens=2)
    model = make_completed_model(session, user)
    inference.fail_generation = True

    r = generate(client, user, model.id)

    assert r.status_code == 502
    assert r.json()["detail"] == "Failed to generate headshot - token refunded"
    assert balance(session, user.id) == 2
    types = [t.type for t in ledger.history(session, user.id)]
    assert types == [TX_REFUND, TX_GENERATE_HEADSHOT]
    assert session.exec(select(Headshot)).all() == []


def test_generate_download_failure_leaves_no_headshot(client, session):
    def broken(url):
        raise OSError("connection reset")

    app.dependency_overrides[get_image_fetcher] = lambda: broken
    user = make_user(session, tokens=1)
    model = make_completed_model(session, user)

    r = generate(client, user, model.id)

    assert r.status_code == 502
    assert balance(session, user.id) == 1
    session.expire_all()
    assert session.exec(select(Headshot)).all() == []


def test_generate_on_foreign_model(client, session):
    owner = make_user(session, tokens=1)
    other = make_user(session, tokens=1, username="user_bob", email="bob@example.com")
    model = make_completed_model(session, owner)

    assert generate(client, other, model.id).status_code == 403
    assert generate(client, other, 999).status_code == 404
    assert balance(session, other.id) == 1


def test_generate_validates_body(client, session):
    user = make_user(session, tokens=1)
    model = make_completed_model(session, user)

    r = generate(client, user, model.id, gender="other")
    assert r.status_code == 422


def test_delete_archives_headshot(client, session):
    user = make_user(session, tokens=1)
    model = make_completed_model(session, user)
    created = generate(client, user, model.id, prompt="smiling").json()
    client.patch(f"/api/headshots/{created['id']}/favorite", headers=auth_headers(user))

    r = client.delete(f"/api/headshots/{created['id']}", headers=auth_headers(user))

    assert r.status_code == 204
    session.expire_all()
    assert session.get(Headshot, created["id"]) is None
    archived = session.exec(select(DeletedHeadshot)).all()
    assert len(archived) == 1
    row = archived[0]
    assert row.headshot_id == created["id"]
    assert row.user_id == user.id
    assert row.model_id == model.id
    assert row.style == created["style"]
    assert row.prompt == created["prompt"]
    assert row.image_url == created["image_url"]
    assert row.replicate_prediction_id == created["replicate_prediction_id"]
    assert row.meta == created["meta"]
    assert row.favorite is True
    assert row.file_path == created["file_path"]
    assert Path(row.file_path).exists()


def test_headshot_ownership(client, session):
    owner = make_user(session, tokens=1)
    other = make_user(session, username="user_bob", email="bob@example.com")
    model = make_completed_model(session, owner)
    headshot_id = generate(client, owner, model.id).json()["id"]

    for method, path in [
        ("get", f"/api/headshots/{headshot_id}"),
        ("get", f"/api/headshots/{headshot_id}/image"),
        ("patch", f"/api/headshots/{headshot_id}/favorite"),
        ("delete", f"/api/headshots/{headshot_id}"),
    ]:
        r = client.request(method.upper(), path, headers=auth_headers(other))
        assert r.status_code == 403, path

    assert client.get("/api/headshots", headers=auth_headers(other)).json() == []


def test_list_and_image(client, session):
    user = make_user(session, tokens=2)
    model = make_completed_model(session, user)
    first = generate(client, user, model.id).json()["id"]
    second = generate(client, user, model.id, style="Fantasy").json()["id"]

    listed = client.get("/api/headshots", headers=auth_headers(user)).json()
    assert {h["id"] for h in listed} == {first, second}
    assert len(client.get("/api/headshots?limit=1", headers=auth_headers(user)).json()) == 1

    r = client.get(f"/api/headshots/{first}/image", headers=auth_headers(user))
    assert r.status_code == 200
    assert r.content == b"\x89PNG fake image"
