# tests/test_uploads.py
import io
import zipfile
from pathlib import Path

from app.core.auth import create_archive_token
from app.models.photo import UploadedPhoto
from conftest import auth_headers, make_user

JPEG = b"\xff\xd8\xff\xe0 fake jpeg"


def upload(client, user, files):
    return client.post("/api/uploads", files=files, headers=auth_headers(user))


def jpeg(name="me.jpg", data=JPEG, content_type="image/jpeg"):
    return ("files", (name, data, content_type))


def test_upload_list_preview_delete(client, session, data_dir):
    user = make_user(session)

    r = upload(client, user, [jpeg("a.jpg"), jpeg("b.png", content_type="image/png")])
    assert r.status_code == 201, r.text
    photos = r.json()
    assert [p["filename"] for p in photos] == ["a.jpg", "b.png"]
    assert all(p["file_size"] == len(JPEG) for p in photos)
    assert "path" not in photos[0]

    user_dir = data_dir / "uploads" / str(user.id)
    assert len(list(user_dir.iterdir())) == 2

    listed = client.get("/api/uploads", headers=auth_headers(user)).json()
    assert {p["id"] for p in listed} == {p["id"] for p in photos}

    r = client.get(f"/api/uploads/{photos[0]['id']}/preview", headers=auth_headers(user))
    assert r.status_code == 200
    assert r.content == JPEG

    r = client.delete(f"/api/uploads/{photos[0]['id']}", headers=auth_headers(user))
    assert r.status_code == 204
    assert len(list(user_dir.iterdir())) == 1

    r = client.delete("/api/uploads", headers=auth_headers(user))
    assert r.json() == {"success": True, "deleted": 1}
    assert list(user_dir.iterdir()) == []
    assert client.get("/api/uploads", headers=auth_headers(user)).json() == []


def test_upload_rejects_bad_type(client, session, data_dir):
    user = make_user(session)

    r = upload(client, user, [jpeg(), jpeg("notes.txt", b"hello", "text/plain")])

    assert r.status_code == 400
    assert not (data_dir / "uploads" / str(user.id)).exists()


def test_upload_rejects_large_file(client, session):
    user = make_user(session)
    big = b"\xff" * (5 * 1024 * 1024 + 1)

    assert upload(client, user, [jpeg("big.jpg", big)]).status_code == 400


def test_upload_rejects_too_many_files(client, session):
    user = make_user(session)

    r = upload(client, user, [jpeg(f"{i}.jpg") for i in range(21)])

    assert r.status_code == 400
    assert "Too many files" in r.json()["detail"]


def test_upload_requires_auth(client):
    assert client.post("/api/uploads", files=[jpeg()]).status_code == 401


def test_other_users_cannot_touch_photos(client, session):
    owner = make_user(session)
    other = make_user(session, username="user_bob", email="bob@example.com")
    photo_id = upload(client, owner, [jpeg()]).json()[0]["id"]

    assert client.get(f"/api/uploads/{photo_id}/preview", headers=auth_headers(other)).status_code == 403
    assert client.delete(f"/api/uploads/{photo_id}", headers=auth_headers(other)).status_code == 403
    assert client.get("/api/uploads/999/preview", headers=auth_headers(owner)).status_code == 404


def test_preview_missing_file_is_404(client, session):
    user = make_user(session)
    photo_id = upload(client, user, [jpeg()]).json()[0]["id"]

    Path(session.get(UploadedPhoto, photo_id).path).unlink()

    assert client.get(f"/api/uploads/{photo_id}/preview", headers=auth_headers(user)).status_code == 404


def test_photo_archive(client, session):
    user = make_user(session)
    photos = upload(client, user, [jpeg("a.jpg"), jpeg("b.jpg"), jpeg("c.jpg")]).json()
    token = create_archive_token(user.id)

    r = client.get(f"/api/photos/zip/{user.id}?token={token}")
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/zip"
    with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
        names = zf.namelist()
    assert len(names) == 3
    assert all(name.endswith(("a.jpg", "b.jpg", "c.jpg")) for name in names)

    ids = f"{photos[0]['id']},{photos[2]['id']}"
    r = client.get(f"/api/photos/zip/{user.id}?token={token}&ids={ids}")
    with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
        assert len(zf.namelist()) == 2


def test_photo_archive_token_checks(client, session):
    user = make_user(session)
    other = make_user(session, username="user_bob", email="bob@example.com")
    upload(client, user, [jpeg()])

    foreign = create_archive_token(other.id)
    assert client.get(f"/api/photos/zip/{user.id}?token={foreign}").status_code == 403
    assert client.get(f"/api/photos/zip/{user.id}?token=garbage").status_code == 401
    assert client.get(f"/api/photos/zip/{user.id}").status_code == 422
