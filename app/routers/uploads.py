# app/routers/uploads.py
from fastapi import APIRouter, Depends, File, Response, UploadFile
from fastapi.responses import FileResponse
from sqlmodel import Session

from app.core.auth import require_auth
from app.database import get_session
from app.dependencies import get_upload_service
from app.models.user import User
from app.schemas.photo import PhotoRead
from app.services.upload_service import UploadService, parse_ids

router = APIRouter(prefix="/uploads", tags=["Uploads"])
archive_router = APIRouter(prefix="/photos", tags=["Uploads"])


@router.post("", response_model=list[PhotoRead], status_code=201)
def upload_photos(
    files: list[UploadFile] = File(...),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: UploadService = Depends(get_upload_service),
):
    """
    Upload training photos (multipart field `files`).

    Limits:
      - up to 20 files per request
      - JPEG / PNG / WEBP / HEIC, max 5MB each
    """
    payload = [(f.filename or "photo", f.content_type, f.file.read()) for f in files]
    return service.upload(session, current_user, payload)


@router.get("", response_model=list[PhotoRead])
def list_photos(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: UploadService = Depends(get_upload_service),
):
    return service.list_photos(session, current_user)


@router.delete("")
def delete_all_photos(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: UploadService = Depends(get_upload_service),
):
    deleted = service.delete_all(session, current_user)
    return {"success": True, "deleted": deleted}


@router.delete("/{photo_id}", status_code=204)
def delete_photo(
    photo_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: UploadService = Depends(get_upload_service),
):
    service.delete_photo(session, current_user, photo_id)
    return Response(status_code=204)


@router.get("/{photo_id}/preview")
def preview_photo(
    photo_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: UploadService = Depends(get_upload_service),
):
    """Serve the owner's photo file (403 for others, 404 if the file is gone)."""
    return FileResponse(service.preview_path(session, current_user, photo_id))


@archive_router.get("/zip/{user_id}")
def photo_archive(
    user_id: int,
    token: str,
    ids: str | None = None,
    session: Session = Depends(get_session),
    service: UploadService = Depends(get_upload_service),
):
    """
    Zip of a user's photos, downloaded by the trainer.

    Auth is the short-lived archive token embedded in the URL.
    """
    data = service.build_archive(session, user_id, token, parse_ids(ids))
    return Response(
        content=data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="user_{user_id}_photos.zip"'},
    )
