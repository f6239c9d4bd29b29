# app/routers/headshots.py
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import FileResponse
from sqlmodel import Session

from app.core.auth import require_auth
from app.database import get_session
from app.dependencies import get_headshot_service
from app.models.user import User
from app.schemas.headshot import GenerateRequest, HeadshotRead
from app.services.headshot_service import HeadshotService

router = APIRouter(prefix="/headshots", tags=["Headshots"])


@router.post("/generate", response_model=HeadshotRead)
def generate_headshot(
    payload: GenerateRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: HeadshotService = Depends(get_headshot_service),
):
    """
    Generate one headshot (1 token).

    Errors:
      - 400 model not completed (nothing charged)
      - 402 not enough tokens
      - 502 provider failure (token refunded)
    """
    return service.generate(session, current_user, payload)


@router.get("", response_model=list[HeadshotRead])
def list_headshots(
    limit: int | None = Query(default=None, ge=1, le=500),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: HeadshotService = Depends(get_headshot_service),
):
    return service.list_headshots(session, current_user, limit)


@router.get("/{headshot_id}", response_model=HeadshotRead)
def get_headshot(
    headshot_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: HeadshotService = Depends(get_headshot_service),
):
    return service.get_headshot(session, current_user, headshot_id)


@router.get("/{headshot_id}/image")
def headshot_image(
    headshot_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: HeadshotService = Depends(get_headshot_service),
):
    return FileResponse(
        service.image_path(session, current_user, headshot_id),
        media_type="image/png",
    )


@router.patch("/{headshot_id}/favorite", response_model=HeadshotRead)
def toggle_favorite(
    headshot_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: HeadshotService = Depends(get_headshot_service),
):
    return service.toggle_favorite(session, current_user, headshot_id)


@router.delete("/{headshot_id}", status_code=204)
def delete_headshot(
    headshot_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: HeadshotService = Depends(get_headshot_service),
):
    """Archive to deleted_headshots, then remove the row and its image file."""
    service.delete_headshot(session, current_user, headshot_id)
    return Response(status_code=204)
