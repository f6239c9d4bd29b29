# app/routers/training.py
from fastapi import APIRouter, Depends
from sqlmodel import Session

from app.core.auth import require_auth
from app.database import get_session
from app.dependencies import get_training_service
from app.models.user import User
from app.schemas.training import ModelRead, ModelStatusRead, TrainRequest, TrainResponse
from app.services.training_service import TrainingService

router = APIRouter(prefix="/models", tags=["Models"])


@router.post("/train", response_model=TrainResponse)
def train_model(
    payload: TrainRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: TrainingService = Depends(get_training_service),
):
    """
    Start training a personal model from uploaded photos.

    Costs 6 tokens; a failed start is refunded. Completion arrives later
    through the Replicate webhook (or the backup poller).
    """
    return service.submit(session, current_user, payload)


@router.get("", response_model=list[ModelRead])
def list_models(
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: TrainingService = Depends(get_training_service),
):
    return service.list_models(session, current_user)


@router.get("/{model_id}", response_model=ModelStatusRead)
def get_model(
    model_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_auth),
    service: TrainingService = Depends(get_training_service),
):
    """Model status with progress and a readable message."""
    return service.get_model(session, current_user, model_id)
