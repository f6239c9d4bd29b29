# app/routers/webhooks.py
import logging

from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from app.core.errors import Unauthorized
from app.core.replicate_client import InferenceClient
from app.database import get_session
from app.dependencies import get_inference_client, get_training_service
from app.schemas.training import TrainingWebhookPayload
from app.services.training_service import TrainingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def verify_replicate_signature(
    request: Request,
    inference: InferenceClient = Depends(get_inference_client),
) -> None:
    """Reject training callbacks that Replicate did not sign (401)."""
    body = await request.body()
    try:
        inference.verify_webhook(request.headers, body)
    except ValueError as e:
        logger.warning("Rejected training webhook %s: %s", request.url.query, e)
        raise Unauthorized("Invalid webhook signature")


@router.post("/training-complete", dependencies=[Depends(verify_replicate_signature)])
def training_complete(
    payload: TrainingWebhookPayload,
    request: Request,
    session: Session = Depends(get_session),
    service: TrainingService = Depends(get_training_service),
):
    """
    Replicate training callback (log updates and the final status).

    The model id comes from the `modelId` query parameter we put on the
    webhook URL; Replicate echoes the full URL back in `webhook` too.
    """
    if "modelId" in request.query_params:
        payload.webhook = str(request.url)
    model = service.handle_webhook(session, payload)
    return {"success": True, "status": model.status, "progress": model.progress}
