# app/services/headshot_service.py
import logging
from typing import Mapping

import httpx
from sqlmodel import Session

from app.core import storage_utils
from app.core.config import Settings
from app.core.errors import (
    Forbidden,
    InsufficientTokens,
    NotFound,
    UpstreamProviderError,
    ValidationError,
)
from app.core.prompts import STYLE_PROMPTS, build_prompt
from app.core.replicate_client import InferenceClient
from app.models.headshot import Headshot
from app.models.payment import TX_GENERATE_HEADSHOT
from app.models.training import STATUS_COMPLETED
from app.models.user import User
from app.repositories.headshot_repo import HeadshotRepository
from app.repositories.model_repo import ModelRepository
from app.schemas.headshot import GenerateRequest
from app.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)


def download_image(url: str) -> bytes:
    """Fetch a provider image; provider URLs expire, so we keep our own copy."""
    r = httpx.get(url, timeout=60.0, follow_redirects=True)
    r.raise_for_status()
    return r.content


class HeadshotService:
    """
    Business logic for generated headshots.

    Responsibilities:
      - charge one token per generation, refund on any failure
      - keep a durable local copy of every generated image
      - ownership checks on every read / mutation
    """

    def __init__(
        self,
        headshot_repo: HeadshotRepository,
        model_repo: ModelRepository,
        ledger: LedgerService,
        inference: InferenceClient,
        settings: Settings,
        prompts: Mapping[str, str] = STYLE_PROMPTS,
        fetch_image=download_image,
    ):
        self.headshot_repo = headshot_repo
        self.model_repo = model_repo
        self.ledger = ledger
        self.inference = inference
        self.settings = settings
        self.prompts = prompts
        self.fetch_image = fetch_image

    # ----- Generation -----

    def generate(self, session: Session, user: User, payload: GenerateRequest) -> Headshot:
        """
        Generate one headshot from a completed model.

        Order matters: the model checks run before any charge, so a
        rejected request never touches the balance.
        """
        model = self.model_repo.get_by_id(session, payload.model_id)
        if model is None:
            raise NotFound("Model not found")
        if model.user_id != user.id:
            raise Forbidden("Access denied")
        if model.status != STATUS_COMPLETED or not model.replicate_version_id:
            raise ValidationError("Model is not ready")

        cost = self.settings.GENERATION_COST_TOKENS
        self.ledger.check_balance(session, user.id, cost)

        model_id = model.id
        model_name = model.replicate_model_id
        version_id = model.replicate_version_id
        created: list[int] = []

        try:
            with self.ledger.charged(
                session,
                user.id,
                cost,
                TX_GENERATE_HEADSHOT,
                reference_id=model_id,
                metadata={
                    "style": payload.style,
                    "gender": payload.gender,
                    "prompt": payload.prompt,
                },
                refund_reason="generation_failed",
            ):
                try:
                    headshot = self._run(session, user, payload, model_id, model_name, version_id, created)
                except Exception:
                    self._discard(session, created)
                    raise
        except InsufficientTokens:
            # Balance dropped between the admission check and the charge
            raise
        except Exception:
            logger.exception("Headshot generation failed for user %s, model %s", user.id, model_id)
            raise UpstreamProviderError("Failed to generate headshot - token refunded")

        return headshot

    def _run(
        self,
        session: Session,
        user: User,
        payload: GenerateRequest,
        model_id: int,
        model_name: str,
        version_id: str,
        created: list[int],
    ) -> Headshot:
        prompt = build_prompt(payload.style, payload.gender, payload.prompt, self.prompts)
        result = self.inference.generate(model_name, version_id, prompt)
        image = self.fetch_image(result.image_url)

        headshot = self.headshot_repo.create(
            session,
            Headshot(
                user_id=user.id,
                model_id=model_id,
                style=payload.style,
                image_url=result.image_url,
                replicate_prediction_id=result.prediction_id,
                prompt=prompt,
                meta={"gender": payload.gender, "custom_prompt": payload.prompt},
            ),
        )
        created.append(headshot.id)

        path = storage_utils.user_dir(storage_utils.GENERATED, user.id) / f"headshot_{headshot.id}.png"
        headshot.file_path = storage_utils.save_bytes(path, image)
        return self.headshot_repo.update(session, headshot)

    def _discard(self, session: Session, created: list[int]) -> None:
        """Drop a half-made headshot row so a refunded generation leaves nothing behind."""
        session.rollback()
        for headshot_id in created:
            headshot = self.headshot_repo.get_by_id(session, headshot_id)
            if headshot is not None:
                storage_utils.delete_file(headshot.file_path)
                session.delete(headshot)
        session.commit()

    # ----- Reads / mutations -----

    def list_headshots(self, session: Session, user: User, limit: int | None = None) -> list[Headshot]:
        return self.headshot_repo.list_for_user(session, user.id, limit=limit)

    def get_headshot(self, session: Session, user: User, headshot_id: int) -> Headshot:
        """
        Raises:
            NotFound (404), Forbidden (403).
        """
        headshot = self.headshot_repo.get_by_id(session, headshot_id)
        if headshot is None:
            raise NotFound("Headshot not found")
        if headshot.user_id != user.id:
            raise Forbidden("Access denied")
        return headshot

    def toggle_favorite(self, session: Session, user: User, headshot_id: int) -> Headshot:
        headshot = self.get_headshot(session, user, headshot_id)
        headshot.favorite = not headshot.favorite
        return self.headshot_repo.update(session, headshot)

    def delete_headshot(self, session: Session, user: User, headshot_id: int) -> None:
        """
        Archive then delete.

        The archive row and the delete share one commit. The image file
        stays on disk; the archived row keeps pointing at it.
        """
        headshot = self.get_headshot(session, user, headshot_id)
        self.headshot_repo.archive_and_delete(session, headshot)
        logger.info("Headshot %s deleted by user %s", headshot_id, user.id)

    def image_path(self, session: Session, user: User, headshot_id: int) -> str:
        headshot = self.get_headshot(session, user, headshot_id)
        path = headshot.file_path
        if not path or not storage_utils.is_within_data_dir(path):
            raise NotFound("Image not found")
        if not storage_utils.file_exists(path):
            raise NotFound("Image not found")
        return path
