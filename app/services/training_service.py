# app/services/training_service.py
import logging
import re
import threading
import time
from typing import Callable
from urllib.parse import parse_qs, urlparse

from sqlmodel import Session

from app.core.auth import create_archive_token
from app.core.config import Settings
from app.core.email_client import Mailer
from app.core.errors import (
    Forbidden,
    InsufficientTokens,
    NotFound,
    UpstreamProviderError,
    ValidationError,
)
from app.core.replicate_client import InferenceClient
from app.models.payment import TX_REFUND, TX_TRAIN_MODEL
from app.models.training import (
    TrainedModel,
    STATUS_CANCELED,
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_TRAINING,
    TERMINAL_STATUSES,
)
from app.models.user import User
from app.repositories.model_repo import ModelRepository
from app.repositories.payment_repo import PaymentRepository
from app.repositories.photo_repo import PhotoRepository
from app.repositories.user_repo import UserRepository
from app.schemas.training import (
    ModelStatusRead,
    TrainRequest,
    TrainResponse,
    TrainingWebhookPayload,
)
from app.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

# Provider statuses that end a training run
PROVIDER_TERMINAL = frozenset({"succeeded", "failed", "canceled"})

# The trainer's tqdm lines are prefixed with the wandb project name
PROGRESS_MARKER = "flux_train_replicate"
PROGRESS_WINDOW = 20
_PERCENT_RE = re.compile(r"(\d{1,3})%")


def extract_progress(logs: str | None, window: int = PROGRESS_WINDOW) -> int | None:
    """
    Best-effort training progress from provider logs.

    Only the last `window` lines are scanned; the most recent line that
    carries the trainer marker and a "NN%" wins. None when nothing matches.
    """
    if not logs:
        return None
    lines = logs.splitlines()[-window:]
    for line in reversed(lines):
        if PROGRESS_MARKER not in line:
            continue
        match = _PERCENT_RE.search(line)
        if match:
            return min(int(match.group(1)), 100)
    return None


def model_id_from_webhook_url(url: str | None) -> int | None:
    """Our webhook URLs carry the model id as `?modelId=<id>`."""
    if not url:
        return None
    values = parse_qs(urlparse(url).query).get("modelId")
    if not values:
        return None
    try:
        return int(values[0])
    except ValueError:
        return None


def status_message(model: TrainedModel) -> str | None:
    if model.status == STATUS_FAILED:
        return model.error or "Training failed"
    if model.status == STATUS_CANCELED:
        return model.error or "Training was canceled"
    if model.status == STATUS_TRAINING:
        return "Model is training..."
    if model.status == STATUS_COMPLETED:
        return "Training completed successfully"
    return None


class TrainingService:
    """
    Training job lifecycle: training -> completed | failed | canceled.

    Two writers race to finish a job: the Replicate webhook and a backup
    poller thread. Both go through finalize(), whose status flip is a
    compare-and-set on status='training'; only the writer that wins the
    flip sends the email or refunds the tokens.
    """

    def __init__(
        self,
        model_repo: ModelRepository,
        photo_repo: PhotoRepository,
        user_repo: UserRepository,
        payment_repo: PaymentRepository,
        ledger: LedgerService,
        inference: InferenceClient,
        mailer: Mailer,
        settings: Settings,
        session_factory: Callable[[], Session],
        start_poller: Callable[[int, str], None] | None = None,
    ):
        self.model_repo = model_repo
        self.photo_repo = photo_repo
        self.user_repo = user_repo
        self.payment_repo = payment_repo
        self.ledger = ledger
        self.inference = inference
        self.mailer = mailer
        self.settings = settings
        self.session_factory = session_factory
        self.start_poller = start_poller or self._start_poller_thread

    # -------- URLs handed to Replicate --------

    def _base_url(self) -> str:
        return self.settings.PUBLIC_BASE_URL.rstrip("/") + self.settings.API_PREFIX

    def webhook_url(self, model_id: int) -> str:
        return f"{self._base_url()}/webhooks/training-complete?modelId={model_id}"

    def archive_url(self, user_id: int, photo_ids: list[int]) -> str:
        ids = ",".join(str(i) for i in photo_ids)
        token = create_archive_token(user_id)
        return f"{self._base_url()}/photos/zip/{user_id}?token={token}&ids={ids}"

    # -------- User-facing operations --------

    def submit(self, session: Session, user: User, payload: TrainRequest) -> TrainResponse:
        """
        Start a training run.

        Steps:
          1. Keep only photo ids owned by the caller; at least one required.
          2. Admission check on the training cost (402).
          3. Get or create the user's destination model on Replicate.
          4. Insert the Model row in "training".
          5. Charge the cost and start the Replicate training; a failed
             start refunds the charge and marks the row failed.
          6. Store the training id and start the backup poller.
        """
        photos = [
            p for p in self.photo_repo.list_by_ids(session, payload.photo_ids)
            if p.user_id == user.id
        ]
        if not photos:
            raise ValidationError("No valid photos provided")

        cost = self.settings.TRAINING_COST_TOKENS
        self.ledger.check_balance(session, user.id, cost)

        try:
            model_name = self.inference.ensure_model(user.username)
        except Exception:
            logger.exception("Failed to get/create Replicate model for user %s", user.id)
            raise UpstreamProviderError("Failed to start model training")

        model = self.model_repo.create(
            session,
            TrainedModel(
                user_id=user.id,
                replicate_model_id=model_name,
                status=STATUS_TRAINING,
            ),
        )
        model_id = model.id

        try:
            with self.ledger.charged(
                session,
                user.id,
                cost,
                TX_TRAIN_MODEL,
                reference_id=model_id,
                metadata={"action": "train", "photos": len(photos)},
                refund_reason="training_submission_failed",
            ):
                training_id = self.inference.start_training(
                    model_name,
                    self.archive_url(user.id, [p.id for p in photos]),
                    self.webhook_url(model_id),
                )
        except InsufficientTokens:
            # Balance dropped between the admission check and the charge
            self._abort(session, model_id, "Insufficient tokens")
            raise
        except Exception as e:
            logger.exception("Failed to start training for model %s", model_id)
            self._abort(session, model_id, f"Failed to start training: {e}")
            raise UpstreamProviderError("Failed to start model training - tokens refunded")

        model = self.model_repo.get_by_id(session, model_id)
        model.replicate_training_id = training_id
        self.model_repo.update(session, model)
        logger.info("Training %s started for model %s (user %s)", training_id, model_id, user.id)

        if self.settings.TRAINING_POLL_ENABLED:
            self.start_poller(model_id, training_id)

        return TrainResponse(id=model_id, status=STATUS_TRAINING, message="Model training started")

    def get_model(self, session: Session, user: User, model_id: int) -> ModelStatusRead:
        model = self._get_owned(session, user, model_id)
        return ModelStatusRead(**model.model_dump(), message=status_message(model))

    def list_models(self, session: Session, user: User) -> list[TrainedModel]:
        return self.model_repo.list_for_user(session, user.id)

    # -------- Provider callbacks --------

    def handle_webhook(self, session: Session, payload: TrainingWebhookPayload) -> TrainedModel:
        """
        Apply a Replicate training webhook.

        - progress is refreshed from the log tail while training
        - terminal statuses are finalized (idempotent)
        """
        model_id = model_id_from_webhook_url(payload.webhook)
        if model_id is None:
            raise ValidationError("Missing modelId in webhook URL")

        model = self.model_repo.get_by_id(session, model_id)
        if model is None:
            raise NotFound("Model not found")

        progress = extract_progress(payload.logs)
        if progress is not None:
            self.model_repo.set_progress(session, model_id, progress)
            session.commit()

        if payload.status == "succeeded":
            version = self._fetch_version(model, payload)
            self.finalize(session, model_id, "succeeded", version=version)
        elif payload.status in ("failed", "canceled"):
            error = str(payload.error) if payload.error else None
            self.finalize(session, model_id, payload.status, error=error)

        session.refresh(model)
        return model

    def finalize(
        self,
        session: Session,
        model_id: int,
        provider_status: str,
        *,
        error: str | None = None,
        version: str | None = None,
    ) -> bool:
        """
        Move a training job to its terminal state exactly once.

        Returns True when this call performed the transition. Side effects
        (email on success, refund on failure/cancel) run only then.
        """
        status = STATUS_COMPLETED if provider_status == "succeeded" else provider_status
        if status not in TERMINAL_STATUSES:
            raise ValueError(f"Not a terminal status: {provider_status}")

        model = self.model_repo.get_by_id(session, model_id)
        if model is None:
            raise NotFound("Model not found")
        user_id = model.user_id

        if status == STATUS_COMPLETED:
            changed = self.model_repo.finish(
                session, model_id, STATUS_COMPLETED, version_id=version, progress=100
            )
            session.commit()
            if changed:
                logger.info("Model %s completed (version %s)", model_id, version)
                self._notify_completed(session, user_id, model_id)
            return changed

        if status == STATUS_CANCELED:
            message = "Training was canceled - tokens refunded"
        else:
            message = f"Training failed: {error or 'Unknown error'} - tokens refunded"

        changed = self.model_repo.finish(session, model_id, status, error=message)
        if changed:
            refund = self.payment_repo.charged_amount(session, TX_TRAIN_MODEL, model_id)
            if refund > 0:
                # Status flip and refund commit together
                self.ledger.add(
                    session,
                    user_id,
                    refund,
                    TX_REFUND,
                    reference_id=model_id,
                    metadata={"reason": f"training_{status}"},
                    commit=False,
                )
            logger.info("Model %s %s; refunded %s tokens", model_id, status, refund)
        session.commit()
        return changed

    def poll(
        self,
        model_id: int,
        training_id: str,
        max_attempts: int | None = None,
        interval: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> str:
        """
        Backup status poller for when the webhook never arrives.

        Each attempt opens its own DB session. Stops as soon as the row is
        terminal (webhook won) or the provider reports a terminal status
        (poller finalizes). Exhausting the budget fails the job with a
        timeout error, which refunds like any other failure.

        Returns the model's final status as seen by the poller.
        """
        attempts = max_attempts or self.settings.TRAINING_POLL_MAX_ATTEMPTS
        delay = self.settings.TRAINING_POLL_INTERVAL_SECONDS if interval is None else interval

        for attempt in range(1, attempts + 1):
            with self.session_factory() as session:
                model = self.model_repo.get_by_id(session, model_id)
                if model is None:
                    logger.error("Poller: model %s not found", model_id)
                    return "missing"
                if model.status in TERMINAL_STATUSES:
                    logger.info("Poller: model %s already %s", model_id, model.status)
                    return model.status

                try:
                    remote = self.inference.get_training(training_id)
                except Exception:
                    logger.exception("Poller: failed to fetch training %s (attempt %s)", training_id, attempt)
                else:
                    if remote.status in PROVIDER_TERMINAL:
                        status, error = remote.status, remote.error
                        if status == "succeeded" and not remote.version:
                            # A completed row without a version can never generate
                            logger.error("Poller: training %s succeeded without a version", training_id)
                            status, error = STATUS_FAILED, "no model version in training output"
                        self.finalize(
                            session,
                            model_id,
                            status,
                            error=error,
                            version=remote.version,
                        )
                        session.refresh(model)
                        return model.status

                    progress = extract_progress(remote.logs)
                    if progress is not None:
                        self.model_repo.set_progress(session, model_id, progress)
                        session.commit()

            if attempt < attempts:
                sleep(delay)

        logger.error("Poller: training %s timed out after %s attempts", training_id, attempts)
        with self.session_factory() as session:
            self.finalize(
                session,
                model_id,
                STATUS_FAILED,
                error=f"status polling timed out after {attempts} attempts",
            )
            model = self.model_repo.get_by_id(session, model_id)
            return model.status if model else "missing"

    # -------- Helpers --------

    def _start_poller_thread(self, model_id: int, training_id: str) -> None:
        thread = threading.Thread(
            target=self._poll_safely,
            args=(model_id, training_id),
            name=f"training-poller-{model_id}",
            daemon=True,
        )
        thread.start()

    def _poll_safely(self, model_id: int, training_id: str) -> None:
        try:
            self.poll(model_id, training_id)
        except Exception:
            logger.exception("Poller for model %s crashed", model_id)

    def _get_owned(self, session: Session, user: User, model_id: int) -> TrainedModel:
        model = self.model_repo.get_by_id(session, model_id)
        if model is None:
            raise NotFound("Model not found")
        if model.user_id != user.id:
            raise Forbidden("Access denied")
        return model

    def _abort(self, session: Session, model_id: int, error: str) -> None:
        """Fail a job that never started on the provider (no refund here)."""
        session.rollback()
        self.model_repo.finish(session, model_id, STATUS_FAILED, error=error)
        session.commit()

    def _fetch_version(self, model: TrainedModel, payload: TrainingWebhookPayload) -> str:
        """Finalized version id, from the provider, else from the webhook body."""
        if model.replicate_training_id:
            try:
                version = self.inference.get_training(model.replicate_training_id).version
            except Exception:
                logger.exception("Failed to fetch training %s", model.replicate_training_id)
            else:
                if version:
                    return version
        output = payload.output
        if isinstance(output, dict) and output.get("version"):
            return output["version"]
        raise UpstreamProviderError("Could not resolve trained model version")

    def _notify_completed(self, session: Session, user_id: int, model_id: int) -> None:
        user = self.user_repo.get_by_id(session, user_id)
        if user and user.email:
            self.mailer.send_model_completion_email(user.email, model_id)
