# app/core/replicate_client.py
"""
Thin wrapper around the Replicate SDK.

Services talk to `InferenceClient` instead of the `replicate` module so
tests can swap in a fake (see `app.dependencies.get_inference_client`).
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping

import replicate
from replicate.exceptions import ReplicateError
from replicate.webhook import WebhookSigningSecret, Webhooks

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Fixed sampling parameters for headshot generation
GENERATION_INPUT: dict[str, Any] = {
    "model": "dev",
    "go_fast": False,
    "lora_scale": 1,
    "megapixels": "1",
    "num_outputs": 1,
    "aspect_ratio": "1:1",
    "output_format": "png",
    "guidance_scale": 3,
    "output_quality": 80,
    "prompt_strength": 0.8,
    "extra_lora_scale": 1,
    "num_inference_steps": 28,
}

# LoRA trainer input; `input_images` is added per run
TRAINING_INPUT: dict[str, Any] = {
    "steps": 2000,
    "lora_rank": 20,
    "optimizer": "adamw8bit",
    "batch_size": 1,
    "resolution": "512,768,1024",
    "autocaption": True,
    "trigger_word": "TOK",
    "learning_rate": 0.0004,
    "wandb_project": "flux_train_replicate",
    "wandb_save_interval": 100,
    "caption_dropout_rate": 0.05,
    "cache_latents_to_disk": False,
    "wandb_sample_interval": 100,
    "gradient_checkpointing": False,
}

# Signed deliveries older than this are treated as replays
WEBHOOK_TOLERANCE_SECONDS = 300


class InferenceError(RuntimeError):
    """Prediction finished without a usable image."""


@dataclass(frozen=True)
class TrainingStatus:
    """Provider-side view of a training job."""

    id: str
    status: str
    version: str | None = None
    error: str | None = None
    logs: str | None = None


@dataclass(frozen=True)
class GenerationResult:
    image_url: str
    prediction_id: str


def _output_url(item: Any) -> str:
    """
    Normalize a run() output item to a URL string.

    Newer SDKs return FileOutput objects (with `.url`), older ones plain
    strings.
    """
    url = getattr(item, "url", item)
    if callable(url):
        url = url()
    return str(url).strip('"')


class InferenceClient:
    """
    Replicate operations used by the training and generation services.

    Every method raises `ReplicateError`, `InferenceError` or an httpx
    error on failure; callers decide how that maps to HTTP.
    """

    def __init__(
        self,
        api_token: str,
        owner: str,
        trainer: str,
        trainer_version: str,
        hardware: str,
        webhook_secret: str | None = None,
    ):
        self.client = replicate.Client(api_token=api_token)
        self.owner = owner
        self.trainer = trainer
        self.trainer_version = trainer_version
        self.hardware = hardware
        self.webhook_secret = webhook_secret

    def ensure_model(self, name: str) -> str:
        """
        Return the destination model name, creating it on first use.
        """
        try:
            model = self.client.models.get(f"{self.owner}/{name}")
            logger.info("Replicate model exists: %s/%s", self.owner, model.name)
            return model.name
        except ReplicateError as e:
            if getattr(e, "status", None) != 404:
                raise
        logger.info("Creating Replicate model %s/%s", self.owner, name)
        model = self.client.models.create(
            owner=self.owner,
            name=name,
            visibility="private",
            hardware=self.hardware,
        )
        return model.name

    def start_training(self, model_name: str, input_images_url: str, webhook_url: str) -> str:
        """Start a LoRA training run into `owner/model_name`; returns the training id."""
        training = self.client.trainings.create(
            model=self.trainer,
            version=self.trainer_version,
            destination=f"{self.owner}/{model_name}",
            webhook=webhook_url,
            # "completed" also covers failed and canceled
            webhook_events_filter=["completed", "logs"],
            input={**TRAINING_INPUT, "input_images": input_images_url},
        )
        return training.id

    def get_training(self, training_id: str) -> TrainingStatus:
        training = self.client.trainings.get(training_id)
        output = training.output or {}
        version = output.get("version") if isinstance(output, dict) else None
        return TrainingStatus(
            id=training.id,
            status=training.status,
            version=version,
            error=str(training.error) if training.error else None,
            logs=training.logs,
        )

    def generate(self, model_name: str, version_id: str, prompt: str) -> GenerationResult:
        """
        Run the trained model synchronously and return the first image.

        The returned URL is temporary (about an hour) on Replicate's side.
        """
        # Training output may carry "owner/model:hash"; the API wants the hash
        prediction = self.client.predictions.create(
            version=version_id.split(":")[-1],
            input={**GENERATION_INPUT, "prompt": prompt},
        )
        prediction.wait()
        if prediction.status != "succeeded":
            raise InferenceError(
                f"Prediction {prediction.id} {prediction.status}: {prediction.error}"
            )

        output = prediction.output
        if isinstance(output, list) and output:
            image_url = _output_url(output[0])
        elif output:
            image_url = _output_url(output)
        else:
            raise InferenceError(f"Prediction {prediction.id} returned no output")

        logger.info("Generated image for %s/%s: %s", self.owner, model_name, image_url)
        return GenerationResult(image_url=image_url, prediction_id=prediction.id)

    def verify_webhook(self, headers: Mapping[str, str], body: bytes) -> None:
        """
        Check the webhook-id / webhook-timestamp / webhook-signature headers
        of a training callback against the account's signing secret.

        Raises a `ValueError` subclass (`replicate.webhook.WebhookValidationError`
        for a bad or missing signature). Without a configured secret every
        delivery is accepted.
        """
        if not self.webhook_secret:
            logger.warning("REPLICATE_WEBHOOK_SECRET is not set; training webhook not verified")
            return
        Webhooks.validate(
            headers=dict(headers),
            body=body.decode("utf-8"),
            secret=WebhookSigningSecret(key=self.webhook_secret),
            tolerance=WEBHOOK_TOLERANCE_SECONDS,
        )


@lru_cache
def replicate_client() -> InferenceClient:
    """Process-wide Replicate client built from settings."""
    settings = get_settings()
    return InferenceClient(
        api_token=settings.REPLICATE_API_TOKEN,
        owner=settings.REPLICATE_OWNER,
        trainer=settings.REPLICATE_TRAINER,
        trainer_version=settings.REPLICATE_TRAINER_VERSION,
        hardware=settings.REPLICATE_HARDWARE,
        webhook_secret=settings.REPLICATE_WEBHOOK_SECRET,
    )
