# app/core/notifier.py
import logging

import httpx

from app.core.config import get_settings

logger = logging.getLogger(__name__)


def send_discord_notification(message: str) -> None:
    """
    Post a message to the ops Discord channel, if one is configured.

    Never raises: a failed notification must not fail the request.
    """
    url = get_settings().DISCORD_WEBHOOK_URL
    if not url:
        return
    try:
        r = httpx.post(url, json={"content": message}, timeout=5.0)
        r.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Failed to send Discord notification: %s", e)
