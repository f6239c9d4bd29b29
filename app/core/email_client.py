# app/core/email_client.py
"""
Email client utilities.

Responsibilities:
  - Read SMTP configuration from settings.
  - Provide send_email(...) plus the training-complete notification.
  - Support both TLS (STARTTLS) and SSL connections.

Typical .env configuration (Gmail example with App Password):

    SMTP_HOST=smtp.gmail.com
    SMTP_PORT=465
    SMTP_USERNAME=no-reply@example.com
    SMTP_PASSWORD=<app password>
    SMTP_FROM_EMAIL=no-reply@example.com
    SMTP_FROM_NAME=Headshot AI
    SMTP_USE_TLS=false
    SMTP_USE_SSL=true
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from functools import lru_cache

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, settings: Settings):
        self.host = settings.SMTP_HOST
        self.port = settings.SMTP_PORT
        self.username = settings.SMTP_USERNAME
        self.password = settings.SMTP_PASSWORD
        # Fallback: if FROM_EMAIL is not set, default to username
        self.from_email = settings.SMTP_FROM_EMAIL or settings.SMTP_USERNAME or ""
        self.from_name = settings.SMTP_FROM_NAME
        self.use_tls = settings.SMTP_USE_TLS
        self.use_ssl = settings.SMTP_USE_SSL
        self.client_url = settings.CLIENT_URL.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self.host and self.username and self.password)

    def _create_smtp_client(self) -> smtplib.SMTP:
        """
        Create and return an SMTP client configured for TLS or SSL.

        Typical configs:
          * SSL: SMTP_PORT=465, SMTP_USE_SSL=true,  SMTP_USE_TLS=false
          * TLS: SMTP_PORT=587, SMTP_USE_SSL=false, SMTP_USE_TLS=true
        """
        if not self.host:
            raise RuntimeError("SMTP_HOST is not configured. Please set it in .env.")

        if self.use_ssl:
            server: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=30)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=30)
            if self.use_tls:
                server.starttls()

        return server

    def send_email(
        self,
        to_email: str,
        subject: str,
        text_body: str,
        html_body: str | None = None,
    ) -> None:
        """
        Send an email to a single recipient.

        Raises
        ------
        RuntimeError:
            If required SMTP configuration is missing.
        smtplib.SMTPException:
            If the underlying SMTP connection or send fails.
        """
        if not self.enabled:
            raise RuntimeError(
                "SMTP is not configured correctly. "
                "Please set SMTP_HOST, SMTP_USERNAME, and SMTP_PASSWORD in .env."
            )

        msg = EmailMessage()
        msg["From"] = (
            f"{self.from_name} <{self.from_email}>" if self.from_email else self.username
        )
        msg["To"] = to_email
        msg["Subject"] = subject

        # Always add a plain-text part
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")

        server = self._create_smtp_client()
        try:
            server.login(self.username, self.password)  # type: ignore[arg-type]
            server.send_message(msg)
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                # Connection is being torn down anyway.
                pass

    def send_model_completion_email(self, to_email: str, model_id: int) -> bool:
        """
        Tell the owner their model finished training.

        Best-effort: returns False (and logs) instead of raising, since the
        training result is already persisted when this runs.
        """
        if not self.enabled:
            logger.info("SMTP disabled; skipping completion email for model %s", model_id)
            return False

        link = f"{self.client_url}/generate/{model_id}"
        try:
            self.send_email(
                to_email=to_email,
                subject="Your AI Model Training is Complete!",
                text_body=(
                    "Your AI model has finished training and is ready to generate headshots.\n"
                    f"Start generating: {link}\n"
                ),
                html_body=(
                    "<h1>Your AI Model is Ready!</h1>"
                    "<p>Your AI model has finished training and is now ready to "
                    "generate headshots.</p>"
                    f'<p><a href="{link}">Click here to start generating headshots</a></p>'
                    "<p>Thank you for using Headshot AI!</p>"
                ),
            )
        except (RuntimeError, OSError, smtplib.SMTPException):
            logger.exception("Failed to send completion email for model %s", model_id)
            return False
        return True


@lru_cache
def mailer() -> Mailer:
    return Mailer(get_settings())
