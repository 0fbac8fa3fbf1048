"""SMTP email transport.

smtplib is blocking, so each send runs in a worker thread under an
anyio deadline. The caller sees either a message id or
ExternalServiceError.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

import anyio

from app.core.config import settings
from app.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

SERVICE_NAME = "email"


class SmtpEmailTransport:
    """Process-wide SMTP sender. Stateless between sends, safe to share."""

    def __init__(
        self,
        *,
        host: str | None = None,
        port: int | None = None,
        secure: bool | None = None,
        user: str | None = None,
        password: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        timeout: float | None = None,
    ):
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port if port is not None else settings.SMTP_PORT
        self.secure = secure if secure is not None else settings.SMTP_SECURE
        self.user = user if user is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASS
        self.from_email = (
            from_email if from_email is not None else (settings.SMTP_FROM_EMAIL or settings.SMTP_USER)
        )
        self.from_name = from_name if from_name is not None else settings.SMTP_FROM_NAME
        self.timeout = timeout if timeout is not None else settings.EMAIL_TIMEOUT_SECONDS

    @property
    def configured(self) -> bool:
        return bool(self.host and self.from_email)

    def build_message(self, to: str, subject: str, html: str, text: str | None = None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.from_name, self.from_email))
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid(domain=self.from_email.partition("@")[2] or None)
        message.set_content(text or "")
        message.add_alternative(html, subtype="html")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        if self.secure:
            client = smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=ssl.create_default_context()
            )
        else:
            client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with client:
            if not self.secure:
                client.ehlo()
                if client.has_extn("starttls"):
                    client.starttls(context=ssl.create_default_context())
                    client.ehlo()
            if self.user:
                client.login(self.user, self.password)
            client.send_message(message)

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> str:
        """
        Send one message and return its Message-ID.

        Raises:
            ExternalServiceError: unconfigured, SMTP failure or deadline exceeded
        """
        if not self.configured:
            raise ExternalServiceError("Email service not configured", service=SERVICE_NAME)

        message = self.build_message(to, subject, html, text)
        try:
            with anyio.fail_after(self.timeout):
                await anyio.to_thread.run_sync(self._deliver, message, abandon_on_cancel=True)
        except TimeoutError as exc:
            raise ExternalServiceError(
                f"Email send timed out after {self.timeout:g}s", service=SERVICE_NAME
            ) from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise ExternalServiceError(
                f"Email send failed: {exc.__class__.__name__}", service=SERVICE_NAME
            ) from exc

        message_id = message["Message-ID"]
        logger.info("Email sent message_id=%s", message_id)
        return message_id
