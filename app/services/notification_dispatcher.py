"""Notification dispatcher - email + SMS with per-channel outcomes.

Transport errors never escape ``dispatch``; they are folded into a
``DispatchResult`` that the caller writes to the notification ledger.
Dispatch happens after the originating transaction commits.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Iterable, Protocol

import anyio
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ExternalServiceError, ValidationError, field_error
from app.db.enums import Channel, NotificationTemplate
from app.db.models import NotificationLedger
from app.db.types import utcnow
from app.services import notification_templates
from app.services.email_transport import SmtpEmailTransport
from app.services.sms_transport import Msg91SmsTransport
from app.utils.normalization import normalize_indian_mobile

logger = logging.getLogger(__name__)

ALL_CHANNELS = frozenset({Channel.EMAIL, Channel.SMS})


class EmailTransport(Protocol):
    configured: bool

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> str: ...


class SmsTransport(Protocol):
    configured: bool

    async def send(
        self,
        phone: str,
        body: str,
        *,
        template: str | None = None,
        variables: dict[str, str] | None = None,
    ) -> str: ...


@dataclass
class ChannelOutcome:
    sent: bool = False
    error: str | None = None
    message_id: str | None = None
    attempted: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {"sent": self.sent, "error": self.error, "message_id": self.message_id}


@dataclass
class Recipient:
    email: str | None = None
    phone: str | None = None
    user_id: int | None = None


@dataclass
class NotificationJob:
    """One notification staged by a service for post-commit dispatch."""

    template: NotificationTemplate
    recipient: Recipient
    context: dict[str, Any]
    channels: frozenset[Channel] = ALL_CHANNELS
    enquiry_id: int | None = None
    created_by_admin_id: int | None = None


@dataclass
class DispatchResult:
    template: NotificationTemplate
    email: ChannelOutcome = field(default_factory=ChannelOutcome)
    sms: ChannelOutcome = field(default_factory=ChannelOutcome)

    def as_dict(self) -> dict[str, Any]:
        return {"email": self.email.as_dict(), "sms": self.sms.as_dict()}


def normalize_sms_phone(phone: str | None) -> str:
    """10-digit national form for the SMS gateway, or ValidationError."""
    try:
        return normalize_indian_mobile(phone)
    except ValueError as exc:
        raise ValidationError(
            "Invalid Indian mobile number",
            details=[field_error("phone", "Must be 10 digits starting with 6-9")],
        ) from exc


def summarize(results: Iterable[DispatchResult]) -> dict[str, dict[str, Any]] | None:
    """
    Fold several dispatches into one ``{email: {...}, sms: {...}}`` view.

    A channel counts as sent when it was attempted and every attempt
    succeeded. Returns None when nothing was dispatched.
    """
    results = list(results)
    if not results:
        return None

    summary: dict[str, dict[str, Any]] = {}
    for channel in Channel:
        outcomes = [getattr(r, channel.value) for r in results]
        attempted = [o for o in outcomes if o.attempted]
        errors = [o.error for o in attempted if o.error]
        summary[channel.value] = {
            "sent": bool(attempted) and all(o.sent for o in attempted),
            "error": "; ".join(errors) if errors else None,
        }
    return summary


class NotificationDispatcher:
    def __init__(self, email_transport: EmailTransport, sms_transport: SmsTransport):
        self.email_transport = email_transport
        self.sms_transport = sms_transport

    async def _send_email(
        self, template: NotificationTemplate, to: str | None, context: dict[str, Any]
    ) -> ChannelOutcome:
        outcome = ChannelOutcome(attempted=True)
        if not to:
            outcome.error = "No email recipient"
            return outcome
        if not self.email_transport.configured:
            outcome.error = "Email service not configured"
            logger.warning("Email transport unconfigured; template=%s not sent", template.value)
            return outcome

        rendered = notification_templates.render_email(template, context)
        try:
            with anyio.fail_after(settings.EMAIL_TIMEOUT_SECONDS):
                outcome.message_id = await self.email_transport.send(
                    to, rendered.subject, rendered.html, rendered.text
                )
            outcome.sent = True
        except TimeoutError:
            outcome.error = f"Email send timed out after {settings.EMAIL_TIMEOUT_SECONDS:g}s"
        except ExternalServiceError as exc:
            outcome.error = exc.message
        if outcome.error:
            logger.warning(
                "Notification channel failed channel=email template=%s error=%s",
                template.value,
                outcome.error,
            )
        return outcome

    async def _send_sms(
        self, template: NotificationTemplate, phone: str | None, context: dict[str, Any]
    ) -> ChannelOutcome:
        outcome = ChannelOutcome(attempted=True)
        if not phone:
            outcome.error = "No SMS recipient"
            return outcome
        if not self.sms_transport.configured:
            outcome.error = "SMS service not configured"
            logger.warning("SMS transport unconfigured; template=%s not sent", template.value)
            return outcome

        try:
            national = normalize_sms_phone(phone)
        except ValidationError as exc:
            outcome.error = exc.message
            logger.warning(
                "Notification channel failed channel=sms template=%s error=%s",
                template.value,
                outcome.error,
            )
            return outcome

        rendered = notification_templates.render_sms(template, context)
        try:
            with anyio.fail_after(settings.SMS_TIMEOUT_SECONDS):
                outcome.message_id = await self.sms_transport.send(
                    national,
                    rendered.body,
                    template=template.value,
                    variables=rendered.variables,
                )
            outcome.sent = True
        except TimeoutError:
            outcome.error = f"SMS send timed out after {settings.SMS_TIMEOUT_SECONDS:g}s"
        except ExternalServiceError as exc:
            outcome.error = exc.message
        if outcome.error:
            logger.warning(
                "Notification channel failed channel=sms template=%s error=%s",
                template.value,
                outcome.error,
            )
        return outcome

    async def dispatch(
        self,
        channels: Iterable[Channel],
        template: NotificationTemplate,
        recipient: Recipient,
        context: dict[str, Any],
    ) -> DispatchResult:
        """Send on each requested channel concurrently. Never raises for transport faults."""
        channels = set(channels)
        result = DispatchResult(template=template)

        async def run_email() -> None:
            result.email = await self._send_email(template, recipient.email, context)

        async def run_sms() -> None:
            result.sms = await self._send_sms(template, recipient.phone, context)

        async with anyio.create_task_group() as tg:
            if Channel.EMAIL in channels:
                tg.start_soon(run_email)
            if Channel.SMS in channels:
                tg.start_soon(run_sms)
        return result

    async def deliver(self, db: Session, jobs: Iterable[NotificationJob]) -> list[DispatchResult]:
        """Dispatch staged jobs one by one and record each in the ledger."""
        results = []
        for job in jobs:
            result = await self.dispatch(job.channels, job.template, job.recipient, job.context)
            record_ledger(db, job, result)
            results.append(result)
        return results


def record_ledger(db: Session, job: NotificationJob, result: DispatchResult) -> NotificationLedger | None:
    """Best-effort ledger write after dispatch. Failures are logged, not raised."""
    now = utcnow()
    row = NotificationLedger(
        template=job.template.value,
        enquiry_id=job.enquiry_id,
        user_id=job.recipient.user_id,
        created_by_admin_id=job.created_by_admin_id,
        email_sent=result.email.sent,
        email_error=result.email.error,
        email_message_id=result.email.message_id,
        email_sent_at=now if result.email.sent else None,
        sms_sent=result.sms.sent,
        sms_error=result.sms.error,
        sms_message_id=result.sms.message_id,
        sms_sent_at=now if result.sms.sent else None,
    )
    try:
        db.add(row)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Failed to record notification ledger template=%s enquiry_id=%s",
            job.template.value,
            job.enquiry_id,
        )
        return None
    return row


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher with the configured transports (FastAPI dependency)."""
    return NotificationDispatcher(SmtpEmailTransport(), Msg91SmsTransport())
