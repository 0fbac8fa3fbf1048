"""Notification templates.

Pure functions of a context dict. Email templates return subject + HTML,
SMS templates return a body plus the variables the MSG91 flow API expects.
Every interpolated value is HTML-escaped in email bodies.
"""

import html
import re
from dataclasses import dataclass, field
from typing import Any, Callable

from app.core.config import settings
from app.db.enums import NotificationTemplate

REQUIREMENTS_PREVIEW_CHARS = 200


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str

    @property
    def text(self) -> str:
        """Plain-text alternative for multipart messages."""
        stripped = re.sub(r"<[^>]+>", " ", self.html)
        return html.unescape(re.sub(r"\s+", " ", stripped)).strip()


@dataclass(frozen=True)
class RenderedSms:
    body: str
    variables: dict[str, str] = field(default_factory=dict)


def _e(value: Any) -> str:
    return html.escape("" if value is None else str(value))


def _preview(text: str | None) -> str:
    text = text or ""
    if len(text) <= REQUIREMENTS_PREVIEW_CHARS:
        return text
    return text[:REQUIREMENTS_PREVIEW_CHARS] + "..."


def _layout(heading: str, body: str) -> str:
    company = _e(settings.COMPANY_NAME)
    support = _e(settings.SUPPORT_EMAIL)
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="text-align: center; margin-bottom: 30px;">
    <h1 style="color: #2c3e50;">{company}</h1>
    <p style="color: #7f8c8d;">{_e(heading)}</p>
  </div>
  {body}
  <hr style="border: none; border-top: 1px solid #dee2e6; margin: 30px 0;">
  <div style="text-align: center; color: #6c757d; font-size: 14px;">
    <p>Need help? Contact our support team at {support}</p>
    <p>This is an automated message, please do not reply to this email.</p>
  </div>
</div>
""".strip()


# =============================================================================
# Account verification
# =============================================================================

def verification_url(token: str) -> str:
    return f"{settings.FRONTEND_URL}/verify-email?token={token}"


def account_verification_email(ctx: dict[str, Any]) -> RenderedEmail:
    url = _e(verification_url(ctx["token"]))
    ticket = ctx.get("ticket_number")
    ticket_line = (
        f"<p>Your enquiry <strong>{_e(ticket)}</strong> has been received.</p>" if ticket else ""
    )
    body = f"""
  <p>Hello {_e(ctx.get("name"))},</p>
  <p>Welcome to {_e(settings.COMPANY_NAME)}! Please verify your email address to activate your account.</p>
  {ticket_line}
  <div style="text-align: center; margin: 30px 0;">
    <a href="{url}" style="background: #007bff; color: white; padding: 15px 30px; text-decoration: none; border-radius: 25px; display: inline-block; font-weight: bold;">Verify Email Address</a>
  </div>
  <p>Or copy and paste this link into your browser:</p>
  <p style="word-break: break-all; background: #e9ecef; padding: 10px; border-radius: 4px; font-family: monospace;">{url}</p>
  <p>We have also sent a verification code to your phone.</p>
  <p>If you didn't request this, please ignore this email.</p>
"""
    return RenderedEmail(
        subject=f"Welcome to {settings.COMPANY_NAME} - Verify Your Email",
        html=_layout("Email Verification Required", body),
    )


def account_verification_sms(ctx: dict[str, Any]) -> RenderedSms:
    code = str(ctx["code"])
    return RenderedSms(
        body=(
            f"Your verification OTP for {settings.COMPANY_NAME} is {code}. "
            "Valid for 10 minutes. Do not share with anyone."
        ),
        variables={"otp": code, "company": settings.COMPANY_NAME},
    )


# =============================================================================
# Agent assignment
# =============================================================================

def agent_dashboard_url() -> str:
    return f"{settings.FRONTEND_URL}/agent/dashboard"


def agent_enquiry_assignment_email(ctx: dict[str, Any]) -> RenderedEmail:
    ticket = ctx.get("ticket_number") or "Ticket"
    client_phone = ctx.get("client_phone")
    call_button = (
        f'<a href="tel:{_e(client_phone)}" style="background: #28a745; color: white; padding: 15px 30px; '
        f'text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold;">Call Client</a>'
        if client_phone
        else ""
    )
    body = f"""
  <div style="background: #f8f9fa; padding: 25px; border-radius: 8px; margin: 20px 0;">
    <h3 style="color: #495057; margin-top: 0;">New Enquiry Assigned</h3>
    <table style="width: 100%; border-collapse: collapse;">
      <tr><td style="padding: 8px 0; font-weight: bold;">Agent:</td><td>{_e(ctx.get("agent_name"))}</td></tr>
      <tr><td style="padding: 8px 0; font-weight: bold;">Ticket:</td><td style="font-family: monospace;">{_e(ticket)}</td></tr>
      <tr><td style="padding: 8px 0; font-weight: bold;">Client:</td><td>{_e(ctx.get("client_name"))}</td></tr>
      <tr><td style="padding: 8px 0; font-weight: bold;">Property:</td><td>{_e(ctx.get("property_title") or "General enquiry")}</td></tr>
      <tr><td style="padding: 8px 0; font-weight: bold;">Requirements:</td><td style="line-height: 1.6;">{_e(_preview(ctx.get("requirements")))}</td></tr>
    </table>
  </div>
  <div style="text-align: center; margin: 30px 0;">
    <a href="{_e(agent_dashboard_url())}" style="background: #007bff; color: white; padding: 15px 30px; text-decoration: none; border-radius: 5px; display: inline-block; font-weight: bold; margin-right: 10px;">View Dashboard</a>
    {call_button}
  </div>
"""
    return RenderedEmail(
        subject=f"New Enquiry Assigned - {ticket} | {settings.COMPANY_NAME}",
        html=_layout("Professional Real Estate Services", body),
    )


def agent_enquiry_assignment_sms(ctx: dict[str, Any]) -> RenderedSms:
    client = ctx.get("client_name") or ""
    prop = ctx.get("property_title") or "General enquiry"
    contact = ctx.get("client_phone") or ""
    return RenderedSms(
        body=(
            f"New enquiry assigned! Client: {client}, Property: {prop}, "
            f"Contact: {contact}. Login to view: {agent_dashboard_url()}"
        ),
        variables={"client": client, "property": prop, "contact": contact},
    )


EMAIL_TEMPLATES: dict[NotificationTemplate, Callable[[dict[str, Any]], RenderedEmail]] = {
    NotificationTemplate.ACCOUNT_VERIFICATION: account_verification_email,
    NotificationTemplate.AGENT_ENQUIRY_ASSIGNMENT: agent_enquiry_assignment_email,
}

SMS_TEMPLATES: dict[NotificationTemplate, Callable[[dict[str, Any]], RenderedSms]] = {
    NotificationTemplate.ACCOUNT_VERIFICATION: account_verification_sms,
    NotificationTemplate.AGENT_ENQUIRY_ASSIGNMENT: agent_enquiry_assignment_sms,
}


def render_email(template: NotificationTemplate, context: dict[str, Any]) -> RenderedEmail:
    return EMAIL_TEMPLATES[template](context)


def render_sms(template: NotificationTemplate, context: dict[str, Any]) -> RenderedSms:
    return SMS_TEMPLATES[template](context)
