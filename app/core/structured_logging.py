"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: int | None = None,
    enquiry_id: int | None = None,
    ticket_number: str | None = None,
    route: str | None = None,
    method: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict for ``extra=``.

    Only identifiers are accepted; names, emails and phones never belong here.
    """
    context: dict[str, Any] = {}
    if user_id is not None:
        context["user_id"] = user_id
    if enquiry_id is not None:
        context["enquiry_id"] = enquiry_id
    if ticket_number:
        context["ticket_number"] = ticket_number
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    return context
