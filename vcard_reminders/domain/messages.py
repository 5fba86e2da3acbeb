"""Outbound reminder text."""

from __future__ import annotations

from datetime import datetime, tzinfo


def format_calendar_date(value: datetime, tz: tzinfo | None = None) -> str:
    """Render ``value`` as ``day/month/year`` without zero padding."""
    local = value.astimezone(tz) if tz is not None and value.tzinfo is not None else value
    return f"{local.day}/{local.month}/{local.year}"


def format_reminder(
    recipient_name: str,
    due_at: datetime,
    contact_number: str | None = None,
    *,
    tz: tzinfo | None = None,
) -> str:
    """Build the reminder message sent through the gateway.

    The customer contact sentence is only included when a non-blank
    number is given.
    """
    lines = [
        f"Dear *{recipient_name}*,",
        "",
        f"This is a reminder that your appointment is scheduled on *{format_calendar_date(due_at, tz)}*.",
    ]
    contact = (contact_number or "").strip()
    if contact:
        lines.extend(["", f"Customer contact number is {contact}."])
    return "\n".join(lines)
