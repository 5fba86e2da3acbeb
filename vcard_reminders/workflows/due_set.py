"""Eligibility rules: which cards are due, and who receives them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo

from vcard_reminders.adapters.card_store import CardRepository, PersistenceError
from vcard_reminders.domain.models import BATCH_POLICY, AppointmentCard

logger = logging.getLogger(__name__)


def day_window(day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return ``[startOfDay, startOfNextDay)`` for ``day`` in ``tz``."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start, end


def resolve_batch_due_set(repository: CardRepository, day: date, tz: tzinfo) -> list[AppointmentCard]:
    """Unnotified cards due on the local calendar ``day``.

    A store read failure is logged and treated as an empty due-set.
    """
    start, end = day_window(day, tz)
    try:
        cards = repository.find_due_batch(start, end)
    except PersistenceError as exc:
        logger.error("Could not load due cards for %s: %s", day.isoformat(), exc)
        return []
    return [card for card in cards if not card.notified]


@dataclass(slots=True)
class ArmingPlan:
    upcoming: list[AppointmentCard] = field(default_factory=list)
    missed: list[AppointmentCard] = field(default_factory=list)


def plan_per_record_timers(repository: CardRepository, now: datetime) -> ArmingPlan:
    """Split unnotified cards into those still ahead of ``now`` and those already past due."""
    plan = ArmingPlan()
    try:
        cards = repository.find_all_unnotified()
    except PersistenceError as exc:
        logger.error("Could not load unnotified cards: %s", exc)
        return plan

    for card in cards:
        if card.notified:
            continue
        if card.due_at <= now:
            plan.missed.append(card)
        else:
            plan.upcoming.append(card)
    return plan


def resolve_recipient(
    repository: CardRepository,
    card: AppointmentCard,
    *,
    policy: str,
    default_phone_number: str = "",
) -> str | None:
    """Return the phone number to notify for ``card``, or None to skip it.

    Batch policy skips cards whose assignee has no directory phone. The
    per-record policy falls back to ``default_phone_number`` instead.
    """
    try:
        entry = repository.find_staff_by_assignee(card.assigned_to)
    except PersistenceError as exc:
        logger.error("Staff lookup failed for %s: %s", card.assigned_to, exc)
        entry = None

    phone = (entry.phone_number or "").strip() if entry else ""
    if phone:
        return phone

    if policy == BATCH_POLICY:
        logger.warning("No phone number found for %s, skipping card %s", card.assigned_to, card.id)
        return None

    fallback = default_phone_number.strip()
    if not fallback:
        logger.warning(
            "No phone number found for %s and no default configured, skipping card %s",
            card.assigned_to,
            card.id,
        )
        return None

    logger.warning("No phone number found for %s, using default number for card %s", card.assigned_to, card.id)
    return fallback
