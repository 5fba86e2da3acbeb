"""Card dispatch: resolve recipient, send, record the notified transition."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime, tzinfo
from typing import Callable

from vcard_reminders.adapters.card_store import CardRepository, PersistenceError
from vcard_reminders.adapters.message_gateway import DEFAULT_SOURCE, Gateway
from vcard_reminders.domain.messages import format_reminder
from vcard_reminders.domain.models import (
    BATCH_POLICY,
    PER_RECORD_POLICY,
    AppointmentCard,
    DispatchOutcome,
    PassResult,
)
from vcard_reminders.reporting.summary import compute_summary
from vcard_reminders.utils.locks import CardLocks
from vcard_reminders.utils.logging import get_structured_logger, log_dispatch_event
from vcard_reminders.workflows.due_set import resolve_recipient

ATTEMPTED_STATUSES = ("sent", "sent_unrecorded", "failed")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class DispatchEngine:
    def __init__(
        self,
        repository: CardRepository,
        gateway: Gateway,
        *,
        tz: tzinfo | None = None,
        default_phone_number: str = "",
        send_delay_seconds: float = 3.0,
        dry_run: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Clock = _utc_now,
        locks: CardLocks | None = None,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.tz = tz
        self.default_phone_number = default_phone_number
        self.send_delay_seconds = send_delay_seconds
        self.dry_run = dry_run
        self._sleep = sleep
        self._clock = clock
        self._locks = locks or CardLocks()
        self._events = get_structured_logger()

    def run_pass(self, cards: list[AppointmentCard], *, policy: str = BATCH_POLICY) -> PassResult:
        """Dispatch ``cards`` one after another, pausing after every send attempt."""
        outcomes: list[DispatchOutcome] = []
        for card in cards:
            outcome = self.dispatch(card, policy=policy)
            outcomes.append(outcome)
            if outcome.status in ATTEMPTED_STATUSES and self.send_delay_seconds > 0:
                self._sleep(self.send_delay_seconds)

        return PassResult(outcomes=outcomes, summary=compute_summary(outcomes, total_cards=len(cards)))

    def dispatch(self, card: AppointmentCard, *, policy: str = BATCH_POLICY) -> DispatchOutcome:
        return self.dispatch_by_id(card.id, policy=policy)

    def dispatch_by_id(self, card_id: int, *, policy: str = PER_RECORD_POLICY) -> DispatchOutcome:
        """Reload the card under its lock and dispatch it unless already handled.

        The reload means a second attempt on the same card, concurrent or
        late, sees ``notified`` and never sends again.
        """
        with self._locks.for_card(card_id):
            try:
                card = self.repository.find_card(card_id)
            except PersistenceError as exc:
                return self._finish(
                    DispatchOutcome(card_id=card_id, assignee="", status="failed", reason="store_unavailable"),
                    policy=policy,
                    message="Card reload failed",
                    error_message=str(exc),
                    level=logging.ERROR,
                )
            if card is None:
                return self._finish(
                    DispatchOutcome(card_id=card_id, assignee="", status="skipped", reason="card_missing"),
                    policy=policy,
                    message="Card no longer exists",
                    level=logging.WARNING,
                )
            if card.notified:
                return self._finish(
                    DispatchOutcome(
                        card_id=card.id,
                        assignee=card.assigned_to,
                        status="skipped",
                        reason="already_notified",
                    ),
                    policy=policy,
                    message="Card already notified",
                )
            return self._dispatch_locked(card, policy=policy)

    def _dispatch_locked(self, card: AppointmentCard, *, policy: str) -> DispatchOutcome:
        base = {"card_id": card.id, "assignee": card.assigned_to}

        phone = resolve_recipient(
            self.repository,
            card,
            policy=policy,
            default_phone_number=self.default_phone_number,
        )
        if phone is None:
            return self._finish(
                DispatchOutcome(**base, status="skipped", reason="no_recipient"),
                policy=policy,
                message="No recipient phone number",
                level=logging.WARNING,
            )

        if self.dry_run:
            return self._finish(
                DispatchOutcome(**base, status="skipped", reason="dry_run", phone_number=phone),
                policy=policy,
                message="Dry-run: send skipped",
            )

        message = format_reminder(card.assigned_to, card.due_at, card.contact_number, tz=self.tz)
        log_dispatch_event(
            self._events,
            workflow_step=policy,
            status="attempted",
            message="Attempting send",
            **base,
        )

        try:
            result = self.gateway.send(message, phone, source=DEFAULT_SOURCE)
        except Exception as exc:  # broad so one card never aborts the pass
            return self._finish(
                DispatchOutcome(**base, status="failed", reason="transport_error", phone_number=phone),
                policy=policy,
                message="Send raised exception",
                error_message=str(exc),
                level=logging.ERROR,
            )

        if not result.success:
            return self._finish(
                DispatchOutcome(**base, status="failed", reason="gateway_rejected", phone_number=phone),
                policy=policy,
                message="Send failed",
                error_message=result.error_message,
                level=logging.ERROR,
            )

        try:
            updated = self.repository.update_notified(card.id, self._clock())
        except PersistenceError as exc:
            return self._finish(
                DispatchOutcome(**base, status="sent_unrecorded", reason="persist_failed", phone_number=phone),
                policy=policy,
                message="Sent but notified flag not stored",
                error_message=str(exc),
                level=logging.ERROR,
            )
        if not updated:
            return self._finish(
                DispatchOutcome(**base, status="sent_unrecorded", reason="not_updated", phone_number=phone),
                policy=policy,
                message="Sent but card was missing or already notified",
                level=logging.WARNING,
            )

        return self._finish(
            DispatchOutcome(**base, status="sent", phone_number=phone),
            policy=policy,
            message="Send succeeded",
        )

    def _finish(
        self,
        outcome: DispatchOutcome,
        *,
        policy: str,
        message: str,
        error_message: str | None = None,
        level: int = logging.INFO,
    ) -> DispatchOutcome:
        log_dispatch_event(
            self._events,
            workflow_step=policy,
            card_id=outcome.card_id,
            assignee=outcome.assignee,
            status=outcome.status,
            message=message,
            error_code=outcome.reason.upper() if outcome.status == "failed" and outcome.reason else None,
            error_message=error_message,
            level=level,
        )
        return outcome
