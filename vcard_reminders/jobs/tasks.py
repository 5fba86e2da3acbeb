"""Task functions executed by the scheduler."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable

from apscheduler.schedulers.base import BaseScheduler
from apscheduler.triggers.date import DateTrigger

from vcard_reminders.adapters.card_store import CardRepository
from vcard_reminders.adapters.message_gateway import Gateway, MessageGateway
from vcard_reminders.config import ReminderConfig, resolve_config
from vcard_reminders.domain.models import PER_RECORD_POLICY, DispatchOutcome, PassResult
from vcard_reminders.workflows.dispatch import DispatchEngine
from vcard_reminders.workflows.due_set import plan_per_record_timers, resolve_batch_due_set
from vcard_reminders.workflows.retry import Defer, RetryCoordinator, RetrySession, run_immediately

logger = logging.getLogger(__name__)

CARD_JOB_PREFIX = "card"


@dataclass(slots=True)
class Runtime:
    config: ReminderConfig
    repository: CardRepository
    gateway: Gateway
    engine: DispatchEngine


def build_runtime(
    config: ReminderConfig | None = None,
    *,
    repository: CardRepository | None = None,
    gateway: Gateway | None = None,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> Runtime:
    """Wire the store, gateway and dispatch engine from configuration."""
    config = config or resolve_config()
    repository = repository or CardRepository.from_url(config.database_url)
    gateway = gateway or MessageGateway(
        api_url=config.gateway_url,
        api_token=config.gateway_token,
        timeout=config.gateway_timeout,
    )
    engine = DispatchEngine(
        repository,
        gateway,
        tz=config.timezone,
        default_phone_number=config.default_phone_number,
        send_delay_seconds=config.send_delay_seconds,
        dry_run=dry_run,
        sleep=sleep,
    )
    return Runtime(config=config, repository=repository, gateway=gateway, engine=engine)


def local_today(config: ReminderConfig, now: datetime | None = None) -> date:
    current = now or datetime.now(tz=config.timezone)
    return current.astimezone(config.timezone).date()


def run_single_pass(runtime: Runtime, *, run_date: date | None = None) -> PassResult:
    """Dispatch the batch due-set for one day once, without a retry chain."""
    target = run_date or local_today(runtime.config)
    cards = resolve_batch_due_set(runtime.repository, target, runtime.config.timezone)
    logger.info("Loaded %s due cards for %s", len(cards), target.isoformat())
    return runtime.engine.run_pass(cards)


def batch_daily_send(
    runtime: Runtime,
    *,
    run_date: date | None = None,
    defer: Defer = run_immediately,
) -> RetrySession:
    """Run the daily batch pass and its retry chain."""
    config = runtime.config
    session = RetrySession(run_date=run_date or local_today(config), ceiling=config.retry_ceiling)
    coordinator = RetryCoordinator(
        resolver=lambda day: resolve_batch_due_set(runtime.repository, day, config.timezone),
        run_pass=runtime.engine.run_pass,
        defer=defer,
        backoff_seconds=config.retry_backoff_seconds,
    )
    logger.info("Running batch reminder job for %s", session.run_date.isoformat())
    return coordinator.start(session)


def scheduler_defer(scheduler: BaseScheduler, runtime: Runtime) -> Defer:
    """Return a ``Defer`` that runs the callback as a one-shot scheduler job."""

    def _defer(delay: float, callback: Callable[[], None]) -> None:
        run_at = datetime.now(tz=runtime.config.timezone) + timedelta(seconds=delay)
        scheduler.add_job(
            callback,
            trigger=DateTrigger(run_date=run_at, timezone=runtime.config.timezone),
            name="batch_retry",
            misfire_grace_time=None,
        )

    return _defer


def scheduled_batch_send(runtime: Runtime, scheduler: BaseScheduler) -> RetrySession:
    return batch_daily_send(runtime, defer=scheduler_defer(scheduler, runtime))


def card_job_id(card_id: int, attempt: int) -> str:
    return f"{CARD_JOB_PREFIX}:{card_id}:{attempt}"


def has_pending_timer(scheduler: BaseScheduler, card_id: int) -> bool:
    prefix = f"{CARD_JOB_PREFIX}:{card_id}:"
    return any(job.id.startswith(prefix) for job in scheduler.get_jobs())


def _arm_card(
    runtime: Runtime,
    scheduler: BaseScheduler,
    card_id: int,
    run_at: datetime,
    attempt: int,
) -> None:
    scheduler.add_job(
        fire_card_timer,
        trigger=DateTrigger(run_date=run_at, timezone=runtime.config.timezone),
        args=[runtime, scheduler, card_id, attempt],
        id=card_job_id(card_id, attempt),
        replace_existing=True,
        misfire_grace_time=None,
    )


def arm_card_timers(
    runtime: Runtime,
    scheduler: BaseScheduler,
    *,
    now: datetime | None = None,
) -> list[int]:
    """Arm one timer per unnotified card; returns the ids armed by this call.

    Cards that already have a pending timer are left alone. Cards whose due
    time has passed are dropped or fired now, per the missed-card policy.
    """
    now = now or datetime.now(tz=runtime.config.timezone)
    plan = plan_per_record_timers(runtime.repository, now)
    armed: list[int] = []

    for card in plan.missed:
        if has_pending_timer(scheduler, card.id):
            continue
        if runtime.config.missed_policy == "fire":
            logger.warning("Card %s was due at %s; firing now", card.id, card.due_at.isoformat())
            _arm_card(runtime, scheduler, card.id, now, attempt=1)
            armed.append(card.id)
        else:
            logger.warning("Card %s was due at %s; not sending stale reminder", card.id, card.due_at.isoformat())

    for card in plan.upcoming:
        if has_pending_timer(scheduler, card.id):
            continue
        _arm_card(runtime, scheduler, card.id, card.due_at, attempt=1)
        armed.append(card.id)

    logger.info(
        "Armed %s card timers (%s upcoming, %s missed)",
        len(armed),
        len(plan.upcoming),
        len(plan.missed),
    )
    return armed


def fire_card_timer(
    runtime: Runtime,
    scheduler: BaseScheduler,
    card_id: int,
    attempt: int = 1,
) -> DispatchOutcome:
    """Dispatch one card; on failure re-arm it after the backoff until the ceiling."""
    outcome = runtime.engine.dispatch_by_id(card_id, policy=PER_RECORD_POLICY)
    if outcome.status != "failed":
        return outcome

    retries_used = attempt - 1
    if retries_used >= runtime.config.retry_ceiling:
        logger.warning("Max retries reached for card %s after %s attempts", card_id, attempt)
        return outcome

    run_at = datetime.now(tz=runtime.config.timezone) + timedelta(seconds=runtime.config.retry_backoff_seconds)
    _arm_card(runtime, scheduler, card_id, run_at, attempt=attempt + 1)
    logger.warning(
        "Card %s failed (%s), retrying at %s (attempt %s/%s)",
        card_id,
        outcome.reason,
        run_at.isoformat(),
        attempt,
        runtime.config.retry_ceiling,
    )
    return outcome
