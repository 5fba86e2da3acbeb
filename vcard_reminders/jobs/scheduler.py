"""Scheduler process for the reminder jobs.

Run separately from the web process using:
    python -m vcard_reminders.jobs.scheduler
"""

from __future__ import annotations

import argparse
import logging
from datetime import datetime

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.base import BaseScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from vcard_reminders.domain.models import BATCH_POLICY
from vcard_reminders.jobs.tasks import Runtime, arm_card_timers, build_runtime, run_single_pass, scheduled_batch_send
from vcard_reminders.utils.logging import configure_logging

BATCH_JOB_ID = "batch_daily_send"
ARM_JOB_ID = "arm_card_timers"

logger = logging.getLogger(__name__)


def _log_job_state(scheduler: BaseScheduler, runtime: Runtime, event: JobExecutionEvent) -> None:
    """Log last and next run metadata for observability."""
    tz = runtime.config.timezone
    job = scheduler.get_job(event.job_id)
    job_next_run = getattr(job, "next_run_time", None) if job else None
    next_run = job_next_run.isoformat() if job_next_run else "none"
    last_run_at = (
        event.scheduled_run_time.astimezone(tz).isoformat()
        if event.scheduled_run_time
        else datetime.now(tz=tz).isoformat()
    )

    if event.exception:
        logger.error(
            "Job %s failed at %s; next run at %s",
            event.job_id,
            last_run_at,
            next_run,
            exc_info=event.exception,
        )
        return

    logger.info("Job %s completed at %s; next run at %s", event.job_id, last_run_at, next_run)


def build_scheduler(runtime: Runtime, scheduler: BaseScheduler | None = None) -> BaseScheduler:
    """Register the daily trigger for the configured mode on ``scheduler``."""
    config = runtime.config
    tz = config.timezone
    scheduler = scheduler or BlockingScheduler(timezone=tz)

    trigger = CronTrigger(hour=config.daily_time.hour, minute=config.daily_time.minute, timezone=tz)
    if config.schedule_mode == BATCH_POLICY:
        job_id = BATCH_JOB_ID
        scheduler.add_job(
            scheduled_batch_send,
            trigger=trigger,
            args=[runtime, scheduler],
            id=job_id,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=1800,
        )
    else:
        job_id = ARM_JOB_ID
        scheduler.add_job(
            arm_card_timers,
            trigger=trigger,
            args=[runtime, scheduler],
            id=job_id,
            replace_existing=True,
            coalesce=True,
            misfire_grace_time=1800,
            next_run_time=datetime.now(tz=tz),
        )

    scheduler.add_listener(
        lambda event: _log_job_state(scheduler, runtime, event),
        EVENT_JOB_EXECUTED | EVENT_JOB_ERROR,
    )

    next_run = trigger.get_next_fire_time(None, datetime.now(tz=tz))
    logger.info(
        "Registered %s for %s %s (next run: %s)",
        job_id,
        config.daily_time.strftime("%H:%M"),
        tz.key,
        next_run.isoformat() if next_run else "none",
    )

    return scheduler


def main() -> None:
    """Entrypoint for a dedicated scheduler process."""
    parser = argparse.ArgumentParser(description="Run the reminder scheduler")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Dispatch today's due cards once and exit (manual mode)",
    )
    args = parser.parse_args()

    configure_logging()
    runtime = build_runtime()

    if args.once:
        logger.info("Running in manual mode: dispatching today's cards once")
        result = run_single_pass(runtime)
        logger.info("Manual pass completed: %s", result.summary)
        return

    scheduler = build_scheduler(runtime)
    logger.info("Starting scheduler process (mode=%s)", runtime.config.schedule_mode)
    scheduler.start()


if __name__ == "__main__":
    main()
