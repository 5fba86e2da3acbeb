"""Bounded re-dispatch of cards still due after a batch pass.

Each chain owns a ``RetrySession``; two chains never share a counter.
The wait between passes is handed to a ``defer`` callable so the
scheduler can run it as a one-shot job instead of a blocking sleep.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable

from vcard_reminders.domain.models import AppointmentCard, PassResult

DEFAULT_RETRY_CEILING = 3
DEFAULT_BACKOFF_SECONDS = 3600.0

logger = logging.getLogger(__name__)

Resolver = Callable[[date], list[AppointmentCard]]
PassRunner = Callable[[list[AppointmentCard]], PassResult]
Defer = Callable[[float, Callable[[], None]], None]


@dataclass(slots=True)
class RetrySession:
    run_date: date
    ceiling: int = DEFAULT_RETRY_CEILING
    attempts: int = 0
    passes: int = 0
    state: str = "running"

    @property
    def finished(self) -> bool:
        return self.state != "running"


def run_immediately(_delay: float, callback: Callable[[], None]) -> None:
    callback()


class RetryCoordinator:
    def __init__(
        self,
        *,
        resolver: Resolver,
        run_pass: PassRunner,
        defer: Defer = run_immediately,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
    ) -> None:
        self._resolver = resolver
        self._run_pass = run_pass
        self._defer = defer
        self.backoff_seconds = backoff_seconds

    def start(self, session: RetrySession) -> RetrySession:
        """Run the initial pass for ``session.run_date`` and begin the retry chain."""
        self._pass(session)
        self.follow_up(session)
        return session

    def follow_up(self, session: RetrySession) -> None:
        remaining = self._resolver(session.run_date)
        if not remaining:
            session.state = "completed"
            if session.attempts:
                logger.info("All reminders for %s sent after %s retries", session.run_date, session.attempts)
            else:
                logger.info("No retries needed for %s, all reminders sent", session.run_date)
            return

        if session.attempts >= session.ceiling:
            session.state = "exhausted"
            logger.warning(
                "Max retries reached for %s; %s reminders were not sent",
                session.run_date,
                len(remaining),
            )
            return

        session.attempts += 1
        logger.warning(
            "%s reminders pending for %s, retrying in %ss (attempt %s/%s)",
            len(remaining),
            session.run_date,
            self.backoff_seconds,
            session.attempts,
            session.ceiling,
        )
        self._defer(self.backoff_seconds, lambda: self._retry(session))

    def _retry(self, session: RetrySession) -> None:
        self._pass(session)
        self.follow_up(session)

    def _pass(self, session: RetrySession) -> PassResult:
        cards = self._resolver(session.run_date)
        session.passes += 1
        if not cards:
            logger.info("No reminders due for %s", session.run_date)
            return PassResult()
        result = self._run_pass(cards)
        logger.info(
            "Pass %s for %s: attempted=%s successful=%s skipped=%s failed=%s",
            session.passes,
            session.run_date,
            result.summary.get("attempted_sends", 0),
            result.summary.get("successful_sends", 0),
            result.summary.get("skipped", {}).get("total", 0),
            result.summary.get("failed", {}).get("total", 0),
        )
        return result
