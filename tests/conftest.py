from __future__ import annotations

from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from vcard_reminders.adapters.card_store import CardRepository
from vcard_reminders.config import ReminderConfig
from vcard_reminders.domain.models import SendOutcome
from vcard_reminders.jobs.tasks import Runtime, build_runtime

TZ = ZoneInfo("Asia/Kolkata")


class FakeGateway:
    """Records every send; fails for phones listed in ``failing``."""

    def __init__(self, *, failing: set[str] | None = None, raise_for: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.raise_for = raise_for or set()
        self.calls: list[dict[str, str]] = []

    def send(self, message: str, phone_number: str, source: str = "vcard") -> SendOutcome:
        self.calls.append({"message": message, "phone_number": phone_number, "source": source})
        if phone_number in self.raise_for:
            raise ConnectionError("gateway down")
        if phone_number in self.failing:
            return SendOutcome(success=False, error_message="rejected")
        return SendOutcome(success=True, data={"id": len(self.calls)})


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def repository(tmp_path: Path) -> CardRepository:
    return CardRepository.from_url(f"sqlite:///{tmp_path / 'cards.db'}")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def config() -> ReminderConfig:
    return ReminderConfig(
        database_url="sqlite://",
        gateway_url="https://gateway.test/send",
        gateway_token="token-123",
        default_phone_number="+910000000000",
        daily_time=time(8, 30),
        timezone=TZ,
        send_delay_seconds=3.0,
        retry_ceiling=3,
        retry_backoff_seconds=3600.0,
    )


@pytest.fixture
def runtime(
    config: ReminderConfig,
    repository: CardRepository,
    gateway: FakeGateway,
    sleeper: RecordingSleep,
) -> Runtime:
    return build_runtime(config, repository=repository, gateway=gateway, sleep=sleeper)
