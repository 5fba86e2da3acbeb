from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from vcard_reminders import cli
from vcard_reminders.adapters.card_store import CardRepository
from vcard_reminders.jobs import tasks

from conftest import FakeGateway


@pytest.fixture
def seeded_db(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> CardRepository:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("REMINDER_TIMEZONE", "UTC")
    monkeypatch.setenv("REMINDER_SEND_DELAY_SECONDS", "0")
    monkeypatch.setenv("WHATSAPP_API_URL", "https://gateway.test/send")
    monkeypatch.setenv("WHATSAPP_API_TOKEN", "token-123")
    repository = CardRepository.from_url(url)
    repository.add_staff("ravi", "+919999999999")
    repository.add_card(name="Alice", due_at=datetime(2024, 6, 1, 10, tzinfo=UTC), assigned_to="ravi")
    return repository


def test_run_dry_run_writes_summary_without_sending(seeded_db: CardRepository, tmp_path: Path) -> None:
    summary = tmp_path / "out" / "summary.json"

    code = cli.main(["run", "--date", "2024-06-01", "--summary-out", str(summary)])

    assert code == 0
    payload = json.loads(summary.read_text())
    assert payload["mode"] == "dry-run"
    assert payload["summary"]["skipped"]["reasons"] == {"dry_run": 1}
    assert seeded_db.find_all_unnotified() != []


def test_run_confirm_send_marks_cards(
    seeded_db: CardRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    gateway = FakeGateway()
    real_build_runtime = tasks.build_runtime

    def build_with_fake_gateway(config, **kwargs):
        return real_build_runtime(config, gateway=gateway, **kwargs)

    monkeypatch.setattr(cli, "build_runtime", build_with_fake_gateway)

    code = cli.main(["run", "--mode", "confirm-send", "--date", "2024-06-01"])

    assert code == 0
    assert len(gateway.calls) == 1
    assert seeded_db.find_all_unnotified() == []


def test_run_requires_known_mode() -> None:
    with pytest.raises(SystemExit):
        cli.main(["run", "--mode", "maybe"])
