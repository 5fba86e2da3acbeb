from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

from vcard_reminders.adapters.card_store import CardRepository, build_engine
from vcard_reminders.domain.models import BATCH_POLICY, PER_RECORD_POLICY
from vcard_reminders.workflows.due_set import (
    day_window,
    plan_per_record_timers,
    resolve_batch_due_set,
    resolve_recipient,
)

TZ = ZoneInfo("Asia/Kolkata")


def test_day_window_uses_local_midnights() -> None:
    start, end = day_window(date(2024, 6, 1), TZ)

    assert start.astimezone(UTC) == datetime(2024, 5, 31, 18, 30, tzinfo=UTC)
    assert end - start == timedelta(days=1)


def test_batch_due_set_excludes_cards_outside_local_day(repository: CardRepository) -> None:
    start, end = day_window(date(2024, 6, 1), TZ)
    today = repository.add_card(name="today", due_at=start + timedelta(hours=9), assigned_to="ravi")
    repository.add_card(name="yesterday", due_at=start - timedelta(minutes=1), assigned_to="ravi")
    repository.add_card(name="tomorrow", due_at=end, assigned_to="ravi")

    due = resolve_batch_due_set(repository, date(2024, 6, 1), TZ)

    assert [card.id for card in due] == [today.id]


def test_notified_cards_never_reenter_any_due_set(repository: CardRepository) -> None:
    start, _ = day_window(date(2024, 6, 1), TZ)
    card = repository.add_card(name="done", due_at=start + timedelta(hours=9), assigned_to="ravi")
    repository.update_notified(card.id, datetime.now(tz=UTC))

    assert resolve_batch_due_set(repository, date(2024, 6, 1), TZ) == []
    plan = plan_per_record_timers(repository, start)
    assert plan.upcoming == []
    assert plan.missed == []


def test_read_failure_yields_empty_due_set(tmp_path: Path) -> None:
    broken = CardRepository(build_engine(f"sqlite:///{tmp_path / 'no_schema.db'}"))

    assert resolve_batch_due_set(broken, date(2024, 6, 1), TZ) == []
    plan = plan_per_record_timers(broken, datetime.now(tz=UTC))
    assert plan.upcoming == [] and plan.missed == []


def test_per_record_plan_splits_past_and_future(repository: CardRepository) -> None:
    now = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)
    past = repository.add_card(name="past", due_at=now - timedelta(minutes=5), assigned_to="ravi")
    exact = repository.add_card(name="exact", due_at=now, assigned_to="ravi")
    future = repository.add_card(name="future", due_at=now + timedelta(minutes=5), assigned_to="ravi")

    plan = plan_per_record_timers(repository, now)

    assert [card.id for card in plan.missed] == [past.id, exact.id]
    assert [card.id for card in plan.upcoming] == [future.id]


def test_recipient_resolution_by_policy(repository: CardRepository) -> None:
    repository.add_staff("ravi", "+919999999999")
    repository.add_staff("blank", "")
    known = repository.add_card(name="a", due_at=datetime(2024, 6, 1, tzinfo=UTC), assigned_to="ravi")
    unknown = repository.add_card(name="b", due_at=datetime(2024, 6, 1, tzinfo=UTC), assigned_to="ghost")
    empty = repository.add_card(name="c", due_at=datetime(2024, 6, 1, tzinfo=UTC), assigned_to="blank")

    assert resolve_recipient(repository, known, policy=BATCH_POLICY) == "+919999999999"
    assert resolve_recipient(repository, unknown, policy=BATCH_POLICY, default_phone_number="+91000") is None
    assert resolve_recipient(repository, empty, policy=BATCH_POLICY) is None
    assert resolve_recipient(repository, unknown, policy=PER_RECORD_POLICY, default_phone_number="+91000") == "+91000"
    assert resolve_recipient(repository, unknown, policy=PER_RECORD_POLICY) is None
