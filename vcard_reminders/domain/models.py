from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

BATCH_POLICY = "batch"
PER_RECORD_POLICY = "per-record"
POLICIES = (BATCH_POLICY, PER_RECORD_POLICY)


@dataclass(slots=True)
class AppointmentCard:
    id: int
    name: str
    due_at: datetime
    assigned_to: str
    contact_number: str = ""
    note: str = ""
    notified: bool = False
    card_front: str = ""
    card_back: str = ""
    pinned: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(slots=True)
class StaffDirectoryEntry:
    assignee: str
    phone_number: str


@dataclass(slots=True)
class SendOutcome:
    success: bool
    data: Any = None
    error_message: str | None = None


@dataclass(slots=True)
class DispatchOutcome:
    card_id: int
    assignee: str
    status: str
    reason: str | None = None
    phone_number: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status in {"sent", "sent_unrecorded"}


@dataclass(slots=True)
class PassResult:
    outcomes: list[DispatchOutcome] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)
