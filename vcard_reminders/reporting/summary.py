"""Pass summary aggregation."""

from __future__ import annotations

from collections import Counter
from typing import Any

from vcard_reminders.domain.models import DispatchOutcome

DELIVERED_STATUSES = ("sent", "sent_unrecorded")


def compute_summary(outcomes: list[DispatchOutcome], total_cards: int) -> dict[str, Any]:
    """Compute aggregate stats for one dispatch pass."""
    status_counts = Counter(outcome.status for outcome in outcomes)
    delivered = sum(status_counts.get(status, 0) for status in DELIVERED_STATUSES)
    attempted_sends = delivered + status_counts.get("failed", 0)

    skipped_reasons = Counter(
        outcome.reason or "unknown" for outcome in outcomes if outcome.status == "skipped"
    )
    failed_reasons = Counter(
        outcome.reason or "unknown" for outcome in outcomes if outcome.status == "failed"
    )

    return {
        "total_cards": total_cards,
        "attempted_sends": attempted_sends,
        "successful_sends": delivered,
        "unrecorded_sends": status_counts.get("sent_unrecorded", 0),
        "skipped": {
            "total": status_counts.get("skipped", 0),
            "reasons": dict(skipped_reasons),
        },
        "failed": {
            "total": status_counts.get("failed", 0),
            "reasons": dict(failed_reasons),
        },
    }
