"""Structured JSON logging helpers for dispatch events."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

PROCESS_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: int = logging.INFO) -> None:
    """Configure process-wide logging for scheduler and server modes."""
    logging.basicConfig(level=level, format=PROCESS_LOG_FORMAT)


class JsonFormatter(logging.Formatter):
    """Format log records as JSON with the dispatch event fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "workflow_step": getattr(record, "workflow_step", "unknown"),
            "card_id": getattr(record, "card_id", None),
            "assignee": mask_name(getattr(record, "assignee", "")),
            "status": getattr(record, "status", record.levelname.lower()),
        }

        error_code = getattr(record, "error_code", None)
        error_message = getattr(record, "error_message", None)
        if error_code is not None:
            payload["error_code"] = error_code
        if error_message is not None:
            payload["error_message"] = error_message

        message = record.getMessage()
        if message:
            payload["message"] = message

        return json.dumps(payload, ensure_ascii=False)


def mask_name(name: str) -> str:
    """Mask a person name while keeping enough entropy for debugging."""
    if not name:
        return ""

    visible = 1
    if len(name) <= visible:
        return "*"
    return f"{name[:visible]}{'*' * (len(name) - visible)}"


def get_structured_logger(name: str = "vcard_reminders.events") -> logging.Logger:
    """Return a logger configured to emit JSON records."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_dispatch_event(
    logger: logging.Logger,
    *,
    workflow_step: str,
    card_id: int,
    assignee: str,
    status: str,
    message: str = "",
    error_code: str | None = None,
    error_message: str | None = None,
    level: int = logging.INFO,
) -> None:
    """Emit a structured dispatch event."""
    extra: dict[str, Any] = {
        "workflow_step": workflow_step,
        "card_id": card_id,
        "assignee": assignee,
        "status": status,
        "error_code": error_code,
        "error_message": error_message,
    }
    logger.log(level, message, extra=extra)
