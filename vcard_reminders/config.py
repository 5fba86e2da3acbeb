"""Environment-sourced runtime configuration."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from vcard_reminders.domain.models import BATCH_POLICY, POLICIES

MISSED_POLICIES = ("skip", "fire")

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when an environment value cannot be used."""


@dataclass(slots=True)
class ReminderConfig:
    database_url: str = "sqlite:///vcard_reminders.db"
    gateway_url: str = ""
    gateway_token: str = ""
    gateway_timeout: float = 30.0
    port: int = 5000
    default_phone_number: str = ""
    schedule_mode: str = BATCH_POLICY
    daily_time: time = time(8, 30)
    timezone: ZoneInfo = ZoneInfo("UTC")
    send_delay_seconds: float = 3.0
    retry_ceiling: int = 3
    retry_backoff_seconds: float = 3600.0
    missed_policy: str = "skip"


def _env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_number(name: str, default: str, cast: type[int] | type[float]) -> int | float:
    raw = _env(name, default)
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ConfigError(f"Invalid numeric value for {name}: {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{name} must not be negative: {raw!r}")
    return value


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = _env(name, default).lower()
    if value not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(choices)}: {value!r}")
    return value


def parse_daily_time(value: str) -> time:
    """Parse an ``HH:MM`` wall-clock time."""
    try:
        hour, minute = (int(part) for part in value.split(":", 1))
        return time(hour, minute)
    except ValueError as exc:
        raise ConfigError(f"Daily time must be HH:MM: {value!r}") from exc


def parse_timezone(value: str) -> ZoneInfo:
    try:
        return ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone: {value!r}") from exc


def resolve_config(env_file: str | Path | None = None) -> ReminderConfig:
    """Read configuration from the environment, loading ``.env`` first when present."""
    if env_file is not None:
        load_dotenv(env_file)
    else:
        load_dotenv()

    config = ReminderConfig(
        database_url=_env("DATABASE_URL", "sqlite:///vcard_reminders.db"),
        gateway_url=_env("WHATSAPP_API_URL", ""),
        gateway_token=_env("WHATSAPP_API_TOKEN", ""),
        gateway_timeout=float(_env_number("WHATSAPP_TIMEOUT_SECONDS", "30", float)),
        port=int(_env_number("PORT", "5000", int)),
        default_phone_number=_env("DEFAULT_PHONE_NUMBER", ""),
        schedule_mode=_env_choice("REMINDER_SCHEDULE_MODE", BATCH_POLICY, POLICIES),
        daily_time=parse_daily_time(_env("REMINDER_DAILY_TIME", "08:30")),
        timezone=parse_timezone(_env("REMINDER_TIMEZONE", "UTC")),
        send_delay_seconds=float(_env_number("REMINDER_SEND_DELAY_SECONDS", "3", float)),
        retry_ceiling=int(_env_number("REMINDER_RETRY_CEILING", "3", int)),
        retry_backoff_seconds=float(_env_number("REMINDER_RETRY_BACKOFF_SECONDS", "3600", float)),
        missed_policy=_env_choice("REMINDER_MISSED_POLICY", "skip", MISSED_POLICIES),
    )
    logger.info(
        "Resolved config (mode=%s, daily_time=%s, timezone=%s, retry_ceiling=%s, missed_policy=%s)",
        config.schedule_mode,
        config.daily_time.strftime("%H:%M"),
        config.timezone.key,
        config.retry_ceiling,
        config.missed_policy,
    )
    return config
