"""Instant helpers.

Every instant handled by the core is a timezone-aware UTC ``datetime``. Naive
values coming from the store are interpreted as UTC, never as local time.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from services.errors import InvalidTimezoneError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"
TICK_FORMAT = "%H:%M:%S"


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 instant, accepting a trailing ``Z``."""
    if isinstance(value, datetime):
        return ensure_utc(value)

    candidate = value.strip()
    if not candidate:
        raise ValueError("Timestamp is empty.")

    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise ValueError(f"Invalid timestamp format: {value!r}") from exc

    return ensure_utc(parsed)


def to_epoch_millis(value: datetime) -> int:
    return (ensure_utc(value) - EPOCH) // _ONE_MS


def from_epoch_millis(millis: float) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)


def start_of_day(day: date, tz: tzinfo = timezone.utc) -> datetime:
    return ensure_utc(datetime.combine(day, time.min, tzinfo=tz))


def end_of_day(day: date, tz: tzinfo = timezone.utc) -> datetime:
    """Last representable millisecond of ``day`` (23:59:59.999) in ``tz``."""
    return start_of_day(day + timedelta(days=1), tz) - _ONE_MS


def start_of_utc_day(value: datetime) -> datetime:
    return start_of_day(ensure_utc(value).date())


@lru_cache(maxsize=64)
def resolve_timezone(name: str) -> tzinfo:
    if name.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezoneError(f"Unknown timezone {name!r}.") from exc


def format_in_timezone(value: datetime, tz_name: str, fmt: str = DISPLAY_FORMAT) -> str:
    return ensure_utc(value).astimezone(resolve_timezone(tz_name)).strftime(fmt)
