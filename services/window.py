"""Time-window selection over a device's reading stream."""

from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from models.records import SensorReading
from services.errors import InvalidWindowSpec
from services.timeutil import end_of_day, ensure_utc, parse_instant, start_of_day, start_of_utc_day

logger = logging.getLogger(__name__)

DEFAULT_LATEST_LIMIT = 10
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class WindowMode(str, Enum):
    latest = "latest"
    daily = "daily"
    range = "range"


class StatsPeriod(str, Enum):
    day = "day"
    week = "week"
    month = "month"


RangeBound = str | date | datetime


@dataclass(frozen=True)
class WindowSpec:
    """Which readings to keep: the last ``limit``, one UTC ``day``, or ``[start, end]``."""

    mode: WindowMode = WindowMode.latest
    limit: Optional[int] = None
    day: Optional[date] = None
    start: Optional[RangeBound] = None
    end: Optional[RangeBound] = None

    @classmethod
    def latest(cls, limit: int = DEFAULT_LATEST_LIMIT) -> "WindowSpec":
        return cls(mode=WindowMode.latest, limit=limit)

    @classmethod
    def daily(cls, day: Optional[date] = None) -> "WindowSpec":
        return cls(mode=WindowMode.daily, day=day)

    @classmethod
    def between(cls, start: RangeBound, end: RangeBound) -> "WindowSpec":
        return cls(mode=WindowMode.range, start=start, end=end)


def _mode(spec: WindowSpec) -> WindowMode:
    try:
        return WindowMode(spec.mode)
    except ValueError as exc:
        raise InvalidWindowSpec(f"Unknown window mode {spec.mode!r}.") from exc


def _sorted(readings: Iterable[SensorReading]) -> List[SensorReading]:
    return sorted(readings, key=lambda reading: ensure_utc(reading.timestamp))


def _parse_bound(
    value: Optional[RangeBound], *, is_end: bool, name: str, tz: tzinfo = timezone.utc
) -> datetime:
    if value is None:
        raise InvalidWindowSpec(f"Range window requires '{name}'.")

    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return end_of_day(value, tz) if is_end else start_of_day(value, tz)

    candidate = str(value).strip()
    try:
        if _DATE_ONLY.match(candidate):
            day = date.fromisoformat(candidate)
            return end_of_day(day, tz) if is_end else start_of_day(day, tz)
        return parse_instant(candidate)
    except ValueError as exc:
        raise InvalidWindowSpec(f"Invalid '{name}' date: {value!r}.") from exc


def resolve_range(spec: WindowSpec, tz: tzinfo = timezone.utc) -> Tuple[datetime, datetime]:
    """Absolute ``[start, end]`` bounds of a range window, both inclusive.

    Date-only bounds cover whole calendar days in ``tz``; an end date stops
    at 23:59:59.999.
    """
    start = _parse_bound(spec.start, is_end=False, name="start", tz=tz)
    end = _parse_bound(spec.end, is_end=True, name="end", tz=tz)
    if start > end:
        raise InvalidWindowSpec(
            f"Range start {start.isoformat()} is after end {end.isoformat()}."
        )
    return start, end


def resolve_daily(spec: WindowSpec, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """Half-open ``[start, start + 24h)`` bounds of the selected UTC day."""
    if spec.day is not None:
        start = start_of_day(spec.day)
    else:
        start = start_of_utc_day(now or datetime.now(timezone.utc))
    return start, start + timedelta(hours=24)


def validate(spec: WindowSpec) -> None:
    mode = _mode(spec)
    if mode is WindowMode.latest and spec.limit is not None and spec.limit <= 0:
        raise InvalidWindowSpec(f"Latest window limit must be positive, got {spec.limit}.")
    if mode is WindowMode.range:
        resolve_range(spec)


def select_window(
    readings: Iterable[SensorReading],
    spec: WindowSpec,
    now: Optional[datetime] = None,
) -> List[SensorReading]:
    """Apply ``spec`` to ``readings``; the result is always ascending by timestamp."""
    ordered = _sorted(readings)
    mode = _mode(spec)

    if mode is WindowMode.latest:
        validate(spec)
        limit = spec.limit if spec.limit is not None else DEFAULT_LATEST_LIMIT
        selected = ordered[-limit:]
    elif mode is WindowMode.daily:
        start, end = resolve_daily(spec, now)
        selected = [r for r in ordered if start <= ensure_utc(r.timestamp) < end]
    else:
        start, end = resolve_range(spec)
        selected = [r for r in ordered if start <= ensure_utc(r.timestamp) <= end]

    logger.debug(
        "Window selected",
        extra={"mode": mode.value, "reading_count": len(selected)},
    )
    return selected


def fetch_bounds(
    spec: WindowSpec,
    now: datetime,
    lookback_hours: int,
) -> Tuple[datetime, datetime]:
    """Store query bounds that cover every reading ``spec`` could select."""
    mode = _mode(spec)
    if mode is WindowMode.latest:
        validate(spec)
        now = ensure_utc(now)
        return now - timedelta(hours=lookback_hours), now
    if mode is WindowMode.daily:
        start, end = resolve_daily(spec, now)
        return start, end - timedelta(milliseconds=1)
    return resolve_range(spec)


def period_start(period: StatsPeriod | str, now: datetime) -> datetime:
    """Start of a statistics period that ends at ``now``."""
    now = ensure_utc(now)
    period = StatsPeriod(period)
    if period is StatsPeriod.week:
        return now - timedelta(days=7)
    if period is StatsPeriod.month:
        year, month = (now.year, now.month - 1) if now.month > 1 else (now.year - 1, 12)
        day = min(now.day, calendar.monthrange(year, month)[1])
        return now.replace(year=year, month=month, day=day)
    return now - timedelta(days=1)
