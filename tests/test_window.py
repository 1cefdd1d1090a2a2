"""Unit tests for window selection."""

from __future__ import annotations

import random
from datetime import date, datetime, timedelta, timezone

import pytest

from models.records import SensorReading
from services.errors import InvalidWindowSpec
from services.timeutil import resolve_timezone
from services.window import (
    StatsPeriod,
    WindowSpec,
    fetch_bounds,
    period_start,
    resolve_range,
    select_window,
)

UTC = timezone.utc


def _reading(reading_id: int, timestamp: datetime, device_id: int = 7) -> SensorReading:
    return SensorReading(
        id=reading_id,
        device_id=device_id,
        temperature=20.0 + reading_id,
        humidity=50.0,
        timestamp=timestamp,
    )


def _hourly(count: int, start: datetime = datetime(2024, 1, 1, tzinfo=UTC)) -> list[SensorReading]:
    return [_reading(i + 1, start + timedelta(hours=i)) for i in range(count)]


def _timestamps(readings: list[SensorReading]) -> list[datetime]:
    return [reading.timestamp for reading in readings]


def test_latest_returns_most_recent_readings_ascending() -> None:
    readings = _hourly(15)
    shuffled = readings[:]
    random.Random(3).shuffle(shuffled)

    selected = select_window(shuffled, WindowSpec.latest(10))

    assert [r.id for r in selected] == list(range(6, 16))
    assert _timestamps(selected) == sorted(_timestamps(selected))


def test_latest_with_fewer_readings_than_limit_returns_all() -> None:
    readings = _hourly(4)

    selected = select_window(list(reversed(readings)), WindowSpec.latest(10))

    assert selected == readings


def test_latest_defaults_to_ten() -> None:
    selected = select_window(_hourly(12), WindowSpec(mode="latest"))

    assert len(selected) == 10


def test_latest_rejects_non_positive_limit() -> None:
    with pytest.raises(InvalidWindowSpec):
        select_window(_hourly(3), WindowSpec.latest(0))


def test_daily_uses_utc_day_boundaries() -> None:
    now = datetime(2024, 3, 10, 15, 0, tzinfo=UTC)
    day_start = datetime(2024, 3, 10, tzinfo=UTC)
    inside_start = _reading(1, day_start)
    just_before = _reading(2, day_start - timedelta(milliseconds=1))
    last_ms = _reading(3, day_start + timedelta(hours=24) - timedelta(milliseconds=1))
    next_day = _reading(4, day_start + timedelta(hours=24))

    selected = select_window(
        [next_day, last_ms, just_before, inside_start], WindowSpec.daily(), now=now
    )

    assert [r.id for r in selected] == [1, 3]


def test_daily_with_explicit_day() -> None:
    readings = [
        _reading(1, datetime(2024, 3, 9, 12, tzinfo=UTC)),
        _reading(2, datetime(2024, 3, 10, 12, tzinfo=UTC)),
    ]

    selected = select_window(
        readings,
        WindowSpec.daily(date(2024, 3, 9)),
        now=datetime(2024, 3, 10, 13, tzinfo=UTC),
    )

    assert [r.id for r in selected] == [1]


def test_naive_timestamps_are_treated_as_utc() -> None:
    now = datetime(2024, 3, 10, 15, 0, tzinfo=UTC)
    naive = _reading(1, datetime(2024, 3, 10, 0, 0))

    selected = select_window([naive], WindowSpec.daily(), now=now)

    assert [r.id for r in selected] == [1]


def test_range_date_only_end_covers_whole_day() -> None:
    included = _reading(1, datetime(2024, 1, 1, 23, 59, 59, 998000, tzinfo=UTC))
    last_ms = _reading(2, datetime(2024, 1, 1, 23, 59, 59, 999000, tzinfo=UTC))
    excluded = _reading(3, datetime(2024, 1, 2, tzinfo=UTC))
    first = _reading(4, datetime(2024, 1, 1, tzinfo=UTC))

    selected = select_window(
        [excluded, last_ms, included, first], WindowSpec.between("2024-01-01", "2024-01-01")
    )

    assert [r.id for r in selected] == [4, 1, 2]


def test_range_accepts_iso_instants_inclusive() -> None:
    readings = _hourly(5)

    selected = select_window(
        readings,
        WindowSpec.between("2024-01-01T01:00:00Z", "2024-01-01T03:00:00Z"),
    )

    assert [r.id for r in selected] == [2, 3, 4]


@pytest.mark.parametrize(
    ("start", "end"),
    [
        ("not-a-date", "2024-01-01"),
        ("2024-01-01", "2024-13-40"),
        ("2024-01-02", "2024-01-01"),
        (None, "2024-01-01"),
        ("2024-01-01", None),
    ],
)
def test_range_rejects_invalid_bounds(start, end) -> None:
    with pytest.raises(InvalidWindowSpec):
        select_window(_hourly(3), WindowSpec.between(start, end))


def test_unknown_mode_is_invalid() -> None:
    with pytest.raises(InvalidWindowSpec):
        select_window(_hourly(3), WindowSpec(mode="weekly"))  # type: ignore[arg-type]


@pytest.mark.parametrize(
    "spec",
    [
        WindowSpec.latest(5),
        WindowSpec.daily(date(2024, 1, 1)),
        WindowSpec.between("2024-01-01", "2024-01-02"),
    ],
)
def test_every_mode_returns_ascending_output(spec: WindowSpec) -> None:
    readings = list(reversed(_hourly(20)))

    selected = select_window(readings, spec, now=datetime(2024, 1, 1, 20, tzinfo=UTC))

    assert selected
    assert _timestamps(selected) == sorted(_timestamps(selected))


def test_resolve_range_in_business_timezone() -> None:
    start, end = resolve_range(
        WindowSpec.between("2024-01-01", "2024-01-01"), resolve_timezone("Asia/Ho_Chi_Minh")
    )

    assert start == datetime(2023, 12, 31, 17, tzinfo=UTC)
    assert end == datetime(2024, 1, 1, 16, 59, 59, 999000, tzinfo=UTC)


def test_fetch_bounds_cover_each_mode() -> None:
    now = datetime(2024, 3, 10, 15, 30, tzinfo=UTC)

    assert fetch_bounds(WindowSpec.latest(), now, 24) == (now - timedelta(hours=24), now)
    assert fetch_bounds(WindowSpec.daily(), now, 24) == (
        datetime(2024, 3, 10, tzinfo=UTC),
        datetime(2024, 3, 10, 23, 59, 59, 999000, tzinfo=UTC),
    )
    with pytest.raises(InvalidWindowSpec):
        fetch_bounds(WindowSpec.between("2024-02-01", "2024-01-01"), now, 24)


@pytest.mark.parametrize(
    ("period", "expected"),
    [
        (StatsPeriod.day, datetime(2024, 3, 30, 12, tzinfo=UTC)),
        (StatsPeriod.week, datetime(2024, 3, 24, 12, tzinfo=UTC)),
        (StatsPeriod.month, datetime(2024, 2, 29, 12, tzinfo=UTC)),
    ],
)
def test_period_start(period: StatsPeriod, expected: datetime) -> None:
    assert period_start(period, datetime(2024, 3, 31, 12, tzinfo=UTC)) == expected


def test_period_start_month_wraps_year() -> None:
    now = datetime(2024, 1, 15, tzinfo=UTC)

    assert period_start("month", now) == datetime(2023, 12, 15, tzinfo=UTC)
