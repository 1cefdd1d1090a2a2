"""Aggregation logic for sensor readings."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from models.records import Metric, ReportRow, SensorReading
from services.timeutil import ensure_utc, resolve_timezone, to_epoch_millis

logger = logging.getLogger(__name__)

DEFAULT_PALETTE: Tuple[str, ...] = (
    "#FF6B6B",
    "#4ECDC4",
    "#6BFF95",
    "#FFE66D",
    "#7272FF",
    "#FF72F4",
    "#FF9F43",
    "#54A0FF",
    "#A3CB38",
    "#9B59B6",
    "#1ABC9C",
    "#E17055",
)


class ReportInterval(str, Enum):
    raw = "raw"
    hourly = "hourly"
    daily = "daily"


@dataclass(frozen=True, slots=True)
class SeriesPoint:
    x: int
    y: float
    temperature: float
    humidity: float
    timestamp: datetime
    device_id: int


@dataclass(frozen=True)
class DeviceSeries:
    """Ascending points of one device for one metric, with their summary."""

    device_id: int
    label: str
    color: str
    points: Tuple[SeriesPoint, ...] = ()
    visible: bool = True
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.points


@dataclass(frozen=True)
class ValueStats:
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    count: int = 0


@dataclass(frozen=True)
class DeviceStats:
    device_id: int
    reading_count: int
    temperature: ValueStats
    humidity: ValueStats
    first_reading: Optional[datetime] = None
    last_reading: Optional[datetime] = None


def compute_stats(values: Iterable[float]) -> ValueStats:
    """Min, max and arithmetic mean; all zero for no values."""
    count = 0
    total = 0.0
    low: float | None = None
    high: float | None = None

    for value in values:
        count += 1
        total += value
        if low is None or value < low:
            low = value
        if high is None or value > high:
            high = value

    if not count or low is None or high is None:
        return ValueStats()

    # float summation can drift a ulp past the extremes
    mean = min(max(total / count, low), high)
    return ValueStats(min=low, max=high, avg=mean, count=count)


class ColorRegistry:
    """Session-scoped ``device_id -> color`` assignment in first-seen order."""

    def __init__(self, palette: Sequence[str] = DEFAULT_PALETTE) -> None:
        if not palette:
            raise ValueError("Color palette must not be empty.")
        self._palette = tuple(palette)
        self._assigned: Dict[int, str] = {}
        self._lock = Lock()

    def color_for(self, device_id: int) -> str:
        with self._lock:
            color = self._assigned.get(device_id)
            if color is None:
                color = self._palette[len(self._assigned) % len(self._palette)]
                self._assigned[device_id] = color
            return color

    def snapshot(self) -> Dict[int, str]:
        with self._lock:
            return dict(self._assigned)


def default_label(device_id: int) -> str:
    return f"Device {device_id}"


class Aggregator:
    """Groups readings per device and summarises the selected metric.

    Without a shared ``ColorRegistry`` every call assigns colors afresh from
    the first-seen order of its own input.
    """

    def __init__(
        self,
        palette: Sequence[str] = DEFAULT_PALETTE,
        colors: ColorRegistry | None = None,
    ) -> None:
        self.palette = tuple(palette)
        self.colors = colors

    def aggregate(
        self,
        readings: Iterable[SensorReading],
        metric: Metric | str = Metric.temperature,
        labels: Mapping[int, str] | None = None,
        device_ids: Iterable[int] = (),
    ) -> Dict[int, DeviceSeries]:
        """Build one ``DeviceSeries`` per device.

        ``device_ids`` are placed first, so requested devices with no
        readings still get an empty series.
        """
        metric = Metric(metric)
        labels = labels or {}
        colors = self.colors or ColorRegistry(self.palette)

        groups: Dict[int, List[SensorReading]] = {device_id: [] for device_id in device_ids}
        for reading in readings:
            groups.setdefault(reading.device_id, []).append(reading)

        result: Dict[int, DeviceSeries] = {}
        for device_id, group in groups.items():
            ordered = sorted(group, key=lambda reading: ensure_utc(reading.timestamp))
            points = tuple(
                SeriesPoint(
                    x=to_epoch_millis(reading.timestamp),
                    y=reading.value_of(metric),
                    temperature=reading.temperature,
                    humidity=reading.humidity,
                    timestamp=ensure_utc(reading.timestamp),
                    device_id=device_id,
                )
                for reading in ordered
            )
            stats = compute_stats(point.y for point in points)
            result[device_id] = DeviceSeries(
                device_id=device_id,
                label=labels.get(device_id) or default_label(device_id),
                color=colors.color_for(device_id),
                points=points,
                min=stats.min,
                max=stats.max,
                avg=stats.avg,
            )

        logger.debug(
            "Aggregated readings",
            extra={"metric": metric.value, "series_count": len(result)},
        )
        return result

    def device_stats(self, device_id: int, readings: Iterable[SensorReading]) -> DeviceStats:
        ordered = sorted(
            (r for r in readings if r.device_id == device_id),
            key=lambda reading: ensure_utc(reading.timestamp),
        )
        return DeviceStats(
            device_id=device_id,
            reading_count=len(ordered),
            temperature=compute_stats(r.temperature for r in ordered),
            humidity=compute_stats(r.humidity for r in ordered),
            first_reading=ensure_utc(ordered[0].timestamp) if ordered else None,
            last_reading=ensure_utc(ordered[-1].timestamp) if ordered else None,
        )


def _bucket_start(value: datetime, interval: ReportInterval, tz_name: str) -> datetime:
    local = ensure_utc(value).astimezone(resolve_timezone(tz_name))
    if interval is ReportInterval.hourly:
        local = local.replace(minute=0, second=0, microsecond=0)
    else:
        local = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return ensure_utc(local)


@dataclass
class _Bucket:
    start: datetime
    temperatures: List[float] = field(default_factory=list)
    humidities: List[float] = field(default_factory=list)


def bucket_rows(
    rows: Sequence[ReportRow],
    interval: ReportInterval | str = ReportInterval.raw,
    tz_name: str = "UTC",
) -> List[ReportRow]:
    """Average report rows into hourly or daily buckets per device.

    Bucket boundaries follow wall-clock hours/days in ``tz_name``. ``raw``
    returns the rows sorted ascending and otherwise untouched.
    """
    interval = ReportInterval(interval)
    ordered = sorted(rows, key=lambda row: (ensure_utc(row.timestamp), row.device_id))
    if interval is ReportInterval.raw:
        return ordered

    buckets: Dict[Tuple[int, datetime], _Bucket] = {}
    labels: Dict[int, ReportRow] = {}
    for row in ordered:
        start = _bucket_start(row.timestamp, interval, tz_name)
        bucket = buckets.setdefault((row.device_id, start), _Bucket(start=start))
        bucket.temperatures.append(row.temperature)
        bucket.humidities.append(row.humidity)
        labels.setdefault(row.device_id, row)

    result = [
        ReportRow(
            device_id=device_id,
            device_name=labels[device_id].device_name,
            location_name=labels[device_id].location_name,
            timestamp=bucket.start,
            temperature=compute_stats(bucket.temperatures).avg,
            humidity=compute_stats(bucket.humidities).avg,
            reading_count=len(bucket.temperatures),
        )
        for (device_id, _start), bucket in buckets.items()
    ]
    result.sort(key=lambda row: (row.timestamp, row.device_id))
    return result
