"""Dashboard orchestration above the pure windowing and aggregation core."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from threading import Lock
from typing import Dict, List, Optional, Sequence, Tuple

from datastore.mock_data import generate_readings
from datastore.readings import ReadingStore, build_default_store
from datastore.resilience import FetchResult, ResilientReadingSource
from models.records import Device, ReportRow, SensorReading, Thresholds
from services.aggregator import Aggregator, ColorRegistry, DeviceStats, ReportInterval, bucket_rows
from services.chart import MIN_ZOOM_SPAN, ChartModel, ViewState, build_chart_model
from services.export import format_csv, report_filename
from services.thresholds import devices_outside_thresholds
from services.timeutil import ensure_utc, resolve_timezone
from services.window import (
    StatsPeriod,
    WindowMode,
    WindowSpec,
    fetch_bounds,
    period_start,
    resolve_range,
    select_window,
)
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChartSnapshot:
    key: str
    sequence: int
    model: ChartModel
    view: ViewState
    from_fallback: bool = False


@dataclass(frozen=True)
class Report:
    filename: str
    content: str
    row_count: int
    start: datetime
    end: datetime


class DashboardService:
    """Fetches readings per device and feeds them through window, aggregate and chart.

    Chart refreshes are numbered per key; a finished refresh is only kept if
    no newer refresh for the same key has been committed already.
    """

    def __init__(
        self,
        store: ReadingStore,
        aggregator: Aggregator,
        source: ResilientReadingSource | None = None,
        workers: int = 4,
        latest_lookback_hours: int = 24,
        report_timezone: str = "Asia/Ho_Chi_Minh",
        zoom_min_span: float = MIN_ZOOM_SPAN,
    ) -> None:
        self.store = store
        self.aggregator = aggregator
        self.source = source or ResilientReadingSource(store)
        self.latest_lookback_hours = latest_lookback_hours
        self.report_timezone = report_timezone
        self.zoom_min_span = zoom_min_span
        self.executor = ThreadPoolExecutor(max_workers=workers)
        self._sequences: Dict[str, int] = {}
        self._committed: Dict[str, ChartSnapshot] = {}
        self._lock = Lock()

    def list_devices(self) -> List[Device]:
        return self.store.list_devices()

    def window_readings(
        self,
        device_id: int,
        spec: WindowSpec,
        now: Optional[datetime] = None,
    ) -> List[SensorReading]:
        readings, _ = self._fetch_window(device_id, spec, self._now(now))
        return readings

    def begin_refresh(self, key: str) -> int:
        with self._lock:
            sequence = self._sequences.get(key, 0) + 1
            self._sequences[key] = sequence
            return sequence

    def commit(self, snapshot: ChartSnapshot) -> bool:
        with self._lock:
            current = self._committed.get(snapshot.key)
            if current is not None and current.sequence >= snapshot.sequence:
                logger.info(
                    "Discarded stale chart refresh",
                    extra={"sequence": snapshot.sequence, "reason": f"committed={current.sequence}"},
                )
                return False
            self._committed[snapshot.key] = snapshot
            return True

    def latest_chart(self, key: str) -> Optional[ChartSnapshot]:
        with self._lock:
            return self._committed.get(key)

    def refresh_chart(
        self,
        key: str,
        device_ids: Sequence[int],
        spec: WindowSpec,
        view: ViewState,
        now: Optional[datetime] = None,
    ) -> ChartSnapshot:
        """Rebuild the chart for ``key`` and return the newest committed snapshot."""
        sequence = self.begin_refresh(key)
        now = self._now(now)

        device_ids = list(dict.fromkeys(device_ids))
        labels = {device.id: device.name for device in self.store.list_devices()}
        windows = list(
            self.executor.map(lambda device_id: self._fetch_window(device_id, spec, now), device_ids)
        )

        readings: List[SensorReading] = [r for selected, _ in windows for r in selected]
        from_fallback = any(fallback for _, fallback in windows)
        series_map = self.aggregator.aggregate(
            readings, metric=view.metric, labels=labels, device_ids=device_ids
        )
        model = build_chart_model(
            series_map,
            selection=view.selection,
            zoom_domain=view.zoom_domain,
            metric=view.metric,
            min_zoom_span=self.zoom_min_span,
        )
        snapshot = ChartSnapshot(
            key=key,
            sequence=sequence,
            model=model,
            view=view,
            from_fallback=from_fallback,
        )
        logger.info(
            "Chart refreshed",
            extra={
                "sequence": sequence,
                "mode": WindowMode(spec.mode).value,
                "series_count": len(model.series),
                "reading_count": len(readings),
                "fallback": from_fallback or None,
            },
        )
        self.commit(snapshot)
        return self.latest_chart(key) or snapshot

    def device_stats(
        self,
        device_id: int,
        period: StatsPeriod | str = StatsPeriod.day,
        now: Optional[datetime] = None,
    ) -> Tuple[DeviceStats, datetime, datetime]:
        end = self._now(now)
        start = period_start(period, end)
        readings = self.source.fetch_range(device_id, start, end, allow_fallback=False).unwrap()
        return self.aggregator.device_stats(device_id, readings), start, end

    def export_report(
        self,
        device_id: int,
        start: str,
        end: str,
        interval: ReportInterval | str = ReportInterval.raw,
        timezone_name: Optional[str] = None,
    ) -> Report:
        """Render a device's readings between two dates as a CSV report.

        Dates are whole days in the report timezone. Raises
        ``EmptyDatasetError`` when nothing was recorded in the range.
        """
        tz_name = timezone_name or self.report_timezone
        tz = resolve_timezone(tz_name)
        range_start, range_end = resolve_range(WindowSpec.between(start, end), tz)

        device = self.store.get_device(device_id)
        readings = self.source.fetch_range(
            device_id, range_start, range_end, allow_fallback=False
        ).unwrap()
        rows = [
            ReportRow.from_reading(reading, device.name, device.location_name)
            for reading in readings
        ]
        rows = bucket_rows(rows, interval, tz_name)
        content = format_csv(rows, tz_name)
        logger.info(
            "Report generated",
            extra={"device_id": device_id, "reading_count": len(rows), "timezone": tz_name},
        )
        return Report(
            filename=report_filename(device.name, range_start, range_end, tz_name),
            content=content,
            row_count=len(rows),
            start=range_start,
            end=range_end,
        )

    def threshold_warnings(self) -> Tuple[Thresholds, List[Device]]:
        thresholds = self.store.get_thresholds()
        return thresholds, devices_outside_thresholds(self.store.list_devices(), thresholds)

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _fetch_window(
        self, device_id: int, spec: WindowSpec, now: datetime
    ) -> Tuple[List[SensorReading], bool]:
        start, end = fetch_bounds(spec, now, self.latest_lookback_hours)
        result: FetchResult = self.source.fetch_range(device_id, start, end)
        return select_window(result.unwrap(), spec, now), result.from_fallback

    @staticmethod
    def _now(now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else datetime.now(timezone.utc)


def _fallback_readings(device_id: int, start: datetime, end: datetime) -> List[SensorReading]:
    return generate_readings(device_id, start, end, step=timedelta(minutes=30))


@lru_cache
def build_default_dashboard(workers: Optional[int] = None) -> DashboardService:
    """Factory that wires the dashboard with the configured store."""
    settings = get_settings()
    store = build_default_store()
    fallback = _fallback_readings if settings.mock_fallback_enabled else None
    return DashboardService(
        store=store,
        aggregator=Aggregator(colors=ColorRegistry()),
        source=ResilientReadingSource(store, fallback=fallback),
        workers=workers or settings.fetch_workers,
        latest_lookback_hours=settings.latest_lookback_hours,
        report_timezone=settings.report_timezone,
        zoom_min_span=settings.zoom_min_span,
    )
