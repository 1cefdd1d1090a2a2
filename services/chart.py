"""Multi-series chart model built from per-device aggregates.

Chart timestamps are always rendered in UTC so the same readings produce the
same tick labels for every viewer. Reports use their own business timezone,
see ``services.export``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Iterable, List, Mapping, Optional, Tuple

from models.records import Metric
from services.aggregator import DeviceSeries, ValueStats, compute_stats
from services.timeutil import DISPLAY_FORMAT, TICK_FORMAT, format_in_timezone, from_epoch_millis

logger = logging.getLogger(__name__)

CHART_TIMEZONE = "UTC"
MIN_ZOOM_SPAN = 10.0
TEMPERATURE_PADDING = 5.0
HUMIDITY_DOMAIN: Tuple[float, float] = (0.0, 100.0)

Domain = Tuple[float, float]


def zoom_accepted(start: float, end: float, min_span: float = MIN_ZOOM_SPAN) -> bool:
    return abs(end - start) > min_span


@dataclass(frozen=True)
class ViewState:
    """Serializable chart interaction state: selected devices, zoom and metric."""

    selection: FrozenSet[int] = field(default_factory=frozenset)
    zoom_domain: Optional[Domain] = None
    metric: Metric = Metric.temperature

    @classmethod
    def showing(cls, device_ids: Iterable[int], metric: Metric | str = Metric.temperature) -> "ViewState":
        return cls(selection=frozenset(device_ids), metric=Metric(metric))

    def toggle(self, device_id: int) -> "ViewState":
        return replace(self, selection=self.selection ^ {device_id})

    def zoom(self, start: float, end: float, min_span: float = MIN_ZOOM_SPAN) -> "ViewState":
        """Narrow the x domain; spans not wider than ``min_span`` are ignored."""
        if not zoom_accepted(start, end, min_span):
            logger.debug("Zoom rejected", extra={"reason": "span below threshold"})
            return self
        low, high = sorted((start, end))
        return replace(self, zoom_domain=(low, high))

    def reset_zoom(self) -> "ViewState":
        return replace(self, zoom_domain=None)

    def with_metric(self, metric: Metric | str) -> "ViewState":
        return replace(self, metric=Metric(metric))


@dataclass(frozen=True)
class ChartModel:
    series: Tuple[DeviceSeries, ...]
    legend: Tuple[DeviceSeries, ...]
    stats: ValueStats
    x_domain: Optional[Domain]
    y_domain: Optional[Domain]
    zoomed: bool = False
    timezone: str = CHART_TIMEZONE

    @property
    def is_empty(self) -> bool:
        return all(series.is_empty for series in self.series)


def format_tick(x: float) -> str:
    return format_in_timezone(from_epoch_millis(x), CHART_TIMEZONE, TICK_FORMAT)


def format_point_time(x: float) -> str:
    return format_in_timezone(from_epoch_millis(x), CHART_TIMEZONE, DISPLAY_FORMAT)


def round_for_display(value: float) -> float:
    return round(value, 1)


def _y_domain(metric: Metric, stats: ValueStats) -> Optional[Domain]:
    if metric is Metric.humidity:
        return HUMIDITY_DOMAIN
    if not stats.count:
        return None
    return (stats.min - TEMPERATURE_PADDING, stats.max + TEMPERATURE_PADDING)


def build_chart_model(
    series_map: Mapping[int, DeviceSeries],
    selection: Iterable[int],
    zoom_domain: Optional[Domain] = None,
    metric: Metric | str = Metric.temperature,
    min_zoom_span: float = MIN_ZOOM_SPAN,
) -> ChartModel:
    """Project aggregated series onto the current selection and zoom.

    Overall stats are point-weighted across every visible point, not an
    average of per-device averages.
    """
    metric = Metric(metric)
    selected = frozenset(selection)

    legend: List[DeviceSeries] = [
        replace(series, visible=device_id in selected)
        for device_id, series in series_map.items()
    ]
    visible = tuple(series for series in legend if series.visible)

    xs = [point.x for series in visible for point in series.points]
    stats = compute_stats(point.y for series in visible for point in series.points)

    zoomed = zoom_domain is not None and zoom_accepted(*zoom_domain, min_span=min_zoom_span)
    if zoomed and zoom_domain is not None:
        x_domain: Optional[Domain] = tuple(sorted(zoom_domain))  # type: ignore[assignment]
    elif xs:
        x_domain = (float(min(xs)), float(max(xs)))
    else:
        x_domain = None

    logger.debug(
        "Built chart model",
        extra={"metric": metric.value, "series_count": len(visible), "reading_count": stats.count},
    )
    return ChartModel(
        series=visible,
        legend=tuple(legend),
        stats=stats,
        x_domain=x_domain,
        y_domain=_y_domain(metric, stats),
        zoomed=zoomed,
    )


def build_from_view(
    series_map: Mapping[int, DeviceSeries],
    view: ViewState,
    min_zoom_span: float = MIN_ZOOM_SPAN,
) -> ChartModel:
    return build_chart_model(
        series_map,
        selection=view.selection,
        zoom_domain=view.zoom_domain,
        metric=view.metric,
        min_zoom_span=min_zoom_span,
    )
