"""HTTP route definitions for the service."""

from __future__ import annotations

import re
import unicodedata
from datetime import date
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.schemas import (
    ChartResponse,
    DeviceSchema,
    DeviceStatsResponse,
    ReadingSchema,
    ThresholdsSchema,
    ThresholdWarningsResponse,
)
from models.records import Metric
from services.aggregator import ReportInterval
from services.chart import ViewState
from services.dashboard import DashboardService, build_default_dashboard
from services.errors import EmptyDatasetError, InvalidTimezoneError, InvalidWindowSpec, UpstreamFetchError
from services.window import StatsPeriod, WindowMode, WindowSpec
from settings import get_settings

router = APIRouter()

_HEADER_UNSAFE = re.compile(r"[^\w.-]+", re.ASCII)


def get_dashboard() -> DashboardService:
    return build_default_dashboard()


def _window_spec(
    mode: WindowMode,
    limit: Optional[int],
    day: Optional[date],
    start: Optional[str],
    end: Optional[str],
) -> WindowSpec:
    if mode is WindowMode.latest:
        return WindowSpec.latest(limit if limit is not None else get_settings().latest_limit)
    if mode is WindowMode.daily:
        return WindowSpec.daily(day)
    return WindowSpec.between(start, end)  # type: ignore[arg-type]


def _content_disposition(filename: str) -> str:
    fallback = unicodedata.normalize("NFKD", filename).encode("ascii", "ignore").decode("ascii")
    fallback = _HEADER_UNSAFE.sub("-", fallback) or "report.csv"
    disposition = f'attachment; filename="{fallback}"'
    encoded = quote(filename, safe="")
    if encoded != filename:
        disposition += f"; filename*=UTF-8''{encoded}"
    return disposition


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (InvalidWindowSpec, InvalidTimezoneError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, KeyError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc.args[0]))
    if isinstance(exc, EmptyDatasetError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No data: {exc}")
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


@router.get(
    "/devices",
    response_model=List[DeviceSchema],
    summary="List devices with their latest reading.",
)
def list_devices(
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[DeviceSchema]:
    try:
        devices = dashboard.list_devices()
    except UpstreamFetchError as exc:
        raise _http_error(exc) from exc
    return [DeviceSchema.from_domain(device) for device in devices]


@router.get(
    "/devices/{device_id}/readings",
    response_model=List[ReadingSchema],
    summary="Readings of one device inside a latest/daily/range window.",
)
def get_device_readings(
    device_id: int,
    mode: WindowMode = Query(WindowMode.latest),
    limit: Optional[int] = Query(None, ge=1),
    day: Optional[date] = Query(None, description="UTC day for daily mode."),
    start: Optional[str] = Query(None, description="Range start (date or ISO instant)."),
    end: Optional[str] = Query(None, description="Range end (date or ISO instant)."),
    dashboard: DashboardService = Depends(get_dashboard),
) -> List[ReadingSchema]:
    try:
        spec = _window_spec(mode, limit, day, start, end)
        readings = dashboard.window_readings(device_id, spec)
    except (InvalidWindowSpec, KeyError, UpstreamFetchError) as exc:
        raise _http_error(exc) from exc
    return [ReadingSchema.from_domain(reading) for reading in readings]


@router.get(
    "/devices/{device_id}/stats",
    response_model=DeviceStatsResponse,
    summary="Temperature and humidity statistics for the last day, week or month.",
)
def get_device_stats(
    device_id: int,
    period: StatsPeriod = Query(StatsPeriod.day),
    dashboard: DashboardService = Depends(get_dashboard),
) -> DeviceStatsResponse:
    try:
        stats, start, end = dashboard.device_stats(device_id, period)
    except (KeyError, UpstreamFetchError) as exc:
        raise _http_error(exc) from exc
    return DeviceStatsResponse.from_domain(stats, period.value, start, end)


@router.get(
    "/devices/{device_id}/report",
    summary="Download a CSV report of one device between two dates.",
    response_class=Response,
    responses={200: {"content": {"text/csv": {}}}},
)
def get_device_report(
    device_id: int,
    start: str = Query(..., description="First day, YYYY-MM-DD."),
    end: str = Query(..., description="Last day, YYYY-MM-DD."),
    interval: ReportInterval = Query(ReportInterval.raw),
    timezone: Optional[str] = Query(None, description="IANA timezone for timestamps."),
    dashboard: DashboardService = Depends(get_dashboard),
) -> Response:
    try:
        report = dashboard.export_report(device_id, start, end, interval, timezone)
    except (InvalidWindowSpec, InvalidTimezoneError, KeyError, EmptyDatasetError, UpstreamFetchError) as exc:
        raise _http_error(exc) from exc
    return Response(
        content=report.content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": _content_disposition(report.filename)},
    )


@router.get(
    "/charts",
    response_model=ChartResponse,
    summary="Multi-device chart model for one metric and window.",
)
def get_chart(
    device_id: List[int] = Query(..., description="Devices to plot, in legend order."),
    metric: Metric = Query(Metric.temperature),
    mode: WindowMode = Query(WindowMode.latest),
    limit: Optional[int] = Query(None, ge=1),
    day: Optional[date] = Query(None),
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    hidden: List[int] = Query([], description="Devices toggled off in the legend."),
    zoom_start: Optional[float] = Query(None),
    zoom_end: Optional[float] = Query(None),
    key: str = Query("default", description="Refresh key; newer refreshes win."),
    dashboard: DashboardService = Depends(get_dashboard),
) -> ChartResponse:
    view = ViewState.showing(device_id, metric)
    for hidden_id in dict.fromkeys(hidden):
        if hidden_id in view.selection:
            view = view.toggle(hidden_id)
    if zoom_start is not None and zoom_end is not None:
        view = view.zoom(zoom_start, zoom_end, dashboard.zoom_min_span)

    try:
        spec = _window_spec(mode, limit, day, start, end)
        snapshot = dashboard.refresh_chart(key, device_id, spec, view)
    except (InvalidWindowSpec, KeyError, UpstreamFetchError) as exc:
        raise _http_error(exc) from exc
    return ChartResponse.from_domain(snapshot.model, snapshot.view.metric, snapshot.sequence)


@router.get(
    "/warnings",
    response_model=ThresholdWarningsResponse,
    summary="Devices whose latest reading is outside the thresholds.",
)
def get_threshold_warnings(
    dashboard: DashboardService = Depends(get_dashboard),
) -> ThresholdWarningsResponse:
    try:
        thresholds, devices = dashboard.threshold_warnings()
    except UpstreamFetchError as exc:
        raise _http_error(exc) from exc
    return ThresholdWarningsResponse(
        thresholds=ThresholdsSchema.from_domain(thresholds),
        devices=[DeviceSchema.from_domain(device) for device in devices],
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
