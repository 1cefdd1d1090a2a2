from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_STORE_PATH_ENV = "TELEMETRY_STORE_PATH"
_READINGS_API_ENV = "READINGS_API_URL"
_LATEST_LIMIT_ENV = "LATEST_READING_LIMIT"
_LOOKBACK_HOURS_ENV = "LATEST_LOOKBACK_HOURS"
_REPORT_TZ_ENV = "REPORT_TIMEZONE"
_ZOOM_SPAN_ENV = "ZOOM_MIN_SPAN"
_WORKER_COUNT_ENV = "FETCH_WORKER_COUNT"
_FALLBACK_ENV = "MOCK_FALLBACK_ENABLED"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    store_path: Optional[str]
    readings_api_url: Optional[str]
    latest_limit: int
    latest_lookback_hours: int
    report_timezone: str
    zoom_min_span: float
    fetch_workers: int
    mock_fallback_enabled: bool
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        store_path=_read_optional_env(_STORE_PATH_ENV, "./tmp/telemetry.json"),
        readings_api_url=_read_optional_env(_READINGS_API_ENV, None),
        latest_limit=_read_positive_int(_LATEST_LIMIT_ENV, 10),
        latest_lookback_hours=_read_positive_int(_LOOKBACK_HOURS_ENV, 24),
        report_timezone=_read_str_env(_REPORT_TZ_ENV, "Asia/Ho_Chi_Minh"),
        zoom_min_span=_read_positive_float(_ZOOM_SPAN_ENV, 10.0),
        fetch_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        mock_fallback_enabled=_read_bool(_FALLBACK_ENV, False),
        log_level=_read_log_level("INFO"),
    )
