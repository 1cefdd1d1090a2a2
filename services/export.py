"""CSV report rendering."""

from __future__ import annotations

import csv
import io
import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from models.records import ReportRow
from services.errors import EmptyDatasetError
from services.timeutil import DISPLAY_FORMAT, format_in_timezone, resolve_timezone

logger = logging.getLogger(__name__)

BOM = "\ufeff"
CSV_HEADER = (
    "Device ID",
    "Device",
    "Location",
    "Timestamp",
    "Temperature (°C)",
    "Humidity (%)",
)
_UNSAFE_FILENAME = re.compile(r"[^\w.-]+")


def _label(value: str) -> str:
    return value.replace(",", " ")


def _two_decimals(value: float) -> Decimal:
    return Decimal(f"{value:.2f}")


def format_csv(rows: Sequence[ReportRow], timezone: str) -> str:
    """Render ``rows`` as a UTF-8 CSV document with a leading byte-order mark.

    Timestamps are written in ``timezone``; temperature and humidity are
    fixed to two decimals. Raises ``EmptyDatasetError`` for no rows.
    """
    resolve_timezone(timezone)
    if not rows:
        raise EmptyDatasetError("No readings available for the requested report.")

    buffer = io.StringIO()
    # ids and readings are numbers and stay unquoted; every text column is quoted
    writer = csv.writer(buffer, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in rows:
        writer.writerow(
            (
                row.device_id,
                _label(row.device_name),
                _label(row.location_name),
                format_in_timezone(row.timestamp, timezone, DISPLAY_FORMAT),
                _two_decimals(row.temperature),
                _two_decimals(row.humidity),
            )
        )

    logger.debug("Rendered CSV report", extra={"reading_count": len(rows), "timezone": timezone})
    return BOM + buffer.getvalue()


def report_filename(device_name: str, start: datetime, end: datetime, timezone: str) -> str:
    stem = _UNSAFE_FILENAME.sub("-", device_name).strip("-") or "device"
    start_part = format_in_timezone(start, timezone, "%Y%m%d")
    end_part = format_in_timezone(end, timezone, "%Y%m%d")
    return f"{stem}-report-{start_part}-to-{end_part}.csv"
