"""Reading store backed by the dashboard's REST backend."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from app.schemas import DeviceSchema, ReadingSchema, ThresholdsSchema
from models.records import Device, SensorReading, Thresholds
from services.errors import UpstreamFetchError
from services.timeutil import ensure_utc

logger = logging.getLogger(__name__)


class HttpReadingStore:
    """Fetches readings from ``/devices``, ``/reports`` and ``/thresholds``.

    Responses use the ``{"success": bool, "data": ...}`` envelope. Timestamps
    without an offset are read as UTC.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def fetch_readings(
        self, device_id: int, hours: int, now: Optional[datetime] = None
    ) -> List[SensorReading]:
        payload = self._get(f"/devices/{device_id}/readings", {"hours": hours}, device_id)
        readings = self._parse_readings(payload, device_id)
        if now is None:
            return readings
        end = ensure_utc(now)
        start = end - timedelta(hours=hours)
        return [r for r in readings if start <= r.timestamp <= end]

    def fetch_readings_in_range(
        self, device_id: int, start: datetime, end: datetime
    ) -> List[SensorReading]:
        start, end = ensure_utc(start), ensure_utc(end)
        # the backend widens dates to whole business days, so trim locally
        params = {
            "startDate": start.date().isoformat(),
            "endDate": (end + timedelta(days=1)).date().isoformat(),
            "interval": "raw",
        }
        payload = self._get(f"/reports/devices/{device_id}", params, device_id)
        readings_payload = payload.get("readings", []) if isinstance(payload, dict) else payload
        readings = self._parse_readings(readings_payload, device_id)
        return [r for r in readings if start <= r.timestamp <= end]

    def list_devices(self) -> List[Device]:
        payload = self._get("/devices", None, None)
        try:
            return [DeviceSchema.model_validate(item).to_domain() for item in payload]
        except (ValidationError, TypeError) as exc:
            raise UpstreamFetchError("Malformed device list from reading store.") from exc

    def get_device(self, device_id: int) -> Device:
        payload = self._get(f"/devices/{device_id}", None, device_id)
        try:
            return DeviceSchema.model_validate(payload).to_domain()
        except ValidationError as exc:
            raise UpstreamFetchError(
                f"Malformed device {device_id} from reading store.", device_id=device_id
            ) from exc

    def get_thresholds(self) -> Thresholds:
        payload = self._get("/thresholds", None, None)
        try:
            return ThresholdsSchema.model_validate(payload).to_domain()
        except ValidationError as exc:
            raise UpstreamFetchError("Malformed thresholds from reading store.") from exc

    def _get(self, path: str, params: Optional[dict[str, Any]], device_id: Optional[int]) -> Any:
        try:
            response = self._client.get(path, params=params)
            if response.status_code == 404 and device_id is not None:
                raise KeyError(f"Device {device_id} not found.")
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as exc:
            logger.warning(
                "Reading store request failed",
                extra={"device_id": device_id, "reason": str(exc)},
            )
            raise UpstreamFetchError(
                f"Reading store request to {path} failed: {exc}", device_id=device_id
            ) from exc
        except ValueError as exc:
            raise UpstreamFetchError(
                f"Reading store returned invalid JSON for {path}.", device_id=device_id
            ) from exc

        if not isinstance(body, dict):
            return body
        if body.get("success") is False:
            raise UpstreamFetchError(
                body.get("message") or f"Reading store rejected {path}.",
                device_id=device_id,
            )
        return body.get("data", body)

    @staticmethod
    def _parse_readings(payload: Any, device_id: int) -> List[SensorReading]:
        try:
            readings = [ReadingSchema.model_validate(item).to_domain() for item in payload]
        except (ValidationError, TypeError) as exc:
            raise UpstreamFetchError(
                f"Malformed readings for device {device_id}.", device_id=device_id
            ) from exc
        return sorted(readings, key=lambda reading: reading.timestamp)
