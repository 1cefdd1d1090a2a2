from __future__ import annotations

import json
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from app.schemas import DeviceSchema, ReadingSchema, ThresholdsSchema
from models.records import Device, SensorReading, Thresholds
from services.errors import UpstreamFetchError
from services.timeutil import ensure_utc
from settings import get_settings

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = Thresholds(
    min_temperature=18.0,
    max_temperature=30.0,
    min_humidity=30.0,
    max_humidity=70.0,
)


class ReadingStore(Protocol):
    """Source of raw readings, device labels and thresholds."""

    def fetch_readings(
        self, device_id: int, hours: int, now: Optional[datetime] = None
    ) -> List[SensorReading]: ...

    def fetch_readings_in_range(
        self, device_id: int, start: datetime, end: datetime
    ) -> List[SensorReading]: ...

    def list_devices(self) -> List[Device]: ...

    def get_device(self, device_id: int) -> Device: ...

    def get_thresholds(self) -> Thresholds: ...


class JsonReadingStore:
    """In-memory reading store with optional JSON file persistence."""

    def __init__(self, name: str = "telemetry", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._devices: Dict[int, Device] = {}
        self._readings: Dict[int, List[SensorReading]] = {}
        self._thresholds: Thresholds = DEFAULT_THRESHOLDS
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_device(self, device: Device) -> None:
        with self._lock:
            self._devices[device.id] = replace(device, last_reading=None)
            self._readings.setdefault(device.id, [])
            self._persist()

    def add_reading(self, reading: SensorReading) -> None:
        with self._lock:
            if reading.device_id not in self._devices:
                raise KeyError(f"Device {reading.device_id} not found.")
            stored = replace(reading, timestamp=ensure_utc(reading.timestamp))
            self._readings.setdefault(reading.device_id, []).append(stored)
            self._persist()

    def set_thresholds(self, thresholds: Thresholds) -> None:
        with self._lock:
            self._thresholds = thresholds
            self._persist()

    def fetch_readings(
        self, device_id: int, hours: int, now: Optional[datetime] = None
    ) -> List[SensorReading]:
        end = ensure_utc(now or datetime.now(timezone.utc))
        return self.fetch_readings_in_range(device_id, end - timedelta(hours=hours), end)

    def fetch_readings_in_range(
        self, device_id: int, start: datetime, end: datetime
    ) -> List[SensorReading]:
        start, end = ensure_utc(start), ensure_utc(end)
        with self._lock:
            if device_id not in self._devices:
                raise KeyError(f"Device {device_id} not found.")
            readings = [
                reading
                for reading in self._readings.get(device_id, [])
                if start <= reading.timestamp <= end
            ]
        return sorted(readings, key=lambda reading: reading.timestamp)

    def list_devices(self) -> List[Device]:
        with self._lock:
            return [self._with_last_reading(device) for device in self._devices.values()]

    def get_device(self, device_id: int) -> Device:
        with self._lock:
            device = self._devices.get(device_id)
            if device is None:
                raise KeyError(f"Device {device_id} not found.")
            return self._with_last_reading(device)

    def get_thresholds(self) -> Thresholds:
        with self._lock:
            return self._thresholds

    def _with_last_reading(self, device: Device) -> Device:
        readings = self._readings.get(device.id)
        if not readings:
            return device
        return replace(device, last_reading=max(readings, key=lambda reading: reading.timestamp))

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            "devices": [
                DeviceSchema.from_domain(device).model_dump(mode="json")
                for device in self._devices.values()
            ],
            "readings": [
                ReadingSchema.from_domain(reading).model_dump(mode="json")
                for readings in self._readings.values()
                for reading in readings
            ],
            "thresholds": ThresholdsSchema.from_domain(self._thresholds).model_dump(mode="json"),
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            raise UpstreamFetchError(
                f"Reading store file {self.persistence_path} is unreadable: {exc}"
            ) from exc

        try:
            for payload in data.get("devices", []):
                device = DeviceSchema.model_validate(payload).to_domain()
                self._devices[device.id] = device
                self._readings.setdefault(device.id, [])
            for payload in data.get("readings", []):
                reading = ReadingSchema.model_validate(payload).to_domain()
                self._readings.setdefault(reading.device_id, []).append(reading)
            if data.get("thresholds"):
                self._thresholds = ThresholdsSchema.model_validate(data["thresholds"]).to_domain()
        except ValidationError as exc:
            raise UpstreamFetchError(
                f"Reading store file {self.persistence_path} is malformed."
            ) from exc

        logger.info(
            "Loaded reading store",
            extra={"reading_count": sum(len(r) for r in self._readings.values())},
        )


@lru_cache
def build_default_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    if settings.readings_api_url:
        from datastore.http_store import HttpReadingStore

        return HttpReadingStore(base_url=settings.readings_api_url)
    store_path = settings.store_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return JsonReadingStore(persistence_path=persistence)
