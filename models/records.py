"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class DeviceStatus(str, Enum):
    online = "online"
    offline = "offline"
    warning = "warning"
    error = "error"


class Metric(str, Enum):
    """Reading field plotted on the y axis."""

    temperature = "temperature"
    humidity = "humidity"


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A single immutable temperature/humidity sample for one device."""

    id: int
    device_id: int
    temperature: float
    humidity: float
    timestamp: datetime

    def value_of(self, metric: Metric | str) -> float:
        if Metric(metric) is Metric.temperature:
            return self.temperature
        return self.humidity


@dataclass(frozen=True, slots=True)
class Device:
    id: int
    name: str
    serial_number: str
    location_id: Optional[int] = None
    status: DeviceStatus = DeviceStatus.offline
    location_name: Optional[str] = None
    last_reading: Optional[SensorReading] = None


@dataclass(frozen=True, slots=True)
class Thresholds:
    min_temperature: float
    max_temperature: float
    min_humidity: float
    max_humidity: float

    def is_violated_by(self, reading: SensorReading) -> bool:
        return (
            reading.temperature < self.min_temperature
            or reading.temperature > self.max_temperature
            or reading.humidity < self.min_humidity
            or reading.humidity > self.max_humidity
        )


@dataclass(frozen=True, slots=True)
class ReportRow:
    """A reading (or report bucket) joined with its device and location labels."""

    device_id: int
    device_name: str
    location_name: str
    timestamp: datetime
    temperature: float
    humidity: float
    reading_count: int = 1

    @classmethod
    def from_reading(
        cls,
        reading: SensorReading,
        device_name: str,
        location_name: Optional[str] = None,
    ) -> "ReportRow":
        return cls(
            device_id=reading.device_id,
            device_name=device_name,
            location_name=location_name or "Unknown",
            timestamp=reading.timestamp,
            temperature=reading.temperature,
            humidity=reading.humidity,
        )
