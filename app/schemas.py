"""Pydantic schemas for the HTTP API layer and store persistence."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.records import Device, DeviceStatus, Metric, SensorReading, Thresholds
from services.aggregator import DeviceSeries, DeviceStats, ValueStats
from services.chart import ChartModel, format_point_time, format_tick, round_for_display
from services.timeutil import ensure_utc


class ReadingSchema(BaseModel):
    """A stored sensor reading; accepts the camelCase keys of the upstream API."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    device_id: int = Field(..., alias="deviceId")
    temperature: float
    humidity: float
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @classmethod
    def from_domain(cls, reading: SensorReading) -> "ReadingSchema":
        return cls(
            id=reading.id,
            device_id=reading.device_id,
            temperature=reading.temperature,
            humidity=reading.humidity,
            timestamp=reading.timestamp,
        )

    def to_domain(self) -> SensorReading:
        return SensorReading(
            id=self.id,
            device_id=self.device_id,
            temperature=self.temperature,
            humidity=self.humidity,
            timestamp=self.timestamp,
        )


class DeviceSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    serial_number: str = Field(..., alias="serialNumber")
    location_id: Optional[int] = Field(default=None, alias="locationId")
    location_name: Optional[str] = Field(default=None, alias="locationName")
    status: DeviceStatus = DeviceStatus.offline
    last_reading: Optional[ReadingSchema] = Field(default=None, alias="lastReading")

    @classmethod
    def from_domain(cls, device: Device) -> "DeviceSchema":
        return cls(
            id=device.id,
            name=device.name,
            serial_number=device.serial_number,
            location_id=device.location_id,
            location_name=device.location_name,
            status=device.status,
            last_reading=(
                ReadingSchema.from_domain(device.last_reading) if device.last_reading else None
            ),
        )

    def to_domain(self) -> Device:
        return Device(
            id=self.id,
            name=self.name,
            serial_number=self.serial_number,
            location_id=self.location_id,
            location_name=self.location_name,
            status=self.status,
            last_reading=self.last_reading.to_domain() if self.last_reading else None,
        )


class ThresholdsSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    min_temperature: float = Field(..., alias="minTemperature")
    max_temperature: float = Field(..., alias="maxTemperature")
    min_humidity: float = Field(..., alias="minHumidity")
    max_humidity: float = Field(..., alias="maxHumidity")

    @classmethod
    def from_domain(cls, thresholds: Thresholds) -> "ThresholdsSchema":
        return cls(
            min_temperature=thresholds.min_temperature,
            max_temperature=thresholds.max_temperature,
            min_humidity=thresholds.min_humidity,
            max_humidity=thresholds.max_humidity,
        )

    def to_domain(self) -> Thresholds:
        return Thresholds(
            min_temperature=self.min_temperature,
            max_temperature=self.max_temperature,
            min_humidity=self.min_humidity,
            max_humidity=self.max_humidity,
        )


class ValueStatsSchema(BaseModel):
    min: float
    max: float
    avg: float
    count: int = Field(..., ge=0)

    @classmethod
    def from_domain(cls, stats: ValueStats) -> "ValueStatsSchema":
        return cls(
            min=round_for_display(stats.min),
            max=round_for_display(stats.max),
            avg=round_for_display(stats.avg),
            count=stats.count,
        )


class DeviceStatsResponse(BaseModel):
    device_id: int
    period: str
    start: datetime
    end: datetime
    reading_count: int = Field(..., ge=0)
    temperature: ValueStatsSchema
    humidity: ValueStatsSchema
    first_reading: Optional[datetime] = None
    last_reading: Optional[datetime] = None

    @classmethod
    def from_domain(
        cls, stats: DeviceStats, period: str, start: datetime, end: datetime
    ) -> "DeviceStatsResponse":
        return cls(
            device_id=stats.device_id,
            period=period,
            start=start,
            end=end,
            reading_count=stats.reading_count,
            temperature=ValueStatsSchema.from_domain(stats.temperature),
            humidity=ValueStatsSchema.from_domain(stats.humidity),
            first_reading=stats.first_reading,
            last_reading=stats.last_reading,
        )


class SeriesPointSchema(BaseModel):
    x: int
    y: float
    temperature: float
    humidity: float
    timestamp: datetime
    formatted_time: str


class DeviceSeriesSchema(BaseModel):
    device_id: int
    label: str
    color: str
    visible: bool
    min: float
    max: float
    avg: float
    points: List[SeriesPointSchema] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, series: DeviceSeries, include_points: bool = True) -> "DeviceSeriesSchema":
        points = [
            SeriesPointSchema(
                x=point.x,
                y=point.y,
                temperature=point.temperature,
                humidity=point.humidity,
                timestamp=point.timestamp,
                formatted_time=format_point_time(point.x),
            )
            for point in series.points
        ] if include_points else []
        return cls(
            device_id=series.device_id,
            label=series.label,
            color=series.color,
            visible=series.visible,
            min=round_for_display(series.min),
            max=round_for_display(series.max),
            avg=round_for_display(series.avg),
            points=points,
        )


class ChartResponse(BaseModel):
    """Renderable chart: visible series, legend entries and shared domains."""

    metric: Metric
    timezone: str
    series: List[DeviceSeriesSchema]
    legend: List[DeviceSeriesSchema]
    stats: ValueStatsSchema
    x_domain: Optional[List[float]] = None
    x_domain_labels: Optional[List[str]] = None
    y_domain: Optional[List[float]] = None
    zoomed: bool = False
    sequence: int = Field(..., ge=1)

    @classmethod
    def from_domain(cls, model: ChartModel, metric: Metric, sequence: int) -> "ChartResponse":
        return cls(
            metric=metric,
            timezone=model.timezone,
            series=[DeviceSeriesSchema.from_domain(series) for series in model.series],
            legend=[
                DeviceSeriesSchema.from_domain(series, include_points=False)
                for series in model.legend
            ],
            stats=ValueStatsSchema.from_domain(model.stats),
            x_domain=list(model.x_domain) if model.x_domain else None,
            x_domain_labels=[format_tick(x) for x in model.x_domain] if model.x_domain else None,
            y_domain=list(model.y_domain) if model.y_domain else None,
            zoomed=model.zoomed,
            sequence=sequence,
        )


class ThresholdWarningsResponse(BaseModel):
    thresholds: ThresholdsSchema
    devices: List[DeviceSchema] = Field(default_factory=list)
