"""Deterministic generated readings for demo and degraded-mode fallback."""

from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import List, Tuple

from models.records import SensorReading
from services.timeutil import ensure_utc

_PROFILES: Tuple[Tuple[float, float, float, float], ...] = (
    (20.0, 25.0, 40.0, 60.0),
    (18.0, 27.0, 30.0, 50.0),
    (20.0, 24.0, 40.0, 60.0),
    (20.0, 26.0, 35.0, 65.0),
    (15.0, 30.0, 30.0, 70.0),
    (2.0, 8.0, 70.0, 90.0),
)


def generate_readings(
    device_id: int,
    start: datetime,
    end: datetime,
    step: timedelta = timedelta(minutes=30),
    seed: int | None = None,
) -> List[SensorReading]:
    """Readings every ``step`` in ``[start, end]`` with a per-device value profile."""
    start, end = ensure_utc(start), ensure_utc(end)
    temp_min, temp_max, hum_min, hum_max = _PROFILES[device_id % len(_PROFILES)]
    rng = random.Random(device_id if seed is None else seed)

    readings: List[SensorReading] = []
    timestamp = start
    index = 0
    while timestamp <= end:
        index += 1
        readings.append(
            SensorReading(
                id=-(device_id * 100_000 + index),
                device_id=device_id,
                temperature=round(rng.uniform(temp_min, temp_max), 1),
                humidity=round(rng.uniform(hum_min, hum_max), 1),
                timestamp=timestamp,
            )
        )
        timestamp += step
    return readings
