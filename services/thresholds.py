from __future__ import annotations

from typing import Iterable, List

from models.records import Device, Thresholds


def devices_outside_thresholds(devices: Iterable[Device], thresholds: Thresholds) -> List[Device]:
    """Devices whose latest reading falls outside any threshold band."""
    return [
        device
        for device in devices
        if device.last_reading is not None and thresholds.is_violated_by(device.last_reading)
    ]
