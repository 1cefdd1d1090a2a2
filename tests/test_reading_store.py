from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest

from datastore.readings import DEFAULT_THRESHOLDS, JsonReadingStore
from models.records import Device, DeviceStatus, SensorReading, Thresholds
from services.errors import UpstreamFetchError

UTC = timezone.utc
T0 = datetime(2024, 5, 1, 12, tzinfo=UTC)


def _device(device_id: int = 1) -> Device:
    return Device(
        id=device_id,
        name=f"Probe {device_id}",
        serial_number=f"SN-{device_id}",
        location_id=10,
        location_name="Greenhouse",
        status=DeviceStatus.online,
    )


def _reading(reading_id: int, hours_ago: float, device_id: int = 1) -> SensorReading:
    return SensorReading(
        id=reading_id,
        device_id=device_id,
        temperature=20.0 + reading_id,
        humidity=50.0,
        timestamp=T0 - timedelta(hours=hours_ago),
    )


def test_fetch_readings_by_hours(tmp_path) -> None:
    store = JsonReadingStore(persistence_path=tmp_path / "store.json")
    store.put_device(_device())
    for reading_id, hours_ago in [(1, 30), (2, 5), (3, 1)]:
        store.add_reading(_reading(reading_id, hours_ago))

    readings = store.fetch_readings(1, hours=24, now=T0)

    assert [r.id for r in readings] == [2, 3]


def test_fetch_range_is_inclusive_and_sorted() -> None:
    store = JsonReadingStore()
    store.put_device(_device())
    store.add_reading(_reading(1, 0))
    store.add_reading(_reading(2, 2))
    store.add_reading(_reading(3, 4))

    readings = store.fetch_readings_in_range(1, T0 - timedelta(hours=2), T0)

    assert [r.id for r in readings] == [2, 1]


def test_naive_reading_timestamps_stored_as_utc() -> None:
    store = JsonReadingStore()
    store.put_device(_device())
    store.add_reading(SensorReading(1, 1, 20.0, 50.0, datetime(2024, 5, 1, 12)))

    (reading,) = store.fetch_readings_in_range(1, T0, T0)

    assert reading.timestamp == T0


def test_unknown_device_raises_key_error() -> None:
    store = JsonReadingStore()

    with pytest.raises(KeyError):
        store.fetch_readings_in_range(99, T0, T0)
    with pytest.raises(KeyError):
        store.get_device(99)
    with pytest.raises(KeyError):
        store.add_reading(_reading(1, 0, device_id=99))


def test_devices_carry_latest_reading() -> None:
    store = JsonReadingStore()
    store.put_device(_device(1))
    store.put_device(_device(2))
    store.add_reading(_reading(1, 3))
    store.add_reading(_reading(2, 1))

    devices = {device.id: device for device in store.list_devices()}

    assert devices[1].last_reading is not None
    assert devices[1].last_reading.id == 2
    assert devices[2].last_reading is None


def test_persistence_roundtrip(tmp_path) -> None:
    path = tmp_path / "nested" / "store.json"
    store = JsonReadingStore(persistence_path=path)
    store.put_device(_device())
    store.add_reading(_reading(1, 1))
    thresholds = Thresholds(10.0, 20.0, 30.0, 40.0)
    store.set_thresholds(thresholds)

    reloaded = JsonReadingStore(persistence_path=path)

    assert reloaded.get_device(1).name == "Probe 1"
    assert reloaded.get_thresholds() == thresholds
    assert reloaded.fetch_readings_in_range(1, T0 - timedelta(days=1), T0)[0].timestamp == T0 - timedelta(hours=1)


def test_default_thresholds() -> None:
    assert JsonReadingStore().get_thresholds() == DEFAULT_THRESHOLDS


def test_corrupt_store_file_raises_upstream_error(tmp_path) -> None:
    path = tmp_path / "store.json"
    path.write_text("{not json")

    with pytest.raises(UpstreamFetchError):
        JsonReadingStore(persistence_path=path)


def test_malformed_store_payload_raises_upstream_error(tmp_path) -> None:
    path = tmp_path / "store.json"
    path.write_text(json.dumps({"readings": [{"id": "x"}]}))

    with pytest.raises(UpstreamFetchError):
        JsonReadingStore(persistence_path=path)
