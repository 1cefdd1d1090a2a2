from __future__ import annotations

from typing import Any, Dict, List, Tuple

import httpx
import pytest
from typer.testing import CliRunner

from cli.app import app
from cli.client import ApiClient
from cli.config import DEFAULT_TIMEOUT, CLIConfig, load_config


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.chart_params: List[Dict[str, Any]] = []
        self.report_calls: List[Tuple[int, Dict[str, Any]]] = []
        self.closed = False

    def list_devices(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": 1,
                "name": "Cold room",
                "serialNumber": "SN-1",
                "status": "online",
                "lastReading": {"temperature": 4.5, "humidity": 80.0, "timestamp": "2024-01-01T00:00:00Z"},
            },
            {"id": 2, "name": "Spare", "serialNumber": "SN-2", "status": "offline", "lastReading": None},
        ]

    def get_chart(self, params: Dict[str, Any]) -> Dict[str, Any]:
        self.chart_params.append(params)
        return {
            "metric": params["metric"],
            "timezone": "UTC",
            "series": [{"device_id": 1, "points": [{"x": 0}, {"x": 1000}]}],
            "legend": [
                {"device_id": 1, "label": "Cold room", "color": "#8884d8", "visible": True, "min": 4.0, "max": 5.0, "avg": 4.5},
                {"device_id": 2, "label": "Spare", "color": "#82ca9d", "visible": False},
            ],
            "stats": {"min": 4.0, "max": 5.0, "avg": 4.5, "count": 2},
            "x_domain_labels": ["00:00:00", "00:00:01"],
            "zoomed": False,
        }

    def get_stats(self, device_id: int, period: str) -> Dict[str, Any]:
        return {
            "device_id": device_id,
            "period": period,
            "reading_count": 3,
            "temperature": {"min": 1.0, "max": 3.0, "avg": 2.0},
            "humidity": {"min": 40.0, "max": 60.0, "avg": 50.0},
        }

    def get_report(self, device_id: int, params: Dict[str, Any]) -> Tuple[str, bytes]:
        self.report_calls.append((device_id, params))
        return "Cold-room-report-20240101-to-20240102.csv", "\ufeffDevice ID\n".encode("utf-8")

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_devices_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--base-url", "http://svc:9000/", "devices"])

    assert result.exit_code == 0
    assert "[1] Cold room (SN-1, online): 4.5°C / 80.0%" in result.stdout
    assert "[2] Spare (SN-2, offline): no readings" in result.stdout
    assert stub.config.base_url == "http://svc:9000"
    assert stub.closed is True


def test_chart_command_passes_window_and_hidden_devices(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(
        app, ["chart", "1", "2", "--metric", "humidity", "--mode", "daily", "--day", "2024-01-01", "--hide", "2"]
    )

    assert result.exit_code == 0
    assert stub.chart_params == [
        {"device_id": [1, 2], "metric": "humidity", "mode": "daily", "day": "2024-01-01", "hidden": [2]}
    ]
    assert "Chart (humidity, UTC)" in result.stdout
    assert "points: 2" in result.stdout
    assert "[x] Cold room #8884d8: min=4.0 max=5.0 avg=4.5 points=2" in result.stdout
    assert "[ ] Spare #82ca9d: hidden" in result.stdout


def test_stats_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["stats", "7", "--period", "week"])

    assert result.exit_code == 0
    assert "Device 7 (week)" in result.stdout
    assert "temperature: min=1.0 max=3.0 avg=2.0" in result.stdout


def test_report_command_writes_file(runner: CliRunner, stub: StubClient, tmp_path) -> None:
    result = runner.invoke(
        app,
        ["report", "1", "--start", "2024-01-01", "--end", "2024-01-02", "--interval", "hourly", "-o", str(tmp_path)],
    )

    assert result.exit_code == 0
    target = tmp_path / "Cold-room-report-20240101-to-20240102.csv"
    assert target.read_bytes().decode("utf-8").startswith("\ufeff")
    assert stub.report_calls == [(1, {"start": "2024-01-01", "end": "2024-01-02", "interval": "hourly"})]
    assert "Report saved to" in result.stdout


def test_load_config_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("API_BASE_URL", "http://env-host:8080/")
    monkeypatch.setenv("CLI_TIMEOUT", "not-a-number")

    config = load_config()

    assert config.base_url == "http://env-host:8080"
    assert config.timeout == DEFAULT_TIMEOUT


def test_client_prefers_utf8_report_filename() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=b"\xef\xbb\xbfDevice ID\n",
            headers={
                "content-disposition": (
                    "attachment; filename=\"Phong-lanh-report-20240101-to-20240101.csv\"; "
                    "filename*=UTF-8''Ph%C3%B2ng-l%E1%BA%A1nh-report-20240101-to-20240101.csv"
                )
            },
        )

    client = ApiClient(CLIConfig(base_url="http://svc"))
    client._client = httpx.Client(base_url="http://svc", transport=httpx.MockTransport(handler))
    try:
        filename, content = client.get_report(4, {"start": "2024-01-01", "end": "2024-01-01"})
    finally:
        client.close()

    assert filename == "Ph\u00f2ng-l\u1ea1nh-report-20240101-to-20240101.csv"
    assert content.startswith(b"\xef\xbb\xbf")
