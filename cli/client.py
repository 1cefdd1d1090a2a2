from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import unquote

import httpx
import typer

from cli.config import CLIConfig

_FILENAME = re.compile(r'filename="([^"]+)"')
_FILENAME_UTF8 = re.compile(r"filename\*=UTF-8''([^;\s]+)", re.IGNORECASE)


class ApiClient:
    """Minimal HTTP client for the telemetry chart service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def list_devices(self) -> List[Dict[str, Any]]:
        return self._get_json("/devices", None)

    def get_chart(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._get_json("/charts", params)

    def get_stats(self, device_id: int, period: str) -> Dict[str, Any]:
        return self._get_json(f"/devices/{device_id}/stats", {"period": period})

    def get_report(self, device_id: int, params: Dict[str, Any]) -> Tuple[str, bytes]:
        response = self._get(f"/devices/{device_id}/report", params)
        disposition = response.headers.get("content-disposition", "")
        return _report_filename(disposition, device_id), response.content

    def _get_json(self, path: str, params: Optional[Dict[str, Any]]) -> Any:
        return self._get(path, params).json()

    def _get(self, path: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.RequestError as exc:
            typer.secho(f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        return response

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


def _report_filename(disposition: str, device_id: int) -> str:
    encoded = _FILENAME_UTF8.search(disposition)
    if encoded:
        return unquote(encoded.group(1), encoding="utf-8")
    match = _FILENAME.search(disposition)
    return match.group(1) if match else f"device-{device_id}-report.csv"
