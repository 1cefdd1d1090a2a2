"""Error taxonomy for windowing, aggregation and reporting."""


class TelemetryError(Exception):
    """Base exception for the telemetry core."""

    pass


class InvalidWindowSpec(TelemetryError, ValueError):
    """Window mode parameters are malformed or inconsistent."""

    pass


class InvalidTimezoneError(TelemetryError, ValueError):
    """Timezone name is not a known IANA zone."""

    pass


class EmptyDatasetError(TelemetryError):
    """A valid request matched zero readings."""

    pass


class UpstreamFetchError(TelemetryError):
    """The reading store could not be reached or returned garbage."""

    def __init__(self, message: str, device_id: int | None = None) -> None:
        super().__init__(message)
        self.device_id = device_id
