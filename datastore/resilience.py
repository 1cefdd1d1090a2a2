"""Result-returning wrapper around a reading store."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from datastore.readings import ReadingStore
from models.records import SensorReading
from services.errors import UpstreamFetchError

logger = logging.getLogger(__name__)

Fallback = Callable[[int, datetime, datetime], List[SensorReading]]


@dataclass
class FetchResult:
    readings: List[SensorReading] = field(default_factory=list)
    error: Optional[UpstreamFetchError] = None
    from_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> List[SensorReading]:
        if self.error is not None and not self.from_fallback:
            raise self.error
        return self.readings


class ResilientReadingSource:
    """Turns store failures into ``FetchResult`` values.

    With a ``fallback`` configured, failed fetches are answered with its
    readings and flagged ``from_fallback``; the original error is kept on
    the result either way.
    """

    def __init__(self, store: ReadingStore, fallback: Fallback | None = None) -> None:
        self.store = store
        self.fallback = fallback

    def fetch_range(
        self,
        device_id: int,
        start: datetime,
        end: datetime,
        allow_fallback: bool = True,
    ) -> FetchResult:
        try:
            readings = self.store.fetch_readings_in_range(device_id, start, end)
        except UpstreamFetchError as exc:
            logger.warning(
                "Reading fetch failed",
                extra={"device_id": device_id, "reason": str(exc), "fallback": self.fallback is not None},
            )
            if self.fallback is None or not allow_fallback:
                return FetchResult(error=exc)
            return FetchResult(
                readings=self.fallback(device_id, start, end),
                error=exc,
                from_fallback=True,
            )
        return FetchResult(readings=readings)
