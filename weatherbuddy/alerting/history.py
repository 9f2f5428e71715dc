"""
Weather Sample Store & Dispatch History.

Both are newest-first bounded lists persisted under fixed keys:
- weatherHistory    — last 24 WeatherSamples (trend detection)
- lastWeatherAlerts — last 10 DispatchedAlertRecords (cooldown checks)

Storage errors are logged and degrade to "no history": detectors skip trend
rules and the cooldown filter lets everything through.
"""

from typing import Sequence

import structlog
from pydantic import TypeAdapter, ValidationError

from weatherbuddy.alerting.schemas import (
    CandidateAlert,
    DispatchedAlertRecord,
    WeatherSample,
)
from weatherbuddy.services.storage import KeyValueStore, StorageError

logger = structlog.get_logger(__name__)

WEATHER_HISTORY_KEY = "weatherHistory"
LAST_ALERTS_KEY = "lastWeatherAlerts"

HISTORY_LIMIT: int = 24
ALERT_HISTORY_LIMIT: int = 10

_samples_adapter = TypeAdapter(list[WeatherSample])
_records_adapter = TypeAdapter(list[DispatchedAlertRecord])


class SampleStore:
    """Rolling window of recent weather samples."""

    def __init__(self, store: KeyValueStore, capacity: int = HISTORY_LIMIT):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._store = store
        self.capacity = capacity

    async def history(self) -> list[WeatherSample]:
        """Stored samples, newest first. Empty on any read error."""
        try:
            raw = await self._store.get(WEATHER_HISTORY_KEY)
            if not raw:
                return []
            return _samples_adapter.validate_python(raw)[: self.capacity]
        except (StorageError, ValidationError) as e:
            logger.warning("weather_history_unavailable", error=str(e))
            return []

    async def record(self, sample: WeatherSample) -> list[WeatherSample]:
        """
        Prepend a sample, evicting the oldest past capacity.

        Returns the updated history. Raises StorageError if the write fails.
        """
        updated = [sample, *await self.history()][: self.capacity]
        await self._store.set(
            WEATHER_HISTORY_KEY, _samples_adapter.dump_python(updated, mode="json")
        )
        return updated


class AlertHistoryStore:
    """Bounded record of dispatched alerts."""

    def __init__(self, store: KeyValueStore, capacity: int = ALERT_HISTORY_LIMIT):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._store = store
        self.capacity = capacity

    async def records(self) -> list[DispatchedAlertRecord]:
        """Dispatched alerts, newest first. Empty on any read error."""
        try:
            raw = await self._store.get(LAST_ALERTS_KEY)
            if not raw:
                return []
            return _records_adapter.validate_python(raw)[: self.capacity]
        except (StorageError, ValidationError) as e:
            logger.warning("alert_history_unavailable", error=str(e))
            return []

    async def remember(self, alert: CandidateAlert) -> list[DispatchedAlertRecord]:
        """Record a dispatched alert. Raises StorageError if the write fails."""
        updated = [DispatchedAlertRecord.from_alert(alert), *await self.records()]
        updated = updated[: self.capacity]
        await self._store.set(
            LAST_ALERTS_KEY, _records_adapter.dump_python(updated, mode="json")
        )
        return updated


async def clear_persisted_state(store: KeyValueStore, keys: Sequence[str] = ()) -> int:
    """Remove both persisted keys (plus any extra ones)."""
    return await store.delete(WEATHER_HISTORY_KEY, LAST_ALERTS_KEY, *keys)
