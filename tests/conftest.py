"""
Test fixtures for Weather Buddy.

Provides:
- Environment pinned to in-memory storage with enrichment off
- A controllable clock
- A recording dispatcher
- An engine wired with fakes (no network)
"""

import os
import random
from datetime import datetime, timedelta, timezone

import pytest

# Set before weatherbuddy.config is imported
os.environ["ENVIRONMENT"] = "testing"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["ENRICHMENT_ENABLED"] = "false"
os.environ["OPENAI_API_KEY"] = ""
os.environ["ALERT_WEBHOOK_URL"] = ""

from weatherbuddy.alerting.engine import WeatherAlertEngine  # noqa: E402
from weatherbuddy.alerting.schemas import WeatherNotification  # noqa: E402
from weatherbuddy.services.storage import MemoryStore  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDispatcher:
    """Dispatcher that remembers every notification it was handed."""

    def __init__(self, success: bool = True):
        self.sent: list[WeatherNotification] = []
        self.success = success

    async def dispatch(self, notification: WeatherNotification) -> dict:
        self.sent.append(notification)
        return {"success": self.success, "detail": "recorded"}


@pytest.fixture
def clock() -> FakeClock:
    # 14:00 UTC: outside every opportunity time window
    return FakeClock(datetime(2025, 6, 1, 14, 0, tzinfo=timezone.utc))


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def engine(store, dispatcher, clock) -> WeatherAlertEngine:
    return WeatherAlertEngine(
        store=store,
        dispatcher=dispatcher,
        clock=clock,
        rng=random.Random(42),
    )
