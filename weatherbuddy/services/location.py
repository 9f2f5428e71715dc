"""
Location Provider — where periodic checks run.

Device geolocation lives in the app; the service works with a configured
location.
"""

from typing import Optional, Protocol

from weatherbuddy.alerting.schemas import Location
from weatherbuddy.config import Settings, settings


class LocationProvider(Protocol):
    async def get_current_location(self) -> Location:
        ...


class StaticLocationProvider:
    """Always answers with the same location."""

    def __init__(self, location: Location):
        self.location = location

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "StaticLocationProvider":
        config = config or settings
        return cls(Location(
            latitude=config.default_latitude,
            longitude=config.default_longitude,
            city=config.default_city or None,
            timezone=config.default_timezone or None,
        ))

    async def get_current_location(self) -> Location:
        return self.location
