"""
Alert Check Scheduler — periodic background checks.

Runs in its own process (python -m weatherbuddy.scheduler_main), not inside
the API. One job: resolve the location, fetch weather, run a check cycle.
"""

from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from weatherbuddy.alerting.engine import WeatherAlertEngine
from weatherbuddy.alerting.schemas import AlertCheckResult
from weatherbuddy.services.location import LocationProvider
from weatherbuddy.services.weather_client import WeatherProviderError

logger = structlog.get_logger(__name__)


class AlertCheckScheduler:
    """Background scheduler for weather alert checks."""

    def __init__(
        self,
        engine: WeatherAlertEngine,
        location_provider: LocationProvider,
        interval_minutes: int = 30,
    ):
        self.engine = engine
        self.location_provider = location_provider
        self.interval_minutes = interval_minutes
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Register and start the periodic check."""
        self.scheduler.add_job(
            self.run_check,
            IntervalTrigger(minutes=self.interval_minutes),
            id="weather_alert_check",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("alert_scheduler_started", interval_minutes=self.interval_minutes)

    def stop(self):
        """Gracefully stop the scheduler."""
        self.scheduler.shutdown(wait=True)
        logger.info("alert_scheduler_stopped")

    async def run_check(self) -> Optional[AlertCheckResult]:
        """
        One scheduled cycle.

        A failed weather fetch skips this run; the next interval tries again.
        """
        location = await self.location_provider.get_current_location()
        try:
            result = await self.engine.check_location(location)
        except WeatherProviderError as e:
            logger.warning(
                "scheduled_check_skipped",
                latitude=location.latitude,
                longitude=location.longitude,
                error=str(e),
            )
            return None

        logger.info(
            "scheduled_check_completed",
            status=result.status.value,
            candidates=len(result.candidates),
            suppressed=result.suppressed,
            alert_id=result.dispatched.alert_id if result.dispatched else None,
        )
        return result
