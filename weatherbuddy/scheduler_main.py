"""
Scheduler Entry Point — runs in its own process.

Usage:
    python -m weatherbuddy.scheduler_main

This does NOT run a web server. It runs the APScheduler background loop
that checks the configured location every CHECK_INTERVAL_MINUTES.
"""

import asyncio
import signal

import structlog

from weatherbuddy.alerting.engine import build_engine
from weatherbuddy.config import settings
from weatherbuddy.logging_config import configure_logging
from weatherbuddy.services.location import StaticLocationProvider
from weatherbuddy.services.scheduler import AlertCheckScheduler

logger = structlog.get_logger(__name__)


async def main():
    """Initialize and run the scheduler."""
    configure_logging()
    logger.info("scheduler_starting", version=settings.app_version)

    engine = build_engine()
    scheduler = AlertCheckScheduler(
        engine=engine,
        location_provider=StaticLocationProvider.from_settings(),
        interval_minutes=settings.check_interval_minutes,
    )

    # Run an initial check on startup
    logger.info("running_initial_check")
    await scheduler.run_check()

    scheduler.start()

    # Graceful shutdown handling
    stop_event = asyncio.Event()

    def _handle_signal(signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("scheduler_running", msg="Waiting for jobs... Ctrl+C to stop.")

    await stop_event.wait()

    scheduler.stop()
    close = getattr(engine.store, "close", None)
    if close is not None:
        await close()
    logger.info("scheduler_shutdown_complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
