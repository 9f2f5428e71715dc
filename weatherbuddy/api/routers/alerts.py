"""
Weather Alert API Endpoints.

POST   /api/v1/alerts/check    — fetch weather for a location and run a check
POST   /api/v1/alerts/evaluate — run a check on supplied conditions
GET    /api/v1/alerts/history  — dispatched alerts + stored sample count
DELETE /api/v1/alerts/history  — clear sample and dispatch history
GET    /api/v1/alerts/inbox    — in-app notifications, newest first
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException

from weatherbuddy.alerting.channels import ChannelRouter, InAppDispatcher
from weatherbuddy.alerting.engine import WeatherAlertEngine
from weatherbuddy.alerting.schemas import (
    AlertCheckResult,
    AlertEvaluateRequest,
    AlertHistoryResponse,
    Location,
    WeatherNotification,
)
from weatherbuddy.api.deps import get_engine
from weatherbuddy.services.weather_client import WeatherProviderError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


def _in_app_channel(engine: WeatherAlertEngine) -> Optional[InAppDispatcher]:
    dispatcher = engine.dispatcher
    if isinstance(dispatcher, InAppDispatcher):
        return dispatcher
    if isinstance(dispatcher, ChannelRouter):
        for channel in dispatcher.channels.values():
            if isinstance(channel, InAppDispatcher):
                return channel
    return None


@router.post("/check", response_model=AlertCheckResult)
async def check_alerts(
    body: Location,
    engine: WeatherAlertEngine = Depends(get_engine),
):
    """Fetch current conditions for the location, then run a check cycle."""
    try:
        return await engine.check_location(body)
    except WeatherProviderError as e:
        logger.warning(
            "alert_check_weather_unavailable",
            latitude=body.latitude,
            longitude=body.longitude,
            error=str(e),
        )
        raise HTTPException(status_code=502, detail=f"Weather provider unavailable: {e}")


@router.post("/evaluate", response_model=AlertCheckResult)
async def evaluate_alerts(
    body: AlertEvaluateRequest,
    engine: WeatherAlertEngine = Depends(get_engine),
):
    """Manual trigger with the caller's current conditions."""
    return await engine.trigger_alert_check(body.current, body.location)


@router.get("/history", response_model=AlertHistoryResponse)
async def get_alert_history(engine: WeatherAlertEngine = Depends(get_engine)):
    records = await engine.dispatch_history()
    samples = await engine.sample_history()
    return AlertHistoryResponse(
        alerts=records,
        total=len(records),
        samples_stored=len(samples),
    )


@router.delete("/history")
async def clear_alert_history(engine: WeatherAlertEngine = Depends(get_engine)):
    removed = await engine.clear_alert_history()
    return {"status": "cleared", "keys_removed": removed}


@router.get("/inbox", response_model=list[WeatherNotification])
async def get_inbox(engine: WeatherAlertEngine = Depends(get_engine)):
    channel = _in_app_channel(engine)
    return channel.inbox if channel else []
