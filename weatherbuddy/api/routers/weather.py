"""
Weather API Endpoints.

GET /api/v1/weather?latitude=..&longitude=.. — current conditions passthrough
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from weatherbuddy.alerting.engine import WeatherAlertEngine
from weatherbuddy.alerting.schemas import CurrentWeather, Location
from weatherbuddy.api.deps import get_engine
from weatherbuddy.services.weather_client import WeatherProviderError

router = APIRouter(prefix="/api/v1/weather", tags=["weather"])


@router.get("", response_model=CurrentWeather)
async def get_current_weather(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    engine: WeatherAlertEngine = Depends(get_engine),
):
    if engine.weather_provider is None:
        raise HTTPException(status_code=503, detail="No weather provider configured")
    try:
        return await engine.weather_provider.get_current_weather(
            Location(latitude=latitude, longitude=longitude)
        )
    except WeatherProviderError as e:
        raise HTTPException(status_code=502, detail=f"Weather provider unavailable: {e}")
