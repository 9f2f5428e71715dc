"""
Open-Meteo Client — current conditions for a location.

Open-Meteo is free and keyless. Transient failures (network errors, HTTP 5xx,
HTTP 429) are retried with exponential backoff; on 429 the server's
Retry-After header wins. Anything still failing is raised as
WeatherProviderError. Callers decide what a failed fetch means.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

import httpx
import structlog

from weatherbuddy.alerting.schemas import CurrentWeather, Location
from weatherbuddy.config import settings
from weatherbuddy.services.resilience import retry_with_backoff

logger = structlog.get_logger(__name__)

CURRENT_FIELDS = (
    "temperature_2m",
    "relative_humidity_2m",
    "surface_pressure",
    "wind_speed_10m",
    "wind_direction_10m",
    "weather_code",
    "uv_index",
    "visibility",
    "apparent_temperature",
)


class WeatherProviderError(Exception):
    """Weather could not be fetched or parsed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientWeatherError(WeatherProviderError):
    """A failure worth retrying. `retry_after` is the server's hint in seconds."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class WeatherProvider(Protocol):
    async def get_current_weather(self, location: Location) -> CurrentWeather:
        ...


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None  # HTTP-date form: fall back to our own backoff


def parse_current(body: dict) -> CurrentWeather:
    """Map Open-Meteo's `current` block onto CurrentWeather."""
    try:
        current = body["current"]
        return CurrentWeather(
            temperature=current["temperature_2m"],
            humidity=current["relative_humidity_2m"],
            pressure=current["surface_pressure"],
            wind_speed=current["wind_speed_10m"],
            wind_direction=current.get("wind_direction_10m"),
            weather_code=current["weather_code"],
            uv_index=current.get("uv_index") or 0.0,
            visibility=current.get("visibility"),
            feels_like=current.get("apparent_temperature"),
            time=current.get("time"),
            timezone=body.get("timezone"),
            utc_offset_seconds=body.get("utc_offset_seconds"),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise WeatherProviderError(f"Malformed weather response: {e}") from e


class OpenMeteoClient:
    """
    HTTP client for the Open-Meteo forecast API.

    Usage:
        client = OpenMeteoClient()
        current = await client.get_current_weather(location)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        base_delay: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.open_meteo_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.weather_timeout_seconds
        self.max_attempts = max(
            1, max_attempts if max_attempts is not None else settings.weather_retry_attempts
        )
        self.base_delay = base_delay
        self._transport = transport
        self._sleep = sleep

    def _params(self, location: Location) -> dict:
        return {
            "latitude": location.latitude,
            "longitude": location.longitude,
            "current": ",".join(CURRENT_FIELDS),
            "timezone": "auto",
        }

    async def _fetch_once(self, location: Location) -> dict:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.get(
                    f"{self.base_url}/forecast", params=self._params(location)
                )
        except httpx.HTTPError as e:
            raise TransientWeatherError(f"Weather request failed: {e}") from e

        if resp.status_code == 429:
            raise TransientWeatherError(
                "Weather provider rate limit hit",
                status_code=429,
                retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
            )
        if resp.status_code >= 500:
            raise TransientWeatherError(
                f"Weather provider error: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        if resp.status_code >= 400:
            raise WeatherProviderError(
                f"Weather request rejected: HTTP {resp.status_code}",
                status_code=resp.status_code,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise WeatherProviderError("Weather response is not JSON") from e

    async def get_current_weather(self, location: Location) -> CurrentWeather:
        """
        Fetch current conditions.

        Raises:
            WeatherProviderError: after retries are exhausted, or on a
                non-retryable response
        """
        body = await retry_with_backoff(
            lambda: self._fetch_once(location),
            max_retries=self.max_attempts - 1,
            base_delay=self.base_delay,
            jitter=0.0,
            retry_on=(TransientWeatherError,),
            operation_name="open_meteo_current",
            sleep=self._sleep,
        )
        current = parse_current(body)
        logger.info(
            "weather_fetched",
            latitude=location.latitude,
            longitude=location.longitude,
            temperature=current.temperature,
            weather_code=current.weather_code,
        )
        return current
