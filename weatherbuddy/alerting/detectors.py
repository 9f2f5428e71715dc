"""
Alert Detectors — Four independent rule sets producing candidate alerts.

1. Unusual-Pattern: current sample vs. mean of recent history (temperature, pressure)
2. Opportunity: great weather for something, depends on the local clock
3. Warning: weather to be careful about
4. Interesting-Condition: curiosities worth a mention

Every detector is a pure function of its inputs. None of them touch storage,
and any of them may return an empty list.
"""

import random
import uuid
from datetime import datetime
from typing import Optional, Sequence

import structlog

from weatherbuddy.alerting.messages import compose_message
from weatherbuddy.alerting.schemas import (
    AlertCategory,
    AlertSeverity,
    CandidateAlert,
    Location,
    WeatherSample,
)

logger = structlog.get_logger(__name__)

# Minimum history length for trend rules
MIN_HISTORY_FOR_PATTERNS: int = 3

# Unusual-pattern thresholds
TEMP_DEVIATION_C: float = 10.0
TEMP_DEVIATION_HIGH_C: float = 15.0
PRESSURE_DEVIATION_HPA: float = 20.0

# Opportunity windows (local hours, inclusive)
SUNRISE_HOURS = (6, 8)
SUNSET_HOURS = (17, 19)
STARGAZING_FROM_HOUR: int = 21

# WMO weather code ranges (inclusive)
FOG_CODES = (45, 48)
RAIN_CODES = (51, 67)
HEAVY_RAIN_FROM: int = 61
SNOW_CODES = (71, 77)


def _new_alert(
    prefix: str,
    category: AlertCategory,
    severity: AlertSeverity,
    condition: str,
    tags: set[str],
    now: datetime,
    context: dict,
    rng: Optional[random.Random],
) -> CandidateAlert:
    title, message = compose_message(condition, context, rng)
    return CandidateAlert(
        alert_id=f"{prefix}_{uuid.uuid4().hex[:12]}",
        category=category,
        severity=severity,
        title=title,
        message=message,
        condition_tags=frozenset(tags),
        generated_at=now,
    )


def _context(current: WeatherSample, location: Optional[Location]) -> dict:
    city = location.city if location and location.city else ""
    return {
        "temp": round(current.temperature),
        "humidity": round(current.humidity),
        "uv": round(current.uv_index, 1) if current.uv_index % 1 else int(current.uv_index),
        "wind": round(current.wind_speed),
        "place": f" in {city}" if city else "",
    }


def _between(value: float, bounds: tuple[int, int]) -> bool:
    return bounds[0] <= value <= bounds[1]


# ── Unusual-Pattern ────────────────────────────────────────────────────


def detect_unusual_patterns(
    current: WeatherSample,
    history: Sequence[WeatherSample],
    location: Optional[Location] = None,
    rng: Optional[random.Random] = None,
) -> list[CandidateAlert]:
    """
    Compare the current sample with the mean of the stored history.

    Needs at least MIN_HISTORY_FOR_PATTERNS samples, otherwise returns [].
    """
    if len(history) < MIN_HISTORY_FOR_PATTERNS:
        return []

    alerts: list[CandidateAlert] = []
    now = current.timestamp
    ctx = _context(current, location)

    avg_temp = sum(h.temperature for h in history) / len(history)
    temp_diff = abs(current.temperature - avg_temp)
    if temp_diff > TEMP_DEVIATION_C:
        warmer = current.temperature > avg_temp
        alerts.append(_new_alert(
            "temp_change",
            AlertCategory.UNUSUAL,
            AlertSeverity.HIGH if temp_diff > TEMP_DEVIATION_HIGH_C else AlertSeverity.MEDIUM,
            "warm_spell" if warmer else "temperature_drop",
            {"temperature_change"},
            now,
            {**ctx, "diff": round(temp_diff)},
            rng,
        ))

    avg_pressure = sum(h.pressure for h in history) / len(history)
    pressure_diff = abs(current.pressure - avg_pressure)
    if pressure_diff > PRESSURE_DEVIATION_HPA:
        rising = current.pressure > avg_pressure
        alerts.append(_new_alert(
            "pressure_change",
            AlertCategory.INTERESTING,
            AlertSeverity.MEDIUM,
            "pressure_rising" if rising else "pressure_falling",
            {"pressure_change"},
            now,
            ctx,
            rng,
        ))

    return alerts


# ── Opportunity ────────────────────────────────────────────────────────


def detect_opportunities(
    current: WeatherSample,
    local_time: datetime,
    location: Optional[Location] = None,
    rng: Optional[random.Random] = None,
) -> list[CandidateAlert]:
    """Great-weather opportunities. All matching rules fire independently."""
    alerts: list[CandidateAlert] = []
    now = current.timestamp
    ctx = _context(current, location)
    temp = current.temperature
    code = current.weather_code
    hour = local_time.hour

    if code <= 1 and 18 <= temp <= 26 and current.wind_speed < 15:
        alerts.append(_new_alert(
            "perfect_day", AlertCategory.OPPORTUNITY, AlertSeverity.LOW,
            "perfect_weather", {"perfect_weather"}, now, ctx, rng,
        ))

    if code <= 3 and (_between(hour, SUNSET_HOURS) or _between(hour, SUNRISE_HOURS)):
        time_of_day = "sunrise" if hour < 12 else "sunset"
        alerts.append(_new_alert(
            time_of_day, AlertCategory.OPPORTUNITY, AlertSeverity.LOW,
            "golden_hour", {f"{time_of_day}_opportunity"}, now,
            {**ctx, "time_of_day": time_of_day, "TimeOfDay": time_of_day.capitalize()},
            rng,
        ))

    if code <= 1 and hour >= STARGAZING_FROM_HOUR and current.uv_index == 0:
        alerts.append(_new_alert(
            "stargazing", AlertCategory.OPPORTUNITY, AlertSeverity.LOW,
            "stargazing", {"stargazing"}, now, ctx, rng,
        ))

    if _between(code, SNOW_CODES) and temp < 2:
        alerts.append(_new_alert(
            "snow_fun", AlertCategory.OPPORTUNITY, AlertSeverity.MEDIUM,
            "snow_day", {"snow_opportunity"}, now, ctx, rng,
        ))

    return alerts


# ── Warning ────────────────────────────────────────────────────────────


def detect_warnings(
    current: WeatherSample,
    location: Optional[Location] = None,
    rng: Optional[random.Random] = None,
) -> list[CandidateAlert]:
    """Hazards. Each rule is evaluated independently; any subset may fire."""
    alerts: list[CandidateAlert] = []
    now = current.timestamp
    ctx = _context(current, location)
    temp = current.temperature
    code = current.weather_code

    if _between(code, RAIN_CODES):
        heavy = code >= HEAVY_RAIN_FROM
        intensity = "heavy" if heavy else "light"
        alerts.append(_new_alert(
            "rain_warning", AlertCategory.WARNING,
            AlertSeverity.HIGH if heavy else AlertSeverity.MEDIUM,
            "rain", {"rain"}, now,
            {**ctx, "intensity": intensity, "Intensity": intensity.capitalize()},
            rng,
        ))

    if current.uv_index >= 8:
        alerts.append(_new_alert(
            "uv_warning", AlertCategory.WARNING,
            AlertSeverity.HIGH if current.uv_index >= 10 else AlertSeverity.MEDIUM,
            "high_uv", {"high_uv"}, now, ctx, rng,
        ))

    if temp < -5:
        alerts.append(_new_alert(
            "cold_warning", AlertCategory.WARNING,
            AlertSeverity.HIGH if temp < -15 else AlertSeverity.MEDIUM,
            "extreme_cold", {"extreme_cold"}, now, ctx, rng,
        ))

    if current.wind_speed > 30:
        alerts.append(_new_alert(
            "wind_warning", AlertCategory.WARNING,
            AlertSeverity.HIGH if current.wind_speed > 50 else AlertSeverity.MEDIUM,
            "high_wind", {"high_wind"}, now, ctx, rng,
        ))

    if temp > 35:
        alerts.append(_new_alert(
            "heat_warning", AlertCategory.WARNING,
            AlertSeverity.HIGH if temp > 40 else AlertSeverity.MEDIUM,
            "extreme_heat", {"extreme_heat"}, now, ctx, rng,
        ))

    return alerts


# ── Interesting-Condition ──────────────────────────────────────────────


def detect_interesting_conditions(
    current: WeatherSample,
    history: Sequence[WeatherSample] = (),
    location: Optional[Location] = None,
    rng: Optional[random.Random] = None,
) -> list[CandidateAlert]:
    """Curiosities. Takes history for signature parity but does not use it."""
    alerts: list[CandidateAlert] = []
    now = current.timestamp
    ctx = _context(current, location)
    temp = current.temperature

    if _between(current.weather_code, FOG_CODES):
        alerts.append(_new_alert(
            "fog", AlertCategory.INTERESTING, AlertSeverity.LOW,
            "fog", {"fog"}, now, ctx, rng,
        ))

    if current.humidity > 85 and temp > 20:
        alerts.append(_new_alert(
            "humidity", AlertCategory.INTERESTING, AlertSeverity.LOW,
            "high_humidity", {"high_humidity"}, now, ctx, rng,
        ))

    if 21 <= temp <= 23:
        alerts.append(_new_alert(
            "perfect_temp", AlertCategory.INTERESTING, AlertSeverity.LOW,
            "perfect_temperature", {"perfect_temperature"}, now, ctx, rng,
        ))

    return alerts


# ── All detectors ──────────────────────────────────────────────────────


def run_detectors(
    current: WeatherSample,
    history: Sequence[WeatherSample],
    local_time: datetime,
    location: Optional[Location] = None,
    rng: Optional[random.Random] = None,
) -> list[CandidateAlert]:
    """
    Run all four detectors and flatten their output in detection order.

    Order matters: the selector breaks severity ties by this order.
    """
    candidates = [
        *detect_unusual_patterns(current, history, location, rng),
        *detect_opportunities(current, local_time, location, rng),
        *detect_warnings(current, location, rng),
        *detect_interesting_conditions(current, history, location, rng),
    ]
    logger.debug(
        "detectors_completed",
        candidates=len(candidates),
        history_size=len(history),
        local_hour=local_time.hour,
    )
    return candidates
