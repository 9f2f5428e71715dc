"""
Weather Alert Schemas.

Defines weather samples, candidate alerts, dispatch records, outbound
notifications and the result of a check cycle.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ──────────────────────────────────────────────────────────────


class AlertCategory(StrEnum):
    UNUSUAL = "unusual"             # Deviation from recent history
    OPPORTUNITY = "opportunity"     # Great weather for something
    WARNING = "warning"             # Weather to be careful about
    INTERESTING = "interesting"     # Curiosities


class AlertSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    AlertSeverity.LOW: 1,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.HIGH: 3,
}


class NotificationSeverity(StrEnum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"             # Not produced by this engine


class NotificationType(StrEnum):
    RAIN = "rain"
    UV = "uv"
    AIR_QUALITY = "air_quality"
    TEMPERATURE = "temperature"
    WIND = "wind"
    GENERAL = "general"


class CheckState(StrEnum):
    IDLE = "idle"
    SAMPLING = "sampling"
    DETECTING = "detecting"
    FILTERING = "filtering"
    SELECTING = "selecting"
    ENRICHING = "enriching"
    DISPATCHING = "dispatching"


class CheckStatus(StrEnum):
    DISPATCHED = "dispatched"
    NO_CANDIDATES = "no_candidates"
    ALL_SUPPRESSED = "all_suppressed"
    FAILED = "failed"


# ── Location & Weather ─────────────────────────────────────────────────


class Location(BaseModel):
    """Where the check runs. Timezone drives the local clock for opportunity rules."""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    timezone: Optional[str] = None  # IANA name, e.g. "Europe/Berlin"


class CurrentWeather(BaseModel):
    """Current conditions as returned by the weather provider."""
    temperature: float
    humidity: float = Field(ge=0, le=100)
    pressure: float
    wind_speed: float = Field(ge=0)
    weather_code: int
    uv_index: float = Field(default=0.0, ge=0)
    wind_direction: Optional[float] = None
    visibility: Optional[float] = None
    feels_like: Optional[float] = None
    time: Optional[str] = None      # Provider's local observation time
    timezone: Optional[str] = None  # Provider's IANA zone for the location
    utc_offset_seconds: Optional[int] = None

    def to_sample(self, timestamp: datetime) -> "WeatherSample":
        return WeatherSample(
            temperature=self.temperature,
            humidity=self.humidity,
            wind_speed=self.wind_speed,
            pressure=self.pressure,
            uv_index=self.uv_index,
            weather_code=self.weather_code,
            timestamp=timestamp,
        )


class WeatherSample(BaseModel):
    """One observation kept in the rolling history. Never mutated."""
    model_config = ConfigDict(frozen=True)

    temperature: float              # °C
    humidity: float = Field(ge=0, le=100)
    wind_speed: float = Field(ge=0)  # km/h
    pressure: float                 # hPa
    uv_index: float = Field(ge=0)
    weather_code: int               # WMO code
    timestamp: datetime


# ── Alerts ─────────────────────────────────────────────────────────────


class CandidateAlert(BaseModel):
    """
    An alert produced by a detector for the current check.

    Either dropped (cooldown) or promoted to a dispatched alert.
    """
    alert_id: str
    category: AlertCategory
    severity: AlertSeverity
    title: str
    message: str
    condition_tags: frozenset[str] = Field(min_length=1)
    generated_at: datetime


class DispatchedAlertRecord(BaseModel):
    """What we remember about a sent alert. Used only for cooldown checks."""
    alert_id: str
    category: AlertCategory
    severity: AlertSeverity
    title: str = ""
    condition_tags: frozenset[str] = Field(min_length=1)
    timestamp: datetime

    @classmethod
    def from_alert(cls, alert: CandidateAlert) -> "DispatchedAlertRecord":
        return cls(
            alert_id=alert.alert_id,
            category=alert.category,
            severity=alert.severity,
            title=alert.title,
            condition_tags=alert.condition_tags,
            timestamp=alert.generated_at,
        )


class RewrittenAlert(BaseModel):
    """Reply shape of the text-enrichment collaborator."""
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)


class WeatherNotification(BaseModel):
    """Outbound notification handed to dispatch channels."""
    id: str
    title: str
    description: str
    severity: NotificationSeverity
    type: NotificationType
    timestamp: str
    data: dict = Field(default_factory=dict)


# ── Check result ───────────────────────────────────────────────────────


class AlertCheckResult(BaseModel):
    """Outcome of one check cycle."""
    status: CheckStatus
    candidates: list[CandidateAlert] = Field(default_factory=list)
    suppressed: int = 0
    dispatched: Optional[CandidateAlert] = None
    enriched: bool = False
    delivery_results: dict = Field(default_factory=dict)
    history_size: int = 0
    error: Optional[str] = None
    checked_at: str = ""


class AlertHistoryResponse(BaseModel):
    alerts: list[DispatchedAlertRecord]
    total: int
    samples_stored: int


# ── API requests ───────────────────────────────────────────────────────


class AlertEvaluateRequest(BaseModel):
    """Run a check on caller-supplied conditions."""
    location: Location
    current: CurrentWeather
