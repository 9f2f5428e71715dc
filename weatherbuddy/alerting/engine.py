"""
Weather Alert Engine — One check cycle, end to end.

Pipeline:
1. Record the fresh sample in the Sample Store
2. Run all four detectors (current sample + history + local clock)
3. Drop candidates still in cooldown
4. Select the single most severe survivor
5. Enrich its text (best effort, bounded by a timeout)
6. Dispatch it as a notification
7. Remember it in the dispatch history for future cooldown checks

Runs are serialized per engine: an overlapping trigger waits for the
in-flight cycle. No error escapes check_for_weather_alerts; failures are
logged and reported in the result.
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from weatherbuddy.alerting.channels import (
    ChannelRouter,
    ExpoPushDispatcher,
    InAppDispatcher,
    NotificationDispatcher,
    WebhookDispatcher,
    to_notification,
)
from weatherbuddy.alerting.dedup import DEFAULT_COOLDOWN, CooldownFilter
from weatherbuddy.alerting.detectors import run_detectors
from weatherbuddy.alerting.enrichment import AlertEnricher, LLMAlertRewriter
from weatherbuddy.alerting.history import (
    ALERT_HISTORY_LIMIT,
    HISTORY_LIMIT,
    AlertHistoryStore,
    SampleStore,
    clear_persisted_state,
)
from weatherbuddy.alerting.ranking import select_alert
from weatherbuddy.alerting.schemas import (
    AlertCheckResult,
    CandidateAlert,
    CheckState,
    CheckStatus,
    CurrentWeather,
    DispatchedAlertRecord,
    Location,
    WeatherSample,
)
from weatherbuddy.config import Settings, settings
from weatherbuddy.services.llm_gateway import LLMGateway
from weatherbuddy.services.resilience import CircuitBreaker
from weatherbuddy.services.storage import KeyValueStore, StorageError, create_store
from weatherbuddy.services.weather_client import (
    OpenMeteoClient,
    WeatherProvider,
    WeatherProviderError,
)

logger = structlog.get_logger(__name__)

# Gateway must time out before the enricher's wait_for does.
GATEWAY_TIMEOUT_FRACTION = 0.8


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WeatherAlertEngine:
    """
    Orchestrates detection, cooldown, selection, enrichment and dispatch.

    All collaborators are injected; the engine holds no class-level state.
    """

    def __init__(
        self,
        store: KeyValueStore,
        dispatcher: Optional[NotificationDispatcher] = None,
        enricher: Optional[AlertEnricher] = None,
        weather_provider: Optional[WeatherProvider] = None,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        history_limit: int = HISTORY_LIMIT,
        alert_history_limit: int = ALERT_HISTORY_LIMIT,
    ):
        self.store = store
        self.dispatcher = dispatcher or InAppDispatcher()
        self.enricher = enricher or AlertEnricher()
        self.weather_provider = weather_provider
        self.samples = SampleStore(store, history_limit)
        self.alert_history = AlertHistoryStore(store, alert_history_limit)
        self.cooldown_filter = CooldownFilter(cooldown)
        self._clock = clock
        self._rng = rng
        self._lock = asyncio.Lock()
        self._state = CheckState.IDLE

    @property
    def state(self) -> CheckState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # ── Public operations ──────────────────────────────────────────────

    async def check_for_weather_alerts(
        self, current_weather: CurrentWeather, location: Location
    ) -> AlertCheckResult:
        """Run one full check cycle. Never raises."""
        async with self._lock:
            now = self._clock()
            try:
                return await self._run_cycle(current_weather, location, now)
            except Exception as e:
                logger.error(
                    "weather_alert_check_failed",
                    state=self._state.value,
                    error=str(e),
                    exc_info=True,
                )
                return AlertCheckResult(
                    status=CheckStatus.FAILED,
                    error=str(e),
                    checked_at=now.isoformat(),
                )
            finally:
                self._state = CheckState.IDLE

    async def trigger_alert_check(
        self, current_weather: CurrentWeather, location: Location
    ) -> AlertCheckResult:
        """Manual re-entry point (pull-to-refresh, API call)."""
        logger.info(
            "manual_alert_check_triggered",
            latitude=location.latitude,
            longitude=location.longitude,
        )
        return await self.check_for_weather_alerts(current_weather, location)

    async def check_location(self, location: Location) -> AlertCheckResult:
        """
        Fetch fresh conditions for a location, then run a check.

        Raises:
            WeatherProviderError: the fetch failed; no check was run
        """
        if self.weather_provider is None:
            raise WeatherProviderError("No weather provider configured")
        current = await self.weather_provider.get_current_weather(location)
        return await self.check_for_weather_alerts(current, location)

    async def clear_alert_history(self) -> int:
        """Empty the sample history and the dispatch history."""
        async with self._lock:
            removed = await clear_persisted_state(self.store)
        logger.info("weather_alert_history_cleared", keys_removed=removed)
        return removed

    async def dispatch_history(self) -> list[DispatchedAlertRecord]:
        return await self.alert_history.records()

    async def sample_history(self) -> list[WeatherSample]:
        return await self.samples.history()

    # ── Cycle ──────────────────────────────────────────────────────────

    async def _run_cycle(
        self, current_weather: CurrentWeather, location: Location, now: datetime
    ) -> AlertCheckResult:
        self._state = CheckState.SAMPLING
        sample = current_weather.to_sample(now)
        history = await self._record_sample(sample)

        self._state = CheckState.DETECTING
        candidates = run_detectors(
            sample,
            history,
            self._local_time(now, location, current_weather),
            location,
            self._rng,
        )
        if not candidates:
            logger.debug("weather_alert_no_candidates", history_size=len(history))
            return AlertCheckResult(
                status=CheckStatus.NO_CANDIDATES,
                history_size=len(history),
                checked_at=now.isoformat(),
            )

        self._state = CheckState.FILTERING
        dispatched_before = await self.alert_history.records()
        survivors = self.cooldown_filter.filter(candidates, dispatched_before, now)
        suppressed = len(candidates) - len(survivors)

        self._state = CheckState.SELECTING
        selected = select_alert(survivors)
        if selected is None:
            logger.info(
                "weather_alerts_all_suppressed",
                candidates=len(candidates),
            )
            return AlertCheckResult(
                status=CheckStatus.ALL_SUPPRESSED,
                candidates=candidates,
                suppressed=suppressed,
                history_size=len(history),
                checked_at=now.isoformat(),
            )

        self._state = CheckState.ENRICHING
        alert, enriched = await self.enricher.enrich(selected)

        self._state = CheckState.DISPATCHING
        delivery = await self._deliver(alert, now)
        await self._remember(alert)

        logger.info(
            "weather_alert_dispatched",
            alert_id=alert.alert_id,
            category=alert.category.value,
            severity=alert.severity.value,
            title=alert.title,
            enriched=enriched,
            delivered=delivery.get("success", False),
            candidates=len(candidates),
            suppressed=suppressed,
        )
        return AlertCheckResult(
            status=CheckStatus.DISPATCHED,
            candidates=candidates,
            suppressed=suppressed,
            dispatched=alert,
            enriched=enriched,
            delivery_results=delivery,
            history_size=len(history),
            checked_at=now.isoformat(),
        )

    async def _record_sample(self, sample: WeatherSample) -> list[WeatherSample]:
        """Store the sample; on a write failure, detect against what we can read."""
        try:
            return await self.samples.record(sample)
        except StorageError as e:
            logger.warning("weather_sample_write_failed", error=str(e))
            previous = await self.samples.history()
            return [sample, *previous][: self.samples.capacity]

    async def _deliver(self, alert: CandidateAlert, now: datetime) -> dict:
        notification = to_notification(alert, sent_at=now)
        try:
            result = await self.dispatcher.dispatch(notification)
        except Exception as e:
            logger.error(
                "weather_alert_delivery_failed",
                alert_id=alert.alert_id,
                error=str(e),
            )
            return {"success": False, "detail": str(e)}
        if not result.get("success"):
            logger.warning(
                "weather_alert_delivery_failed",
                alert_id=alert.alert_id,
                detail=result.get("detail", ""),
            )
        return result

    async def _remember(self, alert: CandidateAlert) -> None:
        try:
            await self.alert_history.remember(alert)
        except StorageError as e:
            # May re-fire next cycle; cooldown resumes once storage recovers.
            logger.warning(
                "weather_alert_history_write_failed",
                alert_id=alert.alert_id,
                error=str(e),
            )

    def _local_time(
        self, now: datetime, location: Location, current_weather: CurrentWeather
    ) -> datetime:
        """
        Wall-clock time at the location, for the time-of-day rules.

        Resolution order: the location's zone, the provider's zone, the
        provider's UTC offset, the provider's local observation time, and
        finally the engine clock as-is.
        """
        for zone in (location.timezone, current_weather.timezone):
            if not zone:
                continue
            try:
                return now.astimezone(ZoneInfo(zone))
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("unknown_timezone", timezone=zone)

        if current_weather.utc_offset_seconds is not None:
            offset = timedelta(seconds=current_weather.utc_offset_seconds)
            return now.astimezone(timezone(offset))

        if current_weather.time:
            try:
                return datetime.fromisoformat(current_weather.time)
            except ValueError:
                logger.warning("unparseable_observation_time", time=current_weather.time)

        return now


# ── Factory ────────────────────────────────────────────────────────────


def build_dispatcher(config: Optional[Settings] = None) -> ChannelRouter:
    """In-app always; webhook and Expo push when configured."""
    config = config or settings
    router = ChannelRouter({"in_app": InAppDispatcher(max_items=config.in_app_inbox_size)})
    if config.alert_webhook_url:
        router.add_channel("webhook", WebhookDispatcher(config.alert_webhook_url))
    if config.expo_push_tokens:
        router.add_channel("expo_push", ExpoPushDispatcher(config.expo_push_tokens))
    return router


def build_enricher(config: Optional[Settings] = None) -> AlertEnricher:
    config = config or settings
    if not config.enrichment_enabled or not config.openai_api_key:
        return AlertEnricher(timeout_seconds=config.enrichment_timeout_seconds)
    gateway = LLMGateway(
        api_key=config.openai_api_key,
        api_url=config.llm_api_url,
        model=config.llm_model,
        timeout=config.enrichment_timeout_seconds * GATEWAY_TIMEOUT_FRACTION,
    )
    breaker = CircuitBreaker("llm_enrichment", failure_threshold=3, recovery_timeout=300.0)
    return AlertEnricher(
        LLMAlertRewriter(gateway, breaker),
        timeout_seconds=config.enrichment_timeout_seconds,
    )


def build_engine(
    config: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
) -> WeatherAlertEngine:
    """Wire an engine from settings."""
    config = config or settings
    engine = WeatherAlertEngine(
        store=store or create_store(config=config),
        dispatcher=build_dispatcher(config),
        enricher=build_enricher(config),
        weather_provider=OpenMeteoClient(
            base_url=config.open_meteo_url,
            timeout=config.weather_timeout_seconds,
            max_attempts=config.weather_retry_attempts,
        ),
        rng=random.Random(),
        cooldown=timedelta(minutes=config.alert_cooldown_minutes),
        history_limit=config.weather_history_limit,
        alert_history_limit=config.alert_history_limit,
    )
    logger.info(
        "weather_alert_engine_built",
        storage=config.storage_backend,
        enrichment=engine.enricher.rewriter is not None,
        channels=list(engine.dispatcher.channels),
    )
    return engine
