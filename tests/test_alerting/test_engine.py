"""
Tests for the weather alert engine.

Covers:
- End-to-end scenarios (heat, clear evening, repeated rain)
- Local time from the location, the provider zone or the observation time
- Sample recording and trend detection across cycles
- Enrichment success and fallback
- Delivery and storage failures
- Serialization of overlapping checks and the state machine
- clear_alert_history, check_location, build_engine wiring
"""

import asyncio
from datetime import datetime, timezone

import pytest

from weatherbuddy.alerting.channels import (
    ChannelRouter,
    ExpoPushDispatcher,
    InAppDispatcher,
    WebhookDispatcher,
)
from weatherbuddy.alerting.engine import WeatherAlertEngine, build_engine
from weatherbuddy.alerting.enrichment import AlertEnricher
from weatherbuddy.alerting.schemas import (
    AlertCategory,
    AlertSeverity,
    CheckState,
    CheckStatus,
    CurrentWeather,
    Location,
    RewrittenAlert,
)
from weatherbuddy.config import Settings
from weatherbuddy.services.storage import MemoryStore, StorageError
from weatherbuddy.services.weather_client import WeatherProviderError

BERLIN = Location(latitude=52.52, longitude=13.405, city="Berlin")


def _make_weather(**overrides) -> CurrentWeather:
    data = {
        "temperature": 15.0,
        "humidity": 50.0,
        "pressure": 1013.0,
        "wind_speed": 5.0,
        "weather_code": 3,
        "uv_index": 3.0,
    }
    data.update(overrides)
    return CurrentWeather(**data)


HEAT = dict(temperature=38.0, weather_code=0, uv_index=3.0, wind_speed=10.0, humidity=40.0, pressure=1013.0)
CLEAR_EVENING = dict(temperature=22.0, weather_code=0, uv_index=0.0, wind_speed=5.0, humidity=50.0, pressure=1013.0)
RAIN = dict(temperature=12.0, weather_code=63, uv_index=1.0, wind_speed=10.0, humidity=80.0, pressure=1005.0)


class _FakeProvider:
    def __init__(self, weather=None, error=None):
        self.weather = weather
        self.error = error
        self.calls = 0

    async def get_current_weather(self, location):
        self.calls += 1
        if self.error:
            raise self.error
        return self.weather


class _StaticRewriter:
    async def rewrite(self, alert):
        return RewrittenAlert(title="Scorcher!", body="Find some shade.")


class _FailingRewriter:
    async def rewrite(self, alert):
        raise ConnectionError("LLM unreachable")


class _ExplodingEnricher(AlertEnricher):
    async def enrich(self, alert):
        raise RuntimeError("unexpected bug")


class _UndeliverableDispatcher:
    def __init__(self):
        self.sent = []

    async def dispatch(self, notification):
        self.sent.append(notification)
        return {"success": False, "detail": "No channel delivered"}


class _WriteFailingStore(MemoryStore):
    async def set(self, key, value):
        raise StorageError("read-only filesystem")


# ── End-to-end scenarios ───────────────────────────────────────────────


@pytest.mark.asyncio
class TestScenarios:
    async def test_heat_dispatches_single_warning(self, engine, dispatcher):
        result = await engine.check_for_weather_alerts(_make_weather(**HEAT), BERLIN)

        assert result.status == CheckStatus.DISPATCHED
        assert len(result.candidates) == 1
        alert = result.dispatched
        assert alert.category == AlertCategory.WARNING
        assert "Heat" in alert.title
        # 38°C is above the 35°C threshold but not above 40°C
        assert alert.severity == AlertSeverity.MEDIUM
        assert len(dispatcher.sent) == 1
        assert dispatcher.sent[0].severity.value == "moderate"
        assert dispatcher.sent[0].type.value == "temperature"

    async def test_clear_evening_picks_first_low_alert(self, engine, clock):
        clock.now = datetime(2025, 6, 1, 21, 0, tzinfo=timezone.utc)
        result = await engine.check_for_weather_alerts(_make_weather(**CLEAR_EVENING), BERLIN)

        tags = [sorted(c.condition_tags)[0] for c in result.candidates]
        assert tags == ["perfect_weather", "stargazing", "perfect_temperature"]
        assert result.suppressed == 0
        assert result.dispatched.category == AlertCategory.OPPORTUNITY
        assert result.dispatched.condition_tags == frozenset({"perfect_weather"})
        assert len(await engine.dispatch_history()) == 1

    async def test_repeated_rain_is_suppressed(self, engine, dispatcher, clock):
        first = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)
        clock.advance(minutes=30)
        second = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)

        assert first.status == CheckStatus.DISPATCHED
        assert second.status == CheckStatus.ALL_SUPPRESSED
        assert second.suppressed == 1
        assert second.dispatched is None
        assert len(dispatcher.sent) == 1
        assert len(await engine.dispatch_history()) == 1

    async def test_rain_fires_again_after_cooldown(self, engine, clock):
        await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)
        clock.advance(hours=2)
        result = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)

        assert result.status == CheckStatus.DISPATCHED
        assert len(await engine.dispatch_history()) == 2

    async def test_location_timezone_drives_local_hour(self, engine, clock):
        # 19:00 UTC is 21:00 in Berlin (CEST)
        clock.now = datetime(2025, 6, 1, 19, 0, tzinfo=timezone.utc)
        berlin = Location(latitude=52.52, longitude=13.405, timezone="Europe/Berlin")
        weather = _make_weather(temperature=12.0, weather_code=0, uv_index=0.0)
        result = await engine.check_for_weather_alerts(weather, berlin)

        assert result.dispatched.condition_tags == frozenset({"stargazing"})

    async def test_unknown_timezone_falls_back_to_clock(self, engine, clock):
        clock.now = datetime(2025, 6, 1, 22, 0, tzinfo=timezone.utc)
        nowhere = Location(latitude=0, longitude=0, timezone="Mars/Olympus_Mons")
        weather = _make_weather(temperature=12.0, weather_code=0, uv_index=0.0)
        result = await engine.check_for_weather_alerts(weather, nowhere)

        assert result.status == CheckStatus.DISPATCHED
        assert result.dispatched.condition_tags == frozenset({"stargazing"})


# ── Local time without a location timezone ─────────────────────────────

CLEAR_NIGHT = dict(temperature=12.0, weather_code=0, uv_index=0.0)


@pytest.mark.asyncio
class TestLocalTime:
    """19:00 UTC reads as sunset in UTC but is 21:00 (stargazing) in Berlin."""

    @pytest.fixture(autouse=True)
    def _evening(self, clock):
        clock.now = datetime(2025, 6, 1, 19, 0, tzinfo=timezone.utc)

    async def test_provider_timezone_used(self, engine):
        weather = _make_weather(**CLEAR_NIGHT, timezone="Europe/Berlin")
        result = await engine.check_for_weather_alerts(weather, BERLIN)

        assert result.dispatched.condition_tags == frozenset({"stargazing"})

    async def test_provider_utc_offset_used(self, engine):
        weather = _make_weather(**CLEAR_NIGHT, utc_offset_seconds=7200)
        result = await engine.check_for_weather_alerts(weather, BERLIN)

        assert result.dispatched.condition_tags == frozenset({"stargazing"})

    async def test_observation_time_used(self, engine):
        weather = _make_weather(**CLEAR_NIGHT, time="2025-06-01T21:00")
        result = await engine.check_for_weather_alerts(weather, BERLIN)

        tags = [sorted(c.condition_tags)[0] for c in result.candidates]
        assert tags == ["stargazing"]

    async def test_location_timezone_wins_over_provider(self, engine):
        berlin = Location(latitude=52.52, longitude=13.405, timezone="Europe/Berlin")
        weather = _make_weather(**CLEAR_NIGHT, timezone="America/New_York")
        result = await engine.check_for_weather_alerts(weather, berlin)

        assert result.dispatched.condition_tags == frozenset({"stargazing"})

    async def test_no_zone_information_uses_clock(self, engine):
        result = await engine.check_for_weather_alerts(_make_weather(**CLEAR_NIGHT), BERLIN)

        assert result.dispatched.condition_tags == frozenset({"sunset_opportunity"})

    async def test_checks_from_api_body_use_observation_time(self, engine):
        location = Location(latitude=52.52, longitude=13.405)
        weather = CurrentWeather.model_validate(
            {**_make_weather(**CLEAR_NIGHT).model_dump(), "time": "2025-06-01T21:00"}
        )
        result = await engine.trigger_alert_check(weather, location)

        assert result.status == CheckStatus.DISPATCHED
        assert result.dispatched.condition_tags == frozenset({"stargazing"})


# ── Samples & trends ───────────────────────────────────────────────────


@pytest.mark.asyncio
class TestSamples:
    async def test_quiet_weather_still_records_sample(self, engine, dispatcher):
        result = await engine.check_for_weather_alerts(_make_weather(), BERLIN)

        assert result.status == CheckStatus.NO_CANDIDATES
        assert result.history_size == 1
        assert len(await engine.sample_history()) == 1
        assert dispatcher.sent == []

    async def test_trend_detected_once_history_builds(self, engine, clock):
        for _ in range(3):
            await engine.check_for_weather_alerts(_make_weather(), BERLIN)
            clock.advance(minutes=30)
        result = await engine.check_for_weather_alerts(_make_weather(temperature=30.0), BERLIN)

        assert result.history_size == 4
        assert result.dispatched.category == AlertCategory.UNUSUAL
        assert result.dispatched.condition_tags == frozenset({"temperature_change"})

    async def test_sample_capacity(self, store, dispatcher, clock):
        engine = WeatherAlertEngine(store, dispatcher, clock=clock, history_limit=3)
        for _ in range(5):
            await engine.check_for_weather_alerts(_make_weather(), BERLIN)
            clock.advance(minutes=10)
        assert len(await engine.sample_history()) == 3


# ── Enrichment ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestEnrichment:
    async def test_rewritten_text_is_dispatched_and_remembered(self, store, dispatcher, clock):
        engine = WeatherAlertEngine(
            store, dispatcher, enricher=AlertEnricher(_StaticRewriter()), clock=clock
        )
        result = await engine.check_for_weather_alerts(_make_weather(**HEAT), BERLIN)

        assert result.enriched is True
        assert dispatcher.sent[0].title == "Scorcher!"
        assert dispatcher.sent[0].description == "Find some shade."
        assert (await engine.dispatch_history())[0].title == "Scorcher!"

    async def test_failed_enrichment_dispatches_original(self, store, dispatcher, clock):
        engine = WeatherAlertEngine(
            store, dispatcher, enricher=AlertEnricher(_FailingRewriter()), clock=clock
        )
        result = await engine.check_for_weather_alerts(_make_weather(**HEAT), BERLIN)

        assert result.status == CheckStatus.DISPATCHED
        assert result.enriched is False
        assert result.dispatched == result.candidates[0]
        assert dispatcher.sent[0].title == result.candidates[0].title


# ── Failures ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestFailures:
    async def test_undelivered_alert_is_still_remembered(self, store, clock):
        dispatcher = _UndeliverableDispatcher()
        engine = WeatherAlertEngine(store, dispatcher, clock=clock)
        result = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)

        assert result.status == CheckStatus.DISPATCHED
        assert result.delivery_results["success"] is False
        assert len(await engine.dispatch_history()) == 1

    async def test_crashing_dispatcher_does_not_abort(self, store, clock):
        class _Crashing:
            async def dispatch(self, notification):
                raise RuntimeError("push service exploded")

        engine = WeatherAlertEngine(store, _Crashing(), clock=clock)
        result = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)

        assert result.status == CheckStatus.DISPATCHED
        assert result.delivery_results == {"success": False, "detail": "push service exploded"}

    async def test_storage_write_failure_still_dispatches(self, dispatcher, clock):
        engine = WeatherAlertEngine(_WriteFailingStore(), dispatcher, clock=clock)
        first = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)
        clock.advance(minutes=30)
        second = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)

        assert first.status == CheckStatus.DISPATCHED
        assert first.history_size == 1
        # Nothing was persisted, so cooldown cannot hold it back
        assert second.status == CheckStatus.DISPATCHED
        assert len(dispatcher.sent) == 2

    async def test_unexpected_error_is_reported_not_raised(self, store, dispatcher, clock):
        engine = WeatherAlertEngine(
            store, dispatcher, enricher=_ExplodingEnricher(), clock=clock
        )
        result = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)

        assert result.status == CheckStatus.FAILED
        assert "unexpected bug" in result.error
        assert engine.state == CheckState.IDLE
        assert dispatcher.sent == []
        # Sample was stored before the failure
        assert len(await engine.sample_history()) == 1


# ── Concurrency & state ────────────────────────────────────────────────


class _SlowDispatcher:
    def __init__(self, engine_ref: list):
        self.engine_ref = engine_ref
        self.in_flight = 0
        self.max_in_flight = 0
        self.states: list[CheckState] = []

    async def dispatch(self, notification):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.states.append(self.engine_ref[0].state)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return {"success": True, "detail": "slow"}


@pytest.mark.asyncio
class TestConcurrency:
    async def test_overlapping_checks_are_serialized(self, store, clock):
        ref: list = []
        slow = _SlowDispatcher(ref)
        engine = WeatherAlertEngine(store, slow, clock=clock)
        ref.append(engine)

        results = await asyncio.gather(
            engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN),
            engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN),
        )

        statuses = sorted(r.status.value for r in results)
        assert statuses == ["all_suppressed", "dispatched"]
        assert slow.max_in_flight == 1
        assert len(await engine.sample_history()) == 2

    async def test_state_machine(self, store, clock):
        ref: list = []
        slow = _SlowDispatcher(ref)
        engine = WeatherAlertEngine(store, slow, clock=clock)
        ref.append(engine)

        assert engine.state == CheckState.IDLE
        await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)
        assert slow.states == [CheckState.DISPATCHING]
        assert engine.state == CheckState.IDLE
        assert engine.busy is False


# ── Public operations ──────────────────────────────────────────────────


@pytest.mark.asyncio
class TestOperations:
    async def test_clear_alert_history(self, engine):
        await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)
        removed = await engine.clear_alert_history()

        assert removed == 2
        assert await engine.dispatch_history() == []
        assert await engine.sample_history() == []
        again = await engine.check_for_weather_alerts(_make_weather(**RAIN), BERLIN)
        assert again.status == CheckStatus.DISPATCHED

    async def test_trigger_alert_check_same_semantics(self, engine):
        result = await engine.trigger_alert_check(_make_weather(**HEAT), BERLIN)
        assert result.status == CheckStatus.DISPATCHED
        assert "Heat" in result.dispatched.title

    async def test_check_location_fetches_weather(self, store, dispatcher, clock):
        provider = _FakeProvider(weather=_make_weather(**RAIN))
        engine = WeatherAlertEngine(store, dispatcher, weather_provider=provider, clock=clock)
        result = await engine.check_location(BERLIN)

        assert provider.calls == 1
        assert result.status == CheckStatus.DISPATCHED

    async def test_check_location_propagates_provider_error(self, store, dispatcher, clock):
        provider = _FakeProvider(error=WeatherProviderError("HTTP 503"))
        engine = WeatherAlertEngine(store, dispatcher, weather_provider=provider, clock=clock)

        with pytest.raises(WeatherProviderError):
            await engine.check_location(BERLIN)
        assert await engine.sample_history() == []
        assert engine.state == CheckState.IDLE

    async def test_check_location_without_provider(self, engine):
        with pytest.raises(WeatherProviderError):
            await engine.check_location(BERLIN)


# ── Factory ────────────────────────────────────────────────────────────


class TestBuildEngine:
    def test_minimal_wiring(self):
        config = Settings(storage_backend="memory", enrichment_enabled=False, alert_webhook_url="")
        engine = build_engine(config)

        assert isinstance(engine.store, MemoryStore)
        assert isinstance(engine.dispatcher, ChannelRouter)
        assert list(engine.dispatcher.channels) == ["in_app"]
        assert isinstance(engine.dispatcher.channels["in_app"], InAppDispatcher)
        assert engine.enricher.rewriter is None
        assert engine.weather_provider is not None

    def test_all_channels_and_enrichment(self):
        config = Settings(
            storage_backend="memory",
            alert_webhook_url="https://hooks.test/weather",
            expo_push_tokens=["ExponentPushToken[a]"],
            enrichment_enabled=True,
            openai_api_key="sk-test",
            alert_cooldown_minutes=30,
        )
        engine = build_engine(config)

        channels = engine.dispatcher.channels
        assert list(channels) == ["in_app", "webhook", "expo_push"]
        assert isinstance(channels["webhook"], WebhookDispatcher)
        assert isinstance(channels["expo_push"], ExpoPushDispatcher)
        assert engine.enricher.rewriter is not None
        assert engine.cooldown_filter.cooldown.total_seconds() == 30 * 60

    def test_gateway_times_out_before_enricher(self):
        config = Settings(
            storage_backend="memory",
            enrichment_enabled=True,
            openai_api_key="sk-test",
            enrichment_timeout_seconds=5.0,
        )
        enricher = build_engine(config).enricher

        assert enricher.timeout_seconds == 5.0
        assert enricher.rewriter.gateway.timeout < enricher.timeout_seconds

    def test_enrichment_needs_a_key(self):
        config = Settings(storage_backend="memory", enrichment_enabled=True, openai_api_key="")
        assert build_engine(config).enricher.rewriter is None
