"""
Alert Channels — Hand a finalized alert off for delivery.

Channels:
- In-App: bounded inbox the app polls (always available)
- Webhook: POST JSON to a configured URL
- Expo Push: mobile push via the Expo push service

Each channel is independent and fault-tolerant: dispatch returns a result
dict instead of raising. Failures are logged and never retried within a cycle.
"""

from collections import deque
from datetime import datetime, timezone
from typing import Optional, Protocol

import httpx
import structlog

from weatherbuddy.alerting.schemas import (
    AlertCategory,
    AlertSeverity,
    CandidateAlert,
    NotificationSeverity,
    NotificationType,
    WeatherNotification,
)

logger = structlog.get_logger(__name__)

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"


# ── Notification mapping ───────────────────────────────────────────────

_SEVERITY_MAP = {
    AlertSeverity.LOW: NotificationSeverity.LOW,
    AlertSeverity.MEDIUM: NotificationSeverity.MODERATE,
    AlertSeverity.HIGH: NotificationSeverity.HIGH,
}

_TAG_TYPE_MAP = {
    "rain": NotificationType.RAIN,
    "high_uv": NotificationType.UV,
    "high_wind": NotificationType.WIND,
    "temperature_change": NotificationType.TEMPERATURE,
    "extreme_cold": NotificationType.TEMPERATURE,
    "extreme_heat": NotificationType.TEMPERATURE,
}

_CATEGORY_TYPE_MAP = {
    AlertCategory.UNUSUAL: NotificationType.TEMPERATURE,
    AlertCategory.OPPORTUNITY: NotificationType.GENERAL,
    AlertCategory.WARNING: NotificationType.GENERAL,
    AlertCategory.INTERESTING: NotificationType.GENERAL,
}


def map_severity(severity: AlertSeverity) -> NotificationSeverity:
    return _SEVERITY_MAP.get(severity, NotificationSeverity.MODERATE)


def map_type(alert: CandidateAlert) -> NotificationType:
    """Most specific type from the condition tags, else by category."""
    for tag in sorted(alert.condition_tags):
        if tag in _TAG_TYPE_MAP:
            return _TAG_TYPE_MAP[tag]
    return _CATEGORY_TYPE_MAP.get(alert.category, NotificationType.GENERAL)


def to_notification(alert: CandidateAlert, sent_at: Optional[datetime] = None) -> WeatherNotification:
    """Convert an engine alert into the app's notification shape."""
    sent_at = sent_at or datetime.now(timezone.utc)
    severity = map_severity(alert.severity)
    notification_type = map_type(alert)
    return WeatherNotification(
        id=alert.alert_id,
        title=alert.title,
        description=alert.message,
        severity=severity,
        type=notification_type,
        timestamp=sent_at.isoformat(),
        data={
            "type": "weather-alert",
            "alertType": notification_type.value,
            "severity": severity.value,
            "alertId": alert.alert_id,
            "action": "open-for-you-page",
        },
    )


# ── Dispatchers ────────────────────────────────────────────────────────


class NotificationDispatcher(Protocol):
    """Protocol for notification dispatchers."""

    async def dispatch(self, notification: WeatherNotification) -> dict:
        """
        Deliver a notification.

        Returns:
            dict with delivery result: {"success": bool, "detail": str}
        """
        ...


class InAppDispatcher:
    """
    In-app notification — keeps the latest notifications for the app to poll.

    Always available (no external dependencies).
    """

    def __init__(self, max_items: int = 50):
        self._inbox: deque[WeatherNotification] = deque(maxlen=max_items)

    @property
    def inbox(self) -> list[WeatherNotification]:
        """Newest first."""
        return list(reversed(self._inbox))

    async def dispatch(self, notification: WeatherNotification) -> dict:
        self._inbox.append(notification)
        logger.info(
            "in_app_alert_created",
            alert_id=notification.id,
            title=notification.title,
        )
        return {"success": True, "detail": "Stored as in-app notification"}


class WebhookDispatcher:
    """Dispatch notifications via HTTP webhook (JSON POST)."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: Optional[dict] = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._transport = transport

    async def dispatch(self, notification: WeatherNotification) -> dict:
        if not self.url:
            return {"success": False, "detail": "No webhook URL configured"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    json=notification.model_dump(mode="json"),
                    headers=self.headers,
                )
        except httpx.HTTPError as e:
            logger.error("webhook_dispatch_error", alert_id=notification.id, error=str(e))
            return {"success": False, "detail": str(e)}

        if response.status_code < 400:
            logger.info(
                "webhook_alert_sent",
                alert_id=notification.id,
                status=response.status_code,
            )
            return {"success": True, "detail": f"HTTP {response.status_code}"}

        logger.warning(
            "webhook_alert_failed",
            alert_id=notification.id,
            status=response.status_code,
        )
        return {"success": False, "detail": f"HTTP {response.status_code}"}


class ExpoPushDispatcher:
    """
    Mobile push via the Expo push service.

    One message per registered device token; success if at least one ticket is ok.
    """

    def __init__(
        self,
        tokens: list[str],
        url: str = EXPO_PUSH_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.tokens = list(tokens)
        self.url = url
        self.timeout = timeout
        self._transport = transport

    def _build_messages(self, notification: WeatherNotification) -> list[dict]:
        return [
            {
                "to": token,
                "title": notification.title,
                "body": notification.description,
                "data": notification.data,
                "sound": "default",
                "priority": "high" if notification.severity == NotificationSeverity.HIGH else "default",
                "channelId": "weather-alerts",
            }
            for token in self.tokens
        ]

    async def dispatch(self, notification: WeatherNotification) -> dict:
        if not self.tokens:
            return {"success": False, "detail": "No push tokens registered"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    json=self._build_messages(notification),
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
                tickets = response.json().get("data", [])
        except (httpx.HTTPError, ValueError) as e:
            logger.error("expo_push_error", alert_id=notification.id, error=str(e))
            return {"success": False, "detail": str(e)}

        ok = sum(1 for t in tickets if isinstance(t, dict) and t.get("status") == "ok")
        logger.info(
            "expo_push_sent",
            alert_id=notification.id,
            devices=len(self.tokens),
            accepted=ok,
        )
        return {
            "success": ok > 0,
            "detail": f"{ok}/{len(self.tokens)} push tickets accepted",
        }


class ChannelRouter:
    """
    Routes a notification to every configured channel.

    Channels are tried in order; one failing never blocks the others.
    """

    def __init__(self, channels: Optional[dict[str, NotificationDispatcher]] = None):
        self._channels: dict[str, NotificationDispatcher] = dict(channels or {})

    @property
    def channels(self) -> dict[str, NotificationDispatcher]:
        return dict(self._channels)

    def add_channel(self, name: str, dispatcher: NotificationDispatcher) -> None:
        self._channels[name] = dispatcher

    async def dispatch(self, notification: WeatherNotification) -> dict:
        """
        Dispatch to all channels.

        Returns:
            {"success": any channel succeeded, "detail": summary, "channels": {name: result}}
        """
        results: dict[str, dict] = {}

        for name, dispatcher in self._channels.items():
            try:
                results[name] = await dispatcher.dispatch(notification)
            except Exception as e:
                logger.error(
                    "channel_dispatch_error",
                    channel=name,
                    alert_id=notification.id,
                    error=str(e),
                )
                results[name] = {"success": False, "detail": str(e)}

        delivered = [n for n, r in results.items() if r.get("success")]
        return {
            "success": bool(delivered),
            "detail": f"Delivered via {', '.join(delivered)}" if delivered else "No channel delivered",
            "channels": results,
        }
