"""
Alert Enrichment — Best-effort rewrite of title/message by an LLM.

Strictly optional:
- No rewriter configured → original alert
- Missing credentials, network error, timeout, malformed reply → original alert

Enrichment never raises and never waits past its timeout.
"""

import asyncio
from typing import Optional, Protocol

import structlog

from weatherbuddy.alerting.schemas import CandidateAlert, RewrittenAlert
from weatherbuddy.services.llm_gateway import LLMGateway
from weatherbuddy.services.resilience import CircuitBreaker

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS: float = 5.0

SYSTEM_PROMPT = (
    "You are a creative weather alert enhancer. Make weather notifications engaging, "
    "helpful, and memorable while keeping safety information intact."
)


class AlertRewriter(Protocol):
    """Text-enrichment collaborator."""

    async def rewrite(self, alert: CandidateAlert) -> RewrittenAlert:
        """Return a new title/body, or raise."""
        ...


def build_enhancement_prompt(alert: CandidateAlert) -> str:
    conditions = ", ".join(sorted(alert.condition_tags))
    return f"""Enhance this weather alert to make it more creative, engaging, and helpful:

Original Alert:
- Type: {alert.category.value}
- Severity: {alert.severity.value}
- Title: {alert.title}
- Message: {alert.message}
- Conditions: {conditions}

Make it:
1. More creative and engaging
2. Include practical advice
3. Add personality and humor where appropriate
4. Keep the important safety information
5. Make it memorable and fun to read

Return JSON format:
{{
  "title": "Enhanced creative title with emoji (max 50 chars)",
  "body": "Enhanced message with personality and practical advice (max 150 chars)"
}}
"""


class LLMAlertRewriter:
    """
    Rewrites alerts through the LLM gateway, expecting a JSON reply.

    With a breaker, repeated gateway failures short-circuit to CircuitOpenError.
    """

    def __init__(self, gateway: LLMGateway, breaker: Optional[CircuitBreaker] = None):
        self.gateway = gateway
        self.breaker = breaker

    async def rewrite(self, alert: CandidateAlert) -> RewrittenAlert:
        if self.breaker is not None:
            text = await self.breaker.call(self._generate, alert)
        else:
            text = await self._generate(alert)
        return RewrittenAlert.model_validate_json(_strip_code_fence(text))

    async def _generate(self, alert: CandidateAlert) -> str:
        return await self.gateway.generate(
            system=SYSTEM_PROMPT,
            user_message=build_enhancement_prompt(alert),
            max_tokens=200,
            temperature=0.8,
            json_mode=True,
        )


def _strip_code_fence(text: str) -> str:
    """Models sometimes wrap JSON in ```json fences."""
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


class AlertEnricher:
    """
    Wraps a rewriter with a timeout and a fallback to the original text.

    Usage:
        enricher = AlertEnricher(LLMAlertRewriter(LLMGateway()))
        alert, enriched = await enricher.enrich(alert)
    """

    def __init__(
        self,
        rewriter: Optional[AlertRewriter] = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.rewriter = rewriter
        self.timeout_seconds = timeout_seconds

    async def enrich(self, alert: CandidateAlert) -> tuple[CandidateAlert, bool]:
        """
        Try to rewrite the alert.

        Returns:
            (alert, enriched) — the original alert and False on any failure
        """
        if self.rewriter is None:
            return alert, False

        try:
            rewritten = await asyncio.wait_for(
                self.rewriter.rewrite(alert), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.warning(
                "alert_enrichment_timeout",
                alert_id=alert.alert_id,
                timeout_seconds=self.timeout_seconds,
            )
            return alert, False
        except ValueError as e:  # includes pydantic ValidationError
            logger.warning("alert_enrichment_malformed", alert_id=alert.alert_id, error=str(e))
            return alert, False
        except Exception as e:
            logger.info(
                "alert_enrichment_failed",
                alert_id=alert.alert_id,
                error=str(e),
                msg="Using original alert message",
            )
            return alert, False

        if not isinstance(rewritten, RewrittenAlert):
            logger.warning("alert_enrichment_malformed", alert_id=alert.alert_id)
            return alert, False

        logger.debug("alert_enriched", alert_id=alert.alert_id, title=rewritten.title)
        return alert.model_copy(update={"title": rewritten.title, "message": rewritten.body}), True
