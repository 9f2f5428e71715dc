"""
Alert Deduplication & Cooldown — Prevent alert fatigue.

A candidate is suppressed when a previously dispatched alert has:
1. The same category
2. At least one condition tag in common
3. A timestamp less than the cooldown window ago

Distinct conditions in the same category (rain vs. high wind) never block
each other. State lives in the dispatch history, not in this component.
"""

from datetime import datetime, timedelta
from typing import Optional, Sequence

import structlog

from weatherbuddy.alerting.schemas import CandidateAlert, DispatchedAlertRecord

logger = structlog.get_logger(__name__)

DEFAULT_COOLDOWN = timedelta(hours=2)


class CooldownFilter:
    """
    Filters candidates against the bounded dispatch history.

    Stateless: the caller passes the history and the current time.
    """

    def __init__(self, cooldown: timedelta = DEFAULT_COOLDOWN):
        self.cooldown = cooldown

    def find_blocking_record(
        self,
        candidate: CandidateAlert,
        history: Sequence[DispatchedAlertRecord],
        now: datetime,
    ) -> Optional[DispatchedAlertRecord]:
        """Return the record that keeps this candidate in cooldown, if any."""
        for record in history:
            if record.category != candidate.category:
                continue
            if not (record.condition_tags & candidate.condition_tags):
                continue
            if now - record.timestamp < self.cooldown:
                return record
        return None

    def should_suppress(
        self,
        candidate: CandidateAlert,
        history: Sequence[DispatchedAlertRecord],
        now: datetime,
    ) -> tuple[bool, str]:
        """
        Check if a candidate should be suppressed.

        Returns:
            (should_suppress: bool, reason: str)
        """
        record = self.find_blocking_record(candidate, history, now)
        if record is None:
            return False, ""

        elapsed = (now - record.timestamp).total_seconds() / 60.0
        remaining = self.cooldown.total_seconds() / 60.0 - elapsed
        shared = sorted(record.condition_tags & candidate.condition_tags)
        reason = (
            f"Cooldown active: {remaining:.0f}m remaining "
            f"({candidate.category.value}/{','.join(shared)} sent {elapsed:.0f}m ago)"
        )
        logger.debug(
            "alert_suppressed_cooldown",
            alert_id=candidate.alert_id,
            category=candidate.category.value,
            tags=shared,
            elapsed_minutes=round(elapsed, 1),
        )
        return True, reason

    def filter(
        self,
        candidates: Sequence[CandidateAlert],
        history: Sequence[DispatchedAlertRecord],
        now: datetime,
    ) -> list[CandidateAlert]:
        """Keep candidates that are not in cooldown, preserving order."""
        return [
            c for c in candidates
            if not self.should_suppress(c, history, now)[0]
        ]


def filter_candidates(
    candidates: Sequence[CandidateAlert],
    history: Sequence[DispatchedAlertRecord],
    now: datetime,
    cooldown: timedelta = DEFAULT_COOLDOWN,
) -> list[CandidateAlert]:
    """Functional shortcut for CooldownFilter(cooldown).filter(...)."""
    return CooldownFilter(cooldown).filter(candidates, history, now)
