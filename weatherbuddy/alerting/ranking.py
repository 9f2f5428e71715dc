"""
Alert Ranker & Selector.

Only one alert goes out per check cycle, so several conditions firing at
once never turn into a notification flood.
"""

from typing import Optional, Sequence

from weatherbuddy.alerting.schemas import CandidateAlert


def rank_alerts(survivors: Sequence[CandidateAlert]) -> list[CandidateAlert]:
    """Order by severity, highest first. Stable: ties keep detection order."""
    return sorted(survivors, key=lambda a: a.severity.rank, reverse=True)


def select_alert(survivors: Sequence[CandidateAlert]) -> Optional[CandidateAlert]:
    """Pick the single alert to dispatch, or None when nothing survived."""
    ranked = rank_alerts(survivors)
    return ranked[0] if ranked else None
