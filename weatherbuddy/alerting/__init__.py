"""
Weather Buddy Alerting.

Components:
- schemas: Weather samples, candidate alerts, notifications, check results
- detectors: Unusual-pattern, opportunity, warning and interesting-condition rules
- messages: Message variant pools for alert wording
- history: Rolling sample window and dispatch history
- dedup: Per-category/condition cooldown to prevent alert fatigue
- ranking: Pick the single most severe alert per cycle
- enrichment: Best-effort LLM rewrite of alert text
- channels: In-app, webhook and Expo push dispatch
- engine: The check cycle tying it all together
"""
