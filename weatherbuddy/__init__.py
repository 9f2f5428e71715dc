"""
Weather Buddy — weather alert detection and notification dispatch.

Architecture:
    weatherbuddy/
    ├── api/             # FastAPI routers (HTTP layer)
    ├── middleware/      # Error handling, request context
    ├── alerting/        # Alert engine (detectors, cooldown, ranking, enrichment, channels)
    └── services/        # Collaborators (storage, weather, location, LLM, scheduler)

Module Boundaries:
    - Weather retrieval and location resolution are COLLABORATORS — the engine
      only consumes their output
    - Enrichment is best-effort — the pipeline never waits on it past its timeout
    - At most one notification per check cycle

Data Flow:
    Weather fetch → Sample Store → Detectors → Cooldown Filter → Selector
    → Enrichment → Dispatcher → Dispatch History

Version: 1.0.0
"""

__version__ = "1.0.0"
