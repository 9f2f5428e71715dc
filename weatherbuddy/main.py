"""
Weather Buddy — FastAPI Application.

Run: python -m weatherbuddy.main   (API_HOST / API_PORT, reload when DEBUG)

  - GET    /health                  ← liveness
  - POST   /api/v1/alerts/check     ← fetch weather + run a check
  - POST   /api/v1/alerts/evaluate  ← run a check on supplied conditions
  - GET    /api/v1/alerts/history   ← dispatch history
  - DELETE /api/v1/alerts/history   ← clear persisted state
  - GET    /api/v1/alerts/inbox     ← in-app notifications
  - GET    /api/v1/weather          ← current conditions
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from weatherbuddy.alerting.engine import WeatherAlertEngine, build_engine
from weatherbuddy.api.routers.alerts import router as alerts_router
from weatherbuddy.api.routers.weather import router as weather_router
from weatherbuddy.config import settings
from weatherbuddy.logging_config import configure_logging
from weatherbuddy.middleware.error_handler import ErrorHandlerMiddleware
from weatherbuddy.middleware.request_context import RequestContextMiddleware

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan — startup and shutdown."""
    configure_logging()
    logger.info(
        "weatherbuddy_starting",
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )
    if getattr(app.state, "engine", None) is None:
        app.state.engine = build_engine()
    if settings.enrichment_enabled and not settings.openai_api_key:
        logger.warning("openai_api_key_not_set", msg="Alerts will use their original wording")
    yield
    close = getattr(app.state.engine.store, "close", None)
    if close is not None:
        await close()
    logger.info("weatherbuddy_shutdown")


def create_app(engine: Optional[WeatherAlertEngine] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description=(
            "Weather alert detection and notification dispatch.\n\n"
            "Samples → Detectors → Cooldown → Selector → Enrichment → Dispatch"
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness probe"},
            {"name": "alerts", "description": "Alert checks, history, in-app inbox"},
            {"name": "weather", "description": "Current conditions"},
        ],
    )
    app.state.engine = engine

    # ── Middleware (last added = outermost) ─────────────────────────────
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Routes ──────────────────────────────────────────────────────────
    app.include_router(alerts_router)
    app.include_router(weather_router)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe. Does not check dependencies."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "environment": settings.environment,
            "service": "weatherbuddy",
        }

    return app


# Application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "weatherbuddy.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
