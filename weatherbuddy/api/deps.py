"""
FastAPI dependencies.

One engine per application, kept on app.state. Tests inject their own via
create_app(engine=...) or dependency_overrides.
"""

from fastapi import Request

from weatherbuddy.alerting.engine import WeatherAlertEngine, build_engine


def get_engine(request: Request) -> WeatherAlertEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        engine = build_engine()
        request.app.state.engine = engine
    return engine
