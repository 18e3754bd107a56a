"""ASGI entrypoint for the readlater web application."""
from __future__ import annotations

from readlater.config.settings import load_settings
from readlater.db.session import create_engine_from_url, create_session_factory, init_db
from readlater.ingestion.pipeline import build_pipeline
from readlater.telemetry import configure_logging, configure_metrics_from_env
from .app import create_app

configure_logging()
configure_metrics_from_env()

_settings = load_settings()
_engine = create_engine_from_url(_settings.database_url)
init_db(_engine)
_session_factory = create_session_factory(_engine)

app = create_app(_session_factory, build_pipeline(_settings))

__all__ = ["app"]
