"""Factory for the FastAPI reader application."""
from __future__ import annotations

from pathlib import Path

from fastapi import FastAPI
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session, sessionmaker

from readlater import __version__
from readlater.ingestion.pipeline import ReaderPipeline
from .routes import api, reader


TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def create_app(session_factory: sessionmaker[Session], pipeline: ReaderPipeline) -> FastAPI:
    """Create a configured FastAPI application instance."""

    app = FastAPI(title="readlater", version=__version__)
    app.state.session_factory = session_factory
    app.state.pipeline = pipeline
    app.state.templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

    app.include_router(api.router, prefix="/api")
    app.include_router(reader.router)

    return app


__all__ = ["create_app"]
