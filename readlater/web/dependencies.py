"""Shared FastAPI dependencies."""
from __future__ import annotations

from typing import Iterator

from fastapi import Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session, sessionmaker

from readlater.db.session import session_scope
from readlater.ingestion.pipeline import ReaderPipeline


def get_session(request: Request) -> Iterator[Session]:
    session_factory: sessionmaker[Session] = request.app.state.session_factory
    with session_scope(session_factory) as session:
        yield session


def get_templates(request: Request) -> Jinja2Templates:
    return request.app.state.templates


def get_pipeline(request: Request) -> ReaderPipeline:
    return request.app.state.pipeline


__all__ = ["get_pipeline", "get_session", "get_templates"]
