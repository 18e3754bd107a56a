"""JSON endpoints for parsing, reading and reader settings."""
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from readlater.config.display import DisplaySettings, DisplaySettingsError
from readlater.config.store import DEFAULT_USER_ID, get_display_settings, save_display_settings
from readlater.ingestion.errors import ReaderError
from readlater.ingestion.pipeline import ReaderPipeline
from readlater.web.dependencies import get_pipeline, get_session

logger = logging.getLogger(__name__)

router = APIRouter()

UNEXPECTED_ERROR = "An unexpected error occurred"


def error_response(exc: ReaderError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


def unexpected_error_response() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": UNEXPECTED_ERROR},
    )


@router.get("/parse", response_class=JSONResponse)
def parse_article(
    url: Optional[str] = None,
    pipeline: ReaderPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """Fetch a page and return its pre-sanitized HTML with metadata."""

    try:
        page = pipeline.parse(url or "")
    except ReaderError as exc:
        return error_response(exc)
    except Exception:
        logger.exception("Failed to parse %s", url, extra={"event": "api.parse_error", "url": url})
        return unexpected_error_response()
    return JSONResponse(content=page.to_payload())


@router.get("/article", response_class=JSONResponse)
def read_article(
    url: Optional[str] = None,
    user: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
    pipeline: ReaderPipeline = Depends(get_pipeline),
) -> JSONResponse:
    """Run the full pipeline using the caller's stored display settings."""

    settings = get_display_settings(session, user)
    try:
        article = pipeline.read(url or "", settings)
    except ReaderError as exc:
        return error_response(exc)
    except Exception:
        logger.exception("Failed to read %s", url, extra={"event": "api.article_error", "url": url})
        return unexpected_error_response()
    return JSONResponse(content=article.to_payload())


@router.get("/settings", response_class=JSONResponse)
def read_settings(
    user: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
) -> JSONResponse:
    return JSONResponse(content=get_display_settings(session, user).to_payload())


@router.post("/settings", response_class=JSONResponse)
def update_settings(
    payload: Any = Body(None),
    user: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
) -> JSONResponse:
    try:
        settings = DisplaySettings.from_payload(payload)
    except DisplaySettingsError as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)})
    saved = save_display_settings(session, user, settings)
    return JSONResponse(content=saved.to_payload())


__all__ = ["error_response", "router"]
