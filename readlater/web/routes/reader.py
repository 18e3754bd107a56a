"""Server-rendered reader page."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import Session

from readlater.config.store import DEFAULT_USER_ID, get_display_settings
from readlater.ingestion.errors import ReaderError
from readlater.ingestion.parsers import default_parser
from readlater.ingestion.pipeline import ReaderPipeline
from readlater.web.dependencies import get_pipeline, get_session, get_templates

logger = logging.getLogger(__name__)

router = APIRouter()

TOC_HEADINGS = ("h2", "h3", "h4")


def build_toc(html: str) -> List[Dict[str, Any]]:
    """Table of contents entries for every ``h2``-``h4`` carrying an id."""

    if not html:
        return []
    container = default_parser().fragment(html)
    entries: List[Dict[str, Any]] = []
    for heading in container.iter(*TOC_HEADINGS):
        anchor = heading.get("id")
        text = " ".join(heading.text_content().split())
        if anchor and text:
            entries.append({"id": anchor, "text": text, "level": int(heading.tag[1])})
    return entries


def format_published(value: Optional[str]) -> Optional[str]:
    """Human readable publication date; unparsable values count as absent."""

    if not value:
        return None
    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        published = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return published.strftime("%B %d, %Y").replace(" 0", " ")


@router.get("/", response_class=HTMLResponse)
def reader_home(request: Request):
    templates = get_templates(request)
    return templates.TemplateResponse(request, "reader.html", {"article": None, "url": ""})


@router.get("/read", response_class=HTMLResponse)
def read_page(
    request: Request,
    url: Optional[str] = None,
    user: str = DEFAULT_USER_ID,
    session: Session = Depends(get_session),
    pipeline: ReaderPipeline = Depends(get_pipeline),
):
    templates = get_templates(request)
    settings = get_display_settings(session, user)
    try:
        article = pipeline.read(url or "", settings)
    except ReaderError as exc:
        logger.info(
            "Reader page failed for %s: %s",
            url,
            exc,
            extra={"event": "reader.error", "url": url, "status": exc.status_code},
        )
        context = {"url": url or "", "error": exc.message}
        return templates.TemplateResponse(request, "error.html", context, status_code=exc.status_code)

    context = {
        "url": article.url,
        "article": article.article,
        "metadata": article.metadata,
        "content": article.html,
        "from_cache": article.from_cache,
        "settings": settings,
        "toc": build_toc(article.html),
        "published": format_published(article.article.published_time),
    }
    return templates.TemplateResponse(request, "reader.html", context)


__all__ = ["build_toc", "format_published", "router"]
