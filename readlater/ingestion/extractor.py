"""Main-content extraction backed by readability-lxml."""
from __future__ import annotations

import logging
import re
import time
from typing import Optional

from lxml import html as lxml_html
from readability import Document
from readability.readability import Unparseable

from readlater.ingestion.errors import ExtractionFailedError
from readlater.ingestion.metadata import extract_byline, extract_declared_site_name
from readlater.ingestion.models import ExtractedArticle
from readlater.telemetry import metrics

logger = logging.getLogger(__name__)

_HTML_LANG_RE = re.compile(r"""<html\b[^>]*\blang\s*=\s*["']([^"']+)["']""", re.IGNORECASE)


def _text_length(fragment: str) -> int:
    try:
        tree = lxml_html.fragment_fromstring(fragment, create_parent="div")
    except Exception as exc:  # pragma: no cover - lxml parsing path
        logger.debug("Failed to parse extracted HTML: %s", exc)
        return 0
    return len(tree.text_content().strip())


class ArticleExtractor:
    """Pick the main article body out of a pre-sanitized page.

    ``extract`` returns ``None`` when readability cannot find a confident
    content region; callers treat that as a recoverable failure.
    """

    def __init__(self, min_text_length: int = 1) -> None:
        self._min_text_length = max(1, min_text_length)

    def extract(self, html: str, url: Optional[str] = None) -> Optional[ExtractedArticle]:
        start = time.perf_counter()
        status = "error"
        try:
            article = self._extract(html, url)
            status = "success" if article else "empty"
            return article
        finally:
            metrics.record_extraction("content", status, time.perf_counter() - start)

    def extract_or_raise(self, html: str, url: Optional[str] = None) -> ExtractedArticle:
        article = self.extract(html, url)
        if article is None:
            raise ExtractionFailedError()
        return article

    def _extract(self, html: str, url: Optional[str]) -> Optional[ExtractedArticle]:
        if not html or not html.strip():
            return None

        doc = Document(html, url=url)
        try:
            content_html = doc.summary(html_partial=True)
            title = doc.short_title()
        except Unparseable as exc:
            logger.info(
                "Readability could not parse %s: %s",
                url,
                exc,
                extra={"event": "extract.unparseable", "url": url},
            )
            return None

        if _text_length(content_html) < self._min_text_length:
            logger.info(
                "No main content found for %s",
                url,
                extra={"event": "extract.empty", "url": url},
            )
            return None

        lang_match = _HTML_LANG_RE.search(html)
        return ExtractedArticle(
            title=(title or "").strip(),
            content_html=content_html,
            byline=extract_byline(html),
            site_name=extract_declared_site_name(html),
            lang=lang_match.group(1).strip() if lang_match else None,
        )


__all__ = ["ArticleExtractor"]
