"""Pattern-based metadata extraction from pre-sanitized HTML.

Each field is resolved by an ordered chain of candidate functions; the first
non-empty candidate wins. Everything except two excerpt candidates works on
the raw markup with regular expressions, so metadata is available even when
no DOM parser is configured.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence
from urllib.parse import urlparse

from readlater.ingestion.entities import decode_html_entities
from readlater.ingestion.errors import SanitizationDegraded
from readlater.ingestion.models import ArticleMetadata
from readlater.ingestion.parsers import DocumentParser, RegexDocumentParser, default_parser
from readlater.telemetry import metrics

logger = logging.getLogger(__name__)

EXCERPT_MAX_LENGTH = 150
EXCERPT_TRUNCATE_AT = 147
SUBSTANTIAL_PARAGRAPH = 50

_CONTENT_ATTR = r"""content\s*=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)')"""
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def _meta_patterns(attribute: str, value: str) -> tuple:
    """Both attribute orderings of ``<meta {attribute}="{value}" content="...">``."""

    key = rf"""\b{attribute}\s*=\s*["']{re.escape(value)}["']"""
    return (
        re.compile(rf"<meta\b[^>]*{key}[^>]*{_CONTENT_ATTR}[^>]*>", re.IGNORECASE),
        re.compile(rf"<meta\b[^>]*{_CONTENT_ATTR}[^>]*{key}[^>]*>", re.IGNORECASE),
    )


_OG_TITLE = _meta_patterns("(?:property|name)", "og:title")
_OG_DESCRIPTION = _meta_patterns("(?:property|name)", "og:description")
_OG_SITE_NAME = _meta_patterns("(?:property|name)", "og:site_name")
_OG_PUBLISHED = _meta_patterns("(?:property|name)", "og:published_time")
_META_DESCRIPTION = _meta_patterns("name", "description")
_TWITTER_SITE = _meta_patterns("name", "twitter:site")
_ARTICLE_PUBLISHED = _meta_patterns("property", "article:published_time")
_SCHEMA_PUBLISHED = _meta_patterns("itemprop", "datePublished")
_META_AUTHOR = _meta_patterns("name", "author")
_ARTICLE_AUTHOR = _meta_patterns("property", "article:author")

_TITLE_RE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
_H1_RE = re.compile(r"<h1\b[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)
_PARAGRAPH_RE = re.compile(r"<p\b[^>]*>([^<]+)</p>", re.IGNORECASE)

_VIDEO_TAG_RE = re.compile(r"<video\b[^>]*>", re.IGNORECASE)
_YOUTUBE_RE = re.compile(r"youtube\.com/embed|youtu\.be", re.IGNORECASE)
_VIMEO_RE = re.compile(r"player\.vimeo\.com", re.IGNORECASE)
_VIDEO_WORD_RE = re.compile(r"video", re.IGNORECASE)
_IFRAME_RE = re.compile(r"<iframe\b[^>]*>", re.IGNORECASE)


@dataclass
class _Context:
    """Per-call state shared by the candidate functions."""

    url: str
    parser: DocumentParser
    _tree: Any = field(default=None, repr=False)
    _parsed: bool = False

    def tree(self, html: str) -> Any:
        if self._parsed:
            return self._tree
        self._parsed = True
        if not self.parser.available:
            return None
        try:
            self._tree = self.parser.parse(html)
        except SanitizationDegraded as exc:
            metrics.record_degraded("metadata", exc.reason)
            logger.warning(
                "Metadata DOM parsing degraded: %s",
                exc,
                extra={"event": "sanitize.degraded", "stage": "metadata", "reason": exc.reason},
            )
        except Exception as exc:
            metrics.record_degraded("metadata", "parse_error")
            logger.warning(
                "Error extracting metadata using DOM: %s",
                exc,
                extra={"event": "sanitize.degraded", "stage": "metadata", "reason": "parse_error"},
            )
        return self._tree


Candidate = Callable[[str, _Context], Optional[str]]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = decode_html_entities(value.strip()).strip()
    return text or None


def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _meta_candidate(patterns: tuple) -> Candidate:
    def candidate(html: str, ctx: _Context) -> Optional[str]:
        for pattern in patterns:
            match = pattern.search(html)
            if match:
                value = match.group("dq")
                if value is None:
                    value = match.group("sq")
                cleaned = _clean(value)
                if cleaned:
                    return cleaned
        return None

    return candidate


def _hostname(url: str) -> Optional[str]:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    if not host:
        return None
    return re.sub(r"^www\.", "", host)


def _title_tag(html: str, ctx: _Context) -> Optional[str]:
    match = _TITLE_RE.search(html)
    return _clean(match.group(1)) if match else None


def _first_h1(html: str, ctx: _Context) -> Optional[str]:
    match = _H1_RE.search(html)
    if not match:
        return None
    return _clean(_collapse(_TAG_RE.sub("", match.group(1))))


def _hostname_candidate(html: str, ctx: _Context) -> Optional[str]:
    return _hostname(ctx.url)


def _raw_url(html: str, ctx: _Context) -> Optional[str]:
    return ctx.url or None


def _schema_description(html: str, ctx: _Context) -> Optional[str]:
    tree = ctx.tree(html)
    if tree is None:
        return None
    matches = tree.xpath('//*[@itemprop="description"]')
    if not matches:
        return None
    element = matches[0]
    if element.tag == "meta":
        return _clean(element.get("content"))
    return _collapse(element.text_content()) or None


def _substantial_paragraph(html: str, ctx: _Context) -> Optional[str]:
    tree = ctx.tree(html)
    if tree is None:
        return None
    for paragraph in tree.xpath("//p[not(ancestor::header) and not(ancestor::footer) and not(ancestor::nav)]"):
        text = _collapse(paragraph.text_content())
        if len(text) > SUBSTANTIAL_PARAGRAPH:
            return text
    return None


def _any_paragraph(html: str, ctx: _Context) -> Optional[str]:
    tree = ctx.tree(html)
    if tree is None:
        return None
    for paragraph in tree.iter("p"):
        text = _collapse(paragraph.text_content())
        if text:
            return text
    return None


def _regex_paragraph(html: str, ctx: _Context) -> Optional[str]:
    for match in _PARAGRAPH_RE.finditer(html):
        cleaned = _clean(match.group(1))
        if cleaned:
            return cleaned
    return None


def _twitter_site(html: str, ctx: _Context) -> Optional[str]:
    value = _meta_candidate(_TWITTER_SITE)(html, ctx)
    if value and value.startswith("@"):
        value = value[1:].strip()
    return value or None


TITLE_CANDIDATES: Sequence[Candidate] = (
    _meta_candidate(_OG_TITLE),
    _title_tag,
    _first_h1,
    _hostname_candidate,
    _raw_url,
)

EXCERPT_CANDIDATES: Sequence[Candidate] = (
    _meta_candidate(_OG_DESCRIPTION),
    _meta_candidate(_META_DESCRIPTION),
    _schema_description,
    _substantial_paragraph,
    _any_paragraph,
    _regex_paragraph,
)

SITE_NAME_CANDIDATES: Sequence[Candidate] = (
    _meta_candidate(_OG_SITE_NAME),
    _twitter_site,
    _hostname_candidate,
)

PUBLISHED_TIME_CANDIDATES: Sequence[Candidate] = (
    _meta_candidate(_OG_PUBLISHED),
    _meta_candidate(_ARTICLE_PUBLISHED),
    _meta_candidate(_SCHEMA_PUBLISHED),
)

BYLINE_CANDIDATES: Sequence[Candidate] = (
    _meta_candidate(_META_AUTHOR),
    _meta_candidate(_ARTICLE_AUTHOR),
)


def first_match(candidates: Sequence[Candidate], html: str, ctx: _Context) -> Optional[str]:
    for candidate in candidates:
        value = candidate(html, ctx)
        if value:
            return value
    return None


def _regex_only(candidates: Sequence[Candidate], html: str) -> Optional[str]:
    return first_match(candidates, html or "", _Context(url="", parser=RegexDocumentParser()))


def extract_byline(html: str) -> Optional[str]:
    return _regex_only(BYLINE_CANDIDATES, html)


def extract_declared_site_name(html: str) -> Optional[str]:
    """Site name from meta tags only, without the hostname fallback."""

    return _regex_only(SITE_NAME_CANDIDATES[:2], html)


def truncate_excerpt(text: str) -> str:
    if len(text) > EXCERPT_MAX_LENGTH:
        return f"{text[:EXCERPT_TRUNCATE_AT]}..."
    return text


def detect_video(html: str) -> bool:
    """Loose video signal: tags, known embeds, or "video" near any iframe."""

    if _VIDEO_TAG_RE.search(html):
        return True
    if _YOUTUBE_RE.search(html) or _VIMEO_RE.search(html):
        return True
    return bool(_VIDEO_WORD_RE.search(html) and _IFRAME_RE.search(html))


class MetadataExtractor:
    """Derive :class:`ArticleMetadata` from pre-sanitized HTML."""

    def __init__(self, parser: Optional[DocumentParser] = None) -> None:
        self._parser = parser or default_parser()

    def extract(self, html: str, url: str) -> ArticleMetadata:
        html = html or ""
        ctx = _Context(url=url, parser=self._parser)

        excerpt = first_match(EXCERPT_CANDIDATES, html, ctx)
        return ArticleMetadata(
            title=first_match(TITLE_CANDIDATES, html, ctx) or url,
            excerpt=truncate_excerpt(excerpt) if excerpt else None,
            site_name=first_match(SITE_NAME_CANDIDATES, html, ctx),
            published_time=first_match(PUBLISHED_TIME_CANDIDATES, html, ctx),
            byline=first_match(BYLINE_CANDIDATES, html, ctx),
            has_video=detect_video(html),
        )


def extract_metadata(html: str, url: str, parser: Optional[DocumentParser] = None) -> ArticleMetadata:
    return MetadataExtractor(parser).extract(html, url)


__all__ = [
    "BYLINE_CANDIDATES",
    "EXCERPT_CANDIDATES",
    "MetadataExtractor",
    "PUBLISHED_TIME_CANDIDATES",
    "SITE_NAME_CANDIDATES",
    "TITLE_CANDIDATES",
    "detect_video",
    "extract_byline",
    "extract_declared_site_name",
    "extract_metadata",
    "first_match",
    "truncate_excerpt",
]
