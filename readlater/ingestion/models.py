"""Data models passed between pipeline stages."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

_META_CHARSET_RE = re.compile(
    rb"""<meta[^>]+charset\s*=\s*["']?\s*([a-zA-Z0-9_\-:.]+)""",
    re.IGNORECASE,
)


def _valid_codec(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    try:
        "".encode(name)
    except LookupError:
        return None
    return name


@dataclass(frozen=True)
class RawDocument:
    """Bytes downloaded for one URL, never larger than the fetch cap."""

    url: str
    content: bytes
    encoding: Optional[str] = None

    @property
    def detected_encoding(self) -> str:
        declared = _valid_codec(self.encoding)
        if declared:
            return declared
        match = _META_CHARSET_RE.search(self.content[:4096])
        if match:
            sniffed = _valid_codec(match.group(1).decode("ascii", "ignore"))
            if sniffed:
                return sniffed
        return "utf-8"

    @property
    def text(self) -> str:
        return self.content.decode(self.detected_encoding, errors="replace")

    def __len__(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class ArticleMetadata:
    title: str
    excerpt: Optional[str] = None
    site_name: Optional[str] = None
    published_time: Optional[str] = None
    byline: Optional[str] = None
    has_video: bool = False


@dataclass(frozen=True)
class ExtractedArticle:
    """Main-content fragment produced by the content extractor."""

    title: str
    content_html: str
    byline: Optional[str] = None
    site_name: Optional[str] = None
    excerpt: Optional[str] = None
    lang: Optional[str] = None
    published_time: Optional[str] = None


def _drop_empty(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class ParsedPage:
    """Pre-sanitized page plus its metadata, as served by ``/api/parse``."""

    url: str
    html: str
    metadata: ArticleMetadata

    def to_payload(self) -> Dict[str, Any]:
        return _drop_empty(
            {
                "url": self.url,
                "title": self.metadata.title,
                "excerpt": self.metadata.excerpt,
                "siteName": self.metadata.site_name,
                "html": self.html,
                "hasVideo": self.metadata.has_video,
            }
        )


@dataclass(frozen=True)
class ReaderArticle:
    """Fully processed article: extracted, sanitized and styled."""

    url: str
    article: ExtractedArticle
    metadata: ArticleMetadata
    html: str
    from_cache: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return _drop_empty(
            {
                "url": self.url,
                "title": self.article.title,
                "byline": self.article.byline,
                "siteName": self.article.site_name,
                "excerpt": self.article.excerpt,
                "lang": self.article.lang,
                "publishedTime": self.article.published_time,
                "hasVideo": self.metadata.has_video,
                "html": self.html,
                "fromCache": self.from_cache,
            }
        )


__all__ = [
    "ArticleMetadata",
    "ExtractedArticle",
    "ParsedPage",
    "RawDocument",
    "ReaderArticle",
]
