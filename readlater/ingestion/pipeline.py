"""Orchestration of the fetch -> clean -> extract -> render stages."""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Optional

from readlater.config.display import DEFAULT_DISPLAY_SETTINGS, DisplaySettings
from readlater.config.settings import AppSettings
from readlater.ingestion.cache import ArticleCache
from readlater.ingestion.errors import ReaderError
from readlater.ingestion.extractor import ArticleExtractor
from readlater.ingestion.fetcher import Fetcher, validate_url
from readlater.ingestion.metadata import MetadataExtractor
from readlater.ingestion.models import ArticleMetadata, ExtractedArticle, ParsedPage, ReaderArticle
from readlater.ingestion.parsers import default_parser
from readlater.ingestion.presanitizer import Presanitizer
from readlater.rendering.normalizer import ArticleNormalizer
from readlater.telemetry import metrics

logger = logging.getLogger(__name__)

UNTITLED = "Untitled"
_PLACEHOLDER_TITLES = {"", "[no-title]"}


def _merge_article(article: ExtractedArticle, metadata: ArticleMetadata) -> ExtractedArticle:
    title = (article.title or "").strip()
    if title in _PLACEHOLDER_TITLES:
        title = metadata.title or UNTITLED
    return replace(
        article,
        title=title,
        byline=article.byline or metadata.byline,
        site_name=article.site_name or metadata.site_name,
        excerpt=article.excerpt or metadata.excerpt,
        published_time=article.published_time or metadata.published_time,
    )


class ReaderPipeline:
    """Run one URL through every stage in a fixed order.

    Each stage is a plain collaborator; the only state shared between
    requests is the article cache.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        presanitizer: Presanitizer,
        metadata_extractor: MetadataExtractor,
        extractor: ArticleExtractor,
        normalizer: ArticleNormalizer,
        cache: Optional[ArticleCache] = None,
    ) -> None:
        self._fetcher = fetcher
        self._presanitizer = presanitizer
        self._metadata_extractor = metadata_extractor
        self._extractor = extractor
        self._normalizer = normalizer
        self._cache = cache if cache is not None else ArticleCache()

    @property
    def cache(self) -> ArticleCache:
        return self._cache

    def parse(self, url: str) -> ParsedPage:
        """Fetch and pre-sanitize ``url`` and derive its metadata."""

        target = validate_url(url)
        document = self._fetcher.fetch(target)

        start = time.perf_counter()
        html = self._presanitizer.presanitize(document.text, target)
        metrics.record_extraction("presanitize", "success", time.perf_counter() - start)

        start = time.perf_counter()
        metadata = self._metadata_extractor.extract(html, target)
        metrics.record_extraction("metadata", "success", time.perf_counter() - start)

        return ParsedPage(url=target, html=html, metadata=metadata)

    def read(self, url: str, settings: DisplaySettings = DEFAULT_DISPLAY_SETTINGS) -> ReaderArticle:
        """Return the styled reader article for ``url``.

        When a stage fails terminally and a previous result for the same URL
        is cached, that result is re-rendered with ``settings`` instead.
        """

        try:
            page = self.parse(url)
            extracted = self._extractor.extract_or_raise(page.html, page.url)
        except ReaderError as exc:
            cached = self._cache.get((url or "").strip())
            if cached is None:
                raise
            logger.warning(
                "Serving cached article for %s after error: %s",
                cached.url,
                exc,
                extra={"event": "pipeline.cache_fallback", "url": cached.url, "status": exc.status_code},
            )
            return self.render(cached.url, cached.article, cached.metadata, settings, from_cache=True)

        article = _merge_article(extracted, page.metadata)
        result = self.render(page.url, article, page.metadata, settings)
        self._cache.put(page.url, result)
        logger.info(
            "Prepared article %s",
            page.url,
            extra={"event": "pipeline.article_ready", "url": page.url, "title": article.title},
        )
        return result

    def render(
        self,
        url: str,
        article: ExtractedArticle,
        metadata: ArticleMetadata,
        settings: DisplaySettings,
        from_cache: bool = False,
    ) -> ReaderArticle:
        start = time.perf_counter()
        html = self._normalizer.normalize(article.content_html, settings)
        metrics.record_extraction("normalize", "success", time.perf_counter() - start)
        return ReaderArticle(
            url=url,
            article=article,
            metadata=metadata,
            html=html,
            from_cache=from_cache,
        )


def build_pipeline(settings: Optional[AppSettings] = None) -> ReaderPipeline:
    """Wire the default stage implementations from application settings."""

    settings = settings or AppSettings()
    parser = default_parser()
    return ReaderPipeline(
        fetcher=Fetcher(settings.fetch),
        presanitizer=Presanitizer(parser),
        metadata_extractor=MetadataExtractor(parser),
        extractor=ArticleExtractor(),
        normalizer=ArticleNormalizer(parser),
        cache=ArticleCache(settings.cache.max_entries),
    )


__all__ = ["ReaderPipeline", "build_pipeline"]
