from __future__ import annotations

import pytest
from readability import Document
from readability.readability import Unparseable

from readlater.ingestion.errors import ExtractionFailedError
from readlater.ingestion.extractor import ArticleExtractor
from readlater.telemetry import metrics

PARAGRAPH = (
    "The committee met on Tuesday, after weeks of delay, to review the proposal in detail, "
    "and members spent several hours debating the budget, the schedule, and the staffing plan. "
)

ARTICLE_HTML = f"""
<html lang="en-GB">
<head>
  <title>Committee approves new budget plan</title>
  <meta name="author" content="Jane Doe">
  <meta property="og:site_name" content="The Daily Example">
</head>
<body>
  <div class="navigation"><a href="https://example.com/">Home</a> | <a href="https://example.com/news">News</a></div>
  <div class="article-body">
    <h1>Committee approves new budget plan</h1>
    <p>FIRST-MARKER {PARAGRAPH}</p>
    <p>{PARAGRAPH}</p>
    <p>{PARAGRAPH}</p>
    <p>{PARAGRAPH}</p>
  </div>
  <div class="footer">Copyright 2024</div>
</body>
</html>
"""


def test_extracts_main_content_and_metadata() -> None:
    article = ArticleExtractor().extract(ARTICLE_HTML, "https://example.com/budget")

    assert article is not None
    assert "FIRST-MARKER" in article.content_html
    assert "Copyright 2024" not in article.content_html
    assert "Committee approves new budget plan" in article.title
    assert article.byline == "Jane Doe"
    assert article.site_name == "The Daily Example"
    assert article.lang == "en-GB"

    assert metrics.last_extraction is not None
    assert metrics.last_extraction.stage == "content"
    assert metrics.last_extraction.status == "success"


def test_empty_document_yields_none() -> None:
    assert ArticleExtractor().extract("   ") is None
    assert metrics.last_extraction.status == "empty"


def test_extract_or_raise_maps_missing_content() -> None:
    with pytest.raises(ExtractionFailedError) as excinfo:
        ArticleExtractor().extract_or_raise("")

    assert excinfo.value.status_code == 422
    assert excinfo.value.to_response() == {"error": "Failed to parse article content"}


def test_unparseable_documents_yield_none(monkeypatch) -> None:
    def _boom(self, html_partial=False):
        raise Unparseable("broken")

    monkeypatch.setattr(Document, "summary", _boom)

    assert ArticleExtractor().extract(ARTICLE_HTML, "https://example.com/budget") is None


def test_minimum_text_length_is_enforced() -> None:
    extractor = ArticleExtractor(min_text_length=100_000)

    assert extractor.extract(ARTICLE_HTML, "https://example.com/budget") is None
