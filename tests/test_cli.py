from __future__ import annotations

import json
from typing import Optional

import pytest

from readlater import main as cli
from readlater.config.display import DisplaySettings
from readlater.ingestion.errors import UpstreamError
from readlater.ingestion.models import ArticleMetadata, ExtractedArticle, ParsedPage, ReaderArticle


class StubPipeline:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.settings = None

    def parse(self, url: str) -> ParsedPage:
        if self.error:
            raise self.error
        return ParsedPage(url=url, html="<p>x</p>", metadata=ArticleMetadata(title="T"))

    def read(self, url: str, settings: DisplaySettings) -> ReaderArticle:
        self.settings = settings
        page = self.parse(url)
        return ReaderArticle(
            url=url,
            article=ExtractedArticle(title="T", content_html="<p>x</p>"),
            metadata=page.metadata,
            html="<p>x</p>",
        )


@pytest.fixture()
def stub(monkeypatch):
    pipeline = StubPipeline()
    monkeypatch.setattr(cli, "build_pipeline", lambda settings: pipeline)
    monkeypatch.setattr(cli, "configure_logging", lambda: None)
    return pipeline


def test_cli_prints_reader_payload(stub, capsys) -> None:
    exit_code = cli.main(["https://example.com/a", "--font-size", "22", "--no-images"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["title"] == "T"
    assert payload["fromCache"] is False
    assert stub.settings == DisplaySettings(font_size=22, show_images=False)


def test_cli_raw_prints_parse_payload(stub, capsys) -> None:
    assert cli.main(["https://example.com/a", "--raw"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload == {"url": "https://example.com/a", "title": "T", "html": "<p>x</p>", "hasVideo": False}


def test_cli_reports_pipeline_errors(stub, capsys) -> None:
    stub.error = UpstreamError(404)

    assert cli.main(["https://example.com/a"]) == 1
    assert "upstream status 404" in capsys.readouterr().err


def test_cli_rejects_out_of_range_settings(stub, capsys) -> None:
    assert cli.main(["https://example.com/a", "--font-size", "50"]) == 1
    assert "Font size must be between 10 and 30" in capsys.readouterr().err
