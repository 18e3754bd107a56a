from __future__ import annotations

import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, Iterable, List, Optional

import pytest
import requests

from readlater.config.settings import FetchSettings
from readlater.ingestion.errors import (
    FetchError,
    FetchTimeoutError,
    InvalidURLError,
    PayloadTooLargeError,
    UpstreamError,
)
from readlater.ingestion.fetcher import Fetcher, validate_url
from readlater.telemetry import metrics


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        chunks: Iterable[bytes] = (),
        error: Optional[Exception] = None,
    ) -> None:
        self.status_code = status_code
        self.headers = headers or {}
        self._chunks = list(chunks)
        self._error = error
        self.chunks_read = 0
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for chunk in self._chunks:
            self.chunks_read += 1
            yield chunk
        if self._error is not None:
            raise self._error

    def close(self) -> None:
        self.closed = True


class FakeSession:
    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None) -> None:
        self._response = response
        self._error = error
        self.calls: List[Dict[str, object]] = []

    def get(self, url: str, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if self._error is not None:
            raise self._error
        return self._response

    def close(self) -> None:  # pragma: no cover - only used for owned sessions
        pass


class SteppingClock:
    def __init__(self, step: float) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        value = self.now
        self.now += self.step
        return value


def test_fetch_returns_document_with_declared_charset() -> None:
    response = FakeResponse(
        headers={"Content-Type": "text/html; charset=ISO-8859-1", "Content-Length": "11"},
        chunks=[b"<p>caf\xe9", b"</p>"],
    )
    session = FakeSession(response)

    document = Fetcher(FetchSettings(), session=session).fetch("  https://example.com/post  ")

    assert document.url == "https://example.com/post"
    assert document.encoding == "ISO-8859-1"
    assert document.text == "<p>café</p>"
    assert response.closed

    call = session.calls[0]
    assert call["stream"] is True
    assert call["allow_redirects"] is True
    assert "User-Agent" in call["headers"]
    connect_timeout, read_timeout = call["timeout"]
    assert 0 < connect_timeout <= 20 and 0 < read_timeout <= 20

    assert metrics.last_fetch is not None
    assert metrics.last_fetch.status == "success"
    assert metrics.last_fetch.byte_count == 11


def test_declared_length_over_cap_is_rejected_before_reading() -> None:
    response = FakeResponse(headers={"Content-Length": "6000000"}, chunks=[b"x" * 10])

    with pytest.raises(PayloadTooLargeError) as excinfo:
        Fetcher(FetchSettings(), session=FakeSession(response)).fetch("https://example.com/huge")

    assert excinfo.value.status_code == 413
    assert response.chunks_read == 0
    assert response.closed
    assert metrics.last_fetch.status == "too_large"


def test_streamed_length_over_cap_aborts_download() -> None:
    response = FakeResponse(chunks=[b"a" * 6, b"b" * 6, b"c" * 6])
    settings = FetchSettings(max_bytes=10)

    with pytest.raises(PayloadTooLargeError):
        Fetcher(settings, session=FakeSession(response)).fetch("https://example.com/no-length")

    assert response.chunks_read == 2


def test_body_at_exact_cap_is_accepted() -> None:
    response = FakeResponse(chunks=[b"a" * 5, b"b" * 5])

    document = Fetcher(FetchSettings(max_bytes=10), session=FakeSession(response)).fetch("https://example.com/")

    assert len(document) == 10


def test_deadline_is_enforced_between_chunks() -> None:
    response = FakeResponse(chunks=[b"a", b"b", b"c"])
    clock = SteppingClock(step=7.0)
    fetcher = Fetcher(FetchSettings(timeout_seconds=20), session=FakeSession(response), clock=clock)

    with pytest.raises(FetchTimeoutError) as excinfo:
        fetcher.fetch("https://example.com/slow")

    assert excinfo.value.status_code == 408
    assert metrics.last_fetch.status == "timeout"


def test_requests_timeout_maps_to_timeout_error() -> None:
    session = FakeSession(error=requests.ReadTimeout("read timed out"))

    with pytest.raises(FetchTimeoutError):
        Fetcher(FetchSettings(), session=session).fetch("https://example.com/slow")


def test_transport_failure_maps_to_fetch_error() -> None:
    session = FakeSession(error=requests.ConnectionError("connection refused"))

    with pytest.raises(FetchError) as excinfo:
        Fetcher(FetchSettings(), session=session).fetch("https://example.com/down")

    assert excinfo.value.status_code == 500
    assert excinfo.value.to_response() == {"error": "Failed to fetch article"}


def test_error_while_streaming_maps_to_fetch_error() -> None:
    response = FakeResponse(chunks=[b"a"], error=requests.ConnectionError("reset"))

    with pytest.raises(FetchError) as excinfo:
        Fetcher(FetchSettings(), session=FakeSession(response)).fetch("https://example.com/reset")

    assert excinfo.value.message == "Failed to read article content"


@pytest.mark.parametrize("status, expected", [(404, 404), (503, 503), (304, 502)])
def test_non_success_status_is_upstream_error(status: int, expected: int) -> None:
    response = FakeResponse(status_code=status)

    with pytest.raises(UpstreamError) as excinfo:
        Fetcher(FetchSettings(), session=FakeSession(response)).fetch("https://example.com/missing")

    assert excinfo.value.status_code == expected
    assert excinfo.value.upstream_status == status
    assert response.chunks_read == 0
    assert metrics.last_fetch.status == "upstream_error"


@pytest.mark.parametrize("url", ["", "   ", "not a url", "ftp://example.com/file", "javascript:alert(1)", "https://"])
def test_invalid_urls_are_rejected_without_fetching(url: str) -> None:
    session = FakeSession(FakeResponse())

    with pytest.raises(InvalidURLError) as excinfo:
        Fetcher(FetchSettings(), session=session).fetch(url)

    assert excinfo.value.status_code == 400
    assert session.calls == []
    assert metrics.last_fetch.status == "invalid_url"


def test_validate_url_requires_a_value() -> None:
    with pytest.raises(InvalidURLError) as excinfo:
        validate_url(None)

    assert excinfo.value.message == "URL parameter is required"
    assert validate_url("http://example.com:8080/a") == "http://example.com:8080/a"


class DripHandler(BaseHTTPRequestHandler):
    """Declares a large body, then sends it one byte at a time."""

    def do_GET(self) -> None:
        self.send_response(200)
        self.send_header("Content-Type", "text/html")
        self.send_header("Content-Length", "100000")
        self.end_headers()
        try:
            for _ in range(100):
                self.wfile.write(b"x")
                self.wfile.flush()
                time.sleep(0.1)
        except OSError:
            pass

    def log_message(self, format: str, *args) -> None:
        pass


@pytest.fixture()
def drip_url():
    server = ThreadingHTTPServer(("127.0.0.1", 0), DripHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/slow"
    server.shutdown()
    server.server_close()


def test_slow_upstream_is_cut_off_at_the_deadline(drip_url: str) -> None:
    session = requests.Session()
    session.trust_env = False
    started = time.monotonic()

    with pytest.raises(FetchTimeoutError):
        Fetcher(FetchSettings(timeout_seconds=1.0), session=session).fetch(drip_url)

    assert time.monotonic() - started < 3.0
    assert metrics.last_fetch.status == "timeout"
