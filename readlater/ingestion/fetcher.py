"""Bounded HTTP retrieval of article pages."""
from __future__ import annotations

import logging
import re
import threading
import time
from typing import Callable, List, Mapping, Optional
from urllib.parse import urlparse

import requests

from readlater.config.settings import FetchSettings
from readlater.ingestion.errors import (
    FetchError,
    FetchTimeoutError,
    InvalidURLError,
    PayloadTooLargeError,
    ReaderError,
    UpstreamError,
)
from readlater.ingestion.models import RawDocument
from readlater.telemetry import metrics

logger = logging.getLogger(__name__)

_CHARSET_RE = re.compile(r"charset\s*=\s*[\"']?([^\s;\"']+)", re.IGNORECASE)


def validate_url(url: Optional[str]) -> str:
    """Return ``url`` stripped, or raise :class:`InvalidURLError`.

    Only absolute ``http``/``https`` URLs with a host are accepted.
    """

    if not url or not url.strip():
        raise InvalidURLError("URL parameter is required")
    candidate = url.strip()
    try:
        parsed = urlparse(candidate)
        # Accessing .port validates the netloc (raises on "host:notaport").
        parsed.port
    except ValueError as exc:
        raise InvalidURLError() from exc
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        raise InvalidURLError()
    return candidate


def _declared_length(headers: Mapping[str, str]) -> Optional[int]:
    value = headers.get("Content-Length") or headers.get("content-length")
    if not value:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _declared_charset(headers: Mapping[str, str]) -> Optional[str]:
    content_type = headers.get("Content-Type") or headers.get("content-type") or ""
    match = _CHARSET_RE.search(content_type)
    return match.group(1) if match else None


class Fetcher:
    """Download a page under a wall-clock deadline and a byte cap.

    The declared ``Content-Length`` is checked before any body byte is read;
    the streamed byte count is authoritative and aborts the download the
    moment it crosses ``max_bytes``. Nothing partial is ever returned.
    """

    def __init__(
        self,
        settings: Optional[FetchSettings] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or FetchSettings()
        self._session = session
        self._clock = clock
        self._headers = {
            "User-Agent": self._settings.user_agent,
            "Accept": self._settings.accept,
            "Accept-Language": self._settings.accept_language,
        }

    @property
    def settings(self) -> FetchSettings:
        return self._settings

    def fetch(self, url: str) -> RawDocument:
        start = self._clock()
        status = "error"
        byte_count = 0
        try:
            target = validate_url(url)
            document = self._download(target, start)
            byte_count = len(document)
            status = "success"
            return document
        except InvalidURLError:
            status = "invalid_url"
            raise
        except FetchTimeoutError:
            status = "timeout"
            raise
        except PayloadTooLargeError:
            status = "too_large"
            raise
        except UpstreamError:
            status = "upstream_error"
            raise
        finally:
            duration = self._clock() - start
            metrics.record_fetch(status, byte_count, duration)
            logger.info(
                "Fetched %s (%s, %d bytes, %.2fs)",
                url,
                status,
                byte_count,
                duration,
                extra={
                    "event": "fetch.finished",
                    "url": url,
                    "status": status,
                    "bytes": byte_count,
                    "duration_seconds": round(duration, 3),
                },
            )

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise FetchTimeoutError()
        return remaining

    def _download(self, url: str, start: float) -> RawDocument:
        deadline = start + self._settings.timeout_seconds
        session = self._session or requests.Session()
        owns_session = self._session is None
        try:
            try:
                remaining = self._remaining(deadline)
                response = session.get(
                    url,
                    headers=self._headers,
                    stream=True,
                    timeout=(remaining, remaining),
                    allow_redirects=True,
                )
            except requests.Timeout as exc:
                raise FetchTimeoutError() from exc
            except requests.RequestException as exc:
                logger.warning(
                    "Failed to download article %s: %s",
                    url,
                    exc,
                    extra={"event": "fetch.transport_error", "url": url},
                )
                raise FetchError() from exc

            try:
                return self._read_body(url, response, deadline)
            finally:
                response.close()
        finally:
            if owns_session:
                session.close()

    def _read_body(self, url: str, response: requests.Response, deadline: float) -> RawDocument:
        if not 200 <= response.status_code < 300:
            raise UpstreamError(response.status_code)

        max_bytes = self._settings.max_bytes
        declared = _declared_length(response.headers)
        if declared is not None and declared > max_bytes:
            logger.warning(
                "Declared content length %d exceeds cap for %s",
                declared,
                url,
                extra={"event": "fetch.too_large", "url": url, "declared": declared},
            )
            raise PayloadTooLargeError()

        chunks: List[bytes] = []
        total = 0
        expired = threading.Event()

        def _expire() -> None:
            expired.set()
            # close() waits for a read in progress; shutting the socket down ends it.
            response.raw.shutdown()
            response.close()

        # iter_content only yields full chunks, so a slow upstream has to be
        # cut off from another thread once the deadline passes.
        watchdog = threading.Timer(self._remaining(deadline), _expire)
        watchdog.daemon = True
        watchdog.start()
        try:
            for chunk in response.iter_content(chunk_size=self._settings.chunk_size):
                if not chunk:
                    continue
                total += len(chunk)
                if total > max_bytes:
                    logger.warning(
                        "Streamed body exceeded %d bytes for %s",
                        max_bytes,
                        url,
                        extra={"event": "fetch.too_large", "url": url, "streamed": total},
                    )
                    raise PayloadTooLargeError()
                self._remaining(deadline)
                chunks.append(chunk)
        except ReaderError:
            raise
        except Exception as exc:
            # urllib3 read timeouts surface from iter_content as ConnectionError;
            # a response closed by the watchdog fails with whatever the socket raises.
            if expired.is_set() or self._clock() >= deadline or isinstance(exc, requests.Timeout):
                raise FetchTimeoutError() from exc
            if isinstance(exc, requests.RequestException):
                raise FetchError("Failed to read article content") from exc
            raise
        finally:
            watchdog.cancel()

        if expired.is_set():
            raise FetchTimeoutError()

        return RawDocument(
            url=url,
            content=b"".join(chunks),
            encoding=_declared_charset(response.headers),
        )


__all__ = ["Fetcher", "validate_url"]
