"""Error taxonomy for the article fetch and extraction pipeline.

Every terminal failure is a :class:`ReaderError` carrying the HTTP status the
web boundary answers with. :class:`SanitizationDegraded` is the one non-fatal
member: sub-steps raise it and the owning stage logs it and carries on.
"""
from __future__ import annotations

from typing import Optional


class ReaderError(RuntimeError):
    """Base class for request-terminal pipeline failures."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_response(self) -> dict:
        return {"error": self.message}


class InvalidURLError(ReaderError):
    status_code = 400

    def __init__(self, message: str = "Invalid URL") -> None:
        super().__init__(message)


class FetchTimeoutError(ReaderError):
    status_code = 408

    def __init__(self, message: str = "Request timed out while fetching the article") -> None:
        super().__init__(message)


class PayloadTooLargeError(ReaderError):
    status_code = 413

    def __init__(self, message: str = "Article is too large to process") -> None:
        super().__init__(message)


class UpstreamError(ReaderError):
    """Non-2xx response from the article host.

    4xx/5xx statuses are passed through to the caller; anything else
    (e.g. an unfollowed 3xx) is reported as 502.
    """

    def __init__(self, upstream_status: int, message: Optional[str] = None) -> None:
        self.upstream_status = upstream_status
        status = upstream_status if 400 <= upstream_status <= 599 else 502
        super().__init__(
            message or f"Failed to fetch article (upstream status {upstream_status})",
            status_code=status,
        )


class FetchError(ReaderError):
    status_code = 500

    def __init__(self, message: str = "Failed to fetch article") -> None:
        super().__init__(message)


class ExtractionFailedError(ReaderError):
    status_code = 422

    def __init__(self, message: str = "Failed to parse article content") -> None:
        super().__init__(message)


class SanitizationDegraded(Exception):
    """A sanitization sub-step fell back to looser behaviour."""

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


__all__ = [
    "ExtractionFailedError",
    "FetchError",
    "FetchTimeoutError",
    "InvalidURLError",
    "PayloadTooLargeError",
    "ReaderError",
    "SanitizationDegraded",
    "UpstreamError",
]
