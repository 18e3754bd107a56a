"""Prometheus metrics for the fetch and extraction pipeline."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

METRICS_PORT_ENV = "READLATER_METRICS_PORT"


@dataclass
class FetchEvent:
    status: str
    byte_count: int
    duration_seconds: float


@dataclass
class ExtractionEvent:
    stage: str
    status: str
    duration_seconds: float


@dataclass
class DegradedEvent:
    stage: str
    reason: str


class MetricsCollector:
    """Registry of pipeline counters plus the last event of each kind.

    The ``last_*`` attributes exist so tests and the CLI can inspect what
    happened without scraping the Prometheus registry.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()
        self._exporter_started = False

        self._fetches = Counter(
            "readlater_fetch_total",
            "Article fetch attempts by outcome",
            labelnames=("status",),
            registry=self.registry,
        )
        self._fetch_bytes = Counter(
            "readlater_fetch_bytes_total",
            "Bytes downloaded from upstream article hosts",
            registry=self.registry,
        )
        self._fetch_duration = Histogram(
            "readlater_fetch_duration_seconds",
            "Wall-clock duration of article fetches",
            labelnames=("status",),
            buckets=(0.25, 0.5, 1, 2, 5, 10, 20, 30),
            registry=self.registry,
        )
        self._extractions = Counter(
            "readlater_extraction_total",
            "Pipeline stage executions by outcome",
            labelnames=("stage", "status"),
            registry=self.registry,
        )
        self._extraction_duration = Histogram(
            "readlater_extraction_duration_seconds",
            "Duration of CPU-bound pipeline stages",
            labelnames=("stage",),
            buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2),
            registry=self.registry,
        )
        self._degraded = Counter(
            "readlater_sanitize_degraded_total",
            "Sanitization sub-steps that fell back to a looser behaviour",
            labelnames=("stage", "reason"),
            registry=self.registry,
        )

        self.last_fetch: Optional[FetchEvent] = None
        self.last_extraction: Optional[ExtractionEvent] = None
        self.last_degraded: Optional[DegradedEvent] = None

    def enable_exporter(self, port: int) -> bool:
        """Start the Prometheus HTTP exporter on ``port``."""

        if self._exporter_started:
            return True
        start_http_server(port, registry=self.registry)
        self._exporter_started = True
        logger.info("Prometheus metrics exporter started", extra={"event": "metrics.started", "port": port})
        return True

    def record_fetch(self, status: str, byte_count: int, duration_seconds: float) -> None:
        self.last_fetch = FetchEvent(status, byte_count, duration_seconds)
        self._fetches.labels(status=status).inc()
        if byte_count:
            self._fetch_bytes.inc(byte_count)
        self._fetch_duration.labels(status=status).observe(duration_seconds)

    def record_extraction(self, stage: str, status: str, duration_seconds: float) -> None:
        self.last_extraction = ExtractionEvent(stage, status, duration_seconds)
        self._extractions.labels(stage=stage, status=status).inc()
        self._extraction_duration.labels(stage=stage).observe(duration_seconds)

    def record_degraded(self, stage: str, reason: str) -> None:
        self.last_degraded = DegradedEvent(stage, reason)
        self._degraded.labels(stage=stage, reason=reason).inc()

    def reset(self) -> None:
        """Reset cached inspection state (primarily for tests)."""

        self.last_fetch = None
        self.last_extraction = None
        self.last_degraded = None


metrics = MetricsCollector()


def configure_metrics_from_env() -> None:
    """Start metrics exporter when ``READLATER_METRICS_PORT`` is defined."""

    port_value = os.getenv(METRICS_PORT_ENV)
    if not port_value:
        return
    try:
        port = int(port_value)
    except ValueError:
        logger.warning(
            "Invalid %s value; expected integer",
            METRICS_PORT_ENV,
            extra={"event": "metrics.invalid_port", "value": port_value},
        )
        return
    metrics.enable_exporter(port)


__all__ = ["configure_metrics_from_env", "metrics", "MetricsCollector"]
