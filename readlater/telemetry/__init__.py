"""Telemetry helpers for readlater."""

from .logging import configure_logging
from .metrics import configure_metrics_from_env, metrics

__all__ = ["configure_logging", "configure_metrics_from_env", "metrics"]
