"""Observability: structured logging and metrics hooks for crosspost."""

from __future__ import annotations

from .logger import StructuredFormatter, bound_fields, get_logger, log_context
from .metrics import MetricsHook, NoopMetricsHook

__all__ = [
    "MetricsHook",
    "NoopMetricsHook",
    "StructuredFormatter",
    "bound_fields",
    "get_logger",
    "log_context",
]
