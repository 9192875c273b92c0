"""Metrics hook protocol and no-op default implementation.

The engine emits counters, timings and gauges at the points an operator
cares about: HTTP requests and retries, job outcomes, image processing,
and cycle duration.  :class:`NoopMetricsHook` is used unless the caller
supplies a backend satisfying :class:`MetricsHook`.

Emitted metric names:

* ``crosspost.requests_total``            -- counter
* ``crosspost.retries_total``             -- counter
* ``crosspost.request_duration_ms``       -- timing
* ``crosspost.jobs_total``                -- counter (platform, status)
* ``crosspost.images_processed_total``    -- counter
* ``crosspost.images_failed_total``       -- counter
* ``crosspost.image_duration_ms``         -- timing
* ``crosspost.publish_duration_ms``       -- timing
* ``crosspost.cycle_duration_ms``         -- timing
* ``crosspost.pending_pages``             -- gauge
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    All methods accept an optional *tags* dict of string keys and values.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...


class NoopMetricsHook:
    """Metrics implementation that silently discards all data points."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass
