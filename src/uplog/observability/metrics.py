"""Metrics hook protocol and no-op default implementation.

uplog emits counters, timings and gauges at the end of each pipeline
stage.  By default a :class:`NoopMetricsHook` is used so there is zero
overhead.  Callers can pass any object satisfying :class:`MetricsHook` to
route metrics to StatsD, Prometheus, or another backend.

Emitted metric names:

* ``uplog.pipeline_runs_total``     -- counter (tag ``status``)
* ``uplog.pipeline_duration_ms``    -- timing
* ``uplog.transcode_total``         -- counter (tags ``transcoded``, ``mime``)
* ``uplog.upload_success_total``    -- counter
* ``uplog.upload_failure_total``    -- counter (tag ``error``)
* ``uplog.upload_bytes``            -- gauge
* ``uplog.upload_duration_ms``      -- timing
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
        """Increment a counter metric by *value*."""
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
    """Default metrics implementation that discards all data points."""

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
