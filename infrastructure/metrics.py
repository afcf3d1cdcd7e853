"""Prometheus metrics for the mixing and mastering pipelines.

Exposes pipeline context in metrics so dashboards show how sessions are
being processed, not just how long they take.

Metrics:
    automix_passes_total             Counter by pipeline (mix/master) and status
    automix_pass_latency_seconds     Histogram of pass latency by pipeline
    automix_skipped_tracks_total     Tracks excluded from a mix pass, by reason
    automix_adjustments_total        Adjustments emitted, by pipeline and parameter

All metrics live on a private CollectorRegistry so importing this module
never touches the process-global default registry.

Usage::

    from infrastructure.metrics import LatencyTimer, record_pass

    with LatencyTimer() as t:
        result = await mixer.mix(tracks)
    record_pass(pipeline="mix", status="success", latency_seconds=t.elapsed)
"""

from __future__ import annotations

import logging
import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

_REGISTRY = CollectorRegistry()

passes_total = Counter(
    "automix_passes_total",
    "Completed mix/master passes by pipeline and status",
    ["pipeline", "status"],
    registry=_REGISTRY,
)

pass_latency_seconds = Histogram(
    "automix_pass_latency_seconds",
    "Wall-clock duration of one mix/master pass in seconds",
    ["pipeline"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=_REGISTRY,
)

skipped_tracks_total = Counter(
    "automix_skipped_tracks_total",
    "Tracks excluded from a mix pass",
    ["reason"],
    registry=_REGISTRY,
)

adjustments_total = Counter(
    "automix_adjustments_total",
    "Adjustments emitted, by pipeline and parameter",
    ["pipeline", "parameter"],
    registry=_REGISTRY,
)

logger.info("Prometheus metrics registry initialized")


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_pass(
    *,
    pipeline: str,
    status: str,
    latency_seconds: float,
) -> None:
    """Record a finished pass.

    Args:
        pipeline: "mix" or "master".
        status: One of "success", "failed", "cancelled".
        latency_seconds: Wall-clock time of the pass in seconds.
    """
    passes_total.labels(pipeline=pipeline, status=status).inc()
    pass_latency_seconds.labels(pipeline=pipeline).observe(latency_seconds)


def record_skipped_track(reason: str) -> None:
    """Increment the skipped-track counter.

    Args:
        reason: "strip_failed", "missing_buffer", "fetch_failed" or
            "analysis_failed".
    """
    skipped_tracks_total.labels(reason=reason).inc()


def record_adjustment(pipeline: str, parameter: str) -> None:
    adjustments_total.labels(pipeline=pipeline, parameter=parameter).inc()


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(_REGISTRY), CONTENT_TYPE_LATEST


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            result = await chain.master(buffer)
        record_pass(pipeline="master", status="success", latency_seconds=t.elapsed)
    """

    def __init__(self) -> None:
        """Initialize timer."""
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        """Start timing."""
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        """Stop timing and record elapsed."""
        self.elapsed = time.perf_counter() - self._start
