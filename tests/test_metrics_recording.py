"""Tests for infrastructure/metrics.py — Prometheus counter recording.

Verifies that:
- record_pass() increments the pass counter and the latency histogram
- record_skipped_track() / record_adjustment() use the right labels
- LatencyTimer measures elapsed time correctly
- get_metrics_response() exposes the private registry only

Counters are cumulative within a registry, so every assertion compares a
before/after delta instead of an absolute value.
"""

from __future__ import annotations

import time

from infrastructure import metrics as metrics_module

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _sample(name: str, **labels: str) -> float:
    """Read a sample from the private registry (0.0 when never observed)."""
    value = metrics_module._REGISTRY.get_sample_value(name, labels)
    return value or 0.0


# ---------------------------------------------------------------------------
# record_pass
# ---------------------------------------------------------------------------


class TestRecordPass:
    def test_increments_counter_and_histogram(self) -> None:
        before_total = _sample("automix_passes_total", pipeline="mix", status="success")
        before_count = _sample("automix_pass_latency_seconds_count", pipeline="mix")

        metrics_module.record_pass(pipeline="mix", status="success", latency_seconds=0.2)

        assert _sample("automix_passes_total", pipeline="mix", status="success") == before_total + 1
        assert _sample("automix_pass_latency_seconds_count", pipeline="mix") == before_count + 1

    def test_status_labels_are_separate(self) -> None:
        before_failed = _sample("automix_passes_total", pipeline="master", status="failed")
        before_cancelled = _sample("automix_passes_total", pipeline="master", status="cancelled")

        metrics_module.record_pass(pipeline="master", status="cancelled", latency_seconds=0.01)

        assert _sample("automix_passes_total", pipeline="master", status="failed") == before_failed
        assert (
            _sample("automix_passes_total", pipeline="master", status="cancelled")
            == before_cancelled + 1
        )

    def test_latency_lands_in_bucket(self) -> None:
        before = _sample("automix_pass_latency_seconds_bucket", pipeline="master", le="0.5")
        metrics_module.record_pass(pipeline="master", status="success", latency_seconds=0.3)
        after = _sample("automix_pass_latency_seconds_bucket", pipeline="master", le="0.5")
        assert after == before + 1


# ---------------------------------------------------------------------------
# Skipped tracks and adjustments
# ---------------------------------------------------------------------------


class TestSkippedAndAdjustments:
    def test_skipped_track_by_reason(self) -> None:
        before = _sample("automix_skipped_tracks_total", reason="fetch_failed")
        for _ in range(3):
            metrics_module.record_skipped_track("fetch_failed")
        assert _sample("automix_skipped_tracks_total", reason="fetch_failed") == before + 3

    def test_adjustment_labels(self) -> None:
        before = _sample("automix_adjustments_total", pipeline="mix", parameter="gain")
        other = _sample("automix_adjustments_total", pipeline="master", parameter="gain")
        metrics_module.record_adjustment("mix", "gain")
        assert _sample("automix_adjustments_total", pipeline="mix", parameter="gain") == before + 1
        assert _sample("automix_adjustments_total", pipeline="master", parameter="gain") == other


# ---------------------------------------------------------------------------
# LatencyTimer
# ---------------------------------------------------------------------------


class TestLatencyTimer:
    def test_measures_elapsed(self) -> None:
        with metrics_module.LatencyTimer() as timer:
            time.sleep(0.01)
        assert timer.elapsed >= 0.01

    def test_elapsed_set_when_body_raises(self) -> None:
        timer = metrics_module.LatencyTimer()
        try:
            with timer:
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert timer.elapsed > 0.0

    def test_starts_at_zero(self) -> None:
        assert metrics_module.LatencyTimer().elapsed == 0.0


# ---------------------------------------------------------------------------
# Exposition
# ---------------------------------------------------------------------------


class TestMetricsResponse:
    def test_exposes_automix_metrics(self) -> None:
        metrics_module.record_pass(pipeline="mix", status="success", latency_seconds=0.1)
        body, content_type = metrics_module.get_metrics_response()
        text = body.decode("utf-8")
        assert "automix_passes_total" in text
        assert "automix_pass_latency_seconds" in text
        assert content_type.startswith("text/plain")

    def test_default_registry_untouched(self) -> None:
        from prometheus_client import REGISTRY

        assert REGISTRY.get_sample_value("automix_passes_total", {"pipeline": "mix", "status": "success"}) is None
