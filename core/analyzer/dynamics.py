"""
core/analyzer/dynamics.py — Peak, RMS, dynamic range and clipping.

Design:
    - Pure: AudioBuffer in, frozen dataclass out.
    - All statistics pool every channel together (peak across channels,
      RMS over all sample-channels), matching how the mixer reads a track.
    - Near-zero RMS resolves to dynamic_range = crest_factor = 0.0 rather
      than propagating infinity.
"""

from __future__ import annotations

import numpy as np

from core.analyzer.types import AudioBuffer, ClippingReport, DynamicsProfile
from core.config import PEAK_FLOOR_DB

_EPS = 1e-10

DEFAULT_CLIPPING_THRESHOLD = 0.99


def analyze_dynamics(buffer: AudioBuffer) -> DynamicsProfile:
    """Measure peak, RMS, dynamic range and crest factor.

    Args:
        buffer: Audio to measure.

    Returns:
        DynamicsProfile. Silent or empty buffers give all-zero fields.
    """
    samples = buffer.channels
    if samples.size == 0:
        return DynamicsProfile(peak=0.0, rms=0.0, dynamic_range=0.0, crest_factor=0.0)

    peak = float(np.max(np.abs(samples)))
    rms = float(np.sqrt(np.mean(samples**2)))

    if rms < _EPS or peak < _EPS:
        return DynamicsProfile(peak=peak, rms=rms, dynamic_range=0.0, crest_factor=0.0)

    crest = peak / rms
    dynamic_range = 20.0 * np.log10(crest)
    return DynamicsProfile(
        peak=peak,
        rms=rms,
        dynamic_range=float(dynamic_range) if np.isfinite(dynamic_range) else 0.0,
        crest_factor=float(crest) if np.isfinite(crest) else 0.0,
    )


def detect_clipping(
    buffer: AudioBuffer, threshold: float = DEFAULT_CLIPPING_THRESHOLD
) -> ClippingReport:
    """Count samples whose magnitude reaches the clipping threshold.

    Args:
        buffer:    Audio to inspect.
        threshold: Absolute sample value treated as clipped (inclusive).

    Returns:
        ClippingReport with the count and the percentage of all sample-channels.

    Raises:
        ValueError: If threshold is not positive.
    """
    if threshold <= 0.0:
        raise ValueError(f"Clipping threshold must be positive, got {threshold}")

    total = buffer.channels.size
    clipped = int(np.count_nonzero(np.abs(buffer.channels) >= threshold))
    percentage = (clipped / total) * 100.0 if total > 0 else 0.0
    return ClippingReport(
        has_clipping=clipped > 0,
        clipped_samples=clipped,
        clipping_percentage=float(percentage),
    )


def peak_dbfs(peak: float) -> float:
    """Convert a linear peak to dBFS, with PEAK_FLOOR_DB for silence."""
    if peak < _EPS:
        return PEAK_FLOOR_DB
    return float(max(20.0 * np.log10(peak), PEAK_FLOOR_DB))
