"""
core/analyzer/stereo.py — Stereo image measurement.

Measures L-R correlation, energy balance and width of a stereo pair.

Design:
    - Pure: two 1-D arrays in → StereoImage.
    - Correlation is the zero-lag normalized cross-correlation
      Σ(l·r) / sqrt(Σl²·Σr²) (not mean-removed Pearson), so a DC offset
      shared by both channels still reads as correlated.
    - Silence yields the mono sentinel (correlation 1.0, width 0.0). A pair
      with one silent side reads as uncorrelated (correlation 0.0).
"""

from __future__ import annotations

import numpy as np

from core.analyzer.types import StereoImage

_EPS = 1e-12


def analyze_stereo_image(left: np.ndarray, right: np.ndarray) -> StereoImage:
    """Compute correlation, balance and width of a stereo pair.

    Args:
        left:  Left channel samples.
        right: Right channel samples. If lengths differ, both channels are
               truncated to the shorter one.

    Returns:
        StereoImage with correlation ∈ [−1, 1], balance ∈ [−1, 1]
        (positive = right louder) and width = 1 − |correlation| ∈ [0, 1].
    """
    n = min(len(left), len(right))
    l_ch = np.asarray(left[:n], dtype=np.float64)
    r_ch = np.asarray(right[:n], dtype=np.float64)

    left_power = float(np.sum(l_ch**2))
    right_power = float(np.sum(r_ch**2))
    total_power = left_power + right_power

    if total_power < _EPS:
        return StereoImage(correlation=1.0, balance=0.0, width=0.0)

    balance = float(np.clip((right_power - left_power) / total_power, -1.0, 1.0))

    denom = np.sqrt(left_power * right_power)
    if denom < _EPS:
        # One side silent: fully one-sided signal, no shared content to correlate
        correlation = 0.0
    else:
        correlation = float(np.clip(np.sum(l_ch * r_ch) / denom, -1.0, 1.0))

    width = float(np.clip(1.0 - abs(correlation), 0.0, 1.0))
    return StereoImage(correlation=correlation, balance=balance, width=width)
