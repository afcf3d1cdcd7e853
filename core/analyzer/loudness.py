"""
core/analyzer/loudness.py — Integrated loudness (LUFS) measurement.

Implements a simplified ITU-R BS.1770-style meter:
    - Per channel: 2nd-order Butterworth high-pass (~100 Hz) followed by an
      RBJ high-shelf (+4 dB at ~2 kHz), cascaded as second-order sections.
    - 400 ms blocks with 50% overlap (200 ms hop).
    - Block power = Σ channel_weight · mean square, weights 1.0 for the first
      two channels and 1.41 for surround channels.
    - LUFS = −0.691 + 10·log10(mean block power).

Design:
    - Pure: AudioBuffer in, float out.
    - Ungated by default: the plain block-average meter. ``gated=True``
      adds the BS.1770 absolute (−70 LUFS) and relative (−10 LU) gates
      for standards-style readings.
    - Silence, buffers shorter than one block, and any non-finite result
      collapse to LUFS_FLOOR (−70.0).
"""

from __future__ import annotations

import numpy as np
from scipy import signal as scipy_signal

from core.analyzer.types import AudioBuffer
from core.config import LUFS_FLOOR

_EPS = 1e-12

_HIGHPASS_HZ = 100.0
_SHELF_HZ = 2000.0
_SHELF_GAIN_DB = 4.0

_BLOCK_SEC = 0.400
_OVERLAP = 0.5

# Channel weights: L/R at unity, surround channels at +1.5 dB
_FRONT_WEIGHT = 1.0
_SURROUND_WEIGHT = 1.41

# BS.1770 gates (mean-square linear domain)
_GATE_ABSOLUTE_MS = 10 ** ((-70.0 + 0.691) / 10.0)
_GATE_RELATIVE_OFFSET_DB = -10.0


# ---------------------------------------------------------------------------
# K-weighting filter design
# ---------------------------------------------------------------------------


def _high_shelf_sos(sr: int, f0: float = _SHELF_HZ, gain_db: float = _SHELF_GAIN_DB) -> np.ndarray:
    """Design a high-shelf biquad (RBJ Audio EQ Cookbook) as one SOS row.

    Args:
        sr:      Sample rate in Hz.
        f0:      Shelf midpoint frequency in Hz.
        gain_db: Shelf gain in dB.

    Returns:
        Array of shape (1, 6): [b0, b1, b2, 1, a1, a2].
    """
    A = 10.0 ** (gain_db / 40.0)
    w0 = 2.0 * np.pi * min(f0, sr * 0.49) / sr
    cos_w0 = np.cos(w0)
    sin_w0 = np.sin(w0)
    alpha = sin_w0 / 2.0 * np.sqrt(2.0)  # shelf slope S = 1

    b0 = A * ((A + 1.0) + (A - 1.0) * cos_w0 + 2.0 * np.sqrt(A) * alpha)
    b1 = -2.0 * A * ((A - 1.0) + (A + 1.0) * cos_w0)
    b2 = A * ((A + 1.0) + (A - 1.0) * cos_w0 - 2.0 * np.sqrt(A) * alpha)
    a0 = (A + 1.0) - (A - 1.0) * cos_w0 + 2.0 * np.sqrt(A) * alpha
    a1 = 2.0 * ((A - 1.0) - (A + 1.0) * cos_w0)
    a2 = (A + 1.0) - (A - 1.0) * cos_w0 - 2.0 * np.sqrt(A) * alpha

    return np.array([[b0 / a0, b1 / a0, b2 / a0, 1.0, a1 / a0, a2 / a0]])


def k_weighting_sos(sr: int) -> np.ndarray:
    """Return the cascaded K-weighting filter (high-pass, then high-shelf).

    Args:
        sr: Sample rate in Hz.

    Returns:
        SOS array of shape (2, 6) for scipy.signal.sosfilt.
    """
    hp = scipy_signal.butter(2, _HIGHPASS_HZ / (sr / 2.0), btype="high", output="sos")
    return np.vstack([hp, _high_shelf_sos(sr)])


def _channel_weight(index: int) -> float:
    return _FRONT_WEIGHT if index < 2 else _SURROUND_WEIGHT


# ---------------------------------------------------------------------------
# Block power
# ---------------------------------------------------------------------------


def block_powers(buffer: AudioBuffer) -> np.ndarray:
    """Weighted mean-square power of each 400 ms block (50% overlap).

    Returns:
        1-D array of block powers. Empty if the buffer is shorter than a block.
    """
    sr = buffer.sample_rate
    block = int(_BLOCK_SEC * sr)
    hop = int(block * (1.0 - _OVERLAP))
    if block == 0 or hop == 0 or buffer.length < block:
        return np.zeros(0)

    sos = k_weighting_sos(sr)
    n_blocks = 1 + (buffer.length - block) // hop
    powers = np.zeros(n_blocks)

    for index in range(buffer.number_of_channels):
        weighted = scipy_signal.sosfilt(sos, buffer.get_channel_data(index))
        squared = weighted**2
        # cumulative sum gives every block mean in O(N)
        csum = np.concatenate(([0.0], np.cumsum(squared)))
        starts = np.arange(n_blocks) * hop
        means = (csum[starts + block] - csum[starts]) / block
        powers += _channel_weight(index) * means

    return powers


def _to_lufs(mean_power: float) -> float:
    if mean_power <= _EPS:
        return LUFS_FLOOR
    lufs = -0.691 + 10.0 * np.log10(mean_power)
    if not np.isfinite(lufs):
        return LUFS_FLOOR
    return float(max(lufs, LUFS_FLOOR))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def measure_loudness(buffer: AudioBuffer, *, gated: bool = False) -> float:
    """Compute integrated loudness in LUFS.

    Args:
        buffer: Audio to measure (any channel count).
        gated:  Apply BS.1770 absolute and relative gating. Off by default:
                the ungated value is what the mixer and mastering rules
                were tuned against.

    Returns:
        Loudness in LUFS, never below −70.0 and always finite.
    """
    powers = block_powers(buffer)
    if powers.size == 0:
        return LUFS_FLOOR

    if not gated:
        return _to_lufs(float(np.mean(powers)))

    above_abs = powers[powers >= _GATE_ABSOLUTE_MS]
    if above_abs.size == 0:
        return LUFS_FLOOR

    relative_threshold = float(np.mean(above_abs)) * 10 ** (_GATE_RELATIVE_OFFSET_DB / 10.0)
    gated_blocks = above_abs[above_abs >= relative_threshold]
    if gated_blocks.size == 0:
        return LUFS_FLOOR

    return _to_lufs(float(np.mean(gated_blocks)))
