"""
core/analyzer/spectral.py — Byte-normalized spectrum snapshots.

Two pieces:
    SpectralSource     — protocol for anything that can hand out one
                         0–255 magnitude reading per FFT bin.
    SpectralAnalyser   — reusable FFT handle over an AudioBuffer that
                         satisfies SpectralSource.

frequency_snapshot() turns one reading into a FrequencySnapshot
(dominant frequency, spectral peaks, average level).

Design:
    - The analyser walks the bound buffer in non-overlapping fft_size
      frames (mono mixdown, Blackman window, |X| / fft_size), smooths
      magnitudes across frames with an exponential average, converts to dB
      and maps [min_decibels, max_decibels] linearly onto 0–255.
    - Binding a buffer with connect() resets the smoothing state, so the same
      buffer always yields the same reading.
    - Silence maps to all-zero bins and a dominant frequency of 0 Hz.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import numpy as np
from scipy import signal as scipy_signal

from core.analyzer.types import AudioBuffer, FrequencySnapshot
from core.config import DEFAULT_ANALYZER_CONFIG, VALID_FFT_SIZES, AnalyzerConfig

logger = logging.getLogger(__name__)

_EPS = 1e-10

PEAK_MAGNITUDE_THRESHOLD = 200
"""Bins must be strictly above this byte value to count as a peak."""

PEAK_MIN_DISTANCE = 10
"""Minimum spacing in bins between two reported peaks."""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class SpectralSource(Protocol):
    """Read-only source of byte-normalized frequency data."""

    @property
    def fft_size(self) -> int: ...

    @property
    def frequency_bin_count(self) -> int: ...

    @property
    def smoothing_time_constant(self) -> float: ...

    @property
    def sample_rate(self) -> int: ...

    def get_byte_frequency_data(self) -> np.ndarray:
        """Return one reading: uint8 array of length frequency_bin_count."""
        ...


# ---------------------------------------------------------------------------
# SpectralAnalyser
# ---------------------------------------------------------------------------


class SpectralAnalyser:
    """FFT handle over an in-memory buffer.

    Args:
        config: Analyzer settings (fft_size, smoothing, dB range).

    Example:
        >>> analyser = SpectralAnalyser()
        >>> analyser.connect(buffer)
        >>> snapshot = frequency_snapshot(analyser)
    """

    def __init__(self, config: AnalyzerConfig = DEFAULT_ANALYZER_CONFIG) -> None:
        self._config = config
        self._fft_size = config.fft_size
        self._smoothing = config.smoothing_time_constant
        self._buffer: AudioBuffer | None = None
        self._window = scipy_signal.get_window("blackman", self._fft_size)

    # -- SpectralSource -----------------------------------------------------

    @property
    def fft_size(self) -> int:
        return self._fft_size

    @fft_size.setter
    def fft_size(self, value: int) -> None:
        if value not in VALID_FFT_SIZES:
            raise ValueError(f"fft_size must be a power of two in [32, 32768], got {value}")
        self._fft_size = value
        self._window = scipy_signal.get_window("blackman", value)

    @property
    def frequency_bin_count(self) -> int:
        return self._fft_size // 2

    @property
    def smoothing_time_constant(self) -> float:
        return self._smoothing

    @smoothing_time_constant.setter
    def smoothing_time_constant(self, value: float) -> None:
        if not 0.0 <= value < 1.0:
            raise ValueError(f"smoothing_time_constant must be in [0, 1), got {value}")
        self._smoothing = value

    @property
    def sample_rate(self) -> int:
        if self._buffer is None:
            raise RuntimeError("SpectralAnalyser has no buffer connected")
        return self._buffer.sample_rate

    def connect(self, buffer: AudioBuffer) -> None:
        """Bind a buffer as the analysed signal."""
        self._buffer = buffer

    def disconnect(self) -> None:
        self._buffer = None

    def get_float_frequency_data(self) -> np.ndarray:
        """Smoothed magnitude spectrum in dB (length frequency_bin_count).

        Silent bins come back as ``-inf``.

        Raises:
            RuntimeError: If no buffer is connected.
        """
        if self._buffer is None:
            raise RuntimeError("SpectralAnalyser has no buffer connected")

        mono = self._buffer.to_mono()
        n = self._fft_size
        n_bins = self.frequency_bin_count

        if len(mono) < n:
            mono = np.pad(mono, (0, n - len(mono)))
        n_frames = len(mono) // n

        smoothed = np.zeros(n_bins)
        tau = self._smoothing
        for frame_index in range(n_frames):
            frame = mono[frame_index * n : (frame_index + 1) * n] * self._window
            magnitude = np.abs(np.fft.rfft(frame))[:n_bins] / n
            smoothed = tau * smoothed + (1.0 - tau) * magnitude

        with np.errstate(divide="ignore"):
            return 20.0 * np.log10(np.where(smoothed > _EPS, smoothed, 0.0))

    def get_byte_frequency_data(self) -> np.ndarray:
        """Smoothed spectrum mapped onto 0–255 over [min_decibels, max_decibels]."""
        db = self.get_float_frequency_data()
        lo = self._config.min_decibels
        hi = self._config.max_decibels
        scaled = (db - lo) / (hi - lo) * 255.0
        scaled = np.where(np.isfinite(scaled), scaled, 0.0)
        return np.clip(np.floor(scaled), 0, 255).astype(np.uint8)

    def destroy(self) -> None:
        self._buffer = None


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


def frequency_snapshot(source: SpectralSource) -> FrequencySnapshot:
    """Read one snapshot from a spectral source.

    Args:
        source: Any SpectralSource (usually a connected SpectralAnalyser).

    Returns:
        FrequencySnapshot with bins, peaks above 200/255 spaced at least
        10 bins apart, mean level and dominant frequency
        (``argmax(bins) · nyquist / N``).
    """
    bins = np.asarray(source.get_byte_frequency_data(), dtype=np.int64)
    n_bins = source.frequency_bin_count
    if bins.size == 0 or n_bins == 0:
        return FrequencySnapshot(bins=(), peaks=(), average_level=0.0, dominant_frequency=0.0)

    nyquist = source.sample_rate / 2.0
    if bins.max() == 0:
        dominant = 0.0
    else:
        dominant = float(np.argmax(bins)) * nyquist / n_bins

    candidates, _ = scipy_signal.find_peaks(bins, distance=PEAK_MIN_DISTANCE)
    peaks = tuple(int(i) for i in candidates if bins[i] > PEAK_MAGNITUDE_THRESHOLD)

    logger.debug("Spectral snapshot: dominant=%.1f Hz, %d peaks", dominant, len(peaks))
    return FrequencySnapshot(
        bins=tuple(int(b) for b in bins),
        peaks=peaks,
        average_level=float(np.mean(bins)),
        dominant_frequency=dominant,
    )
