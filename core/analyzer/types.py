"""
core/analyzer/types.py — Frozen data types for audio measurement results.

All types are frozen dataclasses — immutable value objects that are safe
to pass between the analyzer, the mixer and the mastering chain.

Design:
    - No I/O, no side effects.
    - AudioBuffer wraps a (C, N) float64 array. It is frozen but holds an
      ndarray, so it compares by identity (eq=False) instead of by value.
    - Measurement degeneracy (silence, zero energy) is resolved by the
      producing functions to documented floors; these types never carry
      NaN or infinity.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

# ---------------------------------------------------------------------------
# AudioBuffer
# ---------------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """Fixed-length, multi-channel block of float samples.

    Invariants:
        channels.ndim == 2, shape (number_of_channels, length)
        sample_rate > 0
    """

    channels: np.ndarray
    """Sample data, shape (C, N), float64, nominal range [-1, 1]."""

    sample_rate: int
    """Sample rate in Hz."""

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")
        if self.channels.ndim != 2:
            raise ValueError(
                f"AudioBuffer expects a (channels, samples) array, got shape {self.channels.shape}"
            )
        if self.channels.shape[0] == 0:
            raise ValueError("AudioBuffer needs at least one channel")

    @classmethod
    def from_array(cls, y: np.ndarray, sr: int) -> AudioBuffer:
        """Build a buffer from a mono (N,) or multi-channel (C, N) array.

        Raises:
            ValueError: If y has more than 2 dimensions or sr <= 0.
        """
        arr = np.asarray(y, dtype=np.float64)
        if arr.ndim == 1:
            arr = arr[np.newaxis, :]
        elif arr.ndim != 2:
            raise ValueError(f"Expected a 1-D or 2-D array, got {arr.ndim} dimensions")
        return cls(channels=arr, sample_rate=int(sr))

    @property
    def number_of_channels(self) -> int:
        return int(self.channels.shape[0])

    @property
    def length(self) -> int:
        """Number of sample frames per channel."""
        return int(self.channels.shape[1])

    @property
    def duration_sec(self) -> float:
        return self.length / self.sample_rate

    def get_channel_data(self, index: int) -> np.ndarray:
        """Return the samples of one channel.

        Raises:
            IndexError: If index is out of range.
        """
        if not 0 <= index < self.number_of_channels:
            raise IndexError(
                f"Channel {index} out of range for a {self.number_of_channels}-channel buffer"
            )
        return self.channels[index]

    def to_mono(self) -> np.ndarray:
        """Average all channels into a single 1-D array."""
        return np.mean(self.channels, axis=0)


# ---------------------------------------------------------------------------
# Measurement results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FrequencySnapshot:
    """One byte-normalized frequency-domain reading.

    Invariants:
        0 <= bins[i] <= 255
        0 <= average_level <= 255
        peaks are ascending bin indices, at least 10 bins apart
    """

    bins: tuple[int, ...]
    """Magnitude per FFT bin, 0–255."""

    peaks: tuple[int, ...]
    """Bin indices of local maxima above 200/255."""

    average_level: float
    """Mean of all bins, 0–255."""

    dominant_frequency: float
    """Frequency of the loudest bin in Hz: argmax(bins) · nyquist / N."""


@dataclass(frozen=True)
class DynamicsProfile:
    """Peak / RMS relationship of a buffer.

    Invariants:
        0 <= rms <= peak
        dynamic_range >= 0, finite (0.0 for silence)
        crest_factor >= 0, finite (0.0 for silence)
    """

    peak: float
    """Maximum absolute sample value across all channels (linear)."""

    rms: float
    """Root mean square across all samples of all channels (linear)."""

    dynamic_range: float
    """20·log10(peak / rms) in dB."""

    crest_factor: float
    """peak / rms (linear ratio)."""


@dataclass(frozen=True)
class ClippingReport:
    """Count of samples at or above the clipping threshold."""

    has_clipping: bool
    clipped_samples: int
    clipping_percentage: float
    """Clipped samples as a percentage of all sample-channels (0–100)."""


@dataclass(frozen=True)
class StereoImage:
    """Correlation, balance and width of a stereo pair.

    Invariants:
        -1.0 <= correlation <= 1.0
        -1.0 <= balance <= 1.0   (positive = right-heavy)
        0.0 <= width <= 1.0      width == 1 - |correlation|
    """

    correlation: float
    balance: float
    width: float


# ---------------------------------------------------------------------------
# TrackFeatures — per-track snapshot used by the mixer
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TrackFeatures:
    """Analysis snapshot of one track for a single mix pass.

    Invariants:
        lufs is finite (−70.0 floor for silence)
        dynamic_range is finite (0.0 for silence)
    """

    track_id: str
    peak: float
    rms: float
    lufs: float
    dynamic_range: float
    has_clipping: bool
    clipped_sample_count: int
    dominant_frequency: float
    frequency_peaks: tuple[int, ...]
    average_level: float
