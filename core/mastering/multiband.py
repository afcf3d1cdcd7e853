"""
core/mastering/multiband.py — 4-band compressor and Linkwitz-Riley crossover.

Bands (default crossovers 200 / 800 / 4000 Hz):

    0  low        < 200 Hz
    1  low_mid    200–800 Hz
    2  high_mid   800–4000 Hz
    3  high       > 4000 Hz

MultibandCompressor owns one external compressor handle per band and keeps
the last settings issued to each, so bypass can be undone without losing
them. split_bands() is the matching pure DSP split used for analysis.

Design:
    - Crossovers are 4th-order Linkwitz-Riley: two cascaded 2nd-order
      Butterworth sections per low-pass/high-pass, as SOS.
    - The split is a tree: band k is high-passed at every crossover below it
      and low-passed at the crossover above it.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence

import numpy as np
from scipy import signal as scipy_signal

from core.analyzer.types import AudioBuffer
from core.effects import CompressorSettings, Effect, EffectsFactory

logger = logging.getLogger(__name__)

_EPS = 1e-10

BAND_NAMES: tuple[str, ...] = ("low", "low_mid", "high_mid", "high")
DEFAULT_CROSSOVERS_HZ: tuple[float, float, float] = (200.0, 800.0, 4000.0)

DEFAULT_BAND_SETTINGS = CompressorSettings(
    threshold=-24.0, ratio=2.0, attack=0.003, release=0.1, knee=2.4
)
"""Settings every band is constructed with and reset to."""

_SILENT_BAND_DB = -96.0


# ---------------------------------------------------------------------------
# Crossover DSP
# ---------------------------------------------------------------------------


def linkwitz_riley_sos(frequency: float, sr: int, btype: str) -> np.ndarray:
    """4th-order Linkwitz-Riley low-pass or high-pass as SOS.

    Args:
        frequency: Crossover frequency in Hz (clamped below Nyquist).
        sr:        Sample rate in Hz.
        btype:     'low' or 'high'.

    Returns:
        SOS array of shape (2, 6).
    """
    nyquist = sr / 2.0
    wn = min(frequency, nyquist * 0.99) / nyquist
    butter = scipy_signal.butter(2, wn, btype=btype, output="sos")
    return np.vstack([butter, butter])


def split_bands(
    samples: np.ndarray, sr: int, crossovers: Sequence[float] = DEFAULT_CROSSOVERS_HZ
) -> list[np.ndarray]:
    """Split a 1-D signal into len(crossovers) + 1 bands, low to high.

    Raises:
        ValueError: If crossovers are not strictly ascending and positive.
    """
    if any(f <= 0 for f in crossovers) or list(crossovers) != sorted(set(crossovers)):
        raise ValueError(f"Crossovers must be positive and strictly ascending, got {crossovers}")

    x = np.asarray(samples, dtype=np.float64)
    bands: list[np.ndarray] = []
    remainder = x
    for frequency in crossovers:
        bands.append(scipy_signal.sosfilt(linkwitz_riley_sos(frequency, sr, "low"), remainder))
        remainder = scipy_signal.sosfilt(linkwitz_riley_sos(frequency, sr, "high"), remainder)
    bands.append(remainder)
    return bands


def band_levels_db(
    buffer: AudioBuffer, crossovers: Sequence[float] = DEFAULT_CROSSOVERS_HZ
) -> tuple[float, ...]:
    """RMS level of each crossover band of the mono mixdown, in dBFS."""
    levels = []
    for band in split_bands(buffer.to_mono(), buffer.sample_rate, crossovers):
        rms = float(np.sqrt(np.mean(band**2))) if band.size else 0.0
        levels.append(20.0 * np.log10(rms) if rms > _EPS else _SILENT_BAND_DB)
    return tuple(float(level) for level in levels)


# ---------------------------------------------------------------------------
# MultibandCompressor
# ---------------------------------------------------------------------------


class MultibandCompressor:
    """Four external compressor handles addressed by band index."""

    def __init__(
        self,
        factory: EffectsFactory,
        crossovers: Sequence[float] = DEFAULT_CROSSOVERS_HZ,
        defaults: CompressorSettings = DEFAULT_BAND_SETTINGS,
    ) -> None:
        if len(crossovers) != len(BAND_NAMES) - 1:
            raise ValueError(f"Expected {len(BAND_NAMES) - 1} crossovers, got {len(crossovers)}")
        self.crossovers = tuple(float(f) for f in crossovers)
        self._defaults = defaults
        self._handles: list[Effect] = [
            factory.create("compressor", f"multiband:{name}") for name in BAND_NAMES
        ]
        self._settings: list[CompressorSettings] = [defaults] * len(BAND_NAMES)
        self.bypassed = False
        for index in range(len(BAND_NAMES)):
            self._push(index)

    @property
    def band_count(self) -> int:
        return len(self._handles)

    def get_band(self, index: int) -> CompressorSettings:
        self._check_index(index)
        return self._settings[index]

    def band_settings(self) -> tuple[CompressorSettings, ...]:
        return tuple(self._settings)

    def set_band(self, index: int, settings: CompressorSettings) -> None:
        """Replace a band's settings. A None knee keeps the current knee.

        Raises:
            IndexError: If index is not 0–3.
        """
        self._check_index(index)
        if settings.knee is None:
            settings = dataclasses.replace(settings, knee=self._settings[index].knee)
        self._settings[index] = settings
        self._push(index)

    def update_band(self, index: int, **changes: float) -> None:
        """Change only some fields of a band, e.g. ``update_band(0, ratio=1.1)``."""
        self._check_index(index)
        self.set_band(index, dataclasses.replace(self._settings[index], **changes))

    def set_bypass(self, bypass: bool) -> None:
        """Bypassed bands run at 1:1; their stored settings are kept."""
        self.bypassed = bypass
        for index in range(self.band_count):
            self._push(index)

    def reset(self) -> None:
        self._settings = [self._defaults] * self.band_count
        for index in range(self.band_count):
            self._push(index)

    def split(self, samples: np.ndarray, sr: int) -> list[np.ndarray]:
        """Split a signal at this compressor's crossovers."""
        return split_bands(samples, sr, self.crossovers)

    def destroy(self) -> None:
        for handle in self._handles:
            handle.destroy()

    def _push(self, index: int) -> None:
        handle = self._handles[index]
        settings = self._settings[index]
        if self.bypassed:
            settings = dataclasses.replace(settings, ratio=1.0)
        handle.set_compressor(settings)
        handle.set_bypass(self.bypassed)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < self.band_count:
            raise IndexError(f"Band index must be in [0, {self.band_count - 1}], got {index}")
