"""
core/mastering/types.py — Frozen data types for the automatic mastering chain.

Design:
    - MasteringAnalysis is the input snapshot every stage decides from.
    - MasteringPresets holds the threshold tables loaded from
      presets/mastering.yaml (platform targets, tonal moves, multiband
      presets, limiter settings).
    - MasteringAdjustment / MasteringMetrics / MasteringResult are the report
      returned to callers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from core.effects import CompressorSettings, EqBand

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MasteringStage(str, Enum):
    """Stage that produced a mastering adjustment."""

    eq = "eq"
    multiband = "multiband"
    stereo = "stereo"
    loudness = "loudness"
    limiting = "limiting"


class Platform(str, Enum):
    """Delivery platform with a loudness target."""

    spotify = "spotify"
    apple = "apple"
    youtube = "youtube"
    soundcloud = "soundcloud"
    custom = "custom"


# ---------------------------------------------------------------------------
# Analysis snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MasteringAnalysis:
    """Measurements of the mix entering the chain.

    Invariants:
        lufs is finite (−70.0 floor)
        stereo_width == 0.0 and stereo_balance == 0.0 when not is_stereo
        band_levels_db has one entry per multiband band
    """

    lufs: float
    peak: float
    rms: float
    dynamic_range: float
    crest_factor: float
    stereo_width: float
    stereo_balance: float
    has_clipping: bool
    clipping_percentage: float
    is_stereo: bool
    band_levels_db: tuple[float, ...] = ()
    """RMS level per crossover band in dBFS, low to high."""


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlatformTarget:
    """Loudness target of one delivery platform."""

    platform: Platform
    target_lufs: float | None
    """None for 'custom': the caller supplies the value."""

    label: str


@dataclass(frozen=True)
class TonalMove:
    """A group of EQ bands applied together and reported as one adjustment."""

    bands: tuple[EqBand, ...]
    description: str
    value: str


@dataclass(frozen=True)
class MasteringPresets:
    """Every threshold table of the mastering chain."""

    platforms: Mapping[Platform, PlatformTarget]

    quiet_threshold_lufs: float
    """Input quieter than this gets the brightness move."""

    brightness: TonalMove

    dense_threshold_db: float
    """Dynamic range strictly below this gets the presence move."""

    presence: TonalMove
    smile: TonalMove

    control_threshold_db: float
    """Dynamic range strictly above this selects per-band control."""

    control_bands: tuple[CompressorSettings, ...]
    glue_threshold: float
    glue_ratio: float
    band_defaults: CompressorSettings

    limiter: CompressorSettings
    """Settings issued by the limiting stage (threshold = ceiling)."""

    limiter_defaults: CompressorSettings
    """Settings the limiter is constructed with and reset to."""


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MasteringAdjustment:
    """One change made by a mastering stage."""

    stage: MasteringStage
    description: str
    value: str

    def as_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict for JSON output."""
        return {"stage": self.stage.value, "description": self.description, "value": self.value}


@dataclass(frozen=True)
class MasteringMetrics:
    """Loudness, dynamics and width before/after the chain.

    ``output_lufs``, ``dynamic_range`` and ``true_peak`` are estimates
    derived from the issued settings, not a measurement of rendered audio.
    """

    input_lufs: float
    output_lufs: float
    dynamic_range: float
    true_peak: float
    """dBFS."""

    stereo_width: float

    def as_dict(self) -> dict[str, float]:
        """Serialise to a plain dict for JSON output."""
        return {
            "input_lufs": round(self.input_lufs, 2),
            "output_lufs": round(self.output_lufs, 2),
            "dynamic_range": round(self.dynamic_range, 2),
            "true_peak": round(self.true_peak, 2),
            "stereo_width": round(self.stereo_width, 3),
        }


@dataclass(frozen=True)
class MasteringResult:
    """Outcome of one mastering pass."""

    success: bool
    adjustments: tuple[MasteringAdjustment, ...]
    metrics: MasteringMetrics
    recommendations: tuple[str, ...]
    analysis: MasteringAnalysis | None = None

    def adjustments_for(self, stage: MasteringStage) -> tuple[MasteringAdjustment, ...]:
        return tuple(a for a in self.adjustments if a.stage == stage)

    def as_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict for JSON output."""
        return {
            "success": self.success,
            "adjustments": [a.as_dict() for a in self.adjustments],
            "metrics": self.metrics.as_dict(),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class MasteringSettings:
    """Current state of the chain as reported by get_settings()."""

    target_lufs: float
    eq_enabled: bool
    multiband_enabled: bool
    stereo_enabled: bool
    limiter_enabled: bool
    makeup_gain_db: float
    band_settings: tuple[CompressorSettings, ...] = field(default_factory=tuple)
    stereo_width: float = 1.0
    bass_mono_hz: float = 100.0
