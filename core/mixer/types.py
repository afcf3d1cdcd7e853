"""
core/mixer/types.py — Frozen data types for the automatic mixer.

Design:
    - InstrumentClass is a closed str Enum; values double as YAML keys.
    - InstrumentProfile holds one row of the per-class rule tables
      (gain target, EQ curve, compression preset, reverb send) loaded
      from instrument_profiles/instruments.yaml.
    - MixAdjustment / MixResult are the audit trail returned to callers.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from core.effects import CompressorSettings, EqBand, ReverbSettings

# ---------------------------------------------------------------------------
# InstrumentClass enum
# ---------------------------------------------------------------------------


class InstrumentClass(str, Enum):
    """Instrument family inferred from a track's dominant frequency."""

    kick = "kick"
    snare = "snare"
    bass = "bass"
    hihat = "hihat"
    vocal = "vocal"
    guitar = "guitar"
    synth = "synth"
    cymbal = "cymbal"
    other = "other"


# ---------------------------------------------------------------------------
# Rule table rows
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompressionRule:
    """Compression preset plus the label and rationale it is reported with."""

    settings: CompressorSettings
    reason: str


@dataclass(frozen=True)
class ReverbRule:
    """Reverb send plus the label and rationale it is reported with."""

    settings: ReverbSettings
    label: str
    reason: str


@dataclass(frozen=True)
class InstrumentProfile:
    """All mixing rules for one InstrumentClass.

    Invariants:
        -70.0 < target_lufs <= 0.0
        eq_bands have distinct indices
    """

    instrument: InstrumentClass

    target_lufs: float
    """Gain-stage loudness target in LUFS."""

    eq_bands: tuple[EqBand, ...]
    eq_label: str
    """Short value reported in the EQ adjustment, e.g. 'kick-optimized'."""

    eq_reason: str

    centered: bool
    """Pinned to pan 0 in the panning stage."""

    compression: CompressionRule | None
    """Class-specific compression, or None when only the generic rule applies."""

    reverb: ReverbRule


@dataclass(frozen=True)
class RuleTables:
    """Every per-class profile plus the class-independent compression rule."""

    profiles: Mapping[InstrumentClass, InstrumentProfile]
    """Read-only mapping with one entry per InstrumentClass."""

    generic_compression: CompressionRule
    """Applied to any track whose dynamic range exceeds generic_min_dynamic_range_db."""

    generic_min_dynamic_range_db: float

    def profile(self, instrument: InstrumentClass) -> InstrumentProfile:
        return self.profiles[instrument]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MixAdjustment:
    """One parameter change made by a mixing stage."""

    track_id: str
    """Track the change applies to, or 'master' for the master bus."""

    parameter: str
    """'gain', 'eq', 'compression', 'pan', 'reverb' or 'loudness'."""

    value: Any
    """dB for gain/loudness, pan position for pan, label string otherwise."""

    reason: str

    def as_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict for JSON output."""
        return {
            "track_id": self.track_id,
            "parameter": self.parameter,
            "value": self.value,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class MixResult:
    """Outcome of one mix pass.

    ``success`` is False only when the pass could not run at all.
    Skipped tracks and recommendations do not affect it.
    """

    success: bool
    adjustments: tuple[MixAdjustment, ...]
    recommendations: tuple[str, ...]
    classifications: dict[str, InstrumentClass] = field(default_factory=dict)
    skipped_tracks: tuple[str, ...] = ()
    skip_reasons: dict[str, str] = field(default_factory=dict)
    """track_id → 'strip_failed', 'missing_buffer', 'fetch_failed' or 'analysis_failed'."""

    def adjustments_for(self, track_id: str) -> tuple[MixAdjustment, ...]:
        """Return the adjustments of one track, in stage order."""
        return tuple(a for a in self.adjustments if a.track_id == track_id)

    def as_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict for JSON output."""
        return {
            "success": self.success,
            "adjustments": [a.as_dict() for a in self.adjustments],
            "recommendations": list(self.recommendations),
            "classifications": {k: v.value for k, v in self.classifications.items()},
            "skipped_tracks": list(self.skipped_tracks),
            "skip_reasons": dict(self.skip_reasons),
        }
