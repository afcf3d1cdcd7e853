"""
core/mixer/classifier.py — Instrument classification from track features.

Heuristic, single-feature classifier: the dominant spectral frequency picks
the family, and dynamic range splits the mid band into vocal vs synth.

    dominant < 150 Hz              bass
    dominant < 250 Hz              kick
    dominant > 8000 Hz             hihat
    2000 < dominant < 8000 Hz      cymbal
    500 < dominant < 2000 Hz       vocal if dynamic range > 15 dB, else synth
    anything else                  guitar

The comparisons are strict, so exactly 500, 2000 and 8000 Hz land on guitar.
"""

from __future__ import annotations

from collections.abc import Iterable

from core.analyzer.types import TrackFeatures
from core.mixer.types import InstrumentClass

BASS_CEILING_HZ = 150.0
KICK_CEILING_HZ = 250.0
HIHAT_FLOOR_HZ = 8000.0
CYMBAL_FLOOR_HZ = 2000.0
MID_FLOOR_HZ = 500.0
VOCAL_MIN_DYNAMIC_RANGE_DB = 15.0


def classify_instrument(dominant_frequency: float, dynamic_range: float) -> InstrumentClass:
    """Classify one track.

    Args:
        dominant_frequency: Loudest spectral bin in Hz.
        dynamic_range:      Peak-to-RMS ratio in dB.

    Returns:
        The InstrumentClass for the track. Never returns snare or other;
        those classes are only reachable through explicit assignment.
    """
    freq = dominant_frequency
    if freq < BASS_CEILING_HZ:
        return InstrumentClass.bass
    if freq < KICK_CEILING_HZ:
        return InstrumentClass.kick
    if freq > HIHAT_FLOOR_HZ:
        return InstrumentClass.hihat
    if CYMBAL_FLOOR_HZ < freq < HIHAT_FLOOR_HZ:
        return InstrumentClass.cymbal
    if MID_FLOOR_HZ < freq < CYMBAL_FLOOR_HZ:
        if dynamic_range > VOCAL_MIN_DYNAMIC_RANGE_DB:
            return InstrumentClass.vocal
        return InstrumentClass.synth
    return InstrumentClass.guitar


def classify_tracks(features: Iterable[TrackFeatures]) -> dict[str, InstrumentClass]:
    """Classify every analysed track, preserving iteration order."""
    return {
        f.track_id: classify_instrument(f.dominant_frequency, f.dynamic_range) for f in features
    }
