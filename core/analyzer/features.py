"""
core/analyzer/features.py — Per-track feature extraction for the mixer.

Bundles the measurement primitives into one TrackFeatures snapshot.
"""

from __future__ import annotations

from core.analyzer.dynamics import analyze_dynamics, detect_clipping
from core.analyzer.loudness import measure_loudness
from core.analyzer.spectral import SpectralAnalyser, frequency_snapshot
from core.analyzer.types import AudioBuffer, TrackFeatures
from core.config import DEFAULT_ANALYZER_CONFIG, AnalyzerConfig


def extract_track_features(
    track_id: str,
    buffer: AudioBuffer,
    analyser: SpectralAnalyser | None = None,
    config: AnalyzerConfig = DEFAULT_ANALYZER_CONFIG,
) -> TrackFeatures:
    """Measure one track.

    Args:
        track_id: Identifier copied into the result.
        buffer:   The track's audio.
        analyser: Reusable spectral handle. Rebound to ``buffer`` here.
                  A fresh one is created from ``config`` when omitted.
        config:   Clipping threshold and loudness gating settings.

    Returns:
        TrackFeatures with finite lufs and dynamic_range.
    """
    if analyser is None:
        analyser = SpectralAnalyser(config)
    analyser.connect(buffer)
    try:
        snapshot = frequency_snapshot(analyser)
    finally:
        analyser.disconnect()

    dynamics = analyze_dynamics(buffer)
    clipping = detect_clipping(buffer, config.clipping_threshold)
    lufs = measure_loudness(buffer, gated=config.loudness_gating)

    return TrackFeatures(
        track_id=track_id,
        peak=dynamics.peak,
        rms=dynamics.rms,
        lufs=lufs,
        dynamic_range=dynamics.dynamic_range,
        has_clipping=clipping.has_clipping,
        clipped_sample_count=clipping.clipped_samples,
        dominant_frequency=snapshot.dominant_frequency,
        frequency_peaks=snapshot.peaks,
        average_level=snapshot.average_level,
    )
