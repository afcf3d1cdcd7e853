"""
core/analyzer — Loudness, dynamics, spectrum and stereo measurement.

Pure functions over AudioBuffer plus one reusable spectral handle.
No file I/O in this package (audio loading lives in ingestion/audio_loader.py).

Public API:
    Types:     AudioBuffer, FrequencySnapshot, DynamicsProfile, ClippingReport,
               StereoImage, TrackFeatures
    Spectral:  SpectralAnalyser, SpectralSource, frequency_snapshot
    Loudness:  measure_loudness, k_weighting_sos
    Dynamics:  analyze_dynamics, detect_clipping, peak_dbfs
    Stereo:    analyze_stereo_image
    Features:  extract_track_features
"""

from core.analyzer.dynamics import analyze_dynamics, detect_clipping, peak_dbfs
from core.analyzer.features import extract_track_features
from core.analyzer.loudness import k_weighting_sos, measure_loudness
from core.analyzer.spectral import SpectralAnalyser, SpectralSource, frequency_snapshot
from core.analyzer.stereo import analyze_stereo_image
from core.analyzer.types import (
    AudioBuffer,
    ClippingReport,
    DynamicsProfile,
    FrequencySnapshot,
    StereoImage,
    TrackFeatures,
)

__all__ = [
    "AudioBuffer",
    "ClippingReport",
    "DynamicsProfile",
    "FrequencySnapshot",
    "SpectralAnalyser",
    "SpectralSource",
    "StereoImage",
    "TrackFeatures",
    "analyze_dynamics",
    "analyze_stereo_image",
    "detect_clipping",
    "extract_track_features",
    "frequency_snapshot",
    "k_weighting_sos",
    "measure_loudness",
    "peak_dbfs",
]
