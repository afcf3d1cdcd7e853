"""
core/mastering — Automatic mastering chain for a finished stereo mix.

Analyses the mix once, then configures tonal EQ, 4-band compression, stereo
width, makeup gain and a true-peak limiter toward a platform loudness target.

Public API:
    Chain:       AutoMasteringChain
    Components:  MultibandCompressor, StereoEnhancer, split_bands, band_levels_db
    Types:       MasteringAdjustment, MasteringAnalysis, MasteringMetrics,
                 MasteringPresets, MasteringResult, MasteringSettings,
                 MasteringStage, Platform
    Presets:     load_mastering_presets
"""

from core.mastering._preset_loader import load_mastering_presets
from core.mastering.chain import AutoMasteringChain
from core.mastering.multiband import MultibandCompressor, band_levels_db, split_bands
from core.mastering.stereo_enhancer import StereoEnhancer
from core.mastering.types import (
    MasteringAdjustment,
    MasteringAnalysis,
    MasteringMetrics,
    MasteringPresets,
    MasteringResult,
    MasteringSettings,
    MasteringStage,
    Platform,
)

__all__ = [
    "AutoMasteringChain",
    "MasteringAdjustment",
    "MasteringAnalysis",
    "MasteringMetrics",
    "MasteringPresets",
    "MasteringResult",
    "MasteringSettings",
    "MasteringStage",
    "MultibandCompressor",
    "Platform",
    "StereoEnhancer",
    "band_levels_db",
    "load_mastering_presets",
    "split_bands",
]
