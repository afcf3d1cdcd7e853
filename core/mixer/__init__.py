"""
core/mixer — Automatic multi-track mixing.

Classifies every track of a session from its analysed features and derives
gain, EQ, compression, pan and reverb settings from per-instrument rule
tables, then steers the master bus toward the delivery loudness.

Public API:
    Engine:      AutoMixer, PassCancelledError
    Strips:      ChannelStrip, ChannelStripArena, ChannelStripError, StripId
    Types:       InstrumentClass, InstrumentProfile, MixAdjustment, MixResult, RuleTables
    Classifier:  classify_instrument, classify_tracks
    Rules:       load_rule_tables
"""

from core.mixer._profile_loader import load_rule_tables
from core.mixer.channel_strip import ChannelStrip, ChannelStripArena, ChannelStripError, StripId
from core.mixer.classifier import classify_instrument, classify_tracks
from core.mixer.mixer import AutoMixer
from core.mixer.types import (
    InstrumentClass,
    InstrumentProfile,
    MixAdjustment,
    MixResult,
    RuleTables,
)
from core.pipeline import PassCancelledError

__all__ = [
    "AutoMixer",
    "ChannelStrip",
    "ChannelStripArena",
    "ChannelStripError",
    "InstrumentClass",
    "InstrumentProfile",
    "MixAdjustment",
    "MixResult",
    "PassCancelledError",
    "RuleTables",
    "StripId",
    "classify_instrument",
    "classify_tracks",
    "load_rule_tables",
]
