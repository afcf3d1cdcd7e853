"""
core/mastering/stages.py — Analysis and decision stages of a mastering pass.

    1  analyze_input        loudness, dynamics, clipping, stereo, band levels
    2  tonal_stage          brightness / presence / smile EQ moves
    3  multiband_stage      per-band control or uniform glue
    4  stereo_stage         width, bass mono and balance (stereo input only)
    5  loudness_stage       makeup gain toward the platform target
    6  limiting_stage       limiter configuration
    7  report               metric estimates and recommendations

Stages 2–6 push parameters into the chain's sub-components and return their
adjustments as a tuple; they never share a mutable list.
"""

from __future__ import annotations

import logging

from core.analyzer.dynamics import analyze_dynamics, detect_clipping, peak_dbfs
from core.analyzer.loudness import measure_loudness
from core.analyzer.stereo import analyze_stereo_image
from core.analyzer.types import AudioBuffer
from core.config import AnalyzerConfig, MasteringConfig
from core.effects import Effect, GainResource
from core.mastering.multiband import MultibandCompressor, band_levels_db
from core.mastering.stereo_enhancer import StereoEnhancer
from core.mastering.types import (
    MasteringAdjustment,
    MasteringAnalysis,
    MasteringMetrics,
    MasteringPresets,
    MasteringStage,
    TonalMove,
)

logger = logging.getLogger(__name__)

NARROW_WIDTH = 0.5
WIDE_WIDTH = 0.8
ENHANCED_WIDTH = 1.2
NARROWED_WIDTH = 0.9
ENHANCED_BASS_MONO_HZ = 120.0
BALANCE_TOLERANCE = 0.1

LOUD_OUTPUT_LUFS = -12.0
MIN_HEALTHY_DYNAMIC_RANGE_DB = 6.0
MIN_HEALTHY_WIDTH = 0.3
OUTPUT_DR_REDUCTION_DB = 3.0
OUTPUT_DR_FLOOR_DB = 3.0


# ---------------------------------------------------------------------------
# Stage 1 — input analysis
# ---------------------------------------------------------------------------


def analyze_input(
    buffer: AudioBuffer,
    analyzer: AnalyzerConfig,
    crossovers: tuple[float, float, float],
) -> MasteringAnalysis:
    """Measure everything the decision stages need.

    Stereo image is only measured for 2-channel input; other layouts report
    width and balance 0.
    """
    dynamics = analyze_dynamics(buffer)
    clipping = detect_clipping(buffer, analyzer.clipping_threshold)
    lufs = measure_loudness(buffer, gated=analyzer.loudness_gating)

    is_stereo = buffer.number_of_channels == 2
    width = balance = 0.0
    if is_stereo:
        image = analyze_stereo_image(buffer.get_channel_data(0), buffer.get_channel_data(1))
        width, balance = image.width, image.balance

    return MasteringAnalysis(
        lufs=lufs,
        peak=dynamics.peak,
        rms=dynamics.rms,
        dynamic_range=dynamics.dynamic_range,
        crest_factor=dynamics.crest_factor,
        stereo_width=width,
        stereo_balance=balance,
        has_clipping=clipping.has_clipping,
        clipping_percentage=clipping.clipping_percentage,
        is_stereo=is_stereo,
        band_levels_db=band_levels_db(buffer, crossovers),
    )


# ---------------------------------------------------------------------------
# Stage 2 — tonal balance
# ---------------------------------------------------------------------------


def _apply_move(eq: Effect, move: TonalMove) -> MasteringAdjustment:
    for band in move.bands:
        eq.set_eq_band(band.index, frequency=band.frequency, gain_db=band.gain_db)
    return MasteringAdjustment(MasteringStage.eq, move.description, move.value)


def tonal_stage(
    analysis: MasteringAnalysis, eq: Effect, presets: MasteringPresets
) -> tuple[MasteringAdjustment, ...]:
    """Brightness for quiet mixes, presence for dense ones, smile always."""
    adjustments = []
    if analysis.lufs < presets.quiet_threshold_lufs:
        adjustments.append(_apply_move(eq, presets.brightness))
    if analysis.dynamic_range < presets.dense_threshold_db:
        adjustments.append(_apply_move(eq, presets.presence))
    adjustments.append(_apply_move(eq, presets.smile))
    return tuple(adjustments)


# ---------------------------------------------------------------------------
# Stage 3 — multiband compression
# ---------------------------------------------------------------------------


def multiband_stage(
    analysis: MasteringAnalysis,
    multiband: MultibandCompressor,
    presets: MasteringPresets,
) -> tuple[MasteringAdjustment, ...]:
    """Per-band control for dynamic mixes, gentle glue for compressed ones."""
    if analysis.dynamic_range > presets.control_threshold_db:
        for index, settings in enumerate(presets.control_bands):
            multiband.set_band(index, settings)
        return (
            MasteringAdjustment(
                MasteringStage.multiband,
                "Applied 4-band compression",
                "Gentle control across frequency spectrum",
            ),
        )

    for index in range(multiband.band_count):
        multiband.update_band(index, threshold=presets.glue_threshold, ratio=presets.glue_ratio)
    return (
        MasteringAdjustment(
            MasteringStage.multiband,
            "Applied gentle glue compression",
            "Minimal processing to preserve dynamics",
        ),
    )


# ---------------------------------------------------------------------------
# Stage 4 — stereo enhancement
# ---------------------------------------------------------------------------


def stereo_stage(
    analysis: MasteringAnalysis, enhancer: StereoEnhancer
) -> tuple[MasteringAdjustment, ...]:
    """Widen narrow mixes, narrow very wide ones, correct lopsided balance."""
    if not analysis.is_stereo:
        return ()

    adjustments = []
    if analysis.stereo_width < NARROW_WIDTH:
        enhancer.set_width(ENHANCED_WIDTH)
        enhancer.set_bass_mono_frequency(ENHANCED_BASS_MONO_HZ)
        adjustments.append(
            MasteringAdjustment(
                MasteringStage.stereo,
                "Enhanced stereo width",
                f"{ENHANCED_WIDTH:.0%} width, bass mono below {ENHANCED_BASS_MONO_HZ:g}Hz",
            )
        )
    elif analysis.stereo_width > WIDE_WIDTH:
        enhancer.set_width(NARROWED_WIDTH)
        adjustments.append(
            MasteringAdjustment(
                MasteringStage.stereo,
                "Narrowed excessive width",
                f"{NARROWED_WIDTH:.0%} width for better mono compatibility",
            )
        )

    if abs(analysis.stereo_balance) > BALANCE_TOLERANCE:
        enhancer.set_balance(-analysis.stereo_balance)
        side = "right" if analysis.stereo_balance > 0 else "left"
        adjustments.append(
            MasteringAdjustment(
                MasteringStage.stereo,
                "Corrected stereo balance",
                f"Reduced {side} bias by {abs(analysis.stereo_balance):.2f}",
            )
        )
    return tuple(adjustments)


# ---------------------------------------------------------------------------
# Stage 5 — loudness normalization
# ---------------------------------------------------------------------------


def makeup_gain_db(input_lufs: float, target_lufs: float, max_gain_db: float) -> float:
    """Gain toward the target, never more than ``max_gain_db`` of boost."""
    return min(target_lufs - input_lufs, max_gain_db)


def loudness_stage(
    analysis: MasteringAnalysis,
    target_lufs: float,
    config: MasteringConfig,
) -> tuple[MasteringAdjustment, float, float]:
    """Compute makeup gain and the expected output loudness.

    Returns:
        (adjustment, gain_db, output_lufs) where
        ``output_lufs = min(input + gain, target)``.
    """
    gain_db = makeup_gain_db(analysis.lufs, target_lufs, config.max_makeup_gain_db)
    output_lufs = min(analysis.lufs + gain_db, target_lufs)
    adjustment = MasteringAdjustment(
        MasteringStage.loudness,
        "Optimized for streaming platforms",
        f"{gain_db:+.1f}dB to reach {target_lufs:g} LUFS",
    )
    return adjustment, gain_db, output_lufs


def apply_makeup_gain(makeup: GainResource, gain_db: float) -> None:
    makeup.set_gain(float(10.0 ** (gain_db / 20.0)))


# ---------------------------------------------------------------------------
# Stage 6 — peak limiting
# ---------------------------------------------------------------------------


def limiting_description(ceiling_db: float) -> MasteringAdjustment:
    return MasteringAdjustment(
        MasteringStage.limiting,
        "Applied true peak limiting",
        f"Ceiling at {ceiling_db:g} dBFS for streaming compliance",
    )


# ---------------------------------------------------------------------------
# Stage 7 — report
# ---------------------------------------------------------------------------


def final_report(
    analysis: MasteringAnalysis,
    output_lufs: float,
    ceiling_db: float,
    target_label: str,
    target_lufs: float,
    *,
    bypassed: bool = False,
) -> tuple[MasteringMetrics, tuple[str, ...]]:
    """Estimate output metrics and derive recommendations.

    The output dynamic range is estimated as ``max(3, input DR − 3)`` and the
    true peak as the limiter ceiling. A bypassed chain passes audio through
    untouched, so its output metrics are the input's.
    """
    if bypassed:
        output_dr = analysis.dynamic_range
        true_peak = peak_dbfs(analysis.peak)
    else:
        output_dr = max(OUTPUT_DR_FLOOR_DB, analysis.dynamic_range - OUTPUT_DR_REDUCTION_DB)
        true_peak = ceiling_db
    metrics = MasteringMetrics(
        input_lufs=analysis.lufs,
        output_lufs=output_lufs,
        dynamic_range=output_dr,
        true_peak=true_peak,
        stereo_width=analysis.stereo_width,
    )

    recs: list[str] = []
    if output_dr < MIN_HEALTHY_DYNAMIC_RANGE_DB:
        recs.append("Consider preserving more dynamic range for better sound quality")
    if output_lufs > LOUD_OUTPUT_LUFS:
        recs.append("Master may be too loud and could be turned down by streaming services")
    if analysis.is_stereo and analysis.stereo_width < MIN_HEALTHY_WIDTH:
        recs.append("Mix could benefit from wider stereo image")
    if bypassed:
        recs.append(
            f"Mastering chain is bypassed: settings for {target_label} "
            f"({target_lufs:g} LUFS) are stored but not applied"
        )
    else:
        recs.append(f"Master optimized for {target_label} ({target_lufs:g} LUFS)")
    recs.extend(
        (
            "Check translation on different playback systems",
            "Consider A/B testing with reference tracks",
        )
    )
    return metrics, tuple(recs)
