"""
core/mixer/stages.py — The decision stages of a mix pass.

Each stage reads the analysed tracks plus the rule tables, pushes the
resulting parameters into the channel strips, and returns a StageOutcome
holding its own adjustments. The mixer concatenates outcomes in stage order;
no stage sees or mutates another stage's adjustments.

Stages (numbering follows the pass; 1 and 2 are analysis + classification):

    3  gain_stage         per-class loudness target → strip output gain
    4  eq_stage           per-class EQ curve → strip EQ bands
    5  compression_stage  generic (high dynamic range) or per-class preset
    6  panning_stage      centered classes at 0, the rest spread L→R
    7  spatial_stage      per-class reverb send
    8  master_stage       master bus gain toward the delivery target

A failure inside one track's effect call is caught, logged and reported as a
StageOutcome failure; the other tracks of the stage still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

import numpy as np

from core.analyzer.types import AudioBuffer, TrackFeatures
from core.config import LUFS_FLOOR, MixerConfig
from core.effects import GainResource
from core.mixer.channel_strip import ChannelStrip
from core.mixer.types import InstrumentClass, MixAdjustment, RuleTables

logger = logging.getLogger(__name__)

MASTER_TRACK_ID = "master"


@dataclass(frozen=True)
class StageOutcome:
    """Adjustments emitted by one stage plus any per-track failures."""

    adjustments: tuple[MixAdjustment, ...] = ()
    failures: tuple[str, ...] = ()


class _StageRun:
    """Collects adjustments and failures while a stage walks its tracks."""

    def __init__(self, stage: str) -> None:
        self.stage = stage
        self.adjustments: list[MixAdjustment] = []
        self.failures: list[str] = []

    def apply(self, track_id: str, action: Callable[[], None], adjustment: MixAdjustment) -> None:
        try:
            action()
        except Exception as exc:
            logger.warning("%s stage failed for track %r: %s", self.stage, track_id, exc)
            self.failures.append(f"Could not apply {self.stage} to track '{track_id}': {exc}")
            return
        self.adjustments.append(adjustment)

    def outcome(self) -> StageOutcome:
        return StageOutcome(tuple(self.adjustments), tuple(self.failures))


def db_to_linear(db: float) -> float:
    return float(10.0 ** (db / 20.0))


# ---------------------------------------------------------------------------
# Stage 3 — gain staging
# ---------------------------------------------------------------------------


def gain_stage(
    tracks: Sequence[TrackFeatures],
    classes: Mapping[str, InstrumentClass],
    strips: Mapping[str, ChannelStrip],
    rules: RuleTables,
    config: MixerConfig,
) -> StageOutcome:
    """Move every track toward its class loudness target.

    The change is ``target − lufs`` clamped to ±max_track_gain_db. A track
    already at target still gets a 0 dB adjustment.
    """
    run = _StageRun("gain")
    limit = config.max_track_gain_db
    for features in tracks:
        track_id = features.track_id
        target = rules.profile(classes[track_id]).target_lufs
        gain_db = max(-limit, min(limit, target - features.lufs))
        strip = strips[track_id]
        run.apply(
            track_id,
            lambda: strip.set_gain(db_to_linear(gain_db)),
            MixAdjustment(
                track_id=track_id,
                parameter="gain",
                value=gain_db,
                reason=f"Adjusted gain by {gain_db:.1f}dB to reach {target:g} LUFS target",
            ),
        )
    return run.outcome()


# ---------------------------------------------------------------------------
# Stage 4 — intelligent EQ
# ---------------------------------------------------------------------------


def eq_stage(
    tracks: Sequence[TrackFeatures],
    classes: Mapping[str, InstrumentClass],
    strips: Mapping[str, ChannelStrip],
    rules: RuleTables,
) -> StageOutcome:
    """Push each class's EQ curve onto the strip EQ."""
    run = _StageRun("eq")
    for features in tracks:
        track_id = features.track_id
        profile = rules.profile(classes[track_id])
        eq = strips[track_id].eq

        def _push() -> None:
            for band in profile.eq_bands:
                eq.set_eq_band(band.index, frequency=band.frequency, gain_db=band.gain_db)

        run.apply(
            track_id,
            _push,
            MixAdjustment(
                track_id=track_id,
                parameter="eq",
                value=profile.eq_label,
                reason=profile.eq_reason,
            ),
        )
    return run.outcome()


# ---------------------------------------------------------------------------
# Stage 5 — dynamic compression
# ---------------------------------------------------------------------------


def compression_stage(
    tracks: Sequence[TrackFeatures],
    classes: Mapping[str, InstrumentClass],
    strips: Mapping[str, ChannelStrip],
    rules: RuleTables,
) -> StageOutcome:
    """Apply the generic preset to very dynamic tracks, else the class preset.

    Tracks matching neither rule get no compression and no adjustment.
    """
    run = _StageRun("compression")
    for features in tracks:
        track_id = features.track_id
        if features.dynamic_range > rules.generic_min_dynamic_range_db:
            rule = rules.generic_compression
        else:
            rule = rules.profile(classes[track_id]).compression
        if rule is None:
            continue

        compressor = strips[track_id].compressor

        def _push() -> None:
            compressor.set_compressor(rule.settings)
            compressor.set_bypass(False)

        run.apply(
            track_id,
            _push,
            MixAdjustment(
                track_id=track_id,
                parameter="compression",
                value=rule.settings.label(),
                reason=rule.reason,
            ),
        )
    return run.outcome()


# ---------------------------------------------------------------------------
# Stage 6 — stereo panning
# ---------------------------------------------------------------------------


def pan_positions(
    track_ids: Sequence[str],
    classes: Mapping[str, InstrumentClass],
    rules: RuleTables,
    spread: float,
) -> dict[str, float]:
    """Pan position for every track.

    Centered classes sit at 0. The others take positions
    ``-spread + i · step`` in iteration order with
    ``step = 2·spread / (total − centered)``.
    """
    spread_ids = [t for t in track_ids if not rules.profile(classes[t]).centered]
    step = (2.0 * spread) / len(spread_ids) if spread_ids else 0.0
    offsets = {t: i for i, t in enumerate(spread_ids)}
    return {t: (-spread + offsets[t] * step) if t in offsets else 0.0 for t in track_ids}


def panning_stage(
    tracks: Sequence[TrackFeatures],
    classes: Mapping[str, InstrumentClass],
    strips: Mapping[str, ChannelStrip],
    rules: RuleTables,
    config: MixerConfig,
) -> StageOutcome:
    run = _StageRun("pan")
    positions = pan_positions([f.track_id for f in tracks], classes, rules, config.pan_spread)
    for features in tracks:
        track_id = features.track_id
        instrument = classes[track_id]
        pan = positions[track_id]
        strip = strips[track_id]
        if rules.profile(instrument).centered:
            reason = f"Centered {instrument.value} for focus"
        else:
            reason = f"Panned {instrument.value} for stereo width"
        run.apply(
            track_id,
            lambda: strip.set_pan(pan),
            MixAdjustment(track_id=track_id, parameter="pan", value=pan, reason=reason),
        )
    return run.outcome()


# ---------------------------------------------------------------------------
# Stage 7 — spatial effects
# ---------------------------------------------------------------------------


def spatial_stage(
    tracks: Sequence[TrackFeatures],
    classes: Mapping[str, InstrumentClass],
    strips: Mapping[str, ChannelStrip],
    rules: RuleTables,
) -> StageOutcome:
    """Configure each strip's reverb send. Mix 0 disables the reverb."""
    run = _StageRun("reverb")
    for features in tracks:
        track_id = features.track_id
        rule = rules.profile(classes[track_id]).reverb
        reverb = strips[track_id].reverb
        run.apply(
            track_id,
            lambda: reverb.set_reverb(rule.settings),
            MixAdjustment(
                track_id=track_id,
                parameter="reverb",
                value=rule.label,
                reason=rule.reason,
            ),
        )
    return run.outcome()


# ---------------------------------------------------------------------------
# Stage 8 — master loudness
# ---------------------------------------------------------------------------


def gain_staged_sum(
    buffers: Sequence[AudioBuffer], gains_db: Sequence[float]
) -> AudioBuffer | None:
    """Sum buffers after applying their stage-3 gains.

    Mono buffers are spread to every output channel; shorter buffers are
    zero-padded.

    Returns:
        The summed buffer, or None when the buffers cannot be combined
        (no buffers, mismatched sample rates, or incompatible channel counts).
    """
    if not buffers:
        return None
    sample_rates = {b.sample_rate for b in buffers}
    if len(sample_rates) != 1:
        return None

    n_channels = max(b.number_of_channels for b in buffers)
    if any(b.number_of_channels not in (1, n_channels) for b in buffers):
        return None

    length = max(b.length for b in buffers)
    total = np.zeros((n_channels, length))
    for buffer, gain_db in zip(buffers, gains_db):
        total[:, : buffer.length] += buffer.channels * db_to_linear(gain_db)
    return AudioBuffer(channels=total, sample_rate=sample_rates.pop())


def master_stage(
    current_lufs: float,
    master_bus: GainResource,
    config: MixerConfig,
) -> StageOutcome:
    """Steer the master bus toward the delivery target.

    A silent master (loudness at the floor) is left at unity gain.
    """
    run = _StageRun("loudness")
    target = config.master_target_lufs
    if current_lufs <= LUFS_FLOOR:
        delta = 0.0
        reason = "Master bus is silent; gain left at unity"
    else:
        delta = target - current_lufs
        reason = f"Adjusted master gain by {delta:.1f}dB to reach {target:g} LUFS"
    run.apply(
        MASTER_TRACK_ID,
        lambda: master_bus.set_gain(db_to_linear(delta)),
        MixAdjustment(track_id=MASTER_TRACK_ID, parameter="loudness", value=delta, reason=reason),
    )
    return run.outcome()
