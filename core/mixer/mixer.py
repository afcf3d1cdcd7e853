"""
core/mixer/mixer.py — AutoMixer: eight-stage automatic mixing pass.

    tracks (buffer | None | async fetch)
        │
        ├─ 1 analyze        extract_track_features()     [core/analyzer]
        ├─ 2 classify       classify_tracks()            [classifier.py]
        ├─ 3 gain           gain_stage()                 [stages.py]
        ├─ 4 eq             eq_stage()
        ├─ 5 compression    compression_stage()
        ├─ 6 pan            panning_stage()
        ├─ 7 reverb         spatial_stage()
        └─ 8 loudness       master_stage()  ← measured gain-staged sum
                ↓
            MixResult

Design:
    - Rule tables come from instrument_profiles/instruments.yaml; the control
      flow never branches on an instrument name.
    - Each stage returns its own StageOutcome; the pass concatenates them in
      stage order, so a pass never reads adjustments from a previous pass.
    - A track whose strip cannot be allocated, or with no buffer, a failing
      fetch or a failing analysis, is skipped for the rest of the pass. The pass itself only fails
      (success=False) when there is no master bus to write to.
    - mix() is a coroutine because track buffers may be fetched
      asynchronously. Stage boundaries are cancellation checkpoints.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Union

from core.analyzer.features import extract_track_features
from core.analyzer.loudness import measure_loudness
from core.analyzer.spectral import SpectralAnalyser
from core.analyzer.types import AudioBuffer, TrackFeatures
from core.config import DEFAULT_MIXER_CONFIG, LUFS_FLOOR, MixerConfig
from core.effects import Effect, EffectsFactory, GainResource, InMemoryEffectsFactory
from core.mixer._profile_loader import load_rule_tables
from core.mixer.channel_strip import ChannelStrip, ChannelStripArena, StripId
from core.mixer.classifier import classify_tracks
from core.mixer.stages import (
    MASTER_TRACK_ID,
    StageOutcome,
    compression_stage,
    eq_stage,
    gain_stage,
    gain_staged_sum,
    master_stage,
    panning_stage,
    spatial_stage,
)
from core.mixer.types import MixResult, RuleTables
from core.pipeline import checkpoint

logger = logging.getLogger(__name__)

BufferFetch = Callable[[], Awaitable[Union[AudioBuffer, None]]]
TrackSource = Union[AudioBuffer, BufferFetch, None]

SKIP_MISSING_BUFFER = "missing_buffer"
SKIP_FETCH_FAILED = "fetch_failed"
SKIP_ANALYSIS_FAILED = "analysis_failed"
SKIP_STRIP_FAILED = "strip_failed"

_SKIP_MESSAGES: dict[str, str] = {
    SKIP_MISSING_BUFFER: "no audio buffer was available",
    SKIP_FETCH_FAILED: "its audio buffer could not be fetched",
    SKIP_ANALYSIS_FAILED: "its audio could not be analysed",
    SKIP_STRIP_FAILED: "no channel strip could be created for it",
}


class AutoMixer:
    """Automatic mixer over a session of channel strips.

    Args:
        effects_factory: Creates the per-track effect handles. Defaults to
            an InMemoryEffectsFactory.
        master_bus: Gain sink for the master loudness stage. When omitted,
            an 'output' handle for 'master' is requested from the factory.
        analyser: Reusable spectral handle for track analysis.
        config: Mixer tuning.
        rules: Rule tables. Defaults to the bundled instruments.yaml.

    Example:
        >>> mixer = AutoMixer()
        >>> mixer.add_track("kick", kick_buffer)
        >>> result = await mixer.mix()
    """

    def __init__(
        self,
        effects_factory: EffectsFactory | None = None,
        master_bus: GainResource | None = None,
        analyser: SpectralAnalyser | None = None,
        config: MixerConfig = DEFAULT_MIXER_CONFIG,
        rules: RuleTables | None = None,
    ) -> None:
        self._config = config
        self._factory: EffectsFactory = effects_factory or InMemoryEffectsFactory()
        self._rules = rules or load_rule_tables()
        self._analyser = analyser or SpectralAnalyser(config.analyzer)
        self._arena = ChannelStripArena(self._factory)
        self._owns_master_bus = master_bus is None
        self._master_bus = master_bus if master_bus is not None else self._create_master_bus()
        self._destroyed = False

    # -- Session management ---------------------------------------------------

    @property
    def config(self) -> MixerConfig:
        return self._config

    @property
    def master_bus(self) -> GainResource | None:
        return self._master_bus

    def set_master_bus(self, master_bus: GainResource | None) -> None:
        self._check_alive()
        self._master_bus = master_bus
        self._owns_master_bus = False

    def add_track(self, track_id: str, buffer: AudioBuffer | None = None) -> StripId:
        """Create a channel strip for a track.

        Raises:
            ChannelStripError: If the track already exists.
        """
        self._check_alive()
        return self._arena.allocate(track_id, buffer)

    def remove_track(self, track_id: str) -> None:
        """Destroy a track's strip and its effect handles.

        Raises:
            ChannelStripError: If the track does not exist.
        """
        self._check_alive()
        self._arena.release(self._arena.id_for(track_id))

    def set_buffer(self, track_id: str, buffer: AudioBuffer | None) -> None:
        """Register the buffer used when mix() is called without tracks."""
        self._check_alive()
        self._arena.strip_for(track_id).buffer = buffer

    def strip(self, track_id: str) -> ChannelStrip:
        self._check_alive()
        return self._arena.strip_for(track_id)

    def track_ids(self) -> list[str]:
        return self._arena.track_ids()

    # -- Mix pass -------------------------------------------------------------

    async def mix(
        self,
        tracks: Mapping[str, TrackSource] | None = None,
        *,
        master_lufs: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> MixResult:
        """Run one eight-stage mixing pass.

        Args:
            tracks: track_id → buffer, None, or an async callable returning
                either. Unknown ids get a new strip. When omitted, every
                registered strip and its stored buffer is used.
            master_lufs: Known master-bus loudness. Measured from the
                gain-staged sum when omitted.
            cancel: Optional cancellation token checked between stages.

        Returns:
            MixResult with adjustments in stage order.

        Raises:
            PassCancelledError: If ``cancel`` is set at a stage boundary.
            RuntimeError: If the mixer was destroyed.
        """
        self._check_alive()
        if self._master_bus is None:
            logger.error("Mix pass aborted: no master bus available")
            return MixResult(
                success=False,
                adjustments=(),
                recommendations=("No master bus available; connect one before mixing",),
            )

        sources, unallocated = self._resolve_sources(tracks)
        logger.info("Mix pass started: %d tracks", len(sources) + len(unallocated))

        await checkpoint(cancel, "analyze")
        features, buffers, skipped = await self._analyze(sources)
        skipped = {**unallocated, **skipped}

        await checkpoint(cancel, "classify")
        classes = classify_tracks(features)
        for track_id, instrument in classes.items():
            logger.debug("Track %r classified as %s", track_id, instrument.value)

        strips = {f.track_id: self._arena.strip_for(f.track_id) for f in features}
        rules = self._rules
        outcomes: list[StageOutcome] = []

        await checkpoint(cancel, "gain")
        gains = gain_stage(features, classes, strips, rules, self._config)
        outcomes.append(gains)

        await checkpoint(cancel, "eq")
        outcomes.append(eq_stage(features, classes, strips, rules))

        await checkpoint(cancel, "compression")
        outcomes.append(compression_stage(features, classes, strips, rules))

        await checkpoint(cancel, "pan")
        outcomes.append(panning_stage(features, classes, strips, rules, self._config))

        await checkpoint(cancel, "reverb")
        outcomes.append(spatial_stage(features, classes, strips, rules))

        await checkpoint(cancel, "loudness")
        current_lufs = self._master_loudness(master_lufs, features, buffers, gains)
        outcomes.append(master_stage(current_lufs, self._master_bus, self._config))

        adjustments = tuple(a for outcome in outcomes for a in outcome.adjustments)
        failures = tuple(f for outcome in outcomes for f in outcome.failures)

        result = MixResult(
            success=True,
            adjustments=adjustments,
            recommendations=self._recommendations(features, skipped, failures),
            classifications=classes,
            skipped_tracks=tuple(skipped),
            skip_reasons=skipped,
        )
        logger.info(
            "Mix pass complete: %d adjustments, %d skipped, %d failed effect calls",
            len(adjustments),
            len(skipped),
            len(failures),
        )
        return result

    # -- Reset / teardown -----------------------------------------------------

    def reset(self) -> None:
        """Return every strip and the master bus to neutral settings."""
        self._check_alive()
        for strip in self._arena:
            strip.reset()
        if self._master_bus is not None:
            self._master_bus.set_gain(1.0)

    def destroy(self) -> None:
        """Release every strip, its handles and the owned master bus.

        The mixer cannot be used afterwards.
        """
        if self._destroyed:
            return
        self._arena.release_all()
        self._analyser.destroy()
        if self._owns_master_bus and isinstance(self._master_bus, Effect):
            self._master_bus.destroy()
        self._master_bus = None
        self._destroyed = True

    # -- Private helpers ------------------------------------------------------

    def _check_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("AutoMixer has been destroyed")

    def _create_master_bus(self) -> GainResource | None:
        try:
            return self._factory.create("output", MASTER_TRACK_ID)
        except Exception as exc:
            logger.warning("Could not create master bus: %s", exc)
            return None

    def _resolve_sources(
        self, tracks: Mapping[str, TrackSource] | None
    ) -> tuple[list[tuple[str, TrackSource]], dict[str, str]]:
        """Pair each track with its source, allocating strips for new ids.

        Tracks whose strip cannot be allocated are returned separately as
        skips and take no further part in the pass.
        """
        if tracks is None:
            return [(strip.track_id, strip.buffer) for strip in self._arena], {}

        sources: list[tuple[str, TrackSource]] = []
        unallocated: dict[str, str] = {}
        for track_id, source in tracks.items():
            if track_id not in self._arena:
                try:
                    self._arena.allocate(track_id)
                except Exception as exc:
                    logger.warning(
                        "Track %r skipped: channel strip allocation failed: %s", track_id, exc
                    )
                    unallocated[track_id] = SKIP_STRIP_FAILED
                    continue
            sources.append((track_id, source))
        return sources, unallocated

    async def _analyze(
        self, sources: Sequence[tuple[str, TrackSource]]
    ) -> tuple[list[TrackFeatures], dict[str, AudioBuffer], dict[str, str]]:
        features: list[TrackFeatures] = []
        buffers: dict[str, AudioBuffer] = {}
        skipped: dict[str, str] = {}

        for track_id, source in sources:
            buffer: AudioBuffer | None
            if callable(source):
                try:
                    buffer = await source()
                except Exception as exc:
                    logger.warning("Track %r skipped: buffer fetch failed: %s", track_id, exc)
                    skipped[track_id] = SKIP_FETCH_FAILED
                    continue
            else:
                buffer = source

            if buffer is None:
                logger.warning("Track %r skipped: no buffer", track_id)
                skipped[track_id] = SKIP_MISSING_BUFFER
                continue

            try:
                features.append(
                    extract_track_features(track_id, buffer, self._analyser, self._config.analyzer)
                )
            except Exception as exc:
                logger.warning("Track %r skipped: analysis failed: %s", track_id, exc)
                skipped[track_id] = SKIP_ANALYSIS_FAILED
                continue
            buffers[track_id] = buffer

        return features, buffers, skipped

    def _master_loudness(
        self,
        master_lufs: float | None,
        features: Sequence[TrackFeatures],
        buffers: Mapping[str, AudioBuffer],
        gains: StageOutcome,
    ) -> float:
        if master_lufs is not None:
            return master_lufs
        if not features:
            return LUFS_FLOOR

        applied = {a.track_id: float(a.value) for a in gains.adjustments}
        ordered = [f.track_id for f in features]
        summed = gain_staged_sum(
            [buffers[t] for t in ordered], [applied.get(t, 0.0) for t in ordered]
        )
        if summed is None:
            logger.warning(
                "Cannot sum tracks with mixed sample rates or channel layouts; "
                "assuming master at %.1f LUFS",
                self._config.assumed_master_lufs,
            )
            return self._config.assumed_master_lufs
        return measure_loudness(summed, gated=self._config.analyzer.loudness_gating)

    def _recommendations(
        self,
        features: Sequence[TrackFeatures],
        skipped: Mapping[str, str],
        failures: Sequence[str],
    ) -> tuple[str, ...]:
        recs: list[str] = []
        for f in features:
            if f.has_clipping:
                recs.append(
                    f"Track '{f.track_id}' is clipping ({f.clipped_sample_count} samples); "
                    "reduce its input gain"
                )
        for track_id, reason in skipped.items():
            recs.append(f"Track '{track_id}' was skipped: {_SKIP_MESSAGES[reason]}")
        recs.extend(failures)
        recs.extend(
            (
                f"Mix optimized for streaming platforms ({self._config.master_target_lufs:g} LUFS)",
                "Consider using a limiter on master bus for extra loudness",
                "Check mix translation on different speakers",
            )
        )
        return tuple(recs)
