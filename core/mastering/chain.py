"""
core/mastering/chain.py — AutoMasteringChain: seven-stage automatic mastering.

    finished mix (AudioBuffer)
        │
        ├─ 1 analyze       analyze_input()            [stages.py → core/analyzer]
        ├─ 2 eq            tonal_stage()              → master EQ handle
        ├─ 3 multiband     multiband_stage()          → MultibandCompressor
        ├─ 4 stereo        stereo_stage()             → StereoEnhancer
        ├─ 5 loudness      loudness_stage()           → makeup gain
        ├─ 6 limiting      limiter configuration      → limiter handle
        └─ 7 report        final_report()
                ↓
            MasteringResult

Design:
    - Sub-components (EQ, multiband, enhancer, limiter, makeup gain) are
      created once and reused across passes; set_bypass() never destroys them.
    - The chain only issues settings. The DSP itself runs in the external
      effects, except StereoEnhancer.process() for offline rendering.
    - A failing effect call fails only its own stage: it is logged and
      reported as a recommendation, and later stages still run.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Callable
from typing import TypeVar

from core.analyzer.types import AudioBuffer
from core.config import DEFAULT_MASTERING_CONFIG, MasteringConfig
from core.effects import (
    CompressorSettings,
    Effect,
    EffectsFactory,
    GainResource,
    InMemoryEffectsFactory,
)
from core.mastering._preset_loader import load_mastering_presets
from core.mastering.multiband import MultibandCompressor
from core.mastering.stages import (
    analyze_input,
    apply_makeup_gain,
    final_report,
    limiting_description,
    loudness_stage,
    multiband_stage,
    stereo_stage,
    tonal_stage,
)
from core.mastering.stereo_enhancer import StereoEnhancer
from core.mastering.types import (
    MasteringAdjustment,
    MasteringAnalysis,
    MasteringMetrics,
    MasteringPresets,
    MasteringResult,
    MasteringSettings,
    Platform,
)
from core.pipeline import checkpoint

logger = logging.getLogger(__name__)

_OWNER = "master"
_DEFAULT_TARGET_LABEL = "streaming platforms"

T = TypeVar("T")


class AutoMasteringChain:
    """Automatic mastering chain for one finished stereo mix.

    Args:
        effects_factory: Creates the EQ, multiband, stereo and limiter
            handles. Defaults to an InMemoryEffectsFactory.
        makeup_gain: Gain sink for loudness normalization. When omitted, an
            'output' handle for 'master' is requested from the factory.
        config: Mastering tuning.
        presets: Threshold tables. Defaults to the bundled mastering.yaml.

    Example:
        >>> chain = AutoMasteringChain()
        >>> chain.set_target_loudness("apple")
        >>> result = await chain.master(mix_buffer)
    """

    def __init__(
        self,
        effects_factory: EffectsFactory | None = None,
        makeup_gain: GainResource | None = None,
        config: MasteringConfig = DEFAULT_MASTERING_CONFIG,
        presets: MasteringPresets | None = None,
    ) -> None:
        self._config = config
        self._presets = presets or load_mastering_presets()
        factory: EffectsFactory = effects_factory or InMemoryEffectsFactory()

        self._eq: Effect = factory.create("eq", _OWNER)
        self._multiband = MultibandCompressor(
            factory, config.crossovers_hz, self._presets.band_defaults
        )
        self._enhancer = StereoEnhancer(factory, _OWNER)
        self._limiter: Effect = factory.create("limiter", _OWNER)
        self._limiter_settings = self._presets.limiter_defaults
        self._limiter.set_compressor(self._limiter_settings)

        self._owns_makeup = makeup_gain is None
        self._makeup = makeup_gain if makeup_gain is not None else self._create_makeup(factory)
        self._makeup_db = 0.0

        self._target_lufs = config.default_target_lufs
        self._target_label = _DEFAULT_TARGET_LABEL
        self._bypassed = False
        self._destroyed = False

    # -- Properties -----------------------------------------------------------

    @property
    def config(self) -> MasteringConfig:
        return self._config

    @property
    def target_lufs(self) -> float:
        return self._target_lufs

    @property
    def multiband(self) -> MultibandCompressor:
        return self._multiband

    @property
    def stereo_enhancer(self) -> StereoEnhancer:
        return self._enhancer

    @property
    def eq(self) -> Effect:
        return self._eq

    @property
    def limiter(self) -> Effect:
        return self._limiter

    @property
    def bypassed(self) -> bool:
        return self._bypassed

    # -- Mastering pass -------------------------------------------------------

    async def master(
        self, buffer: AudioBuffer, *, cancel: asyncio.Event | None = None
    ) -> MasteringResult:
        """Analyse a finished mix and configure the chain for it.

        Raises:
            PassCancelledError: If ``cancel`` is set at a stage boundary.
            RuntimeError: If the chain was destroyed.
        """
        self._check_alive()
        await checkpoint(cancel, "analyze")
        analysis = analyze_input(buffer, self._config.analyzer, self._config.crossovers_hz)
        return await self.master_analysis(analysis, cancel=cancel)

    async def master_analysis(
        self, analysis: MasteringAnalysis, *, cancel: asyncio.Event | None = None
    ) -> MasteringResult:
        """Run stages 2–7 from an existing input analysis.

        Raises:
            PassCancelledError: If ``cancel`` is set at a stage boundary.
            RuntimeError: If the chain was destroyed.
        """
        self._check_alive()
        if self._makeup is None:
            logger.error("Mastering pass aborted: no makeup gain resource available")
            return MasteringResult(
                success=False,
                adjustments=(),
                metrics=MasteringMetrics(
                    input_lufs=analysis.lufs,
                    output_lufs=analysis.lufs,
                    dynamic_range=analysis.dynamic_range,
                    true_peak=self._config.limiter_ceiling_db,
                    stereo_width=analysis.stereo_width,
                ),
                recommendations=("No makeup gain resource available; mastering not run",),
                analysis=analysis,
            )

        logger.info(
            "Mastering pass started: %.1f LUFS in, target %.1f LUFS",
            analysis.lufs,
            self._target_lufs,
        )
        adjustments: list[MasteringAdjustment] = []
        failures: list[str] = []
        recs: list[str] = []
        if analysis.has_clipping:
            recs.append(
                f"Input has clipping ({analysis.clipping_percentage:.2f}% samples). "
                "Consider reducing input gain."
            )

        presets = self._presets

        await checkpoint(cancel, "eq")
        adjustments.extend(
            self._run_stage("eq", failures, lambda: tonal_stage(analysis, self._eq, presets), ())
        )

        await checkpoint(cancel, "multiband")
        adjustments.extend(
            self._run_stage(
                "multiband", failures, lambda: multiband_stage(analysis, self._multiband, presets), ()
            )
        )

        await checkpoint(cancel, "stereo")
        adjustments.extend(
            self._run_stage("stereo", failures, lambda: stereo_stage(analysis, self._enhancer), ())
        )

        await checkpoint(cancel, "loudness")
        loudness, gain_db, output_lufs = loudness_stage(analysis, self._target_lufs, self._config)
        applied = self._run_stage("loudness", failures, lambda: self._set_makeup(gain_db), False)
        if applied:
            adjustments.append(loudness)
        if not applied or self._bypassed:
            output_lufs = analysis.lufs

        await checkpoint(cancel, "limiting")
        limiter = dataclasses.replace(presets.limiter, threshold=self._config.limiter_ceiling_db)
        if self._run_stage("limiting", failures, lambda: self._set_limiter(limiter), False):
            adjustments.append(limiting_description(self._config.limiter_ceiling_db))

        await checkpoint(cancel, "report")
        metrics, report_recs = final_report(
            analysis,
            output_lufs,
            self._config.limiter_ceiling_db,
            self._target_label,
            self._target_lufs,
            bypassed=self._bypassed,
        )
        result = MasteringResult(
            success=True,
            adjustments=tuple(adjustments),
            metrics=metrics,
            recommendations=tuple(recs + failures + list(report_recs)),
            analysis=analysis,
        )
        logger.info(
            "Mastering pass complete: %d adjustments, %.1f LUFS out",
            len(adjustments),
            metrics.output_lufs,
        )
        return result

    # -- Controls -------------------------------------------------------------

    def set_target_loudness(self, platform: Platform | str, custom_lufs: float | None = None) -> None:
        """Choose the delivery loudness.

        Args:
            platform: 'spotify', 'apple', 'youtube', 'soundcloud' or 'custom'.
            custom_lufs: Target for 'custom'; defaults to the configured
                default target when omitted.

        Raises:
            ValueError: For an unknown platform or a positive custom target.
        """
        self._check_alive()
        try:
            key = Platform(platform)
        except ValueError:
            available = [p.value for p in Platform]
            raise ValueError(f"Unknown platform {platform!r}. Available: {available}") from None

        target = self._presets.platforms[key]
        if target.target_lufs is None:
            value = self._config.default_target_lufs if custom_lufs is None else float(custom_lufs)
            if value > 0.0:
                raise ValueError(f"Custom target must be <= 0 LUFS, got {value}")
        else:
            value = target.target_lufs
        self._target_lufs = value
        self._target_label = target.label
        logger.debug("Mastering target set to %.1f LUFS (%s)", value, target.label)

    def set_bypass(self, bypass: bool) -> None:
        """Disable (or re-enable) every stage without destroying sub-components.

        Bypassing sets EQ and limiter to bypass, the multiband to 1:1, the
        enhancer to width 1 and the makeup gain to unity. Re-enabling restores
        the last issued settings and makeup gain.
        """
        self._check_alive()
        self._bypassed = bypass
        self._eq.set_bypass(bypass)
        self._multiband.set_bypass(bypass)
        self._enhancer.set_bypass(bypass)
        self._push_limiter()
        self._push_makeup()

    def reset(self) -> None:
        """Restore the default target, flat EQ, neutral width and unity gain."""
        self._check_alive()
        for band in (*self._presets.brightness.bands, *self._presets.presence.bands,
                     *self._presets.smile.bands):
            self._eq.set_eq_band(band.index, gain_db=0.0)
        self._multiband.reset()
        self._enhancer.reset()
        self._makeup_db = 0.0
        self._push_makeup()
        self._limiter_settings = self._presets.limiter_defaults
        self._push_limiter()
        self._target_lufs = self._config.default_target_lufs
        self._target_label = _DEFAULT_TARGET_LABEL

    def get_settings(self) -> MasteringSettings:
        self._check_alive()
        return MasteringSettings(
            target_lufs=self._target_lufs,
            eq_enabled=not self._bypassed,
            multiband_enabled=not self._multiband.bypassed,
            stereo_enabled=not self._enhancer.bypassed,
            limiter_enabled=not self._bypassed,
            makeup_gain_db=0.0 if self._bypassed else self._makeup_db,
            band_settings=self._multiband.band_settings(),
            stereo_width=self._enhancer.width,
            bass_mono_hz=self._enhancer.bass_mono_hz,
        )

    def destroy(self) -> None:
        """Release every owned effect handle. The chain cannot be used afterwards."""
        if self._destroyed:
            return
        self._eq.destroy()
        self._multiband.destroy()
        self._enhancer.destroy()
        self._limiter.destroy()
        if self._owns_makeup and isinstance(self._makeup, Effect):
            self._makeup.destroy()
        self._makeup = None
        self._destroyed = True

    # -- Private helpers ------------------------------------------------------

    def _check_alive(self) -> None:
        if self._destroyed:
            raise RuntimeError("AutoMasteringChain has been destroyed")

    def _create_makeup(self, factory: EffectsFactory) -> GainResource | None:
        try:
            return factory.create("output", _OWNER)
        except Exception as exc:
            logger.warning("Could not create makeup gain: %s", exc)
            return None

    def _run_stage(self, stage: str, failures: list[str], action: Callable[[], T], fallback: T) -> T:
        try:
            return action()
        except Exception as exc:
            logger.warning("Mastering %s stage failed: %s", stage, exc)
            failures.append(f"Could not apply {stage} stage: {exc}")
            return fallback

    def _set_makeup(self, gain_db: float) -> bool:
        self._makeup_db = gain_db
        self._push_makeup()
        return True

    def _push_makeup(self) -> None:
        if self._makeup is not None:
            apply_makeup_gain(self._makeup, 0.0 if self._bypassed else self._makeup_db)

    def _set_limiter(self, settings: CompressorSettings) -> bool:
        self._limiter_settings = settings
        self._push_limiter()
        return True

    def _push_limiter(self) -> None:
        settings = self._limiter_settings
        if self._bypassed:
            settings = dataclasses.replace(settings, ratio=1.0)
        self._limiter.set_compressor(settings)
        self._limiter.set_bypass(self._bypassed)
