"""
ingestion/automix_engine.py — File-level orchestrator for mixing and mastering.

    stem files                      finished mix file
        │                                   │
        ├─ load_buffer()  [I/O boundary]    ├─ load_buffer()
        │       ↓                           │       ↓
        ├─ AutoMixer.mix()  [core/mixer]    ├─ AutoMasteringChain.master()  [core/mastering]
        │       ↓                           │       ↓
        └─ MixResult                        └─ MasteringResult
                └────────── record_pass / record_skipped_track / record_adjustment
                                           [infrastructure/metrics.py]

This module lives in `ingestion/` because it reads files and records
process-wide metrics. The mixing and mastering logic in core/ is pure and
never imports infrastructure.

Design:
    - Stems are loaded lazily: each track is handed to the mixer as an async
      fetch, so a file that cannot be decoded becomes a skipped track
      ('fetch_failed') instead of failing the whole pass.
    - Decoding runs in a worker thread (asyncio.to_thread) to keep the event
      loop free while librosa reads the file.
    - The engine owns one AutoMixer and one AutoMasteringChain; call close()
      to release their effect handles.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

from core.analyzer.types import AudioBuffer
from core.config import (
    DEFAULT_MASTERING_CONFIG,
    DEFAULT_MIXER_CONFIG,
    MasteringConfig,
    MixerConfig,
)
from core.effects import EffectsFactory
from core.mastering.chain import AutoMasteringChain
from core.mastering.types import MasteringResult, Platform
from core.mixer.mixer import AutoMixer, BufferFetch
from core.mixer.types import MixResult
from core.pipeline import PassCancelledError
from infrastructure.metrics import (
    LatencyTimer,
    record_adjustment,
    record_pass,
    record_skipped_track,
)
from ingestion.audio_loader import load_buffer, track_id_for

logger = logging.getLogger(__name__)

PIPELINE_MIX = "mix"
PIPELINE_MASTER = "master"

Loader = Callable[[Path], AudioBuffer]


class AutomixEngine:
    """High-level entry point: mix stem files and master a finished mix.

    Args:
        effects_factory: Shared by the mixer and the mastering chain. Defaults
            to each component's in-memory factory.
        mixer_config: AutoMixer tuning.
        mastering_config: AutoMasteringChain tuning.
        loader: Reads one file into an AudioBuffer. Defaults to
            :func:`ingestion.audio_loader.load_buffer`; tests inject a stub.
    """

    def __init__(
        self,
        effects_factory: EffectsFactory | None = None,
        *,
        mixer_config: MixerConfig = DEFAULT_MIXER_CONFIG,
        mastering_config: MasteringConfig = DEFAULT_MASTERING_CONFIG,
        loader: Loader | None = None,
    ) -> None:
        self._loader: Loader = loader or load_buffer
        self.mixer = AutoMixer(effects_factory, config=mixer_config)
        self.chain = AutoMasteringChain(effects_factory, config=mastering_config)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def mix_files(
        self,
        paths: Sequence[str | Path] | Mapping[str, str | Path],
        *,
        master_lufs: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> MixResult:
        """Load stems and run one mixing pass over them.

        Args:
            paths: Stem files. A sequence uses each file's stem as track id;
                a mapping gives explicit track_id → path.
            master_lufs: Known master loudness, measured when omitted.
            cancel: Optional cancellation token.

        Raises:
            PassCancelledError: If ``cancel`` is set during the pass.
            ValueError: If two files map to the same track id.
        """
        tracks = {track_id: self._fetch(path) for track_id, path in _track_paths(paths).items()}

        timer = LatencyTimer()
        try:
            with timer:
                result = await self.mixer.mix(tracks, master_lufs=master_lufs, cancel=cancel)
        except PassCancelledError:
            record_pass(pipeline=PIPELINE_MIX, status="cancelled", latency_seconds=timer.elapsed)
            raise

        record_pass(
            pipeline=PIPELINE_MIX,
            status="success" if result.success else "failed",
            latency_seconds=timer.elapsed,
        )
        for reason in result.skip_reasons.values():
            record_skipped_track(reason)
        for adjustment in result.adjustments:
            record_adjustment(PIPELINE_MIX, adjustment.parameter)
        return result

    async def master_file(
        self,
        path: str | Path,
        *,
        platform: Platform | str = Platform.spotify,
        custom_lufs: float | None = None,
        cancel: asyncio.Event | None = None,
    ) -> MasteringResult:
        """Load a finished mix and run one mastering pass toward a platform.

        Raises:
            FileNotFoundError / ValueError / RuntimeError: From the loader.
            ValueError: Unknown platform.
            PassCancelledError: If ``cancel`` is set during the pass.
        """
        self.chain.set_target_loudness(platform, custom_lufs)
        buffer = await asyncio.to_thread(self._loader, Path(path))
        return await self.master_buffer(buffer, cancel=cancel)

    async def master_buffer(
        self, buffer: AudioBuffer, *, cancel: asyncio.Event | None = None
    ) -> MasteringResult:
        """Run one mastering pass on an already loaded mix."""
        timer = LatencyTimer()
        try:
            with timer:
                result = await self.chain.master(buffer, cancel=cancel)
        except PassCancelledError:
            record_pass(pipeline=PIPELINE_MASTER, status="cancelled", latency_seconds=timer.elapsed)
            raise

        record_pass(
            pipeline=PIPELINE_MASTER,
            status="success" if result.success else "failed",
            latency_seconds=timer.elapsed,
        )
        for adjustment in result.adjustments:
            record_adjustment(PIPELINE_MASTER, adjustment.stage.value)
        return result

    def close(self) -> None:
        """Release every effect handle owned by the mixer and the chain."""
        self.mixer.destroy()
        self.chain.destroy()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _fetch(self, path: str | Path) -> BufferFetch:
        file_path = Path(path)

        async def fetch() -> AudioBuffer:
            logger.debug("Loading stem %s", file_path)
            return await asyncio.to_thread(self._loader, file_path)

        return fetch


def _track_paths(paths: Sequence[str | Path] | Mapping[str, str | Path]) -> dict[str, Path]:
    if isinstance(paths, Mapping):
        return {str(track_id): Path(p) for track_id, p in paths.items()}

    tracks: dict[str, Path] = {}
    for p in paths:
        track_id = track_id_for(p)
        if track_id in tracks:
            raise ValueError(f"Duplicate track id {track_id!r} for {p} and {tracks[track_id]}")
        tracks[track_id] = Path(p)
    return tracks
