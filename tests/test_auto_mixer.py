"""
Tests for core/mixer/mixer.py — AutoMixer end-to-end passes.

Coverage:
    - pass structure: stage order, classifications, master loudness
    - skipped tracks: strip allocation, missing buffer, failing fetch, failing analysis
    - idempotence: reset() followed by the same pass gives the same state
    - cancellation at stage boundaries
    - success=False without a master bus; use after destroy()
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import numpy as np
import pytest

from core.analyzer.types import AudioBuffer
from core.config import MixerConfig
from core.effects import InMemoryEffect, InMemoryEffectsFactory, InMemoryGain
from core.mixer.channel_strip import ChannelStripError
from core.mixer.mixer import AutoMixer
from core.mixer.types import InstrumentClass
from core.pipeline import PassCancelledError

SR = 44100
N = SR * 2

STAGE_ORDER = ["gain", "eq", "compression", "pan", "reverb", "loudness"]


def _sine(freq_hz: float, amplitude: float = 0.5, sr: int = SR, n: int = N) -> np.ndarray:
    """Generate a mono sine wave."""
    t = np.linspace(0, n / sr, n, endpoint=False)
    return (amplitude * np.sin(2.0 * np.pi * freq_hz * t)).astype(np.float64)


def _buffer(y: np.ndarray, sr: int = SR) -> AudioBuffer:
    return AudioBuffer.from_array(y, sr)


def _session() -> dict[str, AudioBuffer]:
    return {
        "bass": _buffer(_sine(60.0)),
        "lead": _buffer(_sine(1000.0)),
        "hats": _buffer(_sine(12000.0, amplitude=0.2)),
    }


def _snapshot(factory: InMemoryEffectsFactory) -> list[dict]:
    return [e.get_parameters() for e in factory.created if not e.destroyed]


class _FlakyFactory(InMemoryEffectsFactory):
    """Refuses to create the compressor for one track, after its output and EQ exist."""

    def __init__(self, refuse_owner: str) -> None:
        super().__init__()
        self.refuse_owner = refuse_owner

    def create(self, kind: str, owner: str) -> InMemoryEffect:
        if kind == "compressor" and owner == self.refuse_owner:
            raise RuntimeError("plugin host refused compressor")
        return super().create(kind, owner)


@pytest.fixture
def mixer(factory: InMemoryEffectsFactory, master_bus: InMemoryGain) -> AutoMixer:
    return AutoMixer(factory, master_bus=master_bus)


# ---------------------------------------------------------------------------
# Pass structure
# ---------------------------------------------------------------------------


class TestMixPass:
    async def test_adjustments_in_stage_order(self, mixer: AutoMixer) -> None:
        result = await mixer.mix(_session())
        assert result.success is True
        params = [a.parameter for a in result.adjustments]
        first_index = [params.index(p) for p in STAGE_ORDER if p in params]
        assert first_index == sorted(first_index)
        assert params[-1] == "loudness"

    async def test_classifications(self, mixer: AutoMixer) -> None:
        result = await mixer.mix(_session())
        assert result.classifications == {
            "bass": InstrumentClass.bass,
            "lead": InstrumentClass.synth,
            "hats": InstrumentClass.hihat,
        }

    async def test_unknown_tracks_get_strips(self, mixer: AutoMixer) -> None:
        await mixer.mix(_session())
        assert set(mixer.track_ids()) == {"bass", "lead", "hats"}

    async def test_registered_buffers_used_without_tracks(self, mixer: AutoMixer) -> None:
        for track_id, buffer in _session().items():
            mixer.add_track(track_id, buffer)
        result = await mixer.mix()
        assert set(result.classifications) == {"bass", "lead", "hats"}

    async def test_known_master_loudness_at_target_gives_zero_db(
        self, mixer: AutoMixer, master_bus: InMemoryGain
    ) -> None:
        result = await mixer.mix(_session(), master_lufs=-14.0)
        (loudness,) = [a for a in result.adjustments if a.parameter == "loudness"]
        assert loudness.value == 0.0
        assert master_bus.value == pytest.approx(1.0)

    async def test_master_loudness_is_measured(self, mixer: AutoMixer, master_bus: InMemoryGain) -> None:
        result = await mixer.mix(_session())
        (loudness,) = result.adjustments_for("master")
        assert loudness.value != 0.0
        assert master_bus.value == pytest.approx(10.0 ** (loudness.value / 20.0))

    async def test_mixed_sample_rates_fall_back_to_assumed_loudness(
        self, factory: InMemoryEffectsFactory, master_bus: InMemoryGain
    ) -> None:
        mixer = AutoMixer(factory, master_bus=master_bus, config=MixerConfig(assumed_master_lufs=-18.0))
        tracks = {
            "bass": _buffer(_sine(60.0)),
            "lead": _buffer(_sine(1000.0, sr=48000, n=96000), sr=48000),
        }
        result = await mixer.mix(tracks)
        (loudness,) = result.adjustments_for("master")
        assert loudness.value == pytest.approx(4.0)

    async def test_empty_session_leaves_master_at_unity(
        self, mixer: AutoMixer, master_bus: InMemoryGain
    ) -> None:
        result = await mixer.mix({})
        assert result.success is True
        (loudness,) = result.adjustments
        assert loudness.value == 0.0
        assert master_bus.value == 1.0

    async def test_streaming_recommendations_close_the_list(self, mixer: AutoMixer) -> None:
        result = await mixer.mix(_session())
        assert result.recommendations[-3:] == (
            "Mix optimized for streaming platforms (-14 LUFS)",
            "Consider using a limiter on master bus for extra loudness",
            "Check mix translation on different speakers",
        )

    async def test_clipping_track_is_recommended(self, mixer: AutoMixer) -> None:
        result = await mixer.mix({"hot": _buffer(_sine(1000.0, amplitude=1.0))})
        assert any(r.startswith("Track 'hot' is clipping") for r in result.recommendations)

    async def test_as_dict_is_json_ready(self, mixer: AutoMixer) -> None:
        import json

        payload = (await mixer.mix(_session())).as_dict()
        assert json.loads(json.dumps(payload))["classifications"]["bass"] == "bass"


# ---------------------------------------------------------------------------
# Skipped tracks
# ---------------------------------------------------------------------------


class TestSkippedTracks:
    async def test_skip_reasons(self, mixer: AutoMixer) -> None:
        async def broken_fetch() -> AudioBuffer:
            raise OSError("disk gone")

        async def good_fetch() -> AudioBuffer:
            return _buffer(_sine(1000.0))

        result = await mixer.mix(
            {"missing": None, "broken": broken_fetch, "fetched": good_fetch}
        )
        assert result.success is True
        assert result.skip_reasons == {"missing": "missing_buffer", "broken": "fetch_failed"}
        assert result.skipped_tracks == ("missing", "broken")
        assert set(result.classifications) == {"fetched"}
        assert "Track 'missing' was skipped: no audio buffer was available" in result.recommendations
        assert result.adjustments_for("missing") == ()

    async def test_analysis_failure_is_skipped(
        self, factory: InMemoryEffectsFactory, master_bus: InMemoryGain
    ) -> None:
        class _BrokenAnalyser:
            def connect(self, buffer: AudioBuffer) -> None:
                raise RuntimeError("analyser offline")

            def disconnect(self) -> None:
                pass

            def destroy(self) -> None:
                pass

        mixer = AutoMixer(factory, master_bus=master_bus, analyser=_BrokenAnalyser())  # type: ignore[arg-type]
        result = await mixer.mix({"lead": _buffer(_sine(1000.0))})
        assert result.skip_reasons == {"lead": "analysis_failed"}

    async def test_strip_allocation_failure_is_skipped(self, master_bus: InMemoryGain) -> None:
        factory = _FlakyFactory("bad")
        mixer = AutoMixer(factory, master_bus=master_bus)
        result = await mixer.mix({"good": _buffer(_sine(1000.0)), "bad": _buffer(_sine(60.0))})

        assert result.success is True
        assert result.skip_reasons == {"bad": "strip_failed"}
        assert set(result.classifications) == {"good"}
        assert (
            "Track 'bad' was skipped: no channel strip could be created for it"
            in result.recommendations
        )
        assert "bad" not in mixer.track_ids()
        bad_handles = [e for e in factory.created if e.owner == "bad"]
        assert [e.kind for e in bad_handles] == ["output", "eq"]
        assert all(e.destroyed for e in bad_handles)

    async def test_strip_failure_does_not_stop_next_pass(self, master_bus: InMemoryGain) -> None:
        factory = _FlakyFactory("bad")
        mixer = AutoMixer(factory, master_bus=master_bus)
        await mixer.mix({"bad": _buffer(_sine(60.0))})

        factory.refuse_owner = ""
        result = await mixer.mix({"bad": _buffer(_sine(60.0))})
        assert result.skip_reasons == {}
        assert set(result.classifications) == {"bad"}

    async def test_registered_track_without_buffer(self, mixer: AutoMixer) -> None:
        mixer.add_track("empty")
        result = await mixer.mix()
        assert result.skip_reasons == {"empty": "missing_buffer"}

    async def test_failing_effect_is_recommended(
        self, mixer: AutoMixer, factory: InMemoryEffectsFactory
    ) -> None:
        mixer.add_track("lead", _buffer(_sine(1000.0)))
        factory.find("reverb", "lead").destroy()
        result = await mixer.mix()
        assert result.success is True
        assert any(
            r.startswith("Could not apply reverb to track 'lead'") for r in result.recommendations
        )


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------


class TestIdempotence:
    async def test_reset_then_same_pass_gives_same_state(
        self, mixer: AutoMixer, factory: InMemoryEffectsFactory, master_bus: InMemoryGain
    ) -> None:
        session = _session()
        await mixer.mix(session)

        mixer.reset()
        first = await mixer.mix(session)
        first_state = _snapshot(factory)
        first_master = master_bus.value

        mixer.reset()
        second = await mixer.mix(session)

        assert second.adjustments == first.adjustments
        assert second.recommendations == first.recommendations
        assert _snapshot(factory) == first_state
        assert master_bus.value == pytest.approx(first_master)

    async def test_reset_drops_high_pass_from_earlier_class(
        self, mixer: AutoMixer, factory: InMemoryEffectsFactory
    ) -> None:
        mixer.add_track("lead", _buffer(_sine(1000.0)))
        mixer.strip("lead").eq.set_eq_band(0, frequency=80.0)  # vocal high-pass

        mixer.reset()
        result = await mixer.mix()

        assert result.classifications == {"lead": InstrumentClass.synth}
        band_0 = factory.find("eq", "lead").get_parameters()["eq_bands"][0]
        assert band_0 == {"gain_db": 0.0}

    async def test_pass_never_reads_previous_adjustments(self, mixer: AutoMixer) -> None:
        session = _session()
        first = await mixer.mix(session)
        second = await mixer.mix(session)
        assert len(second.adjustments) == len(first.adjustments)

    async def test_reset_restores_unity_master(
        self, mixer: AutoMixer, master_bus: InMemoryGain
    ) -> None:
        await mixer.mix(_session())
        mixer.reset()
        assert master_bus.value == 1.0


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    async def test_preset_token_cancels_before_analysis(self, mixer: AutoMixer) -> None:
        cancel = asyncio.Event()
        cancel.set()
        with pytest.raises(PassCancelledError) as exc_info:
            await mixer.mix(_session(), cancel=cancel)
        assert exc_info.value.stage == "analyze"

    async def test_token_set_during_fetch_cancels_at_next_boundary(
        self, mixer: AutoMixer, master_bus: InMemoryGain
    ) -> None:
        cancel = asyncio.Event()

        async def fetch() -> AudioBuffer:
            cancel.set()
            return _buffer(_sine(1000.0))

        with pytest.raises(PassCancelledError) as exc_info:
            await mixer.mix({"lead": fetch}, cancel=cancel)
        assert exc_info.value.stage == "classify"
        assert master_bus.history == []


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_no_master_bus_fails_the_pass(self, mixer: AutoMixer) -> None:
        mixer.set_master_bus(None)
        result = await mixer.mix(_session())
        assert result.success is False
        assert result.adjustments == ()

    async def test_factory_without_master_bus(self) -> None:
        class _NoOutputFactory(InMemoryEffectsFactory):
            def create(self, kind: str, owner: str):
                if owner == "master":
                    raise RuntimeError("no master output")
                return super().create(kind, owner)

        mixer = AutoMixer(_NoOutputFactory())
        assert mixer.master_bus is None
        result = await mixer.mix(_session())
        assert result.success is False

    def test_default_master_bus_comes_from_factory(self, factory: InMemoryEffectsFactory) -> None:
        mixer = AutoMixer(factory)
        assert mixer.master_bus is factory.find("output", "master")

    def test_duplicate_track_raises(self, mixer: AutoMixer) -> None:
        mixer.add_track("kick")
        with pytest.raises(ChannelStripError):
            mixer.add_track("kick")

    async def test_set_buffer_fills_registered_track(self, mixer: AutoMixer) -> None:
        mixer.add_track("bass")
        mixer.set_buffer("bass", _buffer(_sine(60.0)))
        result = await mixer.mix()
        assert result.classifications == {"bass": InstrumentClass.bass}

    def test_remove_track_destroys_handles(
        self, mixer: AutoMixer, factory: InMemoryEffectsFactory
    ) -> None:
        mixer.add_track("kick")
        mixer.remove_track("kick")
        assert "kick" not in mixer.track_ids()
        assert all(e.destroyed for e in factory.created if e.owner == "kick")

    async def test_destroy_releases_everything(self, factory: InMemoryEffectsFactory) -> None:
        mixer = AutoMixer(factory)
        await mixer.mix(_session())
        mixer.destroy()
        assert all(e.destroyed for e in factory.created)
        with pytest.raises(RuntimeError, match="destroyed"):
            await mixer.mix(_session())

    def test_destroy_is_idempotent(self, mixer: AutoMixer) -> None:
        mixer.destroy()
        mixer.destroy()


class TestCollaborators:
    async def test_master_bus_mock_receives_linear_gain(self, factory: InMemoryEffectsFactory) -> None:
        bus = MagicMock(spec=["set_gain"])
        mixer = AutoMixer(factory, master_bus=bus)
        await mixer.mix(_session(), master_lufs=-20.0)
        bus.set_gain.assert_called_once()
        (value,), _ = bus.set_gain.call_args
        assert value == pytest.approx(10.0 ** (6.0 / 20.0))

    async def test_task_cancel_lands_at_stage_boundary(self, mixer: AutoMixer) -> None:
        task = asyncio.create_task(mixer.mix(_session()))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
