"""Tests for core/mixer/channel_strip.py — strips and the strip arena."""

from __future__ import annotations

import pytest

from core.effects import InMemoryEffect, InMemoryEffectsFactory
from core.mixer.channel_strip import (
    EQ_BAND_COUNT,
    ChannelStripArena,
    ChannelStripError,
)


class _SharingFactory:
    """Hands out the same handle for every call: a misbehaving collaborator."""

    def __init__(self) -> None:
        self.handle = InMemoryEffect("shared", "everyone")

    def create(self, kind: str, owner: str) -> InMemoryEffect:
        return self.handle


class _RecyclingFactory(InMemoryEffectsFactory):
    """Returns a previously issued handle once ``recycle`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.recycle: InMemoryEffect | None = None

    def create(self, kind: str, owner: str) -> InMemoryEffect:
        if self.recycle is not None and kind == "eq":
            return self.recycle
        return super().create(kind, owner)


class _FailingFactory(InMemoryEffectsFactory):
    """Raises when asked for ``fail_kind``; earlier handles are already issued."""

    def __init__(self, fail_kind: str) -> None:
        super().__init__()
        self.fail_kind = fail_kind

    def create(self, kind: str, owner: str) -> InMemoryEffect:
        if kind == self.fail_kind:
            raise RuntimeError(f"cannot create {kind}")
        return super().create(kind, owner)


class TestArenaAllocation:
    def test_allocates_four_handles(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        arena.allocate("kick")
        assert sorted(e.kind for e in factory.created) == ["compressor", "eq", "output", "reverb"]
        assert all(e.owner == "kick" for e in factory.created)

    def test_ids_are_monotonic_and_never_reused(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        first = arena.allocate("a")
        arena.release(first)
        second = arena.allocate("a")
        assert second != first
        with pytest.raises(ChannelStripError):
            arena.get(first)

    def test_duplicate_track_raises(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        arena.allocate("kick")
        with pytest.raises(ChannelStripError, match="already"):
            arena.allocate("kick")

    def test_duplicate_handle_within_strip_raises(self) -> None:
        sharing = _SharingFactory()
        arena = ChannelStripArena(sharing)
        with pytest.raises(ChannelStripError, match="shared"):
            arena.allocate("kick")
        assert sharing.handle.destroyed is True
        assert len(arena) == 0

    def test_handle_shared_with_live_strip_raises(self) -> None:
        factory = _RecyclingFactory()
        arena = ChannelStripArena(factory)
        arena.allocate("kick")
        kick_eq = arena.strip_for("kick").eq
        factory.recycle = kick_eq  # type: ignore[assignment]
        with pytest.raises(ChannelStripError, match="eq"):
            arena.allocate("snare")
        # the live strip's handle survives; the new non-shared ones are destroyed
        assert kick_eq.destroyed is False  # type: ignore[attr-defined]
        snare_handles = [e for e in factory.created if e.owner == "snare"]
        assert snare_handles and all(e.destroyed for e in snare_handles)
        assert "snare" not in arena


    def test_factory_error_destroys_partial_handles(self) -> None:
        factory = _FailingFactory("compressor")
        arena = ChannelStripArena(factory)
        with pytest.raises(RuntimeError, match="cannot create compressor"):
            arena.allocate("kick")
        assert [e.kind for e in factory.created] == ["output", "eq"]
        assert all(e.destroyed for e in factory.created)
        assert "kick" not in arena
        assert len(arena) == 0

    def test_factory_error_spares_live_strip_handles(self) -> None:
        class _RecycleThenFail(_RecyclingFactory):
            def create(self, kind: str, owner: str) -> InMemoryEffect:
                if kind == "reverb" and self.recycle is not None:
                    raise RuntimeError("no reverb slots left")
                return super().create(kind, owner)

        factory = _RecycleThenFail()
        arena = ChannelStripArena(factory)
        arena.allocate("kick")
        kick_eq = arena.strip_for("kick").eq
        factory.recycle = kick_eq  # type: ignore[assignment]

        with pytest.raises(RuntimeError, match="reverb"):
            arena.allocate("snare")
        assert kick_eq.destroyed is False  # type: ignore[attr-defined]
        assert all(e.destroyed for e in factory.created if e.owner == "snare")


class TestArenaLookup:
    def test_lookup_by_track(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        strip_id = arena.allocate("bass")
        assert arena.id_for("bass") == strip_id
        assert arena.get(strip_id).track_id == "bass"
        assert "bass" in arena
        assert len(arena) == 1

    def test_unknown_track_raises(self, factory: InMemoryEffectsFactory) -> None:
        with pytest.raises(ChannelStripError, match="no channel strip"):
            ChannelStripArena(factory).id_for("ghost")

    def test_track_ids_in_allocation_order(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        for name in ("vocal", "kick", "bass"):
            arena.allocate(name)
        assert arena.track_ids() == ["vocal", "kick", "bass"]
        assert [s.track_id for s in arena] == ["vocal", "kick", "bass"]


class TestArenaRelease:
    def test_release_destroys_handles(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        arena.release(arena.allocate("kick"))
        assert all(e.destroyed for e in factory.created)
        assert "kick" not in arena

    def test_release_all(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        arena.allocate("a")
        arena.allocate("b")
        arena.release_all()
        assert len(arena) == 0
        assert all(e.destroyed for e in factory.created)


class TestChannelStrip:
    def test_gain_and_pan_go_to_output(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        strip = arena.get(arena.allocate("guitar"))
        strip.set_gain(0.5)
        strip.set_pan(-0.7)
        params = factory.find("output", "guitar").get_parameters()
        assert params["gain"] == 0.5
        assert params["pan"] == -0.7

    def test_reset_is_neutral(self, factory: InMemoryEffectsFactory) -> None:
        arena = ChannelStripArena(factory)
        strip = arena.get(arena.allocate("vocal"))
        strip.eq.set_eq_band(0, frequency=80.0)
        strip.eq.set_eq_band(4, frequency=4000.0, gain_db=3.0)
        strip.compressor.set_bypass(False)
        strip.reset()

        assert factory.find("output", "vocal").get_parameters()["gain"] == 1.0
        assert factory.find("output", "vocal").get_parameters()["pan"] == 0.0
        bands = factory.find("eq", "vocal").get_parameters()["eq_bands"]
        assert len(bands) == EQ_BAND_COUNT
        assert all(band == {"gain_db": 0.0} for band in bands.values())
        assert factory.find("compressor", "vocal").get_parameters()["bypass"] is True
        assert factory.find("reverb", "vocal").get_parameters()["reverb"]["mix"] == 0.0
