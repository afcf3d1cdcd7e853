"""Tests for core/effects.py — parameter value objects and in-memory effects."""

from __future__ import annotations

import pytest

from core.effects import (
    CompressorSettings,
    Effect,
    EffectDestroyedError,
    EffectsFactory,
    EqBand,
    GainResource,
    InMemoryEffect,
    InMemoryEffectsFactory,
    InMemoryGain,
    ReverbSettings,
)


class TestValueObjects:
    def test_compressor_label(self) -> None:
        settings = CompressorSettings(threshold=-18.0, ratio=4.0, attack=0.01, release=0.1)
        assert settings.label() == "4:1 @ -18dB"

    def test_compressor_label_fractional_ratio(self) -> None:
        settings = CompressorSettings(threshold=-6.0, ratio=1.1, attack=0.01, release=0.1)
        assert settings.label() == "1.1:1 @ -6dB"

    def test_eq_band_describe(self) -> None:
        assert EqBand(1, 60.0, 4.0).describe() == "+4dB@60Hz"
        assert EqBand(2, 250.0, -2.0).describe() == "-2dB@250Hz"

    def test_filter_only_band(self) -> None:
        assert EqBand(0, 80.0).describe() == "HP@80Hz"


class TestProtocols:
    def test_in_memory_effect_satisfies_effect(self) -> None:
        assert isinstance(InMemoryEffect("eq", "kick"), Effect)

    def test_factory_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryEffectsFactory(), EffectsFactory)

    def test_gain_satisfies_gain_resource(self) -> None:
        assert isinstance(InMemoryGain(), GainResource)
        assert isinstance(InMemoryEffect("output", "master"), GainResource)


class TestInMemoryEffect:
    def test_eq_band_updates_only_given_fields(self) -> None:
        eq = InMemoryEffect("eq", "vocal")
        eq.set_eq_band(2, frequency=250.0, gain_db=-2.0)
        eq.set_eq_band(2, gain_db=0.0)
        assert eq.get_parameters()["eq_bands"][2] == {"frequency": 250.0, "gain_db": 0.0}

    def test_compressor_none_knee_keeps_previous(self) -> None:
        comp = InMemoryEffect("compressor", "vocal")
        comp.set_compressor(CompressorSettings(-12.0, 3.0, 0.005, 0.05, knee=6.0))
        comp.set_compressor(CompressorSettings(-18.0, 4.0, 0.01, 0.1))
        params = comp.get_parameters()["compressor"]
        assert params["threshold"] == -18.0
        assert params["knee"] == 6.0

    def test_reverb_merges_fields(self) -> None:
        reverb = InMemoryEffect("reverb", "snare")
        reverb.set_reverb(ReverbSettings(mix=0.2, reverb_type="room", decay=0.3))
        reverb.set_reverb(ReverbSettings(mix=0.0))
        assert reverb.get_parameters()["reverb"] == {"mix": 0.0, "reverb_type": "room", "decay": 0.3}

    def test_pan_out_of_range_raises(self) -> None:
        out = InMemoryEffect("output", "guitar")
        with pytest.raises(ValueError, match="Pan"):
            out.set_pan(1.5)

    def test_get_parameters_is_a_copy(self) -> None:
        eq = InMemoryEffect("eq", "kick")
        eq.set_eq_band(1, frequency=60.0, gain_db=4.0)
        snapshot = eq.get_parameters()
        snapshot["eq_bands"][1]["gain_db"] = 99.0
        assert eq.get_parameters()["eq_bands"][1]["gain_db"] == 4.0

    def test_set_parameters_merges(self) -> None:
        stereo = InMemoryEffect("stereo", "master")
        stereo.set_parameters({"width": 1.2})
        assert stereo.get_parameters()["width"] == 1.2
        assert stereo.get_parameters()["bypass"] is False

    def test_call_log(self) -> None:
        out = InMemoryEffect("output", "bass")
        out.set_gain(0.5)
        out.set_bypass(True)
        assert out.calls == [("set_gain", 0.5), ("set_bypass", True)]

    def test_destroyed_effect_rejects_setters(self) -> None:
        out = InMemoryEffect("output", "bass")
        out.destroy()
        with pytest.raises(EffectDestroyedError):
            out.set_gain(1.0)


class TestInMemoryEffectsFactory:
    def test_every_handle_is_new(self) -> None:
        factory = InMemoryEffectsFactory()
        a = factory.create("eq", "kick")
        b = factory.create("eq", "kick")
        assert a is not b
        assert factory.created == [a, b]

    def test_find_returns_latest_live_handle(self) -> None:
        factory = InMemoryEffectsFactory()
        first = factory.create("eq", "kick")
        second = factory.create("eq", "kick")
        assert factory.find("eq", "kick") is second
        second.destroy()
        assert factory.find("eq", "kick") is first

    def test_find_missing_raises(self) -> None:
        with pytest.raises(KeyError):
            InMemoryEffectsFactory().find("reverb", "nobody")


class TestInMemoryGain:
    def test_records_history(self) -> None:
        gain = InMemoryGain()
        gain.set_gain(2.0)
        gain.set_gain(1.0)
        assert gain.value == 1.0
        assert gain.history == [2.0, 1.0]
