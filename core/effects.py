"""
core/effects.py — Contracts for the external effects collaborators.

The mixing and mastering engines never run EQ, compression or reverb DSP
themselves. They compute parameters and push them through the setters
defined here. Concrete processors (a plugin host, a DAW bridge, an offline
renderer) implement these protocols outside core/.

The InMemory* classes are plain parameter stores: every setter records the
value so it can be read back through ``get_parameters()``. They are the
default collaborators when a caller supplies none, and what the tests inspect.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any, Protocol, runtime_checkable

# ---------------------------------------------------------------------------
# Parameter value objects
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompressorSettings:
    """Parameters for a compressor or limiter.

    ``knee`` is optional: ``None`` leaves the processor's current knee untouched.
    """

    threshold: float
    """Threshold in dBFS."""

    ratio: float
    """Compression ratio (4.0 means 4:1). 1.0 is transparent."""

    attack: float
    """Attack time in seconds."""

    release: float
    """Release time in seconds."""

    knee: float | None = None
    """Soft-knee width in dB."""

    def label(self) -> str:
        """Short human-readable form, e.g. ``'4:1 @ -18dB'``."""
        return f"{self.ratio:g}:1 @ {self.threshold:g}dB"


@dataclass(frozen=True)
class EqBand:
    """One EQ move.

    ``gain_db`` is None for filter-only bands (e.g. a high-pass).
    """

    index: int
    """Band slot on the EQ effect."""

    frequency: float
    """Center or corner frequency in Hz."""

    gain_db: float | None = None

    def describe(self) -> str:
        if self.gain_db is None:
            return f"HP@{self.frequency:g}Hz"
        return f"{self.gain_db:+g}dB@{self.frequency:g}Hz"


@dataclass(frozen=True)
class ReverbSettings:
    """Parameters for a reverb send. ``None`` fields are left unchanged."""

    mix: float
    """Wet/dry mix 0–1."""

    reverb_type: str | None = None
    """Algorithm name: 'plate', 'room', 'hall'."""

    decay: float | None = None
    """Decay time scale 0–1."""


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Effect(Protocol):
    """
    Protocol for a single effect handle (EQ, compressor, reverb, fader...).

    An engine only ever calls the setters relevant to the handle's kind;
    implementations may ignore the others.
    """

    def set_eq_band(
        self,
        index: int,
        frequency: float | None = None,
        gain_db: float | None = None,
        q: float | None = None,
    ) -> None: ...

    def set_compressor(self, settings: CompressorSettings) -> None: ...

    def set_reverb(self, settings: ReverbSettings) -> None: ...

    def set_gain(self, value: float) -> None: ...

    def set_pan(self, value: float) -> None: ...

    def set_bypass(self, bypass: bool) -> None: ...

    def get_parameters(self) -> dict[str, Any]: ...

    def set_parameters(self, params: Mapping[str, Any]) -> None: ...

    def destroy(self) -> None: ...


@runtime_checkable
class EffectsFactory(Protocol):
    """Creates effect handles. Each call must return a new, unshared handle."""

    def create(self, kind: str, owner: str) -> Effect:
        """
        Create an effect handle.

        Args:
            kind: 'eq', 'compressor', 'reverb', 'output', 'stereo' or 'limiter'.
            owner: Identifier of the component that will own the handle
                (track id, 'master', 'multiband:1', ...).
        """
        ...


@runtime_checkable
class GainResource(Protocol):
    """A single amplitude-control sink (master bus, makeup gain)."""

    def set_gain(self, value: float) -> None: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class EffectDestroyedError(RuntimeError):
    """Raised when a setter is called on a destroyed in-memory effect."""


class InMemoryEffect:
    """Parameter store satisfying :class:`Effect`.

    Keeps the latest value of every setter call plus an ordered call log,
    which makes pass-to-pass comparisons straightforward in tests.
    """

    def __init__(self, kind: str, owner: str) -> None:
        self.kind = kind
        self.owner = owner
        self.destroyed = False
        self.calls: list[tuple[str, Any]] = []
        self._params: dict[str, Any] = {"bypass": False, "eq_bands": {}}

    def _check_alive(self) -> None:
        if self.destroyed:
            raise EffectDestroyedError(f"{self.kind} effect for {self.owner!r} was destroyed")

    def set_eq_band(
        self,
        index: int,
        frequency: float | None = None,
        gain_db: float | None = None,
        q: float | None = None,
    ) -> None:
        self._check_alive()
        band = self._params["eq_bands"].setdefault(index, {})
        if frequency is not None:
            band["frequency"] = frequency
        if gain_db is not None:
            band["gain_db"] = gain_db
        if q is not None:
            band["q"] = q
        self.calls.append(("set_eq_band", (index, frequency, gain_db, q)))

    def set_compressor(self, settings: CompressorSettings) -> None:
        self._check_alive()
        current = self._params.get("compressor", {})
        update = {k: v for k, v in asdict(settings).items() if v is not None}
        self._params["compressor"] = {**current, **update}
        self.calls.append(("set_compressor", settings))

    def set_reverb(self, settings: ReverbSettings) -> None:
        self._check_alive()
        current = self._params.get("reverb", {})
        update = {k: v for k, v in asdict(settings).items() if v is not None}
        self._params["reverb"] = {**current, **update}
        self.calls.append(("set_reverb", settings))

    def set_gain(self, value: float) -> None:
        self._check_alive()
        self._params["gain"] = float(value)
        self.calls.append(("set_gain", float(value)))

    def set_pan(self, value: float) -> None:
        self._check_alive()
        if not -1.0 <= value <= 1.0:
            raise ValueError(f"Pan must be in [-1, 1], got {value}")
        self._params["pan"] = float(value)
        self.calls.append(("set_pan", float(value)))

    def set_bypass(self, bypass: bool) -> None:
        self._check_alive()
        self._params["bypass"] = bool(bypass)
        self.calls.append(("set_bypass", bool(bypass)))

    def get_parameters(self) -> dict[str, Any]:
        return copy.deepcopy(self._params)

    def set_parameters(self, params: Mapping[str, Any]) -> None:
        self._check_alive()
        self._params.update(copy.deepcopy(dict(params)))
        self.calls.append(("set_parameters", dict(params)))

    def destroy(self) -> None:
        self.destroyed = True

    def __repr__(self) -> str:
        return f"InMemoryEffect(kind={self.kind!r}, owner={self.owner!r})"


class InMemoryEffectsFactory:
    """Factory producing :class:`InMemoryEffect` handles and remembering them."""

    def __init__(self) -> None:
        self.created: list[InMemoryEffect] = []

    def create(self, kind: str, owner: str) -> InMemoryEffect:
        effect = InMemoryEffect(kind, owner)
        self.created.append(effect)
        return effect

    def find(self, kind: str, owner: str) -> InMemoryEffect:
        """Return the most recently created live handle for (kind, owner).

        Raises:
            KeyError: If no such handle exists.
        """
        for effect in reversed(self.created):
            if effect.kind == kind and effect.owner == owner and not effect.destroyed:
                return effect
        raise KeyError(f"No live {kind!r} effect for owner {owner!r}")


class InMemoryGain:
    """Gain sink satisfying :class:`GainResource`."""

    def __init__(self, value: float = 1.0) -> None:
        self.value = value
        self.history: list[float] = []

    def set_gain(self, value: float) -> None:
        self.value = float(value)
        self.history.append(float(value))
