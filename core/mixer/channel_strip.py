"""
core/mixer/channel_strip.py — Per-track channel strips and their arena.

A ChannelStrip bundles the four effect handles of one track:

    output      gain + pan
    eq          multi-band equalizer
    compressor  dynamics
    reverb      spatial send

Strips live in a ChannelStripArena and are addressed by an opaque integer
StripId. The arena owns every handle it hands out: releasing a strip
destroys its handles, and no handle may back two live strips.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any, NewType

from core.analyzer.types import AudioBuffer
from core.effects import Effect, EffectsFactory, ReverbSettings

logger = logging.getLogger(__name__)

StripId = NewType("StripId", int)

EQ_BAND_COUNT = 7
"""Band slots on a strip EQ: 0 is the high-pass, 1–6 are peaking/shelf bands."""

HANDLE_KINDS: tuple[str, ...] = ("output", "eq", "compressor", "reverb")


class ChannelStripError(RuntimeError):
    """Raised for arena misuse: unknown ids, duplicate tracks, shared handles."""


# ---------------------------------------------------------------------------
# ChannelStrip
# ---------------------------------------------------------------------------


class ChannelStrip:
    """Effect handles and the registered buffer for one track."""

    def __init__(
        self,
        track_id: str,
        output: Effect,
        eq: Effect,
        compressor: Effect,
        reverb: Effect,
        buffer: AudioBuffer | None = None,
    ) -> None:
        self.track_id = track_id
        self.output = output
        self.eq = eq
        self.compressor = compressor
        self.reverb = reverb
        self.buffer = buffer

    def handles(self) -> tuple[Effect, ...]:
        return (self.output, self.eq, self.compressor, self.reverb)

    def set_gain(self, value: float) -> None:
        self.output.set_gain(value)

    def set_pan(self, value: float) -> None:
        self.output.set_pan(value)

    def reset(self) -> None:
        """Unity gain, center pan, flat EQ, bypassed compressor, dry reverb.

        EQ bands are replaced outright so filter frequencies from a previous
        pass (the vocal high-pass on band 0) do not survive the reset.
        """
        self.output.set_gain(1.0)
        self.output.set_pan(0.0)
        self.eq.set_parameters(
            {"eq_bands": {index: {"gain_db": 0.0} for index in range(EQ_BAND_COUNT)}}
        )
        self.compressor.set_bypass(True)
        self.reverb.set_reverb(ReverbSettings(mix=0.0))

    def destroy(self) -> None:
        for handle in self.handles():
            handle.destroy()
        self.buffer = None

    def __repr__(self) -> str:
        return f"ChannelStrip(track_id={self.track_id!r})"


# ---------------------------------------------------------------------------
# ChannelStripArena
# ---------------------------------------------------------------------------


class ChannelStripArena:
    """Owns every channel strip of a mixer.

    Ids are allocated monotonically and never reused, so a stale StripId
    can never address a newer strip.
    """

    def __init__(self, factory: EffectsFactory) -> None:
        self._factory = factory
        self._strips: dict[StripId, ChannelStrip] = {}
        self._by_track: dict[str, StripId] = {}
        self._next_id = 0

    def allocate(self, track_id: str, buffer: AudioBuffer | None = None) -> StripId:
        """Create a strip for ``track_id`` with fresh effect handles.

        Raises:
            ChannelStripError: If the track already has a strip, or the
                factory returned a handle already owned by a live strip.
            Exception: Whatever the factory raises; handles created before
                the failure are destroyed first.
        """
        if track_id in self._by_track:
            raise ChannelStripError(f"Track {track_id!r} already has a channel strip")

        in_use = {id(h) for strip in self._strips.values() for h in strip.handles()}
        handles: list[Effect] = []
        try:
            for kind in HANDLE_KINDS:
                handles.append(self._factory.create(kind, track_id))
        except Exception:
            for handle in {id(h): h for h in handles if id(h) not in in_use}.values():
                handle.destroy()
            raise

        shared = [kind for kind, h in zip(HANDLE_KINDS, handles) if id(h) in in_use]
        duplicated = len({id(h) for h in handles}) != len(handles)
        if shared or duplicated:
            for handle in {id(h): h for h in handles if id(h) not in in_use}.values():
                handle.destroy()
            raise ChannelStripError(
                f"Effects factory returned shared handles for {track_id!r}: "
                f"{shared or 'duplicate within strip'}"
            )

        strip_id = StripId(self._next_id)
        self._next_id += 1
        self._strips[strip_id] = ChannelStrip(track_id, *handles, buffer=buffer)
        self._by_track[track_id] = strip_id
        logger.debug("Allocated strip %d for track %r", strip_id, track_id)
        return strip_id

    def get(self, strip_id: StripId) -> ChannelStrip:
        """Raises ChannelStripError if the id is unknown or released."""
        strip = self._strips.get(strip_id)
        if strip is None:
            raise ChannelStripError(f"No live channel strip with id {strip_id}")
        return strip

    def id_for(self, track_id: str) -> StripId:
        """Raises ChannelStripError if the track has no strip."""
        strip_id = self._by_track.get(track_id)
        if strip_id is None:
            raise ChannelStripError(f"Track {track_id!r} has no channel strip")
        return strip_id

    def strip_for(self, track_id: str) -> ChannelStrip:
        return self.get(self.id_for(track_id))

    def release(self, strip_id: StripId) -> None:
        """Destroy a strip and its handles."""
        strip = self.get(strip_id)
        del self._strips[strip_id]
        del self._by_track[strip.track_id]
        strip.destroy()
        logger.debug("Released strip %d (track %r)", strip_id, strip.track_id)

    def release_all(self) -> None:
        for strip_id in list(self._strips):
            self.release(strip_id)

    def track_ids(self) -> list[str]:
        """Track ids in allocation order."""
        return list(self._by_track)

    def __iter__(self) -> Iterator[ChannelStrip]:
        return iter(list(self._strips.values()))

    def __len__(self) -> int:
        return len(self._strips)

    def __contains__(self, track_id: Any) -> bool:
        return track_id in self._by_track
