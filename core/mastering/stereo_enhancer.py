"""
core/mastering/stereo_enhancer.py — Mid/side width control with bass mono.

    M  = (L + R) / 2
    S  = (L − R) / 2
    L' = M · (2 − w) + HP(S) · w
    R' = M · (2 − w) − HP(S) · w

HP is a 2nd-order Butterworth high-pass at the bass-mono cutoff, so content
below the cutoff is folded to mono while content above it keeps the adjusted
width. Balance is applied after reconstruction as a per-side attenuation.

StereoEnhancer keeps its parameters locally, pushes them to an external
'stereo' effect handle, and can also render them offline with process().
"""

from __future__ import annotations

import numpy as np
from scipy import signal as scipy_signal

from core.analyzer.types import AudioBuffer
from core.effects import Effect, EffectsFactory

MIN_WIDTH = 0.0
MAX_WIDTH = 2.0
MIN_BASS_MONO_HZ = 20.0
MAX_BASS_MONO_HZ = 500.0

DEFAULT_WIDTH = 1.0
DEFAULT_BASS_MONO_HZ = 100.0


class StereoEnhancer:
    """Width, bass-mono cutoff and balance of the master."""

    def __init__(self, factory: EffectsFactory, owner: str = "master") -> None:
        self._handle: Effect = factory.create("stereo", owner)
        self.width = DEFAULT_WIDTH
        self.bass_mono_hz = DEFAULT_BASS_MONO_HZ
        self.balance = 0.0
        self.bypassed = False
        self._push()

    @property
    def mid_gain(self) -> float:
        return 2.0 - self._effective_width()

    @property
    def side_gain(self) -> float:
        return self._effective_width()

    def set_width(self, width: float) -> None:
        """Set stereo width, clamped to [0, 2]. 1 leaves the image unchanged."""
        self.width = float(np.clip(width, MIN_WIDTH, MAX_WIDTH))
        self._push()

    def set_bass_mono_frequency(self, frequency: float) -> None:
        """Set the bass-mono cutoff, clamped to [20, 500] Hz."""
        self.bass_mono_hz = float(np.clip(frequency, MIN_BASS_MONO_HZ, MAX_BASS_MONO_HZ))
        self._push()

    def set_balance(self, balance: float) -> None:
        """Shift the image, clamped to [−1, 1]. Positive attenuates the left side."""
        self.balance = float(np.clip(balance, -1.0, 1.0))
        self._push()

    def set_bypass(self, bypass: bool) -> None:
        """Bypass runs at width 1 and balance 0; stored settings are kept."""
        self.bypassed = bypass
        self._push()

    def reset(self) -> None:
        self.width = DEFAULT_WIDTH
        self.bass_mono_hz = DEFAULT_BASS_MONO_HZ
        self.balance = 0.0
        self._push()

    def process(self, buffer: AudioBuffer) -> AudioBuffer:
        """Render the current settings onto a stereo buffer.

        Raises:
            ValueError: If the buffer does not have exactly two channels.
        """
        if buffer.number_of_channels != 2:
            raise ValueError(
                f"StereoEnhancer needs a 2-channel buffer, got {buffer.number_of_channels}"
            )
        if self.bypassed:
            return buffer

        left = buffer.get_channel_data(0)
        right = buffer.get_channel_data(1)
        mid = (left + right) / 2.0
        side = (left - right) / 2.0

        nyquist = buffer.sample_rate / 2.0
        wn = min(self.bass_mono_hz, nyquist * 0.99) / nyquist
        sos = scipy_signal.butter(2, wn, btype="high", output="sos")
        side_hp = scipy_signal.sosfilt(sos, side)

        out_left = mid * self.mid_gain + side_hp * self.side_gain
        out_right = mid * self.mid_gain - side_hp * self.side_gain

        left_gain, right_gain = self._balance_gains()
        channels = np.vstack([out_left * left_gain, out_right * right_gain])
        return AudioBuffer(channels=channels, sample_rate=buffer.sample_rate)

    def destroy(self) -> None:
        self._handle.destroy()

    # -- Private helpers ------------------------------------------------------

    def _effective_width(self) -> float:
        return DEFAULT_WIDTH if self.bypassed else self.width

    def _balance_gains(self) -> tuple[float, float]:
        balance = 0.0 if self.bypassed else self.balance
        return min(1.0, 1.0 - balance), min(1.0, 1.0 + balance)

    def _push(self) -> None:
        left_gain, right_gain = self._balance_gains()
        self._handle.set_parameters(
            {
                "width": self._effective_width(),
                "mid_gain": self.mid_gain,
                "side_gain": self.side_gain,
                "bass_mono_hz": self.bass_mono_hz,
                "balance": 0.0 if self.bypassed else self.balance,
                "left_gain": left_gain,
                "right_gain": right_gain,
            }
        )
        self._handle.set_bypass(self.bypassed)
