"""
Configuration dataclasses for the analysis, mixing and mastering engines.

These immutable config objects decouple tuning constants from function
signatures, so a session or a delivery preset can be described once and
reused across passes.
"""

from dataclasses import dataclass

# FFT sizes accepted by the spectral analyser (powers of two, Web Audio range).
VALID_FFT_SIZES: frozenset[int] = frozenset(2**n for n in range(5, 16))

LUFS_FLOOR: float = -70.0
"""Loudness reported for silence or any non-finite measurement."""

PEAK_FLOOR_DB: float = -96.0
"""Peak level (dBFS) reported for an all-zero buffer."""


@dataclass(frozen=True)
class AnalyzerConfig:
    """
    Configuration for the measurement primitives.

    Attributes:
        fft_size: Frame length of the spectral analyser. Power of two, 32–32768.
        smoothing_time_constant: Exponential averaging factor between
            consecutive spectral frames (0 = no smoothing, <1 required).
        min_decibels: Level mapped to byte value 0.
        max_decibels: Level mapped to byte value 255.
        clipping_threshold: Absolute sample value counted as clipped.
        loudness_gating: Apply the BS.1770 absolute/relative gates. Off by
            default (plain block average).

    Example:
        >>> config = AnalyzerConfig(fft_size=4096, loudness_gating=True)
    """

    fft_size: int = 2048
    smoothing_time_constant: float = 0.8
    min_decibels: float = -100.0
    max_decibels: float = 0.0
    clipping_threshold: float = 0.99
    loudness_gating: bool = False

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.fft_size not in VALID_FFT_SIZES:
            raise ValueError(
                f"fft_size must be a power of two in [32, 32768], got {self.fft_size}"
            )
        if not 0.0 <= self.smoothing_time_constant < 1.0:
            raise ValueError(
                f"smoothing_time_constant must be in [0, 1), got {self.smoothing_time_constant}"
            )
        if self.min_decibels >= self.max_decibels:
            raise ValueError(
                f"min_decibels ({self.min_decibels}) must be less than "
                f"max_decibels ({self.max_decibels})"
            )
        if not 0.0 < self.clipping_threshold <= 1.0:
            raise ValueError(
                f"clipping_threshold must be in (0, 1], got {self.clipping_threshold}"
            )


@dataclass(frozen=True)
class MixerConfig:
    """
    Configuration for the automatic mixer.

    Attributes:
        master_target_lufs: Loudness the master bus is steered toward in stage 8.
        max_track_gain_db: Symmetric clamp for the per-track gain stage.
        pan_spread: Outermost pan position for non-centered tracks.
        assumed_master_lufs: Fallback master loudness used only when the
            gain-staged sum cannot be measured.
        analyzer: Measurement settings used for per-track analysis.
    """

    master_target_lufs: float = -14.0
    max_track_gain_db: float = 12.0
    pan_spread: float = 0.7
    assumed_master_lufs: float = -18.0
    analyzer: AnalyzerConfig = AnalyzerConfig()

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_track_gain_db <= 0.0:
            raise ValueError(f"max_track_gain_db must be positive, got {self.max_track_gain_db}")
        if not 0.0 < self.pan_spread <= 1.0:
            raise ValueError(f"pan_spread must be in (0, 1], got {self.pan_spread}")
        if self.master_target_lufs > 0.0:
            raise ValueError(
                f"master_target_lufs must be <= 0 LUFS, got {self.master_target_lufs}"
            )


@dataclass(frozen=True)
class MasteringConfig:
    """
    Configuration for the automatic mastering chain.

    Attributes:
        default_target_lufs: Delivery loudness used until a platform is chosen.
        max_makeup_gain_db: Upper bound on loudness-normalization gain.
        crossovers_hz: Three ascending crossover frequencies for the 4-band split.
        limiter_ceiling_db: Output ceiling issued to the external limiter.
        analyzer: Measurement settings used for the input analysis.
    """

    default_target_lufs: float = -14.0
    max_makeup_gain_db: float = 12.0
    crossovers_hz: tuple[float, float, float] = (200.0, 800.0, 4000.0)
    limiter_ceiling_db: float = -1.0
    analyzer: AnalyzerConfig = AnalyzerConfig()

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_makeup_gain_db <= 0.0:
            raise ValueError(
                f"max_makeup_gain_db must be positive, got {self.max_makeup_gain_db}"
            )
        if len(self.crossovers_hz) != 3:
            raise ValueError(f"crossovers_hz needs exactly 3 values, got {len(self.crossovers_hz)}")
        lo, mid, hi = self.crossovers_hz
        if not 0.0 < lo < mid < hi:
            raise ValueError(f"crossovers_hz must be positive and ascending, got {self.crossovers_hz}")
        if self.limiter_ceiling_db > 0.0:
            raise ValueError(
                f"limiter_ceiling_db must be <= 0 dBFS, got {self.limiter_ceiling_db}"
            )


# Pre-defined configurations

DEFAULT_ANALYZER_CONFIG = AnalyzerConfig()
"""Default analyser: 2048-point FFT, 0.8 smoothing, ungated loudness."""

GATED_ANALYZER_CONFIG = AnalyzerConfig(loudness_gating=True)
"""Analyser that applies the BS.1770 absolute and relative gates."""

DEFAULT_MIXER_CONFIG = MixerConfig()
"""Default mixer: master toward −14 LUFS, ±12 dB track gain, ±0.7 pan spread."""

DEFAULT_MASTERING_CONFIG = MasteringConfig()
"""Default mastering: −14 LUFS target, +12 dB makeup cap, −1 dBFS ceiling."""
