"""
ingestion/audio_loader.py — File I/O boundary for audio loading.

This is the ONLY module that reads audio from disk. Everything in core/
(analyzer, mixer, mastering) takes a pre-loaded AudioBuffer, never a path.

Usage:
    from ingestion.audio_loader import load_buffer
    buffer = load_buffer("/path/to/stem.wav")
"""

from __future__ import annotations

from pathlib import Path

from core.analyzer.types import AudioBuffer

# Supported audio file extensions (must be loadable by librosa / soundfile)
AUDIO_EXTENSIONS: frozenset[str] = frozenset(
    {".mp3", ".wav", ".flac", ".aiff", ".aif", ".ogg", ".m4a", ".opus"}
)

# Stems and mixes are short enough to load whole by default; None = no limit
DEFAULT_DURATION: float | None = None


def load_buffer(
    path: str | Path,
    *,
    duration: float | None = DEFAULT_DURATION,
    sr: int | None = None,
    mono: bool = False,
) -> AudioBuffer:
    """Load an audio file into an AudioBuffer.

    Args:
        path: Absolute or relative path to an audio file.
              Supported formats: mp3, wav, flac, aiff, ogg, m4a, opus.
        duration: Maximum seconds to load. None loads the entire file.
        sr: Target sample rate in Hz. None preserves the native rate.
        mono: Mix down to a single channel when True. Defaults to False so
              stereo mixes keep both channels for width and balance analysis.

    Returns:
        AudioBuffer of shape (channels, samples), float64.

    Raises:
        FileNotFoundError: File does not exist at the given path.
        ValueError: File extension is not a supported audio format.
        RuntimeError: librosa/soundfile could not decode the file
                      (corrupted, truncated, DRM-protected, etc.).
    """
    import librosa  # deferred to allow testing without audio backend

    file_path = Path(path)

    if not file_path.exists():
        raise FileNotFoundError(f"Audio file not found: {file_path}")

    if file_path.suffix.lower() not in AUDIO_EXTENSIONS:
        raise ValueError(
            f"Unsupported audio format {file_path.suffix!r}. "
            f"Supported: {sorted(AUDIO_EXTENSIONS)}"
        )

    try:
        y, loaded_sr = librosa.load(
            file_path,
            sr=sr,
            mono=mono,
            duration=duration,
            offset=0.0,
        )
    except Exception as exc:
        raise RuntimeError(
            f"Failed to decode audio file {file_path.name!r}: {exc}"
        ) from exc

    return AudioBuffer.from_array(y, int(loaded_sr))


def track_id_for(path: str | Path) -> str:
    """Default track id for a stem file: its name without extension."""
    return Path(path).stem
