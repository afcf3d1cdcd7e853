"""
core/mastering/_preset_loader.py — Load the mastering threshold tables.

Uses importlib.resources (stdlib) to read mastering.yaml bundled in the
core/mastering/presets/ package. Results are cached in a module-level dict
so the file is parsed only once per process.

Private module — import only from the mastering package.
"""

from __future__ import annotations

import importlib.resources
from types import MappingProxyType
from typing import Any

import yaml

from core.effects import CompressorSettings, EqBand
from core.mastering.types import MasteringPresets, Platform, PlatformTarget, TonalMove

_PRESET_PACKAGE = "core.mastering.presets"
_PRESET_FILE = "mastering.yaml"

_BAND_COUNT = 4

_CACHE: dict[str, MasteringPresets] = {}


def load_mastering_presets() -> MasteringPresets:
    """Return the mastering presets, parsing the YAML on first use.

    Raises:
        ValueError: If a platform is missing or the multiband table does not
            have exactly four bands.
    """
    if _PRESET_FILE in _CACHE:
        return _CACHE[_PRESET_FILE]

    pkg = importlib.resources.files(_PRESET_PACKAGE)
    text = (pkg / _PRESET_FILE).read_text(encoding="utf-8")
    data: dict[str, Any] = yaml.safe_load(text)

    presets = parse_mastering_presets(data)
    _CACHE[_PRESET_FILE] = presets
    return presets


def parse_mastering_presets(data: dict[str, Any]) -> MasteringPresets:
    """Convert a parsed YAML dict into MasteringPresets."""
    raw_platforms: dict[str, Any] = data["platforms"]
    platforms: dict[Platform, PlatformTarget] = {}
    for platform in Platform:
        raw = raw_platforms.get(platform.value)
        if raw is None:
            raise ValueError(f"Mastering presets have no target for {platform.value!r}")
        target = raw.get("target_lufs")
        platforms[platform] = PlatformTarget(
            platform=platform,
            target_lufs=None if target is None else float(target),
            label=str(raw["label"]),
        )

    tonal = data["tonal"]
    multiband = data["multiband"]
    control = tuple(_parse_settings(raw) for raw in multiband["control"])
    if len(control) != _BAND_COUNT:
        raise ValueError(f"Multiband control table needs {_BAND_COUNT} bands, got {len(control)}")

    limiter = data["limiter"]
    return MasteringPresets(
        platforms=MappingProxyType(platforms),
        quiet_threshold_lufs=float(tonal["quiet_threshold_lufs"]),
        brightness=_parse_move(tonal["brightness"]),
        dense_threshold_db=float(tonal["dense_threshold_db"]),
        presence=_parse_move(tonal["presence"]),
        smile=_parse_move(tonal["smile"]),
        control_threshold_db=float(multiband["control_threshold_db"]),
        control_bands=control,
        glue_threshold=float(multiband["glue"]["threshold"]),
        glue_ratio=float(multiband["glue"]["ratio"]),
        band_defaults=_parse_settings(multiband["defaults"]),
        limiter=_parse_settings(limiter["active"]),
        limiter_defaults=_parse_settings(limiter["defaults"]),
    )


def _parse_move(raw: dict[str, Any]) -> TonalMove:
    bands = tuple(
        EqBand(index=int(b[0]), frequency=float(b[1]), gain_db=float(b[2])) for b in raw["bands"]
    )
    return TonalMove(bands=bands, description=str(raw["description"]), value=str(raw["value"]))


def _parse_settings(raw: dict[str, Any]) -> CompressorSettings:
    knee = raw.get("knee")
    return CompressorSettings(
        threshold=float(raw["threshold"]),
        ratio=float(raw["ratio"]),
        attack=float(raw["attack"]),
        release=float(raw["release"]),
        knee=None if knee is None else float(knee),
    )
