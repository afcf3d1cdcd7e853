"""
core/mixer/_profile_loader.py — Load the per-instrument mixing rule tables.

Uses importlib.resources (stdlib) to read instruments.yaml bundled in the
core/mixer/instrument_profiles/ package. The parsed tables are cached at
module level so the YAML is read only once per process.

Private module — import only from the mixer package.
"""

from __future__ import annotations

import importlib.resources
from types import MappingProxyType
from typing import Any

import yaml

from core.effects import CompressorSettings, EqBand, ReverbSettings
from core.mixer.types import (
    CompressionRule,
    InstrumentClass,
    InstrumentProfile,
    ReverbRule,
    RuleTables,
)

_PROFILE_PACKAGE = "core.mixer.instrument_profiles"
_PROFILE_FILE = "instruments.yaml"

_CACHE: dict[str, RuleTables] = {}


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_rule_tables() -> RuleTables:
    """Return the mixing rule tables, parsing the YAML on first use.

    Raises:
        ValueError: If the file is missing an instrument class or a
            profile is malformed.
    """
    if _PROFILE_FILE in _CACHE:
        return _CACHE[_PROFILE_FILE]

    pkg = importlib.resources.files(_PROFILE_PACKAGE)
    text = (pkg / _PROFILE_FILE).read_text(encoding="utf-8")
    data: dict[str, Any] = yaml.safe_load(text)

    tables = parse_rule_tables(data)
    _CACHE[_PROFILE_FILE] = tables
    return tables


def parse_rule_tables(data: dict[str, Any]) -> RuleTables:
    """Convert a parsed YAML dict into RuleTables.

    Raises:
        ValueError: If an InstrumentClass has no profile, or an unknown
            instrument name appears.
    """
    raw_profiles: dict[str, Any] = data.get("instruments") or {}

    unknown = sorted(set(raw_profiles) - {c.value for c in InstrumentClass})
    if unknown:
        raise ValueError(f"Unknown instrument classes in rule tables: {unknown}")

    profiles: dict[InstrumentClass, InstrumentProfile] = {}
    for instrument in InstrumentClass:
        raw = raw_profiles.get(instrument.value)
        if raw is None:
            raise ValueError(f"Rule tables have no profile for {instrument.value!r}")
        profiles[instrument] = _parse_profile(instrument, raw)

    generic = data["generic_compression"]
    return RuleTables(
        profiles=MappingProxyType(profiles),
        generic_compression=_parse_compression(generic),
        generic_min_dynamic_range_db=float(generic["min_dynamic_range_db"]),
    )


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _parse_profile(instrument: InstrumentClass, raw: dict[str, Any]) -> InstrumentProfile:
    eq = raw["eq"]
    bands = tuple(
        EqBand(
            index=int(band[0]),
            frequency=float(band[1]),
            gain_db=None if band[2] is None else float(band[2]),
        )
        for band in eq["bands"]
    )
    indices = [b.index for b in bands]
    if len(indices) != len(set(indices)):
        raise ValueError(f"Profile {instrument.value!r} reuses an EQ band index: {indices}")

    target = float(raw["target_lufs"])
    if not -70.0 < target <= 0.0:
        raise ValueError(f"Profile {instrument.value!r} has target_lufs {target} outside (-70, 0]")

    compression = raw.get("compression")
    return InstrumentProfile(
        instrument=instrument,
        target_lufs=target,
        eq_bands=bands,
        eq_label=str(eq["label"]),
        eq_reason=str(eq["reason"]),
        centered=bool(raw["centered"]),
        compression=None if compression is None else _parse_compression(compression),
        reverb=_parse_reverb(raw["reverb"]),
    )


def _parse_compression(raw: dict[str, Any]) -> CompressionRule:
    knee = raw.get("knee")
    settings = CompressorSettings(
        threshold=float(raw["threshold"]),
        ratio=float(raw["ratio"]),
        attack=float(raw["attack"]),
        release=float(raw["release"]),
        knee=None if knee is None else float(knee),
    )
    return CompressionRule(settings=settings, reason=str(raw["reason"]))


def _parse_reverb(raw: dict[str, Any]) -> ReverbRule:
    decay = raw.get("decay")
    settings = ReverbSettings(
        mix=float(raw["mix"]),
        reverb_type=raw.get("type"),
        decay=None if decay is None else float(decay),
    )
    return ReverbRule(settings=settings, label=str(raw["label"]), reason=str(raw["reason"]))
