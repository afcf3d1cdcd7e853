"""Tests for scripts/run_automix.py — argument handling and exit codes."""

from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from core.analyzer.types import AudioBuffer
from scripts import run_automix

SR = 44100


def _stub_loader(path: Path, **_: object) -> AudioBuffer:
    if path.name == "missing.wav":
        raise FileNotFoundError(f"Audio file not found: {path}")
    t = np.arange(SR) / SR
    y = 0.3 * np.sin(2.0 * np.pi * 220.0 * t)
    return AudioBuffer(channels=np.stack([y, 0.8 * y]), sample_rate=SR)


@pytest.fixture(autouse=True)
def _no_disk(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("ingestion.automix_engine.load_buffer", _stub_loader)


def test_nothing_to_do_exits_with_usage_error() -> None:
    with pytest.raises(SystemExit) as exc_info:
        run_automix.main([])
    assert exc_info.value.code == 2


def test_unknown_platform_rejected_by_parser() -> None:
    with pytest.raises(SystemExit):
        run_automix.main(["--master", "mix.wav", "--platform", "tidal"])


def test_master_report_written(tmp_path: Path) -> None:
    out = tmp_path / "report.json"
    code = run_automix.main(["--master", "mix.wav", "--platform", "apple", "--output", str(out)])
    assert code == 0
    report = json.loads(out.read_text(encoding="utf-8"))
    assert set(report) == {"master"}
    assert report["master"]["success"] is True
    assert "Master optimized for Apple Music (-16 LUFS)" in report["master"]["recommendations"]


def test_mix_and_master_printed(capsys: pytest.CaptureFixture[str]) -> None:
    code = run_automix.main(["--stems", "a.wav", "b.wav", "--master", "mix.wav"])
    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert set(report) == {"mix", "master"}
    assert set(report["mix"]["classifications"]) == {"a", "b"}


def test_missing_master_file_exits_2() -> None:
    assert run_automix.main(["--master", "missing.wav"]) == 2


def test_positive_custom_target_exits_2() -> None:
    assert run_automix.main(["--master", "mix.wav", "--platform", "custom", "--lufs", "3"]) == 2
