"""
Automatic mixing and mastering from the command line.

Mixes a set of stem files, masters a finished mix, or both, and prints the
combined JSON report.

Usage:
    # Mix stems (track ids are the file names without extension)
    python -m scripts.run_automix --stems kick.wav bass.wav vocal.wav

    # Master a finished mix for Apple Music
    python -m scripts.run_automix --master mix.wav --platform apple

    # Custom loudness target, report written to a file
    python -m scripts.run_automix --master mix.wav --platform custom --lufs -11 \
        --output report.json

Exit codes:
    0 — every requested pass succeeded
    1 — a pass reported success=False
    2 — invalid arguments or unreadable input
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from core.mastering.types import Platform
from ingestion.automix_engine import AutomixEngine

logger = logging.getLogger(__name__)


async def run(args: argparse.Namespace) -> dict[str, Any]:
    """Run the requested passes and return the report."""
    engine = AutomixEngine()
    report: dict[str, Any] = {}
    try:
        if args.stems:
            mix = await engine.mix_files(args.stems, master_lufs=args.master_lufs)
            report["mix"] = mix.as_dict()
        if args.master:
            master = await engine.master_file(
                args.master, platform=args.platform, custom_lufs=args.lufs
            )
            report["master"] = master.as_dict()
    finally:
        engine.close()
    return report


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Automatically mix stems and/or master a finished mix.",
    )
    parser.add_argument(
        "--stems",
        nargs="+",
        default=[],
        help="Stem audio files to mix.",
    )
    parser.add_argument(
        "--master-lufs",
        type=float,
        default=None,
        help="Known master-bus loudness for the mix pass (default: measured).",
    )
    parser.add_argument(
        "--master",
        default=None,
        help="Finished mix to master.",
    )
    parser.add_argument(
        "--platform",
        choices=[p.value for p in Platform],
        default=Platform.spotify.value,
        help="Delivery platform loudness target (default: spotify).",
    )
    parser.add_argument(
        "--lufs",
        type=float,
        default=None,
        help="Target loudness when --platform custom is used.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the JSON report here instead of stdout.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log per-stage decisions.",
    )
    args = parser.parse_args(argv)
    if not args.stems and not args.master:
        parser.error("nothing to do: pass --stems and/or --master")
    return args


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments, run the passes and emit the report."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        report = asyncio.run(run(args))
    except (FileNotFoundError, ValueError, RuntimeError) as exc:
        logger.error("Automix failed: %s", exc)
        return 2

    text = json.dumps(report, indent=2)
    if args.output is not None:
        args.output.write_text(text + "\n", encoding="utf-8")
        logger.info("Report written to %s", args.output)
    else:
        print(text)

    ok = all(section.get("success", False) for section in report.values())
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
