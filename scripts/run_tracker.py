#!/usr/bin/env python3
"""Run the squadron tracker.

Usage
-----
Set environment variables and run::

    export SQUADRON_TAG="ABCD"
    export SQUADRON_PAGE_URL="https://warthunder.com/en/community/claninfo/..."
    python scripts/run_tracker.py

Options::

    --tag TAG            Squadron tag (overrides SQUADRON_TAG)
    --page-url URL       Squadron profile page (overrides SQUADRON_PAGE_URL)
    --data-dir DIR       Where snapshot, event log and archives live
    --interval SECONDS   Nominal poll interval
    --once               Capture once and exit
    --log-level LEVEL    DEBUG, INFO, WARNING or ERROR (default: INFO)
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pysquadron import SquadronError, SquadronTracker, TrackerConfig  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track a squadron's score, roster and session results.")
    parser.add_argument("--tag", help="Squadron tag (overrides SQUADRON_TAG)")
    parser.add_argument("--page-url", help="Squadron profile page URL (overrides SQUADRON_PAGE_URL)")
    parser.add_argument("--data-dir", type=Path, help="Directory for snapshot, event log and archives")
    parser.add_argument("--interval", type=float, help="Nominal poll interval in seconds")
    parser.add_argument("--once", action="store_true", help="Capture once and exit")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.tag:
        overrides["squadron_tag"] = args.tag
    if args.page_url:
        overrides["squadron_page_url"] = args.page_url
    if args.data_dir:
        overrides["data_dir"] = args.data_dir
    if args.interval:
        overrides["poll_interval"] = args.interval

    try:
        config = TrackerConfig.from_env(**overrides)
    except SquadronError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    async with SquadronTracker(config) as tracker:
        if args.once:
            outcome = await tracker.start()
            if outcome is None:
                return 1
            snapshot = outcome.snapshot
            print(
                f"{config.squadron_tag}: total={snapshot.total_score} rank={snapshot.rank} "
                f"members={len(snapshot.roster)} changed={outcome.persist.changed}"
            )
            return 0
        await tracker.run()
    return 0


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    with contextlib.suppress(KeyboardInterrupt):
        sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
