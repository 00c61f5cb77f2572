from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import httpx

from app.logging_setup import configure_logging
from app.settings import Settings
from ingest.bmkg_sync import SYNC_KINDS, BmkgSync, SyncResult
from store.db import open_database


LOGGER = logging.getLogger(__name__)

_GREEN = "\033[32m"
_RED = "\033[31m"
_CYAN = "\033[36m"
_RESET = "\033[0m"


def _color(text: str, code: str) -> str:
    if not sys.stdout.isatty():
        return text
    return f"{code}{text}{_RESET}"


def _print_table(rows: list[tuple[str, object]]) -> None:
    width = max(len("Metric"), *(len(name) for name, _ in rows))
    print(f"  {'Metric':<{width}}  Count")
    print(f"  {'-' * width}  -----")
    for name, value in rows:
        print(f"  {name:<{width}}  {value}")


def print_result(result: SyncResult) -> None:
    if not result.success:
        print(_color(f"x {result.message}", _RED))
        return

    print(_color(f"ok {result.message}", _GREEN))
    if result.mode in ("single", "batch"):
        _print_table(
            [
                ("Created", result.created_count),
                ("Skipped", result.skipped_count),
                ("Total Processed", result.total_processed),
            ]
        )
    if result.mode == "combined":
        print()
        print(_color("Summary:", _CYAN))
        _print_table(
            [
                ("Total Created", result.created_count),
                ("Total Skipped", result.skipped_count),
                ("Sync Types", ", ".join(result.sub_results.keys())),
            ]
        )
    if result.datetime_fallbacks:
        print(
            _color(
                f"! {result.datetime_fallbacks} event time(s) could not be parsed; "
                "current time was used",
                _RED,
            )
        )


async def run_sync(kind: str, settings: Settings, db_path: Path) -> SyncResult:
    db = open_database(db_path)
    try:
        async with httpx.AsyncClient(follow_redirects=True) as client:
            sync = BmkgSync(client, db, user_agent=settings.user_agent)
            return await sync.sync(kind)
    finally:
        with db.lock:
            db.conn.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="disaster-sync",
        description="Sync earthquake data from the BMKG feeds into the disaster store.",
    )
    parser.add_argument("--type", dest="kind", choices=SYNC_KINDS, default="all")
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="scheduled mode: log the outcome instead of printing it",
    )
    parser.add_argument("--db", type=Path, default=None)
    args = parser.parse_args(argv)

    settings = Settings()
    configure_logging(settings.log_level)
    db_path = args.db or settings.db_path

    if not args.schedule:
        print(_color("Starting BMKG earthquake sync...", _CYAN))
        print(f"Type: {args.kind}")
        print()

    result = asyncio.run(run_sync(args.kind, settings, db_path))

    if args.schedule:
        if result.success:
            LOGGER.info("BMKG sync completed: %s", result.message)
        else:
            LOGGER.error("BMKG sync failed: %s", result.message)
    else:
        print_result(result)

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
