"""CLI entrypoint for scheduled ingestion runs."""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime

from scoresync.config import load_settings
from scoresync.errors import ConfigError, FetchError
from scoresync.ingestion.sync import run_sync

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def _parse_date(raw: str) -> date:
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date {raw!r}, expected YYYY-MM-DD") from exc


def _positive_int(raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid day count {raw!r}") from exc
    if value < 1:
        raise argparse.ArgumentTypeError("day count must be at least 1")
    return value


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Sync NHL games into the document store. Defaults to yesterday "
            "(final games) and today (scheduled/live games)."
        ),
    )
    parser.add_argument(
        "--date",
        type=_parse_date,
        help="Single date to ingest in YYYY-MM-DD format (overrides --days).",
    )
    parser.add_argument(
        "--days",
        type=_positive_int,
        help="Ingest this many trailing days ending today (ignored with --final-date or --live-date).",
    )
    parser.add_argument(
        "--final-date",
        type=_parse_date,
        help="Use this date instead of yesterday in the default window.",
    )
    parser.add_argument(
        "--live-date",
        type=_parse_date,
        help="Use this date instead of today in the default window.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logging.error("Configuration error: %s", exc)
        raise SystemExit(1)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=LOG_FORMAT,
    )

    try:
        run_sync(
            args.date,
            args.days,
            final_date=args.final_date,
            live_date=args.live_date,
            settings=settings,
        )
    except FetchError as exc:
        logging.error("Ingestion failed: %s", exc)
        raise SystemExit(1)

    logging.info("Ingestion completed successfully")


if __name__ == "__main__":
    main()
