"""Quick probe for NHL schedule API availability."""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime

from scoresync.config import DEFAULT_SCHEDULE_URL
from scoresync.errors import FetchError
from scoresync.ingestion.nhl_client import NHLScheduleClient


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Probe the NHL schedule API for a date and print the event count.",
    )
    parser.add_argument(
        "--date",
        type=str,
        default="today",
        help="Date in YYYY-MM-DD format (default: today).",
    )
    parser.add_argument(
        "--url",
        type=str,
        default=DEFAULT_SCHEDULE_URL,
        help="Schedule URL template containing {date}.",
    )
    return parser.parse_args(argv)


def _resolve_date(raw: str) -> date:
    cleaned = raw.strip().lower()
    if cleaned == "today":
        return date.today()
    try:
        return datetime.strptime(cleaned, "%Y-%m-%d").date()
    except ValueError:
        raise SystemExit(f"Invalid date: {raw}. Expected YYYY-MM-DD.")


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = _parse_args(argv)
    target_date = _resolve_date(args.date)
    client = NHLScheduleClient(args.url)

    if client.fetch_connectivity():
        logging.info("Schedule API reachable.")
    else:
        logging.warning("Schedule API connectivity check failed.")

    try:
        events = client.fetch_for_date(target_date)
    except FetchError as exc:
        logging.error("Schedule API error: %s", exc)
        raise SystemExit(1)

    final = sum(1 for event in events if event.is_final)
    logging.info(
        "Fetched %s events for date=%s (final=%s)",
        len(events),
        target_date,
        final,
    )


if __name__ == "__main__":
    main()
