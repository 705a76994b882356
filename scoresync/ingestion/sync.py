"""Sync NHL games from the schedule feed into the document store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Protocol

from scoresync.config import Settings, load_settings
from scoresync.db import build_engine, build_session_factory, init_db
from scoresync.errors import FetchError, StoreError, ValidationError
from scoresync.ingestion.nhl_client import DateFetchResult, NHLScheduleClient
from scoresync.ingestion.schema import Event
from scoresync.ingestion.store import DocumentStore, EventStore

logger = logging.getLogger(__name__)


class ScheduleSource(Protocol):
    def fetch_connectivity(self) -> bool: ...

    def fetch_for_dates(self, dates: Iterable[date]) -> DateFetchResult: ...


@dataclass
class SyncResult:
    requested_dates: int = 0
    fetched_dates: int = 0
    failed_dates: list[date] = field(default_factory=list)
    total_fetched: int = 0
    valid: int = 0
    invalid: int = 0
    upserted: int = 0
    upsert_failed: int = 0
    stats_applied: int = 0
    stats_failed: int = 0

    @property
    def degraded(self) -> bool:
        return bool(self.failed_dates or self.invalid or self.upsert_failed or self.stats_failed)


def select_dates(
    target_date: date | None = None,
    days: int | None = None,
    *,
    final_date: date | None = None,
    live_date: date | None = None,
    today: date | None = None,
) -> list[date]:
    """Resolve the caller's intent into concrete dates.

    An explicit date wins over everything. Otherwise the window is yesterday
    (finished games) plus today (scheduled/live games), where ``final_date``
    and ``live_date`` replace those two days respectively. ``days`` asks for
    that many trailing days instead, and only applies when neither
    ``final_date`` nor ``live_date`` is given.
    """
    today = today or date.today()
    if target_date is not None:
        return [target_date]
    if days is not None and days < 1:
        raise ValueError("days must be at least 1")
    if days is not None and final_date is None and live_date is None:
        return sorted(today - timedelta(days=offset) for offset in range(days))

    yesterday = today - timedelta(days=1)
    return sorted({final_date or yesterday, live_date or today})


def validate_event(event: Event) -> None:
    """Raise ValidationError when an event lacks a field the store relies on."""
    if not event.external_id:
        raise ValidationError("Event missing externalId")
    if not event.home.team_id or not event.away.team_id:
        raise ValidationError(f"Event {event.external_id} missing team ids")
    if not event.home.team_name or not event.away.team_name:
        raise ValidationError(f"Event {event.external_id} missing team names")
    if event.start_time is None:
        raise ValidationError(f"Event {event.external_id} missing start time")


def _valid_events(events: list[Event], result: SyncResult) -> list[Event]:
    valid: list[Event] = []
    for event in events:
        try:
            validate_event(event)
        except ValidationError as exc:
            result.invalid += 1
            logger.warning("Skipping invalid event: %s", exc)
            continue
        valid.append(event)
    result.valid += len(valid)
    return valid


def _apply_stats(store: EventStore, events: list[Event], failed_ids: set, result: SyncResult) -> None:
    for event in events:
        if event.external_id in failed_ids:
            continue
        try:
            stored = store.get_by_external_id(event.external_id)
            if stored is None or not stored.is_final:
                continue
            if store.update_stats_for_final(stored):
                result.stats_applied += 1
        except StoreError as exc:
            result.stats_failed += 1
            logger.warning(
                "Failed to update team stats external_id=%s error=%s",
                event.external_id,
                exc,
            )


def sync_dates(dates: Iterable[date], client: ScheduleSource, store: EventStore) -> SyncResult:
    """Fetch, validate, upsert and derive stats for the requested dates.

    Raises FetchError only when every requested date failed to fetch.
    """
    requested = sorted(set(dates))
    result = SyncResult(requested_dates=len(requested))
    if not requested:
        return result

    if client.fetch_connectivity():
        logger.info("Schedule API connectivity check passed.")
    else:
        logger.warning("Schedule API connectivity check failed; fetching anyway.")

    fetched = client.fetch_for_dates(requested)
    result.failed_dates = sorted(fetched.failed)
    result.fetched_dates = len(fetched.results)

    if len(fetched.failed) == len(requested):
        raise FetchError(
            "Failed to fetch games for all requested dates "
            f"({', '.join(d.isoformat() for d in requested)}). "
            "Check network/DNS access to the schedule API."
        )
    if fetched.failed:
        logger.warning(
            "Failed to fetch games for %s date(s): %s",
            len(fetched.failed),
            ", ".join(d.isoformat() for d in result.failed_dates),
        )

    for game_date in sorted(fetched.results):
        events = fetched.results[game_date]
        result.total_fetched += len(events)
        logger.info("Processing %s games for date=%s", len(events), game_date)

        valid = _valid_events(events, result)
        batch = store.upsert_batch(valid)
        result.upserted += batch.succeeded
        result.upsert_failed += batch.failed

        _apply_stats(store, valid, set(batch.failed_ids), result)
        logger.info(
            "Date %s: %s successful, %s failed",
            game_date,
            batch.succeeded,
            batch.failed,
        )

    return result


def log_summary(result: SyncResult, duration_seconds: float | None = None) -> None:
    logger.info(
        "Done: dates=%s fetched_dates=%s failed_dates=%s games=%s valid=%s invalid=%s "
        "upserted=%s upsert_failed=%s stats_applied=%s stats_failed=%s",
        result.requested_dates,
        result.fetched_dates,
        len(result.failed_dates),
        result.total_fetched,
        result.valid,
        result.invalid,
        result.upserted,
        result.upsert_failed,
        result.stats_applied,
        result.stats_failed,
    )
    if duration_seconds is not None:
        logger.info("Duration: %.2fs", duration_seconds)
    if result.degraded:
        logger.warning(
            "Sync completed with partial failures: failed_dates=%s invalid=%s "
            "upsert_failed=%s stats_failed=%s",
            [d.isoformat() for d in result.failed_dates],
            result.invalid,
            result.upsert_failed,
            result.stats_failed,
        )


def run_sync(
    target_date: date | None = None,
    days: int | None = None,
    *,
    final_date: date | None = None,
    live_date: date | None = None,
    settings: Settings | None = None,
) -> SyncResult:
    """Build collaborators from settings and sync the selected dates."""

    settings = settings or load_settings()
    dates = select_dates(target_date, days, final_date=final_date, live_date=live_date)

    engine = build_engine(settings.database_url)
    try:
        init_db(engine)
        store = EventStore(
            DocumentStore(build_session_factory(engine)),
            chunk_size=settings.batch_size,
            max_concurrency=settings.write_concurrency,
        )
        client = NHLScheduleClient.from_settings(settings)

        logger.info("Starting ingestion dates=%s", ",".join(d.isoformat() for d in dates))
        started = time.monotonic()
        result = sync_dates(dates, client, store)
        log_summary(result, time.monotonic() - started)
        return result
    finally:
        engine.dispose()
