from __future__ import annotations

import os
import tempfile
import unittest
from datetime import date, datetime, timezone
from unittest.mock import patch

from scoresync.config import Settings
from scoresync.db import build_engine, build_session_factory, init_db
from scoresync.errors import ConfigError, FetchError, StoreError, ValidationError
from scoresync.ingestion.nhl_client import DateFetchResult
from scoresync.ingestion.schema import Event, TeamRef
from scoresync.ingestion.store import TEAM_STATS_COLLECTION, DocumentStore, EventStore
from scoresync.ingestion.sync import run_sync, select_dates, sync_dates, validate_event

D1 = date(2025, 10, 17)
D2 = date(2025, 10, 18)
D3 = date(2025, 10, 19)


def _event(external_id, home_id, away_id, status, home_score=None, away_score=None, **overrides):
    fields = {
        "external_id": external_id,
        "start_time": datetime(2025, 10, 18, 23, 0, tzinfo=timezone.utc),
        "home": TeamRef(team_id=home_id, team_name=f"Team {home_id}", score=home_score),
        "away": TeamRef(team_id=away_id, team_name=f"Team {away_id}", score=away_score),
        "status": status,
    }
    fields.update(overrides)
    return Event(**fields)


class _StubClient:
    def __init__(self, results: dict | None = None, failed: set | None = None, reachable: bool = True):
        self._results = results or {}
        self._failed = failed or set()
        self._reachable = reachable
        self.requested: list[date] | None = None

    def fetch_connectivity(self) -> bool:
        return self._reachable

    def fetch_for_dates(self, dates) -> DateFetchResult:
        self.requested = sorted(dates)
        return DateFetchResult(
            results={d: list(self._results.get(d, [])) for d in self.requested if d not in self._failed},
            failed={d for d in self.requested if d in self._failed},
        )


class SelectDatesTests(unittest.TestCase):
    def test_default_window_is_yesterday_and_today(self) -> None:
        self.assertEqual([D2, D3], select_dates(today=D3))

    def test_explicit_date_wins_over_days(self) -> None:
        self.assertEqual([D1], select_dates(D1, 5, today=D3))

    def test_days_counts_back_from_today(self) -> None:
        self.assertEqual([D1, D2, D3], select_dates(days=3, today=D3))
        self.assertEqual([D3], select_dates(days=1, today=D3))

    def test_final_and_live_dates_replace_default_days(self) -> None:
        self.assertEqual([D1, D3], select_dates(final_date=D1, today=D3))
        self.assertEqual([date(2025, 10, 10), D2], select_dates(live_date=date(2025, 10, 10), today=D3))

    def test_final_or_live_date_wins_over_days(self) -> None:
        self.assertEqual([D1, D3], select_dates(days=5, final_date=D1, today=D3))
        self.assertEqual([D1, D2], select_dates(days=5, live_date=D1, today=D3))

    def test_days_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            select_dates(days=0, today=D3)


class ValidateEventTests(unittest.TestCase):
    def test_complete_event_passes(self) -> None:
        validate_event(_event("1", "1", "2", "scheduled"))

    def test_structural_gaps_raise(self) -> None:
        broken = [
            _event(None, "1", "2", "scheduled"),
            _event("1", None, "2", "scheduled"),
            _event("1", "1", "2", "scheduled", away=TeamRef(team_id="2", team_name="")),
            _event("1", "1", "2", "scheduled", start_time=None),
        ]
        for event in broken:
            with self.subTest(event=event.external_id):
                with self.assertRaises(ValidationError):
                    validate_event(event)


class SyncDatesTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = build_engine(f"sqlite:///{os.path.join(self._tmp.name, 'sync.db')}")
        init_db(self.engine)
        self.documents = DocumentStore(build_session_factory(self.engine))
        self.store = EventStore(self.documents, max_concurrency=4)

    def tearDown(self) -> None:
        self.engine.dispose()
        self._tmp.cleanup()

    def test_final_and_scheduled_games_end_to_end(self) -> None:
        client = _StubClient(
            results={
                D2: [
                    _event("100", "1", "2", "final", home_score=3, away_score=2),
                    _event("200", "3", "4", "scheduled"),
                ]
            }
        )

        result = sync_dates([D2], client, self.store)

        self.assertEqual(2, result.upserted)
        self.assertEqual(1, result.stats_applied)
        self.assertIsNotNone(self.store.get_by_external_id("100"))
        self.assertIsNotNone(self.store.get_by_external_id("200"))
        self.assertEqual(1, self.store.get_team_stats("1").wins)
        self.assertEqual(1, self.store.get_team_stats("2").losses)
        self.assertIsNone(self.store.get_team_stats("3"))
        self.assertIsNone(self.store.get_team_stats("4"))
        self.assertEqual(2, self.documents.count(TEAM_STATS_COLLECTION))

    def test_rerunning_same_final_game_does_not_double_count(self) -> None:
        client = _StubClient(results={D2: [_event("100", "1", "2", "final", home_score=3, away_score=2)]})

        sync_dates([D2], client, self.store)
        second = sync_dates([D2], client, self.store)

        self.assertEqual(0, second.stats_applied)
        self.assertEqual(1, self.store.get_team_stats("1").wins)

    def test_invalid_events_are_dropped_not_fatal(self) -> None:
        client = _StubClient(
            results={
                D2: [
                    _event("100", "1", "2", "scheduled"),
                    _event(None, "1", "2", "scheduled"),
                    _event("300", "5", "6", "live", start_time=None),
                ]
            }
        )

        with self.assertLogs("scoresync.ingestion.sync", level="WARNING"):
            result = sync_dates([D2], client, self.store)

        self.assertEqual(3, result.total_fetched)
        self.assertEqual(1, result.valid)
        self.assertEqual(2, result.invalid)
        self.assertEqual(1, result.upserted)
        self.assertIsNone(self.store.get_by_external_id("300"))
        self.assertTrue(result.degraded)

    def test_one_failed_date_is_a_warning(self) -> None:
        client = _StubClient(
            results={D1: [_event("1", "1", "2", "scheduled")], D3: [_event("3", "1", "2", "scheduled")]},
            failed={D2},
        )

        result = sync_dates([D1, D2, D3], client, self.store)

        self.assertEqual(3, result.requested_dates)
        self.assertEqual(2, result.fetched_dates)
        self.assertEqual([D2], result.failed_dates)
        self.assertEqual(2, result.upserted)

    def test_every_date_failing_is_fatal(self) -> None:
        client = _StubClient(failed={D1, D2, D3})

        with self.assertRaises(FetchError):
            sync_dates([D1, D2, D3], client, self.store)

    def test_failed_connectivity_check_does_not_gate_ingestion(self) -> None:
        client = _StubClient(results={D2: [_event("100", "1", "2", "scheduled")]}, reachable=False)

        result = sync_dates([D2], client, self.store)

        self.assertEqual(1, result.upserted)

    def test_empty_day_is_success(self) -> None:
        result = sync_dates([D2], _StubClient(results={D2: []}), self.store)

        self.assertEqual(1, result.fetched_dates)
        self.assertEqual(0, result.total_fetched)
        self.assertFalse(result.degraded)

    def test_failed_upserts_are_counted(self) -> None:
        client = _StubClient(results={D2: [_event("100", "1", "2", "final", home_score=1, away_score=0)]})

        with patch.object(self.store, "upsert_one", side_effect=RuntimeError("disk full")):
            result = sync_dates([D2], client, self.store)

        self.assertEqual(0, result.upserted)
        self.assertEqual(1, result.upsert_failed)
        self.assertEqual(0, result.stats_applied)

    def test_unreadable_stored_event_counts_as_stats_failure(self) -> None:
        client = _StubClient(
            results={
                D2: [
                    _event("100", "1", "2", "final", home_score=3, away_score=2),
                    _event("200", "3", "4", "final", home_score=1, away_score=4),
                ]
            }
        )
        real_lookup = self.store.get_by_external_id

        def lookup(external_id):
            if external_id == "100":
                raise StoreError("Stored event 100 is not a valid event")
            return real_lookup(external_id)

        with patch.object(self.store, "get_by_external_id", side_effect=lookup):
            result = sync_dates([D2], client, self.store)

        self.assertEqual(2, result.upserted)
        self.assertEqual(1, result.stats_failed)
        self.assertEqual(1, result.stats_applied)
        self.assertEqual(1, self.store.get_team_stats("4").wins)


class RunSyncTests(unittest.TestCase):
    def test_missing_database_url_fails_before_io(self) -> None:
        with patch.dict(os.environ, {}, clear=True), patch(
            "scoresync.ingestion.sync.build_engine"
        ) as build:
            with self.assertRaises(ConfigError):
                run_sync(D2)

        build.assert_not_called()

    def test_runs_against_configured_store(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            settings = Settings(database_url=f"sqlite:///{os.path.join(tmp, 'run.db')}")
            stub = _StubClient(results={D2: [_event("100", "1", "2", "final", home_score=2, away_score=5)]})
            with patch(
                "scoresync.ingestion.sync.NHLScheduleClient.from_settings",
                return_value=stub,
            ):
                result = run_sync(D2, settings=settings)

        self.assertEqual([D2], stub.requested)
        self.assertEqual(1, result.upserted)
        self.assertEqual(1, result.stats_applied)


if __name__ == "__main__":
    unittest.main()
