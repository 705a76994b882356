from __future__ import annotations

import unittest
from unittest.mock import patch

from scoresync.config import DEFAULT_SCHEDULE_URL, MAX_BATCH_SIZE, load_settings
from scoresync.errors import ConfigError, FetchError
from scoresync.ingestion import run


class LoadSettingsTests(unittest.TestCase):
    def test_missing_database_url_raises(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            load_settings({})

        self.assertIn("DATABASE_URL", str(ctx.exception))

    def test_blank_database_url_raises(self) -> None:
        with self.assertRaises(ConfigError):
            load_settings({"DATABASE_URL": "   "})

    def test_defaults(self) -> None:
        settings = load_settings({"DATABASE_URL": "sqlite:///x.db"})

        self.assertEqual(DEFAULT_SCHEDULE_URL, settings.schedule_url)
        self.assertEqual(30.0, settings.request_timeout_seconds)
        self.assertEqual(4, settings.fetch_concurrency)
        self.assertEqual(10, settings.write_concurrency)
        self.assertEqual(MAX_BATCH_SIZE, settings.batch_size)
        self.assertEqual("INFO", settings.log_level)

    def test_overrides(self) -> None:
        settings = load_settings(
            {
                "DATABASE_URL": "postgresql://db/scores",
                "NHL_SCHEDULE_URL": "http://mirror.local/schedule/{date}",
                "NHL_REQUEST_TIMEOUT_SECONDS": "2.5",
                "SYNC_FETCH_CONCURRENCY": "2",
                "SYNC_WRITE_CONCURRENCY": "3",
                "SYNC_BATCH_SIZE": "50",
                "LOG_LEVEL": "debug",
            }
        )

        self.assertEqual("http://mirror.local/schedule/{date}", settings.schedule_url)
        self.assertEqual(2.5, settings.request_timeout_seconds)
        self.assertEqual((2, 3, 50), (settings.fetch_concurrency, settings.write_concurrency, settings.batch_size))
        self.assertEqual("DEBUG", settings.log_level)

    def test_url_without_date_placeholder_raises(self) -> None:
        with self.assertRaises(ConfigError):
            load_settings({"DATABASE_URL": "sqlite://", "NHL_SCHEDULE_URL": "http://x/schedule"})

    def test_bad_numbers_raise(self) -> None:
        cases = {
            "SYNC_FETCH_CONCURRENCY": "many",
            "SYNC_WRITE_CONCURRENCY": "0",
            "SYNC_BATCH_SIZE": str(MAX_BATCH_SIZE + 1),
            "NHL_REQUEST_TIMEOUT_SECONDS": "-1",
        }
        for name, raw in cases.items():
            with self.subTest(name=name):
                with self.assertRaises(ConfigError):
                    load_settings({"DATABASE_URL": "sqlite://", name: raw})


class RunMainTests(unittest.TestCase):
    def test_config_error_exits_non_zero_without_syncing(self) -> None:
        with patch.dict("os.environ", {}, clear=True), patch.object(run, "run_sync") as run_sync:
            with self.assertRaises(SystemExit) as ctx:
                run.main([])

        self.assertEqual(1, ctx.exception.code)
        run_sync.assert_not_called()

    def test_total_fetch_failure_exits_non_zero(self) -> None:
        with patch.dict("os.environ", {"DATABASE_URL": "sqlite://"}, clear=True), patch.object(
            run, "run_sync", side_effect=FetchError("all dates failed")
        ):
            with self.assertRaises(SystemExit) as ctx:
                run.main(["--days", "2"])

        self.assertEqual(1, ctx.exception.code)

    def test_arguments_are_forwarded(self) -> None:
        with patch.dict("os.environ", {"DATABASE_URL": "sqlite://"}, clear=True), patch.object(
            run, "run_sync"
        ) as run_sync:
            run.main(["--date", "2025-10-18"])

        args, kwargs = run_sync.call_args
        self.assertEqual("2025-10-18", args[0].isoformat())
        self.assertIsNone(args[1])
        self.assertEqual("sqlite://", kwargs["settings"].database_url)

    def test_days_must_be_positive(self) -> None:
        with self.assertRaises(SystemExit):
            run.main(["--days", "0"])


if __name__ == "__main__":
    unittest.main()
