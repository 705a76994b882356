"""NHL HTTP client for fetching daily schedules."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

import requests

from scoresync.config import (
    DEFAULT_FETCH_CONCURRENCY,
    DEFAULT_SCHEDULE_URL,
    DEFAULT_TIMEOUT_SECONDS,
    Settings,
)
from scoresync.errors import FetchError
from scoresync.ingestion.nhl_parser import parse_schedule
from scoresync.ingestion.schema import Event

logger = logging.getLogger(__name__)
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 0.5
PROBE_TIMEOUT_SECONDS = 5
DEFAULT_USER_AGENT = "nhl-score-sync/1.0"
MAX_BODY_SNIPPET = 300


@dataclass
class DateFetchResult:
    results: dict[date, list[Event]] = field(default_factory=dict)
    failed: set[date] = field(default_factory=set)

    @property
    def total_events(self) -> int:
        return sum(len(events) for events in self.results.values())


class NHLScheduleClient:
    def __init__(
        self,
        schedule_url: str = DEFAULT_SCHEDULE_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retries: int = DEFAULT_RETRIES,
        backoff_seconds: float = DEFAULT_BACKOFF_SECONDS,
        max_concurrency: int = DEFAULT_FETCH_CONCURRENCY,
    ) -> None:
        self.schedule_url = schedule_url
        self.timeout = timeout
        self.retries = max(1, retries)
        self.backoff_seconds = backoff_seconds
        self.max_concurrency = max(1, max_concurrency)
        self.headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": "application/json",
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> NHLScheduleClient:
        return cls(
            settings.schedule_url,
            timeout=settings.request_timeout_seconds,
            max_concurrency=settings.fetch_concurrency,
        )

    def build_url(self, game_date: date) -> str:
        return self.schedule_url.format(date=game_date.isoformat())

    def fetch_connectivity(self) -> bool:
        """Cheap liveness probe. Never raises; the answer is only a hint."""
        url = self.build_url(date.today())
        try:
            response = requests.get(url, headers=self.headers, timeout=PROBE_TIMEOUT_SECONDS)
        except requests.RequestException as exc:
            logger.warning("Schedule API probe failed url=%s error=%s", url, exc)
            return False
        except Exception:
            logger.exception("Schedule API probe crashed url=%s", url)
            return False
        if response.status_code != 200:
            logger.warning(
                "Schedule API probe non-200 url=%s status=%s", url, response.status_code
            )
            return False
        return True

    def fetch_payload(self, game_date: date) -> dict:
        """GET the raw schedule JSON for one date.

        Transport errors and 5xx responses are retried with exponential backoff;
        4xx responses and undecodable bodies fail immediately.
        """
        url = self.build_url(game_date)
        last_error: str | None = None
        last_status: int | None = None

        for attempt in range(self.retries):
            try:
                response = requests.get(url, headers=self.headers, timeout=self.timeout)
            except requests.RequestException as exc:
                last_error = f"{type(exc).__name__}: {exc}"
                logger.warning(
                    "Schedule request failed date=%s attempt=%s/%s error=%s",
                    game_date,
                    attempt + 1,
                    self.retries,
                    last_error,
                )
            else:
                if response.status_code == 200:
                    try:
                        payload = response.json()
                    except ValueError as exc:
                        raise FetchError(
                            f"Schedule API returned non-JSON body for {game_date}: "
                            f"{response.text[:MAX_BODY_SNIPPET]}",
                            status=200,
                            url=url,
                        ) from exc
                    if not isinstance(payload, dict):
                        raise FetchError(
                            f"Schedule API returned unexpected JSON for {game_date}",
                            status=200,
                            url=url,
                        )
                    return payload

                last_status = response.status_code
                last_error = f"HTTP {response.status_code}: {response.text[:MAX_BODY_SNIPPET]}"
                logger.error(
                    "Schedule API non-200 date=%s status=%s body=%s",
                    game_date,
                    response.status_code,
                    response.text[:MAX_BODY_SNIPPET],
                )
                if response.status_code < 500:
                    break

            if attempt < self.retries - 1:
                time.sleep(self.backoff_seconds * (2**attempt))

        raise FetchError(
            f"Failed to fetch schedule for {game_date}: {last_error}",
            status=last_status,
            url=url,
        )

    def fetch_for_date(self, game_date: date) -> list[Event]:
        """Events for one date; an empty list means the feed had no games."""
        payload = self.fetch_payload(game_date)
        events = parse_schedule(payload, game_date)
        logger.info("Fetched %s events for date=%s", len(events), game_date)
        return events

    async def _fetch_one(self, game_date: date, semaphore: asyncio.Semaphore) -> list[Event]:
        async with semaphore:
            return await asyncio.to_thread(self.fetch_for_date, game_date)

    async def fetch_for_dates_async(self, dates: Iterable[date]) -> DateFetchResult:
        ordered = sorted(set(dates))
        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *(self._fetch_one(game_date, semaphore) for game_date in ordered),
            return_exceptions=True,
        )

        result = DateFetchResult()
        for game_date, outcome in zip(ordered, outcomes):
            if isinstance(outcome, FetchError):
                logger.error("Fetch failed date=%s error=%s", game_date, outcome)
                result.failed.add(game_date)
            elif isinstance(outcome, BaseException):
                logger.error(
                    "Fetch crashed date=%s error=%s: %s",
                    game_date,
                    type(outcome).__name__,
                    outcome,
                    exc_info=outcome,
                )
                result.failed.add(game_date)
            else:
                result.results[game_date] = outcome
        return result

    def fetch_for_dates(self, dates: Iterable[date]) -> DateFetchResult:
        """Fetch every date concurrently; each date ends up in results xor failed."""
        return asyncio.run(self.fetch_for_dates_async(dates))
