"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from scoresync.errors import ConfigError

DEFAULT_SCHEDULE_URL = "https://api-web.nhle.com/v1/schedule/{date}"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_FETCH_CONCURRENCY = 4
DEFAULT_WRITE_CONCURRENCY = 10
# Largest number of operations the store accepts in one atomic batch.
MAX_BATCH_SIZE = 500


@dataclass(frozen=True)
class Settings:
    database_url: str
    schedule_url: str = DEFAULT_SCHEDULE_URL
    request_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    write_concurrency: int = DEFAULT_WRITE_CONCURRENCY
    batch_size: int = MAX_BATCH_SIZE
    log_level: str = "INFO"


def _read_number(env: Mapping[str, str], name: str, default, cast, minimum, maximum=None):
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value < minimum or (maximum is not None and value > maximum):
        upper = f" and {maximum}" if maximum is not None else ""
        raise ConfigError(f"{name} must be between {minimum}{upper}, got {value}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from the environment, failing before any I/O happens."""

    env = os.environ if environ is None else environ

    database_url = (env.get("DATABASE_URL") or "").strip()
    if not database_url:
        raise ConfigError(
            "Missing required environment variable: DATABASE_URL "
            "(e.g. sqlite:///scoresync.db)"
        )

    schedule_url = (env.get("NHL_SCHEDULE_URL") or "").strip() or DEFAULT_SCHEDULE_URL
    if "{date}" not in schedule_url:
        raise ConfigError("NHL_SCHEDULE_URL must contain a {date} placeholder")

    return Settings(
        database_url=database_url,
        schedule_url=schedule_url,
        request_timeout_seconds=_read_number(
            env, "NHL_REQUEST_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS, float, 0.1
        ),
        fetch_concurrency=_read_number(
            env, "SYNC_FETCH_CONCURRENCY", DEFAULT_FETCH_CONCURRENCY, int, 1
        ),
        write_concurrency=_read_number(
            env, "SYNC_WRITE_CONCURRENCY", DEFAULT_WRITE_CONCURRENCY, int, 1
        ),
        batch_size=_read_number(env, "SYNC_BATCH_SIZE", MAX_BATCH_SIZE, int, 1, MAX_BATCH_SIZE),
        log_level=(env.get("LOG_LEVEL") or "INFO").strip().upper(),
    )
