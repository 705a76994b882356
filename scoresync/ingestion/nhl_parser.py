"""Parser for NHL schedule payloads (legacy stats API and api-web)."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable

from scoresync.ingestion.schema import FINAL, LIVE, SCHEDULED, Event, TeamRef, Venue
from scoresync.team_logos import team_logo_url

logger = logging.getLogger(__name__)

STATUS_MAP: dict[str, str] = {
    "scheduled": SCHEDULED,
    "pre-game": SCHEDULED,
    "preview": SCHEDULED,
    "ok": SCHEDULED,
    "fut": SCHEDULED,
    "pre": SCHEDULED,
    "in progress": LIVE,
    "in progress - critical": LIVE,
    "live": LIVE,
    "crit": LIVE,
    "game over": FINAL,
    "final": FINAL,
    "off": FINAL,
}

# Fields each game shape maps onto the canonical Event; everything else lands in `extra`.
LEGACY_GAME_FIELDS = frozenset(
    {"gamePk", "gameDate", "status", "teams", "season", "gameType", "venue"}
)
WEB_GAME_FIELDS = frozenset(
    {
        "id",
        "startTimeUTC",
        "gameState",
        "homeTeam",
        "awayTeam",
        "season",
        "gameType",
        "venue",
        "venueId",
    }
)


def _safe_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _text(value: Any) -> str:
    """Unwrap plain or localized ({"default": ...}) strings."""
    if isinstance(value, dict):
        value = value.get("default")
    if isinstance(value, str):
        return value.strip()
    return ""


def _optional_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def normalize_status(value: Any) -> str:
    """Map an upstream status spelling onto scheduled/live/final.

    Unknown spellings are lower-cased and passed through; missing status is
    treated as scheduled.
    """
    if value is None:
        return SCHEDULED
    cleaned = str(value).strip()
    if not cleaned:
        return SCHEDULED
    return STATUS_MAP.get(cleaned.lower(), cleaned.lower())


def team_display_name(team: dict[str, Any]) -> str:
    """Full name if present, else whichever location/nickname parts exist."""
    full_name = _text(team.get("name"))
    if full_name:
        return full_name
    location = _text(team.get("locationName")) or _text(team.get("placeName"))
    nickname = _text(team.get("teamName")) or _text(team.get("commonName"))
    return " ".join(part for part in (location, nickname) if part)


def parse_start_time(value: Any) -> datetime | None:
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return None


def _collect_extra(game: dict[str, Any], modeled: frozenset[str]) -> dict[str, Any]:
    return {
        key: value
        for key, value in game.items()
        if key not in modeled and value is not None
    }


def _team_ref(team: dict[str, Any], score: Any) -> TeamRef:
    name = team_display_name(team)
    abbrev = _text(team.get("abbrev")) or _text(team.get("abbreviation"))
    logo = _text(team.get("logoUrl")) or _text(team.get("logo"))
    return TeamRef(
        team_id=team.get("id"),
        team_name=name,
        score=_safe_int(score),
        logo_url=logo or team_logo_url(abbrev, name),
    )


def _venue(raw: Any, venue_id: Any = None) -> Venue | None:
    if isinstance(raw, dict):
        name = _text(raw.get("name")) or _text(raw)
        venue_id = raw.get("id", venue_id)
    else:
        name = _text(raw)
    if not name:
        return None
    return Venue(id=venue_id, name=name)


def _is_legacy_game(game: dict[str, Any]) -> bool:
    return "gamePk" in game or "teams" in game


def _parse_legacy_game(game: dict[str, Any]) -> Event:
    teams = _as_dict(game.get("teams"))
    home = _as_dict(teams.get("home"))
    away = _as_dict(teams.get("away"))
    status = game.get("status")
    if isinstance(status, dict):
        status = status.get("detailedState") or status.get("abstractGameState")
    return Event(
        external_id=game.get("gamePk"),
        start_time=parse_start_time(game.get("gameDate")),
        home=_team_ref(_as_dict(home.get("team")), home.get("score")),
        away=_team_ref(_as_dict(away.get("team")), away.get("score")),
        status=normalize_status(status),
        season=_optional_str(game.get("season")),
        event_type=_optional_str(game.get("gameType")),
        venue=_venue(game.get("venue")),
        extra=_collect_extra(game, LEGACY_GAME_FIELDS),
    )


def _parse_web_game(game: dict[str, Any]) -> Event:
    home = _as_dict(game.get("homeTeam"))
    away = _as_dict(game.get("awayTeam"))
    status = game.get("gameState")
    if status is None:
        status = game.get("gameScheduleState")
    return Event(
        external_id=game.get("id"),
        start_time=parse_start_time(game.get("startTimeUTC")),
        home=_team_ref(home, home.get("score")),
        away=_team_ref(away, away.get("score")),
        status=normalize_status(status),
        season=_optional_str(game.get("season")),
        event_type=_optional_str(game.get("gameType")),
        venue=_venue(game.get("venue"), game.get("venueId")),
        extra=_collect_extra(game, WEB_GAME_FIELDS),
    )


def parse_game(game: dict[str, Any]) -> Event:
    """Normalize one upstream game object into an Event."""
    if _is_legacy_game(game):
        return _parse_legacy_game(game)
    return _parse_web_game(game)


def _day_blocks(payload: dict[str, Any]) -> Iterable[dict[str, Any]]:
    for key in ("dates", "gameWeek"):
        blocks = payload.get(key)
        if isinstance(blocks, list):
            for block in blocks:
                if isinstance(block, dict):
                    yield block
    if isinstance(payload.get("games"), list):
        yield payload


def parse_schedule(payload: dict, game_date: date | None = None) -> list[Event]:
    """Parse a schedule payload into Events for ``game_date`` (all days when None)."""

    if not isinstance(payload, dict):
        return []

    target = game_date.isoformat() if game_date else None
    seen_ids: set[str] = set()
    events: list[Event] = []

    for block in _day_blocks(payload):
        block_date = block.get("date")
        if target and isinstance(block_date, str) and block_date != target:
            continue

        games = block.get("games")
        if not isinstance(games, list):
            continue

        for game in games:
            if not isinstance(game, dict):
                continue
            try:
                event = parse_game(game)
            except Exception:
                logger.exception(
                    "Skipping unparseable game id=%s",
                    game.get("id", game.get("gamePk")),
                )
                continue
            if event.external_id is not None:
                if event.external_id in seen_ids:
                    continue
                seen_ids.add(event.external_id)
            events.append(event)

    return events
