"""Canonical data contract shared by fetch -> normalize -> store."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SCHEDULED = "scheduled"
LIVE = "live"
FINAL = "final"


def _coerce_id(value: Any) -> Any:
    # Upstream ids arrive as ints in one feed and strings in another.
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return None


class _Document(BaseModel):
    """Documents are stored with camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, data: dict[str, Any]):
        return cls.model_validate(data)


class TeamRef(_Document):
    team_id: Optional[str] = None
    team_name: str = ""
    score: Optional[int] = None
    logo_url: Optional[str] = None

    @field_validator("team_id", mode="before")
    @classmethod
    def coerce_team_id(cls, value: Any) -> Any:
        return _coerce_id(value)


class Venue(_Document):
    id: Optional[str] = None
    name: str

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_id(value)


class Event(_Document):
    """
    Canonical game record. Fields are optional where upstream may omit them;
    validation before the store write rejects incomplete events.
    """

    external_id: Optional[str] = None
    start_time: Optional[datetime] = None
    home: TeamRef = Field(default_factory=TeamRef)
    away: TeamRef = Field(default_factory=TeamRef)
    status: str = SCHEDULED
    season: Optional[str] = None
    event_type: Optional[str] = None
    venue: Optional[Venue] = None
    # Upstream fields the canonical schema does not model, keyed by original name.
    extra: dict[str, Any] = Field(default_factory=dict)
    stats_applied: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("external_id", mode="before")
    @classmethod
    def coerce_external_id(cls, value: Any) -> Any:
        return _coerce_id(value)

    @property
    def is_final(self) -> bool:
        return self.status == FINAL


class TeamStats(_Document):
    team_id: str
    team_name: str = ""
    wins: int = 0
    losses: int = 0
    ot_losses: Optional[int] = None
    points: Optional[int] = None
    logo_url: Optional[str] = None
    last_updated: Optional[datetime] = None

    @field_validator("team_id", mode="before")
    @classmethod
    def coerce_team_id(cls, value: Any) -> Any:
        return _coerce_id(value)
