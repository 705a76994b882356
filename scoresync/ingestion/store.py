"""Document-store adapter: idempotent event upserts and team stats."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, TypeVar

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from scoresync.config import DEFAULT_WRITE_CONCURRENCY, MAX_BATCH_SIZE
from scoresync.errors import StoreError
from scoresync.ingestion.schema import Event, TeamRef, TeamStats
from scoresync.models import Document

logger = logging.getLogger(__name__)

EVENTS_COLLECTION = "events"
TEAM_STATS_COLLECTION = "teamStats"
DEFAULT_TRANSACTION_ATTEMPTS = 10
_RETRY_BACKOFF_SECONDS = 0.02

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WriteConflict(Exception):
    """Another writer changed a document between our read and our write."""


class Transaction:
    """Reads record the version they saw; staged writes only land if it is unchanged."""

    def __init__(self, session: Session) -> None:
        self._session = session
        self._read_versions: dict[tuple[str, str], int | None] = {}
        self._writes: dict[tuple[str, str], dict[str, Any]] = {}

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        key = (collection, str(doc_id))
        if key in self._writes:
            return dict(self._writes[key])
        row = self._session.execute(
            select(Document.data, Document.version).where(
                Document.collection == key[0],
                Document.doc_id == key[1],
            )
        ).one_or_none()
        if key not in self._read_versions:
            self._read_versions[key] = row.version if row else None
        return dict(row.data) if row else None

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        key = (collection, str(doc_id))
        if key not in self._read_versions:
            raise StoreError(f"Document {collection}/{doc_id} must be read before it is written")
        self._writes[key] = dict(data)

    def commit(self) -> None:
        now = _utcnow()
        for (collection, doc_id), data in self._writes.items():
            version = self._read_versions[(collection, doc_id)]
            if version is None:
                # A concurrent insert of the same key surfaces as IntegrityError.
                self._session.execute(
                    insert(Document).values(
                        collection=collection,
                        doc_id=doc_id,
                        data=data,
                        version=1,
                        created_at=now,
                        updated_at=now,
                    )
                )
                continue
            result = self._session.execute(
                update(Document)
                .where(
                    Document.collection == collection,
                    Document.doc_id == doc_id,
                    Document.version == version,
                )
                .values(data=data, version=version + 1, updated_at=now)
            )
            if result.rowcount != 1:
                raise _WriteConflict(f"{collection}/{doc_id} changed since version {version}")
        self._session.commit()


class DocumentStore:
    """Collections of JSON documents with optimistic per-document transactions."""

    def __init__(
        self,
        session_factory: sessionmaker,
        *,
        max_attempts: int = DEFAULT_TRANSACTION_ATTEMPTS,
    ) -> None:
        self._session_factory = session_factory
        self.max_attempts = max(1, max_attempts)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            with self._session_factory() as session:
                row = session.execute(
                    select(Document.data).where(
                        Document.collection == collection,
                        Document.doc_id == str(doc_id),
                    )
                ).one_or_none()
                session.commit()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {exc}") from exc
        return dict(row.data) if row else None

    def count(self, collection: str) -> int:
        try:
            with self._session_factory() as session:
                return session.execute(
                    select(func.count()).select_from(Document).where(Document.collection == collection)
                ).scalar_one()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to count {collection}: {exc}") from exc

    def run_transaction(self, fn: Callable[[Transaction], T]) -> T:
        """Run ``fn`` against a fresh transaction, retrying when a write loses a race."""
        last_error: Exception | None = None
        for attempt in range(1, self.max_attempts + 1):
            with self._session_factory() as session:
                txn = Transaction(session)
                try:
                    result = fn(txn)
                    txn.commit()
                    return result
                except (_WriteConflict, IntegrityError, OperationalError) as exc:
                    session.rollback()
                    last_error = exc
                    logger.debug(
                        "Transaction conflict attempt=%s/%s error=%s",
                        attempt,
                        self.max_attempts,
                        exc,
                    )
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise StoreError(f"Transaction failed: {exc}") from exc
            time.sleep(random.uniform(0, _RETRY_BACKOFF_SECONDS * attempt))

        raise StoreError(
            f"Transaction gave up after {self.max_attempts} attempts: {last_error}"
        ) from last_error


@dataclass
class BatchResult:
    succeeded: int = 0
    failed: int = 0
    failed_ids: list[str | None] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed


def _chunks(items: list[T], size: int) -> Iterable[list[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class EventStore:
    def __init__(
        self,
        documents: DocumentStore,
        *,
        chunk_size: int = MAX_BATCH_SIZE,
        max_concurrency: int = DEFAULT_WRITE_CONCURRENCY,
    ) -> None:
        self.documents = documents
        self.chunk_size = max(1, min(chunk_size, MAX_BATCH_SIZE))
        self.max_concurrency = max(1, max_concurrency)

    def upsert_one(self, event: Event) -> Event:
        """Insert or overwrite an event keyed by externalId.

        An existing document keeps its createdAt and statsApplied marker; every
        other field comes from ``event``.
        """
        if not event.external_id:
            raise StoreError("Cannot upsert an event without externalId")
        doc_id = event.external_id

        def _apply(txn: Transaction) -> dict[str, Any]:
            now = _utcnow()
            existing = txn.get(EVENTS_COLLECTION, doc_id)
            document = event.model_copy(
                update={"created_at": now, "updated_at": now, "stats_applied": False}
            ).to_document()
            if existing is not None:
                document["createdAt"] = existing.get("createdAt") or document["createdAt"]
                document["statsApplied"] = bool(existing.get("statsApplied"))
            txn.set(EVENTS_COLLECTION, doc_id, document)
            return document

        try:
            document = self.documents.run_transaction(_apply)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"Failed to upsert event {doc_id}: {exc}") from exc
        return Event.from_document(document)

    def _upsert_counted(self, event: Event) -> bool:
        try:
            self.upsert_one(event)
        except Exception as exc:
            logger.error(
                "Failed upserting event external_id=%s error=%s",
                event.external_id,
                exc,
            )
            return False
        return True

    async def _upsert_limited(self, event: Event, semaphore: asyncio.Semaphore) -> bool:
        async with semaphore:
            return await asyncio.to_thread(self._upsert_counted, event)

    async def upsert_batch_async(self, events: Iterable[Event]) -> BatchResult:
        pending = list(events)
        result = BatchResult()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        for index, chunk in enumerate(_chunks(pending, self.chunk_size), start=1):
            outcomes = await asyncio.gather(
                *(self._upsert_limited(event, semaphore) for event in chunk),
                return_exceptions=True,
            )
            for event, outcome in zip(chunk, outcomes):
                if outcome is True:
                    result.succeeded += 1
                else:
                    if isinstance(outcome, BaseException):
                        logger.error(
                            "Upsert task crashed external_id=%s error=%s",
                            event.external_id,
                            outcome,
                        )
                    result.failed += 1
                    result.failed_ids.append(event.external_id)
            logger.debug("Chunk %s done size=%s", index, len(chunk))

        return result

    def upsert_batch(self, events: Iterable[Event]) -> BatchResult:
        """Upsert in bounded chunks; never raises, counts cover every event once."""
        return asyncio.run(self.upsert_batch_async(events))

    def update_stats_for_final(self, event: Event) -> bool:
        """Count a final event into both teams' stats exactly once.

        Returns True when this call applied the result.
        """
        if not event.is_final:
            return False
        if not event.external_id:
            raise StoreError("Cannot update stats for an event without externalId")
        doc_id = event.external_id

        def _apply(txn: Transaction) -> bool:
            current = txn.get(EVENTS_COLLECTION, doc_id)
            if current is None:
                logger.warning("Stats skipped, event not stored external_id=%s", doc_id)
                return False
            stored = Event.from_document(current)
            if not stored.is_final:
                return False
            if stored.stats_applied:
                logger.info("Stats already applied external_id=%s", doc_id)
                return False

            home_score, away_score = stored.home.score, stored.away.score
            if home_score is None or away_score is None or home_score == away_score:
                logger.warning(
                    "Final event without a winner external_id=%s score=%s-%s",
                    doc_id,
                    home_score,
                    away_score,
                )
                return False

            home_won = home_score > away_score
            now = _utcnow()
            for team, won in ((stored.home, home_won), (stored.away, not home_won)):
                self._increment_team(txn, team, won, now)

            current["statsApplied"] = True
            txn.set(EVENTS_COLLECTION, doc_id, current)
            return True

        try:
            applied = self.documents.run_transaction(_apply)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"Failed to update stats for event {doc_id}: {exc}") from exc
        if applied:
            logger.info("Applied stats for final event external_id=%s", doc_id)
        return applied

    @staticmethod
    def _increment_team(txn: Transaction, team: TeamRef, won: bool, now: datetime) -> None:
        if not team.team_id:
            raise StoreError("Cannot update stats for a team without teamId")
        existing = txn.get(TEAM_STATS_COLLECTION, team.team_id)
        if existing is None:
            stats = TeamStats(team_id=team.team_id, team_name=team.team_name)
        else:
            stats = TeamStats.from_document(existing)

        if won:
            stats.wins += 1
        else:
            stats.losses += 1
        stats.points = 2 * stats.wins + (stats.ot_losses or 0)
        if team.team_name:
            stats.team_name = team.team_name
        if team.logo_url:
            stats.logo_url = team.logo_url
        stats.last_updated = now
        txn.set(TEAM_STATS_COLLECTION, team.team_id, stats.to_document())

    def get_by_external_id(self, external_id: str | int) -> Event | None:
        document = self.documents.get(EVENTS_COLLECTION, str(external_id))
        if not document:
            return None
        try:
            return Event.from_document(document)
        except PydanticValidationError as exc:
            raise StoreError(f"Stored event {external_id} is not a valid event: {exc}") from exc

    def get_team_stats(self, team_id: str | int) -> TeamStats | None:
        document = self.documents.get(TEAM_STATS_COLLECTION, str(team_id))
        if not document:
            return None
        try:
            return TeamStats.from_document(document)
        except PydanticValidationError as exc:
            raise StoreError(f"Stored team stats {team_id} are not valid: {exc}") from exc
