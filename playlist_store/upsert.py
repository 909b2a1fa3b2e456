"""Playlist Store - Conflict-tolerant multi-row insert.

Each record collection is written with ONE multi-row INSERT. Rows whose key
already exists are skipped (ON CONFLICT DO NOTHING); nothing existing is
modified. The playlists relation is the single exception: its snapshot, name
and owner are replaced on conflict.

Relations are always written in RELATIONS order so foreign keys resolve:
artists, albums -> tracks -> track_artists; playlists -> playlist_tracks;
tracks -> audio_features.

This module issues statements on the caller's session and never commits.
Transaction boundaries belong to playlist_store.db.transaction.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite

from playlist_store.models import (
    Album,
    Artist,
    AudioFeatures,
    Base,
    Playlist,
    PlaylistTrack,
    Track,
    TrackArtist,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from playlist_store.normalize import Record, RecordSet

logger = logging.getLogger(__name__)


class UnsupportedDialectError(Exception):
    """Raised when the bound database has no ON CONFLICT insert construct."""

    def __init__(self, dialect: str):
        self.dialect = dialect
        super().__init__(f"UNSUPPORTED_DIALECT: no conflict-tolerant insert for '{dialect}'")


@dataclass(frozen=True)
class Relation:
    """Target of one record collection.

    name is both the table name and the RecordSet attribute holding the records.
    update_columns empty means conflict => skip; otherwise conflict on the
    primary key replaces those columns.
    """

    name: str
    model: type[Base]
    columns: tuple[str, ...]
    update_columns: tuple[str, ...] = ()

    @property
    def table(self) -> Table:
        return self.model.__table__


# Write order respects foreign-key dependencies
RELATIONS: tuple[Relation, ...] = (
    Relation("artists", Artist, ("id", "name", "popularity", "followers")),
    Relation("albums", Album, ("id", "name", "release_date", "album_type")),
    Relation(
        "tracks",
        Track,
        ("id", "name", "duration_ms", "explicit", "popularity", "album_id"),
    ),
    Relation("track_artists", TrackArtist, ("track_id", "artist_id")),
    Relation(
        "playlists",
        Playlist,
        ("id", "name", "owner", "snapshot"),
        update_columns=("name", "owner", "snapshot"),
    ),
    Relation(
        "playlist_tracks",
        PlaylistTrack,
        ("playlist_id", "track_id", "added_at", "added_by", "position"),
    ),
    Relation(
        "audio_features",
        AudioFeatures,
        ("track_id", "danceability", "energy", "key", "mode", "tempo", "valence"),
    ),
)


@dataclass
class UpsertTally:
    """Rows actually written, per relation."""

    by_relation: dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.by_relation.values())

    def add(self, relation: str, count: int) -> None:
        self.by_relation[relation] = self.by_relation.get(relation, 0) + count

    def merge(self, other: UpsertTally) -> None:
        for relation, count in other.by_relation.items():
            self.add(relation, count)


def _insert_construct(session: Session) -> Callable[[Table], Any]:
    """Pick the dialect-specific insert() that supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert
    if dialect == "postgresql":
        return postgresql.insert
    raise UnsupportedDialectError(dialect)


def insert_records(session: Session, relation: Relation, records: Sequence[Record]) -> int:
    """Insert a record collection with one conflict-tolerant statement.

    Args:
        session: Session inside an open unit of work.
        relation: Target relation.
        records: Records keyed by column name. Missing columns insert NULL.

    Returns:
        Number of rows actually written (0 for an empty collection, fewer
        than len(records) when keys already exist).

    Raises:
        UnsupportedDialectError: If the database is neither SQLite nor PostgreSQL.
        sqlalchemy.exc.IntegrityError: On any violation other than the
            unique-key conflict (e.g. a foreign key).
    """
    if not records:
        return 0

    insert = _insert_construct(session)
    rows = [{column: record.get(column) for column in relation.columns} for record in records]
    stmt = insert(relation.table).values(rows)
    if relation.update_columns:
        key = [column.name for column in relation.table.primary_key.columns]
        stmt = stmt.on_conflict_do_update(
            index_elements=key,
            set_={column: stmt.excluded[column] for column in relation.update_columns},
        )
    else:
        stmt = stmt.on_conflict_do_nothing()

    started = time.perf_counter()
    result = session.execute(stmt)
    elapsed_ms = (time.perf_counter() - started) * 1000

    # Some drivers report -1 when the count is unknown
    written = max(result.rowcount, 0)
    logger.info(
        "Upserted %d/%d rows into %s in %.1fms",
        written,
        len(rows),
        relation.name,
        elapsed_ms,
    )
    return written


def upsert_record_set(session: Session, records: RecordSet, tally: UpsertTally) -> int:
    """Write every collection of a record set in foreign-key order.

    Args:
        session: Session inside an open unit of work.
        records: Normalized records.
        tally: Accumulator receiving per-relation written counts.

    Returns:
        Rows written by this call.
    """
    written = 0
    for relation in RELATIONS:
        count = insert_records(session, relation, getattr(records, relation.name))
        tally.add(relation.name, count)
        written += count
    return written
