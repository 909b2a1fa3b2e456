"""Playlist Store - Ingestion pipeline.

Runs one ingestion pass over parsed playlist and audio-feature documents:
1. Validate every playlist document (fail fast, before any write)
2. Compute snapshots and drop playlists whose snapshot is unchanged
3. Batch the survivors; per batch, normalize and upsert inside ONE unit of work
4. Normalize and upsert the audio features in a final unit of work

Atomicity is per batch. A failing batch is rolled back in full and ends the
run; batches committed before it stay in place. Rows counted in the summary
are rows from committed units of work only.

Processing is strictly sequential: one unit of work open at a time.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from playlist_store.change_detection import needs_ingestion
from playlist_store.config import DEFAULT_BATCH_SIZE
from playlist_store.db import transaction
from playlist_store.normalize import RecordSet, normalize_audio_features, normalize_playlist
from playlist_store.schemas import AudioFeaturesDocument, PlaylistDocument
from playlist_store.upsert import UpsertTally, upsert_record_set
from playlist_store.utils.batching import batched
from playlist_store.utils.hashing import snapshot_hash

if TYPE_CHECKING:
    from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


# --- Error Codes ---


class IngestErrorCode(StrEnum):
    """Error codes for an ingestion run."""

    SOURCE_INVALID = "SOURCE_INVALID"
    DOCUMENT_MALFORMED = "DOCUMENT_MALFORMED"
    BATCH_FAILED = "BATCH_FAILED"
    FEATURES_FAILED = "FEATURES_FAILED"
    INGEST_FAILED = "INGEST_FAILED"


class IngestError(Exception):
    """Base exception for ingestion errors."""

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"{error_code}: {message}")


class SourceDocumentError(IngestError):
    """Source file unreadable, not JSON, or of the wrong top-level shape."""

    def __init__(self, source: str, reason: str):
        super().__init__(IngestErrorCode.SOURCE_INVALID, f"Invalid source {source}: {reason}")


class MalformedDocumentError(IngestError):
    """A document failed validation (e.g. a track without an album)."""

    def __init__(self, document_ref: str, reason: str):
        self.document_ref = document_ref
        super().__init__(
            IngestErrorCode.DOCUMENT_MALFORMED,
            f"Malformed document {document_ref}: {reason}",
        )


class BatchFailedError(IngestError):
    """A batch's unit of work failed and was rolled back."""

    def __init__(self, batch_index: int, playlist_ids: Sequence[str], reason: str):
        self.batch_index = batch_index
        self.playlist_ids = list(playlist_ids)
        super().__init__(
            IngestErrorCode.BATCH_FAILED,
            f"Batch {batch_index} (playlists {', '.join(self.playlist_ids)}) "
            f"rolled back: {reason}",
        )


class FeaturesFailedError(IngestError):
    """The audio-features unit of work failed and was rolled back."""

    def __init__(self, reason: str):
        super().__init__(
            IngestErrorCode.FEATURES_FAILED,
            f"Audio features rolled back: {reason}",
        )


# --- Result Types ---


@dataclass
class PendingPlaylist:
    """A validated playlist document with its snapshot hash."""

    document: PlaylistDocument
    snapshot: str


@dataclass
class IngestionSummary:
    """Outcome of one ingestion run."""

    ok: bool = True
    playlists_seen: int = 0
    playlists_skipped: int = 0
    batches_committed: int = 0
    tally: UpsertTally = field(default_factory=UpsertTally)
    error_code: str | None = None
    message: str = ""

    @property
    def rows_written(self) -> int:
        return self.tally.total


# --- Validation ---


def validate_playlists(raw_playlists: Sequence[Mapping[str, Any]]) -> list[PendingPlaylist]:
    """Validate playlist documents and compute their snapshots.

    Snapshots are computed over the raw documents so they can be reproduced
    from the source file alone.

    Args:
        raw_playlists: Parsed playlist documents.

    Returns:
        One PendingPlaylist per document, in source order.

    Raises:
        MalformedDocumentError: On the first document that fails validation.
    """
    pending = []
    for index, raw in enumerate(raw_playlists):
        try:
            document = PlaylistDocument.model_validate(raw)
        except ValidationError as e:
            raise MalformedDocumentError(f"playlists[{index}]", str(e)) from e
        try:
            snapshot = snapshot_hash(raw)
        except (TypeError, ValueError) as e:
            raise MalformedDocumentError(f"playlists[{index}]", f"not hashable: {e}") from e
        pending.append(PendingPlaylist(document=document, snapshot=snapshot))
    return pending


def validate_audio_features(raw_features: Mapping[str, Any]) -> AudioFeaturesDocument:
    """Validate the audio-features document.

    Raises:
        MalformedDocumentError: If the document fails validation.
    """
    try:
        return AudioFeaturesDocument.model_validate(raw_features)
    except ValidationError as e:
        raise MalformedDocumentError("audio_features", str(e)) from e


def _dedupe_by_id(pending: list[PendingPlaylist]) -> list[PendingPlaylist]:
    """Keep the last occurrence of each playlist id, in order of last occurrence."""
    latest: dict[str, PendingPlaylist] = {}
    for item in pending:
        if item.document.id in latest:
            logger.warning(
                "Playlist id=%s appears more than once; keeping the last occurrence",
                item.document.id,
            )
            del latest[item.document.id]
        latest[item.document.id] = item
    return list(latest.values())


# --- Pipeline Stages ---


def select_changed(
    session_factory: sessionmaker,
    pending: Sequence[PendingPlaylist],
) -> list[PendingPlaylist]:
    """Drop playlists whose stored snapshot matches the incoming one."""
    changed = []
    for item in pending:
        if needs_ingestion(session_factory, item.document.id, item.snapshot):
            changed.append(item)
        else:
            logger.info("Playlist id=%s unchanged, skipping", item.document.id)
    return changed


def ingest_batch(
    session_factory: sessionmaker,
    batch: Sequence[PendingPlaylist],
    batch_index: int,
) -> UpsertTally:
    """Normalize and upsert one batch inside one unit of work.

    Args:
        session_factory: Storage provider session factory.
        batch: Playlists of this batch.
        batch_index: 0-based batch number (for logs and errors).

    Returns:
        Rows written by the committed batch.

    Raises:
        BatchFailedError: If any statement fails; nothing from the batch is kept.
    """
    records = RecordSet()
    for item in batch:
        records.extend(normalize_playlist(item.document, item.snapshot))

    playlist_ids = [item.document.id for item in batch]
    tally = UpsertTally()
    started = time.perf_counter()
    try:
        with transaction(session_factory) as session:
            upsert_record_set(session, records, tally)
    except SQLAlchemyError as e:
        raise BatchFailedError(batch_index, playlist_ids, str(e)) from e

    logger.info(
        "Batch %d committed: playlists=%d rows=%d in %.1fms",
        batch_index,
        len(batch),
        tally.total,
        (time.perf_counter() - started) * 1000,
    )
    return tally


def ingest_audio_features(
    session_factory: sessionmaker,
    document: AudioFeaturesDocument,
) -> UpsertTally:
    """Normalize and upsert the audio features inside one unit of work.

    Raises:
        FeaturesFailedError: If any statement fails (e.g. a record for a
            track that was never ingested).
    """
    records = normalize_audio_features(document)
    tally = UpsertTally()
    try:
        with transaction(session_factory) as session:
            upsert_record_set(session, records, tally)
    except SQLAlchemyError as e:
        raise FeaturesFailedError(str(e)) from e
    logger.info("Audio features committed: rows=%d", tally.total)
    return tally


# --- Entry Point ---


def run_ingestion(
    session_factory: sessionmaker,
    raw_playlists: Sequence[Mapping[str, Any]],
    raw_features: Mapping[str, Any] | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> IngestionSummary:
    """Run one ingestion pass.

    Errors never escape: the summary carries ok=False plus the error code and
    message. The final row count is logged on success and failure alike.

    Args:
        session_factory: Storage provider session factory.
        raw_playlists: Parsed playlist documents.
        raw_features: Parsed audio-features document, or None to skip that pass.
        batch_size: Playlists per unit of work (>= 1).

    Returns:
        IngestionSummary for the run.

    Raises:
        ValueError: If batch_size < 1 (raised before any work).
    """
    if batch_size < 1:
        raise ValueError(f"batch size must be >= 1, got {batch_size}")

    summary = IngestionSummary(playlists_seen=len(raw_playlists))

    try:
        pending = _dedupe_by_id(validate_playlists(raw_playlists))
        features = validate_audio_features(raw_features) if raw_features is not None else None

        changed = select_changed(session_factory, pending)
        summary.playlists_skipped = len(pending) - len(changed)
        if not changed:
            logger.info("All playlists already ingested and unchanged")

        for batch_index, batch in enumerate(batched(changed, batch_size)):
            summary.tally.merge(ingest_batch(session_factory, batch, batch_index))
            summary.batches_committed += 1

        if features is not None:
            summary.tally.merge(ingest_audio_features(session_factory, features))

    except IngestError as e:
        logger.error("Ingestion failed: %s", e.message)
        summary.ok = False
        summary.error_code = e.error_code
        summary.message = e.message
    except Exception as e:
        logger.exception("Unexpected error during ingestion")
        summary.ok = False
        summary.error_code = IngestErrorCode.INGEST_FAILED
        summary.message = f"Unexpected error: {e}"
    else:
        summary.message = "Ingestion complete"

    logger.info(
        "Total rows written: %d (batches committed=%d, playlists skipped=%d)",
        summary.rows_written,
        summary.batches_committed,
        summary.playlists_skipped,
    )
    return summary
