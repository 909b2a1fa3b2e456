"""Playlist Store - Snapshot-based change detection.

A playlist needs ingestion unless its stored snapshot equals the freshly
computed one. Detection must never drop legitimate data, so any failure to
read the stored snapshot counts as "changed".
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select

from playlist_store.models import Playlist

if TYPE_CHECKING:
    from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def get_stored_snapshot(session: Session, playlist_id: str) -> str | None:
    """Point read of a playlist's stored snapshot.

    Args:
        session: Active database session.
        playlist_id: Source playlist identifier.

    Returns:
        The stored snapshot hash, or None if the playlist row is absent.
    """
    stmt = select(Playlist.snapshot).where(Playlist.id == playlist_id)
    return session.execute(stmt).scalar_one_or_none()


def needs_ingestion(session_factory: sessionmaker, playlist_id: str, snapshot: str) -> bool:
    """Decide whether a playlist document must be (re-)ingested.

    Args:
        session_factory: Storage provider session factory.
        playlist_id: Source playlist identifier.
        snapshot: Snapshot hash of the incoming document.

    Returns:
        False only when the stored snapshot matches exactly; True otherwise,
        including when the lookup itself fails.
    """
    try:
        session = session_factory()
        try:
            stored = get_stored_snapshot(session, playlist_id)
        finally:
            session.close()
    except Exception:
        # Best-effort: an unreadable snapshot means "assume changed"
        logger.warning(
            "Snapshot lookup failed for playlist id=%s; assuming changed",
            playlist_id,
            exc_info=True,
        )
        return True

    return stored != snapshot
