"""Playlist Store - Query API FastAPI application.

Read-only aggregate endpoints over the normalized store. This module issues
no writes; ingestion happens through services.ingest.

Run with:
    uvicorn services.query_api.main:app --reload  # dev server only
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from playlist_store.db import init_db
from playlist_store.queries import artist_summary, playlist_tracks_by_energy
from playlist_store.schemas import ArtistSummaryResponse, ErrorResponse, PlaylistTrackResponse

logger = logging.getLogger(__name__)

# --- Error Codes ---

ARTIST_NOT_FOUND = "ARTIST_NOT_FOUND"
QUERY_FAILED = "QUERY_FAILED"

# --- Database Setup ---

# Module-level session factory (initialized on startup)
_session_factory = None


def get_session_factory():
    """Get the session factory.

    Raises:
        RuntimeError: If session factory not initialized (app lifespan not invoked).
    """
    global _session_factory
    if _session_factory is None:
        raise RuntimeError("Session factory not initialized. App lifespan not invoked?")
    return _session_factory


def get_db_session():
    """Dependency that provides a database session."""
    SessionFactory = get_session_factory()
    session = SessionFactory()
    try:
        yield session
    finally:
        session.close()


# --- Lifespan ---


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Opens the storage provider on startup (unless a test already injected
    one) and disposes it on shutdown.
    """
    global _session_factory
    engine = None
    if _session_factory is None:
        engine, _session_factory = init_db()

    yield

    if engine is not None:
        engine.dispose()
        _session_factory = None


# --- FastAPI App ---


app = FastAPI(
    title="Playlist Store - Query API",
    description="Read-only aggregate queries over ingested playlists.",
    version="0.1.0",
    lifespan=lifespan,
)


# --- Error Handling ---


def make_error_response(status_code: int, error_code: str, error_message: str) -> JSONResponse:
    """Create a JSON error response."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error_code=error_code,
            error_message=error_message,
        ).model_dump(),
    )


# --- Endpoints ---


@app.get(
    "/playlists/{playlist_id}/tracks",
    response_model=list[PlaylistTrackResponse],
    responses={500: {"model": ErrorResponse, "description": "Query failed"}},
    summary="List a playlist's tracks by energy",
    description="Tracks with energy >= energyMin, most energetic first.",
)
def list_playlist_tracks(
    playlist_id: str,
    session: Annotated[Session, Depends(get_db_session)],
    energy_min: Annotated[float, Query(alias="energyMin", ge=0, le=1)] = 0.0,
):
    """List a playlist's tracks with their energy and credited artists.

    An unknown playlist yields an empty list.
    """
    try:
        return playlist_tracks_by_energy(session, playlist_id, energy_min)
    except SQLAlchemyError:
        logger.exception("Playlist track query failed for playlist_id=%s", playlist_id)
        return make_error_response(500, QUERY_FAILED, "Playlist track query failed")


@app.get(
    "/artists/{artist_id}/summary",
    response_model=ArtistSummaryResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Artist not found"},
        500: {"model": ErrorResponse, "description": "Query failed"},
    },
    summary="Summarize an artist",
    description="Artist row, top tracks by popularity and average audio features.",
)
def get_artist_summary(
    artist_id: str,
    session: Annotated[Session, Depends(get_db_session)],
):
    """Summarize an artist."""
    try:
        result = artist_summary(session, artist_id)
    except SQLAlchemyError:
        logger.exception("Artist summary query failed for artist_id=%s", artist_id)
        return make_error_response(500, QUERY_FAILED, "Artist summary query failed")
    if result is None:
        return make_error_response(404, ARTIST_NOT_FOUND, f"Artist not found: {artist_id}")
    return result


@app.get("/health", summary="Health check")
def health_check():
    """Simple health check endpoint."""
    return {"status": "ok"}


# --- For testing: allow overriding session factory ---


def override_session_factory(factory):
    """Override the session factory for testing."""
    global _session_factory
    _session_factory = factory
