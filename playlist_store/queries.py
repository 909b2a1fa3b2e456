"""Playlist Store - Read-only aggregate queries.

Parameterized SELECTs behind the query API. Aggregation that the database
would do with JSON functions is done here in Python so the same queries run
on SQLite and PostgreSQL.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select

from playlist_store.config import TOP_TRACKS_LIMIT
from playlist_store.models import Artist, AudioFeatures, PlaylistTrack, Track, TrackArtist
from playlist_store.schemas import (
    ArtistRef,
    ArtistResponse,
    ArtistSummaryResponse,
    FeatureAverages,
    PlaylistTrackResponse,
    TopTrackResponse,
)

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def playlist_tracks_by_energy(
    session: Session,
    playlist_id: str,
    energy_min: float = 0.0,
) -> list[PlaylistTrackResponse]:
    """List a playlist's tracks with energy >= energy_min, most energetic first.

    Only tracks that have audio features and at least one credited artist
    are returned. Ties on energy are ordered by track id.

    Args:
        session: Active database session.
        playlist_id: Source playlist identifier.
        energy_min: Inclusive lower bound on AudioFeatures.energy.

    Returns:
        Tracks with their credited artists.
    """
    stmt = (
        select(
            Track.id,
            Track.name,
            Track.popularity,
            AudioFeatures.energy,
            Artist.id.label("artist_id"),
            Artist.name.label("artist_name"),
        )
        .select_from(PlaylistTrack)
        .join(Track, Track.id == PlaylistTrack.track_id)
        .join(AudioFeatures, AudioFeatures.track_id == Track.id)
        .join(TrackArtist, TrackArtist.track_id == Track.id)
        .join(Artist, Artist.id == TrackArtist.artist_id)
        .where(PlaylistTrack.playlist_id == playlist_id)
        .where(AudioFeatures.energy >= energy_min)
        .order_by(AudioFeatures.energy.desc(), Track.id, Artist.id)
    )

    tracks: dict[str, PlaylistTrackResponse] = {}
    for row in session.execute(stmt):
        entry = tracks.get(row.id)
        if entry is None:
            entry = PlaylistTrackResponse(
                id=row.id,
                name=row.name,
                popularity=row.popularity,
                energy=row.energy,
            )
            tracks[row.id] = entry
        entry.artists.append(ArtistRef(id=row.artist_id, name=row.artist_name))
    return list(tracks.values())


def artist_summary(
    session: Session,
    artist_id: str,
    limit: int = TOP_TRACKS_LIMIT,
) -> ArtistSummaryResponse | None:
    """Summarize an artist: row, top tracks by popularity, feature averages.

    Args:
        session: Active database session.
        artist_id: Source artist identifier.
        limit: Maximum number of top tracks.

    Returns:
        The summary, or None if the artist does not exist.
    """
    artist = session.get(Artist, artist_id)
    if artist is None:
        return None

    top_stmt = (
        select(Track.id, Track.name, Track.popularity)
        .join(TrackArtist, TrackArtist.track_id == Track.id)
        .where(TrackArtist.artist_id == artist_id)
        .order_by(Track.popularity.desc().nulls_last(), Track.id)
        .limit(limit)
    )
    top_tracks = [
        TopTrackResponse(id=row.id, name=row.name, popularity=row.popularity)
        for row in session.execute(top_stmt)
    ]

    avg_stmt = (
        select(
            func.avg(AudioFeatures.energy).label("energy"),
            func.avg(AudioFeatures.danceability).label("danceability"),
            func.avg(AudioFeatures.valence).label("valence"),
            func.avg(AudioFeatures.tempo).label("tempo"),
        )
        .select_from(AudioFeatures)
        .join(TrackArtist, TrackArtist.track_id == AudioFeatures.track_id)
        .where(TrackArtist.artist_id == artist_id)
    )
    averages = session.execute(avg_stmt).one()

    return ArtistSummaryResponse(
        artist=ArtistResponse(
            id=artist.id,
            name=artist.name,
            popularity=artist.popularity,
            followers=artist.followers,
        ),
        top_tracks=top_tracks,
        averages=FeatureAverages(
            energy=_as_float(averages.energy),
            danceability=_as_float(averages.danceability),
            valence=_as_float(averages.valence),
            tempo=_as_float(averages.tempo),
        ),
    )


def _as_float(value) -> float | None:
    # PostgreSQL avg() returns Decimal for numeric inputs
    return None if value is None else float(value)
