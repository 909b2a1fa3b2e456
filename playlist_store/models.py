"""Playlist Store - SQLAlchemy ORM models.

Normalized relations populated by the ingestion pipeline:
1. playlists
2. artists
3. albums
4. tracks
5. track_artists
6. playlist_tracks
7. audio_features

All identifiers are source-provided strings; nothing here generates keys.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Source identifiers (Spotify base62 ids are 22 chars; leave headroom)
ID_LENGTH = 64


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Playlist(Base):
    """A source playlist.

    The only mutable relation: snapshot (and name/owner) are replaced when a
    playlist is re-ingested with changed content.
    """

    __tablename__ = "playlists"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # SHA256 hex digest of the canonical source document last ingested
    snapshot: Mapped[str | None] = mapped_column(String(64), nullable=True)


class Artist(Base):
    """An artist credited on at least one ingested track."""

    __tablename__ = "artists"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    followers: Mapped[int | None] = mapped_column(Integer, nullable=True)


class Album(Base):
    """An album referenced by at least one ingested track."""

    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Kept as the source string: Spotify dates may be "2020", "2020-05" or "2020-05-01"
    release_date: Mapped[str | None] = mapped_column(String(16), nullable=True)
    album_type: Mapped[str | None] = mapped_column(String(32), nullable=True)


class Track(Base):
    """A track. album_id must reference an album from the same pass or earlier."""

    __tablename__ = "tracks"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True)
    name: Mapped[str | None] = mapped_column(Text, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    explicit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    popularity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    album_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("albums.id"), nullable=False, index=True
    )


class TrackArtist(Base):
    """Junction: one row per artist credited on a track."""

    __tablename__ = "track_artists"

    track_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("tracks.id"), primary_key=True
    )
    artist_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("artists.id"), primary_key=True
    )

    __table_args__ = (Index("ix_track_artists_artist_id", "artist_id"),)


class PlaylistTrack(Base):
    """Junction: a track's membership in a playlist.

    position is the item's 0-based ordinal index in the source item list.
    """

    __tablename__ = "playlist_tracks"

    playlist_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("playlists.id"), primary_key=True
    )
    track_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("tracks.id"), primary_key=True
    )
    added_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    added_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (Index("ix_playlist_tracks_position", "playlist_id", "position"),)


class AudioFeatures(Base):
    """Per-track audio descriptors, joined to tracks by track_id."""

    __tablename__ = "audio_features"

    track_id: Mapped[str] = mapped_column(
        String(ID_LENGTH), ForeignKey("tracks.id"), primary_key=True
    )
    danceability: Mapped[float | None] = mapped_column(Float, nullable=True)
    energy: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)
    key: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mode: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tempo: Mapped[float | None] = mapped_column(Float, nullable=True)
    valence: Mapped[float | None] = mapped_column(Float, nullable=True)
