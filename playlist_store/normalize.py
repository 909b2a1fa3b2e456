"""Playlist Store - Normalization of source documents into record sets.

Walks one validated playlist document and produces flat record collections,
one per relation, ready for the upsert engine. Records are plain dicts keyed
by column name.

Deduplication is per document only. Each collection is built as an arena
(source id -> record, first occurrence wins) and converted to a list in
insertion order at the end. Cross-document duplicates are left to the
storage layer's conflict handling.

Position policy: a PlaylistTrack's position is the item's ordinal index in
the source item list. Null items consume an index; any position value carried
in the payload is ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any

from playlist_store.schemas import AudioFeaturesDocument, PlaylistDocument

logger = logging.getLogger(__name__)

Record = dict[str, Any]

AUDIO_FEATURE_FIELDS = ("track_id", "danceability", "energy", "key", "mode", "tempo", "valence")


@dataclass
class RecordSet:
    """Flat record collections for every relation, in no particular relation order."""

    playlists: list[Record] = field(default_factory=list)
    artists: list[Record] = field(default_factory=list)
    albums: list[Record] = field(default_factory=list)
    tracks: list[Record] = field(default_factory=list)
    track_artists: list[Record] = field(default_factory=list)
    playlist_tracks: list[Record] = field(default_factory=list)
    audio_features: list[Record] = field(default_factory=list)

    def extend(self, other: RecordSet) -> None:
        """Append every collection of `other` to this record set (no dedup)."""
        for f in fields(self):
            getattr(self, f.name).extend(getattr(other, f.name))

    @property
    def total_records(self) -> int:
        return sum(len(getattr(self, f.name)) for f in fields(self))


def normalize_playlist(document: PlaylistDocument, snapshot: str) -> RecordSet:
    """Normalize one playlist document.

    Args:
        document: Validated playlist document.
        snapshot: Snapshot hash of the raw document, stored on the playlist row.

    Returns:
        RecordSet with playlists, artists, albums, tracks, track_artists and
        playlist_tracks populated. audio_features is left empty.
    """
    artists: dict[str, Record] = {}
    albums: dict[str, Record] = {}
    tracks: dict[str, Record] = {}
    track_artists: dict[tuple[str, str], Record] = {}
    playlist_tracks: dict[str, Record] = {}
    skipped = 0
    repeated = 0

    for position, item in enumerate(document.tracks.items):
        if item is None or item.track is None:
            skipped += 1
            continue
        track = item.track

        for artist in track.artists:
            if artist.id not in artists:
                artists[artist.id] = {
                    "id": artist.id,
                    "name": artist.name,
                    "popularity": artist.popularity,
                    "followers": artist.followers,
                }
            key = (track.id, artist.id)
            if key not in track_artists:
                track_artists[key] = {"track_id": track.id, "artist_id": artist.id}

        album = track.album
        if album.id not in albums:
            albums[album.id] = {
                "id": album.id,
                "name": album.name,
                "release_date": album.release_date,
                "album_type": album.album_type,
            }

        if track.id not in tracks:
            tracks[track.id] = {
                "id": track.id,
                "name": track.name,
                "duration_ms": track.duration_ms,
                "explicit": track.explicit,
                "popularity": track.popularity,
                "album_id": album.id,
            }

        # (playlist_id, track_id) is the junction key: a repeated track keeps
        # its first position.
        if track.id in playlist_tracks:
            repeated += 1
        else:
            playlist_tracks[track.id] = {
                "playlist_id": document.id,
                "track_id": track.id,
                "added_at": item.added_at,
                "added_by": item.added_by,
                "position": position,
            }

    logger.debug(
        "Normalized playlist id=%s: tracks=%d artists=%d albums=%d skipped_items=%d "
        "repeated_tracks=%d",
        document.id,
        len(tracks),
        len(artists),
        len(albums),
        skipped,
        repeated,
    )

    return RecordSet(
        playlists=[
            {
                "id": document.id,
                "name": document.name,
                "owner": document.owner,
                "snapshot": snapshot,
            }
        ],
        artists=list(artists.values()),
        albums=list(albums.values()),
        tracks=list(tracks.values()),
        track_artists=list(track_artists.values()),
        playlist_tracks=list(playlist_tracks.values()),
    )


def normalize_audio_features(document: AudioFeaturesDocument) -> RecordSet:
    """Normalize the audio-features document.

    Null records are skipped. A track_id listed twice keeps its first record.
    Tracks with no record are simply absent.

    Args:
        document: Validated audio-features document.

    Returns:
        RecordSet with only audio_features populated.
    """
    features: dict[str, Record] = {}
    for record in document.audio_features:
        if record is None or record.track_id in features:
            continue
        features[record.track_id] = record.model_dump(include=set(AUDIO_FEATURE_FIELDS))

    logger.debug("Normalized audio features: records=%d", len(features))
    return RecordSet(audio_features=list(features.values()))
