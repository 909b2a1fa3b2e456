"""Playlist Store - Pydantic models for source documents and API responses.

Source models are the validated intermediate representation of the nested
JSON documents: every optional field has an explicit default, so malformed
input fails here with a precise field path instead of leaking into the
record collections. Unknown source fields are ignored.

Response models are used by FastAPI for query endpoint serialization.
"""

from datetime import UTC, datetime  # noqa: I001
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# --- Source Models ---


class SourceModel(BaseModel):
    """Common config for source documents.

    Numeric identifiers are accepted and kept as their decimal string form.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


def _user_ref_to_id(value: Any) -> Any:
    """Reduce a user object ({"id": ..., "display_name": ...}) to its id."""
    if isinstance(value, dict):
        return value.get("id") or value.get("display_name")
    return value


class SourceArtist(SourceModel):
    """Artist as embedded in a track object (simplified or full)."""

    id: str = Field(..., min_length=1, description="Source artist identifier")
    name: str | None = Field(default=None, description="Artist name")
    popularity: int | None = Field(default=None, ge=0, description="Present on full artist objects")
    followers: int | None = Field(default=None, ge=0, description="Follower count if present")

    @field_validator("followers", mode="before")
    @classmethod
    def _followers_total(cls, value: Any) -> Any:
        # Full artist objects carry {"href": null, "total": n}
        if isinstance(value, dict):
            return value.get("total")
        return value


class SourceAlbum(SourceModel):
    """Album as embedded in a track object."""

    id: str = Field(..., min_length=1, description="Source album identifier")
    name: str | None = Field(default=None, description="Album name")
    release_date: str | None = Field(default=None, description="Release date as given by source")
    album_type: str | None = Field(default=None, description="album, single, compilation, ...")


class SourceTrack(SourceModel):
    """Track object wrapped by a playlist item. album is required."""

    id: str = Field(..., min_length=1, description="Source track identifier")
    name: str | None = Field(default=None, description="Track name")
    duration_ms: int | None = Field(default=None, ge=0, description="Duration in milliseconds")
    explicit: bool = Field(default=False, description="Explicit lyrics flag")
    popularity: int | None = Field(default=None, ge=0, description="Source popularity score")
    artists: list[SourceArtist] = Field(default_factory=list, description="Credited artists")
    album: SourceAlbum = Field(..., description="Album the track belongs to")

    @field_validator("explicit", mode="before")
    @classmethod
    def _explicit_default(cls, value: Any) -> Any:
        return False if value is None else value


class PlaylistItem(SourceModel):
    """One entry of a playlist's ordered item list. track may be null."""

    added_at: datetime | None = Field(default=None, description="When the track was added")
    added_by: str | None = Field(default=None, description="User id that added the track")
    track: SourceTrack | None = Field(default=None, description="Wrapped track, may be missing")

    @field_validator("added_by", mode="before")
    @classmethod
    def _added_by_id(cls, value: Any) -> Any:
        return _user_ref_to_id(value)

    @field_validator("added_at", mode="after")
    @classmethod
    def _added_at_utc(cls, value: datetime | None) -> datetime | None:
        # Aware timestamps are stored on a UTC basis
        if value is not None and value.tzinfo is not None:
            return value.astimezone(UTC)
        return value


class PlaylistTracksPage(SourceModel):
    """The playlist's track page; only items matter here."""

    items: list[PlaylistItem | None] = Field(default_factory=list)


class PlaylistDocument(SourceModel):
    """A playlist source document."""

    id: str = Field(..., min_length=1, description="Source playlist identifier")
    name: str | None = Field(default=None, description="Playlist name")
    owner: str | None = Field(default=None, description="Owner id (or display name)")
    tracks: PlaylistTracksPage = Field(default_factory=PlaylistTracksPage)

    @field_validator("owner", mode="before")
    @classmethod
    def _owner_id(cls, value: Any) -> Any:
        return _user_ref_to_id(value)


class AudioFeatureRecord(SourceModel):
    """Per-track audio descriptors. Keyed by track_id (or Spotify's id)."""

    track_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("track_id", "id"),
        description="Track identifier the descriptors belong to",
    )
    danceability: float | None = Field(default=None)
    energy: float | None = Field(default=None)
    key: int | None = Field(default=None)
    mode: int | None = Field(default=None)
    tempo: float | None = Field(default=None)
    valence: float | None = Field(default=None)


class AudioFeaturesDocument(SourceModel):
    """The audio-features source document. Null records are allowed."""

    audio_features: list[AudioFeatureRecord | None] = Field(default_factory=list)


# --- Response Models ---


class ErrorResponse(BaseModel):
    """Response for failed query operations."""

    model_config = ConfigDict(extra="forbid")

    status: str = Field(default="error", description="Operation status")
    error_code: str = Field(..., description="Error code")
    error_message: str = Field(..., description="Human-readable error description")


class ArtistRef(BaseModel):
    """Artist reference embedded in track listings."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str | None = None


class PlaylistTrackResponse(BaseModel):
    """A playlist track with its energy and credited artists."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Track identifier")
    name: str | None = Field(default=None, description="Track name")
    popularity: int | None = Field(default=None, description="Source popularity score")
    energy: float | None = Field(default=None, description="Audio feature energy")
    artists: list[ArtistRef] = Field(default_factory=list, description="Credited artists")


class ArtistResponse(BaseModel):
    """Artist row."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str | None = None
    popularity: int | None = None
    followers: int | None = None


class TopTrackResponse(BaseModel):
    """Track entry in an artist summary."""

    model_config = ConfigDict(extra="forbid")

    id: str
    name: str | None = None
    popularity: int | None = None


class FeatureAverages(BaseModel):
    """Average audio features over an artist's tracks. Null when no features."""

    model_config = ConfigDict(extra="forbid")

    energy: float | None = None
    danceability: float | None = None
    valence: float | None = None
    tempo: float | None = None


class ArtistSummaryResponse(BaseModel):
    """Artist summary: row, top tracks by popularity, feature averages."""

    model_config = ConfigDict(extra="forbid")

    artist: ArtistResponse
    top_tracks: list[TopTrackResponse] = Field(default_factory=list)
    averages: FeatureAverages = Field(default_factory=FeatureAverages)


__all__ = [
    "SourceArtist",
    "SourceAlbum",
    "SourceTrack",
    "PlaylistItem",
    "PlaylistTracksPage",
    "PlaylistDocument",
    "AudioFeatureRecord",
    "AudioFeaturesDocument",
    "ErrorResponse",
    "ArtistRef",
    "PlaylistTrackResponse",
    "ArtistResponse",
    "TopTrackResponse",
    "FeatureAverages",
    "ArtistSummaryResponse",
]
