"""Pydantic request/response schemas."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class TrackItem(BaseModel):
    """A recommendable track as stored in the pool and returned to clients."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    track_id: str
    track_name: str
    artist_name: str
    collection_name: str | None = None
    preview_url: str = Field(min_length=1)
    artwork_url: str | None = None
    track_view_url: str | None = None
    genre: str | None = None
    release_date: str | None = None
    # free-form provider metadata: an object or null, never a list or scalar
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("source_metadata", "metadata")
    )

    @field_validator("track_id", mode="before")
    @classmethod
    def _coerce_track_id(cls, value: Any) -> str:
        if isinstance(value, bool) or value is None:
            raise ValueError("track_id must be a string or integer")
        return str(value)


class TracksResponse(BaseModel):
    success: bool = True
    tracks: list[TrackItem]


class JudgmentResponse(BaseModel):
    success: bool = True
    track_id: str
    kind: str
    remaining: int


class RefillJobResponse(BaseModel):
    success: bool = True
    source: str
    scanned: int
    added: int
    skipped_no_preview: int
    failures: int
    evicted: int
    eviction_error: str | None = None
    pool_size: int | None = None
    duration_ms: int


class DeletedTrack(BaseModel):
    track_id: str
    artist_name: str
    listeners: int


class CleanupJobResponse(BaseModel):
    success: bool = True
    scanned: int
    deleted: int
    deleted_tracks: list[DeletedTrack]
    duration_ms: int
