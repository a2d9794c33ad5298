"""
Canonical entity model shared by every catalog adapter.

Entities serialize to camelCase JSON-safe dicts (timestamps as ISO-8601) for
the store and the CLI's JSON output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from syncfm.errors import UnsupportedCatalogError
from syncfm.fingerprint import generate_sync_artist_id, generate_sync_id


class Catalog(StrEnum):
    """Supported streaming catalogs, in fan-out order."""

    applemusic = "applemusic"
    spotify = "spotify"
    ytmusic = "ytmusic"


SUPPORTED_CATALOGS: tuple[Catalog, ...] = tuple(Catalog)


class EntityType(StrEnum):
    """Kind of canonical entity."""

    song = "song"
    album = "album"
    artist = "artist"


def parse_catalog(value: str | Catalog) -> Catalog:
    """Parse a catalog name, raising UnsupportedCatalogError for unknown names."""
    try:
        return Catalog(str(value).lower())
    except ValueError:
        raise UnsupportedCatalogError(f"Unsupported catalog: {value}") from None


def utcnow() -> datetime:
    return datetime.now(UTC)


def _format_dt(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def _parse_dt(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if not value:
        return utcnow()
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass
class ConversionHistory:
    """Per-catalog failure bookkeeping stored on an entity."""

    attempts: int
    last_attempt: datetime
    last_error: str
    retryable: bool
    error_type: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempts": self.attempts,
            "lastAttempt": _format_dt(self.last_attempt),
            "lastError": self.last_error,
            "errorType": str(self.error_type),
            "retryable": self.retryable,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversionHistory:
        return cls(
            attempts=int(data.get("attempts", 0)),
            last_attempt=_parse_dt(data.get("lastAttempt")),
            last_error=str(data.get("lastError", "")),
            retryable=bool(data.get("retryable", False)),
            error_type=str(data.get("errorType", "unknown")),
        )


@dataclass
class ConversionWarning:
    """Recorded when a catalog match was accepted without an exact identity match."""

    message: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "timestamp": _format_dt(self.timestamp)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversionWarning:
        return cls(message=str(data.get("message", "")), timestamp=_parse_dt(data.get("timestamp")))


def _errors_to_dict(errors: dict[str, ConversionHistory | None]) -> dict[str, Any]:
    return {k: v.to_dict() for k, v in errors.items() if v is not None}


def _warnings_to_dict(warnings: dict[str, ConversionWarning | None]) -> dict[str, Any]:
    return {k: v.to_dict() for k, v in warnings.items() if v is not None}


def _errors_from_dict(data: dict[str, Any] | None) -> dict[str, ConversionHistory | None]:
    return {k: ConversionHistory.from_dict(v) for k, v in (data or {}).items() if v}


def _warnings_from_dict(data: dict[str, Any] | None) -> dict[str, ConversionWarning | None]:
    return {k: ConversionWarning.from_dict(v) for k, v in (data or {}).items() if v}


@dataclass
class Song:
    """
    Canonical song.

    `sync_id` is derived from title, artists and duration when not supplied.
    In `conversion_errors`/`conversion_warnings` a value of None marks an
    entry to be cleared on the next upsert.
    """

    title: str
    artists: list[str] = field(default_factory=list)
    duration: int | None = None
    album: str | None = None
    release_date: str | None = None
    image_url: str | None = None
    animated_image_url: str | None = None
    explicit: bool | None = None
    external_ids: dict[str, str] = field(default_factory=dict)
    sync_id: str = ""
    shortcode: str | None = None
    conversion_errors: dict[str, ConversionHistory | None] = field(default_factory=dict)
    conversion_warnings: dict[str, ConversionWarning | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.sync_id:
            self.sync_id = generate_sync_id(self.title, self.artists, self.duration or 0)

    @property
    def entity_type(self) -> EntityType:
        return EntityType.song

    @property
    def display_name(self) -> str:
        return f"{', '.join(self.artists)} - {self.title}" if self.artists else self.title

    def to_dict(self) -> dict[str, Any]:
        return {
            "syncId": self.sync_id,
            "title": self.title,
            "artists": list(self.artists),
            "album": self.album,
            "releaseDate": self.release_date,
            "duration": self.duration,
            "imageUrl": self.image_url,
            "animatedImageUrl": self.animated_image_url,
            "explicit": self.explicit,
            "externalIds": dict(self.external_ids),
            "shortcode": self.shortcode,
            "conversionErrors": _errors_to_dict(self.conversion_errors),
            "conversionWarnings": _warnings_to_dict(self.conversion_warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Song:
        return cls(
            sync_id=data.get("syncId") or "",
            title=data.get("title") or "",
            artists=list(data.get("artists") or []),
            album=data.get("album"),
            release_date=data.get("releaseDate"),
            duration=data.get("duration"),
            image_url=data.get("imageUrl"),
            animated_image_url=data.get("animatedImageUrl"),
            explicit=data.get("explicit"),
            external_ids=dict(data.get("externalIds") or {}),
            shortcode=data.get("shortcode"),
            conversion_errors=_errors_from_dict(data.get("conversionErrors")),
            conversion_warnings=_warnings_from_dict(data.get("conversionWarnings")),
        )


@dataclass
class Album:
    """Canonical album; `duration` defaults to the sum of its track durations."""

    title: str
    artists: list[str] = field(default_factory=list)
    songs: list[Song] = field(default_factory=list)
    release_date: str | None = None
    image_url: str | None = None
    total_tracks: int | None = None
    duration: int | None = None
    label: str | None = None
    genres: list[str] = field(default_factory=list)
    explicit: bool | None = None
    external_ids: dict[str, str] = field(default_factory=dict)
    sync_id: str = ""
    shortcode: str | None = None
    conversion_errors: dict[str, ConversionHistory | None] = field(default_factory=dict)
    conversion_warnings: dict[str, ConversionWarning | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.duration is None and self.songs:
            self.duration = sum(s.duration or 0 for s in self.songs)
        if self.total_tracks is None and self.songs:
            self.total_tracks = len(self.songs)
        if not self.sync_id:
            self.sync_id = generate_sync_id(self.title, self.artists, self.duration or 0)

    @property
    def entity_type(self) -> EntityType:
        return EntityType.album

    @property
    def display_name(self) -> str:
        return f"{', '.join(self.artists)} - {self.title}" if self.artists else self.title

    def to_dict(self) -> dict[str, Any]:
        return {
            "syncId": self.sync_id,
            "title": self.title,
            "artists": list(self.artists),
            "songs": [s.to_dict() for s in self.songs],
            "releaseDate": self.release_date,
            "imageUrl": self.image_url,
            "totalTracks": self.total_tracks,
            "duration": self.duration,
            "label": self.label,
            "genres": list(self.genres),
            "explicit": self.explicit,
            "externalIds": dict(self.external_ids),
            "shortcode": self.shortcode,
            "conversionErrors": _errors_to_dict(self.conversion_errors),
            "conversionWarnings": _warnings_to_dict(self.conversion_warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Album:
        return cls(
            sync_id=data.get("syncId") or "",
            title=data.get("title") or "",
            artists=list(data.get("artists") or []),
            songs=[Song.from_dict(s) for s in data.get("songs") or []],
            release_date=data.get("releaseDate"),
            image_url=data.get("imageUrl"),
            total_tracks=data.get("totalTracks"),
            duration=data.get("duration"),
            label=data.get("label"),
            genres=list(data.get("genres") or []),
            explicit=data.get("explicit"),
            external_ids=dict(data.get("externalIds") or {}),
            shortcode=data.get("shortcode"),
            conversion_errors=_errors_from_dict(data.get("conversionErrors")),
            conversion_warnings=_warnings_from_dict(data.get("conversionWarnings")),
        )


@dataclass
class ArtistTrack:
    """Lightweight top-track projection carried on an artist."""

    title: str
    sync_id: str = ""
    duration: int | None = None
    thumbnail_url: str | None = None
    external_ids: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "syncId": self.sync_id,
            "title": self.title,
            "duration": self.duration,
            "thumbnailUrl": self.thumbnail_url,
            "externalIds": dict(self.external_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ArtistTrack:
        return cls(
            sync_id=data.get("syncId") or "",
            title=data.get("title") or "",
            duration=data.get("duration"),
            thumbnail_url=data.get("thumbnailUrl"),
            external_ids=dict(data.get("externalIds") or {}),
        )


@dataclass
class Artist:
    """Canonical artist; identity comes from the name alone."""

    name: str
    image_url: str | None = None
    genres: list[str] = field(default_factory=list)
    tracks: list[ArtistTrack] | None = None
    albums: list[Album] | None = None
    external_ids: dict[str, str] = field(default_factory=dict)
    sync_id: str = ""
    shortcode: str | None = None
    conversion_errors: dict[str, ConversionHistory | None] = field(default_factory=dict)
    conversion_warnings: dict[str, ConversionWarning | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.sync_id:
            self.sync_id = generate_sync_artist_id(self.name)

    @property
    def entity_type(self) -> EntityType:
        return EntityType.artist

    @property
    def display_name(self) -> str:
        return self.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "syncId": self.sync_id,
            "name": self.name,
            "imageUrl": self.image_url,
            "genres": list(self.genres),
            "tracks": [t.to_dict() for t in self.tracks] if self.tracks is not None else None,
            "albums": [a.to_dict() for a in self.albums] if self.albums is not None else None,
            "externalIds": dict(self.external_ids),
            "shortcode": self.shortcode,
            "conversionErrors": _errors_to_dict(self.conversion_errors),
            "conversionWarnings": _warnings_to_dict(self.conversion_warnings),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Artist:
        tracks = data.get("tracks")
        albums = data.get("albums")
        return cls(
            sync_id=data.get("syncId") or "",
            name=data.get("name") or "",
            image_url=data.get("imageUrl"),
            genres=list(data.get("genres") or []),
            tracks=[ArtistTrack.from_dict(t) for t in tracks] if tracks is not None else None,
            albums=[Album.from_dict(a) for a in albums] if albums is not None else None,
            external_ids=dict(data.get("externalIds") or {}),
            shortcode=data.get("shortcode"),
            conversion_errors=_errors_from_dict(data.get("conversionErrors")),
            conversion_warnings=_warnings_from_dict(data.get("conversionWarnings")),
        )


Entity = Song | Album | Artist

_ENTITY_CLASSES: dict[EntityType, type[Song] | type[Album] | type[Artist]] = {
    EntityType.song: Song,
    EntityType.album: Album,
    EntityType.artist: Artist,
}


def entity_class(entity_type: EntityType | str) -> type[Song] | type[Album] | type[Artist]:
    return _ENTITY_CLASSES[EntityType(entity_type)]


def entity_from_dict(entity_type: EntityType | str, data: dict[str, Any]) -> Entity:
    """Rebuild an entity of the given kind from its `to_dict()` form."""
    return entity_class(entity_type).from_dict(data)
