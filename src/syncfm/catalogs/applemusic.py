"""
Apple Music adapter backed by the public iTunes Search and Lookup APIs.

No credentials are needed. Artwork URLs are upscaled to 500x500 and
durations go through the millisecond fudge before fingerprinting.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import parse_qs, urlparse

from syncfm.catalogs.base import CatalogAdapter, CatalogURL, split_tracking
from syncfm.errors import NotFoundError
from syncfm.fingerprint import parse_duration_with_fudge
from syncfm.models import Album, Artist, ArtistTrack, Catalog, EntityType, Song

logger = logging.getLogger(__name__)

ARTWORK_SIZE = "500x500"

_SEARCH_ENTITIES = {
    EntityType.song: "song",
    EntityType.album: "album",
    EntityType.artist: "musicArtist",
}


def upscale_artwork(url: str | None) -> str | None:
    """Rewrite an artwork URL's size token (``{w}x{h}`` or ``100x100bb``) to 500x500."""
    if not url:
        return None
    url = url.replace("{w}x{h}", ARTWORK_SIZE)
    return re.sub(r"/\d+x\d+(bb|cc)?(\.\w+)$", rf"/{ARTWORK_SIZE}\1\2", url)


def split_artist_string(artist_name: str | None) -> list[str]:
    """Split Apple's joined artist credit ("A, B & C") into names."""
    if not artist_name:
        return []
    return [a.strip() for a in re.split(r",\s*|\s+&\s+", artist_name) if a.strip()]


class AppleMusicCatalog(CatalogAdapter):
    """Apple Music catalog via itunes.apple.com."""

    catalog = Catalog.applemusic
    hosts = ("music.apple.com", "itunes.apple.com", "geo.music.apple.com")

    SEARCH_URL = "https://itunes.apple.com/search"
    LOOKUP_URL = "https://itunes.apple.com/lookup"

    def __init__(self, storefront: str = "us", **kwargs: Any):
        super().__init__(**kwargs)
        self.storefront = storefront.lower()

    async def _lookup(
        self, entity_id: str, entity: str | None = None, limit: int | None = None
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"id": entity_id, "country": self.storefront}
        if entity:
            params["entity"] = entity
        if limit:
            params["limit"] = limit
        data = await self._get_json(self.LOOKUP_URL, params)
        results = data.get("results") or []
        if not results:
            raise NotFoundError(f"applemusic: id {entity_id} not found", catalog=self.catalog)
        return results

    # --- Mapping ---

    def _song_from_result(self, item: dict[str, Any]) -> Song:
        return Song(
            title=item.get("trackName", ""),
            artists=split_artist_string(item.get("artistName")),
            duration=parse_duration_with_fudge(item.get("trackTimeMillis")),
            album=item.get("collectionName"),
            release_date=(item.get("releaseDate") or "")[:10] or None,
            image_url=upscale_artwork(item.get("artworkUrl100")),
            explicit=item.get("trackExplicitness") == "explicit",
            external_ids={self.catalog.value: str(item["trackId"])},
        )

    def _album_from_results(self, results: list[dict[str, Any]]) -> Album:
        collection = next((r for r in results if r.get("wrapperType") == "collection"), None)
        if collection is None:
            raise NotFoundError("applemusic: lookup returned no album", catalog=self.catalog)
        songs = [
            self._song_from_result(r)
            for r in results
            if r.get("wrapperType") == "track" and r.get("kind") == "song"
        ]
        genre = collection.get("primaryGenreName")
        return Album(
            title=collection.get("collectionName", ""),
            artists=split_artist_string(collection.get("artistName")),
            songs=songs,
            release_date=(collection.get("releaseDate") or "")[:10] or None,
            image_url=upscale_artwork(collection.get("artworkUrl100")),
            total_tracks=collection.get("trackCount"),
            label=collection.get("copyright"),
            genres=[genre] if genre else [],
            explicit=collection.get("collectionExplicitness") == "explicit",
            external_ids={self.catalog.value: str(collection["collectionId"])},
        )

    def _artist_from_results(self, results: list[dict[str, Any]]) -> Artist:
        artist = results[0]
        genre = artist.get("primaryGenreName")
        tracks = []
        for r in results[1:]:
            if r.get("wrapperType") != "track":
                continue
            song = self._song_from_result(r)
            tracks.append(
                ArtistTrack(
                    title=song.title,
                    sync_id=song.sync_id,
                    duration=song.duration,
                    thumbnail_url=song.image_url,
                    external_ids=dict(song.external_ids),
                )
            )
        return Artist(
            name=artist.get("artistName", ""),
            genres=[genre] if genre else [],
            tracks=tracks or None,
            external_ids={self.catalog.value: str(artist["artistId"])},
        )

    # --- Fetch by id ---

    async def get_song_by_id(self, song_id: str) -> Song:
        results = await self._lookup(song_id, "song")
        # An album id (e.g. a single) resolves to its first track
        track = next((r for r in results if r.get("wrapperType") == "track"), None)
        if track is None:
            raise NotFoundError(f"applemusic: no song found with id {song_id}", catalog=self.catalog)
        return self._song_from_result(track)

    async def get_album_by_id(self, album_id: str) -> Album:
        return self._album_from_results(await self._lookup(album_id, "song"))

    async def get_artist_by_id(self, artist_id: str) -> Artist:
        return self._artist_from_results(await self._lookup(artist_id, "song", limit=10))

    # --- Search ---

    async def _search(self, query: str, entity_type: EntityType, limit: int) -> list[dict[str, Any]]:
        data = await self._get_json(
            self.SEARCH_URL,
            {
                "term": query,
                "entity": _SEARCH_ENTITIES[entity_type],
                "limit": limit,
                "country": self.storefront,
            },
        )
        return data.get("results") or []

    async def _search_songs(self, query: str, limit: int) -> list[Song]:
        return [self._song_from_result(r) for r in await self._search(query, EntityType.song, limit)]

    async def _search_albums(self, query: str, limit: int) -> list[Album]:
        results = await self._search(query, EntityType.album, limit)
        return [
            await self.get_album_by_id(str(r["collectionId"]))
            for r in results
            if r.get("collectionId")
        ]

    async def _search_artists(self, query: str, limit: int) -> list[Artist]:
        results = await self._search(query, EntityType.artist, limit)
        return [self._artist_from_results([r]) for r in results if r.get("artistId")]

    # --- URLs ---

    def parse_url(self, url: str) -> CatalogURL:
        """
        Parse a music.apple.com URL.

        ``/{storefront}/album/{slug}/{id}?i={track}`` refers to a song within
        an album and is reported as a song with the album id as `extra_id`.
        """
        parsed = urlparse(url.strip())
        if not self.handles_url(url):
            raise self._invalid_url(url, "not an Apple Music host")
        parts = [p for p in parsed.path.split("/") if p]
        if len(parts) < 3 or parts[1] not in ("song", "album", "artist"):
            raise self._invalid_url(url, "expected /{storefront}/{song|album|artist}/[slug/]{id}")

        raw_type = parts[1]
        entity_id = parts[3] if len(parts) > 3 else parts[2]
        query = parse_qs(parsed.query)
        entity_type = EntityType(raw_type)
        extra_id = None

        if raw_type == "album" and query.get("i"):
            extra_id = entity_id
            entity_id = query["i"][0]
            entity_type = EntityType.song

        return CatalogURL(
            catalog=self.catalog,
            type=entity_type,
            id=entity_id,
            url=self.create_url(entity_id, entity_type),
            original_url=url,
            extra_id=extra_id,
            tracking=split_tracking(query, frozenset({"i"})),
        )

    def create_url(self, entity_id: str, entity_type: EntityType | str) -> str:
        return f"https://music.apple.com/{self.storefront}/{EntityType(entity_type).value}/{entity_id}"
