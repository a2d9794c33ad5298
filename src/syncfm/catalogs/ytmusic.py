"""
YouTube Music adapter backed by the YouTube Data API v3.

Songs are music videos, artists are channels and albums are the
auto-generated album playlists (OLAK5.../RDCLAK...). Thumbnails live on a
throttled CDN, so the merge engine prefers other catalogs' artwork.
"""

from __future__ import annotations

import logging
import re
from typing import Any
from urllib.parse import parse_qs, urlparse

from syncfm.catalogs.base import CatalogAdapter, CatalogURL, split_tracking
from syncfm.errors import CatalogError, NotFoundError
from syncfm.fingerprint import parse_duration_with_fudge
from syncfm.models import Album, Artist, Catalog, EntityType, Song

logger = logging.getLogger(__name__)

HOST_ALLOWLIST = ("music.youtube.com", "youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be")
AUTO_ALBUM_PREFIXES = ("OLAK5", "RDCLAK", "RDAMPLAK5")
MUSIC_CATEGORY_ID = "10"

_ISO_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def parse_iso8601_duration(value: str | None) -> int:
    """Seconds in an ISO-8601 duration such as ``PT3M20S``; 0 when unparseable."""
    match = _ISO_DURATION_RE.match(value or "")
    if not match:
        return 0
    days, hours, minutes, seconds = (int(g) if g else 0 for g in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def clean_channel_title(title: str | None) -> str:
    """Drop the " - Topic", "VEVO" and "Official" decorations from a channel name."""
    name = title or ""
    name = re.sub(r"\s*-\s*Topic$", "", name, flags=re.IGNORECASE)
    name = re.sub(r"\s*VEVO$", "", name, flags=re.IGNORECASE)
    name = re.sub(r"\s*Official$", "", name, flags=re.IGNORECASE)
    return name.strip()


def strip_artist_prefix(title: str, artist: str) -> str:
    """Turn "Artist - Title" video names into "Title" when the prefix is the channel artist."""
    if artist:
        prefix = re.match(rf"^\s*{re.escape(artist)}\s*[-–—]\s*(.+)$", title, re.IGNORECASE)
        if prefix:
            return prefix.group(1).strip()
    return title


def _best_thumbnail(thumbnails: dict[str, Any] | None) -> str | None:
    for size in ("maxres", "standard", "high", "medium", "default"):
        thumb = (thumbnails or {}).get(size)
        if thumb and thumb.get("url"):
            return thumb["url"]
    return None


def _browse_type(browse_id: str) -> EntityType:
    if browse_id.startswith("UC"):
        return EntityType.artist
    return EntityType.album


class YouTubeMusicCatalog(CatalogAdapter):
    """YouTube Music catalog via the YouTube Data API."""

    catalog = Catalog.ytmusic
    hosts = HOST_ALLOWLIST

    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def __init__(self, api_key: str | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.api_key = api_key

    async def _request(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise CatalogError(
                "YouTube API key missing (set SYNCFM_YOUTUBE_API_KEY)", catalog=self.catalog
            )
        return await self._get_json(f"{self.BASE_URL}/{endpoint}", {**params, "key": self.api_key})

    # --- Mapping ---

    def _song_from_video(self, video: dict[str, Any]) -> Song:
        snippet = video.get("snippet", {})
        artist = clean_channel_title(snippet.get("channelTitle"))
        seconds = parse_iso8601_duration(video.get("contentDetails", {}).get("duration"))
        rating = video.get("contentDetails", {}).get("contentRating", {})
        return Song(
            title=strip_artist_prefix(snippet.get("title", ""), artist),
            artists=[artist] if artist else [],
            duration=parse_duration_with_fudge(seconds * 1000) or None,
            release_date=(snippet.get("publishedAt") or "")[:10] or None,
            image_url=_best_thumbnail(snippet.get("thumbnails")),
            explicit=True if rating.get("ytRating") == "ytAgeRestricted" else None,
            external_ids={self.catalog.value: video["id"]},
        )

    async def _videos(self, video_ids: list[str]) -> list[dict[str, Any]]:
        if not video_ids:
            return []
        data = await self._request(
            "videos", {"part": "snippet,contentDetails", "id": ",".join(video_ids[:50])}
        )
        by_id = {item["id"]: item for item in data.get("items", [])}
        # keep the caller's ranking
        return [by_id[v] for v in video_ids if v in by_id]

    # --- Fetch by id ---

    async def get_song_by_id(self, song_id: str) -> Song:
        videos = await self._videos([song_id])
        if not videos:
            raise NotFoundError(f"ytmusic: no song found with id {song_id}", catalog=self.catalog)
        return self._song_from_video(videos[0])

    async def get_album_by_id(self, album_id: str) -> Album:
        if not album_id.startswith(AUTO_ALBUM_PREFIXES):
            raise CatalogError(
                f"ytmusic: browse id {album_id} is not resolvable through the Data API (invalid id)",
                catalog=self.catalog,
            )
        playlists = await self._request("playlists", {"part": "snippet", "id": album_id})
        if not playlists.get("items"):
            raise NotFoundError(f"ytmusic: no album found with id {album_id}", catalog=self.catalog)
        snippet = playlists["items"][0].get("snippet", {})

        items = await self._request(
            "playlistItems",
            {"part": "contentDetails", "playlistId": album_id, "maxResults": 50},
        )
        video_ids = [
            i["contentDetails"]["videoId"]
            for i in items.get("items", [])
            if i.get("contentDetails", {}).get("videoId")
        ]
        songs = [self._song_from_video(v) for v in await self._videos(video_ids)]

        title = re.sub(r"^Album\s*-\s*", "", snippet.get("title", ""))
        artist = clean_channel_title(snippet.get("channelTitle"))
        if not artist and songs:
            artist = songs[0].artists[0] if songs[0].artists else ""
        for song in songs:
            song.album = title

        return Album(
            title=title,
            artists=[artist] if artist else [],
            songs=songs,
            release_date=(snippet.get("publishedAt") or "")[:10] or None,
            image_url=_best_thumbnail(snippet.get("thumbnails")),
            total_tracks=len(songs),
            external_ids={self.catalog.value: album_id},
        )

    async def get_artist_by_id(self, artist_id: str) -> Artist:
        data = await self._request("channels", {"part": "snippet", "id": artist_id})
        if not data.get("items"):
            raise NotFoundError(f"ytmusic: no artist found with id {artist_id}", catalog=self.catalog)
        channel = data["items"][0]
        snippet = channel.get("snippet", {})
        return Artist(
            name=clean_channel_title(snippet.get("title")),
            image_url=_best_thumbnail(snippet.get("thumbnails")),
            external_ids={self.catalog.value: channel["id"]},
        )

    # --- Search ---

    async def _search(self, query: str, kind: str, limit: int, **extra: Any) -> list[dict[str, Any]]:
        data = await self._request(
            "search",
            {"part": "snippet", "q": query, "type": kind, "maxResults": limit, **extra},
        )
        return data.get("items", [])

    async def _search_songs(self, query: str, limit: int) -> list[Song]:
        items = await self._search(query, "video", limit, videoCategoryId=MUSIC_CATEGORY_ID)
        ids = [i["id"]["videoId"] for i in items if i.get("id", {}).get("videoId")]
        return [self._song_from_video(v) for v in await self._videos(ids)]

    async def _search_albums(self, query: str, limit: int) -> list[Album]:
        items = await self._search(f"{query} album", "playlist", limit * 3)
        ids = [
            i["id"]["playlistId"]
            for i in items
            if i.get("id", {}).get("playlistId", "").startswith(AUTO_ALBUM_PREFIXES)
        ][:limit]
        return [await self.get_album_by_id(playlist_id) for playlist_id in ids]

    async def _search_artists(self, query: str, limit: int) -> list[Artist]:
        items = await self._search(query, "channel", limit)
        return [
            Artist(
                name=clean_channel_title(i["snippet"].get("title") or i["snippet"].get("channelTitle")),
                image_url=_best_thumbnail(i["snippet"].get("thumbnails")),
                external_ids={self.catalog.value: i["id"]["channelId"]},
            )
            for i in items
            if i.get("id", {}).get("channelId") and i.get("snippet")
        ]

    # --- URLs ---

    def handles_url(self, url: str) -> bool:
        host = (urlparse(url.strip()).hostname or "").lower()
        return host in HOST_ALLOWLIST

    def parse_url(self, url: str) -> CatalogURL:
        parsed = urlparse(url.strip())
        if not self.handles_url(url):
            raise self._invalid_url(url, "host not in allowlist")
        query = parse_qs(parsed.query)
        path = parsed.path

        if parsed.hostname == "youtu.be":
            entity_id = path.strip("/")
            if not entity_id:
                raise self._invalid_url(url, "missing video id")
            return self._url(EntityType.song, entity_id, url, split_tracking(query))

        if path == "/watch" or "v" in query:
            if not query.get("v"):
                raise self._invalid_url(url, "missing video id")
            return self._url(
                EntityType.song, query["v"][0], url, split_tracking(query, frozenset({"v", "list"}))
            )

        if path == "/playlist" or "list" in query:
            list_id = (query.get("list") or [""])[0]
            if not list_id:
                raise self._invalid_url(url, "missing playlist id")
            if not list_id.startswith(AUTO_ALBUM_PREFIXES):
                raise self._invalid_url(url, "user playlists are not supported")
            return self._url(
                EntityType.album, list_id, url, split_tracking(query, frozenset({"list"}))
            )

        segments = [s for s in path.split("/") if s]
        if len(segments) == 2 and segments[0] == "browse":
            return self._url(_browse_type(segments[1]), segments[1], url, {})
        if len(segments) == 2 and segments[0] == "channel":
            return self._url(EntityType.artist, segments[1], url, {})

        raise self._invalid_url(url, "unsupported path")

    def _url(
        self, entity_type: EntityType, entity_id: str, original: str, tracking: dict[str, str]
    ) -> CatalogURL:
        return CatalogURL(
            catalog=self.catalog,
            type=entity_type,
            id=entity_id,
            url=self.create_url(entity_id, entity_type),
            original_url=original,
            tracking=tracking,
        )

    def create_url(self, entity_id: str, entity_type: EntityType | str) -> str:
        entity_type = EntityType(entity_type)
        if entity_type is EntityType.song:
            return f"https://music.youtube.com/watch?v={entity_id}"
        if entity_type is EntityType.artist:
            return f"https://music.youtube.com/channel/{entity_id}"
        if entity_id.startswith(AUTO_ALBUM_PREFIXES):
            return f"https://music.youtube.com/playlist?list={entity_id}"
        return f"https://music.youtube.com/browse/{entity_id}"
