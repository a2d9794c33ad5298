"""
Spotify Web API adapter.

Uses the client credentials flow; the access token is cached until shortly
before it expires.
"""

from __future__ import annotations

import base64
import logging
import time
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx

from syncfm.catalogs.base import CatalogAdapter, CatalogURL, split_tracking
from syncfm.errors import CatalogError
from syncfm.fingerprint import parse_duration_with_fudge
from syncfm.models import Album, Artist, ArtistTrack, Catalog, EntityType, Song

logger = logging.getLogger(__name__)

_PATH_TYPES = {
    "track": EntityType.song,
    "album": EntityType.album,
    "artist": EntityType.artist,
}
_TYPE_PATHS = {v: k for k, v in _PATH_TYPES.items()}


def _first_image(images: list[dict[str, Any]] | None) -> str | None:
    return images[0].get("url") if images else None


class SpotifyCatalog(CatalogAdapter):
    """Spotify catalog via the Web API."""

    catalog = Catalog.spotify
    hosts = ("spotify.com",)

    BASE_URL = "https://api.spotify.com/v1"
    AUTH_URL = "https://accounts.spotify.com/api/token"

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        market: str = "US",
        **kwargs: Any,
    ):
        """
        Initialize the Spotify adapter.

        Args:
            client_id: Spotify application client id
            client_secret: Spotify application client secret
            market: Market used for artist top tracks
        """
        super().__init__(**kwargs)
        if bool(client_id) != bool(client_secret):
            raise ValueError(
                "Both Spotify client_id and client_secret must be provided together. "
                f"Got: client_id={'set' if client_id else 'missing'}, "
                f"client_secret={'set' if client_secret else 'missing'}"
            )
        self.client_id = client_id
        self.client_secret = client_secret
        self.market = market
        self._access_token: str | None = None
        self._token_expires_at: float = 0.0

    async def _get_access_token(self) -> str:
        if self._access_token and time.time() < self._token_expires_at:
            return self._access_token

        if not self.client_id or not self.client_secret:
            raise CatalogError(
                "Spotify client_id and client_secret are required "
                "(set SYNCFM_SPOTIFY_CLIENT_ID and SYNCFM_SPOTIFY_CLIENT_SECRET)",
                catalog=self.catalog,
            )

        credentials = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode()).decode()
        try:
            response = await self._get_client().post(
                self.AUTH_URL,
                headers={
                    "Authorization": f"Basic {credentials}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                data={"grant_type": "client_credentials"},
            )
        except httpx.TransportError as e:
            raise CatalogError(f"network error during Spotify auth: {e}", catalog=self.catalog) from e
        self._raise_for_status(response)

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expires_at = time.time() + data.get("expires_in", 3600) - 60
        logger.debug("Obtained Spotify access token")
        return self._access_token

    async def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        token = await self._get_access_token()
        return await self._get_json(
            f"{self.BASE_URL}/{endpoint}",
            params=params,
            headers={"Authorization": f"Bearer {token}"},
        )

    # --- Mapping ---

    def _song_from_track(self, track: dict[str, Any], album: dict[str, Any] | None = None) -> Song:
        album = album or track.get("album") or {}
        return Song(
            title=track.get("name", ""),
            artists=[a["name"] for a in track.get("artists", []) if a.get("name")],
            duration=parse_duration_with_fudge(track.get("duration_ms")),
            album=album.get("name"),
            release_date=album.get("release_date"),
            image_url=_first_image(album.get("images")),
            explicit=track.get("explicit"),
            external_ids={self.catalog.value: track["id"]},
        )

    def _album_from_payload(self, data: dict[str, Any]) -> Album:
        songs = [self._song_from_track(t, data) for t in data.get("tracks", {}).get("items", []) if t]
        total = sum(s.duration or 0 for s in songs)
        return Album(
            title=data.get("name", ""),
            artists=[a["name"] for a in data.get("artists", []) if a.get("name")],
            songs=songs,
            release_date=data.get("release_date"),
            image_url=_first_image(data.get("images")),
            total_tracks=data.get("total_tracks"),
            duration=total if total > 0 else None,
            label=data.get("label"),
            genres=list(data.get("genres") or []),
            explicit=any(s.explicit for s in songs) if songs else None,
            external_ids={self.catalog.value: data["id"]},
        )

    def _artist_from_payload(
        self, data: dict[str, Any], top_tracks: list[dict[str, Any]] | None = None
    ) -> Artist:
        tracks = None
        if top_tracks is not None:
            tracks = []
            for t in top_tracks:
                song = self._song_from_track(t)
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
            name=data.get("name", ""),
            image_url=_first_image(data.get("images")),
            genres=list(data.get("genres") or []),
            tracks=tracks,
            external_ids={self.catalog.value: data["id"]},
        )

    # --- Fetch by id ---

    async def get_song_by_id(self, song_id: str) -> Song:
        return self._song_from_track(await self._request(f"tracks/{song_id}"))

    async def get_album_by_id(self, album_id: str) -> Album:
        return self._album_from_payload(await self._request(f"albums/{album_id}"))

    async def get_artist_by_id(self, artist_id: str) -> Artist:
        data = await self._request(f"artists/{artist_id}")
        top = await self._request(f"artists/{artist_id}/top-tracks", {"market": self.market})
        return self._artist_from_payload(data, top.get("tracks", []))

    # --- Search ---

    async def _search(self, query: str, kind: str, limit: int) -> list[dict[str, Any]]:
        data = await self._request("search", {"q": query, "type": kind, "limit": limit})
        return [item for item in data.get(f"{kind}s", {}).get("items", []) if item]

    async def _search_songs(self, query: str, limit: int) -> list[Song]:
        return [self._song_from_track(t) for t in await self._search(query, "track", limit)]

    async def _search_albums(self, query: str, limit: int) -> list[Album]:
        # Search results omit track lists, which the album fingerprint needs.
        items = await self._search(query, "album", limit)
        return [await self.get_album_by_id(item["id"]) for item in items if item.get("id")]

    async def _search_artists(self, query: str, limit: int) -> list[Artist]:
        return [self._artist_from_payload(a) for a in await self._search(query, "artist", limit)]

    # --- URLs ---

    def parse_url(self, url: str) -> CatalogURL:
        parsed = urlparse(url.strip())
        if not self.handles_url(url):
            raise self._invalid_url(url, "not a spotify.com host")
        segments = [s for s in parsed.path.split("/") if s and not s.startswith("intl-")]
        if len(segments) < 2:
            raise self._invalid_url(url, "incomplete path")
        raw_type, raw_id = segments[-2], segments[-1]
        entity_type = _PATH_TYPES.get(raw_type)
        if entity_type is None:
            raise self._invalid_url(url, f"unsupported type {raw_type!r}")
        return CatalogURL(
            catalog=self.catalog,
            type=entity_type,
            id=raw_id,
            url=self.create_url(raw_id, entity_type),
            original_url=url,
            tracking=split_tracking(parse_qs(parsed.query)),
        )

    def create_url(self, entity_id: str, entity_type: EntityType | str) -> str:
        return f"https://open.spotify.com/{_TYPE_PATHS[EntityType(entity_type)]}/{entity_id}"
