"""Pytest configuration and shared fixtures for syncfm tests."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest

from syncfm.catalogs.base import CatalogAdapter, CatalogURL
from syncfm.config import Config, ConversionConfig, HttpCacheConfig, StoreConfig
from syncfm.converter import SyncFM
from syncfm.errors import InvalidURLError, NotFoundError
from syncfm.models import Album, Artist, Catalog, Entity, EntityType, Song
from syncfm.store import SyncStore

# =============================================================================
# Fake catalogs
# =============================================================================


class FakeCatalog(CatalogAdapter):
    """
    Scripted in-memory adapter.

    `errors` are raised by successive searches before `error` (sticky) and
    finally `results` are consulted. Every search is recorded in `search_calls`.
    """

    def __init__(
        self,
        results: list[Entity] | None = None,
        *,
        error: Exception | None = None,
        errors: list[Exception] | None = None,
        by_id: dict[str, Entity] | None = None,
    ):
        super().__init__()
        self.results = list(results or [])
        self.error = error
        self.errors = list(errors or [])
        self.by_id = dict(by_id or {})
        self.search_calls: list[tuple[EntityType, str]] = []

    async def _search(self, entity_type: EntityType, query: str, limit: int) -> list[Any]:
        self.search_calls.append((entity_type, query))
        if self.errors:
            raise self.errors.pop(0)
        if self.error is not None:
            raise self.error
        matching = [r for r in self.results if r.entity_type == entity_type]
        return copy.deepcopy(matching[:limit])

    async def _search_songs(self, query: str, limit: int) -> list[Song]:
        return await self._search(EntityType.song, query, limit)

    async def _search_albums(self, query: str, limit: int) -> list[Album]:
        return await self._search(EntityType.album, query, limit)

    async def _search_artists(self, query: str, limit: int) -> list[Artist]:
        return await self._search(EntityType.artist, query, limit)

    async def _get(self, entity_id: str) -> Any:
        if entity_id not in self.by_id:
            raise NotFoundError(f"{self.catalog}: id {entity_id} not found", catalog=self.catalog)
        return copy.deepcopy(self.by_id[entity_id])

    async def get_song_by_id(self, song_id: str) -> Song:
        return await self._get(song_id)

    async def get_album_by_id(self, album_id: str) -> Album:
        return await self._get(album_id)

    async def get_artist_by_id(self, artist_id: str) -> Artist:
        return await self._get(artist_id)

    def parse_url(self, url: str) -> CatalogURL:
        if not self.handles_url(url):
            raise InvalidURLError(f"Invalid {self.catalog} URL: {url}")
        *_, raw_type, entity_id = url.rstrip("/").split("/")
        return CatalogURL(
            catalog=self.catalog,
            type=EntityType(raw_type),
            id=entity_id,
            url=url,
        )

    def create_url(self, entity_id: str, entity_type: EntityType | str) -> str:
        return f"https://{self.hosts[0]}/{EntityType(entity_type).value}/{entity_id}"


class FakeAppleMusic(FakeCatalog):
    catalog = Catalog.applemusic
    hosts = ("music.apple.com",)


class FakeSpotify(FakeCatalog):
    catalog = Catalog.spotify
    hosts = ("open.spotify.com",)


class FakeYouTubeMusic(FakeCatalog):
    catalog = Catalog.ytmusic
    hosts = ("music.youtube.com",)


# =============================================================================
# Entities
# =============================================================================


def blinding_lights(**ids: str) -> Song:
    """The Weeknd's "Blinding Lights" with the given external ids."""
    return Song(
        title="Blinding Lights",
        artists=["The Weeknd"],
        duration=200,
        album="After Hours",
        external_ids=dict(ids),
    )


@pytest.fixture
def song() -> Song:
    return blinding_lights(spotify="sp-1")


# =============================================================================
# Store / config / orchestrator
# =============================================================================


@pytest.fixture
def fast_config(tmp_path: Path) -> Config:
    """Config with every backoff at zero and the HTTP cache off."""
    return Config(
        store=StoreConfig(db_path=tmp_path / "syncfm.sqlite"),
        http_cache=HttpCacheConfig(db_path=tmp_path / "http_cache.sqlite", enabled=False),
        conversion=ConversionConfig(
            backoff_base_s=0,
            poll_backoff_base_s=0,
            immediate_retry_base_s=0,
        ),
    )


@pytest.fixture
def store(tmp_path: Path) -> SyncStore:
    return SyncStore(tmp_path / "syncfm.sqlite")


@pytest.fixture
def fakes() -> dict[Catalog, FakeCatalog]:
    """One empty fake per catalog; tests script them as needed."""
    return {
        Catalog.applemusic: FakeAppleMusic(),
        Catalog.spotify: FakeSpotify(),
        Catalog.ytmusic: FakeYouTubeMusic(),
    }


@pytest.fixture
def syncfm(fast_config: Config, fakes: dict[Catalog, FakeCatalog], store: SyncStore) -> SyncFM:
    return SyncFM(fast_config, catalogs=fakes, store=store)
