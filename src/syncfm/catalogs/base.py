"""
Abstract base class for streaming catalog adapters.

An adapter turns one catalog's API into canonical entities. The conversion
orchestrator depends only on this interface: fetch by id, search with an
optional expected sync id, and pure URL parsing/construction.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, TypeVar
from urllib.parse import urlparse

import httpx

from syncfm.errors import CatalogError, InvalidURLError, NotFoundError, RateLimitError
from syncfm.http_cache import ResponseCache
from syncfm.models import Album, Artist, Catalog, Entity, EntityType, Song
from syncfm.rate_limiter import RateLimiterRegistry

logger = logging.getLogger(__name__)

E = TypeVar("E", Song, Album, Artist)


@dataclass
class SearchMatch(Generic[E]):
    """A search hit, flagged when no candidate matched the expected sync id."""

    entity: E
    used_fallback: bool = False


@dataclass
class CatalogURL:
    """A parsed catalog URL."""

    catalog: Catalog
    type: EntityType
    id: str
    url: str
    original_url: str | None = None
    extra_id: str | None = None
    tracking: dict[str, str] = field(default_factory=dict)


def split_tracking(
    query: Mapping[str, list[str]], identifying: frozenset[str] = frozenset()
) -> dict[str, str]:
    """Query parameters that do not identify the entity (share ids, utm tags)."""
    return {k: v[0] for k, v in query.items() if v and k.lower() not in identifying}


class CatalogAdapter(ABC):
    """
    Base class for catalog adapters.

    Each adapter lazily creates and exclusively owns one httpx.AsyncClient;
    passing `client` injects one instead (the adapter then leaves it open on
    close). Requests go through the shared rate limiter and optional
    response cache.
    """

    catalog: ClassVar[Catalog]
    hosts: ClassVar[tuple[str, ...]] = ()

    # Candidates examined when an expected sync id is supplied
    search_candidate_limit: ClassVar[int] = 3

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiterRegistry | None = None,
        cache: ResponseCache | None = None,
        timeout: float = 15.0,
    ):
        self._client = client
        self._owns_client = client is None
        self.rate_limiter = rate_limiter
        self.cache = cache
        self.timeout = timeout

    # --- Lifecycle ---

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": "syncfm (+https://syncfm.dev)"},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> CatalogAdapter:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # --- HTTP ---

    async def _get_json(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """
        GET a JSON document, mapping failures onto CatalogError subclasses.

        Raises:
            NotFoundError: HTTP 404
            RateLimitError: HTTP 429
            CatalogError: other HTTP errors, network failures, bad JSON
        """
        if use_cache and self.cache:
            cached = await asyncio.to_thread(self.cache.get, self.catalog.value, url, params)
            if cached is not None:
                return cached

        if self.rate_limiter:
            await self.rate_limiter.acquire(self.catalog.value)

        try:
            response = await self._get_client().get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise CatalogError(f"network timeout: {e}", catalog=self.catalog) from e
        except httpx.TransportError as e:
            raise CatalogError(f"network error: {e}", catalog=self.catalog) from e

        self._raise_for_status(response)

        try:
            payload = response.json()
        except ValueError as e:
            raise CatalogError(
                f"invalid JSON from {self.catalog}: {e}", catalog=self.catalog
            ) from e

        if use_cache and self.cache:
            await asyncio.to_thread(self.cache.put, self.catalog.value, url, params, payload)
        return payload

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 404:
            raise NotFoundError(
                f"{self.catalog}: resource not found ({response.request.url.path})",
                catalog=self.catalog,
                status_code=status,
            )
        if status == 429:
            raise RateLimitError(
                f"{self.catalog}: rate limit exceeded (429 Too Many Requests)",
                catalog=self.catalog,
                status_code=status,
            )
        raise CatalogError(
            f"{self.catalog}: HTTP {status} for {response.request.url.path}",
            catalog=self.catalog,
            status_code=status,
        )

    # --- Fetch by id ---

    @abstractmethod
    async def get_song_by_id(self, song_id: str) -> Song:
        """
        Fetch a song by catalog-native id.

        Raises:
            NotFoundError: The id does not exist in this catalog
        """

    @abstractmethod
    async def get_album_by_id(self, album_id: str) -> Album:
        """Fetch an album, including its tracks, by catalog-native id."""

    @abstractmethod
    async def get_artist_by_id(self, artist_id: str) -> Artist:
        """Fetch an artist by catalog-native id."""

    # --- Search ---

    @abstractmethod
    async def _search_songs(self, query: str, limit: int) -> list[Song]:
        """Return up to `limit` canonical songs for a query, best first."""

    @abstractmethod
    async def _search_albums(self, query: str, limit: int) -> list[Album]:
        """Return up to `limit` canonical albums (with tracks) for a query, best first."""

    @abstractmethod
    async def _search_artists(self, query: str, limit: int) -> list[Artist]:
        """Return up to `limit` canonical artists for a query, best first."""

    async def get_song_by_search_query(
        self, query: str, expected_sync_id: str | None = None
    ) -> SearchMatch[Song]:
        limit = self.search_candidate_limit if expected_sync_id else 1
        candidates = await self._search_songs(query, limit)
        return self._select_candidate(candidates, expected_sync_id, query, EntityType.song)

    async def get_album_by_search_query(
        self, query: str, expected_sync_id: str | None = None
    ) -> SearchMatch[Album]:
        limit = self.search_candidate_limit if expected_sync_id else 1
        candidates = await self._search_albums(query, limit)
        return self._select_candidate(candidates, expected_sync_id, query, EntityType.album)

    async def get_artist_by_search_query(
        self, query: str, expected_sync_id: str | None = None
    ) -> SearchMatch[Artist]:
        limit = self.search_candidate_limit if expected_sync_id else 1
        candidates = await self._search_artists(query, limit)
        return self._select_candidate(candidates, expected_sync_id, query, EntityType.artist)

    def _select_candidate(
        self,
        candidates: list[E],
        expected_sync_id: str | None,
        query: str,
        entity_type: EntityType,
    ) -> SearchMatch[E]:
        """
        Pick the candidate whose sync id matches, else fall back to the top hit.

        Raises:
            NotFoundError: No candidates at all
        """
        if not candidates:
            raise NotFoundError(
                f"No {entity_type} found on {self.catalog} for query {query!r}",
                catalog=self.catalog,
            )
        if not expected_sync_id:
            return SearchMatch(candidates[0], used_fallback=False)

        for candidate in candidates[: self.search_candidate_limit]:
            if candidate.sync_id == expected_sync_id:
                return SearchMatch(candidate, used_fallback=False)

        logger.debug(
            f"{self.catalog}: no exact {entity_type} match among {len(candidates)} "
            f"candidate(s) for {query!r}, using top result"
        )
        return SearchMatch(candidates[0], used_fallback=True)

    # --- URLs ---

    def handles_url(self, url: str) -> bool:
        """True when the URL's host belongs to this catalog."""
        host = (urlparse(url.strip()).hostname or "").lower()
        return any(host == h or host.endswith(f".{h}") for h in self.hosts)

    @abstractmethod
    def parse_url(self, url: str) -> CatalogURL:
        """
        Parse a catalog URL without touching the network.

        Raises:
            InvalidURLError: Not a recognised URL for this catalog
        """

    def get_id_from_url(self, url: str) -> str:
        return self.parse_url(url).id

    def get_type_from_url(self, url: str) -> EntityType:
        return self.parse_url(url).type

    @abstractmethod
    def create_url(self, entity_id: str, entity_type: EntityType | str) -> str:
        """Build a public URL for an id without touching the network."""

    def _invalid_url(self, url: str, reason: str) -> InvalidURLError:
        return InvalidURLError(f"Invalid {self.catalog} URL ({reason}): {url}")

    async def get_by_id(self, entity_type: EntityType | str, entity_id: str) -> Entity:
        """Dispatch to the typed fetch method."""
        entity_type = EntityType(entity_type)
        if entity_type is EntityType.song:
            return await self.get_song_by_id(entity_id)
        if entity_type is EntityType.album:
            return await self.get_album_by_id(entity_id)
        return await self.get_artist_by_id(entity_id)

    async def get_by_search_query(
        self, entity_type: EntityType | str, query: str, expected_sync_id: str | None = None
    ) -> SearchMatch[Any]:
        """Dispatch to the typed search method."""
        entity_type = EntityType(entity_type)
        if entity_type is EntityType.song:
            return await self.get_song_by_search_query(query, expected_sync_id)
        if entity_type is EntityType.album:
            return await self.get_album_by_search_query(query, expected_sync_id)
        return await self.get_artist_by_search_query(query, expected_sync_id)
