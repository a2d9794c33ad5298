"""
Conversion orchestrator.

Given a canonical entity and a target catalog, SyncFM returns the entity
augmented with the target catalog's id. It serves cached conversions from
the store, retries catalogs that failed on earlier requests once their
cooldown has passed, and otherwise fans a normalized search query out to
every catalog at once, folding each result into one aggregate record.

Stages of one conversion:
1. Flight check: concurrent identical conversions share one task
2. Cache lookup by sync id
3. Deferred retry of previously failed catalogs
4. Fan-out search with the sync id as a disambiguation hint
5. Aggregate results through the merge engine, recording errors/warnings
6. Persist the aggregate
7. Re-read the stored record with bounded polling
8. Resolve: success, partial success, or ConversionFailedError

The whole of 2-8 is wrapped in a bounded outer retry for unexpected errors,
and optionally in a wall-clock deadline (conversion.deadline_s).
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from datetime import timedelta
from typing import Any, TypeVar

from syncfm.catalogs.base import CatalogAdapter
from syncfm.catalogs.factory import build_catalogs
from syncfm.concurrency import SingleFlight
from syncfm.config import Config
from syncfm.errors import (
    ConversionFailedError,
    ConversionFailure,
    ConversionResult,
    ErrorType,
    MissingExternalIDError,
    ShortcodeNotFoundError,
    StoreError,
    UnsupportedCatalogError,
    categorize_error,
    immediate_retry_delay,
    should_retry_immediately,
    should_retry_service,
)
from syncfm.http_cache import ResponseCache
from syncfm.merge import merge_entity
from syncfm.models import (
    Album,
    Artist,
    Catalog,
    ConversionHistory,
    ConversionWarning,
    Entity,
    EntityType,
    Song,
    entity_class,
    parse_catalog,
    utcnow,
)
from syncfm.normalize import normalize_album_data, normalize_song_data
from syncfm.rate_limiter import RateLimiterRegistry
from syncfm.store import SyncStore

logger = logging.getLogger(__name__)

E = TypeVar("E", Song, Album, Artist)


def build_search_query(entity: Entity) -> str:
    """
    Build the catalog search query for an entity.

    Songs: clean title plus artists joined by ", ". Albums: clean title (format
    suffix dropped) plus artists joined by spaces. Artists: the name.
    """
    if isinstance(entity, Song):
        normalized = normalize_song_data(entity.title, entity.artists)
        return f"{normalized.clean_title} {', '.join(normalized.all_artists)}".strip()
    if isinstance(entity, Album):
        normalized = normalize_album_data(entity.title, entity.artists)
        return f"{normalized.clean_title} {' '.join(normalized.all_artists)}".strip()
    return entity.name.strip()


def _expect(entity: Entity, cls: type[E]) -> E:
    if not isinstance(entity, cls):
        raise TypeError(f"Expected a {cls.__name__}, got {type(entity).__name__}")
    return entity


def _working_copy(entity: E) -> E:
    """Copy with private bookkeeping maps so folding results never touches the original."""
    return dataclasses.replace(
        entity,
        external_ids=dict(entity.external_ids),
        conversion_errors=dict(entity.conversion_errors),
        conversion_warnings=dict(entity.conversion_warnings),
    )


class SyncFM:
    """
    Cross-catalog music identity and conversion service.

    Usage:
        async with SyncFM(Config.load()) as syncfm:
            song = await syncfm.get_input_song_info("https://open.spotify.com/track/...")
            converted = await syncfm.convert_song(song, "applemusic")
            print(syncfm.create_song_url(converted, "applemusic"))
    """

    def __init__(
        self,
        config: Config | None = None,
        catalogs: dict[Catalog, CatalogAdapter] | dict[str, CatalogAdapter] | None = None,
        store: SyncStore | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Configuration; defaults are used when omitted
            catalogs: Adapters by catalog; built from config when omitted
            store: Entity store; opened at config.store.db_path when omitted
        """
        self.config = config or Config()

        if catalogs is None:
            cache = None
            if self.config.http_cache.enabled:
                cache = ResponseCache(
                    self.config.http_cache.db_path, ttl_seconds=self.config.http_cache.ttl_seconds
                )
            catalogs = build_catalogs(self.config, rate_limiter=RateLimiterRegistry(), cache=cache)
        self.catalogs: dict[Catalog, CatalogAdapter] = {
            parse_catalog(name): adapter for name, adapter in catalogs.items()
        }

        self.store = store or SyncStore(self.config.store.db_path, self.config.store.artwork_dir)
        self._flights = SingleFlight()

    async def close(self) -> None:
        for adapter in self.catalogs.values():
            await adapter.close()

    async def __aenter__(self) -> SyncFM:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # --- Catalog lookup ---

    def get_catalog(self, name: Catalog | str) -> CatalogAdapter:
        catalog = parse_catalog(name)
        adapter = self.catalogs.get(catalog)
        if adapter is None:
            raise UnsupportedCatalogError(f"Catalog not enabled: {catalog}")
        return adapter

    def get_catalog_from_url(self, url: str) -> Catalog:
        """Identify the catalog a URL belongs to (no network)."""
        for catalog, adapter in self.catalogs.items():
            if adapter.handles_url(url):
                return catalog
        raise UnsupportedCatalogError(f"Could not determine catalog from URL: {url}")

    def get_input_type_from_url(self, url: str) -> EntityType:
        return self.get_catalog(self.get_catalog_from_url(url)).get_type_from_url(url)

    # --- Input info ---

    async def _get_input(self, url: str, entity_type: EntityType) -> Entity:
        adapter = self.get_catalog(self.get_catalog_from_url(url))
        entity_id = adapter.get_id_from_url(url)
        logger.debug(f"Fetching {entity_type} {entity_id} from {adapter.catalog}")
        return await adapter.get_by_id(entity_type, entity_id)

    async def get_input_song_info(self, url: str) -> Song:
        return _expect(await self._get_input(url, EntityType.song), Song)

    async def get_input_album_info(self, url: str) -> Album:
        return _expect(await self._get_input(url, EntityType.album), Album)

    async def get_input_artist_info(self, url: str) -> Artist:
        return _expect(await self._get_input(url, EntityType.artist), Artist)

    async def get_input_info(self, url: str, entity_type: EntityType | str | None = None) -> Entity:
        """Fetch the entity a catalog URL points at; the type is inferred when omitted."""
        if entity_type is None:
            entity_type = self.get_input_type_from_url(url)
        return await self._get_input(url, EntityType(entity_type))

    async def get_input_info_from_shortcode(self, code: str) -> Entity:
        """
        Resolve a shortcode against the store.

        Raises:
            InvalidShortcodeError: Malformed code or unknown prefix
            ShortcodeNotFoundError: No stored entity carries the code
        """
        entity = await self.store.resolve_shortcode(code)
        if entity is None:
            raise ShortcodeNotFoundError(f"No entity found for shortcode {code}")
        return entity

    # --- URLs ---

    def create_url(self, entity: Entity, catalog: Catalog | str) -> str:
        """
        Build the catalog URL for an entity from its external id (no network).

        Raises:
            MissingExternalIDError: The entity has no id for that catalog
        """
        catalog = parse_catalog(catalog)
        entity_id = entity.external_ids.get(catalog.value)
        if not entity_id:
            raise MissingExternalIDError(
                f"External ID for {catalog} not found on {entity.entity_type} "
                f"{entity.display_name!r}"
            )
        return self.get_catalog(catalog).create_url(entity_id, entity.entity_type)

    def create_song_url(self, song: Song, catalog: Catalog | str) -> str:
        return self.create_url(song, catalog)

    def create_album_url(self, album: Album, catalog: Catalog | str) -> str:
        return self.create_url(album, catalog)

    def create_artist_url(self, artist: Artist, catalog: Catalog | str) -> str:
        return self.create_url(artist, catalog)

    # --- Conversion entry points ---

    async def convert_song(self, song: Song, target: Catalog | str) -> Song:
        return _expect(await self.convert(song, target, EntityType.song), Song)

    async def convert_album(self, album: Album, target: Catalog | str) -> Album:
        return _expect(await self.convert(album, target, EntityType.album), Album)

    async def convert_artist(self, artist: Artist, target: Catalog | str) -> Artist:
        return _expect(await self.convert(artist, target, EntityType.artist), Artist)

    async def convert(
        self,
        entity: Entity,
        target: Catalog | str,
        entity_type: EntityType | str | None = None,
    ) -> Entity:
        """
        Convert an entity to the target catalog.

        Concurrent calls for the same (type, sync id, target) share one
        in-flight conversion.

        Returns:
            The stored aggregate; it carries the target id on success, or an
            error entry for the target on partial success

        Raises:
            ConversionFailedError: No catalog produced a result
            UnsupportedCatalogError: Target catalog unknown or not enabled
        """
        target_catalog = parse_catalog(target)
        self.get_catalog(target_catalog)
        entity_type = EntityType(entity_type) if entity_type else entity.entity_type
        if not isinstance(entity, entity_class(entity_type)):
            raise TypeError(f"Expected a {entity_type}, got {type(entity).__name__}")

        key = (entity_type, entity.sync_id, target_catalog)
        return await self._flights.run(
            key, lambda: self._convert_within_deadline(entity, target_catalog, entity_type)
        )

    async def _convert_within_deadline(
        self, entity: Entity, target: Catalog, entity_type: EntityType
    ) -> Entity:
        deadline = self.config.conversion.deadline_s
        if deadline is None:
            return await self._convert_with_retries(entity, target, entity_type)
        try:
            async with asyncio.timeout(deadline):
                return await self._convert_with_retries(entity, target, entity_type)
        except TimeoutError as e:
            raise ConversionFailedError(
                f"Could not convert {entity_type} to {target}: "
                f"deadline of {deadline}s exceeded",
                partial=entity,
            ) from e

    async def _convert_with_retries(
        self, entity: Entity, target: Catalog, entity_type: EntityType
    ) -> Entity:
        cfg = self.config.conversion
        last_error: Exception | None = None

        for attempt in range(1, cfg.max_attempts + 1):
            try:
                return await self._convert_once(entity, target, entity_type)
            except ConversionFailedError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Conversion of {entity_type} {entity.sync_id[:12]} to {target} failed "
                    f"(attempt {attempt}/{cfg.max_attempts}): {e}"
                )
                if attempt < cfg.max_attempts:
                    await asyncio.sleep(cfg.backoff_base_s * attempt)

        # A concurrent conversion elsewhere may still have produced the id
        try:
            stored = await self._poll_store(entity_type, entity.sync_id, target)
        except StoreError as e:
            logger.warning(f"Last-resort store poll failed: {e}")
            stored = None
        if stored is not None and stored.external_ids.get(target.value):
            logger.info(f"Recovered {entity_type} {entity.sync_id[:12]} from store after failures")
            return stored

        if last_error is None:
            raise ConversionFailedError(
                f"Could not convert {entity_type} to {target}: no attempts were made",
                partial=entity,
            )
        raise last_error

    async def _convert_once(self, entity: Entity, target: Catalog, entity_type: EntityType) -> Entity:
        sync_id = entity.sync_id

        stored = await self.store.get_by_sync_id(entity_type, sync_id)
        if stored is not None and stored.external_ids.get(target.value):
            logger.debug(f"Cache hit for {entity_type} {sync_id[:12]} on {target}")
            return stored

        if stored is not None:
            stored = await self._retry_failed_catalogs(stored, entity_type)
            if stored.external_ids.get(target.value):
                logger.debug(f"Deferred retry satisfied {entity_type} {sync_id[:12]} on {target}")
                return stored

        logger.debug(f"Fanning out {entity_type} {sync_id[:12]} to {', '.join(self.catalogs)}")
        results = await asyncio.gather(
            *(self._invoke_catalog(catalog, entity, entity_type) for catalog in self.catalogs)
        )

        if stored is not None:
            aggregate = _working_copy(merge_entity(stored, entity))
        else:
            aggregate = _working_copy(entity)
        aggregate = self._fold_results(aggregate, results)

        persisted = await self.store.upsert(aggregate)
        record = await self._poll_store(entity_type, sync_id, target) or persisted

        if record.external_ids.get(target.value):
            logger.info(f"Converted {entity_type} {record.display_name!r} to {target}")
            return record

        failures = {r.catalog: r.error.message for r in results if r.error is not None}
        if any(r.success for r in results):
            return await self._record_partial(record, target, failures.get(target.value))

        summary = "; ".join(f"{name}: {message}" for name, message in failures.items())
        raise ConversionFailedError(
            f"Could not convert {entity_type} to {target}. "
            f"Conversion failures: {summary or 'all catalogs failed'}",
            failures=failures,
            partial=record,
        )

    async def _record_partial(
        self, record: Entity, target: Catalog, reason: str | None
    ) -> Entity:
        """Keep what other catalogs found and flag the target for a later retry."""
        history = record.conversion_errors.get(target.value)
        message = f"missing external ID for {target}"
        if reason:
            message = f"{message}: {reason}"

        if history is not None:
            history = dataclasses.replace(history, last_error=message)
        else:
            history = ConversionHistory(
                attempts=1,
                last_attempt=utcnow(),
                last_error=message,
                retryable=True,
                error_type=ErrorType.unknown,
            )
        update = _working_copy(record)
        update.conversion_errors[target.value] = history

        logger.warning(
            f"Partial conversion of {record.entity_type} {record.sync_id[:12]}: "
            f"{target} missing, have {sorted(record.external_ids)}"
        )
        return await self.store.upsert(update)

    # --- Catalog invocation ---

    async def _invoke_catalog(
        self, catalog: Catalog, entity: Entity, entity_type: EntityType, attempt: int = 1
    ) -> ConversionResult[Entity]:
        """
        Search one catalog for the entity; never raises for catalog failures.

        Network/unknown failures get one immediate retry with a short backoff.
        """
        adapter = self.catalogs[catalog]
        query = build_search_query(entity)

        try:
            match = await adapter.get_by_search_query(
                entity_type, query, expected_sync_id=entity.sync_id
            )
        except Exception as e:
            error_type, retryable = categorize_error(e)

            if should_retry_immediately(error_type, attempt):
                delay = immediate_retry_delay(attempt, self.config.conversion.immediate_retry_base_s)
                logger.info(
                    f"Retrying {catalog} (attempt {attempt + 1}) after {error_type} error: {e}"
                )
                await asyncio.sleep(delay)
                return await self._invoke_catalog(catalog, entity, entity_type, attempt + 1)

            logger.warning(f"{catalog}: {entity_type} search failed ({error_type}): {e}")
            return ConversionResult(
                catalog=catalog.value,
                success=False,
                error=ConversionFailure(
                    catalog=catalog.value,
                    error_type=error_type,
                    message=str(e) or type(e).__name__,
                    retryable=retryable,
                ),
            )

        logger.debug(
            f"{catalog}: matched {match.entity.display_name!r}"
            f"{' (fallback)' if match.used_fallback else ''}"
        )
        return ConversionResult(
            catalog=catalog.value,
            success=True,
            data=match.entity,
            used_fallback=match.used_fallback,
        )

    def _fold_results(self, aggregate: E, results: list[ConversionResult[Entity]]) -> E:
        """
        Merge successful results into the aggregate and update bookkeeping.

        Success clears the catalog's error (tombstone). An exact match clears
        its warning and replaces an id recorded by an earlier fallback; a
        fallback match only sets the warning when its id is the one recorded.
        Failure bumps the catalog's attempt count.
        """
        for result in results:
            name = result.catalog
            if result.success and result.data is not None:
                incoming = result.data
                if not result.used_fallback:
                    incoming = dataclasses.replace(
                        incoming, conversion_warnings={**incoming.conversion_warnings, name: None}
                    )
                aggregate = merge_entity(aggregate, incoming)
                aggregate.conversion_errors[name] = None
                if result.used_fallback:
                    if aggregate.external_ids.get(name) != result.data.external_ids.get(name):
                        # The recorded id is kept, and so is its own warning state
                        continue
                    aggregate.conversion_warnings[name] = ConversionWarning(
                        message=(
                            f"No exact match on {name} for sync id {aggregate.sync_id[:12]}; "
                            f"used top search result {result.data.display_name!r}"
                        )
                    )
                else:
                    aggregate.conversion_warnings[name] = None
            elif result.error is not None:
                previous = aggregate.conversion_errors.get(name)
                aggregate.conversion_errors[name] = ConversionHistory(
                    attempts=(previous.attempts if previous else 0) + 1,
                    last_attempt=result.error.timestamp,
                    last_error=result.error.message,
                    retryable=result.error.retryable,
                    error_type=str(result.error.error_type),
                )
        return aggregate

    async def _retry_failed_catalogs(self, stored: E, entity_type: EntityType) -> E:
        """Re-run searches for stored failures that are retryable and past their cooldown."""
        cfg = self.config.conversion
        now = utcnow()
        due = [
            Catalog(name)
            for name, history in stored.conversion_errors.items()
            if history is not None
            and name in self.catalogs
            and should_retry_service(
                history,
                now,
                max_attempts=cfg.retry_max_attempts,
                cooldown=timedelta(seconds=cfg.retry_cooldown_s),
            )
        ]
        if not due:
            return stored

        logger.debug(f"Retrying previously failed catalogs for {stored.sync_id[:12]}: {due}")
        results = await asyncio.gather(
            *(self._invoke_catalog(catalog, stored, entity_type) for catalog in due)
        )
        updated = self._fold_results(_working_copy(stored), results)
        return _expect(await self.store.upsert(updated), type(stored))

    async def _poll_store(
        self, entity_type: EntityType, sync_id: str, target: Catalog
    ) -> Entity | None:
        """Read the record back until it carries the target id or polling runs out."""
        cfg = self.config.conversion
        record = None
        for attempt in range(cfg.poll_attempts):
            record = await self.store.get_by_sync_id(entity_type, sync_id)
            if record is not None and record.external_ids.get(target.value):
                return record
            if attempt < cfg.poll_attempts - 1:
                await asyncio.sleep(cfg.poll_backoff_base_s * (2**attempt))
        return record


## Tests


def test_build_search_query():
    song = Song(title="Blinding Lights (Remastered)", artists=["The Weeknd"])
    assert build_search_query(song) == "Blinding Lights The Weeknd"

    album = Album(title="After Hours (Deluxe)", artists=["The Weeknd"])
    assert build_search_query(album) == "After Hours The Weeknd"

    assert build_search_query(Artist(name=" Daft Punk ")) == "Daft Punk"
