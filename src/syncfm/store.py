"""
Persistent store for canonical entities.

SQLite with one table per entity kind (songs, albums, artists). Each row is
keyed by sync id and holds the entity's JSON form plus its shortcode.
Upserts are read-merge-write under a per-sync-id async lock, so concurrent
writers for the same entity never lose each other's contributions.
Animated cover art is kept as ``{sync_id}.webp`` files next to the database.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from syncfm.concurrency import KeyedLock
from syncfm.errors import StoreError
from syncfm.merge import merge_entity
from syncfm.models import Entity, EntityType, Song, entity_from_dict
from syncfm.normalize import normalize_song_data
from syncfm.shortcode import create_shortcode, shortcode_type

logger = logging.getLogger(__name__)

TABLES: dict[EntityType, str] = {
    EntityType.song: "songs",
    EntityType.album: "albums",
    EntityType.artist: "artists",
}

ANIMATED_ARTWORK_SUFFIX = ".webp"


def animated_artwork_filename(sync_id: str) -> str:
    return f"{sync_id}{ANIMATED_ARTWORK_SUFFIX}"


def _strip_tombstones(entity: Entity) -> None:
    entity.conversion_errors = {k: v for k, v in entity.conversion_errors.items() if v is not None}
    entity.conversion_warnings = {
        k: v for k, v in entity.conversion_warnings.items() if v is not None
    }


def _clean_song(song: Song) -> Song:
    """Strip bracketed title suffixes and split joined artist strings before storing."""
    cleaned = normalize_song_data(song.title, song.artists)
    return dataclasses.replace(
        song,
        title=cleaned.clean_title or song.title,
        artists=cleaned.all_artists or list(song.artists),
    )


class SyncStore:
    """
    SQLite-backed entity store.

    Blocking database work runs in a worker thread with a fresh connection per
    call; the per-key lock is what orders concurrent upserts.
    """

    def __init__(self, db_path: Path, artwork_dir: Path | None = None):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.artwork_dir = Path(artwork_dir) if artwork_dir else self.db_path.parent / "artwork"
        self._locks = KeyedLock()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA journal_mode = WAL")
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _db_connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_connection()
        try:
            yield conn
        except sqlite3.Error as e:
            raise StoreError(f"Store operation failed: {e}") from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._db_connection() as conn:
            for table in TABLES.values():
                conn.executescript(
                    f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        sync_id TEXT PRIMARY KEY,
                        shortcode TEXT,
                        data TEXT NOT NULL,
                        created_at REAL NOT NULL,
                        updated_at REAL NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_{table}_shortcode ON {table}(shortcode);
                    """
                )
            conn.commit()

    # Blocking helpers, run via asyncio.to_thread

    def _read(self, entity_type: EntityType, sync_id: str) -> Entity | None:
        with self._db_connection() as conn:
            row = conn.execute(
                f"SELECT data FROM {TABLES[entity_type]} WHERE sync_id = ?", (sync_id,)
            ).fetchone()
        if row is None:
            return None
        return entity_from_dict(entity_type, json.loads(row["data"]))

    def _read_by_shortcode(self, entity_type: EntityType, code: str) -> Entity | None:
        with self._db_connection() as conn:
            row = conn.execute(
                f"SELECT data FROM {TABLES[entity_type]} WHERE shortcode = ? LIMIT 1", (code,)
            ).fetchone()
        if row is None:
            return None
        return entity_from_dict(entity_type, json.loads(row["data"]))

    def _write(self, entity: Entity) -> None:
        now = time.time()
        payload = json.dumps(entity.to_dict(), ensure_ascii=False)
        with self._db_connection() as conn:
            conn.execute(
                f"""
                INSERT INTO {TABLES[entity.entity_type]}
                    (sync_id, shortcode, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(sync_id) DO UPDATE SET
                    shortcode = excluded.shortcode,
                    data = excluded.data,
                    updated_at = excluded.updated_at
                """,
                (entity.sync_id, entity.shortcode, payload, now, now),
            )
            conn.commit()

    # Public API

    async def get_by_sync_id(self, entity_type: EntityType | str, sync_id: str) -> Entity | None:
        """Fetch a stored entity, or None when the sync id is unknown."""
        return await asyncio.to_thread(self._read, EntityType(entity_type), sync_id)

    async def upsert(self, entity: Entity) -> Entity:
        """
        Merge `entity` into the stored row with the same sync id and write it back.

        Returns:
            The merged entity as stored
        """
        entity_type = entity.entity_type
        if not entity.sync_id:
            raise StoreError(f"Cannot store {entity_type} without a sync id")

        async with self._locks.hold((entity_type, entity.sync_id)):
            if isinstance(entity, Song):
                entity = _clean_song(entity)

            existing = await asyncio.to_thread(self._read, entity_type, entity.sync_id)
            if existing is not None:
                merged = merge_entity(existing, entity)
            else:
                merged = dataclasses.replace(entity)
            if not merged.shortcode:
                merged.shortcode = create_shortcode(merged.sync_id, entity_type)
            _strip_tombstones(merged)

            await asyncio.to_thread(self._write, merged)
            logger.debug(
                f"Upserted {entity_type} {merged.sync_id[:12]} "
                f"({'merged' if existing else 'new'}, ids={sorted(merged.external_ids)})"
            )
            return merged

    async def resolve_shortcode(self, code: str) -> Entity | None:
        """Look up an entity by shortcode; the prefix selects the table."""
        entity_type = shortcode_type(code)
        return await asyncio.to_thread(self._read_by_shortcode, entity_type, code)

    def animated_artwork_path(self, sync_id: str) -> Path:
        return self.artwork_dir / animated_artwork_filename(sync_id)

    def get_animated_artwork_path(self, sync_id: str) -> Path | None:
        path = self.animated_artwork_path(sync_id)
        return path if path.exists() else None

    def save_animated_artwork(self, sync_id: str, data: bytes) -> Path:
        """Write animated cover art for a song and return its path."""
        path = self.animated_artwork_path(sync_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(f"Saved animated artwork for {sync_id[:12]} ({len(data)} bytes)")
        return path

    async def attach_animated_artwork(self, sync_id: str, data: bytes) -> Song | None:
        """Store artwork bytes and record their location on the stored song."""
        song = await self.get_by_sync_id(EntityType.song, sync_id)
        if not isinstance(song, Song):
            return None
        path = await asyncio.to_thread(self.save_animated_artwork, sync_id, data)
        song.animated_image_url = path.resolve().as_uri()
        stored = await self.upsert(song)
        if not isinstance(stored, Song):
            raise StoreError(
                f"Expected a stored song for {sync_id[:12]}, got {type(stored).__name__}"
            )
        return stored

    def stats(self) -> dict[str, Any]:
        """Row counts per table."""
        with self._db_connection() as conn:
            counts = {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in TABLES.values()
            }
        return {"db_path": str(self.db_path), **counts}


## Tests


def test_animated_artwork_filename():
    assert animated_artwork_filename("abc123") == "abc123.webp"
