"""
Field-by-field reconciliation of canonical entities.

Each entity kind declares a table mapping field names to a merge strategy.
Merging an incoming entity into an existing one applies the strategy per
field; fields without a strategy, and incoming values of None, leave the
existing value untouched.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar
from urllib.parse import urlparse

from syncfm.models import Album, Artist, EntityType, Song

logger = logging.getLogger(__name__)

# Thumbnail CDNs that throttle aggressively; any alternative image is preferred.
THROTTLED_IMAGE_HOSTS = ("googleusercontent.com", "ytimg.com")


@dataclass(frozen=True)
class Overwrite:
    """Incoming value always wins."""


@dataclass(frozen=True)
class KeepExisting:
    """Incoming value only fills an empty field."""


@dataclass(frozen=True)
class PreferNew:
    """Incoming value wins whenever it is present."""


@dataclass(frozen=True)
class MergeObjects:
    """
    Shallow merge of two key/value maps.

    Empty incoming values never erase a key. With `keep_existing_keys`, a key
    that already holds a non-empty value keeps it.
    """

    keep_existing_keys: bool = False


@dataclass(frozen=True)
class CombineUniquePrimitives:
    """Order-preserving union of two lists of scalars."""


@dataclass(frozen=True)
class CombineUniqueObjects:
    """Union of two lists of objects, deduplicated on `key`; incoming entries replace existing ones."""

    key: str


@dataclass(frozen=True)
class Custom:
    """Explicit comparison function `(existing, incoming) -> merged`."""

    func: Callable[[Any, Any], Any]


MergeStrategy = (
    Overwrite
    | KeepExisting
    | PreferNew
    | MergeObjects
    | CombineUniquePrimitives
    | CombineUniqueObjects
    | Custom
)

E = TypeVar("E", Song, Album, Artist)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def is_throttled_image(url: str | None) -> bool:
    if not url:
        return False
    host = (urlparse(url).hostname or "").lower()
    return any(host == h or host.endswith(f".{h}") for h in THROTTLED_IMAGE_HOSTS)


def prefer_unthrottled_image(existing: str | None, incoming: str | None) -> str | None:
    """
    Pick between two image URLs.

    When exactly one of them is on a throttled CDN, the other wins. Otherwise
    the incoming URL wins.
    """
    if not incoming:
        return existing
    if not existing:
        return incoming
    if is_throttled_image(existing) != is_throttled_image(incoming):
        return incoming if is_throttled_image(existing) else existing
    return incoming


def merge_keyed_history(
    existing: Mapping[str, Any] | None, incoming: Mapping[str, Any] | None
) -> dict[str, Any]:
    """Shallow merge where an incoming None deletes the key (used for error/warning maps)."""
    merged = dict(existing or {})
    for key, value in (incoming or {}).items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


def _object_key(obj: Any, key: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def apply_strategy(strategy: MergeStrategy, existing: Any, incoming: Any) -> Any:
    """Merge a single field value."""
    if incoming is None:
        return existing

    if isinstance(strategy, Overwrite):
        return incoming

    if isinstance(strategy, KeepExisting):
        return incoming if _is_empty(existing) else existing

    if isinstance(strategy, PreferNew):
        return incoming

    if isinstance(strategy, MergeObjects):
        if not isinstance(existing, Mapping) or not isinstance(incoming, Mapping):
            return incoming
        merged = dict(existing)
        for key, value in incoming.items():
            if _is_empty(value):
                continue
            if strategy.keep_existing_keys and not _is_empty(merged.get(key)):
                continue
            merged[key] = value
        return merged

    if isinstance(strategy, CombineUniquePrimitives):
        if not isinstance(existing, list) or not isinstance(incoming, list):
            return incoming
        combined = list(existing)
        for item in incoming:
            if item not in combined:
                combined.append(item)
        return combined

    if isinstance(strategy, CombineUniqueObjects):
        if not isinstance(existing, list) or not isinstance(incoming, list):
            return incoming
        combined = list(existing)
        positions = {_object_key(obj, strategy.key): i for i, obj in enumerate(combined)}
        for obj in incoming:
            obj_key = _object_key(obj, strategy.key)
            if obj_key in positions:
                combined[positions[obj_key]] = obj
            else:
                positions[obj_key] = len(combined)
                combined.append(obj)
        return combined

    if isinstance(strategy, Custom):
        return strategy.func(existing, incoming)

    raise TypeError(f"Unknown merge strategy: {strategy!r}")


_BOOKKEEPING: dict[str, MergeStrategy] = {
    "conversion_errors": Custom(merge_keyed_history),
    "conversion_warnings": Custom(merge_keyed_history),
}

# An external id that is already recorded is never replaced by a later search hit.
_EXTERNAL_IDS = MergeObjects(keep_existing_keys=True)

SONG_MERGE_RULES: dict[str, MergeStrategy] = {
    "title": KeepExisting(),
    "artists": CombineUniquePrimitives(),
    "album": KeepExisting(),
    "release_date": KeepExisting(),
    "duration": KeepExisting(),
    "image_url": Custom(prefer_unthrottled_image),
    "animated_image_url": PreferNew(),
    "explicit": PreferNew(),
    "external_ids": _EXTERNAL_IDS,
    "shortcode": KeepExisting(),
    **_BOOKKEEPING,
}

ALBUM_MERGE_RULES: dict[str, MergeStrategy] = {
    "title": KeepExisting(),
    "artists": CombineUniquePrimitives(),
    "release_date": KeepExisting(),
    "image_url": Custom(prefer_unthrottled_image),
    "total_tracks": KeepExisting(),
    "duration": KeepExisting(),
    "label": KeepExisting(),
    "genres": CombineUniquePrimitives(),
    "explicit": PreferNew(),
    "external_ids": _EXTERNAL_IDS,
    "songs": CombineUniqueObjects("sync_id"),
    "shortcode": KeepExisting(),
    **_BOOKKEEPING,
}

ARTIST_MERGE_RULES: dict[str, MergeStrategy] = {
    "name": KeepExisting(),
    "image_url": Custom(prefer_unthrottled_image),
    "genres": CombineUniquePrimitives(),
    "external_ids": _EXTERNAL_IDS,
    "tracks": CombineUniqueObjects("sync_id"),
    "albums": CombineUniqueObjects("sync_id"),
    "shortcode": KeepExisting(),
    **_BOOKKEEPING,
}

MERGE_RULES: dict[EntityType, dict[str, MergeStrategy]] = {
    EntityType.song: SONG_MERGE_RULES,
    EntityType.album: ALBUM_MERGE_RULES,
    EntityType.artist: ARTIST_MERGE_RULES,
}


def superseded_fallback_ids(existing: Any, incoming: Any) -> dict[str, str]:
    """
    Ids from `incoming` that replace a fallback match still flagged on `existing`.

    An incoming warning tombstone together with an id for that catalog marks
    an exact match, which wins over the id the fallback recorded.
    """
    return {
        catalog: incoming.external_ids[catalog]
        for catalog, warning in incoming.conversion_warnings.items()
        if warning is None
        and existing.conversion_warnings.get(catalog) is not None
        and incoming.external_ids.get(catalog)
    }


def merge_entity(
    existing: E, incoming: E, rules: Mapping[str, MergeStrategy] | None = None
) -> E:
    """
    Merge `incoming` into `existing` and return a new entity.

    Args:
        existing: The stored (or running aggregate) entity
        incoming: Freshly fetched data for the same sync id
        rules: Strategy table; defaults to the table for the entity's kind

    Returns:
        A new entity of the same class; neither argument is mutated
    """
    if type(existing) is not type(incoming):
        raise TypeError(
            f"Cannot merge {type(incoming).__name__} into {type(existing).__name__}"
        )
    if rules is None:
        rules = MERGE_RULES[existing.entity_type]

    changes: dict[str, Any] = {}
    for name, strategy in rules.items():
        old = getattr(existing, name)
        new = apply_strategy(strategy, old, getattr(incoming, name))
        if new is not old:
            changes[name] = new

    if "external_ids" in rules:
        if superseded := superseded_fallback_ids(existing, incoming):
            logger.debug(f"Exact matches replace fallback ids for {sorted(superseded)}")
            changes["external_ids"] = {
                **changes.get("external_ids", existing.external_ids),
                **superseded,
            }

    if existing.sync_id != incoming.sync_id:
        logger.debug(
            f"Merging {existing.entity_type} with differing sync ids: "
            f"{existing.sync_id[:12]} <- {incoming.sync_id[:12]}"
        )
    return dataclasses.replace(existing, **changes)


## Tests


def test_prefer_unthrottled_image():
    yt = "https://lh3.googleusercontent.com/abc=w544-h544"
    apple = "https://is1-ssl.mzstatic.com/image/500x500bb.jpg"
    assert prefer_unthrottled_image(apple, yt) == apple
    assert prefer_unthrottled_image(yt, apple) == apple
    assert prefer_unthrottled_image(apple, "https://i.scdn.co/image/x") == "https://i.scdn.co/image/x"
    assert prefer_unthrottled_image(None, yt) == yt


def test_merge_keyed_history_tombstone():
    assert merge_keyed_history({"spotify": 1, "ytmusic": 2}, {"spotify": None}) == {"ytmusic": 2}
