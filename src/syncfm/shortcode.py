"""
Short, deterministic aliases for stored entities.

A shortcode is a two-letter type prefix followed by the base62 form of a
32-bit FNV-1a hash of "type:sync_id". It is a lookup convenience, not an
identity: collisions are possible and resolve to whichever record the store
finds first.
"""

from __future__ import annotations

import re

from syncfm.errors import InvalidShortcodeError
from syncfm.models import EntityType

FNV_OFFSET_BASIS = 0x811C9DC5
FNV_PRIME = 0x01000193
BASE62_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
HASH_WIDTH = 6

TYPE_PREFIXES: dict[EntityType, str] = {
    EntityType.song: "so",
    EntityType.artist: "ar",
    EntityType.album: "al",
}
_PREFIX_TYPES = {prefix: entity_type for entity_type, prefix in TYPE_PREFIXES.items()}

SHORTCODE_RE = re.compile(rf"^(so|ar|al)[0-9a-zA-Z]{{{HASH_WIDTH}}}$")


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a over the UTF-8 bytes of `text`."""
    h = FNV_OFFSET_BASIS
    for byte in text.encode():
        h ^= byte
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


def base62_encode(value: int, width: int = HASH_WIDTH) -> str:
    """Encode a non-negative integer in base62, left-padded with zeros."""
    if value < 0:
        raise ValueError("base62_encode expects a non-negative integer")
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 62)
        digits.append(BASE62_ALPHABET[rem])
    return "".join(reversed(digits)).rjust(width, BASE62_ALPHABET[0])


def create_shortcode(sync_id: str, entity_type: EntityType | str) -> str:
    """Create the shortcode for an entity, e.g. ``so0aZ3kQ``."""
    entity_type = EntityType(entity_type)
    digest = fnv1a_32(f"{entity_type.value}:{sync_id}")
    return f"{TYPE_PREFIXES[entity_type]}{base62_encode(digest)}"


def is_shortcode(code: str) -> bool:
    return bool(SHORTCODE_RE.match(code or ""))


def shortcode_type(code: str) -> EntityType:
    """Entity type named by a shortcode's prefix."""
    if not is_shortcode(code):
        raise InvalidShortcodeError(f"Invalid shortcode: {code!r}")
    return _PREFIX_TYPES[code[:2]]


## Tests


def test_fnv1a_known_vectors():
    assert fnv1a_32("") == 0x811C9DC5
    assert fnv1a_32("a") == 0xE40C292C
    assert fnv1a_32("foobar") == 0xBF9CF968


def test_base62_encode_pads():
    assert base62_encode(0) == "000000"
    assert base62_encode(61) == "00000Z"
    assert base62_encode(62) == "000010"
