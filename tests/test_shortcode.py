"""Tests for shortcode generation and parsing."""

from __future__ import annotations

import re

import pytest

from syncfm.errors import InvalidShortcodeError
from syncfm.fingerprint import generate_sync_id
from syncfm.models import EntityType
from syncfm.shortcode import create_shortcode, is_shortcode, shortcode_type

SYNC_ID = generate_sync_id("Blinding Lights", ["The Weeknd"], 200)


def test_format():
    code = create_shortcode(SYNC_ID, EntityType.song)
    assert re.fullmatch(r"so[0-9a-zA-Z]{6}", code)


def test_deterministic():
    assert create_shortcode(SYNC_ID, "song") == create_shortcode(SYNC_ID, EntityType.song)


@pytest.mark.parametrize(
    ("entity_type", "prefix"),
    [(EntityType.song, "so"), (EntityType.album, "al"), (EntityType.artist, "ar")],
)
def test_prefix_and_type_roundtrip(entity_type, prefix):
    code = create_shortcode(SYNC_ID, entity_type)
    assert code.startswith(prefix)
    assert shortcode_type(code) == entity_type


def test_type_is_part_of_the_hash():
    song_code = create_shortcode(SYNC_ID, "song")
    album_code = create_shortcode(SYNC_ID, "album")
    assert song_code[2:] != album_code[2:]


@pytest.mark.parametrize("code", ["", "so", "so12345", "so1234567", "xx123456", "so12-456"])
def test_invalid_codes(code):
    assert not is_shortcode(code)
    with pytest.raises(InvalidShortcodeError):
        shortcode_type(code)
