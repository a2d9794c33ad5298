"""
Content-derived identity for songs, albums and artists.

A sync id is a SHA-256 over the canonical title, the canonical primary
artist and a bucketed duration. It does not depend on which catalog the
metadata came from, so the same recording fetched from two catalogs hashes
to the same id whenever the normalized fields agree.

Durations are floored to 5-second buckets (185..189 all become 185), so two
catalogs agree only when their durations share a floor bucket, not whenever
they are within 5 seconds of each other. Rounding to the nearest bucket
would give different ids for some durations; ids stored by a system that
rounds are therefore not interchangeable with these.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable

from syncfm.normalize import (
    Normalizer,
    extract_all_artists_from_title,
    normalize_artists,
    normalize_title,
)

DURATION_BUCKET_SECONDS = 5


def bucket_duration(seconds: float | None) -> int:
    """
    Snap a duration to its 5-second bucket.

    Buckets are half-open: 185..189 all map to 185.
    """
    if not seconds or seconds < 0:
        return 0
    return int(seconds // DURATION_BUCKET_SECONDS) * DURATION_BUCKET_SECONDS


def natural_sort_key(value: str) -> tuple[tuple[int, int, str], ...]:
    """Sort key that orders embedded numbers numerically ("2" before "10")."""
    parts = re.split(r"(\d+)", value.casefold())
    return tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in parts if p)


def canonical_artist_set(title: str, artists: Iterable[str]) -> list[str]:
    """Normalized artists plus any embedded in the title, sorted naturally."""
    combined = normalize_artists(artists)
    for extra in extract_all_artists_from_title(title):
        if extra not in combined:
            combined.append(extra)
    return sorted(combined, key=natural_sort_key)


def generate_sync_id(title: str, artists: Iterable[str], duration: float | None) -> str:
    """
    Generate the catalog-agnostic identity hash for a song or album.

    Args:
        title: Raw title as reported by the catalog
        artists: Raw artist names, in any order
        duration: Duration in seconds (albums use the summed track length)

    Returns:
        Hex SHA-256 digest
    """
    canonical_title = normalize_title(title)
    ordered = canonical_artist_set(title, artists)
    primary = ordered[0] if ordered else ""
    payload = f"{canonical_title}_{primary}_{bucket_duration(duration)}".lower()
    return hashlib.sha256(payload.encode()).hexdigest()


def generate_sync_artist_id(name: str) -> str:
    """
    Generate the identity hash for an artist.

    Only the name takes part, so two artists with the same normalized name
    share an id.
    """
    processed = re.split(Normalizer.SEPARATOR_PATTERN, normalize_title(name))[0].strip()
    return hashlib.sha256(processed.encode()).hexdigest()


def parse_duration_with_fudge(duration_ms: int | float | None) -> int:
    """
    Convert a millisecond duration to whole seconds, rounding up.

    Catalogs truncate float durations to integer milliseconds, so a plain
    division under-reports by up to a second and lands neighbouring catalogs
    in different buckets.
    """
    if not duration_ms or duration_ms < 0:
        return 0
    return int((int(duration_ms) + 999) // 1000)


def generate_album_sync_id(
    title: str, artists: Iterable[str], track_durations: Iterable[float | None]
) -> str:
    """Album identity uses the total running time of its tracks."""
    total = sum(d or 0 for d in track_durations)
    return generate_sync_id(title, artists, total)


## Tests


def test_bucket_duration():
    assert bucket_duration(186) == 185
    assert bucket_duration(189.9) == 185
    assert bucket_duration(190) == 190
    assert bucket_duration(None) == 0


def test_natural_sort_key():
    assert sorted(["10 years", "2 chainz", "abba"], key=natural_sort_key) == [
        "2 chainz",
        "10 years",
        "abba",
    ]


def test_parse_duration_with_fudge():
    assert parse_duration_with_fudge(186_001) == 187
    assert parse_duration_with_fudge(186_000) == 186
    assert parse_duration_with_fudge(0) == 0
    assert parse_duration_with_fudge(None) == 0
