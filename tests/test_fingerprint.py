"""Tests for sync id generation and duration handling."""

from __future__ import annotations

import pytest

from syncfm.fingerprint import (
    bucket_duration,
    canonical_artist_set,
    generate_album_sync_id,
    generate_sync_artist_id,
    generate_sync_id,
    parse_duration_with_fudge,
)
from syncfm.models import Album, Song


class TestSyncId:
    def test_deterministic(self):
        first = generate_sync_id("Blinding Lights", ["The Weeknd"], 200)
        second = generate_sync_id("Blinding Lights", ["The Weeknd"], 200)
        assert first == second
        assert len(first) == 64
        int(first, 16)

    def test_artist_order_does_not_matter(self):
        assert generate_sync_id("Song", ["Artist A", "Artist B"], 200) == generate_sync_id(
            "Song", ["Artist B", "Artist A"], 200
        )

    def test_duration_bucket_tolerance(self):
        base = generate_sync_id("Song", ["Artist"], 186)
        assert generate_sync_id("Song", ["Artist"], 188) == base
        assert generate_sync_id("Song", ["Artist"], 195) != base

    def test_bucket_boundary_splits_close_durations(self):
        # Floor buckets: one second apart but across a boundary
        assert generate_sync_id("Song", ["Artist"], 189) != generate_sync_id(
            "Song", ["Artist"], 190
        )

    def test_noise_in_title_ignored(self):
        clean = generate_sync_id("Blinding Lights", ["The Weeknd"], 200)
        assert generate_sync_id("Blinding Lights (Official Video)", ["The Weeknd"], 200) == clean
        assert generate_sync_id("BLINDING LIGHTS", ["the weeknd"], 202) == clean

    def test_featured_artist_in_title(self):
        plain = generate_sync_id("Song", ["Alpha"], 200)
        assert generate_sync_id("Song (feat. Zeta)", ["Alpha"], 200) == plain

    def test_different_songs_differ(self):
        assert generate_sync_id("Song", ["Artist"], 200) != generate_sync_id(
            "Other Song", ["Artist"], 200
        )
        assert generate_sync_id("Song", ["Artist"], 200) != generate_sync_id(
            "Song", ["Someone Else"], 200
        )

    def test_missing_duration(self):
        assert generate_sync_id("Song", ["Artist"], None) == generate_sync_id(
            "Song", ["Artist"], 0
        )

    def test_entity_defaults_use_fingerprint(self):
        song = Song(title="Song", artists=["Artist"], duration=187)
        assert song.sync_id == generate_sync_id("Song", ["Artist"], 187)

        album = Album(
            title="Album",
            artists=["Artist"],
            songs=[Song(title="One", duration=100), Song(title="Two", duration=91)],
        )
        assert album.duration == 191
        assert album.sync_id == generate_album_sync_id("Album", ["Artist"], [100, 91])


class TestArtistId:
    def test_case_and_punctuation_insensitive(self):
        assert generate_sync_artist_id("Daft Punk") == generate_sync_artist_id("daft punk!")

    def test_name_only(self):
        assert generate_sync_artist_id("Daft Punk") != generate_sync_artist_id("Justice")

    def test_separator_suffix_dropped(self):
        assert generate_sync_artist_id("Daft Punk - Topic") == generate_sync_artist_id("Daft Punk")


class TestDurations:
    @pytest.mark.parametrize(
        ("seconds", "bucket"),
        [(0, 0), (4, 0), (5, 5), (186, 185), (189, 185), (190, 190), (None, 0), (-3, 0)],
    )
    def test_bucket(self, seconds, bucket):
        assert bucket_duration(seconds) == bucket

    @pytest.mark.parametrize(
        ("ms", "seconds"),
        [(200_000, 200), (200_001, 201), (199_999, 200), (999, 1), (None, 0), (0, 0)],
    )
    def test_fudge_rounds_up(self, ms, seconds):
        assert parse_duration_with_fudge(ms) == seconds

    def test_fudge_truncates_float_ms(self):
        assert parse_duration_with_fudge(200_000.7) == 200


def test_canonical_artist_set_sorted_and_merged():
    assert canonical_artist_set("Song (feat. Beta)", ["Gamma", "alpha"]) == [
        "alpha",
        "beta",
        "gamma",
    ]
