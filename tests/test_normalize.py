"""Tests for title and artist normalization."""

from __future__ import annotations

import pytest

from syncfm.normalize import (
    Normalizer,
    extract_all_artists_from_title,
    normalize_album_data,
    normalize_artists,
    normalize_for_search,
    normalize_song_data,
    normalize_title,
)


class TestNormalizeTitle:
    @pytest.mark.parametrize(
        ("noisy", "clean"),
        [
            ("Song Title (Official Video)", "song title"),
            ("Track - Remastered 2020", "Track"),
            ("Song [Lyrics]", "song"),
            ("Song feat. Someone", "song"),
            ("Song (feat. Someone) [Explicit]", "song"),
            ("Café del Mar", "cafe del mar"),
            ("Don't Stop Me Now", "don t stop me now"),
        ],
    )
    def test_noise_invariance(self, noisy, clean):
        assert normalize_title(noisy) == normalize_title(clean)

    def test_never_empty_for_nonempty_input(self):
        assert normalize_title("(Live)") == "live"
        assert normalize_title("!!!") == "!!!"
        assert normalize_title("") == ""

    def test_unicode_letters_survive(self):
        assert normalize_title("紅蓮華") == "紅蓮華"

    def test_idempotent_on_examples(self):
        for title in ["Blinding Lights (Remix)", "Björk - Jóga", "Hello,  World!"]:
            once = normalize_title(title)
            assert normalize_title(once) == once


class TestNormalizeArtists:
    def test_no_split_on_embedded_x(self):
        assert normalize_artists(["Lexy"]) == ["lexy"]
        assert normalize_artists(["Xzibit"]) == ["xzibit"]

    def test_split_on_separators(self):
        assert normalize_artists(["Dua Lipa & Elton John"]) == ["dua lipa", "elton john"]
        assert normalize_artists(["A, B; C / D"]) == ["a", "b", "c", "d"]
        assert normalize_artists(["Simon and Garfunkel"]) == ["simon", "garfunkel"]
        assert normalize_artists(["Rosalía × J Balvin"]) == ["rosalia", "j balvin"]

    def test_dedup_keeps_first_seen_order(self):
        assert normalize_artists(["B", "A", "b"]) == ["b", "a"]

    def test_feat_and_brackets_removed(self):
        assert normalize_artists(["Artist feat. Guest"]) == ["artist"]
        assert normalize_artists(["Artist (UK)"]) == ["artist"]

    def test_empty(self):
        assert normalize_artists([]) == []
        assert normalize_artists(None) == []
        assert normalize_artists(["", "  "]) == []


class TestExtractArtistsFromTitle:
    @pytest.mark.parametrize(
        ("title", "artists"),
        [
            ("Song (feat. Dua Lipa)", ["dua lipa"]),
            ("Song [ft. A & B]", ["a", "b"]),
            ("Song (with Guest)", ["guest"]),
            ("Song (Calvin Harris Remix)", ["calvin harris"]),
            ("Song (Extended Mix)", []),
            ("Song (Remastered 2009)", []),
            ("Song (Official Video)", []),
            ("Daft Punk - One More Time", ["daft punk"]),
            ("Album - Deluxe Edition", []),
            ("Plain Title", []),
        ],
    )
    def test_extract(self, title, artists):
        assert extract_all_artists_from_title(title) == artists


class TestSearchNormalization:
    @pytest.mark.parametrize(
        ("raw", "query"),
        [
            ("Song (Official Video)", "Song"),
            ("Song [Official Music Video]", "Song"),
            ("Song feat. Someone", "Song"),
            ("Song (feat. Someone)", "Song"),
            ("Album - EP", "Album"),
            ("Song (Remastered)", "Song (Remastered)"),
            ("Song [Deluxe]", "Song (Deluxe)"),
            ("  Song\u00a0 Title\u200b ", "Song Title"),
        ],
    )
    def test_normalize_for_search(self, raw, query):
        assert normalize_for_search(raw) == query


class TestSongAndAlbumData:
    def test_song_data(self):
        result = normalize_song_data("Song (feat. B & C) [Live]", ["A, D"])
        assert result.clean_title == "Song"
        assert result.all_artists == ["A", "D", "B", "C"]
        assert result.canonical_title == "song"
        assert result.canonical_artists == ["a", "d", "b", "c"]

    def test_album_data_drops_format_suffix(self):
        assert normalize_album_data("Discovery - Single", ["Daft Punk"]).clean_title == "Discovery"
        assert normalize_album_data("Random Access Memories EP", []).clean_title == (
            "Random Access Memories"
        )
        assert normalize_album_data("After Hours (Deluxe)", ["The Weeknd"]).clean_title == (
            "After Hours"
        )

    def test_normalizer_instance_matches_module_functions(self):
        norm = Normalizer()
        assert norm.normalize_title("Song (Live)") == normalize_title("Song (Live)")
