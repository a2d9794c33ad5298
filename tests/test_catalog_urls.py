"""Tests for catalog URL parsing and construction (no network)."""

from __future__ import annotations

import pytest

from syncfm.catalogs import get_adapter
from syncfm.catalogs.applemusic import AppleMusicCatalog, split_artist_string, upscale_artwork
from syncfm.catalogs.spotify import SpotifyCatalog
from syncfm.catalogs.ytmusic import (
    YouTubeMusicCatalog,
    clean_channel_title,
    parse_iso8601_duration,
    strip_artist_prefix,
)
from syncfm.errors import InvalidURLError, UnsupportedCatalogError
from syncfm.models import Catalog, EntityType


class TestSpotifyURLs:
    catalog = SpotifyCatalog()

    @pytest.mark.parametrize(
        ("url", "entity_type", "entity_id"),
        [
            ("https://open.spotify.com/track/0VjIjW4GlUZAMYd2vXMi3b", EntityType.song,
             "0VjIjW4GlUZAMYd2vXMi3b"),
            ("https://open.spotify.com/album/4yP0hdKOZPNshxUOjY0cZj?si=abc", EntityType.album,
             "4yP0hdKOZPNshxUOjY0cZj"),
            ("https://open.spotify.com/intl-de/artist/1Xyo4u8uXC1ZmMpatF05PJ", EntityType.artist,
             "1Xyo4u8uXC1ZmMpatF05PJ"),
        ],
    )
    def test_parse(self, url, entity_type, entity_id):
        parsed = self.catalog.parse_url(url)
        assert parsed.catalog == Catalog.spotify
        assert parsed.type == entity_type
        assert parsed.id == entity_id
        assert parsed.original_url == url

    def test_tracking_params_split_off(self):
        parsed = self.catalog.parse_url("https://open.spotify.com/track/abc?si=xyz&utm_source=copy")
        assert parsed.tracking == {"si": "xyz", "utm_source": "copy"}
        assert parsed.url == "https://open.spotify.com/track/abc"

    @pytest.mark.parametrize(
        "url",
        [
            "https://open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M",
            "https://open.spotify.com/track",
            "https://example.com/track/abc",
        ],
    )
    def test_invalid(self, url):
        with pytest.raises(InvalidURLError):
            self.catalog.parse_url(url)

    def test_handles_url(self):
        assert self.catalog.handles_url("https://open.spotify.com/track/abc")
        assert not self.catalog.handles_url("https://notspotify.com/track/abc")

    def test_create_url(self):
        assert self.catalog.create_url("abc", EntityType.song) == "https://open.spotify.com/track/abc"
        assert self.catalog.create_url("abc", "artist") == "https://open.spotify.com/artist/abc"

    def test_credentials_must_come_in_pairs(self):
        with pytest.raises(ValueError, match="client_secret"):
            SpotifyCatalog(client_id="abc")


class TestAppleMusicURLs:
    catalog = AppleMusicCatalog()

    def test_song_within_album(self):
        parsed = self.catalog.parse_url(
            "https://music.apple.com/us/album/after-hours/1499378108?i=1499378615"
        )
        assert parsed.type == EntityType.song
        assert parsed.id == "1499378615"
        assert parsed.extra_id == "1499378108"
        assert parsed.url == "https://music.apple.com/us/song/1499378615"

    @pytest.mark.parametrize(
        ("url", "entity_type", "entity_id"),
        [
            ("https://music.apple.com/us/album/after-hours/1499378108", EntityType.album,
             "1499378108"),
            ("https://music.apple.com/gb/song/blinding-lights/1499378615", EntityType.song,
             "1499378615"),
            ("https://music.apple.com/us/artist/the-weeknd/479756766", EntityType.artist,
             "479756766"),
            ("https://music.apple.com/us/artist/479756766", EntityType.artist, "479756766"),
        ],
    )
    def test_parse(self, url, entity_type, entity_id):
        parsed = self.catalog.parse_url(url)
        assert parsed.type == entity_type
        assert parsed.id == entity_id

    @pytest.mark.parametrize(
        "url",
        [
            "https://music.apple.com/us/playlist/todays-hits/pl.f4d106fed2bd41149aaacabb233eb5eb",
            "https://music.apple.com/us",
            "https://open.spotify.com/track/abc",
        ],
    )
    def test_invalid(self, url):
        with pytest.raises(InvalidURLError):
            self.catalog.parse_url(url)

    def test_create_url_uses_storefront(self):
        assert AppleMusicCatalog(storefront="NL").create_url("1", "album") == (
            "https://music.apple.com/nl/album/1"
        )

    def test_upscale_artwork(self):
        assert upscale_artwork("https://is1.mzstatic.com/image/thumb/a/b/100x100bb.jpg") == (
            "https://is1.mzstatic.com/image/thumb/a/b/500x500bb.jpg"
        )
        assert upscale_artwork("https://is1.mzstatic.com/image/{w}x{h}bb.jpg") == (
            "https://is1.mzstatic.com/image/500x500bb.jpg"
        )
        assert upscale_artwork(None) is None

    def test_split_artist_string(self):
        assert split_artist_string("Silk Sonic, Bruno Mars & Anderson .Paak") == [
            "Silk Sonic",
            "Bruno Mars",
            "Anderson .Paak",
        ]
        assert split_artist_string(None) == []


class TestYouTubeMusicURLs:
    catalog = YouTubeMusicCatalog()

    @pytest.mark.parametrize(
        ("url", "entity_type", "entity_id"),
        [
            ("https://music.youtube.com/watch?v=4NRXx6U8ABQ", EntityType.song, "4NRXx6U8ABQ"),
            ("https://www.youtube.com/watch?v=4NRXx6U8ABQ&list=RDAMVM4NRXx6U8ABQ",
             EntityType.song, "4NRXx6U8ABQ"),
            ("https://youtu.be/4NRXx6U8ABQ?si=share", EntityType.song, "4NRXx6U8ABQ"),
            ("https://music.youtube.com/playlist?list=OLAK5uy_abc123", EntityType.album,
             "OLAK5uy_abc123"),
            ("https://music.youtube.com/browse/MPREb_abc123", EntityType.album, "MPREb_abc123"),
            ("https://music.youtube.com/browse/UCabc123", EntityType.artist, "UCabc123"),
            ("https://music.youtube.com/channel/UCabc123", EntityType.artist, "UCabc123"),
        ],
    )
    def test_parse(self, url, entity_type, entity_id):
        parsed = self.catalog.parse_url(url)
        assert parsed.catalog == Catalog.ytmusic
        assert parsed.type == entity_type
        assert parsed.id == entity_id

    def test_tracking_params(self):
        parsed = self.catalog.parse_url("https://youtu.be/4NRXx6U8ABQ?si=share")
        assert parsed.tracking == {"si": "share"}
        assert parsed.url == "https://music.youtube.com/watch?v=4NRXx6U8ABQ"

    @pytest.mark.parametrize(
        "url",
        [
            "https://music.youtube.com/playlist?list=PLuserplaylist",
            "https://music.youtube.com/watch",
            "https://youtu.be/",
            "https://music.youtube.com/explore",
            "https://youtube.com.evil.example/watch?v=abc",
        ],
    )
    def test_invalid(self, url):
        with pytest.raises(InvalidURLError):
            self.catalog.parse_url(url)

    def test_handles_url_exact_hosts_only(self):
        assert self.catalog.handles_url("https://m.youtube.com/watch?v=abc")
        assert not self.catalog.handles_url("https://gaming.youtube.com/watch?v=abc")

    def test_create_url(self):
        assert self.catalog.create_url("abc", "song") == "https://music.youtube.com/watch?v=abc"
        assert self.catalog.create_url("UCabc", "artist") == (
            "https://music.youtube.com/channel/UCabc"
        )
        assert self.catalog.create_url("OLAK5uy_x", "album") == (
            "https://music.youtube.com/playlist?list=OLAK5uy_x"
        )
        assert self.catalog.create_url("MPREb_x", "album") == (
            "https://music.youtube.com/browse/MPREb_x"
        )

    @pytest.mark.parametrize(
        ("value", "seconds"),
        [("PT3M20S", 200), ("PT1H", 3600), ("PT45S", 45), ("P1DT1S", 86401), ("bogus", 0),
         (None, 0)],
    )
    def test_parse_iso8601_duration(self, value, seconds):
        assert parse_iso8601_duration(value) == seconds

    def test_channel_title_cleanup(self):
        assert clean_channel_title("The Weeknd - Topic") == "The Weeknd"
        assert clean_channel_title("TheWeekndVEVO") == "TheWeeknd"
        assert clean_channel_title(None) == ""

    def test_strip_artist_prefix(self):
        assert strip_artist_prefix("The Weeknd - Blinding Lights", "The Weeknd") == (
            "Blinding Lights"
        )
        assert strip_artist_prefix("Blinding Lights", "The Weeknd") == "Blinding Lights"


class TestFactory:
    @pytest.mark.parametrize(
        ("name", "cls"),
        [
            ("spotify", SpotifyCatalog),
            ("applemusic", AppleMusicCatalog),
            ("ytmusic", YouTubeMusicCatalog),
            ("AppleMusic", AppleMusicCatalog),
        ],
    )
    def test_get_adapter(self, name, cls):
        assert isinstance(get_adapter(name), cls)

    def test_unknown_catalog(self):
        with pytest.raises(UnsupportedCatalogError):
            get_adapter("deezer")
