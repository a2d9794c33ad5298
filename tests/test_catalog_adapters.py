"""Tests for catalog adapters against mocked HTTP responses."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from syncfm.catalogs.applemusic import AppleMusicCatalog
from syncfm.catalogs.spotify import SpotifyCatalog
from syncfm.catalogs.ytmusic import YouTubeMusicCatalog
from syncfm.errors import CatalogError, NotFoundError, RateLimitError
from syncfm.fingerprint import generate_sync_id
from syncfm.http_cache import ResponseCache
from syncfm.models import EntityType


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def spotify_track(track_id: str, name: str, artist: str, duration_ms: int) -> dict:
    return {
        "id": track_id,
        "name": name,
        "duration_ms": duration_ms,
        "explicit": False,
        "artists": [{"name": artist}],
        "album": {
            "name": "After Hours",
            "release_date": "2020-03-20",
            "images": [{"url": "https://i.scdn.co/image/cover"}],
        },
    }


class TestSpotifyCatalog:
    @pytest.fixture
    def requests(self):
        return []

    @pytest.fixture
    def spotify(self, requests):
        tracks = {
            "bl": spotify_track("bl", "Blinding Lights", "The Weeknd", 200_040),
            "cover": spotify_track("cover", "Blinding Lights", "Cover Band", 180_000),
        }

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.host == "accounts.spotify.com":
                return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})
            assert request.headers["Authorization"] == "Bearer tok"
            path = request.url.path
            if path.startswith("/v1/tracks/"):
                track = tracks.get(path.rsplit("/", 1)[-1])
                if track is None:
                    return httpx.Response(404, json={"error": {"status": 404}})
                return httpx.Response(200, json=track)
            if path == "/v1/search":
                items = [tracks["cover"], tracks["bl"]]
                return httpx.Response(200, json={"tracks": {"items": items}})
            return httpx.Response(429)

        return SpotifyCatalog("id", "secret", client=mock_client(handler))

    def test_get_song_by_id(self, spotify, requests):
        song = asyncio.run(spotify.get_song_by_id("bl"))

        assert song.title == "Blinding Lights"
        assert song.artists == ["The Weeknd"]
        assert song.duration == 201
        assert song.album == "After Hours"
        assert song.image_url == "https://i.scdn.co/image/cover"
        assert song.external_ids == {"spotify": "bl"}
        assert song.sync_id == generate_sync_id("Blinding Lights", ["The Weeknd"], 201)

    def test_token_is_reused(self, spotify, requests):
        asyncio.run(spotify.get_song_by_id("bl"))
        asyncio.run(spotify.get_song_by_id("bl"))

        token_requests = [r for r in requests if r.url.host == "accounts.spotify.com"]
        assert len(token_requests) == 1

    def test_not_found(self, spotify):
        with pytest.raises(NotFoundError):
            asyncio.run(spotify.get_song_by_id("missing"))

    def test_rate_limited(self, spotify):
        with pytest.raises(RateLimitError):
            asyncio.run(spotify.get_artist_by_id("weeknd"))

    def test_search_prefers_expected_sync_id(self, spotify, requests):
        expected = generate_sync_id("Blinding Lights", ["The Weeknd"], 201)

        match = asyncio.run(
            spotify.get_by_search_query(EntityType.song, "Blinding Lights The Weeknd", expected)
        )

        assert match.entity.external_ids == {"spotify": "bl"}
        assert match.used_fallback is False
        search = next(r for r in requests if r.url.path == "/v1/search")
        assert search.url.params["limit"] == "3"
        assert search.url.params["type"] == "track"

    def test_search_falls_back_to_top_result(self, spotify):
        match = asyncio.run(spotify.get_song_by_search_query("Blinding Lights", "0" * 64))

        assert match.entity.external_ids == {"spotify": "cover"}
        assert match.used_fallback is True

    def test_missing_credentials(self):
        with pytest.raises(CatalogError, match="client_id"):
            asyncio.run(SpotifyCatalog().get_song_by_id("bl"))


class TestAppleMusicCatalog:
    collection = {
        "wrapperType": "collection",
        "collectionId": 1499378108,
        "collectionName": "After Hours",
        "artistName": "The Weeknd",
        "artworkUrl100": "https://is1.mzstatic.com/image/thumb/x/100x100bb.jpg",
        "trackCount": 2,
        "releaseDate": "2020-03-20T07:00:00Z",
        "primaryGenreName": "R&B/Soul",
        "collectionExplicitness": "notExplicit",
    }

    @staticmethod
    def track(track_id: int, name: str, millis: int) -> dict:
        return {
            "wrapperType": "track",
            "kind": "song",
            "trackId": track_id,
            "trackName": name,
            "artistName": "The Weeknd",
            "collectionName": "After Hours",
            "trackTimeMillis": millis,
            "releaseDate": "2020-03-20T07:00:00Z",
            "artworkUrl100": "https://is1.mzstatic.com/image/thumb/x/100x100bb.jpg",
            "trackExplicitness": "notExplicit",
        }

    def catalog(self, results, requests=None, **kwargs) -> AppleMusicCatalog:
        def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            return httpx.Response(200, json={"resultCount": len(results), "results": results})

        return AppleMusicCatalog(client=mock_client(handler), **kwargs)

    def test_get_album_by_id(self):
        results = [
            self.collection,
            self.track(1, "Alone Again", 250_000),
            self.track(2, "Too Late", 239_500),
        ]

        album = asyncio.run(self.catalog(results).get_album_by_id("1499378108"))

        assert album.title == "After Hours"
        assert album.external_ids == {"applemusic": "1499378108"}
        assert [s.title for s in album.songs] == ["Alone Again", "Too Late"]
        assert album.duration == 250 + 240
        assert album.total_tracks == 2
        assert album.release_date == "2020-03-20"
        assert album.genres == ["R&B/Soul"]
        assert album.image_url.endswith("/500x500bb.jpg")
        assert album.explicit is False

    def test_get_song_by_id(self):
        requests = []
        catalog = self.catalog([self.track(1499378615, "Blinding Lights", 200_040)], requests)

        song = asyncio.run(catalog.get_song_by_id("1499378615"))

        assert song.external_ids == {"applemusic": "1499378615"}
        assert song.duration == 201
        assert requests[0].url.params["id"] == "1499378615"
        assert requests[0].url.params["country"] == "us"

    def test_lookup_empty_is_not_found(self):
        with pytest.raises(NotFoundError):
            asyncio.run(self.catalog([]).get_song_by_id("1"))

    def test_search_without_results(self):
        with pytest.raises(NotFoundError, match="No song found"):
            asyncio.run(self.catalog([]).get_song_by_search_query("nothing"))

    def test_response_cache(self, tmp_path):
        requests = []
        cache = ResponseCache(tmp_path / "cache.sqlite")
        catalog = self.catalog([self.track(1, "Song", 100_000)], requests, cache=cache)

        asyncio.run(catalog.get_song_by_id("1"))
        asyncio.run(catalog.get_song_by_id("1"))

        assert len(requests) == 1


class TestYouTubeMusicCatalog:
    video = {
        "id": "4NRXx6U8ABQ",
        "snippet": {
            "title": "The Weeknd - Blinding Lights",
            "channelTitle": "The Weeknd - Topic",
            "publishedAt": "2020-01-21T17:00:00Z",
            "thumbnails": {"high": {"url": "https://i.ytimg.com/vi/4NRXx6U8ABQ/hqdefault.jpg"}},
        },
        "contentDetails": {"duration": "PT3M20S"},
    }

    def catalog(self, requests) -> YouTubeMusicCatalog:
        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.url.path.endswith("/videos"):
                return httpx.Response(200, json={"items": [self.video]})
            if request.url.path.endswith("/search"):
                return httpx.Response(
                    200, json={"items": [{"id": {"videoId": "4NRXx6U8ABQ"}}]}
                )
            return httpx.Response(500)

        return YouTubeMusicCatalog(api_key="key", client=mock_client(handler))

    def test_get_song_by_id(self):
        requests = []

        song = asyncio.run(self.catalog(requests).get_song_by_id("4NRXx6U8ABQ"))

        assert song.title == "Blinding Lights"
        assert song.artists == ["The Weeknd"]
        assert song.duration == 200
        assert song.release_date == "2020-01-21"
        assert song.external_ids == {"ytmusic": "4NRXx6U8ABQ"}
        assert requests[0].url.params["key"] == "key"

    def test_search_songs(self):
        requests = []

        match = asyncio.run(self.catalog(requests).get_song_by_search_query("Blinding Lights"))

        assert match.entity.external_ids == {"ytmusic": "4NRXx6U8ABQ"}
        search = requests[0]
        assert search.url.params["videoCategoryId"] == "10"
        assert search.url.params["type"] == "video"

    def test_server_error(self):
        with pytest.raises(CatalogError, match="HTTP 500"):
            asyncio.run(self.catalog([]).get_artist_by_id("UCabc"))

    def test_missing_api_key(self):
        with pytest.raises(CatalogError, match="API key"):
            asyncio.run(YouTubeMusicCatalog().get_song_by_id("abc"))

    def test_unresolvable_browse_id(self):
        with pytest.raises(CatalogError, match="invalid id"):
            asyncio.run(YouTubeMusicCatalog(api_key="key").get_album_by_id("MPREb_abc"))
