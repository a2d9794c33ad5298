"""CLI tests using typer's CliRunner against fake catalogs."""

from __future__ import annotations

import json

import pytest
from conftest import blinding_lights
from typer.testing import CliRunner

from syncfm import cli
from syncfm.converter import SyncFM
from syncfm.fingerprint import generate_sync_id
from syncfm.http_cache import ResponseCache
from syncfm.models import Catalog
from syncfm.shortcode import create_shortcode

SPOTIFY_URL = "https://open.spotify.com/song/sp-1"


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SYNCFM_STORE_DB_PATH", str(tmp_path / "cli-store.sqlite"))
    monkeypatch.setenv("SYNCFM_HTTP_CACHE_DB_PATH", str(tmp_path / "cli-cache.sqlite"))
    monkeypatch.delenv("SYNCFM_SPOTIFY_CLIENT_SECRET", raising=False)
    # Keep log records off the captured output so JSON stays parseable
    monkeypatch.setenv("SYNCFM_LOGGING_LEVEL", "CRITICAL")


@pytest.fixture
def wired(monkeypatch, fast_config, fakes, store):
    """Point the CLI at the fake catalogs and the test store."""
    fakes[Catalog.spotify].by_id["sp-1"] = blinding_lights(spotify="sp-1")
    monkeypatch.setattr(
        cli, "_open_syncfm", lambda: SyncFM(fast_config, catalogs=fakes, store=store)
    )
    return fakes


def test_convert_json(runner, wired):
    wired[Catalog.applemusic].results = [blinding_lights(applemusic="am-1")]
    wired[Catalog.ytmusic].results = [blinding_lights(ytmusic="yt-1")]

    result = runner.invoke(cli.app, ["-o", "json", "convert", SPOTIFY_URL, "--to", "applemusic"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["url"] == "https://music.apple.com/song/am-1"
    assert payload["type"] == "song"
    assert payload["entity"]["externalIds"] == {
        "spotify": "sp-1",
        "applemusic": "am-1",
        "ytmusic": "yt-1",
    }
    assert payload["entity"]["shortcode"].startswith("so")


def test_convert_text(runner, wired):
    wired[Catalog.applemusic].results = [blinding_lights(applemusic="am-1")]

    result = runner.invoke(cli.app, ["convert", SPOTIFY_URL, "--to", "applemusic"])

    assert result.exit_code == 0, result.output
    assert "Blinding Lights" in result.stdout
    assert "https://music.apple.com/song/am-1" in result.stdout


def test_convert_partial_exits_no_results(runner, wired):
    wired[Catalog.ytmusic].results = [blinding_lights(ytmusic="yt-1")]

    result = runner.invoke(cli.app, ["convert", SPOTIFY_URL, "--to", "applemusic"])

    assert result.exit_code == cli.ExitCode.NO_RESULTS
    assert "No match found on applemusic" in result.stdout


def test_convert_failure_exits_error(runner, wired):
    result = runner.invoke(cli.app, ["convert", SPOTIFY_URL, "--to", "applemusic"])

    assert result.exit_code == cli.ExitCode.ERROR
    assert "Could not convert" in result.stdout


def test_unknown_url(runner, wired):
    result = runner.invoke(cli.app, ["info", "https://www.deezer.com/track/1"])

    assert result.exit_code == cli.ExitCode.ERROR
    assert "Could not determine catalog" in result.stdout


def test_info_json(runner, wired):
    result = runner.invoke(cli.app, ["-o", "json", "info", SPOTIFY_URL])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["entity"]["title"] == "Blinding Lights"
    assert payload["entity"]["syncId"] == generate_sync_id(
        "Blinding Lights", ["The Weeknd"], 200
    )
    assert "url" not in payload


def test_shortcode_after_convert(runner, wired):
    wired[Catalog.applemusic].results = [blinding_lights(applemusic="am-1")]
    converted = runner.invoke(
        cli.app, ["-o", "json", "convert", SPOTIFY_URL, "--to", "applemusic"]
    )
    code = json.loads(converted.stdout)["entity"]["shortcode"]

    result = runner.invoke(cli.app, ["-o", "json", "shortcode", code])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["entity"]["externalIds"]["applemusic"] == "am-1"


def test_shortcode_unknown(runner, wired):
    result = runner.invoke(cli.app, ["shortcode", "soAAAAAA"])

    assert result.exit_code == cli.ExitCode.ERROR
    assert "No entity found" in result.stdout


def test_shortcode_invalid(runner, wired):
    result = runner.invoke(cli.app, ["shortcode", "not-a-code"])

    assert result.exit_code == cli.ExitCode.ERROR


class TestSyncId:
    def test_text(self, runner):
        result = runner.invoke(
            cli.app, ["syncid", "Blinding Lights", "-a", "The Weeknd", "-d", "200"]
        )

        assert result.exit_code == 0, result.output
        sync_id = generate_sync_id("Blinding Lights", ["The Weeknd"], 200)
        assert sync_id in result.stdout
        assert create_shortcode(sync_id, "song") in result.stdout

    def test_json_ignores_artist_order(self, runner):
        first = runner.invoke(
            cli.app, ["-o", "json", "syncid", "Under Pressure", "-a", "Queen", "-a", "David Bowie"]
        )
        second = runner.invoke(
            cli.app, ["-o", "json", "syncid", "Under Pressure", "-a", "David Bowie", "-a", "Queen"]
        )

        assert first.exit_code == 0, first.output
        assert json.loads(first.stdout) == json.loads(second.stdout)


def test_stats_text(runner, tmp_path):
    result = runner.invoke(cli.app, ["stats"])

    assert result.exit_code == 0, result.output
    assert "songs: 0" in result.stdout
    assert str(tmp_path / "cli-store.sqlite") in result.stdout


def test_config_show_masks_secrets(runner, monkeypatch):
    monkeypatch.setenv("SYNCFM_SPOTIFY_CLIENT_ID", "visible-id")
    monkeypatch.setenv("SYNCFM_SPOTIFY_CLIENT_SECRET", "hidden-secret")

    masked = runner.invoke(cli.app, ["config", "show"])
    revealed = runner.invoke(cli.app, ["config", "show", "--reveal"])

    assert masked.exit_code == 0, masked.output
    assert "visible-id" in masked.stdout
    assert "hidden-secret" not in masked.stdout
    assert "hidden-secret" in revealed.stdout


def test_cache_purge(runner, tmp_path):
    cache = ResponseCache(tmp_path / "cli-cache.sqlite")
    cache.put("spotify", "https://api.spotify.com/v1/tracks/1", None, {"id": "1"})
    cache.put("applemusic", "https://itunes.apple.com/lookup", {"id": "2"}, {"id": "2"})

    result = runner.invoke(cli.app, ["cache", "purge", "--catalog", "spotify"])

    assert result.exit_code == 0, result.output
    assert "Cleared cache for spotify" in result.stdout
    assert cache.get("spotify", "https://api.spotify.com/v1/tracks/1", None) is None
    assert cache.get("applemusic", "https://itunes.apple.com/lookup", {"id": "2"}) == {"id": "2"}


def test_cache_purge_expired(runner):
    result = runner.invoke(cli.app, ["cache", "purge", "--expired-only"])

    assert result.exit_code == 0, result.output
    assert "Removed 0 expired cache entries" in result.stdout
