from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

from syncfm.models import SUPPORTED_CATALOGS, Catalog

DEFAULT_DATA_DIR = Path("~/.cache/syncfm").expanduser()


class SpotifyConfig(BaseModel):
    """Spotify Web API credentials (client credentials flow)."""

    client_id: str | None = Field(default=None)
    client_secret: str | None = Field(default=None)
    market: str = Field(default="US")


class YouTubeConfig(BaseModel):
    """YouTube Data API configuration."""

    api_key: str | None = Field(default=None)


class AppleMusicConfig(BaseModel):
    """iTunes Search/Lookup API configuration."""

    storefront: str = Field(default="us")


class CatalogsConfig(BaseModel):
    """Catalog adapter configuration."""

    enabled: list[Catalog] = Field(default_factory=lambda: list(SUPPORTED_CATALOGS))
    spotify: SpotifyConfig = Field(default_factory=SpotifyConfig)
    youtube: YouTubeConfig = Field(default_factory=YouTubeConfig)
    apple_music: AppleMusicConfig = Field(default_factory=AppleMusicConfig)
    timeout_s: float = Field(default=15.0, ge=1.0)


class StoreConfig(BaseModel):
    """Entity store configuration."""

    db_path: Path = Field(default=DEFAULT_DATA_DIR / "syncfm.sqlite")
    artwork_dir: Path | None = Field(default=None)


class HttpCacheConfig(BaseModel):
    """HTTP response cache configuration."""

    db_path: Path = Field(default=DEFAULT_DATA_DIR / "http_cache.sqlite")
    ttl_seconds: int = Field(default=86400, ge=0)
    enabled: bool = Field(default=True)


class ConversionConfig(BaseModel):
    """Retry and polling knobs for the conversion orchestrator."""

    max_attempts: int = Field(default=3, ge=1)
    backoff_base_s: float = Field(default=1.0, ge=0)
    poll_attempts: int = Field(default=3, ge=1)
    poll_backoff_base_s: float = Field(default=0.2, ge=0)
    immediate_retry_base_s: float = Field(default=0.5, ge=0)

    # Deferred retry of catalogs that failed on an earlier request
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_cooldown_s: int = Field(default=300, ge=0)

    # Wall-clock bound on one conversion including retries; None waits indefinitely
    deadline_s: float | None = Field(default=None, gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING")  # DEBUG, INFO, WARNING, ERROR
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    redact_secrets: bool = Field(default=True)


class Config(BaseModel):
    """
    Main configuration for syncfm.

    Loads from TOML file with optional environment variable overrides.
    """

    catalogs: CatalogsConfig = Field(default_factory=CatalogsConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    http_cache: HttpCacheConfig = Field(default_factory=HttpCacheConfig)
    conversion: ConversionConfig = Field(default_factory=ConversionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """
        Load configuration from TOML file with environment variable overrides.

        Environment variables take precedence and follow the pattern:
        SYNCFM_<SECTION>_<KEY> (e.g., SYNCFM_HTTP_CACHE_TTL_SECONDS).
        Credentials also come from SYNCFM_SPOTIFY_CLIENT_ID,
        SYNCFM_SPOTIFY_CLIENT_SECRET and SYNCFM_YOUTUBE_API_KEY.
        """
        config_dict: dict[str, object] = {}

        if config_path and config_path.exists():
            config_dict = tomllib.loads(config_path.read_text())

        config_dict = cls._merge_env_overrides(config_dict)
        return cls.model_validate(config_dict)

    @staticmethod
    def _section(parent: dict[str, object], name: str) -> dict[str, object]:
        section = parent.setdefault(name, {})
        if not isinstance(section, dict):
            section = {}
            parent[name] = section
        return section

    @classmethod
    def _merge_env_overrides(cls, config_dict: dict[str, object]) -> dict[str, object]:
        """
        Merge environment variable overrides into config dictionary.

        Returns a new dictionary with env vars applied, ready for Pydantic validation.
        """
        env_prefix = "SYNCFM_"

        catalogs = cls._section(config_dict, "catalogs")
        if enabled := os.getenv(f"{env_prefix}CATALOGS_ENABLED"):
            catalogs["enabled"] = [c.strip() for c in enabled.split(",") if c.strip()]
        if timeout := os.getenv(f"{env_prefix}CATALOGS_TIMEOUT_S"):
            catalogs["timeout_s"] = timeout

        # Credentials
        spotify = cls._section(catalogs, "spotify")
        if spotify_id := os.getenv(f"{env_prefix}SPOTIFY_CLIENT_ID"):
            spotify["client_id"] = spotify_id
        if spotify_secret := os.getenv(f"{env_prefix}SPOTIFY_CLIENT_SECRET"):
            spotify["client_secret"] = spotify_secret
        if market := os.getenv(f"{env_prefix}SPOTIFY_MARKET"):
            spotify["market"] = market

        youtube = cls._section(catalogs, "youtube")
        if yt_key := os.getenv(f"{env_prefix}YOUTUBE_API_KEY"):
            youtube["api_key"] = yt_key

        apple = cls._section(catalogs, "apple_music")
        if storefront := os.getenv(f"{env_prefix}APPLE_MUSIC_STOREFRONT"):
            apple["storefront"] = storefront

        store = cls._section(config_dict, "store")
        if db_path := os.getenv(f"{env_prefix}STORE_DB_PATH"):
            store["db_path"] = db_path
        if artwork_dir := os.getenv(f"{env_prefix}STORE_ARTWORK_DIR"):
            store["artwork_dir"] = artwork_dir

        http_cache = cls._section(config_dict, "http_cache")
        if cache_path := os.getenv(f"{env_prefix}HTTP_CACHE_DB_PATH"):
            http_cache["db_path"] = cache_path
        if cache_ttl := os.getenv(f"{env_prefix}HTTP_CACHE_TTL_SECONDS"):
            http_cache["ttl_seconds"] = cache_ttl
        if cache_enabled := os.getenv(f"{env_prefix}HTTP_CACHE_ENABLED"):
            http_cache["enabled"] = cache_enabled.lower() in ("true", "1", "yes")

        conversion = cls._section(config_dict, "conversion")
        for key in ConversionConfig.model_fields:
            if value := os.getenv(f"{env_prefix}CONVERSION_{key.upper()}"):
                conversion[key] = value

        logging_config = cls._section(config_dict, "logging")
        if log_level := os.getenv(f"{env_prefix}LOGGING_LEVEL"):
            logging_config["level"] = log_level
        if log_format := os.getenv(f"{env_prefix}LOGGING_FORMAT"):
            logging_config["format"] = log_format
        if redact := os.getenv(f"{env_prefix}LOGGING_REDACT_SECRETS"):
            logging_config["redact_secrets"] = redact.lower() in ("true", "1", "yes")

        return config_dict

    def to_toml(self, redact: bool = True) -> str:
        """Render the configuration as TOML; credentials are masked unless `redact` is False."""
        data = self.model_dump(mode="json", exclude_none=True)
        if redact:
            catalogs = data.get("catalogs", {})
            for section, key in (("spotify", "client_secret"), ("youtube", "api_key")):
                if catalogs.get(section, {}).get(key):
                    catalogs[section][key] = "***"
        return _dump_toml(data)


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _dump_toml(data: dict[str, object], prefix: str = "") -> str:
    scalars = [(k, v) for k, v in data.items() if not isinstance(v, dict)]
    tables = [(k, v) for k, v in data.items() if isinstance(v, dict)]

    lines: list[str] = []
    if prefix and scalars:
        lines.append(f"[{prefix}]")
    lines.extend(f"{k} = {_toml_value(v)}" for k, v in scalars)
    if scalars:
        lines.append("")
    for key, table in tables:
        lines.append(_dump_toml(table, f"{prefix}.{key}" if prefix else key))
    return "\n".join(lines)


## Tests


def test_config_defaults():
    config = Config()
    assert config.http_cache.enabled is True
    assert config.http_cache.ttl_seconds == 86400
    assert config.catalogs.enabled == [Catalog.applemusic, Catalog.spotify, Catalog.ytmusic]
    assert config.conversion.max_attempts == 3
    assert config.conversion.retry_cooldown_s == 300


def test_config_from_dict():
    config = Config.model_validate(
        {
            "catalogs": {"enabled": ["spotify"], "apple_music": {"storefront": "nl"}},
            "store": {"db_path": "/tmp/syncfm.sqlite"},
        }
    )
    assert config.catalogs.enabled == [Catalog.spotify]
    assert config.catalogs.apple_music.storefront == "nl"
    assert config.store.db_path == Path("/tmp/syncfm.sqlite")


def test_config_env_overrides(monkeypatch):
    monkeypatch.setenv("SYNCFM_HTTP_CACHE_TTL_SECONDS", "7200")
    monkeypatch.setenv("SYNCFM_SPOTIFY_CLIENT_ID", "abc")
    monkeypatch.setenv("SYNCFM_CONVERSION_MAX_ATTEMPTS", "5")

    config = Config.load()
    assert config.http_cache.ttl_seconds == 7200
    assert config.catalogs.spotify.client_id == "abc"
    assert config.conversion.max_attempts == 5


def test_config_load_nonexistent_file():
    config = Config.load(Path("/nonexistent/config.toml"))
    assert config.http_cache.ttl_seconds == 86400
