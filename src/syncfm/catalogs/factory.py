"""
Factory functions for creating catalog adapters.

Provides a unified interface for getting the adapter for a catalog name and
for building the full adapter map from configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from syncfm.catalogs.base import CatalogAdapter
from syncfm.models import Catalog, parse_catalog

if TYPE_CHECKING:
    from syncfm.config import Config
    from syncfm.http_cache import ResponseCache
    from syncfm.rate_limiter import RateLimiterRegistry


def get_adapter(catalog: Catalog | str, **kwargs: Any) -> CatalogAdapter:
    """
    Get a catalog adapter by name.

    Args:
        catalog: Catalog name ("applemusic", "spotify" or "ytmusic")
        **kwargs: Passed to the adapter constructor (credentials, client, cache...)

    Returns:
        Configured CatalogAdapter instance

    Raises:
        UnsupportedCatalogError: Unknown catalog name
    """
    catalog_enum = parse_catalog(catalog)

    if catalog_enum == Catalog.spotify:
        from syncfm.catalogs.spotify import SpotifyCatalog

        return SpotifyCatalog(**kwargs)

    elif catalog_enum == Catalog.applemusic:
        from syncfm.catalogs.applemusic import AppleMusicCatalog

        return AppleMusicCatalog(**kwargs)

    else:
        from syncfm.catalogs.ytmusic import YouTubeMusicCatalog

        return YouTubeMusicCatalog(**kwargs)


def build_catalogs(
    config: Config,
    *,
    rate_limiter: RateLimiterRegistry | None = None,
    cache: ResponseCache | None = None,
) -> dict[Catalog, CatalogAdapter]:
    """
    Build one adapter per enabled catalog, in fan-out order.

    Args:
        config: Config object with catalog credentials and settings
        rate_limiter: Shared per-catalog rate limiter
        cache: Shared response cache

    Returns:
        Mapping of catalog to adapter
    """
    common: dict[str, Any] = {
        "rate_limiter": rate_limiter,
        "cache": cache,
        "timeout": config.catalogs.timeout_s,
    }
    specific: dict[Catalog, dict[str, Any]] = {
        Catalog.spotify: {
            "client_id": config.catalogs.spotify.client_id,
            "client_secret": config.catalogs.spotify.client_secret,
            "market": config.catalogs.spotify.market,
        },
        Catalog.applemusic: {"storefront": config.catalogs.apple_music.storefront},
        Catalog.ytmusic: {"api_key": config.catalogs.youtube.api_key},
    }

    enabled = set(config.catalogs.enabled)
    return {
        catalog: get_adapter(catalog, **common, **specific[catalog])
        for catalog in Catalog
        if catalog in enabled
    }
