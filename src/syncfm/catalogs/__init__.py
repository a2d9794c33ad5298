"""
Catalog adapters for the supported streaming services.

Every adapter implements CatalogAdapter; the conversion orchestrator only
ever sees that interface.
"""

from __future__ import annotations

from syncfm.catalogs.base import CatalogAdapter, CatalogURL, SearchMatch
from syncfm.catalogs.factory import build_catalogs, get_adapter

__all__ = [
    "CatalogAdapter",
    "CatalogURL",
    "SearchMatch",
    "build_catalogs",
    "get_adapter",
]
