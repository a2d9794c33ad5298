__all__ = (
    "SyncFM",
    "Config",
    "SyncStore",
    # Canonical model
    "Album",
    "Artist",
    "ArtistTrack",
    "Catalog",
    "ConversionHistory",
    "ConversionWarning",
    "EntityType",
    "Song",
    # Identity
    "generate_sync_id",
    "generate_sync_artist_id",
    "parse_duration_with_fudge",
    "create_shortcode",
    "normalize_title",
    "normalize_artists",
    "normalize_for_search",
    "extract_all_artists_from_title",
    # Merge
    "merge_entity",
    # Errors
    "ConversionFailedError",
    "ErrorType",
    "SyncFMError",
    "categorize_error",
)

from syncfm.config import Config
from syncfm.converter import SyncFM
from syncfm.errors import ConversionFailedError, ErrorType, SyncFMError, categorize_error
from syncfm.fingerprint import (
    generate_sync_artist_id,
    generate_sync_id,
    parse_duration_with_fudge,
)
from syncfm.merge import merge_entity
from syncfm.models import (
    Album,
    Artist,
    ArtistTrack,
    Catalog,
    ConversionHistory,
    ConversionWarning,
    EntityType,
    Song,
)
from syncfm.normalize import (
    extract_all_artists_from_title,
    normalize_artists,
    normalize_for_search,
    normalize_title,
)
from syncfm.shortcode import create_shortcode
from syncfm.store import SyncStore
