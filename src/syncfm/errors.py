"""
Error taxonomy and retry policy for catalog conversions.

Catalog failures are classified by keyword into a small set of categories.
The category decides whether a call is retried immediately (within the same
request) or deferred to a later conversion request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from syncfm.models import ConversionHistory

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3
RETRY_COOLDOWN = timedelta(minutes=5)
IMMEDIATE_RETRY_BASE_DELAY = 0.5


class ErrorType(StrEnum):
    """Failure category of a catalog call."""

    not_found = "not_found"
    rate_limit = "rate_limit"
    network = "network"
    invalid_data = "invalid_data"
    unknown = "unknown"


_KEYWORDS: list[tuple[ErrorType, tuple[str, ...]]] = [
    (
        ErrorType.not_found,
        ("not found", "no result", "no song found", "no album found", "no artist found"),
    ),
    (ErrorType.rate_limit, ("rate limit", "429", "too many requests")),
    (ErrorType.network, ("network", "timeout", "timed out", "econnrefused", "fetch failed")),
    (ErrorType.invalid_data, ("invalid", "missing", "required")),
]

_RETRYABLE = {
    ErrorType.not_found: False,
    ErrorType.rate_limit: True,
    ErrorType.network: True,
    ErrorType.invalid_data: False,
    ErrorType.unknown: True,
}


class SyncFMError(Exception):
    """Base class for errors raised by syncfm."""

    pass


class UnsupportedCatalogError(SyncFMError):
    """The catalog name or URL host is not one syncfm can talk to."""

    pass


class InvalidURLError(SyncFMError):
    """A URL could not be parsed into a catalog entity reference."""

    pass


class InvalidShortcodeError(SyncFMError):
    """A shortcode is malformed or carries an unknown type prefix."""

    pass


class ShortcodeNotFoundError(SyncFMError):
    """No stored entity carries the given shortcode."""

    pass


class MissingExternalIDError(SyncFMError):
    """An entity carries no id for the catalog a URL was requested for."""

    pass


class StoreError(SyncFMError):
    """Persistent store failure."""

    pass


class CatalogError(SyncFMError):
    """Raised by catalog adapters; the message drives classification."""

    def __init__(self, message: str, *, catalog: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.catalog = catalog
        self.status_code = status_code


class NotFoundError(CatalogError):
    """The catalog has no entity for the id or query."""

    pass


class RateLimitError(CatalogError):
    """The catalog answered 429 or otherwise signalled throttling."""

    pass


class ConversionFailedError(SyncFMError):
    """No catalog produced a usable result for a conversion."""

    def __init__(self, message: str, *, failures: dict[str, str] | None = None, partial: Any = None):
        super().__init__(message)
        self.failures = failures or {}
        self.partial = partial


def categorize_error(error: BaseException | str | None) -> tuple[ErrorType, bool]:
    """
    Classify an error by its type and message.

    Returns:
        Tuple of (error type, retryable)
    """
    if isinstance(error, NotFoundError):
        error_type = ErrorType.not_found
    elif isinstance(error, RateLimitError):
        error_type = ErrorType.rate_limit
    elif isinstance(error, (TimeoutError, ConnectionError)):
        error_type = ErrorType.network
    else:
        message = str(error or "").lower()
        if isinstance(error, BaseException) and not message:
            message = type(error).__name__.lower()
        error_type = ErrorType.unknown
        for candidate, keywords in _KEYWORDS:
            if any(keyword in message for keyword in keywords):
                error_type = candidate
                break
    return error_type, _RETRYABLE[error_type]


def should_retry_immediately(error_type: ErrorType, attempt: int) -> bool:
    """Only transient-looking failures get one immediate retry."""
    return error_type in (ErrorType.network, ErrorType.unknown) and attempt < 2


def immediate_retry_delay(attempt: int, base_delay: float = IMMEDIATE_RETRY_BASE_DELAY) -> float:
    """Backoff before the next immediate attempt: base * attempt."""
    return base_delay * attempt


def should_retry_service(
    history: ConversionHistory,
    now: datetime | None = None,
    *,
    max_attempts: int = MAX_RETRY_ATTEMPTS,
    cooldown: timedelta = RETRY_COOLDOWN,
) -> bool:
    """
    Decide whether a stored failure should be retried on this request.

    Requires a retryable failure, fewer than `max_attempts` attempts, and
    at least `cooldown` since the last attempt.
    """
    if not history.retryable:
        return False
    if history.attempts >= max_attempts:
        return False
    now = now or datetime.now(UTC)
    last = history.last_attempt
    if last.tzinfo is None:
        last = last.replace(tzinfo=UTC)
    return now - last >= cooldown


@dataclass
class ConversionFailure:
    """One catalog's failed attempt, ready to be folded into error history."""

    catalog: str
    error_type: ErrorType
    message: str
    retryable: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


T = TypeVar("T")


@dataclass
class ConversionResult(Generic[T]):
    """Outcome of invoking one catalog during a conversion."""

    catalog: str
    success: bool
    data: T | None = None
    error: ConversionFailure | None = None
    used_fallback: bool = False


## Tests


def test_categorize_error_keywords():
    assert categorize_error("Song not found") == (ErrorType.not_found, False)
    assert categorize_error("HTTP 429") == (ErrorType.rate_limit, True)
    assert categorize_error("fetch failed") == (ErrorType.network, True)
    assert categorize_error("missing field") == (ErrorType.invalid_data, False)
    assert categorize_error("boom") == (ErrorType.unknown, True)


def test_should_retry_immediately():
    assert should_retry_immediately(ErrorType.network, 1)
    assert not should_retry_immediately(ErrorType.network, 2)
    assert not should_retry_immediately(ErrorType.rate_limit, 1)
