"""Secret-safe logging utilities for syncfm.

Catalog adapters talk to APIs with client secrets, bearer tokens and API keys
in headers and query strings. This module keeps them out of log output:
- Sensitive field redaction in dicts
- Credential pattern scrubbing in messages
- Formatter and handler setup (plain or Rich)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

# Fields that should be redacted in logs
REDACT_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "auth",
        "authorization",
        "credential",
        "access_token",
        "refresh_token",
        "client_secret",
    }
)

# Regex patterns for credentials embedded in messages
PATTERNS = {
    "bearer": re.compile(r"(Bearer|Basic)\s+[A-Za-z0-9._~+/=-]+", re.I),
    "query_secret": re.compile(
        r"([?&](?:key|api_key|access_token|client_secret)=)[^&\s'\"]+", re.I
    ),
    "assignment": re.compile(
        r"((?:client_secret|api_key|access_token)[\"']?\s*[:=]\s*[\"']?)[^\s,'\"}]+", re.I
    ),
}


def redact_value(value: str, visible_chars: int = 4) -> str:
    """Redact a sensitive value, showing only first few characters.

    Args:
        value: Value to redact
        visible_chars: Number of characters to show

    Returns:
        Redacted string (e.g., "sk-a***")
    """
    if len(value) <= visible_chars:
        return "***"
    return f"{value[:visible_chars]}***"


def redact_dict(
    data: dict[str, Any],
    redact_fields: frozenset[str] | None = None,
) -> dict[str, Any]:
    """Recursively redact sensitive fields in a dictionary.

    Args:
        data: Dictionary to redact
        redact_fields: Set of field names to redact (case-insensitive)

    Returns:
        New dictionary with sensitive fields redacted
    """
    if redact_fields is None:
        redact_fields = REDACT_FIELDS

    result: dict[str, Any] = {}
    for key, value in data.items():
        key_lower = key.lower()

        should_redact = key_lower in redact_fields or any(
            field in key_lower for field in redact_fields
        )

        if should_redact and isinstance(value, str):
            result[key] = redact_value(value)
        elif isinstance(value, dict):
            result[key] = redact_dict(value, redact_fields)
        elif isinstance(value, list):
            result[key] = [
                redact_dict(item, redact_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result


def sanitize_message(message: str) -> str:
    """Scrub bearer tokens, API keys and client secrets from a log message."""
    result = PATTERNS["bearer"].sub(r"\1 [REDACTED]", message)
    result = PATTERNS["query_secret"].sub(r"\1[REDACTED]", result)
    result = PATTERNS["assignment"].sub(r"\1[REDACTED]", result)
    return result


class SafeLogFormatter(logging.Formatter):
    """Log formatter that scrubs credentials from messages and arguments."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        sanitize_messages: bool = True,
    ):
        super().__init__(fmt, datefmt)
        self.sanitize_messages = sanitize_messages

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers still see the original record
        record = logging.makeLogRecord(record.__dict__)

        if self.sanitize_messages:
            record.msg = sanitize_message(str(record.msg))
            if record.args:
                record.args = self._sanitize_args(record.args)

        return super().format(record)

    def _sanitize_args(self, args: tuple[Any, ...] | Mapping[str, Any]) -> tuple[Any, ...]:
        if isinstance(args, Mapping):
            return tuple(self._sanitize_value(v) for v in args.values())
        return tuple(self._sanitize_value(arg) for arg in args)

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return sanitize_message(value)
        if isinstance(value, dict):
            return redact_dict(value)
        return value


def configure_safe_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    redact_secrets: bool = True,
) -> None:
    """Configure logging with credential-safe formatting.

    Args:
        level: Logging level
        format_string: Optional custom format string
        redact_secrets: Whether to scrub credentials from messages
    """
    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    formatter = SafeLogFormatter(fmt=format_string, sanitize_messages=redact_secrets)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)


def configure_rich_logging(
    level: int = logging.WARNING,
    redact_secrets: bool = True,
    show_time: bool = True,
    show_path: bool = False,
    console: Console | None = None,
) -> Console:
    """Route logging through a RichHandler on a stderr console.

    Replaces any handlers already on the root logger, so calling it twice
    (e.g. from tests driving the CLI) does not duplicate output.

    Returns:
        The console the handler writes to, for use as the shared CLI console
    """
    console = console or Console(stderr=True)
    handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=True,
        markup=False,
    )
    handler.setFormatter(SafeLogFormatter(fmt="%(message)s", sanitize_messages=redact_secrets))

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return console


## Tests


def test_redact_value():
    assert redact_value("sk-secret-key-12345") == "sk-s***"
    assert redact_value("abc") == "***"
    assert redact_value("abcdef", 3) == "abc***"


def test_redact_dict():
    data = {
        "client_secret": "s3cr3t-value",
        "catalog": "spotify",
        "nested": {"api_key": "AIzaSyExample", "name": "test"},
        "tokens": [{"access_token": "abc123", "type": "bearer"}],
    }

    redacted = redact_dict(data)

    assert redacted["client_secret"] == "s3cr***"
    assert redacted["catalog"] == "spotify"
    assert redacted["nested"]["api_key"] == "AIza***"
    assert redacted["nested"]["name"] == "test"
    assert redacted["tokens"][0]["access_token"] == "abc1***"
    assert redacted["tokens"][0]["type"] == "bearer"


def test_sanitize_message():
    msg = "GET https://www.googleapis.com/youtube/v3/videos?id=abc&key=AIzaSyExample failed"
    sanitized = sanitize_message(msg)
    assert "AIzaSyExample" not in sanitized
    assert "id=abc" in sanitized

    assert "tok123" not in sanitize_message("Authorization: Bearer tok123")
    assert "hunter2" not in sanitize_message("client_secret=hunter2")


def test_safe_log_formatter():
    formatter = SafeLogFormatter(fmt="%(message)s")

    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg="Token: %s",
        args=("Bearer abc.def",),
        exc_info=None,
    )

    formatted = formatter.format(record)
    assert "abc.def" not in formatted
    assert "[REDACTED]" in formatted
