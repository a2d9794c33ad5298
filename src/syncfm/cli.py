"""CLI for syncfm using Typer and Rich.

Look up catalog URLs, convert them to other catalogs, resolve shortcodes and
compute fingerprints from the terminal.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from syncfm.config import Config
from syncfm.console import get_console, print_error, print_success, print_warning, set_console
from syncfm.console import print as cprint
from syncfm.converter import SyncFM
from syncfm.errors import SyncFMError
from syncfm.fingerprint import generate_sync_id
from syncfm.http_cache import ResponseCache
from syncfm.models import Album, Artist, Catalog, Entity, EntityType, Song
from syncfm.safe_logging import configure_rich_logging
from syncfm.shortcode import create_shortcode
from syncfm.store import SyncStore

T = TypeVar("T")


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    TEXT = "text"
    JSON = "json"


class ExitCode:
    """Standard exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1
    NO_RESULTS = 2


app = typer.Typer(
    name="syncfm",
    help="syncfm: match songs, albums and artists across streaming catalogs",
    no_args_is_help=True,
    add_completion=False,
)

config_app = typer.Typer(help="Configuration commands")
cache_app = typer.Typer(help="HTTP response cache commands")

app.add_typer(config_app, name="config")
app.add_typer(cache_app, name="cache")


class AppState:
    """Global application state passed between commands."""

    config: Config
    output_format: OutputFormat
    verbose: int


state = AppState()


def _open_syncfm() -> SyncFM:
    return SyncFM(state.config)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine, turning SyncFMError into an error message and exit code 1."""
    try:
        return asyncio.run(coro)
    except SyncFMError as e:
        print_error(str(e))
        raise typer.Exit(code=ExitCode.ERROR) from e


def _print_json(data: Any) -> None:
    cprint(
        json.dumps(data, indent=2, ensure_ascii=False),
        soft_wrap=True,
        markup=False,
        highlight=False,
    )


def _format_duration(seconds: int | None) -> str:
    if not seconds:
        return "-"
    return f"{seconds // 60}:{seconds % 60:02d}"


def _render_entity(entity: Entity) -> None:
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column(style="bold")
    table.add_column()

    def row(label: str, value: str) -> None:
        table.add_row(label, escape(value))

    row("Type", str(entity.entity_type))
    if isinstance(entity, Artist):
        row("Name", entity.name)
        if entity.genres:
            row("Genres", ", ".join(entity.genres))
        if entity.tracks:
            row("Top tracks", ", ".join(t.title for t in entity.tracks[:5]))
    else:
        row("Title", entity.title)
        row("Artists", ", ".join(entity.artists))
        if isinstance(entity, Song) and entity.album:
            row("Album", entity.album)
        if isinstance(entity, Album):
            row("Tracks", str(entity.total_tracks or len(entity.songs)))
        row("Duration", _format_duration(entity.duration))
        if entity.release_date:
            row("Released", entity.release_date)

    row("Sync ID", entity.sync_id)
    if entity.shortcode:
        row("Shortcode", entity.shortcode)
    for catalog, external_id in sorted(entity.external_ids.items()):
        row(f"ID ({catalog})", external_id)
    for catalog, history in sorted(entity.conversion_errors.items()):
        if history is not None:
            row(
                f"Error ({catalog})",
                f"{history.last_error} ({history.error_type}, attempts={history.attempts})",
            )
    for catalog, warning in sorted(entity.conversion_warnings.items()):
        if warning is not None:
            row(f"Warning ({catalog})", warning.message)

    get_console().print(table)


def _emit_entity(entity: Entity, target_url: str | None = None) -> None:
    if state.output_format == OutputFormat.JSON:
        payload: dict[str, Any] = {"type": str(entity.entity_type), "entity": entity.to_dict()}
        if target_url is not None:
            payload["url"] = target_url
        _print_json(payload)
        return

    _render_entity(entity)
    if target_url:
        cprint(target_url, soft_wrap=True, highlight=False)


@app.callback()
def main(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Path to configuration TOML file", exists=True),
    ] = None,
    output: Annotated[
        OutputFormat,
        typer.Option("--output", "-o", help="Output format"),
    ] = OutputFormat.TEXT,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity"),
    ] = 0,
    db_path: Annotated[Path | None, typer.Option(help="Entity store database path")] = None,
    no_cache: Annotated[bool, typer.Option(help="Disable HTTP response caching")] = False,
) -> None:
    """syncfm: match songs, albums and artists across streaming catalogs."""
    logger = logging.getLogger(__name__)

    # Load config (TOML + env vars)
    cfg = Config.load(config_path)

    # CLI > Env > Config File > Defaults
    if db_path:
        cfg.store.db_path = db_path
    if no_cache:
        cfg.http_cache.enabled = False

    if verbose > 0:
        log_level = logging.DEBUG if verbose >= 2 else logging.INFO
    else:
        level_str = cfg.logging.level.upper()
        log_level = getattr(logging, level_str, logging.WARNING)

    configure_rich_logging(
        level=log_level,
        redact_secrets=cfg.logging.redact_secrets,
        show_time=True,
        show_path=False,
    )
    set_console(Console())

    # Suppress external library logging unless very verbose (-vvv)
    if verbose < 3:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    if config_path:
        logger.info(f"Loaded config from {config_path}")
    logger.debug(f"Logging configured: level={logging.getLevelName(log_level)}")

    state.config = cfg
    state.output_format = output
    state.verbose = verbose


# ====================================================================
# MAIN COMMANDS
# ====================================================================


@app.command()
def info(
    url: Annotated[str, typer.Argument(help="Catalog URL (Spotify, Apple Music, YouTube Music)")],
    entity_type: Annotated[
        EntityType | None,
        typer.Option("--type", help="Entity type; inferred from the URL when omitted"),
    ] = None,
) -> None:
    """Show the canonical entity behind a catalog URL.

    Examples:
        syncfm info https://open.spotify.com/track/0VjIjW4GlUZAMYd2vXMi3b
        syncfm -o json info "https://music.apple.com/us/album/x/1499378108?i=1499378615"
    """

    async def _info() -> Entity:
        async with _open_syncfm() as syncfm:
            return await syncfm.get_input_info(url, entity_type)

    _emit_entity(_run(_info()))


@app.command()
def convert(
    url: Annotated[str, typer.Argument(help="Catalog URL to convert")],
    to: Annotated[Catalog, typer.Option("--to", "-t", help="Target catalog")],
) -> None:
    """Convert a catalog URL to another catalog and print the target URL.

    Examples:
        syncfm convert https://open.spotify.com/track/0VjIjW4GlUZAMYd2vXMi3b --to applemusic
    """

    async def _convert() -> tuple[Entity, str | None]:
        async with _open_syncfm() as syncfm:
            entity = await syncfm.get_input_info(url)
            converted = await syncfm.convert(entity, to)
            if not converted.external_ids.get(to.value):
                return converted, None
            return converted, syncfm.create_url(converted, to)

    converted, target_url = _run(_convert())
    _emit_entity(converted, target_url)

    if target_url is None:
        if state.output_format == OutputFormat.TEXT:
            print_warning(f"No match found on {to}; other catalogs were recorded")
        raise typer.Exit(code=ExitCode.NO_RESULTS)


@app.command()
def shortcode(
    code: Annotated[str, typer.Argument(help="Shortcode, e.g. soAbC123")],
    to: Annotated[
        Catalog | None, typer.Option("--to", "-t", help="Convert to this catalog")
    ] = None,
) -> None:
    """Resolve a shortcode from the store, optionally converting it."""

    async def _resolve() -> tuple[Entity, str | None]:
        async with _open_syncfm() as syncfm:
            entity = await syncfm.get_input_info_from_shortcode(code)
            if to is None:
                return entity, None
            converted = await syncfm.convert(entity, to)
            if not converted.external_ids.get(to.value):
                return converted, None
            return converted, syncfm.create_url(converted, to)

    entity, target_url = _run(_resolve())
    _emit_entity(entity, target_url)

    if to is not None and target_url is None:
        raise typer.Exit(code=ExitCode.NO_RESULTS)


@app.command()
def syncid(
    title: Annotated[str, typer.Argument(help="Song title")],
    artist: Annotated[list[str], typer.Option("--artist", "-a", help="Artist (repeatable)")],
    duration: Annotated[int, typer.Option("--duration", "-d", help="Duration in seconds")] = 0,
) -> None:
    """Compute the sync id and shortcode a song would get.

    Examples:
        syncfm syncid "Blinding Lights" -a "The Weeknd" -d 200
    """
    sync_id = generate_sync_id(title, artist, duration)
    code = create_shortcode(sync_id, EntityType.song)

    if state.output_format == OutputFormat.JSON:
        _print_json({"syncId": sync_id, "shortcode": code})
    else:
        cprint(f"Sync ID:   {sync_id}", highlight=False)
        cprint(f"Shortcode: {code}", highlight=False)


@app.command()
def stats() -> None:
    """Show entity store row counts."""
    try:
        store = SyncStore(state.config.store.db_path, state.config.store.artwork_dir)
        counts = store.stats()
    except SyncFMError as e:
        print_error(str(e))
        raise typer.Exit(code=ExitCode.ERROR) from e

    if state.output_format == OutputFormat.JSON:
        _print_json(counts)
        return
    for key, value in counts.items():
        cprint(f"{key}: {value}", highlight=False, soft_wrap=True)


# ====================================================================
# CONFIG COMMANDS
# ====================================================================


@config_app.command("show")
def config_show(
    reveal: Annotated[bool, typer.Option(help="Show credentials unmasked")] = False,
) -> None:
    """Print the effective configuration as TOML."""
    cprint(state.config.to_toml(redact=not reveal), markup=False, highlight=False, soft_wrap=True)


# ====================================================================
# CACHE COMMANDS
# ====================================================================


@cache_app.command("purge")
def cache_purge(
    expired_only: Annotated[bool, typer.Option(help="Only purge expired entries")] = False,
    catalog: Annotated[
        Catalog | None, typer.Option(help="Only purge entries for this catalog")
    ] = None,
) -> None:
    """Purge HTTP response cache entries."""
    cache = ResponseCache(state.config.http_cache.db_path, state.config.http_cache.ttl_seconds)
    if expired_only:
        removed = cache.purge_expired()
        print_success(f"Removed {removed} expired cache entries")
    else:
        cache.clear(catalog.value if catalog else None)
        print_success(f"Cleared cache{f' for {catalog}' if catalog else ''}")


# ====================================================================
# ENTRY POINT
# ====================================================================


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
