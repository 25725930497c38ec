"""CLI for melodex using Typer and Rich.

Commands for the discovery path (ranked cross-source chart), the enrichment
path (single track by catalog id or by ISRC), artist profiles, genre search
and snapshot store upkeep.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any

import httpx
import typer
from rich.table import Table

from melodex.aggregator import AggregationError, Aggregator, ResponseEncodingError
from melodex.artwork import ReleaseArtworkFinder
from melodex.catalog import CatalogClient
from melodex.chart_source import ChartSourceFetcher, decode_snapshot
from melodex.config import Config
from melodex.console import (
    print as cprint,
)
from melodex.console import (
    print_error,
    print_raw,
    print_success,
    print_warning,
    set_console,
    status,
)
from melodex.coordinator import NotFoundError
from melodex.creator import CreatorProfiler
from melodex.enrichment import TrackEnricher
from melodex.genre import MAX_LIMIT, GenreSearcher, GenreSearchResult
from melodex.json_cache import JsonCache
from melodex.models import Creator, CreditGroup, Track
from melodex.musicbrainz import MusicBrainzClient
from melodex.relations import RelationTables
from melodex.safe_logging import configure_rich_logging, quiet_http_loggers
from melodex.snapshots import SnapshotDecodeError, SnapshotStore


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    TEXT = "text"
    JSON = "json"


class ExitCode:
    """Standard exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1
    NOT_FOUND = 2


app = typer.Typer(
    name="melodex",
    help="melodex: cross-source music discovery and track enrichment",
    no_args_is_help=True,
    add_completion=False,
)

snapshots_app = typer.Typer(help="Chart snapshot store commands")
app.add_typer(snapshots_app, name="snapshots")


class AppState:
    """Global application state passed between commands."""

    config: Config
    output_format: OutputFormat
    verbose: int


state = AppState()

log = logging.getLogger(__name__)


def _dump_json(payload: Any) -> str:
    try:
        return json.dumps(payload, indent=2, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ResponseEncodingError(f"Failed to encode response: {e}") from e


def _print_json(payload: Any) -> None:
    try:
        print_raw(_dump_json(payload))
    except ResponseEncodingError as e:
        print_error(str(e))
        sys.exit(ExitCode.ERROR)


def _parse_date(value: str | None) -> dt.date:
    if value is None:
        return dt.date.today()
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        print_error(f"Invalid date '{value}', expected YYYY-MM-DD")
        sys.exit(ExitCode.ERROR)


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
    snapshots_db: Annotated[
        Path | None,
        typer.Option(help="Chart snapshot database path"),
    ] = None,
    cache_dir: Annotated[Path | None, typer.Option(help="Response cache directory")] = None,
    cache_ttl: Annotated[int | None, typer.Option(help="Cache TTL in seconds")] = None,
    no_cache: Annotated[bool, typer.Option(help="Disable response caching")] = False,
) -> None:
    """melodex: cross-source music discovery and track enrichment."""
    cfg = Config.load(config_path)

    # CLI > Env > Config File > Defaults
    if snapshots_db:
        cfg.database.snapshots_path = snapshots_db
    if cache_dir:
        cfg.json_cache.directory = cache_dir
    if cache_ttl is not None:
        cfg.json_cache.ttl_seconds = cache_ttl
    if no_cache:
        cfg.json_cache.enabled = False

    if verbose >= 2:
        log_level = logging.DEBUG
    elif verbose == 1:
        log_level = logging.INFO
    else:
        log_level = getattr(logging, cfg.logging.level.upper(), logging.WARNING)

    console = configure_rich_logging(level=log_level, format_string=cfg.logging.format)
    set_console(console)

    # External library logging only at -vvv
    if verbose < 3:
        quiet_http_loggers()

    if config_path:
        log.info(f"Loaded config from {config_path}")
    log.debug(f"Logging configured: level={logging.getLevelName(log_level)}")

    state.config = cfg
    state.output_format = output
    state.verbose = verbose


# ====================================================================
# DISCOVERY
# ====================================================================


@app.command()
def discover(
    date: Annotated[
        str | None,
        typer.Option("--date", "-d", help="Reference date (YYYY-MM-DD), default today"),
    ] = None,
    max_results: Annotated[
        int | None, typer.Option("--max-results", "-n", help="Maximum tracks returned", min=1)
    ] = None,
) -> None:
    """Aggregate every configured chart source into one ranked list.

    Examples:
        melodex discover
        melodex -o json discover --date 2024-03-01 -n 50
    """
    cfg = state.config
    reference_date = _parse_date(date)

    fetcher = ChartSourceFetcher(
        SnapshotStore(cfg.database.snapshots_path),
        max_days_lookback=cfg.discover.max_days_lookback,
    )
    aggregator = Aggregator(
        fetcher,
        max_tracks_per_artist=cfg.discover.max_tracks_per_artist,
        max_results=max_results or cfg.discover.max_results,
    )

    sources = cfg.discover.source_configs()
    try:
        if state.output_format == OutputFormat.JSON:
            result = asyncio.run(aggregator.aggregate(sources, reference_date))
        else:
            with status(f"Aggregating {len(sources)} chart sources..."):
                result = asyncio.run(aggregator.aggregate(sources, reference_date))
    except AggregationError as e:
        print_error(str(e))
        sys.exit(ExitCode.ERROR)

    if state.output_format == OutputFormat.JSON:
        try:
            print_raw(result.to_json(indent=2))
        except ResponseEncodingError as e:
            print_error(str(e))
            sys.exit(ExitCode.ERROR)
        return

    if not result.tracks:
        print_warning(f"No chart snapshots found up to {reference_date.isoformat()}")
        return

    table = Table(title=f"Discover ({result.updated})")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Artist")
    table.add_column("Title")
    table.add_column("Source", style="dim")
    for i, track in enumerate(result.tracks, 1):
        table.add_row(str(i), track.artist, track.name, track.source)
    cprint(table)


# ====================================================================
# ENRICHMENT
# ====================================================================


def _build_clients(cfg: Config) -> tuple[CatalogClient, MusicBrainzClient]:
    cache = None
    if cfg.json_cache.enabled:
        cache = JsonCache(cfg.json_cache.directory, cfg.json_cache.ttl_seconds)

    live = cfg.live_sources
    catalog = CatalogClient(
        client_id=live.spotify_client_id,
        client_secret=live.spotify_client_secret,
        cache=cache,
        cache_ttl_seconds=live.cache_ttl_spotify,
        timeout_s=live.timeout_s,
    )
    musicbrainz = MusicBrainzClient(
        cache=cache,
        rate_limit_per_sec=live.musicbrainz_rate_limit,
        cache_ttl_seconds=live.cache_ttl_musicbrainz,
        timeout_s=live.timeout_s,
        recording_includes=tuple(cfg.enrichment.recording_includes),
    )
    return catalog, musicbrainz


@asynccontextmanager
async def open_enricher(cfg: Config) -> AsyncIterator[TrackEnricher]:
    """Build a TrackEnricher whose HTTP clients close on exit."""
    catalog, musicbrainz = _build_clients(cfg)
    artwork = ReleaseArtworkFinder(
        concurrency=cfg.enrichment.image_check_concurrency,
        size=cfg.enrichment.cover_art_size,
    )

    async with catalog, musicbrainz, artwork:
        yield TrackEnricher(
            catalog,
            musicbrainz,
            artwork,
            tables=RelationTables(max_genres=cfg.enrichment.max_genres),
        )


def _run_enrichment(lookup: str, label: str) -> Track:
    """Run one enrichment call, mapping failures onto exit codes."""

    async def run() -> Track:
        async with open_enricher(state.config) as enricher:
            if lookup == "isrc":
                return await enricher.enrich_by_isrc(label)
            return await enricher.enrich_track(label)

    try:
        return asyncio.run(run())
    except NotFoundError as e:
        print_error(str(e))
        sys.exit(ExitCode.NOT_FOUND)
    except (httpx.HTTPError, ValueError) as e:
        print_error(f"Lookup failed for {label}: {e}")
        sys.exit(ExitCode.ERROR)


def _credit_lines(title: str, groups: list[CreditGroup] | None) -> None:
    if not groups:
        return
    cprint(f"\n[bold]{title}:[/bold]")
    for group in groups:
        names = ", ".join(a.name for a in group.artists)
        cprint(f"  {group.label}: {names}")


def _show_track(track: Track) -> None:
    if state.output_format == OutputFormat.JSON:
        _print_json(track.to_dict())
        return

    cprint(f"[bold]{track.artist} - {track.name}[/bold]")
    if track.isrc:
        cprint(f"  ISRC: {track.isrc}")
    if track.id:
        cprint(f"  Recording: {track.id}")
    if track.release_date:
        cprint(f"  Released: {track.release_date}")
    if track.image:
        cprint(f"  Image: {track.image}")
    if track.genres:
        cprint(f"  Genres: {', '.join(track.genres)}")
    if track.meta:
        cprint(f"  Tempo: {track.meta.tempo:.1f} BPM, key {track.meta.key}, mode {track.meta.mode}")

    _credit_lines("Instruments", track.instruments)
    _credit_lines("Production", track.production_credits)
    _credit_lines("Songwriting", track.song_credits)

    if track.links:
        cprint("\n[bold]Links:[/bold]")
        for link in track.links:
            cprint(f"  {link.type}: {link.url}")


@app.command()
def track(
    track_id: Annotated[str, typer.Argument(help="Catalog track id")],
) -> None:
    """Enrich a catalog track with audio data, credits, genres and links.

    Examples:
        melodex track 0VjIjW4GlUZAMYd2vXMi3b
        melodex -o json track 0VjIjW4GlUZAMYd2vXMi3b
    """
    _show_track(_run_enrichment("track", track_id))


@app.command()
def recording(
    isrc: Annotated[str, typer.Argument(help="ISRC of the recording")],
) -> None:
    """Enrich a recording known only by its ISRC (no catalog lookup)."""
    _show_track(_run_enrichment("isrc", isrc.upper()))


# ====================================================================
# ARTISTS AND GENRES
# ====================================================================


@asynccontextmanager
async def open_profiler(cfg: Config) -> AsyncIterator[CreatorProfiler]:
    """Build a CreatorProfiler whose HTTP clients close on exit."""
    catalog, musicbrainz = _build_clients(cfg)
    async with catalog, musicbrainz:
        yield CreatorProfiler(
            musicbrainz,
            catalog,
            tables=RelationTables(max_genres=cfg.enrichment.max_genres),
        )


@asynccontextmanager
async def open_genre_searcher(cfg: Config) -> AsyncIterator[GenreSearcher]:
    """Build a GenreSearcher whose HTTP clients close on exit."""
    catalog, musicbrainz = _build_clients(cfg)
    async with catalog, musicbrainz:
        yield GenreSearcher(catalog, musicbrainz)


@app.command()
def artist(
    mbid: Annotated[str, typer.Argument(help="MusicBrainz artist id")],
) -> None:
    """Show an artist profile: genres, links, credits and top tracks.

    Examples:
        melodex artist 3b8c7e2f-7d2e-4d7c-9a3f-0f4c1f3d2a10
        melodex -o json artist 3b8c7e2f-7d2e-4d7c-9a3f-0f4c1f3d2a10
    """

    async def run() -> Creator:
        async with open_profiler(state.config) as profiler:
            return await profiler.get_creator(mbid)

    try:
        creator = asyncio.run(run())
    except NotFoundError as e:
        print_error(str(e))
        sys.exit(ExitCode.NOT_FOUND)
    except httpx.HTTPError as e:
        print_error(f"Lookup failed for {mbid}: {e}")
        sys.exit(ExitCode.ERROR)

    if state.output_format == OutputFormat.JSON:
        _print_json({"creator": creator.to_dict()})
        return

    heading = creator.name
    if creator.disambiguation:
        heading += f" ({creator.disambiguation})"
    cprint(f"[bold]{heading}[/bold]")
    if creator.type:
        cprint(f"  Type: {creator.type}")
    origin = ", ".join(p for p in (creator.begin_area, creator.area, creator.country) if p)
    if origin:
        cprint(f"  From: {origin}")
    years = creator.active_years
    if years is not None and years.begin:
        cprint(f"  Active: {years.begin} - {years.end or ('?' if years.ended else 'present')}")
    if creator.genres:
        cprint(f"  Genres: {', '.join(creator.genres)}")

    if creator.credits:
        cprint("\n[bold]Credits:[/bold]")
        for credit in creator.credits:
            cprint(f"  {credit.label}: {len(credit.recordings)} recordings")

    if creator.highlights:
        cprint("\n[bold]Top tracks:[/bold]")
        for highlight in creator.highlights:
            cprint(f"  {highlight.artist} - {highlight.title}")

    if creator.links:
        cprint("\n[bold]Links:[/bold]")
        for link in creator.links:
            cprint(f"  {link.type}: {link.url}")


@app.command()
def genre(
    name: Annotated[str, typer.Argument(help="Genre, e.g. 'hip hop' or 'shoegaze'")],
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", help=f"Tracks returned (default 20, max {MAX_LIMIT})"),
    ] = None,
) -> None:
    """Search recent catalog tracks in a genre, most popular first.

    Examples:
        melodex genre rap
        melodex -o json genre shoegaze -n 10
    """

    async def run() -> GenreSearchResult:
        async with open_genre_searcher(state.config) as searcher:
            return await searcher.search(name, limit)

    try:
        result = asyncio.run(run())
    except (httpx.HTTPError, ValueError) as e:
        print_error(f"Genre search failed for {name!r}: {e}")
        sys.exit(ExitCode.ERROR)

    if state.output_format == OutputFormat.JSON:
        _print_json(result.to_dict())
        return

    if not result.tracks:
        print_warning(f"No tracks found for genre {name!r}")
        return

    table = Table(title=f"Genre: {result.genre}")
    table.add_column("Popularity", justify="right", style="cyan")
    table.add_column("Artist")
    table.add_column("Title")
    table.add_column("Released", style="dim")
    for t in result.tracks:
        table.add_row(str(t.popularity), t.artist, t.name, t.release_date)
    cprint(table)
    if result.note:
        cprint(result.note)


# ====================================================================
# SNAPSHOT STORE
# ====================================================================


@snapshots_app.command("import")
def snapshots_import(
    collection: Annotated[str, typer.Argument(help="Source collection name")],
    date: Annotated[str, typer.Argument(help="Snapshot date (YYYY-MM-DD)")],
    file: Annotated[Path, typer.Argument(help="JSON snapshot document", exists=True)],
) -> None:
    """Import a snapshot document for one source and day."""
    snapshot_date = _parse_date(date).isoformat()

    try:
        document = json.loads(file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        print_error(f"{file} is not valid JSON: {e}")
        sys.exit(ExitCode.ERROR)
    if not isinstance(document, dict):
        print_error(f"{file} must contain a JSON object")
        sys.exit(ExitCode.ERROR)

    try:
        entries = decode_snapshot(collection, snapshot_date, document)
    except SnapshotDecodeError as e:
        print_error(str(e))
        sys.exit(ExitCode.ERROR)

    SnapshotStore(state.config.database.snapshots_path).put_document(
        collection, snapshot_date, document
    )
    print_success(f"Imported {len(entries)} tracks into {collection}/{snapshot_date}")


@snapshots_app.command("show")
def snapshots_show(
    collection: Annotated[str, typer.Argument(help="Source collection name")],
    date: Annotated[
        str | None, typer.Argument(help="Snapshot date; lists stored dates if omitted")
    ] = None,
) -> None:
    """Show a stored snapshot, or list the dates stored for a collection."""
    store = SnapshotStore(state.config.database.snapshots_path)

    if date is None:
        dates = store.list_dates(collection)
        if state.output_format == OutputFormat.JSON:
            print_raw(_dump_json({"collection": collection, "dates": dates}))
            return
        if not dates:
            print_warning(f"No snapshots stored for {collection}")
            sys.exit(ExitCode.NOT_FOUND)
        for d in dates:
            cprint(d)
        return

    snapshot_date = _parse_date(date).isoformat()
    try:
        document = store.read_document(collection, snapshot_date)
        entries = None
        if document is not None:
            entries = decode_snapshot(collection, snapshot_date, document)
    except SnapshotDecodeError as e:
        print_error(str(e))
        sys.exit(ExitCode.ERROR)

    if entries is None:
        print_error(f"No snapshot for {collection} on {snapshot_date}")
        sys.exit(ExitCode.NOT_FOUND)

    if state.output_format == OutputFormat.JSON:
        print_raw(
            _dump_json(
                {
                    "collection": collection,
                    "date": snapshot_date,
                    "tracks": [
                        {
                            "rank": e.rank,
                            "artist": e.artist,
                            "title": e.title,
                            "external_id": e.external_id,
                            "thumb": e.thumb_key,
                            "isrc": e.isrc,
                        }
                        for e in entries
                    ],
                }
            )
        )
        return

    table = Table(title=f"{collection} ({snapshot_date})")
    table.add_column("Rank", justify="right", style="cyan")
    table.add_column("Artist")
    table.add_column("Title")
    table.add_column("ISRC", style="dim")
    for entry in entries:
        table.add_row(str(entry.rank), entry.artist, entry.title, entry.isrc)
    cprint(table)

