__all__ = (
    "Config",
    "JsonCache",
    "SnapshotStore",
    "MusicBrainzClient",
    "CatalogClient",
    "ReleaseArtworkFinder",
    # Discovery
    "ChartEntry",
    "SourceConfig",
    "ChartSourceFetcher",
    "Aggregator",
    "DiscoverResult",
    "AggregationError",
    "ResponseEncodingError",
    "compute_score",
    "normalize_artist",
    "normalize_track_key",
    # Enrichment
    "Track",
    "ConcurrentFetchCoordinator",
    "CatalogBundle",
    "TrackEnricher",
    "RelationTables",
    "NotFoundError",
    "TrackNotFoundError",
    "RecordingNotFoundError",
    # Artists and genres
    "Creator",
    "CreatorProfiler",
    "ArtistNotFoundError",
    "GenreSearcher",
    "GenreSearchResult",
)

from melodex.aggregator import AggregationError, Aggregator, DiscoverResult, ResponseEncodingError
from melodex.artwork import ReleaseArtworkFinder
from melodex.catalog import CatalogClient
from melodex.chart_source import ChartSourceFetcher
from melodex.config import Config
from melodex.coordinator import (
    CatalogBundle,
    ConcurrentFetchCoordinator,
    NotFoundError,
    TrackNotFoundError,
)
from melodex.creator import ArtistNotFoundError, CreatorProfiler
from melodex.enrichment import RecordingNotFoundError, TrackEnricher
from melodex.genre import GenreSearcher, GenreSearchResult
from melodex.json_cache import JsonCache
from melodex.models import ChartEntry, Creator, SourceConfig, Track
from melodex.musicbrainz import MusicBrainzClient
from melodex.normalize import normalize_artist, normalize_track_key
from melodex.relations import RelationTables
from melodex.scoring import compute_score
from melodex.snapshots import SnapshotStore
