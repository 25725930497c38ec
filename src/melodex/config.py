from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from melodex.models import SourceConfig


class SourceSettings(BaseModel):
    """One chart source as written in the TOML file."""

    collection: str
    weight: float = Field(gt=0.0, le=1.0)
    max_rank: float = Field(gt=0.0)

    def to_source_config(self) -> SourceConfig:
        return SourceConfig(collection=self.collection, weight=self.weight, max_rank=self.max_rank)


def _default_sources() -> list[SourceSettings]:
    # Higher weight = better signal for fresh music discovery.
    return [
        SourceSettings(collection="spotify_new_releases", weight=1.0, max_rank=100),
        SourceSettings(collection="reddit_fresh", weight=0.9, max_rank=50),
        SourceSettings(collection="hnhh", weight=0.7, max_rank=100),
        SourceSettings(collection="pitchfork_bnm", weight=0.6, max_rank=20),
        SourceSettings(collection="billboard", weight=0.5, max_rank=100),
    ]


class DiscoverConfig(BaseModel):
    """Discovery aggregation tuning."""

    sources: list[SourceSettings] = Field(default_factory=_default_sources)
    max_tracks_per_artist: int = Field(default=2, ge=1)
    max_results: int = Field(default=150, ge=1)
    max_days_lookback: int = Field(default=5, ge=0)

    @field_validator("sources")
    @classmethod
    def _sort_by_weight(cls, sources: list[SourceSettings]) -> list[SourceSettings]:
        # Stable: sources with equal weight keep their file order
        return sorted(sources, key=lambda s: -s.weight)

    def source_configs(self) -> tuple[SourceConfig, ...]:
        return tuple(s.to_source_config() for s in self.sources)


class EnrichmentConfig(BaseModel):
    """Single-track enrichment settings."""

    max_genres: int = Field(default=10, ge=1)
    image_check_concurrency: int = Field(default=5, ge=1, le=10)
    cover_art_size: int = Field(default=250)
    recording_includes: list[str] = Field(
        default_factory=lambda: [
            "artist-credits",
            "artist-rels",
            "genres",
            "work-rels",
            "url-rels",
            "releases",
        ]
    )


class JsonCacheConfig(BaseModel):
    """Response cache configuration."""

    directory: Path = Field(default=Path(".cache/melodex"))
    ttl_seconds: int = Field(default=86400, ge=0)
    enabled: bool = Field(default=True)


class DatabaseConfig(BaseModel):
    """Database configuration."""

    snapshots_path: Path = Field(default=Path("snapshots.sqlite"))


class LiveSourcesConfig(BaseModel):
    """Live sources API configuration."""

    # API credentials (read from env vars if not provided)
    spotify_client_id: str | None = Field(default=None)
    spotify_client_secret: str | None = Field(default=None)

    # Rate limits
    musicbrainz_rate_limit: float = Field(default=1.0, ge=0)  # req/sec

    # Request timeout (seconds)
    timeout_s: float = Field(default=30.0, ge=1.0)

    # Cache TTLs (seconds)
    cache_ttl_musicbrainz: int = Field(default=3600, ge=0)  # 1 hour
    cache_ttl_spotify: int = Field(default=7200, ge=0)  # 2 hours


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING")  # DEBUG, INFO, WARNING, ERROR
    format: str = Field(default="%(message)s")


class Config(BaseModel):
    """
    Main configuration for melodex.

    Loads from TOML file with optional environment variable overrides.
    """

    discover: DiscoverConfig = Field(default_factory=DiscoverConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    json_cache: JsonCacheConfig = Field(default_factory=JsonCacheConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    live_sources: LiveSourcesConfig = Field(default_factory=LiveSourcesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """
        Load configuration from TOML file with environment variable overrides.

        Environment variables take precedence and follow the pattern:
        MELODEX_<SECTION>_<KEY> (e.g., MELODEX_DISCOVER_MAX_RESULTS)
        """
        config_dict: dict[str, object] = {}

        if config_path and config_path.exists():
            config_dict = tomllib.loads(config_path.read_text())

        config_dict = cls._merge_env_overrides(config_dict)
        return cls.model_validate(config_dict)

    @staticmethod
    def _section(config_dict: dict[str, object], name: str) -> dict[str, object]:
        section = config_dict.setdefault(name, {})
        if not isinstance(section, dict):
            section = {}
            config_dict[name] = section
        return section

    @classmethod
    def _merge_env_overrides(cls, config_dict: dict[str, object]) -> dict[str, object]:
        """
        Merge environment variable overrides into config dictionary.

        Returns the dictionary with env vars applied, ready for Pydantic validation.
        """
        env_prefix = "MELODEX_"

        discover = cls._section(config_dict, "discover")
        if per_artist := os.getenv(f"{env_prefix}DISCOVER_MAX_TRACKS_PER_ARTIST"):
            discover["max_tracks_per_artist"] = per_artist
        if max_results := os.getenv(f"{env_prefix}DISCOVER_MAX_RESULTS"):
            discover["max_results"] = max_results
        if lookback := os.getenv(f"{env_prefix}DISCOVER_MAX_DAYS_LOOKBACK"):
            discover["max_days_lookback"] = lookback

        enrichment = cls._section(config_dict, "enrichment")
        if max_genres := os.getenv(f"{env_prefix}ENRICHMENT_MAX_GENRES"):
            enrichment["max_genres"] = max_genres
        if checks := os.getenv(f"{env_prefix}ENRICHMENT_IMAGE_CHECK_CONCURRENCY"):
            enrichment["image_check_concurrency"] = checks

        json_cache = cls._section(config_dict, "json_cache")
        if cache_dir := os.getenv(f"{env_prefix}JSON_CACHE_DIRECTORY"):
            json_cache["directory"] = cache_dir
        if cache_ttl := os.getenv(f"{env_prefix}JSON_CACHE_TTL_SECONDS"):
            json_cache["ttl_seconds"] = cache_ttl
        if cache_enabled := os.getenv(f"{env_prefix}JSON_CACHE_ENABLED"):
            json_cache["enabled"] = cache_enabled.lower() in ("true", "1", "yes")

        database = cls._section(config_dict, "database")
        if snapshots_path := os.getenv(f"{env_prefix}DATABASE_SNAPSHOTS_PATH"):
            database["snapshots_path"] = snapshots_path

        live_sources = cls._section(config_dict, "live_sources")
        # API credentials from env
        if spotify_id := os.getenv("SPOTIFY_CLIENT_ID"):
            live_sources["spotify_client_id"] = spotify_id
        if spotify_secret := os.getenv("SPOTIFY_CLIENT_SECRET"):
            live_sources["spotify_client_secret"] = spotify_secret
        if mb_rate := os.getenv(f"{env_prefix}LIVE_SOURCES_MUSICBRAINZ_RATE_LIMIT"):
            live_sources["musicbrainz_rate_limit"] = mb_rate
        if timeout := os.getenv(f"{env_prefix}LIVE_SOURCES_TIMEOUT_S"):
            live_sources["timeout_s"] = timeout
        if cache_ttl_mb := os.getenv(f"{env_prefix}LIVE_SOURCES_CACHE_TTL_MUSICBRAINZ"):
            live_sources["cache_ttl_musicbrainz"] = cache_ttl_mb
        if cache_ttl_spotify := os.getenv(f"{env_prefix}LIVE_SOURCES_CACHE_TTL_SPOTIFY"):
            live_sources["cache_ttl_spotify"] = cache_ttl_spotify

        logging_config = cls._section(config_dict, "logging")
        if log_level := os.getenv(f"{env_prefix}LOGGING_LEVEL"):
            logging_config["level"] = log_level
        if log_format := os.getenv(f"{env_prefix}LOGGING_FORMAT"):
            logging_config["format"] = log_format

        return config_dict
