"""
Genre track search.

Searches the catalog for recent tracks in a genre, then gives the leading
results that carry an ISRC a recording id and genres from the metadata
service, resolved with one batched query. Results are ordered by catalog
popularity.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Protocol

import httpx

from melodex.musicbrainz import MusicBrainzRecording
from melodex.relations import get_genres_for_recording

DEFAULT_LIMIT = 20
MAX_LIMIT = 50
ENRICHED_RESULTS = 5
YEAR_FILTER = "year:2020-2024"

# Genres whose catalog tags differ from their common names
GENRE_QUERIES: Mapping[str, str] = MappingProxyType(
    {
        "rap": "genre:rap tag:hip-hop",
        "hip-hop": "genre:rap tag:hip-hop",
        "hip hop": "genre:rap tag:hip-hop",
        "rock": "genre:rock tag:rock",
        "pop": "genre:pop tag:pop",
        "electronic": "genre:electronic tag:electronic",
        "edm": "genre:electronic tag:electronic",
    }
)

log = logging.getLogger(__name__)


class TrackSearcher(Protocol):
    async def search_tracks(self, query: str, limit: int) -> list[dict[str, Any]]: ...


class IsrcResolver(Protocol):
    async def search_recordings_by_isrcs(
        self, isrcs: list[str]
    ) -> dict[str, list[MusicBrainzRecording]]: ...


def genre_query(genre: str) -> str:
    """Catalog search query for a genre, restricted to recent years."""
    base = GENRE_QUERIES.get(genre.lower(), f"genre:{genre}")
    return f"{base} {YEAR_FILTER}"


def clamp_limit(limit: int | None) -> int:
    """Missing or non-positive limits fall back to the default; large ones are capped."""
    if limit is None or limit <= 0:
        return DEFAULT_LIMIT
    return min(limit, MAX_LIMIT)


@dataclass
class GenreTrack:
    id: str
    name: str
    artist: str = ""
    album: str = ""
    image: str | None = None
    popularity: int = 0
    genres: list[str] = field(default_factory=list)
    isrc: str = ""
    release_date: str = ""
    mbid: str = ""

    @classmethod
    def from_catalog(cls, raw: dict[str, Any]) -> GenreTrack:
        artists = raw.get("artists") or []
        album = raw.get("album") or {}
        images = album.get("images") or []
        return cls(
            id=raw.get("id", ""),
            name=raw.get("name", ""),
            artist=artists[0].get("name", "") if artists else "",
            album=album.get("name", ""),
            image=images[0].get("url") if images else None,
            popularity=int(raw.get("popularity") or 0),
            isrc=(raw.get("external_ids") or {}).get("isrc") or "",
            release_date=album.get("release_date") or "",
        )

    def apply_recording(self, recording: MusicBrainzRecording) -> None:
        self.mbid = recording.mbid
        for genre in get_genres_for_recording(recording.genres, max_genres=len(recording.genres)):
            if genre.name not in self.genres:
                self.genres.append(genre.name)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "artist": self.artist,
            "album": self.album,
            "image": self.image,
            "popularity": self.popularity,
            "genres": list(self.genres),
            "isrc": self.isrc,
            "release_date": self.release_date,
        }
        if self.mbid:
            data["mbid"] = self.mbid
        return data


@dataclass
class GenreSearchResult:
    genre: str
    tracks: list[GenreTrack] = field(default_factory=list)
    enriched: int = 0

    @property
    def note(self) -> str:
        if not self.enriched:
            return ""
        return f"Enhanced {self.enriched} tracks with additional MusicBrainz data"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "genre": self.genre,
            "tracks": [t.to_dict() for t in self.tracks],
        }
        if self.note:
            data["note"] = self.note
        return data


class GenreSearcher:
    """Catalog genre search with light metadata-graph enrichment."""

    def __init__(
        self,
        catalog: TrackSearcher,
        musicbrainz: IsrcResolver,
        enriched_results: int = ENRICHED_RESULTS,
    ):
        self.catalog = catalog
        self.musicbrainz = musicbrainz
        self.enriched_results = enriched_results

    async def search(self, genre: str, limit: int | None = None) -> GenreSearchResult:
        """
        Search recent tracks in a genre.

        Only the first ``enriched_results`` search results are looked up in
        the metadata graph, one batched query for all of them; the rest keep
        their catalog fields only. A failed graph lookup leaves every track
        unenriched.

        Raises:
            ValueError: If the genre is blank
            httpx.HTTPError: If the catalog search fails
        """
        if not genre.strip():
            raise ValueError("missing genre")
        limit = clamp_limit(limit)
        log.info(f"Genre search for {genre!r}, limit {limit}")

        raw_tracks = await self.catalog.search_tracks(genre_query(genre), limit)
        tracks = [GenreTrack.from_catalog(raw) for raw in raw_tracks]

        candidates = [t for t in tracks[: self.enriched_results] if t.isrc]
        enriched = await self._enrich(candidates)
        log.info(f"Genre search for {genre!r}: {len(tracks)} tracks, {enriched} enriched")

        # Stable: equal popularity keeps the catalog's order
        tracks.sort(key=lambda t: -t.popularity)
        return GenreSearchResult(genre=genre, tracks=tracks, enriched=enriched)

    async def _enrich(self, tracks: list[GenreTrack]) -> int:
        if not tracks:
            return 0
        isrcs = list(dict.fromkeys(t.isrc for t in tracks))
        try:
            matches = await self.musicbrainz.search_recordings_by_isrcs(isrcs)
        except httpx.HTTPError as e:
            log.warning(f"Batched ISRC lookup failed: {e}")
            return 0

        enriched = 0
        for track in tracks:
            recordings = matches.get(track.isrc)
            if recordings:
                track.apply_recording(recordings[0])
                enriched += 1
        return enriched
