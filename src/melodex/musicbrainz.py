"""
MusicBrainz API client for the relation-graph lookups.

Supports ISRC -> recording id resolution (single and batched), recording
lookups with artist, work and URL relationships, genres and releases, work
lookups with their artist relationships, and artist lookups with their
recording credits. Rate limited to 1 req/sec by default.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from melodex.json_cache import JsonCache, make_cache_key
from melodex.models import ActiveYears, ArtistRef, RelationEdge, parse_relations

RECORDING_INCLUDES = (
    "artist-credits",
    "artist-rels",
    "genres",
    "work-rels",
    "url-rels",
    "releases",
)
WORK_INCLUDES = ("artist-rels",)
ARTIST_INCLUDES = ("genres", "url-rels", "recording-rels", "artist-credits")

# Recording search caps a page at 100 results
MAX_SEARCH_RESULTS = 100


@dataclass
class ArtistCredit:
    """One name in a recording's artist credit."""

    artist: ArtistRef
    credited_name: str
    join_phrase: str = ""


@dataclass
class ReleaseRef:
    """Release a recording appears on."""

    mbid: str
    title: str = ""
    date: str | None = None
    status: str | None = None


@dataclass
class MusicBrainzRecording:
    """Recording with its relation graph."""

    mbid: str
    title: str
    artist_credits: list[ArtistCredit] | None = None
    relations: list[RelationEdge] = field(default_factory=list)
    genres: list[dict[str, Any]] = field(default_factory=list)
    releases: list[ReleaseRef] = field(default_factory=list)
    isrcs: list[str] = field(default_factory=list)
    length_ms: int | None = None

    @property
    def artist_display(self) -> str:
        """Comma-joined credited artist names."""
        if not self.artist_credits:
            return "Various Artists"
        return ", ".join(c.credited_name for c in self.artist_credits)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MusicBrainzRecording:
        credits = None
        if data.get("artist-credit"):
            credits = []
            for credit in data["artist-credit"]:
                artist = credit.get("artist") or {}
                if not artist.get("id"):
                    continue
                name = artist.get("name", "")
                credits.append(
                    ArtistCredit(
                        artist=ArtistRef(id=artist["id"], name=name),
                        credited_name=credit.get("name") or name,
                        join_phrase=credit.get("joinphrase", ""),
                    )
                )

        releases = [
            ReleaseRef(
                mbid=r["id"],
                title=r.get("title", ""),
                date=r.get("date") or None,
                status=r.get("status"),
            )
            for r in data.get("releases") or []
            if r.get("id")
        ]

        return cls(
            mbid=data["id"],
            title=data.get("title", ""),
            artist_credits=credits,
            relations=parse_relations(data.get("relations")),
            genres=list(data.get("genres") or []),
            releases=releases,
            isrcs=list(data.get("isrcs") or []),
            length_ms=data.get("length"),
        )


@dataclass
class MusicBrainzWork:
    """Work (composition) with its relation graph."""

    mbid: str
    title: str
    relations: list[RelationEdge] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MusicBrainzWork:
        return cls(
            mbid=data["id"],
            title=data.get("title", ""),
            relations=parse_relations(data.get("relations")),
        )


@dataclass
class MusicBrainzArtist:
    """Artist with genres, URL links and the recordings it is credited on."""

    mbid: str
    name: str
    type: str = ""
    disambiguation: str = ""
    country: str = ""
    area: str = ""
    begin_area: str = ""
    life_span: ActiveYears | None = None
    relations: list[RelationEdge] = field(default_factory=list)
    genres: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MusicBrainzArtist:
        life_span = None
        if data.get("life-span") is not None:
            raw = data["life-span"]
            life_span = ActiveYears(
                begin=raw.get("begin") or "",
                end=raw.get("end") or "",
                ended=bool(raw.get("ended")),
            )

        return cls(
            mbid=data["id"],
            name=data.get("name", ""),
            type=data.get("type") or "",
            disambiguation=data.get("disambiguation") or "",
            country=data.get("country") or "",
            area=(data.get("area") or {}).get("name", ""),
            begin_area=(data.get("begin-area") or {}).get("name", ""),
            life_span=life_span,
            relations=parse_relations(data.get("relations")),
            genres=list(data.get("genres") or []),
        )


class MusicBrainzClient:
    """
    MusicBrainz API client for relation-graph lookups.

    Every request is a suspension point; cancelling the awaiting task
    aborts the in-flight request.
    """

    BASE_URL = "https://musicbrainz.org/ws/2"
    USER_AGENT = "melodex/0.1.0 ( https://github.com/melodex/melodex )"

    def __init__(
        self,
        cache: JsonCache | None = None,
        rate_limit_per_sec: float = 1.0,
        cache_ttl_seconds: int | None = None,
        timeout_s: float = 30.0,
        recording_includes: tuple[str, ...] = RECORDING_INCLUDES,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize MusicBrainz client.

        Args:
            cache: Optional JSON response cache
            rate_limit_per_sec: Max requests per second (default 1.0 per ToS)
            cache_ttl_seconds: TTL for cached responses (cache default if None)
            timeout_s: Per-request timeout
            recording_includes: Sub-resources requested with every recording
            client: Preconfigured HTTP client (tests inject a mock transport)
        """
        self.cache = cache
        self.recording_includes = tuple(recording_includes)
        self.rate_limit_per_sec = rate_limit_per_sec
        self.cache_ttl_seconds = cache_ttl_seconds
        self._last_request_time = 0.0
        self._client = client or httpx.AsyncClient(
            timeout=timeout_s,
            headers={"User-Agent": self.USER_AGENT},
        )
        self._rate_limit_lock = asyncio.Lock()

    async def _rate_limit(self) -> None:
        """Enforce rate limiting (1 req/sec by default per MusicBrainz ToS)."""
        if self.rate_limit_per_sec <= 0:
            return

        async with self._rate_limit_lock:
            min_interval = 1.0 / self.rate_limit_per_sec
            elapsed = time.time() - self._last_request_time

            if elapsed < min_interval:
                await asyncio.sleep(min_interval - elapsed)

            self._last_request_time = time.time()

    async def _request(self, endpoint: str, params: dict[str, str]) -> dict[str, Any]:
        """Make rate-limited request to MusicBrainz API."""
        params = {**params, "fmt": "json"}
        url = f"{self.BASE_URL}/{endpoint}"
        cache_key = make_cache_key(url, params)

        if self.cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        await self._rate_limit()
        response = await self._client.get(url, params=params)
        response.raise_for_status()
        data = response.json()

        if self.cache:
            self.cache.put(cache_key, data, self.cache_ttl_seconds)

        return data

    async def search_recording_ids_by_isrc(self, isrc: str) -> list[str]:
        """
        Resolve an ISRC to candidate recording MBIDs.

        Returns:
            Recording ids in service order; empty if the ISRC is unknown
        """
        try:
            data = await self._request(f"isrc/{isrc}", {})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return []
            raise
        return [rec["id"] for rec in data.get("recordings") or [] if rec.get("id")]

    async def search_recordings_by_isrcs(
        self, isrcs: list[str]
    ) -> dict[str, list[MusicBrainzRecording]]:
        """
        Resolve several ISRCs with one search query.

        Search hits carry folksonomy tags rather than curated genres; a hit
        without genres gets its tags in their place.

        Returns:
            Matching recordings per requested ISRC; ISRCs without hits are absent
        """
        if not isrcs:
            return {}
        query = " OR ".join(f"isrc:{isrc}" for isrc in isrcs)
        data = await self._request(
            "recording", {"query": query, "limit": str(MAX_SEARCH_RESULTS)}
        )

        wanted = set(isrcs)
        matches: dict[str, list[MusicBrainzRecording]] = {}
        for raw in data.get("recordings") or []:
            if not raw.get("id"):
                continue
            recording = MusicBrainzRecording.from_dict(raw)
            if not recording.genres:
                recording.genres = list(raw.get("tags") or [])
            for isrc in recording.isrcs:
                if isrc in wanted:
                    matches.setdefault(isrc, []).append(recording)
        return matches

    async def get_recording(
        self, mbid: str, includes: tuple[str, ...] | None = None
    ) -> MusicBrainzRecording:
        """Get a recording with its relations, genres and releases."""
        inc = "+".join(includes or self.recording_includes)
        data = await self._request(f"recording/{mbid}", {"inc": inc})
        return MusicBrainzRecording.from_dict(data)

    async def get_work(
        self, mbid: str, includes: tuple[str, ...] = WORK_INCLUDES
    ) -> MusicBrainzWork:
        """Get a work with its artist relations (composers, lyricists, writers)."""
        data = await self._request(f"work/{mbid}", {"inc": "+".join(includes)})
        return MusicBrainzWork.from_dict(data)

    async def get_artist(
        self, mbid: str, includes: tuple[str, ...] = ARTIST_INCLUDES
    ) -> MusicBrainzArtist:
        """Get an artist with genres, URL links and recording credits."""
        data = await self._request(f"artist/{mbid}", {"inc": "+".join(includes)})
        return MusicBrainzArtist.from_dict(data)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> MusicBrainzClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
