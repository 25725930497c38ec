"""
Cross-source chart aggregation.

Merges the daily snapshots of every configured source into one ranked,
deduplicated list:

1. Entries without artwork are dropped.
2. Entries are keyed by ``normalize_track_key``; a key's stored copy is the
   one from the most trusted source that produced it.
3. A single artist contributes at most ``max_tracks_per_artist`` keys,
   enforced when a key is first inserted.
4. Every stored entry is scored with its own rank/weight and the number of
   distinct sources that produced its key.
5. Results are sorted by score (stable) and capped.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from melodex.chart_source import ChartSourceFetcher, SourceSnapshot
from melodex.models import ChartEntry, ScoredTrack, SourceConfig, Track
from melodex.normalize import normalize_artist, normalize_track_key
from melodex.scoring import CROSS_SOURCE_BONUSES, compute_score

DEFAULT_MAX_TRACKS_PER_ARTIST = 2
DEFAULT_MAX_RESULTS = 150

log = logging.getLogger(__name__)


class AggregationError(Exception):
    """No configured source could be reached at all."""


class ResponseEncodingError(Exception):
    """The aggregated response could not be serialized."""


@dataclass
class DiscoverResult:
    """Ranked track list plus the freshest snapshot date that fed it."""

    tracks: list[Track] = field(default_factory=list)
    updated: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"tracks": [t.to_dict() for t in self.tracks], "updated": self.updated}

    def to_json(self, indent: int | None = None) -> str:
        try:
            return json.dumps(self.to_dict(), indent=indent, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise ResponseEncodingError(f"Failed to encode discover response: {e}") from e


@dataclass
class _MergeState:
    """Per-call accumulators; discarded when the call returns."""

    scored: dict[str, ScoredTrack] = field(default_factory=dict)
    sources_by_key: dict[str, set[str]] = field(default_factory=dict)
    artist_counts: dict[str, int] = field(default_factory=dict)
    latest_date: str = ""


class Aggregator:
    """Aggregate chart sources into a single ranked track list."""

    def __init__(
        self,
        fetcher: ChartSourceFetcher,
        max_tracks_per_artist: int = DEFAULT_MAX_TRACKS_PER_ARTIST,
        max_results: int = DEFAULT_MAX_RESULTS,
        bonuses: tuple[tuple[int, float], ...] = CROSS_SOURCE_BONUSES,
    ):
        self.fetcher = fetcher
        self.max_tracks_per_artist = max_tracks_per_artist
        self.max_results = max_results
        self.bonuses = bonuses

    async def aggregate(
        self, sources: Sequence[SourceConfig], reference_date: dt.date
    ) -> DiscoverResult:
        """
        Fetch every source and build the ranked list.

        Sources are fetched concurrently but merged in the configured order,
        so the per-artist cap and the "most trusted copy wins" rule give the
        same result regardless of network completion order.

        Raises:
            AggregationError: If every source fetch failed with an error
        """
        results = await asyncio.gather(
            *(self.fetcher.fetch(src.collection, reference_date) for src in sources),
            return_exceptions=True,
        )

        state = _MergeState()
        failures = 0
        for src, result in zip(sources, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures += 1
                log.warning(f"Failed to fetch source {src.collection}, skipping: {result}")
                continue
            if result is None:
                log.warning(f"No snapshot for {src.collection} in lookback window, skipping")
                continue

            log.info(
                f"Fetched {len(result.entries)} tracks from {src.collection} ({result.date_used})"
            )
            self._merge_source(state, src, result)

        if sources and failures == len(sources):
            raise AggregationError(f"All {failures} chart sources failed")

        tracks = self._rank(state)
        log.info(f"Discover response: {len(tracks)} tracks, updated {state.latest_date or '-'}")
        return DiscoverResult(tracks=tracks, updated=state.latest_date)

    def _merge_source(
        self, state: _MergeState, src: SourceConfig, snapshot: SourceSnapshot
    ) -> None:
        if snapshot.date_used > state.latest_date:
            state.latest_date = snapshot.date_used

        for entry in snapshot.entries:
            # Tracks without artwork would render as broken images
            if not entry.thumb_key:
                continue

            key = normalize_track_key(entry.artist, entry.title)
            existing = state.scored.get(key)

            if existing is not None:
                if src.weight > existing.source_weight:
                    state.scored[key] = self._accumulator(key, src, entry)
            else:
                artist_key = normalize_artist(entry.artist)
                if state.artist_counts.get(artist_key, 0) >= self.max_tracks_per_artist:
                    continue
                state.artist_counts[artist_key] = state.artist_counts.get(artist_key, 0) + 1
                state.scored[key] = self._accumulator(key, src, entry)

            state.sources_by_key.setdefault(key, set()).add(src.collection)

    @staticmethod
    def _accumulator(key: str, src: SourceConfig, entry: ChartEntry) -> ScoredTrack:
        return ScoredTrack(
            key=key,
            track=Track.from_chart_entry(entry),
            source=src.collection,
            source_weight=src.weight,
            source_rank=entry.rank,
            max_rank=src.max_rank,
        )

    def _rank(self, state: _MergeState) -> list[Track]:
        results = list(state.scored.values())
        for st in results:
            st.source_count = len(state.sources_by_key[st.key])
            st.score = compute_score(
                st.source_rank, st.source_weight, st.max_rank, st.source_count, self.bonuses
            )

        # sorted() is stable: equal scores keep insertion order
        results = sorted(results, key=lambda st: -st.score)[: self.max_results]

        tracks: list[Track] = []
        for st in results:
            # Order is the rank now; per-source ranks must not leak out
            st.track.rank = 0
            tracks.append(st.track)
        return tracks
