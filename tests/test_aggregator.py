"""Tests for cross-source aggregation."""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import math

import pytest
from conftest import snapshot_doc, track_row

from melodex.aggregator import AggregationError, Aggregator, DiscoverResult, ResponseEncodingError
from melodex.chart_source import ChartSourceFetcher
from melodex.models import SourceConfig, Track, TrackMeta
from melodex.snapshots import MemorySnapshotStore

TODAY = dt.date(2024, 3, 10)
DAY = "2024-03-10"

HIGH = SourceConfig("spotify_new_releases", 1.0, 100)
MID = SourceConfig("reddit_fresh", 0.9, 50)
LOW = SourceConfig("billboard", 0.5, 100)


def aggregate(documents, sources, **kwargs) -> DiscoverResult:
    fetcher = ChartSourceFetcher(MemorySnapshotStore(documents))
    return asyncio.run(Aggregator(fetcher, **kwargs).aggregate(sources, TODAY))


def titles(result: DiscoverResult) -> list[str]:
    return [t.name for t in result.tracks]


def test_ranks_by_score():
    docs = {
        (HIGH.collection, DAY): snapshot_doc(
            track_row("A", "Second", rank=20),
            track_row("B", "First", rank=0),
        ),
    }
    assert titles(aggregate(docs, [HIGH])) == ["First", "Second"]


def test_end_to_end_with_fallback_source():
    two_days_back = "2024-03-08"
    docs = {
        (HIGH.collection, DAY): snapshot_doc(track_row("A", "a1", rank=0)),
        (MID.collection, DAY): snapshot_doc(track_row("B", "b1", rank=0)),
        (LOW.collection, two_days_back): snapshot_doc(track_row("C", "c1", rank=0)),
    }
    result = aggregate(docs, [HIGH, MID, LOW], max_results=2)

    assert result.updated == DAY
    assert len(result.tracks) == 2


def test_updated_is_most_recent_date_used():
    docs = {
        (HIGH.collection, "2024-03-07"): snapshot_doc(track_row("A", "a1")),
        (LOW.collection, "2024-03-09"): snapshot_doc(track_row("C", "c1")),
    }
    assert aggregate(docs, [HIGH, LOW]).updated == "2024-03-09"


def test_no_data_anywhere_is_empty_not_error():
    result = aggregate({}, [HIGH, LOW])

    assert result.tracks == []
    assert result.updated == ""


def test_duplicate_keeps_higher_weight_copy_and_counts_both_sources():
    docs = {
        (HIGH.collection, DAY): snapshot_doc(
            track_row("Drake", "Shared", rank=50, spotify_id="from-high"),
            track_row("SZA", "Solo", rank=30),
        ),
        (LOW.collection, DAY): snapshot_doc(
            track_row("drake feat. Future", "shared", rank=0, spotify_id="from-low"),
        ),
    }

    # Low-weight source merged first: the later high-weight copy must replace it
    for order in ([LOW, HIGH], [HIGH, LOW]):
        result = aggregate(docs, order)
        shared = next(t for t in result.tracks if t.name.lower() == "shared")

        assert shared.source == HIGH.collection
        assert shared.source_id == "from-high"
        assert shared.artist == "Drake"
        # 1.0 * 0.5**2 + 0.5 bonus beats 1.0 * 0.7**2 only with both sources counted
        assert titles(result)[0] == "Shared"


def test_equal_weight_keeps_first_copy():
    a = SourceConfig("a", 0.7, 100)
    b = SourceConfig("b", 0.7, 100)
    docs = {
        ("a", DAY): snapshot_doc(track_row("X", "Song", spotify_id="from-a")),
        ("b", DAY): snapshot_doc(track_row("X", "Song", spotify_id="from-b")),
    }
    (track,) = aggregate(docs, [a, b]).tracks

    assert track.source_id == "from-a"


def test_per_artist_cap():
    docs = {
        (HIGH.collection, DAY): snapshot_doc(
            track_row("Drake", "One", rank=0),
            track_row("Drake ft. Future", "Two", rank=1),
            track_row("DRAKE", "Three", rank=2),
            track_row("SZA", "Four", rank=3),
        ),
        (LOW.collection, DAY): snapshot_doc(track_row("Drake", "Three", rank=0)),
    }
    result = aggregate(docs, [HIGH, LOW])

    assert titles(result) == ["One", "Two", "Four"]


def test_configurable_artist_cap():
    docs = {
        (HIGH.collection, DAY): snapshot_doc(
            track_row("Drake", "One", rank=0),
            track_row("Drake", "Two", rank=1),
        ),
    }
    assert titles(aggregate(docs, [HIGH], max_tracks_per_artist=1)) == ["One"]


def test_entries_without_artwork_are_skipped():
    docs = {
        (HIGH.collection, DAY): snapshot_doc(
            track_row("A", "No image", rank=0, thumb=""),
            track_row("B", "Has image", rank=1),
        ),
    }
    assert titles(aggregate(docs, [HIGH])) == ["Has image"]


def test_truncates_and_resets_rank():
    docs = {
        (HIGH.collection, DAY): snapshot_doc(
            *(track_row(f"Artist {i}", f"Song {i}", rank=i) for i in range(10))
        ),
    }
    result = aggregate(docs, [HIGH], max_results=4)

    assert titles(result) == ["Song 0", "Song 1", "Song 2", "Song 3"]
    assert all(t.rank == 0 for t in result.tracks)


def test_equal_scores_keep_insertion_order():
    docs = {
        (HIGH.collection, DAY): snapshot_doc(
            track_row("A", "First", rank=200),
            track_row("B", "Second", rank=300),
            track_row("C", "Third", rank=100),
        ),
    }
    # Ranks past max_rank all score 0.0
    assert titles(aggregate(docs, [HIGH])) == ["First", "Second", "Third"]


def test_image_url_built_from_thumb():
    docs = {(HIGH.collection, DAY): snapshot_doc(track_row("A", "S", thumb="ab67616d"))}
    (track,) = aggregate(docs, [HIGH]).tracks

    assert track.image == "https://i.scdn.co/image/ab67616d"


class FlakyFetcher:
    """Fetcher whose named sources raise."""

    def __init__(self, inner: ChartSourceFetcher, broken: set[str]):
        self.inner = inner
        self.broken = broken

    async def fetch(self, source, reference_date):
        if source in self.broken:
            raise ConnectionError(f"{source} unreachable")
        return await self.inner.fetch(source, reference_date)


def test_single_source_failure_is_not_fatal():
    docs = {(LOW.collection, DAY): snapshot_doc(track_row("A", "Survivor"))}
    fetcher = FlakyFetcher(ChartSourceFetcher(MemorySnapshotStore(docs)), {HIGH.collection})

    result = asyncio.run(Aggregator(fetcher).aggregate([HIGH, LOW], TODAY))

    assert titles(result) == ["Survivor"]


def test_all_sources_failing_raises():
    fetcher = FlakyFetcher(
        ChartSourceFetcher(MemorySnapshotStore()), {HIGH.collection, LOW.collection}
    )

    with pytest.raises(AggregationError):
        asyncio.run(Aggregator(fetcher).aggregate([HIGH, LOW], TODAY))


def test_cancellation_stops_source_fetches():
    cancelled: list[str] = []

    class SlowFetcher:
        async def fetch(self, source, reference_date):
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(source)
                raise

    async def run():
        await asyncio.wait_for(Aggregator(SlowFetcher()).aggregate([HIGH, LOW], TODAY), 0.05)

    with pytest.raises(TimeoutError):
        asyncio.run(run())
    assert sorted(cancelled) == sorted([HIGH.collection, LOW.collection])


def test_discover_result_json():
    docs = {(HIGH.collection, DAY): snapshot_doc(track_row("A", "S", isrc="US123"))}
    payload = json.loads(aggregate(docs, [HIGH]).to_json())

    assert payload["updated"] == DAY
    (track,) = payload["tracks"]
    assert track["artist"] == "A"
    assert track["name"] == "S"
    assert track["isrc"] == "US123"
    assert track["rank"] == 0
    assert "meta" not in track


def test_discover_result_encoding_failure():
    track = Track(artist="A", name="S")
    track.meta = TrackMeta(duration_ms=1, key=0, mode=1, tempo=math.nan, time_signature=4)

    with pytest.raises(ResponseEncodingError):
        DiscoverResult(tracks=[track], updated=DAY).to_json()
