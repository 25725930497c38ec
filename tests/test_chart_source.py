"""Tests for snapshot decoding and day-by-day fallback."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging

import pytest
from conftest import snapshot_doc, track_row

from melodex.chart_source import ChartSourceFetcher, candidate_dates, decode_snapshot
from melodex.snapshots import MemorySnapshotStore, SnapshotDecodeError

TODAY = dt.date(2024, 3, 10)


def test_candidate_dates_walks_backwards():
    assert candidate_dates(TODAY, 2) == ["2024-03-10", "2024-03-09", "2024-03-08"]
    assert candidate_dates(dt.date(2024, 3, 1), 1) == ["2024-03-01", "2024-02-29"]


def test_decode_snapshot_fields():
    doc = snapshot_doc(
        track_row("Tyla", "Water", rank=3, thumb="ab67", spotify_id="sp1", isrc="ZA123"),
    )
    (entry,) = decode_snapshot("hnhh", "2024-03-10", doc)

    assert entry.source == "hnhh"
    assert entry.rank == 3
    assert entry.artist == "Tyla"
    assert entry.title == "Water"
    assert entry.external_id == "sp1"
    assert entry.thumb_key == "ab67"
    assert entry.isrc == "ZA123"


def test_decode_snapshot_alternate_keys_and_defaults():
    doc = {
        "tracks": [
            {"artist": "A", "title": "One", "externalId": "x1", "thumbKey": "t1"},
            {"artist": "B", "title": "Two", "rank": -4},
        ]
    }
    first, second = decode_snapshot("billboard", "2024-03-10", doc)

    assert first.rank == 0  # position in list
    assert first.external_id == "x1"
    assert first.thumb_key == "t1"
    assert second.rank == 0  # clamped
    assert second.thumb_key == ""


@pytest.mark.parametrize(
    "doc",
    [
        {},
        {"tracks": "nope"},
        {"tracks": ["not a dict"]},
        {"tracks": [{"artist": "A", "title": "T", "rank": "first"}]},
        {"tracks": [{"artist": 42, "title": "T"}]},
    ],
)
def test_decode_snapshot_rejects_bad_shapes(doc):
    with pytest.raises(SnapshotDecodeError):
        decode_snapshot("hnhh", "2024-03-10", doc)


def test_fetch_uses_reference_date_first():
    store = MemorySnapshotStore(
        {
            ("hnhh", "2024-03-10"): snapshot_doc(track_row("A", "Today")),
            ("hnhh", "2024-03-09"): snapshot_doc(track_row("A", "Yesterday")),
        }
    )
    snapshot = asyncio.run(ChartSourceFetcher(store).fetch("hnhh", TODAY))

    assert snapshot is not None
    assert snapshot.date_used == "2024-03-10"
    assert snapshot.entries[0].title == "Today"


def test_fetch_falls_back_to_prior_days(caplog):
    store = MemorySnapshotStore({("hnhh", "2024-03-08"): snapshot_doc(track_row("A", "Old"))})

    with caplog.at_level(logging.INFO, logger="melodex.chart_source"):
        snapshot = asyncio.run(ChartSourceFetcher(store).fetch("hnhh", TODAY))

    assert snapshot is not None
    assert snapshot.date_used == "2024-03-08"
    assert "2 days back" in caplog.text


def test_fetch_skips_undecodable_day(caplog):
    store = MemorySnapshotStore(
        {
            ("hnhh", "2024-03-10"): {"tracks": 17},
            ("hnhh", "2024-03-09"): snapshot_doc(track_row("A", "Good")),
        }
    )

    with caplog.at_level(logging.WARNING, logger="melodex.chart_source"):
        snapshot = asyncio.run(ChartSourceFetcher(store).fetch("hnhh", TODAY))

    assert snapshot is not None
    assert snapshot.date_used == "2024-03-09"
    assert "Error decoding" in caplog.text


def test_fetch_returns_none_when_window_exhausted():
    # Six days back is outside a five-day window
    store = MemorySnapshotStore({("hnhh", "2024-03-04"): snapshot_doc(track_row("A", "Too old"))})

    assert asyncio.run(ChartSourceFetcher(store, max_days_lookback=5).fetch("hnhh", TODAY)) is None
    fetcher = ChartSourceFetcher(store, max_days_lookback=6)
    assert asyncio.run(fetcher.fetch("hnhh", TODAY)) is not None


def test_fetch_propagates_store_errors():
    class BrokenStore:
        async def get_document(self, collection, date):
            raise OSError("disk gone")

    with pytest.raises(OSError):
        asyncio.run(ChartSourceFetcher(BrokenStore()).fetch("hnhh", TODAY))


def test_negative_lookback_rejected():
    with pytest.raises(ValueError):
        ChartSourceFetcher(MemorySnapshotStore(), max_days_lookback=-1)
