"""
Dated snapshot retrieval with day-by-day fallback.

When today's snapshot for a source is missing (or unreadable) the fetcher
walks back through the preceding days and returns the first one found.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Any

from melodex.models import ChartEntry
from melodex.snapshots import SnapshotDecodeError, SnapshotReader

DEFAULT_MAX_DAYS_LOOKBACK = 5

DATE_FORMAT = "%Y-%m-%d"

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceSnapshot:
    """Entries of one source and the snapshot date they came from."""

    source: str
    entries: tuple[ChartEntry, ...]
    date_used: str


def candidate_dates(reference_date: dt.date, max_days_lookback: int) -> list[str]:
    """Reference date first, then each preceding day of the lookback window."""
    return [
        (reference_date - dt.timedelta(days=i)).strftime(DATE_FORMAT)
        for i in range(max_days_lookback + 1)
    ]


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be an integer, got bool")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if not isinstance(value, int):
        raise TypeError(f"{field_name} must be an integer, got {type(value).__name__}")
    return value


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value


def decode_snapshot(source: str, date: str, document: dict[str, Any]) -> tuple[ChartEntry, ...]:
    """
    Turn a raw snapshot document into chart entries.

    Raises:
        SnapshotDecodeError: If the document does not have the expected shape
    """
    tracks = document.get("tracks")
    if not isinstance(tracks, list):
        raise SnapshotDecodeError(source, date, "missing 'tracks' list")

    entries: list[ChartEntry] = []
    for i, raw in enumerate(tracks):
        if not isinstance(raw, dict):
            raise SnapshotDecodeError(source, date, f"track {i} is not an object")
        try:
            rank = _as_int(raw.get("rank", i), "rank")
            entries.append(
                ChartEntry(
                    source=source,
                    # Negative ranks are invalid input; clamp to the top
                    rank=max(rank, 0),
                    artist=_as_str(raw.get("artist")),
                    title=_as_str(raw.get("title")),
                    external_id=_as_str(raw.get("spotifyID", raw.get("externalId"))),
                    thumb_key=_as_str(raw.get("thumb", raw.get("thumbKey"))),
                    isrc=_as_str(raw.get("isrc")),
                    mbid=_as_str(raw.get("mbid")),
                )
            )
        except TypeError as e:
            raise SnapshotDecodeError(source, date, f"track {i}: {e}") from e

    return tuple(entries)


class ChartSourceFetcher:
    """Fetch the most recent snapshot of a source within a lookback window."""

    def __init__(
        self,
        store: SnapshotReader,
        max_days_lookback: int = DEFAULT_MAX_DAYS_LOOKBACK,
    ):
        """
        Args:
            store: Snapshot store issuing point reads
            max_days_lookback: Number of days before the reference date to try
        """
        if max_days_lookback < 0:
            raise ValueError("max_days_lookback must be >= 0")
        self.store = store
        self.max_days_lookback = max_days_lookback

    async def fetch(self, source: str, reference_date: dt.date) -> SourceSnapshot | None:
        """
        Fetch a source's snapshot, falling back to prior days.

        Returns:
            The first snapshot found, or None if the whole window is empty.
            An absent source is skippable, not an error.
        """
        for days_back, date in enumerate(candidate_dates(reference_date, self.max_days_lookback)):
            try:
                document = await self.store.get_document(source, date)
                if document is None:
                    continue
                entries = decode_snapshot(source, date, document)
            except SnapshotDecodeError as e:
                log.warning(f"Error decoding tracks doc for {source} on {date}: {e.reason}")
                continue

            if days_back > 0:
                log.info(f"Using fallback date for {source}: {date} ({days_back} days back)")
            return SourceSnapshot(source=source, entries=entries, date_used=date)

        return None
