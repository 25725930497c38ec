"""
Concurrent catalog fan-out for a single track.

Four units of work run as sibling tasks: the track record, its audio
features, its audio analysis, and the credited artists (which waits for the
track record to learn the artist ids). A failing unit records its error and
yields None; it never cancels its siblings. Cancelling the caller cancels
every unit still in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

import httpx

T = TypeVar("T")

ERROR_CAPACITY = 4

log = logging.getLogger(__name__)


class NotFoundError(Exception):
    """The primary entity of a request does not exist."""


class TrackNotFoundError(NotFoundError):
    def __init__(self, track_id: str):
        self.track_id = track_id
        super().__init__(f"Track not found: {track_id}")


class CatalogFetcher(Protocol):
    async def get_track(self, track_id: str) -> dict[str, Any]: ...

    async def get_audio_features(self, track_id: str) -> dict[str, Any]: ...

    async def get_audio_analysis(self, track_id: str) -> dict[str, Any]: ...

    async def get_artists(self, artist_ids: list[str]) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class UnitError:
    unit: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.unit}: {self.error}"


class ErrorCollector:
    """Bounded per-call error sink; one slot per unit of work."""

    def __init__(self, capacity: int = ERROR_CAPACITY):
        self.capacity = capacity
        self._errors: list[UnitError] = []

    def push(self, unit: str, error: Exception) -> None:
        if len(self._errors) >= self.capacity:
            log.debug(f"Error collector full, dropping {unit} error: {error}")
            return
        self._errors.append(UnitError(unit=unit, error=error))

    def get(self, unit: str) -> Exception | None:
        for entry in self._errors:
            if entry.unit == unit:
                return entry.error
        return None

    def __iter__(self) -> Iterator[UnitError]:
        return iter(self._errors)

    def __len__(self) -> int:
        return len(self._errors)


@dataclass
class CatalogBundle:
    """Raw catalog payloads for one track; missing pieces are None/empty."""

    track: dict[str, Any]
    features: dict[str, Any] | None = None
    analysis: dict[str, Any] | None = None
    artists: list[dict[str, Any]] = field(default_factory=list)
    errors: list[UnitError] = field(default_factory=list)


def credited_artist_ids(track: dict[str, Any]) -> list[str]:
    """Artist ids credited on a track record, in credit order, without blanks."""
    return [a["id"] for a in track.get("artists") or [] if a.get("id")]


def _is_not_found(error: Exception | None) -> bool:
    return isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 404


class ConcurrentFetchCoordinator:
    """Fan out the catalog lookups for one track and join the results."""

    def __init__(self, catalog: CatalogFetcher, error_capacity: int = ERROR_CAPACITY):
        self.catalog = catalog
        self.error_capacity = error_capacity

    async def fetch(self, track_id: str) -> CatalogBundle:
        """
        Fetch track, features, analysis and artists concurrently.

        Raises:
            TrackNotFoundError: If the catalog has no such track
            Exception: Whatever the track unit raised, if it failed otherwise
        """
        errors = ErrorCollector(self.error_capacity)

        track_task = asyncio.ensure_future(
            self._run("track", self.catalog.get_track(track_id), errors)
        )

        async def artists_unit() -> list[dict[str, Any]] | None:
            track = await track_task
            if not track:
                return None
            ids = credited_artist_ids(track)
            if not ids:
                return []
            return await self._run("artists", self.catalog.get_artists(ids), errors)

        track, features, analysis, artists = await asyncio.gather(
            track_task,
            self._run("features", self.catalog.get_audio_features(track_id), errors),
            self._run("analysis", self.catalog.get_audio_analysis(track_id), errors),
            artists_unit(),
        )

        if not track:
            track_error = errors.get("track")
            if track_error is None or _is_not_found(track_error):
                raise TrackNotFoundError(track_id) from track_error
            raise track_error

        for entry in errors:
            log.warning(f"Partial catalog data for track {track_id}: {entry}")

        return CatalogBundle(
            track=track,
            features=features or None,
            analysis=analysis or None,
            artists=artists or [],
            errors=list(errors),
        )

    @staticmethod
    async def _run(unit: str, work: Awaitable[T], errors: ErrorCollector) -> T | None:
        try:
            return await work
        except Exception as e:
            errors.push(unit, e)
            return None
