"""Release cover art lookup against the Cover Art Archive."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

import httpx

from melodex.musicbrainz import ReleaseRef

log = logging.getLogger(__name__)

COVER_ART_URL = "https://coverartarchive.org/release/{mbid}/front-{size}"
DEFAULT_CHECK_CONCURRENCY = 5


def latest_first(releases: Sequence[ReleaseRef]) -> list[ReleaseRef]:
    """Order releases newest first; undated releases go last in input order."""
    dated = sorted((r for r in releases if r.date), key=lambda r: r.date or "", reverse=True)
    undated = [r for r in releases if not r.date]
    return dated + undated


class ReleaseArtworkFinder:
    """
    Pick the most recent release of a recording that has front cover art.

    Existence is checked with HEAD requests; at most ``concurrency`` checks
    are in flight at once. A failed check counts as "no art".
    """

    def __init__(
        self,
        concurrency: int = DEFAULT_CHECK_CONCURRENCY,
        size: int = 250,
        timeout_s: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self.concurrency = concurrency
        self.size = size
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    def image_url(self, release_mbid: str) -> str:
        return COVER_ART_URL.format(mbid=release_mbid, size=self.size)

    async def has_art(self, release_mbid: str) -> bool:
        """True if the archive answers 2xx or 3xx for the front image."""
        try:
            response = await self._client.head(self.image_url(release_mbid))
        except httpx.HTTPError as e:
            log.warning(f"Cover art check failed for release {release_mbid}: {e}")
            return False
        return response.status_code < 400

    async def find_latest(self, releases: Sequence[ReleaseRef]) -> str | None:
        """
        Return the image URL of the newest release with cover art.

        Releases are checked newest first in windows of ``concurrency``; the
        first window with a hit ends the search and its newest hit wins, so
        the answer does not depend on which check finishes first.
        """
        ordered = latest_first(releases)
        if not ordered:
            return None

        for start in range(0, len(ordered), self.concurrency):
            window = ordered[start : start + self.concurrency]
            found = await asyncio.gather(*(self.has_art(r.mbid) for r in window))
            for release, has_art in zip(window, found, strict=True):
                if has_art:
                    return self.image_url(release.mbid)

        log.debug(f"No cover art among {len(ordered)} releases")
        return None

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ReleaseArtworkFinder:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
