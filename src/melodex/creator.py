"""
Artist profiles.

A profile is built from the metadata service's artist record: identity and
life span, genres, external links, and the recordings the artist is
credited on grouped by credit type. When the links include a catalog
artist page, the artist's top catalog tracks are added as highlights.
Highlights are optional; a failed catalog lookup is logged and the profile
is returned without them.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from melodex.coordinator import NotFoundError
from melodex.models import Creator, Highlight
from melodex.musicbrainz import MusicBrainzArtist, MusicBrainzClient
from melodex.relations import (
    DEFAULT_TABLES,
    RelationTables,
    extract_links,
    get_credits_for_artist,
    get_genres_for_recording,
    spotify_artist_id,
)

MAX_HIGHLIGHTS = 10

log = logging.getLogger(__name__)


class ArtistNotFoundError(NotFoundError):
    def __init__(self, mbid: str):
        self.mbid = mbid
        super().__init__(f"Artist not found: {mbid}")


class TopTracksFetcher(Protocol):
    async def get_artist_top_tracks(self, artist_id: str) -> list[dict[str, Any]]: ...


def project_highlight(raw: dict[str, Any]) -> Highlight:
    images = (raw.get("album") or {}).get("images") or []
    return Highlight(
        id=raw.get("id", ""),
        title=raw.get("name", ""),
        artist=", ".join(a.get("name", "") for a in raw.get("artists") or []),
        image=images[0].get("url", "") if images else "",
    )


def build_creator(artist: MusicBrainzArtist, tables: RelationTables = DEFAULT_TABLES) -> Creator:
    """Project an artist record onto a profile, without highlights."""
    genres = get_genres_for_recording(artist.genres, tables.max_genres)
    return Creator(
        id=artist.mbid,
        name=artist.name,
        type=artist.type,
        disambiguation=artist.disambiguation,
        country=artist.country,
        area=artist.area,
        begin_area=artist.begin_area,
        active_years=artist.life_span,
        genres=[g.name for g in genres],
        links=extract_links(artist.relations, tables),
        credits=get_credits_for_artist(artist.relations),
    )


class CreatorProfiler:
    """Assemble artist profiles from the metadata graph and the catalog."""

    def __init__(
        self,
        musicbrainz: MusicBrainzClient,
        catalog: TopTracksFetcher | None = None,
        tables: RelationTables = DEFAULT_TABLES,
    ):
        self.musicbrainz = musicbrainz
        self.catalog = catalog
        self.tables = tables

    async def get_creator(self, mbid: str) -> Creator:
        """
        Build the profile of the artist with the given MBID.

        Raises:
            ArtistNotFoundError: If the metadata service has no such artist
        """
        log.info(f"Fetching artist {mbid}")
        try:
            artist = await self.musicbrainz.get_artist(mbid)
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (400, 404):
                raise ArtistNotFoundError(mbid) from e
            raise

        creator = build_creator(artist, self.tables)
        creator.highlights = await self._highlights(creator)
        return creator

    async def _highlights(self, creator: Creator) -> list[Highlight]:
        if self.catalog is None:
            return []
        catalog_id = spotify_artist_id(creator.links)
        if catalog_id is None:
            log.debug(f"No catalog artist link for {creator.id}, skipping highlights")
            return []

        try:
            top_tracks = await self.catalog.get_artist_top_tracks(catalog_id)
        except (httpx.HTTPError, ValueError) as e:
            # ValueError: catalog credentials are not configured
            log.warning(f"Top tracks lookup failed for catalog artist {catalog_id}: {e}")
            return []
        return [project_highlight(t) for t in top_tracks[:MAX_HIGHLIGHTS]]
