"""
Single-track enrichment.

Builds the full track record from the catalog bundle and, when the track has
an ISRC, from the recording's relation graph: performers by instrument,
production and song credits, genres, external links and release artwork.

Only the primary entity is mandatory. Every secondary lookup that fails is
logged and its field is left out.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any

import httpx

from melodex.artwork import ReleaseArtworkFinder
from melodex.coordinator import (
    CatalogBundle,
    CatalogFetcher,
    ConcurrentFetchCoordinator,
    NotFoundError,
)
from melodex.fallback import first_success
from melodex.models import (
    Track,
    TrackAnalysis,
    TrackAnalysisSegment,
    TrackFeatures,
    TrackMeta,
)
from melodex.musicbrainz import MusicBrainzClient, MusicBrainzRecording
from melodex.relations import (
    DEFAULT_TABLES,
    RelationTables,
    extract_links,
    find_work_id,
    get_artist_instruments_for_recording,
    get_production_credits_for_recording,
    get_song_credits_for_work,
    rank_genres,
)

CATALOG_SOURCE = "spotify"
GRAPH_SOURCE = "musicbrainz"
PREFERRED_IMAGE_SIZE = (300, 300)
VARIOUS_ARTISTS = "Various Artists"

log = logging.getLogger(__name__)


class RecordingNotFoundError(NotFoundError):
    def __init__(self, isrc: str):
        self.isrc = isrc
        super().__init__(f"No recording found for ISRC {isrc}")


def _has_relations(recording: MusicBrainzRecording) -> bool:
    return bool(recording.relations)


def pick_album_image(album: dict[str, Any] | None) -> str:
    """Prefer the 300x300 rendition; otherwise the first image listed."""
    images = (album or {}).get("images") or []
    for image in images:
        if (image.get("height"), image.get("width")) == PREFERRED_IMAGE_SIZE:
            return image.get("url", "")
    return images[0].get("url", "") if images else ""


def project_meta(raw: dict[str, Any]) -> TrackMeta:
    return TrackMeta(
        duration_ms=int(raw.get("duration_ms", 0)),
        key=int(raw.get("key", -1)),
        mode=int(raw.get("mode", 0)),
        tempo=float(raw.get("tempo", 0.0)),
        time_signature=int(raw.get("time_signature", 0)),
    )


def project_features(raw: dict[str, Any]) -> TrackFeatures:
    return TrackFeatures(
        acousticness=float(raw.get("acousticness", 0.0)),
        danceability=float(raw.get("danceability", 0.0)),
        energy=float(raw.get("energy", 0.0)),
        happiness=float(raw.get("valence", 0.0)),
        instrumentalness=float(raw.get("instrumentalness", 0.0)),
        liveness=float(raw.get("liveness", 0.0)),
        loudness=float(raw.get("loudness", 0.0)),
        speechiness=float(raw.get("speechiness", 0.0)),
    )


def project_analysis(raw: dict[str, Any]) -> TrackAnalysis | None:
    """None when the analysis carries no segments."""
    segments = raw.get("segments") or []
    if not segments:
        return None
    return TrackAnalysis(
        duration=float((raw.get("track") or {}).get("duration", 0.0)),
        segments=[
            TrackAnalysisSegment(
                start=float(s.get("start", 0.0)),
                duration=float(s.get("duration", 0.0)),
                confidence=float(s.get("confidence", 0.0)),
                loudness_start=float(s.get("loudness_start", 0.0)),
                loudness_max=float(s.get("loudness_max", 0.0)),
                loudness_end=float(s.get("loudness_end", 0.0)),
            )
            for s in segments
        ],
    )


def earliest_release_date(recording: MusicBrainzRecording) -> str:
    dates = sorted(r.date for r in recording.releases if r.date)
    return dates[0] if dates else ""


class TrackEnricher:
    """Assemble enriched track records from the catalog and the metadata graph."""

    def __init__(
        self,
        catalog: CatalogFetcher,
        musicbrainz: MusicBrainzClient,
        artwork: ReleaseArtworkFinder | None = None,
        tables: RelationTables = DEFAULT_TABLES,
    ):
        self.coordinator = ConcurrentFetchCoordinator(catalog)
        self.musicbrainz = musicbrainz
        self.artwork = artwork
        self.tables = tables

    async def enrich_track(self, track_id: str, source: str = CATALOG_SOURCE) -> Track:
        """
        Enrich a catalog track.

        Raises:
            TrackNotFoundError: If the catalog has no such track
        """
        bundle = await self.coordinator.fetch(track_id)
        track = self._project_bundle(track_id, source, bundle)
        artist_genres = [a.get("genres") for a in bundle.artists]

        if not track.isrc:
            log.info(f"Track {track_id} has no ISRC, skipping relation graph")
            track.genres = self._genre_names(None, artist_genres)
            return track

        try:
            recording = await self._find_recording(track.isrc)
        except httpx.HTTPError as e:
            log.warning(f"Recording lookup failed for ISRC {track.isrc}: {e}")
            recording = None

        if recording is None:
            track.genres = self._genre_names(None, artist_genres)
            return track

        await self._apply_recording(track, recording, artist_genres)
        return track

    async def enrich_by_isrc(self, isrc: str) -> Track:
        """
        Enrich from the metadata graph alone, for tracks known only by ISRC.

        Raises:
            RecordingNotFoundError: If no recording carries the ISRC
        """
        recording = await self._find_recording(isrc)
        if recording is None:
            raise RecordingNotFoundError(isrc)

        track = Track(
            artist=recording.artist_display,
            name=recording.title,
            source=GRAPH_SOURCE,
            source_id=recording.mbid,
            isrc=isrc,
            release_date=earliest_release_date(recording),
        )
        await self._apply_recording(track, recording, ())
        return track

    async def _find_recording(self, isrc: str) -> MusicBrainzRecording | None:
        """First recording with relations; else the first one that loaded at all."""
        recording_ids = await self.musicbrainz.search_recording_ids_by_isrc(isrc)
        if not recording_ids:
            log.info(f"No recordings for ISRC {isrc}")
            return None

        picked = await first_success(
            recording_ids,
            self.musicbrainz.get_recording,
            accept=_has_relations,
            errors=(httpx.HTTPError,),
            keep_rejected=True,
        )
        if picked is None:
            return None
        mbid, recording = picked
        log.debug(f"Using recording {mbid} for ISRC {isrc}")
        return recording

    def _project_bundle(self, track_id: str, source: str, bundle: CatalogBundle) -> Track:
        raw = bundle.track
        artists = raw.get("artists") or []
        album = raw.get("album") or {}

        track = Track(
            artist=artists[0].get("name", VARIOUS_ARTISTS) if artists else VARIOUS_ARTISTS,
            name=raw.get("name", ""),
            source=source,
            source_id=track_id,
            image=pick_album_image(album),
            isrc=(raw.get("external_ids") or {}).get("isrc") or "",
            release_date=album.get("release_date") or "",
        )

        if bundle.features is not None:
            track.meta = project_meta(bundle.features)
            track.features = project_features(bundle.features)
        else:
            log.warning(f"No audio features for track {track_id}")

        if bundle.analysis is not None:
            track.analysis = project_analysis(bundle.analysis)
        if track.analysis is None:
            log.warning(f"No audio analysis for track {track_id}")

        return track

    async def _apply_recording(
        self,
        track: Track,
        recording: MusicBrainzRecording,
        artist_genres: Iterable[Sequence[Any] | None],
    ) -> None:
        relations = recording.relations
        track.id = recording.mbid
        track.instruments = get_artist_instruments_for_recording(relations, self.tables)
        track.production_credits = get_production_credits_for_recording(relations, self.tables)
        track.links = extract_links(relations, self.tables)
        track.genres = self._genre_names(recording.genres, artist_genres)

        work_id = find_work_id(relations)
        if work_id:
            try:
                work = await self.musicbrainz.get_work(work_id)
            except httpx.HTTPError as e:
                log.warning(f"Work lookup failed for {work_id}: {e}")
            else:
                track.song_credits = get_song_credits_for_work(work.relations, self.tables)

        if not track.image and self.artwork is not None:
            track.image = await self.artwork.find_latest(recording.releases) or ""

    def _genre_names(
        self,
        recording_genres: Sequence[Any] | None,
        artist_genres: Iterable[Sequence[Any] | None],
    ) -> list[str]:
        ranked = rank_genres(recording_genres, artist_genres, self.tables.max_genres)
        return [g.name for g in ranked]
