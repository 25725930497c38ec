"""
Entities shared by the discovery and enrichment paths.

Everything here is request-scoped: built from an external fetch, turned into
a response, discarded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

SPOTIFY_IMAGE_URL = "https://i.scdn.co/image/{thumb}"

# Sources whose thumbnail keys are not catalog image ids
IMAGE_URL_TEMPLATES: dict[str, str] = {
    "hypem": "https://static.hypem.com/items_images/{thumb}",
}


@dataclass(frozen=True)
class SourceConfig:
    """A chart source and its trust weight."""

    collection: str
    weight: float
    max_rank: float

    def __post_init__(self) -> None:
        if not 0.0 < self.weight <= 1.0:
            raise ValueError(f"weight for {self.collection} must be in (0, 1], got {self.weight}")
        if self.max_rank <= 0:
            raise ValueError(f"max_rank for {self.collection} must be > 0, got {self.max_rank}")


@dataclass(frozen=True)
class ChartEntry:
    """One ranked track from a source's daily snapshot."""

    source: str
    rank: int
    artist: str
    title: str
    external_id: str = ""
    thumb_key: str = ""
    isrc: str = ""
    mbid: str = ""


def image_url_for_thumb(source: str, thumb_key: str) -> str:
    """Build a displayable image URL from a source's thumbnail key."""
    if not thumb_key:
        return ""
    if thumb_key.startswith("http"):
        return thumb_key
    template = IMAGE_URL_TEMPLATES.get(source, SPOTIFY_IMAGE_URL)
    return template.format(thumb=thumb_key)


@dataclass(frozen=True)
class ArtistRef:
    """Artist node of the relation graph."""

    id: str
    name: str


@dataclass
class CreditGroup:
    """A label (instrument or credit type) and the distinct artists under it."""

    label: str
    artists: list[ArtistRef] = field(default_factory=list)

    def add(self, artist: ArtistRef) -> None:
        if all(a.id != artist.id for a in self.artists):
            self.artists.append(artist)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "artists": [{"id": a.id, "name": a.name} for a in self.artists],
        }


# Instrument groups have the same shape; the alias keeps call sites readable.
InstrumentGroup = CreditGroup


@dataclass(frozen=True)
class RecordingRef:
    """Recording node of the relation graph, as seen from an artist."""

    id: str
    title: str
    artist: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecordingRef:
        # Credited names carry their own join phrases ("A feat. B")
        credits = data.get("artist-credit") or []
        artist = "".join(f"{c.get('name', '')}{c.get('joinphrase', '')}" for c in credits)
        return cls(id=data["id"], title=data.get("title", ""), artist=artist)

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "artist": self.artist}


@dataclass
class RecordingCredit:
    """A credit type on an artist's profile and the distinct recordings under it."""

    label: str
    recordings: list[RecordingRef] = field(default_factory=list)

    def add(self, recording: RecordingRef) -> None:
        if all(r.id != recording.id for r in self.recordings):
            self.recordings.append(recording)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "recordings": [r.to_dict() for r in self.recordings],
        }


@dataclass(frozen=True)
class GenreCount:
    name: str
    count: int


class RelationTargetType(StrEnum):
    """Kinds of nodes a recording or artist relation can point at."""

    ARTIST = "artist"
    WORK = "work"
    URL = "url"
    RELEASE = "release"
    RECORDING = "recording"


@dataclass(frozen=True)
class RelationEdge:
    """A typed edge from a recording, work or artist to another graph node."""

    type: str
    target_type: RelationTargetType
    attributes: tuple[str, ...] = ()
    artist: ArtistRef | None = None
    work_id: str | None = None
    url: str | None = None
    recording: RecordingRef | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelationEdge | None:
        """
        Parse a raw relation dict from the metadata service.

        Returns None for target types this system does not consume.
        """
        try:
            target_type = RelationTargetType(data.get("target-type", ""))
        except ValueError:
            return None

        artist = None
        if target_type is RelationTargetType.ARTIST:
            raw_artist = data.get("artist") or {}
            if not raw_artist.get("id"):
                return None
            artist = ArtistRef(id=raw_artist["id"], name=raw_artist.get("name", ""))

        work_id = None
        if target_type is RelationTargetType.WORK:
            work_id = (data.get("work") or {}).get("id")

        url = None
        if target_type is RelationTargetType.URL:
            url = (data.get("url") or {}).get("resource")

        recording = None
        if target_type is RelationTargetType.RECORDING:
            raw_recording = data.get("recording") or {}
            if not raw_recording.get("id"):
                return None
            recording = RecordingRef.from_dict(raw_recording)

        return cls(
            type=data.get("type", ""),
            target_type=target_type,
            attributes=tuple(data.get("attributes") or ()),
            artist=artist,
            work_id=work_id,
            url=url,
            recording=recording,
        )


def parse_relations(raw: list[dict[str, Any]] | None) -> list[RelationEdge]:
    """Parse a raw relation list, treating a missing list as empty."""
    edges: list[RelationEdge] = []
    for item in raw or []:
        edge = RelationEdge.from_dict(item)
        if edge is not None:
            edges.append(edge)
    return edges


@dataclass(frozen=True)
class ExternalLink:
    type: str
    url: str

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "url": self.url}


@dataclass
class TrackMeta:
    """Musical metadata from the catalog's audio features."""

    duration_ms: int
    key: int  # pitch class, -1 when undetected
    mode: int  # 1 major, 0 minor
    tempo: float
    time_signature: int


@dataclass
class TrackFeatures:
    """Perceptual audio features, each in [0, 1] except loudness (dB)."""

    acousticness: float
    danceability: float
    energy: float
    happiness: float
    instrumentalness: float
    liveness: float
    loudness: float
    speechiness: float


@dataclass
class TrackAnalysisSegment:
    start: float
    duration: float
    confidence: float
    loudness_start: float
    loudness_max: float
    loudness_end: float


@dataclass
class TrackAnalysis:
    duration: float
    segments: list[TrackAnalysisSegment] = field(default_factory=list)


@dataclass
class Track:
    """
    Track record returned by both paths.

    The discovery path fills the identity fields only; the enrichment path
    adds credits, genres and audio data. Absent sub-structures are left out
    of the JSON form.
    """

    artist: str
    name: str
    source: str = ""
    source_id: str = ""
    image: str = ""
    id: str = ""
    isrc: str = ""
    rank: int = 0
    release_date: str = ""
    genres: list[str] = field(default_factory=list)
    instruments: list[CreditGroup] | None = None
    production_credits: list[CreditGroup] | None = None
    song_credits: list[CreditGroup] | None = None
    links: list[ExternalLink] | None = None
    meta: TrackMeta | None = None
    features: TrackFeatures | None = None
    analysis: TrackAnalysis | None = None

    @classmethod
    def from_chart_entry(cls, entry: ChartEntry) -> Track:
        return cls(
            artist=entry.artist,
            name=entry.title,
            source=entry.source,
            source_id=entry.external_id,
            image=image_url_for_thumb(entry.source, entry.thumb_key),
            id=entry.mbid,
            isrc=entry.isrc,
            rank=entry.rank,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "artist": self.artist,
            "name": self.name,
            "source": self.source,
            "source_id": self.source_id,
            "image": self.image,
            "id": self.id,
            "isrc": self.isrc,
            "rank": self.rank,
        }
        if self.release_date:
            data["release_date"] = self.release_date
        if self.genres:
            data["genres"] = list(self.genres)
        for name in ("instruments", "production_credits", "song_credits"):
            groups: list[CreditGroup] | None = getattr(self, name)
            if groups is not None:
                data[name] = [g.to_dict() for g in groups]
        if self.links is not None:
            data["links"] = [link.to_dict() for link in self.links]
        if self.meta is not None:
            data["meta"] = vars(self.meta).copy()
        if self.features is not None:
            data["features"] = vars(self.features).copy()
        if self.analysis is not None:
            data["analysis"] = {
                "duration": self.analysis.duration,
                "segments": [vars(s).copy() for s in self.analysis.segments],
            }
        return data


@dataclass
class ScoredTrack:
    """Per-key accumulator used while aggregating sources."""

    key: str
    track: Track
    source: str
    source_weight: float
    source_rank: int
    max_rank: float
    source_count: int = 0
    score: float = 0.0


@dataclass(frozen=True)
class ActiveYears:
    begin: str = ""
    end: str = ""
    ended: bool = False


@dataclass(frozen=True)
class Highlight:
    """One of an artist's most played catalog tracks."""

    id: str
    title: str
    artist: str
    image: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "artist": self.artist, "image": self.image}


@dataclass
class Creator:
    """
    Artist profile: identity, genres, links, credits and highlights.

    ``active_years`` is None when the service has no life span for the
    artist. Highlights are left empty when the catalog lookup is skipped
    or fails.
    """

    id: str
    name: str
    type: str = ""
    disambiguation: str = ""
    country: str = ""
    area: str = ""
    begin_area: str = ""
    active_years: ActiveYears | None = None
    genres: list[str] = field(default_factory=list)
    links: list[ExternalLink] = field(default_factory=list)
    credits: list[RecordingCredit] = field(default_factory=list)
    highlights: list[Highlight] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "disambiguation": self.disambiguation,
            "country": self.country,
            "area": self.area,
            "begin_area": self.begin_area,
            "genres": list(self.genres),
            "links": [link.to_dict() for link in self.links],
            "credits": [c.to_dict() for c in self.credits],
        }
        if self.active_years is not None:
            data["active_years"] = vars(self.active_years).copy()
        if self.highlights:
            data["highlights"] = [h.to_dict() for h in self.highlights]
        return data
