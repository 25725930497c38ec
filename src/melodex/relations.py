"""
Credit, instrument, genre and link extraction from the relation graph of a
recording or an artist.

Every function here is pure over its relation-list input and treats a
missing list as empty. The lookup tables they consult live in an immutable
``RelationTables`` built once and shared by reference.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from melodex.models import (
    CreditGroup,
    ExternalLink,
    GenreCount,
    InstrumentGroup,
    RecordingCredit,
    RelationEdge,
    RelationTargetType,
)

DEFAULT_MAX_GENRES = 10
DEFAULT_MAX_CREDIT_TYPES = 10
OTHER_CREDITS_LABEL = "other ({count} types)"
SPOTIFY_ARTIST_MARKER = "open.spotify.com/artist/"

INSTRUMENT_MAPPINGS: Mapping[str, str] = MappingProxyType(
    {
        "electric bass guitar": "bass",
        "bass guitar": "bass",
        "drums (drum set)": "drums",
        "percussion": "drums",
        "acoustic guitar": "guitar",
        "family guitar": "guitar",
        "electric guitar": "guitar",
        "foot stomps": "foot-stomps",
        "Wurlitzer electric piano": "wurlitzer",
        "Rhodes piano": "piano",
    }
)

INSTRUMENT_RANKINGS: Mapping[str, int] = MappingProxyType(
    {
        "piano": 1,
        "guitar": 2,
        "bass": 3,
        "keyboard": 4,
        "drums": 5,
    }
)

PRODUCTION_CREDIT_TYPES = frozenset({"producer", "mix", "recording", "vocal"})
SONG_CREDIT_TYPES = frozenset({"composer", "lyricist", "writer"})

# Checked in order; the first domain found in a URL wins.
LINK_DOMAINS: tuple[str, ...] = (
    "spotify",
    "wikipedia",
    "bandcamp",
    "soundcloud",
    "discogs",
    "allmusic",
    "youtube",
    "instagram",
    "twitter",
    "facebook",
    "wikidata",
    "genius",
)


def _lowercase_keys(mapping: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType({k.lower(): v for k, v in mapping.items()})


@dataclass(frozen=True)
class RelationTables:
    """Static lookup tables for relation extraction. Never mutated."""

    instrument_mappings: Mapping[str, str] = field(default_factory=lambda: INSTRUMENT_MAPPINGS)
    instrument_rankings: Mapping[str, int] = field(default_factory=lambda: INSTRUMENT_RANKINGS)
    production_credit_types: frozenset[str] = PRODUCTION_CREDIT_TYPES
    song_credit_types: frozenset[str] = SONG_CREDIT_TYPES
    link_domains: tuple[str, ...] = LINK_DOMAINS
    max_genres: int = DEFAULT_MAX_GENRES
    _folded_mappings: Mapping[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Callers may pass plain dicts; freeze private copies
        object.__setattr__(
            self, "instrument_mappings", MappingProxyType(dict(self.instrument_mappings))
        )
        object.__setattr__(
            self, "instrument_rankings", MappingProxyType(dict(self.instrument_rankings))
        )
        object.__setattr__(self, "_folded_mappings", _lowercase_keys(self.instrument_mappings))

    def canonical_instrument(self, raw_name: str) -> str:
        """Map a raw instrument attribute onto its canonical, lowercased name."""
        mapped = self.instrument_mappings.get(raw_name)
        if mapped is None:
            mapped = self._folded_mappings.get(raw_name.lower(), raw_name)
        return mapped.lower()

    def instrument_rank(self, name: str) -> tuple[bool, int]:
        # Unranked instruments sort after every ranked one, whatever the ranks
        rank = self.instrument_rankings.get(name)
        return (rank is None, rank or 0)


DEFAULT_TABLES = RelationTables()


def _group_by(
    edges: Iterable[tuple[str, RelationEdge]],
) -> list[CreditGroup]:
    groups: dict[str, CreditGroup] = {}
    for label, edge in edges:
        if edge.artist is None:
            continue
        group = groups.get(label)
        if group is None:
            group = groups[label] = CreditGroup(label=label)
        group.add(edge.artist)
    return list(groups.values())


def get_artist_instruments_for_recording(
    relations: Sequence[RelationEdge] | None,
    tables: RelationTables = DEFAULT_TABLES,
) -> list[InstrumentGroup]:
    """
    Group a recording's performers by canonical instrument.

    Only ``instrument`` edges carrying exactly one attribute (the instrument
    name) are considered. Artists are deduplicated by id, so the same person
    credited on "bass guitar" and "electric bass guitar" counts once under
    "bass".

    Ordering: instrument priority (piano, guitar, bass, keyboard, drums,
    then unranked), then descending artist count, then instrument name.
    """
    groups = _group_by(
        (tables.canonical_instrument(edge.attributes[0]), edge)
        for edge in relations or ()
        if edge.type == "instrument" and len(edge.attributes) == 1
    )
    return sorted(
        groups,
        key=lambda g: (tables.instrument_rank(g.label), -len(g.artists), g.label),
    )


def _credit_groups(
    relations: Sequence[RelationEdge] | None, credit_types: frozenset[str]
) -> list[CreditGroup]:
    groups = _group_by((edge.type, edge) for edge in relations or () if edge.type in credit_types)
    return sorted(groups, key=lambda g: (-len(g.artists), g.label))


def get_production_credits_for_recording(
    relations: Sequence[RelationEdge] | None,
    tables: RelationTables = DEFAULT_TABLES,
) -> list[CreditGroup]:
    """Producer/mix/recording/vocal credits, largest group first."""
    return _credit_groups(relations, tables.production_credit_types)


def get_song_credits_for_work(
    relations: Sequence[RelationEdge] | None,
    tables: RelationTables = DEFAULT_TABLES,
) -> list[CreditGroup]:
    """Composer/lyricist/writer credits from a work's relations."""
    return _credit_groups(relations, tables.song_credit_types)


def find_work_id(relations: Sequence[RelationEdge] | None) -> str | None:
    """Return the id of the first work the recording is linked to."""
    for edge in relations or ():
        if edge.target_type is RelationTargetType.WORK and edge.work_id:
            return edge.work_id
    return None


def _rank_genres(counts: Mapping[str, int], cap: int) -> list[GenreCount]:
    # Insertion order breaks ties, matching a stable descending sort
    ranked = sorted(counts.items(), key=lambda item: -item[1])
    return [GenreCount(name=name, count=count) for name, count in ranked[:cap]]


def _genre_entry(raw: Any) -> tuple[str, int] | None:
    if isinstance(raw, str):
        return (raw, 1) if raw else None
    if isinstance(raw, Mapping):
        name = raw.get("name")
        if not name:
            return None
        count = raw.get("count")
        return name, count if isinstance(count, int) else 1
    return None


def get_genres_for_recording(
    genres: Sequence[Any] | None,
    max_genres: int = DEFAULT_MAX_GENRES,
) -> list[GenreCount]:
    """Recording genre tags sorted by descending vote count, capped."""
    counts: dict[str, int] = {}
    for raw in genres or ():
        entry = _genre_entry(raw)
        if entry is None:
            continue
        name, count = entry
        counts[name] = counts.get(name, 0) + count
    return _rank_genres(counts, max_genres)


def get_genres_for_artists(
    artist_genres: Iterable[Sequence[Any] | None],
    max_genres: int = DEFAULT_MAX_GENRES,
) -> list[GenreCount]:
    """
    Aggregate genre counts across the genre lists of several artists.

    Each list entry is either a plain genre name (counts once) or a
    ``{"name", "count"}`` tag.
    """
    counts: dict[str, int] = {}
    for genres in artist_genres:
        for raw in genres or ():
            entry = _genre_entry(raw)
            if entry is None:
                continue
            name, count = entry
            counts[name] = counts.get(name, 0) + count
    return _rank_genres(counts, max_genres)


def rank_genres(
    recording_genres: Sequence[Any] | None,
    artist_genres: Iterable[Sequence[Any] | None] = (),
    max_genres: int = DEFAULT_MAX_GENRES,
) -> list[GenreCount]:
    """Prefer the recording's own tags; fall back to its artists' tags."""
    ranked = get_genres_for_recording(recording_genres, max_genres)
    if ranked:
        return ranked
    return get_genres_for_artists(artist_genres, max_genres)


def extract_links(
    relations: Sequence[RelationEdge] | None,
    tables: RelationTables = DEFAULT_TABLES,
) -> list[ExternalLink]:
    """One link per URL edge whose resource mentions a recognized domain."""
    links: list[ExternalLink] = []
    for edge in relations or ():
        if edge.target_type is not RelationTargetType.URL or not edge.url:
            continue
        for domain in tables.link_domains:
            if domain in edge.url:
                links.append(ExternalLink(type=domain, url=edge.url))
                break
    return links


def get_credits_for_artist(
    relations: Sequence[RelationEdge] | None,
    max_types: int = DEFAULT_MAX_CREDIT_TYPES,
) -> list[RecordingCredit]:
    """
    Group the recordings an artist is credited on by credit type.

    Instrument credits are labelled with the instrument itself ("guitar"),
    every other credit with its relation type ("producer"). Groups are
    ordered by descending recording count, then label. Past ``max_types``
    the remaining groups are merged into a single "other (N types)" group
    whose recordings are deduplicated by id.
    """
    groups: dict[str, RecordingCredit] = {}
    for edge in relations or ():
        if edge.target_type is not RelationTargetType.RECORDING or edge.recording is None:
            continue
        label = edge.type
        if edge.type == "instrument" and edge.attributes:
            label = edge.attributes[0]
        group = groups.get(label)
        if group is None:
            group = groups[label] = RecordingCredit(label=label)
        group.add(edge.recording)

    ranked = sorted(groups.values(), key=lambda g: (-len(g.recordings), g.label))
    if len(ranked) <= max_types:
        return ranked

    kept, merged = ranked[:max_types], ranked[max_types:]
    other = RecordingCredit(label=OTHER_CREDITS_LABEL.format(count=len(merged)))
    for group in merged:
        for recording in group.recordings:
            other.add(recording)
    return [*kept, other]


def spotify_artist_id(links: Iterable[ExternalLink]) -> str | None:
    """Catalog artist id from the first artist page link, query string stripped."""
    for link in links:
        _, marker, rest = link.url.partition(SPOTIFY_ARTIST_MARKER)
        if not marker:
            continue
        artist_id = rest.split("?", 1)[0].strip("/")
        if artist_id:
            return artist_id
    return None
