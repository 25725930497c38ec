"""Tests for relation graph extraction."""

from __future__ import annotations

import pytest
from conftest import artist_rel, instrument_rel, recording_rel, url_rel, work_rel

from melodex.models import ExternalLink, GenreCount, parse_relations
from melodex.relations import (
    DEFAULT_TABLES,
    RelationTables,
    extract_links,
    find_work_id,
    get_artist_instruments_for_recording,
    get_credits_for_artist,
    get_genres_for_artists,
    get_genres_for_recording,
    get_production_credits_for_recording,
    get_song_credits_for_work,
    rank_genres,
    spotify_artist_id,
)


def edges(*raw):
    return parse_relations(list(raw))


@pytest.mark.parametrize(
    "extract",
    [
        get_artist_instruments_for_recording,
        get_production_credits_for_recording,
        get_song_credits_for_work,
        get_credits_for_artist,
        extract_links,
    ],
)
@pytest.mark.parametrize("relations", [None, []])
def test_missing_relations_yield_empty(extract, relations):
    assert extract(relations) == []


def test_bass_variants_collapse_per_artist_id():
    groups = get_artist_instruments_for_recording(
        edges(
            instrument_rel("electric bass guitar", "a1", "Pino"),
            instrument_rel("bass guitar", "a1", "Pino"),
        )
    )

    assert len(groups) == 1
    assert groups[0].label == "bass"
    assert [a.id for a in groups[0].artists] == ["a1"]


def test_dedup_is_by_id_not_name():
    groups = get_artist_instruments_for_recording(
        edges(
            instrument_rel("guitar", "a1", "John Smith"),
            instrument_rel("guitar", "a2", "John Smith"),
        )
    )
    assert [a.id for a in groups[0].artists] == ["a1", "a2"]


def test_instrument_priority_order():
    groups = get_artist_instruments_for_recording(
        edges(
            instrument_rel("tambourine", "a6"),
            instrument_rel("drums (drum set)", "a5"),
            instrument_rel("keyboard", "a4"),
            instrument_rel("bass guitar", "a3"),
            instrument_rel("acoustic guitar", "a2"),
            instrument_rel("Rhodes piano", "a1"),
        )
    )
    labels = [g.label for g in groups]
    assert labels == ["piano", "guitar", "bass", "keyboard", "drums", "tambourine"]


def test_unranked_instruments_by_count_then_name():
    groups = get_artist_instruments_for_recording(
        edges(
            instrument_rel("violin", "a1"),
            instrument_rel("cello", "a2"),
            instrument_rel("viola", "a3"),
            instrument_rel("viola", "a4"),
        )
    )
    assert [g.label for g in groups] == ["viola", "cello", "violin"]


def test_instrument_canonicalization():
    assert DEFAULT_TABLES.canonical_instrument("Wurlitzer electric piano") == "wurlitzer"
    assert DEFAULT_TABLES.canonical_instrument("ELECTRIC GUITAR") == "guitar"
    assert DEFAULT_TABLES.canonical_instrument("Theremin") == "theremin"


def test_instrument_edges_need_exactly_one_attribute():
    groups = get_artist_instruments_for_recording(
        edges(
            artist_rel("instrument", "a1", attributes=[]),
            artist_rel("instrument", "a2", attributes=["guitar", "lead"]),
            instrument_rel("guitar", "a3"),
        )
    )
    assert [[a.id for a in g.artists] for g in groups] == [["a3"]]


def test_production_credits():
    groups = get_production_credits_for_recording(
        edges(
            artist_rel("producer", "p1"),
            artist_rel("mix", "m1"),
            artist_rel("producer", "p2"),
            artist_rel("producer", "p1"),
            artist_rel("vocal", "v1"),
            artist_rel("instrument", "i1", attributes=["guitar"]),
            artist_rel("recording", "r1"),
        )
    )

    assert [g.label for g in groups] == ["producer", "mix", "recording", "vocal"]
    assert [a.id for a in groups[0].artists] == ["p1", "p2"]


def test_song_credits():
    groups = get_song_credits_for_work(
        edges(
            artist_rel("composer", "c1"),
            artist_rel("lyricist", "l1"),
            artist_rel("lyricist", "l2"),
            artist_rel("arranger", "x1"),
            artist_rel("writer", "w1"),
        )
    )
    assert [g.label for g in groups] == ["lyricist", "composer", "writer"]


def test_find_work_id():
    assert find_work_id(edges(artist_rel("producer", "p1"), work_rel("w-123"))) == "w-123"
    assert find_work_id(edges(artist_rel("producer", "p1"))) is None
    assert find_work_id(None) is None


def test_recording_genres_sorted_and_capped():
    genres = [{"name": f"g{i}", "count": i} for i in range(15)]
    ranked = get_genres_for_recording(genres)

    assert len(ranked) == 10
    assert ranked[0] == GenreCount("g14", 14)
    assert [g.count for g in ranked] == sorted((g.count for g in ranked), reverse=True)


def test_artist_genres_aggregate_counts():
    ranked = get_genres_for_artists(
        [
            ["pop", "r&b"],
            ["r&b", "hip hop"],
            None,
            [{"name": "r&b", "count": 2}, ""],
        ]
    )
    assert ranked[0] == GenreCount("r&b", 4)
    assert {g.name for g in ranked} == {"r&b", "pop", "hip hop"}


def test_rank_genres_prefers_recording_tags():
    assert [g.name for g in rank_genres([{"name": "house", "count": 3}], [["pop"]])] == ["house"]
    assert [g.name for g in rank_genres([], [["pop"], ["pop", "rock"]])] == ["pop", "rock"]
    assert rank_genres(None, []) == []


def test_genre_cap_is_configurable():
    assert len(get_genres_for_recording(["a", "b", "c"], max_genres=2)) == 2


def test_extract_links_first_domain_wins():
    links = extract_links(
        edges(
            url_rel("https://open.spotify.com/track/1"),
            url_rel("https://en.wikipedia.org/wiki/Song"),
            url_rel("https://www.youtube.com/watch?v=spotify"),
            url_rel("https://example.com/nothing"),
            artist_rel("producer", "p1"),
        )
    )

    assert [(link.type, link.url) for link in links] == [
        ("spotify", "https://open.spotify.com/track/1"),
        ("wikipedia", "https://en.wikipedia.org/wiki/Song"),
        # "spotify" is checked before "youtube"
        ("spotify", "https://www.youtube.com/watch?v=spotify"),
    ]


def test_custom_tables():
    tables = RelationTables(
        instrument_mappings={"synthesizer": "keys"},
        instrument_rankings={"keys": 1},
        link_domains=("example",),
    )
    groups = get_artist_instruments_for_recording(
        edges(instrument_rel("guitar", "a1"), instrument_rel("synthesizer", "a2")), tables
    )
    assert [g.label for g in groups] == ["keys", "guitar"]
    assert [link.type for link in extract_links(edges(url_rel("https://example.com")), tables)] == [
        "example"
    ]


def test_unranked_instruments_sort_after_sparse_ranks():
    tables = RelationTables(instrument_rankings={"piano": 10, "guitar": 20})
    groups = get_artist_instruments_for_recording(
        edges(
            instrument_rel("tuba", "a1"),
            instrument_rel("guitar", "a2"),
            instrument_rel("piano", "a3"),
        ),
        tables,
    )
    assert [g.label for g in groups] == ["piano", "guitar", "tuba"]


def test_default_tables_are_shared_read_only_mappings():
    assert RelationTables().instrument_mappings == DEFAULT_TABLES.instrument_mappings
    with pytest.raises(TypeError):
        DEFAULT_TABLES.instrument_rankings["tuba"] = 0  # type: ignore[index]


def test_caller_tables_are_frozen_copies():
    rankings = {"keys": 1}
    tables = RelationTables(instrument_rankings=rankings)
    rankings["keys"] = 99

    assert tables.instrument_rankings["keys"] == 1
    with pytest.raises(TypeError):
        tables.instrument_rankings["keys"] = 2  # type: ignore[index]


# =============================================================================
# Artist profile credits
# =============================================================================


def test_artist_credits_group_recordings_by_type():
    credits = get_credits_for_artist(
        edges(
            recording_rel("instrument", "r1", attributes=["guitar"]),
            recording_rel("instrument", "r2", attributes=["guitar"]),
            recording_rel("producer", "r1"),
            recording_rel("instrument", "r3"),
            artist_rel("member of band", "b1"),
            url_rel("https://open.spotify.com/artist/abc"),
        )
    )

    assert [(c.label, [r.id for r in c.recordings]) for c in credits] == [
        ("guitar", ["r1", "r2"]),
        ("instrument", ["r3"]),
        ("producer", ["r1"]),
    ]


def test_artist_credit_recordings_carry_joined_credit_names():
    credits = get_credits_for_artist(
        edges(recording_rel("vocal", "r1", "Water", [("Tyla", " feat. "), ("Travis Scott", "")]))
    )

    assert credits[0].recordings[0].artist == "Tyla feat. Travis Scott"


def test_artist_credits_past_the_cap_merge_into_other():
    raw = []
    # Type t00 has 13 recordings, t01 has 12, and so on down to t12
    for i in range(13):
        raw.extend(recording_rel(f"t{i:02d}", f"r{j}") for j in range(13 - i))
    raw.append(recording_rel("t12", "r99"))

    credits = get_credits_for_artist(edges(*raw))

    assert len(credits) == 11
    assert [c.label for c in credits[:10]] == [f"t{i:02d}" for i in range(10)]
    other = credits[-1]
    assert other.label == "other (3 types)"
    # t10 has r0..r2, t11 has r0..r1, t12 has r0 and r99
    assert [r.id for r in other.recordings] == ["r0", "r1", "r2", "r99"]


def test_artist_credits_at_the_cap_are_not_merged():
    credits = get_credits_for_artist(
        edges(*(recording_rel(f"t{i}", "r1") for i in range(3))), max_types=3
    )

    assert [c.label for c in credits] == ["t0", "t1", "t2"]


@pytest.mark.parametrize(
    ("urls", "expected"),
    [
        (["https://open.spotify.com/artist/3SozjO3Lat463tQICI9LcE?si=x"], "3SozjO3Lat463tQICI9LcE"),
        (["https://www.discogs.com/artist/1", "https://open.spotify.com/artist/abc"], "abc"),
        (["https://open.spotify.com/album/abc"], None),
        (["https://open.spotify.com/artist/"], None),
        ([], None),
    ],
)
def test_spotify_artist_id(urls, expected):
    assert spotify_artist_id(ExternalLink("spotify", url) for url in urls) == expected
