"""Tests for shared records and raw relation parsing."""

from __future__ import annotations

import pytest
from conftest import artist_rel, recording_rel, url_rel, work_rel

from melodex.models import (
    ArtistRef,
    ChartEntry,
    CreditGroup,
    ExternalLink,
    RecordingCredit,
    RecordingRef,
    RelationEdge,
    RelationTargetType,
    SourceConfig,
    Track,
    image_url_for_thumb,
    parse_relations,
)


def test_relation_edge_from_artist_dict():
    edge = RelationEdge.from_dict(artist_rel("instrument", "a1", "Pino", ["bass guitar"]))

    assert edge is not None
    assert edge.target_type is RelationTargetType.ARTIST
    assert edge.type == "instrument"
    assert edge.attributes == ("bass guitar",)
    assert edge.artist == ArtistRef(id="a1", name="Pino")


def test_relation_edge_from_work_and_url_dicts():
    work = RelationEdge.from_dict(work_rel("w1"))
    url = RelationEdge.from_dict(url_rel("https://bandcamp.com/x"))

    assert work is not None and work.work_id == "w1"
    assert url is not None and url.url == "https://bandcamp.com/x"


def test_relation_edge_from_recording_dict():
    edge = RelationEdge.from_dict(
        recording_rel(
            "instrument", "r1", "Water", [("Tyla", " & "), ("Travis Scott", "")], ["bass"]
        )
    )

    assert edge is not None
    assert edge.target_type is RelationTargetType.RECORDING
    assert edge.artist is None
    assert edge.recording == RecordingRef(id="r1", title="Water", artist="Tyla & Travis Scott")


def test_recording_credit_dedups_by_id():
    credit = RecordingCredit(label="guitar")
    credit.add(RecordingRef("r1", "One"))
    credit.add(RecordingRef("r1", "One (live)"))
    credit.add(RecordingRef("r2", "Two"))

    assert [r.id for r in credit.recordings] == ["r1", "r2"]
    assert credit.to_dict()["recordings"][0] == {"id": "r1", "title": "One", "artist": ""}


def test_unknown_target_types_are_dropped():
    raw = [
        {"type": "publishing", "target-type": "label", "label": {"id": "l1"}},
        {"type": "samples", "target-type": "recording", "recording": {}},
        {"type": "producer", "target-type": "artist", "artist": None},
        {"type": "producer"},
        artist_rel("producer", "p1"),
    ]
    edges = parse_relations(raw)

    assert [e.artist.id for e in edges if e.artist] == ["p1"]
    assert len(edges) == 1


def test_parse_relations_none():
    assert parse_relations(None) == []


def test_credit_group_dedups_by_id():
    group = CreditGroup(label="producer")
    group.add(ArtistRef("p1", "One"))
    group.add(ArtistRef("p1", "One (alias)"))
    group.add(ArtistRef("p2", "Two"))

    assert group.to_dict() == {
        "label": "producer",
        "artists": [{"id": "p1", "name": "One"}, {"id": "p2", "name": "Two"}],
    }


@pytest.mark.parametrize(
    "source,thumb,expected",
    [
        ("spotify_new_releases", "ab67", "https://i.scdn.co/image/ab67"),
        ("hypem", "x.jpg", "https://static.hypem.com/items_images/x.jpg"),
        ("hnhh", "https://cdn.example/img.png", "https://cdn.example/img.png"),
        ("billboard", "", ""),
    ],
)
def test_image_url_for_thumb(source, thumb, expected):
    assert image_url_for_thumb(source, thumb) == expected


@pytest.mark.parametrize("weight", [0.0, -0.1, 1.5])
def test_source_config_weight_range(weight):
    with pytest.raises(ValueError, match="weight"):
        SourceConfig("x", weight, 100)


def test_source_config_max_rank_positive():
    with pytest.raises(ValueError, match="max_rank"):
        SourceConfig("x", 1.0, 0)


def test_track_from_chart_entry():
    entry = ChartEntry(
        source="reddit_fresh",
        rank=4,
        artist="Tyla",
        title="Water",
        external_id="sp1",
        thumb_key="ab67",
        isrc="ZA1",
    )
    track = Track.from_chart_entry(entry)

    assert track.source_id == "sp1"
    assert track.rank == 4
    assert track.image == "https://i.scdn.co/image/ab67"


def test_track_to_dict_omits_absent_structures():
    track = Track(artist="A", name="S")
    data = track.to_dict()

    for key in ("instruments", "production_credits", "song_credits", "links", "meta", "features"):
        assert key not in data

    track.links = [ExternalLink("genius", "https://genius.com/x")]
    track.instruments = []
    data = track.to_dict()
    assert data["links"] == [{"type": "genius", "url": "https://genius.com/x"}]
    assert data["instruments"] == []
