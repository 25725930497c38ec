"""Pytest configuration and shared fixtures for melodex tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

# =============================================================================
# Snapshot Helpers
# =============================================================================


def track_row(
    artist: str,
    title: str,
    rank: int = 0,
    thumb: str = "thumb",
    spotify_id: str = "",
    isrc: str = "",
) -> dict[str, Any]:
    """One raw track row as stored in a snapshot document."""
    return {
        "rank": rank,
        "artist": artist,
        "title": title,
        "spotifyID": spotify_id or f"{artist}:{title}",
        "thumb": thumb,
        "isrc": isrc,
    }


def snapshot_doc(*rows: dict[str, Any]) -> dict[str, Any]:
    return {"tracks": list(rows)}


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def tmp_cache(tmp_path):
    """Provide a temporary JsonCache for tests."""
    from melodex.json_cache import JsonCache

    return JsonCache(tmp_path / "cache")


@pytest.fixture
def snapshot_store(tmp_path):
    """Provide an empty SQLite snapshot store."""
    from melodex.snapshots import SnapshotStore

    return SnapshotStore(tmp_path / "snapshots.sqlite")


# =============================================================================
# HTTP Fixtures
# =============================================================================


Handler = Callable[[httpx.Request], httpx.Response]


@pytest.fixture
def mock_http() -> Callable[[Handler], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by a handler function."""

    def factory(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


# =============================================================================
# Relation Graph Fixtures
# =============================================================================


def artist_rel(rel_type: str, artist_id: str, name: str = "", attributes=None) -> dict[str, Any]:
    """Raw artist relation as returned by the metadata service."""
    return {
        "type": rel_type,
        "target-type": "artist",
        "attributes": list(attributes or []),
        "artist": {"id": artist_id, "name": name or artist_id},
    }


def instrument_rel(instrument: str, artist_id: str, name: str = "") -> dict[str, Any]:
    return artist_rel("instrument", artist_id, name, [instrument])


def work_rel(work_id: str) -> dict[str, Any]:
    return {"type": "performance", "target-type": "work", "work": {"id": work_id}}


def url_rel(resource: str, rel_type: str = "streaming") -> dict[str, Any]:
    return {"type": rel_type, "target-type": "url", "url": {"resource": resource}}


def recording_rel(
    rel_type: str, recording_id: str, title: str = "", credits=(), attributes=None
) -> dict[str, Any]:
    """Raw recording relation as seen on an artist's profile."""
    return {
        "type": rel_type,
        "target-type": "recording",
        "attributes": list(attributes or []),
        "recording": {
            "id": recording_id,
            "title": title or recording_id,
            "artist-credit": [{"name": name, "joinphrase": join} for name, join in credits],
        },
    }
