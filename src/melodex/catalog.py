"""
Catalog service client (Spotify Web API) for track enrichment, artist
highlights and genre search.

Uses the client credentials flow. Responses are returned as raw JSON dicts;
projection into melodex records happens in ``melodex.enrichment``.
"""

from __future__ import annotations

import asyncio
import base64
import os
import time
from typing import Any

import httpx

from melodex.json_cache import JsonCache, make_cache_key

# The several-artists endpoint accepts at most 50 ids per call
MAX_ARTIST_IDS = 50
DEFAULT_MARKET = "US"


class CatalogClient:
    """
    Async catalog client.

    The access token is cached until shortly before it expires and is
    shared by concurrent requests.
    """

    BASE_URL = "https://api.spotify.com/v1"
    AUTH_URL = "https://accounts.spotify.com/api/token"

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        cache: JsonCache | None = None,
        cache_ttl_seconds: int | None = None,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize catalog client with client credentials flow.

        Args:
            client_id: Client ID (env: SPOTIFY_CLIENT_ID)
            client_secret: Client secret (env: SPOTIFY_CLIENT_SECRET)
            cache: Optional JSON response cache
            cache_ttl_seconds: TTL for cached responses (cache default if None)
            timeout_s: Per-request timeout
            client: Preconfigured HTTP client (tests inject a mock transport)
        """
        self.client_id = client_id or os.getenv("SPOTIFY_CLIENT_ID")
        self.client_secret = client_secret or os.getenv("SPOTIFY_CLIENT_SECRET")
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds

        if bool(self.client_id) != bool(self.client_secret):
            raise ValueError(
                "Both SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET must be provided together. "
                f"Got: client_id={'set' if self.client_id else 'missing'}, "
                f"client_secret={'set' if self.client_secret else 'missing'}"
            )

        self._access_token: str | None = None
        self._token_expires_at: float = 0.0
        self._token_lock = asyncio.Lock()
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def _get_access_token(self) -> str:
        """Get access token using client credentials flow, cached until expiry."""
        async with self._token_lock:
            if self._access_token and time.time() < self._token_expires_at:
                return self._access_token

            if not self.client_id or not self.client_secret:
                raise ValueError(
                    "Catalog client_id and client_secret required "
                    "(set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET env vars)"
                )

            credentials = f"{self.client_id}:{self.client_secret}"
            b64_credentials = base64.b64encode(credentials.encode()).decode()

            response = await self._client.post(
                self.AUTH_URL,
                headers={
                    "Authorization": f"Basic {b64_credentials}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                data={"grant_type": "client_credentials"},
            )
            response.raise_for_status()

            data = response.json()
            token = data["access_token"]
            self._access_token = token
            expires_in = data.get("expires_in", 3600)
            self._token_expires_at = time.time() + expires_in - 60  # 60s buffer

            return token

    async def _request(
        self, endpoint: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        """Make authenticated request to the catalog API."""
        url = f"{self.BASE_URL}/{endpoint}"
        cache_key = make_cache_key(url, params)

        if self.cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        token = await self._get_access_token()
        response = await self._client.get(
            url,
            params=params,
            headers={"Authorization": f"Bearer {token}"},
        )
        response.raise_for_status()
        data = response.json()

        if self.cache:
            self.cache.put(cache_key, data, self.cache_ttl_seconds)

        return data

    async def get_track(self, track_id: str) -> dict[str, Any]:
        """Track record: name, artists, album (images, release_date), external_ids."""
        return await self._request(f"tracks/{track_id}")

    async def get_audio_features(self, track_id: str) -> dict[str, Any]:
        return await self._request(f"audio-features/{track_id}")

    async def get_audio_analysis(self, track_id: str) -> dict[str, Any]:
        return await self._request(f"audio-analysis/{track_id}")

    async def get_artists(self, artist_ids: list[str]) -> list[dict[str, Any]]:
        """
        Fetch artist records (with their genre lists) for several ids.

        Unknown ids come back as null from the service and are dropped.
        """
        artists: list[dict[str, Any]] = []
        for start in range(0, len(artist_ids), MAX_ARTIST_IDS):
            chunk = artist_ids[start : start + MAX_ARTIST_IDS]
            data = await self._request("artists", {"ids": ",".join(chunk)})
            artists.extend(a for a in data.get("artists") or [] if a)
        return artists

    async def get_artist_top_tracks(
        self, artist_id: str, market: str = DEFAULT_MARKET
    ) -> list[dict[str, Any]]:
        """An artist's most played tracks in a market, most played first."""
        data = await self._request(f"artists/{artist_id}/top-tracks", {"market": market})
        return list(data.get("tracks") or [])

    async def search_tracks(
        self, query: str, limit: int, market: str = DEFAULT_MARKET
    ) -> list[dict[str, Any]]:
        """Track search using the service's field filters (``genre:``, ``year:``)."""
        data = await self._request(
            "search",
            {"q": query, "type": "track", "limit": str(limit), "market": market},
        )
        return list((data.get("tracks") or {}).get("items") or [])

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> CatalogClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


## Tests


def test_catalog_client_requires_both_credentials(monkeypatch):
    import pytest

    monkeypatch.delenv("SPOTIFY_CLIENT_SECRET", raising=False)
    with pytest.raises(ValueError, match="provided together"):
        CatalogClient(client_id="abc")
