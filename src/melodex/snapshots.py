"""
Chart snapshot store.

A snapshot is one source's ranked track list for one day, keyed by
(collection, "YYYY-MM-DD"). Documents have the shape
``{"tracks": [{"rank", "artist", "title", "spotifyID", "thumb", "isrc"}]}``.
The aggregation core only issues point reads.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Protocol


class SnapshotDecodeError(ValueError):
    """A snapshot document exists but cannot be parsed."""

    def __init__(self, collection: str, date: str, reason: str):
        super().__init__(f"Cannot decode snapshot {collection}/{date}: {reason}")
        self.collection = collection
        self.date = date
        self.reason = reason


class SnapshotReader(Protocol):
    """Point-read contract consumed by the chart source fetcher."""

    async def get_document(self, collection: str, date: str) -> dict[str, Any] | None: ...


class SnapshotStore:
    """
    SQLite-backed snapshot store.

    Reads run in a worker thread so they can be awaited alongside network
    calls without blocking the event loop.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self) -> None:
        """Initialize database schema."""
        conn = self._get_connection()
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS snapshot (
                collection TEXT NOT NULL,
                date TEXT NOT NULL,
                document TEXT NOT NULL,
                stored_at REAL NOT NULL,
                PRIMARY KEY (collection, date)
            )
            """
        )
        conn.commit()
        conn.close()

    def read_document(self, collection: str, date: str) -> dict[str, Any] | None:
        """
        Read one snapshot document.

        Returns:
            The parsed document, or None when no snapshot exists for that day

        Raises:
            SnapshotDecodeError: If the stored document is not a JSON object
        """
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT document FROM snapshot WHERE collection = ? AND date = ?",
                (collection, date),
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None

        try:
            document = json.loads(row[0])
        except json.JSONDecodeError as e:
            raise SnapshotDecodeError(collection, date, str(e)) from e
        if not isinstance(document, dict):
            raise SnapshotDecodeError(collection, date, "document is not an object")
        return document

    async def get_document(self, collection: str, date: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self.read_document, collection, date)

    def put_document(self, collection: str, date: str, document: dict[str, Any]) -> None:
        """Store (or replace) the snapshot for a collection and day."""
        self.put_raw(collection, date, json.dumps(document))

    def put_raw(self, collection: str, date: str, raw: str) -> None:
        """Store an undecoded document body as-is."""
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT OR REPLACE INTO snapshot (collection, date, document, stored_at)
                VALUES (?, ?, ?, ?)
                """,
                (collection, date, raw, time.time()),
            )
            conn.commit()
        finally:
            conn.close()

    def list_dates(self, collection: str) -> list[str]:
        """List stored snapshot dates for a collection, newest first."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                "SELECT date FROM snapshot WHERE collection = ? ORDER BY date DESC",
                (collection,),
            ).fetchall()
        finally:
            conn.close()
        return [row[0] for row in rows]


class MemorySnapshotStore:
    """In-process snapshot store keyed by (collection, date)."""

    def __init__(self, documents: dict[tuple[str, str], dict[str, Any]] | None = None):
        self.documents = dict(documents or {})

    async def get_document(self, collection: str, date: str) -> dict[str, Any] | None:
        return self.documents.get((collection, date))
