"""SQLite-backed repository for the spoken segment queue."""

from __future__ import annotations

import asyncio
import sqlite3
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Callable

import aiosqlite

from .errors import DuplicateSegment, SegmentNotFound, StorageError

_CURSOR_KEY = "cursor"


class SegmentStatus(str, Enum):
    """Possible states for a segment."""

    PENDING = "pending"
    READY = "ready"
    SPOKEN = "spoken"


@dataclass
class Segment:
    """Represents one unit of script text and its generated audio."""

    segment_id: int
    text: str
    created_at: datetime
    status: SegmentStatus = SegmentStatus.PENDING
    audio_location: str | None = None
    spoken_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "segment_id": self.segment_id,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
            "audio_location": self.audio_location,
            "spoken_at": self.spoken_at.isoformat() if self.spoken_at else None,
        }


SegmentMutator = Callable[[Segment], "Segment | None"]


def _parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class SegmentRepository:
    """Persist the segment queue and transcript cursor.

    Every operation runs under one in-process lock and every mutation commits
    as a single SQLite transaction, so readers never see a half-applied
    change and a segment record is never partially written.
    """

    def __init__(self, database_path: Path):
        self._path = database_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the SQLite connection and ensure tables exist."""
        if self._connection is not None:
            return

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._path)
            self._connection.row_factory = aiosqlite.Row
            await self._connection.execute("PRAGMA journal_mode=WAL;")
            await self._create_schema()
        except (sqlite3.Error, OSError) as exc:
            raise StorageError(f"Could not open queue database {self._path}: {exc}") from exc

    async def _create_schema(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(
            """
            CREATE TABLE IF NOT EXISTS segments (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                segment_id INTEGER NOT NULL UNIQUE,
                text TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'ready', 'spoken')),
                audio_location TEXT,
                created_at TEXT NOT NULL,
                spoken_at TEXT,
                CHECK ((status = 'pending') = (audio_location IS NULL))
            );

            CREATE TABLE IF NOT EXISTS queue_state (
                key TEXT PRIMARY KEY,
                value INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_segments_status ON segments(status);
            """
        )
        await self._connection.execute(
            "INSERT OR IGNORE INTO queue_state (key, value) VALUES (?, 0)",
            (_CURSOR_KEY,),
        )
        await self._connection.commit()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[aiosqlite.Connection]:
        assert self._connection is not None
        async with self._lock:
            try:
                yield self._connection
            except sqlite3.Error as exc:
                raise StorageError(str(exc)) from exc

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        assert self._connection is not None
        async with self._lock:
            try:
                yield self._connection
                await self._connection.commit()
            except (sqlite3.Error, OSError) as exc:
                await self._connection.rollback()
                raise StorageError(str(exc)) from exc
            except BaseException:
                await self._connection.rollback()
                raise

    def _row_to_segment(self, row: aiosqlite.Row) -> Segment:
        """Convert a database row to a Segment object."""
        created_at = _parse_timestamp(row["created_at"])
        assert created_at is not None
        return Segment(
            segment_id=int(row["segment_id"]),
            text=row["text"],
            created_at=created_at,
            status=SegmentStatus(row["status"]),
            audio_location=row["audio_location"],
            spoken_at=_parse_timestamp(row["spoken_at"]),
        )

    async def _fetch_one(
        self, connection: aiosqlite.Connection, segment_id: int
    ) -> Segment | None:
        cursor = await connection.execute(
            "SELECT * FROM segments WHERE segment_id = ?", (segment_id,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return self._row_to_segment(row) if row else None

    async def _read_cursor(self, connection: aiosqlite.Connection) -> int:
        cursor = await connection.execute(
            "SELECT value FROM queue_state WHERE key = ?", (_CURSOR_KEY,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        return int(row["value"]) if row else 0

    async def _write_cursor(
        self, connection: aiosqlite.Connection, position: int
    ) -> int:
        current = await self._read_cursor(connection)
        advanced = max(current, position)
        await connection.execute(
            "UPDATE queue_state SET value = ? WHERE key = ?",
            (advanced, _CURSOR_KEY),
        )
        return advanced

    async def _insert(
        self, connection: aiosqlite.Connection, segment: Segment
    ) -> None:
        if await self._fetch_one(connection, segment.segment_id) is not None:
            raise DuplicateSegment(segment.segment_id)
        await connection.execute(
            """
            INSERT INTO segments (
                segment_id, text, status, audio_location, created_at, spoken_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                segment.segment_id,
                segment.text,
                segment.status.value,
                segment.audio_location,
                _format_timestamp(segment.created_at),
                _format_timestamp(segment.spoken_at),
            ),
        )

    async def _write_segment(
        self, connection: aiosqlite.Connection, segment: Segment
    ) -> None:
        cursor = await connection.execute(
            """
            UPDATE segments
            SET text = ?, status = ?, audio_location = ?, created_at = ?, spoken_at = ?
            WHERE segment_id = ?
            """,
            (
                segment.text,
                segment.status.value,
                segment.audio_location,
                _format_timestamp(segment.created_at),
                _format_timestamp(segment.spoken_at),
                segment.segment_id,
            ),
        )
        updated = cursor.rowcount
        await cursor.close()
        if updated == 0:
            raise SegmentNotFound(segment.segment_id)

    async def append(self, segment: Segment) -> Segment:
        """Add a segment to the end of the queue."""
        async with self._transaction() as connection:
            await self._insert(connection, segment)
        return segment

    async def create_segment(
        self,
        text: str,
        *,
        cursor: int | None = None,
        now: datetime | None = None,
    ) -> Segment:
        """Allocate the next id and enqueue a pending segment.

        When ``cursor`` is given the transcript cursor is advanced in the same
        transaction as the insert.
        """
        created_at = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        async with self._transaction() as connection:
            result = await connection.execute(
                "SELECT MAX(segment_id) AS last_id FROM segments"
            )
            row = await result.fetchone()
            await result.close()
            last_id = row["last_id"] if row and row["last_id"] is not None else 0
            segment = Segment(
                segment_id=max(int(time.time() * 1000), int(last_id) + 1),
                text=text,
                created_at=created_at,
            )
            await self._insert(connection, segment)
            if cursor is not None:
                await self._write_cursor(connection, cursor)
        return segment

    async def find(self, segment_id: int) -> Segment | None:
        """Return the segment with ``segment_id`` if it exists."""
        async with self._read() as connection:
            return await self._fetch_one(connection, segment_id)

    async def next_to_speak(self) -> Segment | None:
        """Return the oldest segment that has not been spoken yet."""
        async with self._read() as connection:
            cursor = await connection.execute(
                """
                SELECT * FROM segments
                WHERE status IN (?, ?)
                ORDER BY seq ASC
                LIMIT 1
                """,
                (SegmentStatus.PENDING.value, SegmentStatus.READY.value),
            )
            row = await cursor.fetchone()
            await cursor.close()
        return self._row_to_segment(row) if row else None

    async def list_segments(self) -> list[Segment]:
        """Return every stored segment in insertion order."""
        async with self._read() as connection:
            cursor = await connection.execute("SELECT * FROM segments ORDER BY seq ASC")
            rows = await cursor.fetchall()
            await cursor.close()
        return [self._row_to_segment(row) for row in rows]

    async def update(self, segment: Segment) -> Segment:
        """Replace the stored record with the same id."""
        async with self._transaction() as connection:
            await self._write_segment(connection, segment)
        return segment

    async def update_with(self, segment_id: int, mutator: SegmentMutator) -> Segment:
        """Apply ``mutator`` to the stored segment under the store lock.

        The mutator receives a copy of the current record and returns the
        replacement, or ``None`` to leave the record unchanged. The stored
        result is returned.
        """
        async with self._transaction() as connection:
            current = await self._fetch_one(connection, segment_id)
            if current is None:
                raise SegmentNotFound(segment_id)
            updated = mutator(replace(current))
            if updated is None:
                return current
            if updated.segment_id != segment_id:
                raise ValueError("Mutator may not change the segment id")
            await self._write_segment(connection, updated)
            return updated

    async def purge(self, predicate: Callable[[Segment], bool]) -> list[Segment]:
        """Remove every segment matching ``predicate`` and return them."""
        async with self._transaction() as connection:
            cursor = await connection.execute("SELECT * FROM segments ORDER BY seq ASC")
            rows = await cursor.fetchall()
            await cursor.close()
            removed = [
                segment
                for segment in (self._row_to_segment(row) for row in rows)
                if predicate(segment)
            ]
            if removed:
                await connection.executemany(
                    "DELETE FROM segments WHERE segment_id = ?",
                    [(segment.segment_id,) for segment in removed],
                )
        return removed

    async def get_cursor(self) -> int:
        """Return the transcript offset already consumed."""
        async with self._read() as connection:
            return await self._read_cursor(connection)

    async def advance_cursor(self, position: int) -> int:
        """Move the cursor forward to ``position``; it never moves back."""
        async with self._transaction() as connection:
            return await self._write_cursor(connection, position)

    async def count_by_status(self) -> dict[str, int]:
        """Return segment counts keyed by status plus a ``total`` entry."""
        counts = {status.value: 0 for status in SegmentStatus}
        async with self._read() as connection:
            cursor = await connection.execute(
                "SELECT status, COUNT(*) AS total FROM segments GROUP BY status"
            )
            rows = await cursor.fetchall()
            await cursor.close()
        for row in rows:
            counts[row["status"]] = int(row["total"])
        counts["total"] = sum(counts.values())
        return counts


__all__ = ["Segment", "SegmentMutator", "SegmentRepository", "SegmentStatus"]
