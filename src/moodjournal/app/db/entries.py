from __future__ import annotations

from typing import Any

import orjson

from moodjournal.util import now_ms
from .base import BaseRepository


class EntriesRepository(BaseRepository):
    """Journal entries cached locally, one row per calendar day."""

    async def put(self, date: str, entry: dict[str, Any]) -> int:
        """Upsert ``entry`` under ``date`` and return the stamp written."""

        updated_at = now_ms()
        record = {**entry, "date": date}
        record.pop("updated_at", None)
        async with self.pool.connection() as conn:
            await conn.execute(
                """
                INSERT INTO entries (date, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    payload    = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (date, orjson.dumps(record), updated_at),
            )
            await conn.commit()
        return updated_at

    async def get(self, date: str) -> dict[str, Any] | None:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                "SELECT payload, updated_at FROM entries WHERE date = ?",
                (date,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        entry = orjson.loads(row["payload"])
        entry["updated_at"] = int(row["updated_at"])
        return entry

    async def remove(self, date: str) -> None:
        async with self.pool.connection() as conn:
            await conn.execute("DELETE FROM entries WHERE date = ?", (date,))
            await conn.commit()

    async def clear(self) -> int:
        return await self._clear_table("entries")
