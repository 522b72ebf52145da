from __future__ import annotations

from typing import Any

import orjson

from moodjournal.util import now_ms
from .base import BaseRepository


class MonthlyCacheRepository(BaseRepository):
    """Denormalised ``{date, mood}`` lists keyed by ``YYYY-MM``."""

    async def put(self, month_key: str, entries: list[dict[str, Any]]) -> None:
        async with self.pool.connection() as conn:
            await conn.execute(
                """
                INSERT INTO monthly_cache (month_key, entries, timestamp)
                VALUES (?, ?, ?)
                ON CONFLICT(month_key) DO UPDATE SET
                    entries   = excluded.entries,
                    timestamp = excluded.timestamp
                """,
                (month_key, orjson.dumps(list(entries)), now_ms()),
            )
            await conn.commit()

    async def get(self, month_key: str) -> list[dict[str, Any]] | None:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                "SELECT entries FROM monthly_cache WHERE month_key = ?",
                (month_key,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return list(orjson.loads(row["entries"]))

    async def clear(self) -> int:
        return await self._clear_table("monthly_cache")
