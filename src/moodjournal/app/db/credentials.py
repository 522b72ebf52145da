from __future__ import annotations

from typing import Any

import orjson

from moodjournal.util import now_ms
from .base import BaseRepository


class CredentialsRepository(BaseRepository):
    """Session credentials kept between runs (bearer token, cookies)."""

    async def put(self, name: str, value: dict[str, Any]) -> None:
        async with self.pool.connection() as conn:
            await conn.execute(
                """
                INSERT INTO credentials (name, value, stored_at)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    value     = excluded.value,
                    stored_at = excluded.stored_at
                """,
                (name, orjson.dumps(value), now_ms()),
            )
            await conn.commit()

    async def get(self, name: str) -> dict[str, Any] | None:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                "SELECT value FROM credentials WHERE name = ?", (name,)
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        value = orjson.loads(row["value"])
        return value if isinstance(value, dict) else None

    async def clear(self) -> int:
        return await self._clear_table("credentials")
