from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

import orjson

from moodjournal.util import now_ms
from .base import BaseRepository


@dataclass(frozen=True, slots=True)
class CachedResponse:
    url: str
    status: int
    headers: dict[str, str]
    body: bytes
    stored_at: int


class ResponseCacheRepository(BaseRepository):
    """Last successful GET response per full request URL."""

    async def put(
        self,
        url: str,
        *,
        status: int,
        headers: Mapping[str, str],
        body: bytes,
    ) -> None:
        async with self.pool.connection() as conn:
            await conn.execute(
                """
                INSERT INTO response_cache (url, status, headers, body, stored_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    status    = excluded.status,
                    headers   = excluded.headers,
                    body      = excluded.body,
                    stored_at = excluded.stored_at
                """,
                (url, int(status), orjson.dumps(dict(headers)), body, now_ms()),
            )
            await conn.commit()

    async def get(self, url: str) -> CachedResponse | None:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                "SELECT url, status, headers, body, stored_at FROM response_cache WHERE url = ?",
                (url,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None
        return CachedResponse(
            url=row["url"],
            status=int(row["status"]),
            headers=dict(orjson.loads(row["headers"])),
            body=bytes(row["body"]),
            stored_at=int(row["stored_at"]),
        )

    async def clear(self) -> int:
        return await self._clear_table("response_cache")
