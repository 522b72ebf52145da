from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Mapping

import orjson

from moodjournal.util import now_ms
from .base import BaseRepository

OutboxStatus = Literal["pending", "failed"]


@dataclass(frozen=True, slots=True)
class OutboxRecord:
    """A write captured for later delivery.

    ``target`` is the logical key: the entry date for entry writes, or
    ``"METHOD path"`` for any other intercepted write.
    """

    id: int
    target: str
    operation: str
    method: str
    url: str
    headers: dict[str, str]
    body: bytes | None
    status: OutboxStatus
    attempts: int
    last_error: str | None
    enqueued_at: int

    @property
    def entry(self) -> Any:
        if not self.body:
            return None
        try:
            return orjson.loads(self.body)
        except orjson.JSONDecodeError:
            return None

    def as_pending_sync(self) -> dict[str, Any]:
        return {
            "date": self.target,
            "entry": self.entry,
            "operation": self.operation,
            "timestamp": self.enqueued_at,
        }


def _row_to_record(row) -> OutboxRecord:
    return OutboxRecord(
        id=int(row["id"]),
        target=row["target"],
        operation=row["operation"],
        method=row["method"],
        url=row["url"],
        headers=dict(orjson.loads(row["headers"])),
        body=bytes(row["body"]) if row["body"] is not None else None,
        status=row["status"],
        attempts=int(row["attempts"]),
        last_error=row["last_error"],
        enqueued_at=int(row["enqueued_at"]),
    )


_SELECT_COLUMNS = (
    "id, target, operation, method, url, headers, body, status, "
    "attempts, last_error, enqueued_at"
)


class OutboxRepository(BaseRepository):
    """Durable queue of writes awaiting delivery, at most one per target."""

    async def enqueue(
        self,
        target: str,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        operation: str = "update",
    ) -> int:
        """Replace any queued write for ``target`` and return the new id.

        The replacement is re-inserted rather than updated so it takes a
        fresh id and timestamp and replays after anything queued earlier.
        """

        enqueued_at = now_ms()
        headers_blob = orjson.dumps(dict(headers or {}))

        async with self.pool.connection() as conn:

            async def _tx() -> int:
                await conn.execute("DELETE FROM outbox WHERE target = ?", (target,))
                cursor = await conn.execute(
                    """
                    INSERT INTO outbox (
                        target, operation, method, url, headers, body, enqueued_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        target,
                        operation,
                        method.upper(),
                        url,
                        headers_blob,
                        body,
                        enqueued_at,
                    ),
                )
                return int(cursor.lastrowid)

            return await self._run_in_transaction(conn, _tx)

    async def list_pending(self) -> list[OutboxRecord]:
        """Return every queued write, oldest first."""

        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM outbox ORDER BY enqueued_at ASC, id ASC"
            )
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def get(self, target: str) -> OutboxRecord | None:
        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                f"SELECT {_SELECT_COLUMNS} FROM outbox WHERE target = ?",
                (target,),
            )
            row = await cursor.fetchone()
        return _row_to_record(row) if row else None

    async def remove(self, target: str) -> None:
        async with self.pool.connection() as conn:
            await conn.execute("DELETE FROM outbox WHERE target = ?", (target,))
            await conn.commit()

    async def remove_id(self, record_id: int) -> bool:
        """Delete by id; returns ``False`` when the row was already replaced."""

        async with self.pool.connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM outbox WHERE id = ?", (record_id,)
            )
            await conn.commit()
            return bool(cursor.rowcount)

    async def mark_failed(self, record_id: int, error: str) -> None:
        async with self.pool.connection() as conn:
            await conn.execute(
                """
                UPDATE outbox
                SET status = 'failed', attempts = attempts + 1, last_error = ?
                WHERE id = ?
                """,
                (error, record_id),
            )
            await conn.commit()

    async def record_attempt(self, record_id: int, error: str) -> None:
        """Count a delivery attempt that never reached the server."""

        async with self.pool.connection() as conn:
            await conn.execute(
                "UPDATE outbox SET attempts = attempts + 1, last_error = ? WHERE id = ?",
                (error, record_id),
            )
            await conn.commit()

    async def count(self) -> int:
        async with self.pool.connection() as conn:
            cursor = await conn.execute("SELECT COUNT(*) AS n FROM outbox")
            row = await cursor.fetchone()
        return int(row["n"]) if row else 0

    async def clear(self) -> int:
        return await self._clear_table("outbox")
