"""Best-effort durable cache and outbox for journal data.

Writes never raise to the caller: a failed write is logged and the caller
carries on with its in-memory state. Reads treat any storage failure as a
miss.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Literal

import orjson
from aiosqlitepool import PoolClosedError, PoolConnectionAcquireTimeoutError

from moodjournal.app.db.outbox import OutboxRecord
from moodjournal.app.models import month_key
from moodjournal.persistence.local_db import LocalDB
from moodjournal.settings import settings

logger = logging.getLogger(__name__)

Operation = Literal["create", "update"]

STORAGE_ERRORS = (
    sqlite3.Error,
    OSError,
    PoolClosedError,
    PoolConnectionAcquireTimeoutError,
    RuntimeError,
)


CREDENTIALS_KEY = "session"

_RECORD_SETS = {
    "entries": "entries",
    "monthly": "monthly cache",
    "outbox": "outbox",
    "responses": "response cache",
    "credentials": "credentials",
}


def entry_path(date: str) -> str:
    return f"{settings.API.prefix}entry/{date}"


class OfflineStore:
    """Durable record sets for entries, monthly lists and pending writes."""

    def __init__(self, db: LocalDB) -> None:
        self._db = db

    async def put_entry(self, date: str, entry: dict[str, Any]) -> None:
        try:
            await self._db.entries.put(date, entry)
        except STORAGE_ERRORS:
            logger.exception("Failed to persist entry %s offline", date)

    async def get_entry(self, date: str) -> dict[str, Any] | None:
        try:
            return await self._db.entries.get(date)
        except STORAGE_ERRORS:
            logger.warning("Offline entry lookup failed for %s", date, exc_info=True)
            return None

    async def put_monthly_cache(
        self, year: int, month: int, entries: list[dict[str, Any]]
    ) -> None:
        key = month_key(year, month)
        try:
            await self._db.monthly.put(key, entries)
        except STORAGE_ERRORS:
            logger.exception("Failed to persist monthly cache %s", key)

    async def get_monthly_cache(
        self, year: int, month: int
    ) -> list[dict[str, Any]] | None:
        key = month_key(year, month)
        try:
            return await self._db.monthly.get(key)
        except STORAGE_ERRORS:
            logger.warning("Monthly cache lookup failed for %s", key, exc_info=True)
            return None

    async def enqueue_pending_write(
        self,
        date: str,
        entry: dict[str, Any],
        operation: Operation = "update",
    ) -> int | None:
        """Queue ``entry`` for delivery, replacing any pending write for ``date``."""

        body = {key: value for key, value in entry.items() if key not in {"date", "updated_at"}}
        try:
            return await self._db.outbox.enqueue(
                date,
                method="POST",
                url=entry_path(date),
                headers={"Content-Type": "application/json"},
                body=orjson.dumps(body),
                operation=operation,
            )
        except STORAGE_ERRORS:
            logger.exception("Failed to queue pending write for %s", date)
            return None

    async def list_pending_writes(self) -> list[dict[str, Any]]:
        records = await self.list_outbox()
        return [record.as_pending_sync() for record in records]

    async def list_outbox(self) -> list[OutboxRecord]:
        try:
            return await self._db.outbox.list_pending()
        except STORAGE_ERRORS:
            logger.warning("Outbox listing failed", exc_info=True)
            return []

    async def remove_pending_write(self, date: str) -> None:
        try:
            await self._db.outbox.remove(date)
        except STORAGE_ERRORS:
            logger.exception("Failed to remove pending write for %s", date)

    async def save_credentials(self, credentials: dict[str, Any]) -> None:
        try:
            await self._db.credentials.put(CREDENTIALS_KEY, credentials)
        except STORAGE_ERRORS:
            logger.exception("Failed to persist session credentials")

    async def load_credentials(self) -> dict[str, Any] | None:
        try:
            return await self._db.credentials.get(CREDENTIALS_KEY)
        except STORAGE_ERRORS:
            logger.warning("Credential lookup failed", exc_info=True)
            return None

    async def clear_all(self) -> None:
        """Wipe every record set; used on sign-out."""

        for attribute, name in _RECORD_SETS.items():
            try:
                removed = await getattr(self._db, attribute).clear()
            except STORAGE_ERRORS:
                logger.exception("Failed to clear offline %s", name)
            else:
                logger.debug("Cleared %d rows from offline %s", removed, name)


__all__ = ["OfflineStore", "entry_path"]
