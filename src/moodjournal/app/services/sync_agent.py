from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Mapping

import httpx

from moodjournal.app.api.client import ApiClient
from moodjournal.app.db.events import (
    OUTBOX_REPLAY_FAILED_EVENT,
    OUTBOX_REPLAY_RESOLVED_EVENT,
    RepositoryEventBus,
)
from moodjournal.app.db.outbox import OutboxRecord
from moodjournal.app.services.connectivity import ConnectivityMonitor
from moodjournal.persistence.local_db import LocalDB

logger = logging.getLogger(__name__)

HeadersProvider = Callable[[], Mapping[str, str]]


@dataclass(slots=True)
class ReplayReport:
    """Outcome of one pass over the outbox."""

    resolved: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    interrupted: bool = False

    @property
    def attempted(self) -> int:
        return len(self.resolved) + len(self.failed)


class SyncAgent:
    """Replay queued writes in enqueue order, one request at a time."""

    def __init__(
        self,
        db: LocalDB,
        transport: httpx.AsyncBaseTransport,
        *,
        base_url: str,
        events: RepositoryEventBus | None = None,
        headers_provider: HeadersProvider | None = None,
    ) -> None:
        self._db = db
        self._transport = transport
        self._base_url = httpx.URL(base_url)
        self._events = events
        self._headers_provider = headers_provider
        self._lock = asyncio.Lock()
        self._unsubscribe: Callable[[], None] | None = None

    def attach(self, connectivity: ConnectivityMonitor) -> None:
        """Replay automatically whenever connectivity comes back."""

        self.detach()
        self._unsubscribe = connectivity.subscribe(self._on_reconnect)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def _on_reconnect(self) -> None:
        await self.replay()

    async def replay(self) -> ReplayReport:
        """Deliver every queued write in ``(enqueued_at, id)`` order.

        A transport failure ends the pass and leaves the rest queued; an
        HTTP error marks that record failed and moves on to the next one.
        """

        async with self._lock:
            report = ReplayReport()
            records = await self._db.outbox.list_pending()
            if not records:
                return report

            logger.info("Replaying %d queued write(s)", len(records))
            for record in records:
                try:
                    response = await self._send(record)
                except httpx.TransportError as exc:
                    await self._db.outbox.record_attempt(record.id, str(exc) or repr(exc))
                    logger.info(
                        "Replay of outbox #%d interrupted: %r", record.id, exc
                    )
                    report.interrupted = True
                    break

                if 200 <= response.status_code < 300:
                    await self._db.outbox.remove_id(record.id)
                    report.resolved.append(record.target)
                    logger.debug("Outbox #%d delivered (%s)", record.id, record.target)
                    await self._emit(
                        OUTBOX_REPLAY_RESOLVED_EVENT,
                        record=record,
                        status=response.status_code,
                        body=response.content,
                    )
                    continue

                detail = ApiClient._normalize_response_detail(response.content)
                error = f"{response.status_code}: {detail}"
                await self._db.outbox.mark_failed(record.id, error)
                report.failed.append(record.target)
                logger.warning(
                    "Outbox #%d (%s) rejected: %s", record.id, record.target, error
                )
                await self._emit(
                    OUTBOX_REPLAY_FAILED_EVENT,
                    record=record,
                    status=response.status_code,
                    error=detail,
                )

            return report

    async def _send(self, record: OutboxRecord) -> httpx.Response:
        headers = dict(record.headers)
        if self._headers_provider is not None:
            headers.update(self._headers_provider())
        request = httpx.Request(
            record.method,
            self._base_url.join(record.url),
            headers=headers,
            content=record.body or b"",
        )
        response = await self._transport.handle_async_request(request)
        try:
            await response.aread()
        finally:
            await response.aclose()
        return response

    async def _emit(self, event: str, **payload: object) -> None:
        if self._events is None:
            return
        await self._events.emit(event, **payload)


__all__ = ["SyncAgent", "ReplayReport"]
