"""Outbox notifications shared by the transport, the sync agent and readers.

Handlers are coroutines called with keyword arguments only:

``outbox.enqueued``
    ``record_id`` and ``target`` of the write that was just captured.
``outbox.replay.resolved``
    ``record`` (:class:`~moodjournal.app.db.outbox.OutboxRecord`), ``status``
    and the raw response ``body`` from the server.
``outbox.replay.failed``
    ``record``, ``status`` and the server's ``error`` message.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

EventHandler = Callable[..., Awaitable[None]]

OUTBOX_ENQUEUED_EVENT = "outbox.enqueued"
OUTBOX_REPLAY_RESOLVED_EVENT = "outbox.replay.resolved"
OUTBOX_REPLAY_FAILED_EVENT = "outbox.replay.failed"

logger = logging.getLogger(__name__)


class RepositoryEventBus:
    """Fan outbox events out to async handlers of one session."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers[event]
        if handler not in handlers:
            handlers.append(handler)

    def unsubscribe(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    async def emit(self, event: str, **payload: Any) -> None:
        """Await every handler for *event*; a failing handler is logged only."""

        handlers = list(self._handlers.get(event, ()))
        if not handlers:
            return

        results = await asyncio.gather(
            *(handler(**payload) for handler in handlers), return_exceptions=True
        )
        for handler, result in zip(handlers, results):
            if isinstance(result, Exception):
                logger.error(
                    "Handler %r failed for event '%s'",
                    handler,
                    event,
                    exc_info=result,
                )

    def clear(self) -> None:
        self._handlers.clear()
