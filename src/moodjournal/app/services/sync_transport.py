"""Transport-level interception of journal API traffic.

``SyncTransport`` wraps the real httpx transport so application code never
needs to know about connectivity:

* writes that cannot reach the server are captured in the outbox and
  acknowledged with ``202``;
* API reads are network-first with the last good response served when the
  network is gone;
* everything else (the application shell) is served cache-first and
  refreshed in the background.
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import suppress
from typing import Any, Iterable

import httpx
import orjson

from moodjournal.app.api.client import QUEUED_HEADER, STALE_HEADER
from moodjournal.app.db.events import OUTBOX_ENQUEUED_EVENT, RepositoryEventBus
from moodjournal.app.services.connectivity import ConnectivityMonitor
from moodjournal.app.services.validators import parse_iso_date
from moodjournal.persistence.local_db import LocalDB
from moodjournal.settings import settings

logger = logging.getLogger(__name__)

_HOP_HEADERS = frozenset(
    {"content-length", "content-encoding", "transfer-encoding", "connection", "host"}
)


def _portable_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    return {
        name: value for name, value in headers if name.lower() not in _HOP_HEADERS
    }


class SyncTransport(httpx.AsyncBaseTransport):
    """httpx transport that queues failed writes and serves cached reads."""

    def __init__(
        self,
        db: LocalDB,
        *,
        inner: httpx.AsyncBaseTransport | None = None,
        connectivity: ConnectivityMonitor | None = None,
        events: RepositoryEventBus | None = None,
        api_prefix: str | None = None,
        exclude_paths: Iterable[str] | None = None,
    ) -> None:
        self._db = db
        self._inner = inner or httpx.AsyncHTTPTransport(retries=0)
        self._connectivity = connectivity or ConnectivityMonitor()
        self._events = events
        self._prefix = api_prefix or settings.API.prefix
        self._exclude = tuple(
            exclude_paths
            if exclude_paths is not None
            else settings.get("SYNC.exclude_paths", [])
        )
        self._entry_path = re.compile(
            rf"^{re.escape(self._prefix)}entry/(?P<date>[^/]+)/?$"
        )
        self._refreshes: set[asyncio.Task[Any]] = set()

    @property
    def inner(self) -> httpx.AsyncBaseTransport:
        return self._inner

    @property
    def connectivity(self) -> ConnectivityMonitor:
        return self._connectivity

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET":
            if path.startswith(self._prefix):
                return await self._network_first(request)
            return await self._cache_first(request)

        if not self._should_queue(path):
            return await self._forward(request)

        try:
            return await self._forward(request)
        except httpx.TransportError as exc:
            return await self._enqueue(request, exc)

    async def aclose(self) -> None:
        for task in list(self._refreshes):
            task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await task
        await self._inner.aclose()

    def _should_queue(self, path: str) -> bool:
        if not path.startswith(self._prefix):
            return False
        return not any(path.rstrip("/") == excluded.rstrip("/") for excluded in self._exclude)

    def target_for(self, method: str, path: str) -> str:
        """Return the outbox key for a write: its entry date when it has one."""

        match = self._entry_path.match(path)
        if match:
            try:
                return parse_iso_date(match.group("date"))
            except ValueError:
                pass
        return f"{method.upper()} {path}"

    async def _forward(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._inner.handle_async_request(request)
        except httpx.TransportError:
            self._connectivity.mark_offline()
            raise
        self._connectivity.mark_online()
        return response

    async def _enqueue(
        self, request: httpx.Request, exc: httpx.TransportError
    ) -> httpx.Response:
        target = self.target_for(request.method, request.url.path)
        body = await request.aread()
        try:
            record_id = await self._db.outbox.enqueue(
                target,
                method=request.method,
                url=str(request.url),
                headers=_portable_headers(request.headers.items()),
                body=body or None,
            )
        except Exception:
            logger.exception("Could not capture %s %s", request.method, request.url)
            raise exc

        logger.info(
            "Queued %s %s as outbox #%d (%s)",
            request.method,
            request.url.path,
            record_id,
            exc.__class__.__name__,
        )
        if self._events is not None:
            await self._events.emit(
                OUTBOX_ENQUEUED_EVENT, record_id=record_id, target=target
            )
        return httpx.Response(
            202,
            headers={QUEUED_HEADER: "1"},
            content=orjson.dumps({"queued": True, "id": record_id, "target": target}),
            request=request,
        )

    async def _read_and_store(
        self, request: httpx.Request, response: httpx.Response
    ) -> httpx.Response:
        try:
            body = await response.aread()
        finally:
            await response.aclose()
        headers = _portable_headers(response.headers.items())
        try:
            await self._db.responses.put(
                str(request.url),
                status=response.status_code,
                headers=headers,
                body=body,
            )
        except Exception:
            logger.warning("Failed to cache response for %s", request.url, exc_info=True)
        return httpx.Response(
            response.status_code,
            headers=headers,
            content=body,
            request=request,
            extensions=response.extensions,
        )

    async def _cached(self, request: httpx.Request, marker: str) -> httpx.Response | None:
        try:
            cached = await self._db.responses.get(str(request.url))
        except Exception:
            logger.warning("Response cache lookup failed for %s", request.url, exc_info=True)
            return None
        if cached is None:
            return None
        return httpx.Response(
            cached.status,
            headers={**cached.headers, STALE_HEADER: marker},
            content=cached.body,
            request=request,
        )

    async def _network_first(self, request: httpx.Request) -> httpx.Response:
        try:
            response = await self._forward(request)
        except httpx.TransportError:
            cached = await self._cached(request, "stale")
            if cached is None:
                raise
            logger.warning("Serving cached response for %s", request.url)
            return cached
        if not response.is_success:
            return response
        return await self._read_and_store(request, response)

    async def _cache_first(self, request: httpx.Request) -> httpx.Response:
        cached = await self._cached(request, "hit")
        if cached is None:
            response = await self._forward(request)
            if not response.is_success:
                return response
            return await self._read_and_store(request, response)

        task = asyncio.create_task(self._refresh(request))
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)
        return cached

    async def _refresh(self, request: httpx.Request) -> None:
        refresh = httpx.Request(
            request.method, request.url, headers=request.headers
        )
        try:
            response = await self._forward(refresh)
        except httpx.TransportError:
            logger.debug("Background refresh failed for %s", request.url)
            return
        if response.is_success:
            await self._read_and_store(refresh, response)
        else:
            await response.aclose()


__all__ = ["SyncTransport"]
