"""Session service and lifecycle helpers."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from moodjournal.app.api.client import ApiClient
from moodjournal.app.api.errors import NetworkError
from moodjournal.app.db.events import RepositoryEventBus
from moodjournal.app.services.connectivity import ConnectivityMonitor, Probe
from moodjournal.app.services.data_access import DataAccess
from moodjournal.app.services.offline_store import OfflineStore
from moodjournal.app.services.optimistic import OptimisticMoodTracker
from moodjournal.app.services.resource_cache import ResourceCache
from moodjournal.app.services.sync_agent import SyncAgent
from moodjournal.app.services.sync_transport import SyncTransport
from moodjournal.persistence.local_db import LocalDB
from moodjournal.settings import settings


logger = logging.getLogger(__name__)


def http_probe(transport: httpx.AsyncBaseTransport, base_url: str) -> Probe:
    """Return a probe that treats any HTTP answer from ``base_url`` as reachable."""

    url = httpx.URL(base_url)

    async def _probe() -> bool:
        try:
            response = await transport.handle_async_request(httpx.Request("GET", url))
        except httpx.TransportError:
            return False
        try:
            await response.aread()
        finally:
            await response.aclose()
        return True

    return _probe


@dataclass(slots=True)
class SessionServices:
    """Bundle the services of one signed-in session."""

    db: LocalDB
    events: RepositoryEventBus
    connectivity: ConnectivityMonitor
    transport: SyncTransport
    api: ApiClient
    store: OfflineStore
    data: DataAccess
    sync: SyncAgent

    @classmethod
    def create(
        cls,
        *,
        db_path: str | Path | None = None,
        base_url: str | None = None,
        inner_transport: httpx.AsyncBaseTransport | None = None,
        clock: Any = None,
    ) -> "SessionServices":
        base = (base_url or settings.API.base_url).rstrip("/")
        db = LocalDB(db_path)
        events = RepositoryEventBus()
        inner = inner_transport or httpx.AsyncHTTPTransport(retries=0)
        connectivity = ConnectivityMonitor(probe=http_probe(inner, base))
        transport = SyncTransport(
            db,
            inner=inner,
            connectivity=connectivity,
            events=events,
        )
        api = ApiClient(base, transport=transport)
        store = OfflineStore(db)
        cache = ResourceCache(
            maxsize=int(settings.CACHE.maxsize),
            ttl=float(settings.CACHE.ttl),
            dedupe_interval=float(settings.CACHE.dedupe_interval),
        )
        tracker = (
            OptimisticMoodTracker(clock=clock)
            if clock is not None
            else OptimisticMoodTracker()
        )
        data = DataAccess(
            api,
            store,
            cache=cache,
            tracker=tracker,
            connectivity=connectivity,
        )
        # Replays bypass the queueing layer so a failed resend is not queued again.
        sync = SyncAgent(
            db,
            transport.inner,
            base_url=base,
            events=events,
            headers_provider=api.auth_headers,
        )
        return cls(
            db=db,
            events=events,
            connectivity=connectivity,
            transport=transport,
            api=api,
            store=store,
            data=data,
            sync=sync,
        )

    async def sign_in(self, username: str, password: str) -> Any:
        data = await self.api.sign_in(username, password)
        await self.store.save_credentials(self.api.export_credentials())
        logger.info("Signed in as %s", username)
        return data

    async def sign_out(self) -> None:
        """End the session and drop everything cached for it."""

        try:
            await self.api.sign_out()
        except NetworkError as exc:
            logger.warning("Sign-out request failed, clearing local data anyway: %s", exc)
        finally:
            await self.store.clear_all()
            self.data.reset()
            logger.info("Signed out; offline data cleared")


class SessionLifecycle:
    """Manage startup and shutdown of session services."""

    def __init__(
        self,
        services: SessionServices,
        *,
        watch: bool = False,
        probe_interval: float | None = None,
    ) -> None:
        self._services = services
        self._watch = watch
        self._probe_interval = float(
            probe_interval
            if probe_interval is not None
            else settings.get("SYNC.probe_interval", 30)
        )
        self._lock = asyncio.Lock()
        self._started = False

    async def __aenter__(self) -> "SessionLifecycle":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """Open the offline store and connect reconnect handlers."""

        async with self._lock:
            if self._started:
                return

            logger.debug(
                "Starting session lifecycle: db.init -> restore credentials -> attach"
            )
            services = self._services
            await services.db.init()
            try:
                services.api.restore_credentials(
                    await services.store.load_credentials()
                )
                services.sync.attach(services.connectivity)
                services.data.attach(services.connectivity)
                services.data.listen(services.events)
                if self._watch:
                    services.connectivity.watch(self._probe_interval)
            except Exception:
                logger.debug("Startup failed; closing database", exc_info=True)
                with suppress(Exception):
                    await services.db.close()
                raise

            self._started = True
            logger.info("Session lifecycle started")

    async def stop(self) -> None:
        """Detach handlers, close the HTTP client and the offline store."""

        async with self._lock:
            if not self._started:
                return
            self._started = False

        services = self._services
        services.sync.detach()
        services.data.detach()
        services.events.clear()

        errors: list[Exception] = []

        try:
            await services.connectivity.stop()
        except Exception as exc:
            logger.exception("Failed to stop connectivity monitor cleanly")
            errors.append(exc)

        try:
            await services.api.aclose()
        except Exception as exc:
            logger.exception("Failed to close HTTP client cleanly")
            errors.append(exc)

        try:
            await services.db.close()
        except Exception as exc:
            logger.exception("Failed to close offline store cleanly")
            errors.append(exc)

        if errors:
            raise errors[0]

        logger.info("Session lifecycle stopped")

    @property
    def services(self) -> SessionServices:
        return self._services


__all__ = ["SessionServices", "SessionLifecycle", "http_probe"]
