"""Read and write operations over the network with offline fallback.

Reads go to the network first when online and fall back to the durable
store; writes update local state immediately and then reconcile with the
server's answer. Failures are classified and returned, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable, Literal, Mapping

import orjson

from moodjournal.app.api.client import ApiClient
from moodjournal.app.api.errors import (
    ApiError,
    ErrorKind,
    NetworkError,
    NotFoundError,
    OfflineDataUnavailable,
    classify,
)
from moodjournal.app.db.events import OUTBOX_REPLAY_RESOLVED_EVENT, RepositoryEventBus
from moodjournal.app.db.outbox import OutboxRecord
from moodjournal.app.models import month_key, month_of, monthly_item
from moodjournal.app.services.connectivity import ConnectivityMonitor
from moodjournal.app.services.offline_store import OfflineStore, entry_path
from moodjournal.app.services.optimistic import (
    OptimisticMoodTracker,
    merge_with_overlay,
)
from moodjournal.app.services.resource_cache import ResourceCache, ResourceKey
from moodjournal.app.services.validators import (
    parse_iso_date,
    validate_entry_payload,
)
from moodjournal.settings import settings

logger = logging.getLogger(__name__)

ENTRY_RESOURCE = "entry"
MONTHLY_RESOURCE = "monthly-entries"

ResourceSource = Literal["network", "offline", "optimistic"]


@dataclass(frozen=True, slots=True)
class ResourceError:
    kind: ErrorKind
    message: str
    status: int | None = None

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ResourceError":
        status = getattr(exc, "status", None)
        message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
        return cls(kind=classify(exc), message=message, status=status)


@dataclass(frozen=True, slots=True)
class Resource:
    """Result of a read: data, or a classified error, plus provenance."""

    data: Any = None
    error: ResourceError | None = None
    stale: bool = False
    source: ResourceSource = "network"

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class SaveResult:
    entry: dict[str, Any] | None
    queued: bool = False
    error: ResourceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def entry_key(date: str) -> ResourceKey:
    return (ENTRY_RESOURCE, date)


def monthly_key(year: int, month: int) -> ResourceKey:
    return (MONTHLY_RESOURCE, month_key(year, month))


def patch_monthly_entries(
    entries: Iterable[Mapping[str, Any]], date: str, mood: str
) -> list[dict[str, Any]]:
    """Replace the item for ``date`` (or append it) and re-sort by date."""

    patched = [dict(item) for item in entries]
    new_item = {"date": date, "mood": mood}
    for index, item in enumerate(patched):
        if str(item.get("date", ""))[:10] == date:
            patched[index] = new_item
            break
    else:
        patched.append(new_item)
    patched.sort(key=lambda item: str(item.get("date", ""))[:10])
    return patched


def _no_data() -> Resource:
    return Resource(error=ResourceError.from_exception(OfflineDataUnavailable()))


class DataAccess:
    """Entry and monthly-list operations shared by every view of a session."""

    def __init__(
        self,
        api: ApiClient,
        store: OfflineStore,
        *,
        cache: ResourceCache | None = None,
        tracker: OptimisticMoodTracker | None = None,
        connectivity: ConnectivityMonitor | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._cache = cache or ResourceCache(
            maxsize=int(settings.CACHE.maxsize),
            ttl=float(settings.CACHE.ttl),
            dedupe_interval=float(settings.CACHE.dedupe_interval),
        )
        self._tracker = tracker or OptimisticMoodTracker()
        self._connectivity = connectivity
        self._monthly_params: dict[ResourceKey, tuple[int, int]] = {}
        self._unsubscribe: Callable[[], None] | None = None
        self._events: RepositoryEventBus | None = None

    @property
    def cache(self) -> ResourceCache:
        return self._cache

    @property
    def tracker(self) -> OptimisticMoodTracker:
        return self._tracker

    def _online(self) -> bool:
        return self._connectivity is None or self._connectivity.online

    # Reads

    async def fetch_monthly_entries(
        self,
        year: int,
        month: int,
        *,
        page: int | None = None,
        limit: int | None = None,
        force: bool = False,
    ) -> Resource:
        try:
            key = monthly_key(year, month)
        except ValueError as exc:
            return Resource(error=ResourceError.from_exception(exc))
        params = (
            int(page or settings.MONTHLY.page),
            int(limit or settings.MONTHLY.limit),
        )
        self._monthly_params[key] = params
        return await self._cache.get_or_fetch(
            key,
            lambda: self._load_monthly(year, month, *params),
            force=force,
        )

    async def _load_monthly(
        self, year: int, month: int, page: int, limit: int
    ) -> Resource:
        key = month_key(year, month)
        if self._online():
            generation = self._cache.generation(monthly_key(year, month))
            try:
                response = await self._api.send(
                    f"{settings.API.prefix}entries/{key}",
                    params={"page": page, "limit": limit},
                )
            except NetworkError as exc:
                logger.warning(
                    "Network fetch failed for %s, falling back to offline cache: %s",
                    key,
                    exc,
                )
            except ApiError as exc:
                return Resource(error=ResourceError.from_exception(exc))
            else:
                data = self._normalize_monthly(response.data, page, limit)
                if response.stale:
                    return await self._offline_monthly(year, month, limit, fallback=data)
                if self._cache.generation(monthly_key(year, month)) != generation:
                    logger.debug("Month %s changed locally during fetch", key)
                    return Resource(data=data)
                await self._store.put_monthly_cache(year, month, data["entries"])
                self._settle_overlay(data["entries"])
                return Resource(data=data)

        return await self._offline_monthly(year, month, limit)

    async def _offline_monthly(
        self, year: int, month: int, limit: int, *, fallback: Any = None
    ) -> Resource:
        """Durable month list first, then a cached network response."""

        cached = await self._store.get_monthly_cache(year, month)
        if cached is None:
            if fallback is None:
                return _no_data()
            return Resource(data=fallback, stale=True, source="offline")
        return Resource(
            data={
                "entries": cached,
                "pagination": {"page": 1, "limit": limit, "total": len(cached)},
            },
            stale=True,
            source="offline",
        )

    @staticmethod
    def _normalize_monthly(raw: Any, page: int, limit: int) -> dict[str, Any]:
        payload = raw if isinstance(raw, Mapping) else {}
        entries = sorted(
            (
                monthly_item(item)
                for item in payload.get("entries") or []
                if isinstance(item, Mapping) and item.get("date") and item.get("mood")
            ),
            key=lambda item: item["date"],
        )
        pagination = payload.get("pagination")
        if not isinstance(pagination, Mapping):
            pagination = {"page": page, "limit": limit, "total": len(entries)}
        return {"entries": entries, "pagination": dict(pagination)}

    def _settle_overlay(self, entries: Iterable[Mapping[str, Any]]) -> None:
        for item in entries:
            if self._tracker.get_mood(item["date"]) == item["mood"]:
                self._tracker.clear_mood(item["date"])

    async def fetch_entry(self, date: str, *, force: bool = False) -> Resource:
        try:
            day = parse_iso_date(date)
        except ValueError as exc:
            return Resource(error=ResourceError.from_exception(exc))
        return await self._cache.get_or_fetch(
            entry_key(day), lambda: self._load_entry(day), force=force
        )

    async def _load_entry(self, date: str) -> Resource:
        if self._online():
            generation = self._cache.generation(entry_key(date))
            try:
                response = await self._api.send(entry_path(date))
            except NotFoundError:
                return Resource(data=None)
            except NetworkError as exc:
                logger.warning(
                    "Network fetch failed for %s, falling back to offline cache: %s",
                    date,
                    exc,
                )
            except ApiError as exc:
                return Resource(error=ResourceError.from_exception(exc))
            else:
                entry = self._normalize_entry(response.data, date)
                if response.stale:
                    return await self._offline_entry(date, fallback=entry)
                if self._cache.generation(entry_key(date)) != generation:
                    logger.debug("Entry %s changed locally during fetch", date)
                    return Resource(data=entry)
                await self._store.put_entry(date, entry)
                return Resource(data=entry)

        return await self._offline_entry(date)

    async def _offline_entry(self, date: str, *, fallback: Any = None) -> Resource:
        cached = await self._store.get_entry(date)
        if cached is None:
            if fallback is None:
                return _no_data()
            return Resource(data=fallback, stale=True, source="offline")
        return Resource(data=cached, stale=True, source="offline")

    @staticmethod
    def _normalize_entry(raw: Any, date: str) -> dict[str, Any]:
        entry = dict(raw) if isinstance(raw, Mapping) else {}
        entry["date"] = date
        return entry

    # Writes

    async def save_entry(self, date: str, payload: Mapping[str, Any]) -> SaveResult:
        try:
            day = parse_iso_date(date)
            cleaned = validate_entry_payload(payload)
        except ValueError as exc:
            return SaveResult(entry=None, error=ResourceError.from_exception(exc))

        optimistic: dict[str, Any] = {"date": day, **cleaned}
        key = entry_key(day)
        self._cache.set(key, Resource(data=optimistic, source="optimistic"))
        self._tracker.store_mood(day, cleaned["mood"])
        await self._store.put_entry(day, optimistic)

        try:
            response = await self._api.send(entry_path(day), "POST", dict(cleaned))
        except NetworkError as exc:
            # Nothing below us captured the write, so queue it here.
            logger.warning("Save for %s could not reach the server: %s", day, exc)
            await self._store.enqueue_pending_write(day, optimistic)
            await self._patch_monthly(day, cleaned["mood"])
            return SaveResult(
                entry=optimistic,
                queued=True,
                error=ResourceError.from_exception(exc),
            )
        except ApiError as exc:
            logger.info("Save for %s rejected: %s", day, exc)
            return SaveResult(entry=optimistic, error=ResourceError.from_exception(exc))

        if response.queued:
            await self._patch_monthly(day, cleaned["mood"])
            return SaveResult(entry=optimistic, queued=True)

        entry = self._normalize_entry(response.data, day)
        entry.setdefault("mood", cleaned["mood"])
        self._cache.set(key, Resource(data=entry))
        await self._store.put_entry(day, entry)
        await self._patch_monthly(day, str(entry["mood"]))
        return SaveResult(entry=entry)

    async def _patch_monthly(self, date: str, mood: str) -> None:
        year, month = month_of(date)
        key = monthly_key(year, month)

        current = self._cache.peek(key)
        if isinstance(current, Resource) and isinstance(current.data, Mapping):
            entries = patch_monthly_entries(
                current.data.get("entries") or [], date, mood
            )
            self._cache.set(
                key, replace(current, data={**current.data, "entries": entries})
            )
        else:
            self._cache.supersede(key)

        stored = await self._store.get_monthly_cache(year, month)
        if stored is not None:
            await self._store.put_monthly_cache(
                year, month, patch_monthly_entries(stored, date, mood)
            )

    # Calendar

    async def calendar_moods(self, year: int, month: int) -> Resource:
        """Monthly ``{date, mood}`` list with fresh optimistic moods applied."""

        resource = await self.fetch_monthly_entries(year, month)
        prefix = f"{month_key(year, month)}-"
        overlay = [
            item for item in self._tracker.entries() if item["date"].startswith(prefix)
        ]
        server = resource.data["entries"] if isinstance(resource.data, Mapping) else []
        if resource.error is not None and not overlay:
            return resource
        return replace(resource, data=merge_with_overlay(server, overlay))

    # Revalidation

    def subscribe(
        self, key: ResourceKey, listener: Callable[[ResourceKey, Any], None]
    ) -> Callable[[], None]:
        return self._cache.subscribe(key, listener)

    async def revalidate(self, key: ResourceKey) -> Resource:
        kind, value = key[0], str(key[1])
        if kind == ENTRY_RESOURCE:
            return await self.fetch_entry(value, force=True)
        if kind == MONTHLY_RESOURCE:
            year, month = (int(part) for part in value.split("-", 1))
            page, limit = self._monthly_params.get(key, (None, None))
            return await self.fetch_monthly_entries(
                year, month, page=page, limit=limit, force=True
            )
        raise ValueError(f"Unknown resource key: {key!r}")

    async def revalidate_all(self) -> list[Resource]:
        keys = self._cache.subscribed_keys()
        if not keys:
            return []
        logger.debug("Revalidating %d subscribed resource(s)", len(keys))
        return list(await asyncio.gather(*(self.revalidate(key) for key in keys)))

    async def notify_focus(self) -> list[Resource]:
        """The consuming view regained focus."""

        return await self.revalidate_all()

    def attach(self, connectivity: ConnectivityMonitor) -> None:
        """Revalidate subscribed resources whenever connectivity returns."""

        self.detach()
        self._connectivity = connectivity
        self._unsubscribe = connectivity.subscribe(self._on_reconnect)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._events is not None:
            self._events.unsubscribe(
                OUTBOX_REPLAY_RESOLVED_EVENT, self._on_replay_resolved
            )
            self._events = None

    def listen(self, events: RepositoryEventBus) -> None:
        """Apply the server's answer once a queued entry write is delivered."""

        if self._events is not None:
            self._events.unsubscribe(
                OUTBOX_REPLAY_RESOLVED_EVENT, self._on_replay_resolved
            )
        self._events = events
        events.subscribe(OUTBOX_REPLAY_RESOLVED_EVENT, self._on_replay_resolved)

    async def _on_replay_resolved(
        self, *, record: OutboxRecord, body: bytes = b"", **_: Any
    ) -> None:
        try:
            day = parse_iso_date(record.target)
        except ValueError:
            return
        try:
            raw = orjson.loads(body) if body else None
        except orjson.JSONDecodeError:
            raw = None
        if not isinstance(raw, Mapping) or not raw.get("mood"):
            raw = record.entry
        if not isinstance(raw, Mapping) or not raw.get("mood"):
            return
        entry = self._normalize_entry(raw, day)
        self._cache.set(entry_key(day), Resource(data=entry))
        await self._store.put_entry(day, entry)
        await self._patch_monthly(day, str(entry["mood"]))
        logger.debug("Applied replayed write for %s", day)

    async def _on_reconnect(self) -> None:
        await self.revalidate_all()

    def reset(self) -> None:
        """Drop in-memory state for the session (sign-out)."""

        self._cache.clear()
        self._tracker.clear()
        self._monthly_params.clear()


__all__ = [
    "DataAccess",
    "Resource",
    "ResourceError",
    "SaveResult",
    "entry_key",
    "monthly_key",
    "patch_monthly_entries",
]
