from __future__ import annotations

import asyncio

import httpx
import orjson

from moodjournal.app.db.events import (
    OUTBOX_REPLAY_FAILED_EVENT,
    OUTBOX_REPLAY_RESOLVED_EVENT,
    RepositoryEventBus,
)
from moodjournal.app.services.connectivity import ConnectivityMonitor
from moodjournal.app.services.offline_store import OfflineStore
from moodjournal.app.services.sync_agent import SyncAgent
from moodjournal.persistence.local_db import LocalDB

from tests.conftest import BASE_URL, FakeJournalServer


async def _queue(store: OfflineStore, *moods: tuple[str, str]) -> None:
    for date, mood in moods:
        await store.enqueue_pending_write(date, {"date": date, "mood": mood})


async def test_replay_sends_writes_in_order_and_clears_them(
    db: LocalDB, server: FakeJournalServer
) -> None:
    store = OfflineStore(db)
    await _queue(store, ("2024-03-09", "bad"), ("2024-03-01", "good"), ("2024-03-05", "neutral"))
    agent = SyncAgent(db, server.transport, base_url=BASE_URL)

    report = await agent.replay()

    sent = [request.url.path for request in server.requests]
    assert sent == [
        "/api/entry/2024-03-09",
        "/api/entry/2024-03-01",
        "/api/entry/2024-03-05",
    ]
    assert report.resolved == ["2024-03-09", "2024-03-01", "2024-03-05"]
    assert await db.outbox.count() == 0
    assert server.entries["2024-03-01"]["mood"] == "good"


async def test_rejected_write_is_marked_failed_and_replay_continues(
    db: LocalDB, server: FakeJournalServer
) -> None:
    events = RepositoryEventBus()
    seen: list[tuple[str, str]] = []

    async def on_resolved(*, record, **_) -> None:
        seen.append(("resolved", record.target))

    async def on_failed(*, record, status, error) -> None:
        seen.append(("failed", f"{record.target}:{status}:{error}"))

    events.subscribe(OUTBOX_REPLAY_RESOLVED_EVENT, on_resolved)
    events.subscribe(OUTBOX_REPLAY_FAILED_EVENT, on_failed)
    store = OfflineStore(db)
    await _queue(store, ("2024-03-01", "good"), ("2024-03-02", "bad"))
    server.reject["2024-03-01"] = 400
    agent = SyncAgent(db, server.transport, base_url=BASE_URL, events=events)

    report = await agent.replay()

    assert report.failed == ["2024-03-01"]
    assert report.resolved == ["2024-03-02"]
    assert seen == [
        ("failed", "2024-03-01:400:Rejected by server"),
        ("resolved", "2024-03-02"),
    ]
    record = await db.outbox.get("2024-03-01")
    assert record is not None
    assert record.status == "failed"
    assert record.last_error == "400: Rejected by server"


async def test_transport_failure_stops_the_pass(
    db: LocalDB, server: FakeJournalServer
) -> None:
    store = OfflineStore(db)
    await _queue(store, ("2024-03-01", "good"), ("2024-03-02", "bad"))
    server.online = False
    agent = SyncAgent(db, server.transport, base_url=BASE_URL)

    report = await agent.replay()

    assert report.interrupted is True
    assert report.attempted == 0
    records = await db.outbox.list_pending()
    assert [record.target for record in records] == ["2024-03-01", "2024-03-02"]
    assert records[0].attempts == 1
    assert records[1].attempts == 0


async def test_replay_uses_current_credentials(
    db: LocalDB, server: FakeJournalServer
) -> None:
    await db.outbox.enqueue(
        "2024-03-01",
        method="POST",
        url=f"{BASE_URL}/api/entry/2024-03-01",
        headers={"Authorization": "Bearer expired", "Content-Type": "application/json"},
        body=orjson.dumps({"mood": "good"}),
    )
    agent = SyncAgent(
        db,
        server.transport,
        base_url=BASE_URL,
        headers_provider=lambda: {"Authorization": "Bearer fresh"},
    )

    await agent.replay()

    request = server.requests[0]
    assert request.headers["Authorization"] == "Bearer fresh"
    assert request.headers["Content-Type"] == "application/json"


async def test_reconnect_triggers_replay(db: LocalDB, server: FakeJournalServer) -> None:
    store = OfflineStore(db)
    await _queue(store, ("2024-03-01", "good"))
    monitor = ConnectivityMonitor(online=False)
    agent = SyncAgent(db, server.transport, base_url=BASE_URL)
    agent.attach(monitor)

    monitor.mark_online()
    await monitor.drain()
    agent.detach()

    assert await db.outbox.count() == 0
    assert isinstance(server.requests[0], httpx.Request)


async def test_each_replay_finishes_before_the_next_starts(
    db: LocalDB, server: FakeJournalServer
) -> None:
    store = OfflineStore(db)
    await _queue(
        store, ("2024-03-03", "good"), ("2024-03-01", "bad"), ("2024-03-02", "neutral")
    )
    in_flight = 0
    peak = 0
    order: list[str] = []

    async def slow(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        order.append(request.url.path.rsplit("/", 1)[-1])
        try:
            await asyncio.sleep(0.01)
            return server.handle(request)
        finally:
            in_flight -= 1

    agent = SyncAgent(db, httpx.MockTransport(slow), base_url=BASE_URL)

    first, second = await asyncio.gather(agent.replay(), agent.replay())

    assert peak == 1
    assert order == ["2024-03-03", "2024-03-01", "2024-03-02"]
    assert first.resolved + second.resolved == order
    assert await db.outbox.count() == 0
