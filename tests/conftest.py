from __future__ import annotations

import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

os.environ.setdefault("MOODJOURNAL_ENV", "testing")

import httpx
import orjson
import pytest
import pytest_asyncio

from moodjournal.app.models import Mood
from moodjournal.persistence.local_db import LocalDB

BASE_URL = "http://journal.test"


class FakeJournalServer:
    """In-memory stand-in for the journal API behind ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.online = True
        self.entries: dict[str, dict[str, Any]] = {}
        self.requests: list[httpx.Request] = []
        self.reject: dict[str, int] = {}
        self.token = "token-123"

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def seed(self, date: str, mood: str, **fields: Any) -> None:
        self.entries[date] = {
            "_id": f"id-{date}",
            "date": f"{date}T00:00:00.000Z",
            "mood": mood,
            **fields,
        }

    def requests_for(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handle(self, request: httpx.Request) -> httpx.Response:
        if not self.online:
            raise httpx.ConnectError("server unreachable", request=request)
        self.requests.append(request)
        path = request.url.path

        if path == "/":
            return httpx.Response(200, text="<html>journal</html>")
        if path == "/api/signin" and request.method == "POST":
            return httpx.Response(
                200,
                json={"token": self.token, "user": {"username": "ada"}},
                headers={"Set-Cookie": "session=abc; Path=/"},
            )
        if path == "/api/signout" and request.method == "POST":
            return httpx.Response(200, json={"ok": True})
        if path.startswith("/api/entries/") and request.method == "GET":
            month = path.rsplit("/", 1)[-1]
            items = [
                {"date": entry["date"], "mood": entry["mood"]}
                for date, entry in sorted(self.entries.items())
                if date.startswith(f"{month}-")
            ]
            return httpx.Response(200, json={"entries": items})
        if path.startswith("/api/entry/"):
            date = path.rsplit("/", 1)[-1]
            if request.method == "GET":
                entry = self.entries.get(date)
                if entry is None:
                    return httpx.Response(404, json={"message": "Entry not found"})
                return httpx.Response(200, json=entry)
            if request.method == "POST":
                if date in self.reject:
                    return httpx.Response(
                        self.reject[date], json={"message": "Rejected by server"}
                    )
                payload = orjson.loads(request.content)
                if payload.get("mood") not in Mood.values():
                    return httpx.Response(400, json={"message": "Invalid mood value"})
                extra = {k: v for k, v in payload.items() if k != "mood"}
                self.seed(date, payload["mood"], **extra)
                return httpx.Response(200, json=self.entries[date])
        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture
def server() -> FakeJournalServer:
    return FakeJournalServer()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "offline.sqlite3"


@pytest_asyncio.fixture
async def db(db_path: Path) -> AsyncIterator[LocalDB]:
    local_db = LocalDB(db_path)
    await local_db.init()
    try:
        yield local_db
    finally:
        await local_db.close()


@pytest_asyncio.fixture
async def session(db_path: Path, server: FakeJournalServer):
    from moodjournal.app.services.container import SessionLifecycle, SessionServices

    services = SessionServices.create(
        db_path=db_path, base_url=BASE_URL, inner_transport=server.transport
    )
    lifecycle = SessionLifecycle(services)
    await lifecycle.start()
    try:
        yield services
    finally:
        await lifecycle.stop()
