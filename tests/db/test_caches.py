from __future__ import annotations

from pathlib import Path

import pytest

from moodjournal.persistence.local_db import LocalDB


async def test_monthly_cache_replaces_list_for_month(db: LocalDB) -> None:
    await db.monthly.put("2024-03", [{"date": "2024-03-01", "mood": "good"}])
    await db.monthly.put(
        "2024-03",
        [
            {"date": "2024-03-01", "mood": "bad"},
            {"date": "2024-03-02", "mood": "good"},
        ],
    )

    assert await db.monthly.get("2024-03") == [
        {"date": "2024-03-01", "mood": "bad"},
        {"date": "2024-03-02", "mood": "good"},
    ]
    assert await db.monthly.get("2024-04") is None


async def test_response_cache_keeps_last_response_per_url(db: LocalDB) -> None:
    url = "http://journal.test/api/entries/2024-03?page=1&limit=31"
    await db.responses.put(url, status=200, headers={"a": "1"}, body=b"old")
    await db.responses.put(url, status=200, headers={"a": "2"}, body=b"new")

    cached = await db.responses.get(url)

    assert cached is not None
    assert cached.body == b"new"
    assert cached.headers == {"a": "2"}


async def test_credentials_round_trip(db: LocalDB) -> None:
    await db.credentials.put("session", {"token": "abc", "cookies": []})

    assert await db.credentials.get("session") == {"token": "abc", "cookies": []}
    assert await db.credentials.clear() == 1
    assert await db.credentials.get("session") is None


async def test_repositories_require_init(db_path: Path) -> None:
    local_db = LocalDB(db_path)

    assert not local_db.is_open
    with pytest.raises(RuntimeError):
        local_db.entries


async def test_reopening_store_keeps_data(db_path: Path) -> None:
    async with LocalDB(db_path) as first:
        await first.entries.put("2024-03-05", {"mood": "good"})

    async with LocalDB(db_path) as second:
        entry = await second.entries.get("2024-03-05")

    assert entry is not None
    assert entry["mood"] == "good"
