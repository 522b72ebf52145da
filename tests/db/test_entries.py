from __future__ import annotations

from moodjournal.persistence.local_db import LocalDB


async def test_put_twice_keeps_one_record_with_latest_value(db: LocalDB) -> None:
    await db.entries.put("2024-03-05", {"mood": "good", "title": "first"})
    await db.entries.put("2024-03-05", {"mood": "bad", "title": "second"})

    entry = await db.entries.get("2024-03-05")

    assert entry is not None
    assert entry["mood"] == "bad"
    assert entry["title"] == "second"
    assert entry["date"] == "2024-03-05"
    assert isinstance(entry["updated_at"], int)
    assert await db.entries.clear() == 1


async def test_get_missing_entry_returns_none(db: LocalDB) -> None:
    assert await db.entries.get("2024-03-06") is None


async def test_stored_entry_round_trips_nested_fields(db: LocalDB) -> None:
    entry = {
        "mood": "excellent",
        "text": "Walked to the lake",
        "tags": ["outdoors", "family"],
        "todos": [{"id": "t1", "text": "call mum", "completed": True}],
    }
    await db.entries.put("2024-03-07", entry)

    stored = await db.entries.get("2024-03-07")

    assert stored is not None
    stored.pop("updated_at")
    assert stored == {**entry, "date": "2024-03-07"}


async def test_remove_deletes_only_that_day(db: LocalDB) -> None:
    await db.entries.put("2024-03-01", {"mood": "good"})
    await db.entries.put("2024-03-02", {"mood": "bad"})

    await db.entries.remove("2024-03-01")

    assert await db.entries.get("2024-03-01") is None
    assert await db.entries.get("2024-03-02") is not None
