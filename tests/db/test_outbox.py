from __future__ import annotations

import orjson

from moodjournal.persistence.local_db import LocalDB


async def _enqueue(db: LocalDB, target: str, mood: str) -> int:
    return await db.outbox.enqueue(
        target,
        method="post",
        url=f"/api/entry/{target}",
        headers={"Content-Type": "application/json"},
        body=orjson.dumps({"mood": mood}),
    )


async def test_enqueue_same_target_keeps_only_latest_write(db: LocalDB) -> None:
    first_id = await _enqueue(db, "2024-03-05", "good")
    second_id = await _enqueue(db, "2024-03-05", "bad")

    records = await db.outbox.list_pending()

    assert second_id != first_id
    assert len(records) == 1
    record = records[0]
    assert record.id == second_id
    assert record.method == "POST"
    assert record.entry == {"mood": "bad"}
    assert record.status == "pending"
    assert record.attempts == 0


async def test_pending_writes_are_listed_in_enqueue_order(db: LocalDB) -> None:
    await _enqueue(db, "2024-03-05", "good")
    await _enqueue(db, "2024-03-01", "bad")
    await _enqueue(db, "2024-03-09", "neutral")
    await _enqueue(db, "2024-03-05", "excellent")

    targets = [record.target for record in await db.outbox.list_pending()]

    assert targets == ["2024-03-01", "2024-03-09", "2024-03-05"]


async def test_remove_id_is_false_once_the_write_was_replaced(db: LocalDB) -> None:
    stale_id = await _enqueue(db, "2024-03-05", "good")
    await _enqueue(db, "2024-03-05", "bad")

    assert await db.outbox.remove_id(stale_id) is False
    assert await db.outbox.count() == 1


async def test_mark_failed_and_record_attempt_track_errors(db: LocalDB) -> None:
    record_id = await _enqueue(db, "2024-03-05", "good")

    await db.outbox.record_attempt(record_id, "ConnectError")
    record = await db.outbox.get("2024-03-05")
    assert record is not None
    assert record.status == "pending"
    assert record.attempts == 1

    await db.outbox.mark_failed(record_id, "400: Invalid mood value")
    record = await db.outbox.get("2024-03-05")
    assert record is not None
    assert record.status == "failed"
    assert record.attempts == 2
    assert record.last_error == "400: Invalid mood value"


async def test_as_pending_sync_exposes_date_entry_and_operation(db: LocalDB) -> None:
    await _enqueue(db, "2024-03-05", "good")
    record = await db.outbox.get("2024-03-05")
    assert record is not None

    pending = record.as_pending_sync()

    assert pending["date"] == "2024-03-05"
    assert pending["entry"] == {"mood": "good"}
    assert pending["operation"] == "update"
    assert pending["timestamp"] == record.enqueued_at
