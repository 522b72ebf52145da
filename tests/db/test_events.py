from __future__ import annotations

import logging

import pytest

from moodjournal.app.db.events import OUTBOX_ENQUEUED_EVENT, RepositoryEventBus


async def test_failing_handler_does_not_stop_the_others(
    caplog: pytest.LogCaptureFixture,
) -> None:
    events = RepositoryEventBus()
    seen: list[str] = []

    async def broken(**_) -> None:
        raise RuntimeError("boom")

    async def record(*, target: str, **_) -> None:
        seen.append(target)

    events.subscribe(OUTBOX_ENQUEUED_EVENT, broken)
    events.subscribe(OUTBOX_ENQUEUED_EVENT, record)
    events.subscribe(OUTBOX_ENQUEUED_EVENT, record)

    with caplog.at_level(logging.ERROR):
        await events.emit(OUTBOX_ENQUEUED_EVENT, record_id=1, target="2024-03-05")

    assert seen == ["2024-03-05"]
    assert "failed for event 'outbox.enqueued'" in caplog.text

    events.unsubscribe(OUTBOX_ENQUEUED_EVENT, record)
    await events.emit(OUTBOX_ENQUEUED_EVENT, record_id=2, target="2024-03-06")
    assert seen == ["2024-03-05"]
