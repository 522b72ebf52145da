from __future__ import annotations

from datetime import date

from moodjournal.app.services.calendar import get_month_context
from moodjournal.app.services.container import SessionServices

from tests.conftest import FakeJournalServer


async def test_month_context_maps_moods_to_days(
    session: SessionServices, server: FakeJournalServer
) -> None:
    server.seed("2024-03-01", "good")
    server.seed("2024-03-15", "bad")

    context = await get_month_context(session, 2024, 3, today=date(2024, 3, 15))

    assert context["month_name"] == "March"
    assert context["moods"] == {1: "good", 15: "bad"}
    assert context["weeks"][0] == [0, 0, 0, 0, 1, 2, 3]
    assert context["today_day"] == 15
    assert context["stale"] is False
    assert context["error"] is None


async def test_month_context_wraps_years_and_reports_errors(
    session: SessionServices, server: FakeJournalServer
) -> None:
    server.online = False

    context = await get_month_context(session, 2024, 1, today=date(2024, 3, 15))

    assert (context["prev_year"], context["prev_month"]) == (2023, 12)
    assert (context["next_year"], context["next_month"]) == (2024, 2)
    assert context["today_day"] is None
    assert context["moods"] == {}
    assert context["error"] == "no_data"
    assert context["error_message"] == "No data available offline"


async def test_month_context_shows_unsynced_moods(
    session: SessionServices, server: FakeJournalServer
) -> None:
    server.online = False
    await session.data.save_entry("2024-03-20", {"mood": "excellent"})

    context = await get_month_context(session, 2024, 3, today=date(2024, 3, 20))

    assert context["moods"] == {20: "excellent"}
