"""Calendar-related service helpers."""

from __future__ import annotations

import calendar as _calendar
from datetime import date
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from moodjournal.app.services.container import SessionServices


def _offset_month(year: int, month: int, delta: int) -> tuple[int, int]:
    total = (year * 12 + month - 1) + delta
    new_year = total // 12
    new_month = total % 12 + 1
    return new_year, new_month


async def get_month_context(
    services: "SessionServices",
    year: int,
    month: int,
    *,
    today: date | None = None,
) -> dict[str, Any]:
    """Return what a calendar grid needs for a given month.

    Args:
        services: The signed-in session whose data should be read.
        year: Calendar year to render.
        month: Calendar month to render (1-12).
        today: Optional date to treat as "today". Defaults to
            :meth:`datetime.date.today`.
    """

    today_date = today or date.today()
    resource = await services.data.calendar_moods(year, month)

    moods: dict[int, str] = {}
    for item in resource.data or []:
        try:
            day = date.fromisoformat(str(item["date"])[:10])
        except (KeyError, ValueError):
            continue
        if day.year == year and day.month == month:
            moods[day.day] = str(item["mood"])

    prev_year, prev_month = _offset_month(year, month, -1)
    next_year, next_month = _offset_month(year, month, 1)
    is_current = today_date.year == year and today_date.month == month

    return {
        "year": year,
        "month": month,
        "month_name": _calendar.month_name[month],
        "weeks": _calendar.Calendar().monthdayscalendar(year, month),
        "moods": moods,
        "today": today_date.isoformat(),
        "today_day": today_date.day if is_current else None,
        "prev_year": prev_year,
        "prev_month": prev_month,
        "next_year": next_year,
        "next_month": next_month,
        "stale": resource.stale,
        "error": resource.error.kind.value if resource.error else None,
        "error_message": resource.error.message if resource.error else None,
    }


__all__ = ["get_month_context"]
