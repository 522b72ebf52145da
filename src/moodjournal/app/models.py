"""Shapes shared by the offline store, data access and the CLI."""

from __future__ import annotations

from enum import Enum
from typing import Any, NotRequired, TypedDict

from ulid import ULID


class Mood(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    NEUTRAL = "neutral"
    BAD = "bad"
    TERRIBLE = "terrible"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(member.value for member in cls)


class Todo(TypedDict):
    id: str
    text: str
    completed: bool


class EntryPayload(TypedDict):
    mood: str
    title: NotRequired[str]
    text: NotRequired[str]
    tags: NotRequired[list[str]]
    todos: NotRequired[list[Todo]]


class MonthlyItem(TypedDict):
    date: str
    mood: str


def new_todo(text: str, *, completed: bool = False) -> Todo:
    """Build a todo item with a fresh client-side identifier."""

    return {"id": str(ULID()), "text": text, "completed": completed}


def month_key(year: int, month: int) -> str:
    """Return the ``YYYY-MM`` key for a 1-based month."""

    if not 1 <= int(month) <= 12:
        raise ValueError(f"Month out of range: {month}")
    return f"{int(year):04d}-{int(month):02d}"


def month_of(date_iso: str) -> tuple[int, int]:
    year, month, _ = date_iso.split("-", 2)
    return int(year), int(month)


def monthly_item(entry: dict[str, Any]) -> MonthlyItem:
    return {"date": str(entry["date"])[:10], "mood": str(entry["mood"])}


__all__ = [
    "Mood",
    "Todo",
    "EntryPayload",
    "MonthlyItem",
    "new_todo",
    "month_key",
    "month_of",
    "monthly_item",
]
