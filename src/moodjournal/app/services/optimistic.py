"""Session-scoped overlay of just-saved moods.

The overlay bridges the gap between a save and the next authoritative read
of the monthly list. Records expire lazily: a stale record is ignored on
read but only removed by :meth:`OptimisticMoodTracker.clear_mood` or
:meth:`OptimisticMoodTracker.clear`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from moodjournal.settings import settings

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
OverlayListener = Callable[[], None]


@dataclass(frozen=True, slots=True)
class PendingMood:
    date: str
    mood: str
    timestamp: float


class OptimisticMoodTracker:
    __slots__ = ("_pending", "_listeners", "_clock", "_freshness")

    def __init__(
        self,
        *,
        freshness_seconds: float | None = None,
        clock: Clock = time.time,
    ) -> None:
        self._pending: dict[str, PendingMood] = {}
        self._listeners: list[OverlayListener] = []
        self._clock = clock
        self._freshness = float(
            freshness_seconds
            if freshness_seconds is not None
            else settings.OPTIMISTIC.freshness_seconds
        )

    @property
    def freshness_seconds(self) -> float:
        return self._freshness

    def _is_fresh(self, record: PendingMood, now: float) -> bool:
        return now - record.timestamp < self._freshness

    def store_mood(self, date: str, mood: str) -> None:
        self._pending[date] = PendingMood(date=date, mood=mood, timestamp=self._clock())
        self._notify()

    def get_mood(self, date: str) -> str | None:
        record = self._pending.get(date)
        if record is None or not self._is_fresh(record, self._clock()):
            return None
        return record.mood

    def has(self, date: str) -> bool:
        return self.get_mood(date) is not None

    def clear_mood(self, date: str) -> None:
        if self._pending.pop(date, None) is not None:
            self._notify()

    def clear(self) -> None:
        self._pending.clear()
        self._notify()

    def entries(self) -> list[dict[str, Any]]:
        """Return fresh overlay records as ``{date, mood, optimistic}`` items."""

        now = self._clock()
        return [
            {"date": record.date, "mood": record.mood, "optimistic": True}
            for record in self._pending.values()
            if self._is_fresh(record, now)
        ]

    def subscribe(self, listener: OverlayListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                logger.debug("Attempted to remove unknown listener %r", listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in tuple(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Optimistic overlay listener %r failed", listener)


def merge_with_overlay(
    server_entries: Iterable[Mapping[str, Any]],
    overlay_entries: Iterable[Mapping[str, Any]],
) -> list[dict[str, Any]]:
    """Combine server items with overlay items; the overlay wins per date."""

    merged: dict[str, dict[str, Any]] = {}
    for entry in server_entries:
        merged[str(entry["date"])[:10]] = dict(entry)
    for entry in overlay_entries:
        merged[str(entry["date"])[:10]] = dict(entry)
    return [merged[key] for key in sorted(merged)]


__all__ = ["OptimisticMoodTracker", "PendingMood", "merge_with_overlay"]
