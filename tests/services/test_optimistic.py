from __future__ import annotations

from moodjournal.app.services.optimistic import (
    OptimisticMoodTracker,
    merge_with_overlay,
)


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_mood_is_visible_only_within_freshness_window() -> None:
    clock = FakeClock()
    tracker = OptimisticMoodTracker(freshness_seconds=300, clock=clock)

    tracker.store_mood("2024-03-05", "good")
    clock.now += 299
    assert tracker.get_mood("2024-03-05") == "good"
    assert tracker.has("2024-03-05")

    clock.now += 2
    assert tracker.get_mood("2024-03-05") is None
    assert tracker.entries() == []


def test_newer_mood_replaces_older_one() -> None:
    tracker = OptimisticMoodTracker(freshness_seconds=300, clock=FakeClock())

    tracker.store_mood("2024-03-05", "good")
    tracker.store_mood("2024-03-05", "bad")

    assert tracker.entries() == [
        {"date": "2024-03-05", "mood": "bad", "optimistic": True}
    ]


def test_clear_and_listeners() -> None:
    tracker = OptimisticMoodTracker(freshness_seconds=300, clock=FakeClock())
    calls: list[str] = []
    unsubscribe = tracker.subscribe(lambda: calls.append("changed"))

    tracker.store_mood("2024-03-05", "good")
    tracker.clear_mood("2024-03-05")
    tracker.clear_mood("2024-03-05")
    unsubscribe()
    tracker.store_mood("2024-03-06", "bad")
    tracker.clear()

    assert calls == ["changed", "changed"]
    assert tracker.get_mood("2024-03-06") is None


def test_overlay_wins_and_result_is_sorted() -> None:
    server = [
        {"date": "2024-03-09", "mood": "bad"},
        {"date": "2024-03-01", "mood": "good"},
    ]
    overlay = [
        {"date": "2024-03-09", "mood": "excellent", "optimistic": True},
        {"date": "2024-03-04", "mood": "neutral", "optimistic": True},
    ]

    merged = merge_with_overlay(server, overlay)

    assert [item["date"] for item in merged] == [
        "2024-03-01",
        "2024-03-04",
        "2024-03-09",
    ]
    assert merged[2] == {"date": "2024-03-09", "mood": "excellent", "optimistic": True}
