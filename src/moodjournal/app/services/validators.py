import html
from datetime import date, datetime
from typing import Any, Mapping

import bleach

from moodjournal.app.models import EntryPayload, Mood, Todo


def parse_iso_date(raw: str) -> str:
    """Parse ISO formatted dates, returning a normalised ``YYYY-MM-DD`` string.

    The validator accepts either a bare ISO date (``YYYY-MM-DD``) or an ISO
    datetime string. The datetime variant is truncated to the date component.
    ``ValueError`` is raised for any unparseable input.
    """

    if not isinstance(raw, str):
        raise ValueError("Date value must be a string")

    value = raw.strip()
    if not value:
        raise ValueError("Date value is empty")

    try:
        return date.fromisoformat(value).isoformat()
    except ValueError:
        pass

    try:
        normalised = value.replace("Z", "+00:00")
        return datetime.fromisoformat(normalised).date().isoformat()
    except ValueError as exc:
        raise ValueError(f"Invalid ISO date: {raw}") from exc


def sanitize_text(value: str) -> str:
    """Strip all markup and keep the text content.

    Entity-encoded markup is decoded and stripped too, and the result is
    stable: sanitizing it again returns it unchanged.
    """

    if not value:
        return ""
    text = value
    previous = None
    while text != previous:
        previous = text
        cleaned = bleach.clean(html.unescape(text), tags=set(), attributes={}, strip=True)
        text = html.unescape(cleaned)
    return text


def _validate_todos(raw: Any) -> list[Todo]:
    if not isinstance(raw, list):
        raise ValueError("Todos must be a list")
    todos: list[Todo] = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise ValueError("Todo must be an object")
        todo_id = item.get("id")
        text = item.get("text")
        if not isinstance(todo_id, str) or not todo_id:
            raise ValueError("Todo id is required")
        if not isinstance(text, str):
            raise ValueError("Todo text is required")
        completed = item.get("completed", False)
        if not isinstance(completed, bool):
            raise ValueError("Todo completed flag must be a boolean")
        todos.append({"id": todo_id, "text": text, "completed": completed})
    return todos


def _validate_tags(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        raise ValueError("Tags must be a list")
    tags: list[str] = []
    for tag in raw:
        if not isinstance(tag, str) or not tag:
            raise ValueError("Tag cannot be empty")
        tags.append(tag)
    return tags


def validate_entry_payload(payload: Mapping[str, Any]) -> EntryPayload:
    """Check an entry payload before it is written anywhere.

    Mirrors the server's acceptance rules so an invalid save fails locally
    instead of being queued. Free text is reduced to plain text.
    """

    mood = payload.get("mood")
    if isinstance(mood, Mood):
        mood = mood.value
    if mood not in Mood.values():
        raise ValueError("Invalid mood value")

    cleaned: EntryPayload = {"mood": mood}
    for field in ("title", "text"):
        value = payload.get(field)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(f"{field.capitalize()} must be a string")
        cleaned[field] = sanitize_text(value)  # type: ignore[literal-required]

    if payload.get("tags") is not None:
        cleaned["tags"] = _validate_tags(payload["tags"])
    if payload.get("todos") is not None:
        cleaned["todos"] = _validate_todos(payload["todos"])
    return cleaned
