from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from moodjournal.__main__ import app
from moodjournal.app.services.container import SessionServices

from tests.conftest import BASE_URL, FakeJournalServer

runner = CliRunner()


@pytest.fixture
def invoke(monkeypatch: pytest.MonkeyPatch, server: FakeJournalServer, db_path: Path):
    original = SessionServices.create

    def create(**kwargs):
        return original(inner_transport=server.transport, **kwargs)

    monkeypatch.setattr(SessionServices, "create", create)

    def _invoke(*args: str):
        return runner.invoke(
            app, ["--base-url", BASE_URL, "--db", str(db_path), *args]
        )

    return _invoke


def test_pending_on_empty_store(invoke) -> None:
    result = invoke("pending")

    assert result.exit_code == 0
    assert "Nothing waiting to sync" in result.output


def test_offline_save_is_listed_then_synced(invoke, server: FakeJournalServer) -> None:
    server.online = False
    saved = invoke("save", "2024-03-05", "--mood", "good", "--tag", "work")
    pending = invoke("pending")
    server.online = True
    synced = invoke("sync")

    assert saved.exit_code == 0
    assert "offline" in saved.output
    assert "2024-03-05" in pending.output
    assert synced.exit_code == 0
    assert "Delivered 1" in synced.output
    assert server.entries["2024-03-05"]["tags"] == ["work"]


def test_month_shows_moods(invoke, server: FakeJournalServer) -> None:
    server.seed("2024-03-05", "good")

    result = invoke("month", "2024-03")

    assert result.exit_code == 0
    assert "March 2024" in result.output
    assert "good" in result.output


def test_invalid_mood_is_rejected(invoke) -> None:
    result = invoke("save", "2024-03-05", "--mood", "ecstatic")

    assert result.exit_code != 0


def test_entry_not_found(invoke) -> None:
    result = invoke("entry", "2024-03-05")

    assert result.exit_code == 0
    assert "No entry for 2024-03-05" in result.output
