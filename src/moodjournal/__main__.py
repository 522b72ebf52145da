"""Command line client for the offline-capable mood journal."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Awaitable, Callable, TypeVar

import humanize
import typer
from rich.box import ROUNDED
from rich.console import Console
from rich.table import Table

from moodjournal import create_session
from moodjournal.app.api.errors import ApiError, NetworkError
from moodjournal.app.models import Mood, new_todo
from moodjournal.app.services.calendar import get_month_context
from moodjournal.app.services.container import SessionServices
from moodjournal.util import now_ms

T = TypeVar("T")

logger = logging.getLogger(__name__)
console = Console()

MOOD_STYLES = {
    Mood.EXCELLENT.value: "bold green",
    Mood.GOOD.value: "green",
    Mood.NEUTRAL.value: "yellow",
    Mood.BAD.value: "red",
    Mood.TERRIBLE.value: "bold red",
}


@dataclass(slots=True)
class CliOptions:
    base_url: str | None = None
    db_path: Path | None = None


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _run(ctx: typer.Context, action: Callable[[SessionServices], Awaitable[T]]) -> T:
    options: CliOptions = ctx.obj

    async def _main() -> T:
        async with create_session(
            db_path=options.db_path, base_url=options.base_url
        ) as lifecycle:
            return await action(lifecycle.services)

    try:
        return asyncio.run(_main())
    except NetworkError as exc:
        console.print(f"[red]Server unreachable:[/red] {exc}")
        raise typer.Exit(code=2) from exc
    except ApiError as exc:
        console.print(f"[red]{exc.message}[/red] (HTTP {exc.status})")
        raise typer.Exit(code=1) from exc


def _parse_month(value: str) -> tuple[int, int]:
    try:
        year, month = (int(part) for part in value.split("-", 1))
    except ValueError as exc:
        raise typer.BadParameter("Expected YYYY-MM") from exc
    if not 1 <= month <= 12:
        raise typer.BadParameter("Month must be between 01 and 12")
    return year, month


def _mood_label(mood: str | None) -> str:
    if not mood:
        return ""
    style = MOOD_STYLES.get(mood, "")
    return f"[{style}]{mood}[/{style}]" if style else mood


app = typer.Typer(help="Keep a mood journal that works offline.")


@app.callback()
def main_callback(
    ctx: typer.Context,
    base_url: str | None = typer.Option(None, help="Base URL of the journal API."),
    db: Path | None = typer.Option(
        None, "--db", help="Path to the offline SQLite store.", dir_okay=False
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose logging."),
) -> None:
    _setup_logging(verbose)
    ctx.obj = CliOptions(base_url=base_url, db_path=db)


@app.command("signin")
def signin_cmd(
    ctx: typer.Context,
    username: str = typer.Argument(..., help="Account name."),
    password: str = typer.Option(..., prompt=True, hide_input=True),
) -> None:
    """Sign in and remember the session for later commands."""

    _run(ctx, lambda services: services.sign_in(username, password))
    console.print(f"Signed in as [bold]{username}[/bold]")


@app.command("signout")
def signout_cmd(ctx: typer.Context) -> None:
    """Sign out and wipe all offline data."""

    _run(ctx, lambda services: services.sign_out())
    console.print("Signed out; offline data cleared")


@app.command("month")
def month_cmd(
    ctx: typer.Context,
    month: str | None = typer.Argument(None, help="Month to show (YYYY-MM)."),
) -> None:
    """Show the mood calendar for a month."""

    if month:
        year, month_number = _parse_month(month)
    else:
        today = date.today()
        year, month_number = today.year, today.month

    context = _run(
        ctx, lambda services: get_month_context(services, year, month_number)
    )

    table = Table(
        title=f"{context['month_name']} {context['year']}",
        box=ROUNDED,
        show_header=True,
        show_lines=True,
        padding=(0, 1),
    )
    for weekday in ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"):
        table.add_column(weekday, justify="center", no_wrap=True)
    moods: dict[int, str] = context["moods"]
    for week in context["weeks"]:
        cells = []
        for day in week:
            if day == 0:
                cells.append("")
                continue
            label = f"[bold]{day}[/bold]" if day == context["today_day"] else str(day)
            mood = _mood_label(moods.get(day))
            cells.append(f"{label}\n{mood}" if mood else label)
        table.add_row(*cells)
    console.print(table)

    if context["error"]:
        console.print(f"[red]{context['error_message']}[/red]")
    elif context["stale"]:
        console.print("[dim]Offline: showing saved data[/dim]")


@app.command("entry")
def entry_cmd(
    ctx: typer.Context,
    day: str = typer.Argument(..., help="Entry date (YYYY-MM-DD)."),
) -> None:
    """Show the journal entry for a day."""

    resource = _run(ctx, lambda services: services.data.fetch_entry(day))
    if resource.error is not None:
        console.print(f"[red]{resource.error.message}[/red]")
        raise typer.Exit(code=1)
    entry: dict[str, Any] | None = resource.data
    if not entry:
        console.print(f"No entry for {day}")
        return

    table = Table(box=ROUNDED, show_header=False, padding=(0, 1))
    table.add_column("field", style="dim", no_wrap=True)
    table.add_column("value", overflow="fold")
    table.add_row("date", str(entry.get("date", day)))
    table.add_row("mood", _mood_label(entry.get("mood")))
    if entry.get("title"):
        table.add_row("title", str(entry["title"]))
    if entry.get("text"):
        table.add_row("text", str(entry["text"]))
    if entry.get("tags"):
        table.add_row("tags", ", ".join(entry["tags"]))
    for todo in entry.get("todos") or []:
        mark = "x" if todo.get("completed") else " "
        table.add_row("todo", f"[{mark}] {todo.get('text', '')}")
    console.print(table)
    if resource.stale:
        console.print("[dim]Offline: showing saved data[/dim]")


@app.command("save")
def save_cmd(
    ctx: typer.Context,
    day: str = typer.Argument(..., help="Entry date (YYYY-MM-DD)."),
    mood: Mood = typer.Option(..., "--mood", case_sensitive=False),
    title: str | None = typer.Option(None, help="Entry title."),
    text: str | None = typer.Option(None, help="Entry text."),
    tag: list[str] = typer.Option([], "--tag", help="Tag (repeatable)."),
    todo: list[str] = typer.Option([], "--todo", help="Todo item (repeatable)."),
) -> None:
    """Create or update the entry for a day."""

    payload: dict[str, Any] = {"mood": mood.value}
    if title is not None:
        payload["title"] = title
    if text is not None:
        payload["text"] = text
    if tag:
        payload["tags"] = list(tag)
    if todo:
        payload["todos"] = [new_todo(item) for item in todo]

    result = _run(ctx, lambda services: services.data.save_entry(day, payload))
    if result.queued:
        console.print(f"Saved {day} offline; it will sync when the server is reachable")
        return
    if result.error is not None:
        console.print(f"[red]{result.error.message}[/red]")
        raise typer.Exit(code=1)
    console.print(f"Saved {day} ({_mood_label(mood.value)})")


@app.command("pending")
def pending_cmd(ctx: typer.Context) -> None:
    """List writes waiting to be synced."""

    records = _run(ctx, lambda services: services.store.list_outbox())
    if not records:
        console.print("Nothing waiting to sync")
        return

    now = now_ms()
    table = Table(box=ROUNDED, show_header=True, padding=(0, 1))
    table.add_column("#", justify="right", style="dim")
    table.add_column("target", no_wrap=True)
    table.add_column("request", style="dim")
    table.add_column("status")
    table.add_column("attempts", justify="right")
    table.add_column("queued", no_wrap=True)
    table.add_column("last error", overflow="fold")
    for record in records:
        status = "[red]failed[/red]" if record.status == "failed" else "pending"
        table.add_row(
            str(record.id),
            record.target,
            f"{record.method} {record.url}",
            status,
            str(record.attempts),
            humanize.naturaltime(timedelta(milliseconds=max(0, now - record.enqueued_at))),
            record.last_error or "",
        )
    console.print(table)


@app.command("sync")
def sync_cmd(ctx: typer.Context) -> None:
    """Replay queued writes against the server."""

    report = _run(ctx, lambda services: services.sync.replay())
    if not report.attempted and not report.interrupted:
        console.print("Nothing to sync")
        return
    console.print(
        f"Delivered {len(report.resolved)}, rejected {len(report.failed)}"
    )
    for target in report.failed:
        console.print(f"  [red]rejected[/red] {target}")
    if report.interrupted:
        console.print("[yellow]Server unreachable; remaining writes stay queued[/yellow]")
        raise typer.Exit(code=2)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
