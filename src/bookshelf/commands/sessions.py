"""Reading session command implementations."""

from datetime import datetime, timezone

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bookshelf.api import LibraryService
from bookshelf.models import ReadingSession, SessionFilter


def format_timestamp(timestamp_ms: int) -> str:
    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M")


def format_duration(duration_ms: int) -> str:
    minutes = round(duration_ms / 60_000)
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m" if hours else f"{minutes}m"


def execute_session_add(service: LibraryService, session: ReadingSession, console: Console) -> None:
    """Execute the sessions add command."""
    service.add_reading_session(session)
    console.print(
        f"[green]Recorded[/] {format_duration(session.duration)} "
        f"for book {session.book_id}"
    )


def execute_session_list(
    service: LibraryService,
    session_filter: SessionFilter,
    console: Console,
) -> None:
    """Execute the sessions list command."""
    sessions = service.get_reading_sessions(session_filter)
    if not sessions:
        console.print("[dim]No reading sessions[/]")
        return

    table = Table(title="Reading Sessions (UTC)", show_header=True, header_style="bold cyan")
    table.add_column("Book", style="dim", justify="right")
    table.add_column("Start", style="white")
    table.add_column("End", style="white")
    table.add_column("Duration", justify="right", style="green")
    table.add_column("Pages", justify="right")

    for session in sessions:
        table.add_row(
            str(session.book_id),
            format_timestamp(session.start),
            format_timestamp(session.end),
            format_duration(session.duration),
            "" if session.pages is None else str(session.pages),
        )
    console.print(table)


def execute_session_stats(
    service: LibraryService,
    session_filter: SessionFilter,
    console: Console,
) -> None:
    """Execute the sessions stats command."""
    stats = service.reading_stats(session_filter)
    if not stats.session_count:
        console.print("[dim]No reading sessions[/]")
        return

    lines = [
        f"[dim]Sessions:[/] {stats.session_count}",
        f"[dim]Total time:[/] {stats.total_minutes} min",
        f"[dim]Total pages:[/] {stats.total_pages}",
        f"[dim]Active days:[/] {len(stats.days)}",
        f"[dim]Average per day:[/] {stats.average_minutes_per_day} min",
    ]
    if stats.best_day is not None:
        lines.append(f"[dim]Best day:[/] {stats.best_day.date} ({stats.best_day.minutes} min)")
    console.print(Panel("\n".join(lines), title="Reading Stats", border_style="green"))

    summaries = service.reading_summaries(session_filter)
    table = Table(title="By Book", show_header=True, header_style="bold cyan")
    table.add_column("Book", style="dim", justify="right")
    table.add_column("Sessions", justify="right")
    table.add_column("Time", justify="right", style="green")
    table.add_column("Pages", justify="right")
    for summary in summaries:
        table.add_row(
            str(summary.book_id),
            str(summary.session_count),
            format_duration(summary.total_duration),
            str(summary.total_pages),
        )
    console.print(table)
