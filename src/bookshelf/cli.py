"""Main CLI application."""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from bookshelf.api import LibraryService
from bookshelf.commands.content import execute_content, execute_text
from bookshelf.commands.importing import execute_check, execute_import, execute_scan
from bookshelf.commands.library import (
    execute_books,
    execute_counts,
    execute_folders_list,
    execute_remove,
    execute_update,
)
from bookshelf.commands.sessions import (
    execute_session_add,
    execute_session_list,
    execute_session_stats,
)
from bookshelf.errors import LibraryError
from bookshelf.models import (
    BookStatus,
    BookUpdate,
    CandidateMetadata,
    ReadingSession,
    SessionFilter,
)

app = typer.Typer(
    name="bookshelf",
    help="Import EPUB books into a local library and track your reading.",
    add_completion=False,
)

console = Console()

folders_app = typer.Typer(help="Folder management commands")
app.add_typer(folders_app, name="folders")

sessions_app = typer.Typer(help="Reading session commands")
app.add_typer(sessions_app, name="sessions")

cache_app = typer.Typer(help="Content cache commands")
app.add_typer(cache_app, name="cache")

BookArgument = Annotated[
    Path,
    typer.Argument(
        help="Path to the EPUB file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
]


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def open_service(ctx: typer.Context) -> LibraryService:
    try:
        return LibraryService.open(ctx.obj)
    except (LibraryError, OSError) as e:
        console.print(f"[red]Error: cannot open library: {e}[/]")
        raise typer.Exit(1)


def parse_timestamp(value: str) -> int:
    """Accept epoch milliseconds or an ISO 8601 date/time (naive means UTC)."""
    if value.isdigit():
        return int(value)
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"not a timestamp: {value!r}") from None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


@app.callback()
def main(
    ctx: typer.Context,
    library: Annotated[
        Optional[Path],
        typer.Option(
            "--library",
            "-L",
            help="Library directory (default: $BOOKSHELF_HOME or ~/.bookshelf)",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show debug logging"),
    ] = False,
) -> None:
    """Import EPUB books into a local library and track your reading."""
    configure_logging(verbose)
    ctx.obj = library


@app.command("import")
def import_books(
    ctx: typer.Context,
    paths: Annotated[
        list[Path],
        typer.Argument(
            help="EPUB files to import",
            exists=True,
            file_okay=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Import even if the book looks like a duplicate"),
    ] = False,
    folder: Annotated[
        Optional[int],
        typer.Option("--folder", help="Folder id to file the imported books under"),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Only report blocked or failed imports"),
    ] = False,
) -> None:
    """Import EPUB files into the library."""
    service = open_service(ctx)
    try:
        failures = execute_import(service, paths, force, folder, quiet, console)
    finally:
        service.close()
    if failures:
        raise typer.Exit(1)


@app.command()
def check(
    ctx: typer.Context,
    title: Annotated[str, typer.Option("--title", "-t", help="Book title")],
    author: Annotated[str, typer.Option("--author", "-a", help="Author line")] = "",
    isbn: Annotated[Optional[str], typer.Option("--isbn", help="ISBN-10 or ISBN-13")] = None,
    file_hash: Annotated[
        Optional[str], typer.Option("--hash", help="SHA-256 of the file")
    ] = None,
    file_size: Annotated[
        Optional[int], typer.Option("--size", help="File size in bytes", min=0)
    ] = None,
) -> None:
    """Check whether a book is already in the library without importing it."""
    service = open_service(ctx)
    candidate = CandidateMetadata(
        title=title, author=author, isbn=isbn, file_hash=file_hash, file_size=file_size
    )
    try:
        execute_check(service, candidate, console)
    except LibraryError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)


@app.command()
def content(
    ctx: typer.Context,
    book_path: BookArgument,
    toc: Annotated[
        bool, typer.Option("--toc/--no-toc", help="Show the table of contents")
    ] = True,
) -> None:
    """Display book metadata, table of contents and chapters."""
    service = open_service(ctx)
    try:
        execute_content(service, book_path, toc, console)
    except LibraryError as e:
        console.print(f"[red]Error reading file: {e}[/]")
        raise typer.Exit(1)


@app.command()
def text(
    ctx: typer.Context,
    book_path: BookArgument,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="Output format: markdown, text, or html"),
    ] = "markdown",
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write to a file instead of the terminal"),
    ] = None,
) -> None:
    """Print the reading text of a book."""
    if output_format not in ("markdown", "text", "html"):
        console.print(
            f"[red]Invalid format: {output_format}. Use markdown, text, or html.[/]"
        )
        raise typer.Exit(1)

    service = open_service(ctx)
    try:
        execute_text(service, book_path, output_format, output, console)  # type: ignore[arg-type]
    except LibraryError as e:
        console.print(f"[red]Error reading file: {e}[/]")
        raise typer.Exit(1)


@app.command()
def books(
    ctx: typer.Context,
    folder: Annotated[
        Optional[int], typer.Option("--folder", help="Only books in this folder id")
    ] = None,
) -> None:
    """List books in the library."""
    execute_books(open_service(ctx), folder, console)


@app.command()
def counts(ctx: typer.Context) -> None:
    """Show how many books have each reading status."""
    execute_counts(open_service(ctx), console)


@app.command()
def update(
    ctx: typer.Context,
    book_id: Annotated[int, typer.Argument(help="Book id")],
    title: Annotated[Optional[str], typer.Option("--title", help="New title")] = None,
    author: Annotated[Optional[str], typer.Option("--author", help="New author line")] = None,
    progress: Annotated[
        Optional[float],
        typer.Option("--progress", help="Reading progress from 0 to 1", min=0.0, max=1.0),
    ] = None,
    status: Annotated[
        Optional[BookStatus], typer.Option("--status", help="Reading status")
    ] = None,
    folder: Annotated[
        Optional[int], typer.Option("--folder", help="Move the book to this folder id")
    ] = None,
    unfile: Annotated[
        bool, typer.Option("--unfile", help="Remove the book from its folder")
    ] = False,
) -> None:
    """Update a book's metadata, progress, status or folder."""
    fields = {
        "title": title,
        "author": author,
        "progress": progress,
        "status": status,
        "folder_id": folder,
    }
    values = {key: value for key, value in fields.items() if value is not None}
    if unfile:
        values["folder_id"] = None

    try:
        updated = execute_update(open_service(ctx), book_id, BookUpdate(**values), console)
    except LibraryError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)
    if not updated:
        raise typer.Exit(1)


@app.command()
def remove(
    ctx: typer.Context,
    book_id: Annotated[int, typer.Argument(help="Book id")],
) -> None:
    """Remove a book, its reading sessions and its stored files."""
    if not execute_remove(open_service(ctx), book_id, console):
        raise typer.Exit(1)


@app.command()
def scan(
    ctx: typer.Context,
    folder: Annotated[
        Optional[Path],
        typer.Argument(
            help="Folder to scan (default: the configured import folder)",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ] = None,
    watch: Annotated[
        bool, typer.Option("--watch", "-w", help="Keep polling the folder")
    ] = False,
    interval: Annotated[
        Optional[float],
        typer.Option("--interval", help="Seconds between scans when watching", min=0.1),
    ] = None,
    iterations: Annotated[
        Optional[int],
        typer.Option("--iterations", help="Stop watching after this many scans", min=1),
    ] = None,
) -> None:
    """Import new EPUB files found in a folder."""
    service = open_service(ctx)
    folder = folder or service.settings.default_import_folder
    if folder is None:
        console.print("[red]Error: no folder given and no default import folder configured[/]")
        raise typer.Exit(1)

    try:
        execute_scan(
            service,
            folder,
            watch,
            interval or service.settings.scan_interval_seconds,
            iterations,
            console,
        )
    except KeyboardInterrupt:
        console.print("[dim]Stopped watching[/]")
    finally:
        service.close()


@folders_app.command("list")
def folders_list(ctx: typer.Context) -> None:
    """List folders."""
    execute_folders_list(open_service(ctx), console)


@folders_app.command("add")
def folders_add(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Folder name")],
) -> None:
    """Create a folder."""
    try:
        folder = open_service(ctx).add_folder(name)
    except (LibraryError, ValueError) as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Created folder[/] {folder.name} (id {folder.id})")


@folders_app.command("rename")
def folders_rename(
    ctx: typer.Context,
    folder_id: Annotated[int, typer.Argument(help="Folder id")],
    name: Annotated[str, typer.Argument(help="New name")],
) -> None:
    """Rename a folder."""
    try:
        renamed = open_service(ctx).rename_folder(folder_id, name)
    except (LibraryError, ValueError) as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)
    if not renamed:
        console.print(f"[red]No folder with id {folder_id}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Renamed folder {folder_id} to[/] {name}")


@folders_app.command("delete")
def folders_delete(
    ctx: typer.Context,
    folder_id: Annotated[int, typer.Argument(help="Folder id")],
) -> None:
    """Delete a folder. Its books stay in the library."""
    if not open_service(ctx).delete_folder(folder_id):
        console.print(f"[red]No folder with id {folder_id}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted folder {folder_id}[/]")


@sessions_app.command("add")
def sessions_add(
    ctx: typer.Context,
    book_id: Annotated[int, typer.Argument(help="Book id")],
    start: Annotated[
        str, typer.Option("--start", help="Start time (epoch ms or ISO 8601)")
    ],
    end: Annotated[str, typer.Option("--end", help="End time (epoch ms or ISO 8601)")],
    pages: Annotated[
        Optional[int], typer.Option("--pages", help="Pages read", min=0)
    ] = None,
) -> None:
    """Record a reading session."""
    session = ReadingSession(
        book_id=book_id, start=parse_timestamp(start), end=parse_timestamp(end), pages=pages
    )
    try:
        execute_session_add(open_service(ctx), session, console)
    except LibraryError as e:
        console.print(f"[red]Error: {e}[/]")
        raise typer.Exit(1)


@sessions_app.command("list")
def sessions_list(
    ctx: typer.Context,
    book_id: Annotated[Optional[int], typer.Option("--book", help="Only this book id")] = None,
    since: Annotated[
        Optional[str], typer.Option("--since", help="Sessions ending at or after this time")
    ] = None,
    until: Annotated[
        Optional[str], typer.Option("--until", help="Sessions starting at or before this time")
    ] = None,
) -> None:
    """List reading sessions ordered by start time."""
    session_filter = SessionFilter(
        book_id=book_id,
        since=parse_timestamp(since) if since else None,
        until=parse_timestamp(until) if until else None,
    )
    execute_session_list(open_service(ctx), session_filter, console)


@sessions_app.command("stats")
def sessions_stats(
    ctx: typer.Context,
    book_id: Annotated[Optional[int], typer.Option("--book", help="Only this book id")] = None,
    since: Annotated[
        Optional[str], typer.Option("--since", help="Sessions ending at or after this time")
    ] = None,
    until: Annotated[
        Optional[str], typer.Option("--until", help="Sessions starting at or before this time")
    ] = None,
) -> None:
    """Show reading totals, daily statistics and per-book summaries."""
    session_filter = SessionFilter(
        book_id=book_id,
        since=parse_timestamp(since) if since else None,
        until=parse_timestamp(until) if until else None,
    )
    execute_session_stats(open_service(ctx), session_filter, console)


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Clear all cached content."""
    count = open_service(ctx).cache.clear_cache()

    if count > 0:
        console.print(f"[green]Cleared {count} cached file(s)[/]")
    else:
        console.print("[dim]No cache to clear[/]")


@cache_app.command("list")
def cache_list(ctx: typer.Context) -> None:
    """List all cached files."""
    cached = open_service(ctx).cache.list_cached()

    if not cached:
        console.print("[dim]No cached files[/]")
        return

    table = Table(title="Cached Files", show_header=True, header_style="bold cyan")
    table.add_column("Path", style="white")
    table.add_column("Hash", style="dim", width=12)

    for path, file_hash in cached:
        # Truncate path for display
        display_path = path if len(path) < 60 else "..." + path[-57:]
        table.add_row(display_path, file_hash[:12])

    console.print(table)


if __name__ == "__main__":
    app()
