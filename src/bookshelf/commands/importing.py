"""Import, duplicate-check and scan command implementations."""

from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from bookshelf.api import LibraryService
from bookshelf.errors import LibraryError
from bookshelf.models import (
    CandidateMetadata,
    Classification,
    DuplicateVerdict,
    ImportResult,
    ImportStatus,
)


def verdict_style(verdict: DuplicateVerdict) -> str:
    if verdict.classification == Classification.EXACT:
        return "red"
    if verdict.classification == Classification.PROBABLE:
        return "yellow"
    return "green"


def display_verdict(verdict: DuplicateVerdict, console: Console) -> None:
    style = verdict_style(verdict)
    lines = [
        f"[bold {style}]{verdict.classification.value.upper()}[/] "
        f"[dim](confidence {verdict.confidence:.0%})[/]",
        verdict.message,
    ]
    if verdict.book_id is not None:
        lines.append(f"[dim]Book id:[/] {verdict.book_id}")
    if verdict.matched_signals:
        signals = ", ".join(signal.value for signal in verdict.matched_signals)
        lines.append(f"[dim]Matched signals:[/] {signals}")
    console.print(Panel("\n".join(lines), title="Duplicate Check", border_style=style))


def display_import_result(path_name: str, result: ImportResult, console: Console) -> None:
    if result.status == ImportStatus.IMPORTED:
        book = result.book
        console.print(f"[green]Imported[/] {path_name} as [bold]{book.title}[/] (id {book.id})")
        for warning in result.warnings:
            console.print(f"  [yellow]Warning: {warning.href}: {warning.message}[/]")
    elif result.status == ImportStatus.BLOCKED:
        console.print(f"[yellow]Blocked[/] {path_name}: {result.verdict.message}")
        console.print("  [dim]Use --force to import anyway[/]")
    else:
        console.print(f"[dim]Cancelled {path_name}[/]")


def execute_import(
    service: LibraryService,
    paths: list[Path],
    force: bool,
    folder_id: int | None,
    quiet: bool,
    console: Console,
) -> int:
    """Import each file in turn. Returns the number of failed imports."""
    failures = 0
    for path in paths:
        try:
            if quiet:
                result = service.import_from_path(path, force=force, folder_id=folder_id)
            else:
                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    console=console,
                    transient=True,
                ) as progress:
                    progress.add_task(f"Importing {path.name}...", total=None)
                    result = service.import_from_path(path, force=force, folder_id=folder_id)
        except LibraryError as e:
            console.print(f"[red]Error: {path.name}: {e.message}[/]")
            failures += 1
            continue

        if not quiet or result.status != ImportStatus.IMPORTED:
            display_import_result(path.name, result, console)
    return failures


def execute_check(
    service: LibraryService,
    candidate: CandidateMetadata,
    console: Console,
) -> DuplicateVerdict:
    """Execute the check command."""
    verdict = service.check_duplicate(candidate)
    display_verdict(verdict, console)
    return verdict


def execute_scan(
    service: LibraryService,
    folder: Path,
    watch: bool,
    interval: float,
    iterations: int | None,
    console: Console,
) -> None:
    """Execute the scan command."""
    if watch:
        console.print(f"[dim]Watching {folder} every {interval:g}s (Ctrl+C to stop)[/]")
        service.watch_folder(folder, interval, iterations=iterations)
        return

    report = service.scan_folder(folder)
    table = Table(title=f"Scan of {folder}", show_header=True, header_style="bold cyan")
    table.add_column("File", style="white")
    table.add_column("Result")

    for name in report.imported:
        table.add_row(name, "[green]imported[/]")
    for name in report.blocked:
        table.add_row(name, "[yellow]blocked[/]")
    for name, reason in report.failed.items():
        table.add_row(name, f"[red]failed: {reason}[/]")

    if table.row_count:
        console.print(table)
    console.print(f"[dim]{report.skipped} file(s) unchanged since last scan[/]")
