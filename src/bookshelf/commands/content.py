"""Content and text command implementations."""

from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from bookshelf.api import LibraryService
from bookshelf.core.content_processor import TextFormat
from bookshelf.models import BookContent


def display_toc(content: BookContent, console: Console) -> None:
    """Display the navigation tree."""
    table = Table(title="Table of Contents", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", style="white")
    table.add_column("Target", style="dim")

    for i, entry in enumerate(content.toc):
        table.add_row(str(i + 1), "  " * entry.level + entry.title, entry.href)

    console.print(table)


def display_chapters(content: BookContent, console: Console) -> None:
    table = Table(title="Chapters", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", style="white")
    table.add_column("Words", justify="right", style="green")

    for chapter in content.chapters:
        title = chapter.title
        if chapter.warning:
            title = f"{title} [yellow](unreadable)[/]"
        table.add_row(str(chapter.order + 1), title, f"{chapter.word_count:,}")

    console.print(table)


def execute_content(
    service: LibraryService,
    book_path: Path,
    show_toc: bool,
    console: Console,
) -> BookContent:
    """Execute the content command."""
    content = service.get_content(book_path)

    info_lines = [
        f"[bold]{content.title}[/]",
        "",
        f"[dim]Author(s):[/] {content.author}",
        f"[dim]Language:[/] {content.language}",
        f"[dim]Chapters:[/] {len(content.chapters)}",
        f"[dim]TOC entries:[/] {len(content.toc)}",
    ]
    if content.warnings:
        info_lines.append("")
        for warning in content.warnings:
            info_lines.append(f"[yellow]Warning: {warning.href}: {warning.message}[/]")

    console.print()
    console.print(Panel("\n".join(info_lines), title="Book Information", border_style="green"))
    console.print()

    if show_toc and content.toc:
        display_toc(content, console)
        console.print()
    display_chapters(content, console)
    return content


def execute_text(
    service: LibraryService,
    book_path: Path,
    output_format: TextFormat,
    output: Path | None,
    console: Console,
) -> None:
    """Execute the text command."""
    text = service.get_text(book_path, output_format)
    if output is None:
        console.print(text, markup=False, highlight=False)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]Wrote {len(text):,} characters to {output}[/]")
