"""Book and folder command implementations."""

from rich.console import Console
from rich.table import Table

from bookshelf.api import LibraryService
from bookshelf.models import BookRecord, BookUpdate, Folder


def display_books(books: list[BookRecord], folders: list[Folder], console: Console) -> None:
    folder_names = {folder.id: folder.name for folder in folders}
    table = Table(title="Library", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Title", style="white")
    table.add_column("Author")
    table.add_column("Status")
    table.add_column("Progress", justify="right", style="green")
    table.add_column("Folder", style="dim")

    for book in books:
        title = f"{book.title} [dim](forced)[/]" if book.forced else book.title
        table.add_row(
            str(book.id),
            title,
            book.author,
            book.status.value.replace("_", " "),
            f"{book.progress:.0%}",
            folder_names.get(book.folder_id, "") if book.folder_id else "",
        )

    console.print(table)


def execute_books(service: LibraryService, folder_id: int | None, console: Console) -> None:
    """Execute the books command."""
    books = service.get_books(folder_id)
    if not books:
        console.print("[dim]No books in library[/]")
        return
    display_books(books, service.get_folders(), console)


def execute_counts(service: LibraryService, console: Console) -> None:
    """Execute the counts command."""
    counts = service.get_book_counts()
    table = Table(title="Books by Status", show_header=True, header_style="bold cyan")
    table.add_column("Status", style="white")
    table.add_column("Count", justify="right", style="green")
    for status, count in counts.model_dump().items():
        table.add_row(status.replace("_", " "), str(count))
    console.print(table)


def execute_update(
    service: LibraryService,
    book_id: int,
    update: BookUpdate,
    console: Console,
) -> bool:
    """Execute the update command."""
    if not update.model_fields_set:
        console.print("[yellow]Nothing to update[/]")
        return False
    if not service.update_book(book_id, update):
        console.print(f"[red]No book with id {book_id}[/]")
        return False
    console.print(f"[green]Updated book {book_id}[/]")
    return True


def execute_remove(service: LibraryService, book_id: int, console: Console) -> bool:
    """Execute the remove command."""
    book = service.get_book(book_id)
    if book is None or not service.delete_book(book_id):
        console.print(f"[red]No book with id {book_id}[/]")
        return False
    console.print(f"[green]Removed[/] {book.title}")
    return True


def execute_folders_list(service: LibraryService, console: Console) -> None:
    folders = service.get_folders()
    if not folders:
        console.print("[dim]No folders[/]")
        return

    table = Table(title="Folders", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim", justify="right")
    table.add_column("Name", style="white")
    table.add_column("Books", justify="right", style="green")
    for folder in folders:
        table.add_row(str(folder.id), folder.name, str(len(service.get_books(folder.id))))
    console.print(table)
