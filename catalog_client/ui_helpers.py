import json
import os
from typing import Any, Dict, List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from catalog_client.models import Book, Reservation

# Environment variable controlling CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def availability_label(book: Book) -> str:
    if book.available_copies > 0:
        return f"{book.available_copies} available"
    return "Out of stock"


def _format_date(value: Any) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def print_book_list(books: List[Book]) -> None:
    """Print books in the current output mode.
    - plain: 'id - Title by Author [availability]' lines
    - json: JSON array of books
    - rich: Rich table
    """
    mode = get_output_mode()

    if not books:
        print("No books found matching your criteria.")
        return

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan", box=box.ROUNDED)
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Author", style="white")
        table.add_column("Categories", style="blue")
        table.add_column("Availability")
        for b in books:
            style = "green" if b.available_copies > 0 else "red"
            table.add_row(b.id, b.title, b.author, ", ".join(b.categories[:2]),
                          f"[{style}]{availability_label(b)}[/]")
        _console.print(table)
    else:
        for b in books:
            print(f"{b.id} - {b.title} by {b.author} [{availability_label(b)}]")


def print_book_detail(book: Book, reserve_label: str, similar: List[Book]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps({
            "book": book.to_dict(),
            "action": reserve_label,
            "similar": [b.to_dict() for b in similar],
        }, ensure_ascii=False))
        return

    lines = [
        f"Title: {book.title}",
        f"Author: {book.author}",
        f"Categories: {', '.join(book.categories) or '-'}",
        f"Available Copies: {book.available_copies} of {book.total_copies}",
    ]
    if book.publication_year:
        lines.append(f"Publication Year: {book.publication_year}")
    if book.isbn:
        lines.append(f"ISBN: {book.isbn}")
    if book.description:
        lines.append(f"Description: {book.description}")
    lines.append(f"Action: {reserve_label}")

    if mode == "rich":
        _console.print(Panel.fit("\n".join(lines), title=f"📖 {book.title}", border_style="blue"))
    else:
        for line in lines:
            print(line)

    if similar:
        print("Similar Books:")
        for b in similar:
            status = "Available" if b.available_copies > 0 else "Out of stock"
            print(f"  {b.id} - {b.title} by {b.author} ({status})")


def print_reservations(reservations: List[Reservation]) -> None:
    mode = get_output_mode()

    if not reservations:
        print("No reservations yet. Start by browsing and reserving some books!")
        return

    if mode == "json":
        print(json.dumps([r.to_dict() for r in reservations], ensure_ascii=False))
    elif mode == "rich":
        colors = {"ACTIVE": "green", "RETURNED": "blue", "OVERDUE": "red"}
        table = Table(title="🔖 Reservations", header_style="bold cyan", box=box.ROUNDED)
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Book")
        table.add_column("Reserved")
        table.add_column("Expected Return")
        table.add_column("Status")
        for r in reservations:
            color = colors.get(r.status.value, "white")
            book = f"{r.book_title} by {r.book_author}" if r.book_title else r.book_id
            table.add_row(r.id, book, _format_date(r.reservation_date),
                          _format_date(r.expected_return_date), f"[{color}]{r.status.value}[/]")
        _console.print(table)
    else:
        for r in reservations:
            book = f"{r.book_title} by {r.book_author}" if r.book_title else r.book_id
            print(f"{r.id} - {book} | reserved {_format_date(r.reservation_date)} | "
                  f"due {_format_date(r.expected_return_date)} | {r.status.value}")


def print_overview(stats: Dict[str, int]) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{k.replace('_', ' ').title()}:[/] {v}" for k, v in stats.items())
        _console.print(Panel.fit(content, title="📊 Overview", border_style="blue"))
    else:
        for key, value in stats.items():
            print(f"{key.replace('_', ' ').title()}: {value}")
