import os
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

from lms.book import Book, BookStatus, Loan, Member
from lms.config import settings

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LMS_CLI_OUTPUT"

DATE_FORMAT = "%Y-%m-%d"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def format_money(amount: Decimal, symbol: Optional[str] = None) -> str:
    symbol = settings.currency_symbol if symbol is None else symbol
    return f"{symbol}{amount:.2f}"


def format_date(when: Optional[datetime]) -> str:
    """YYYY-MM-DD, or a single dash when there is no date."""
    if when is None:
        return "-"
    return when.strftime(DATE_FORMAT)


def _book_row(book: Book, available: int) -> Dict[str, Any]:
    return {
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "price": str(book.price),
        "available": available,
        "total_copies": book.total_copies,
    }


def print_books_result(rows: List[tuple]) -> None:
    """Print ``(book, available)`` pairs in the current output mode.
    - plain: '[id] Title | Price ₹x | Avail a/t' lines, or 'No results.'
    - json: JSON array
    - rich: Rich table
    """
    mode = get_output_mode()

    if not rows:
        print("No results.")
        return

    if mode == "json":
        print(json.dumps([_book_row(b, a) for b, a in rows], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("ID", style="magenta", no_wrap=True)
        table.add_column("Title", style="white")
        table.add_column("Price", justify="right")
        table.add_column("Avail", justify="right")
        for b, a in rows:
            style = "green" if a > 0 else "red"
            table.add_row(str(b.id), escape(b.title), format_money(b.price), f"[{style}]{a}/{b.total_copies}[/]")
        _console.print(table)
    else:
        for b, a in rows:
            print(f"  [{b.id}] {b.title}  | Price {format_money(b.price)} | Avail {a}/{b.total_copies}")


def print_book_detail(status: BookStatus) -> None:
    """Book detail screen: price, stock and, when out of stock, ETA and borrowers."""
    b = status.book
    mode = get_output_mode()

    if mode == "json":
        payload = _book_row(b, status.available)
        payload["rental_fee_per_day"] = str(b.rental_fee_per_day)
        payload["earliest_return"] = format_date(status.earliest_return)
        payload["active_loans"] = [
            {
                "loan_id": loan.loan_id,
                "member_id": loan.member_id,
                "member_name": loan.member_name,
                "issued_at": format_date(loan.issued_at),
                "due_at": format_date(loan.due_at),
            }
            for loan in status.active_loans
        ]
        print(json.dumps(payload, ensure_ascii=False))
        return

    lines = [
        f"Title : {b.title}",
        f"Author: {b.author}",
        f"Price : {format_money(b.price)} | Rental/day: {format_money(b.rental_fee_per_day)}",
    ]
    if status.in_stock:
        lines.append(f"Status: In stock | Available copies: {status.available} of {b.total_copies}")
    else:
        lines.append("Status: Out of stock.")
        lines.append(f"Earliest next-available date: {format_date(status.earliest_return)}")
        lines.append("(Staff) Current borrowers and loan windows:")
        lines.extend(format_borrower_lines(status))

    if mode == "rich":
        _console.print(Panel(
            "\n".join(escape(line) for line in lines),
            title="📖 Book Detail",
            border_style="green" if status.in_stock else "yellow",
        ))
    else:
        print("=== Book Detail ===")
        for line in lines:
            print(line)


def format_borrower_lines(status: BookStatus) -> List[str]:
    if not status.active_loans:
        return ["  (none)"]
    return [
        f"  - Borrower: {loan.member_name or '(unknown)'} | "
        f"From: {format_date(loan.issued_at)} To: {format_date(loan.due_at)}"
        for loan in status.active_loans
    ]


def print_members_result(members: List[Member]) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps([m.to_dict() for m in members], ensure_ascii=False))
        return
    print("Members:")
    for m in members:
        print(f"  {m.id}) {m.name}")


def print_loans_result(loans: List[Loan], books: Dict[int, Book]) -> None:
    mode = get_output_mode()

    if not loans:
        print("No loans.")
        return

    if mode == "json":
        print(json.dumps([loan.to_dict() for loan in loans], ensure_ascii=False))
    elif mode == "rich":
        table = Table(title="📒 Loans", header_style="bold cyan")
        for col in ("Loan", "Book", "Member", "Issued", "Due", "Returned"):
            table.add_column(col)
        for loan in loans:
            book = books.get(loan.book_id)
            table.add_row(
                str(loan.id),
                escape(book.title) if book else str(loan.book_id),
                str(loan.member_id),
                format_date(loan.issued_at),
                format_date(loan.due_at),
                format_date(loan.returned_at),
            )
        _console.print(table)
    else:
        for loan in loans:
            book = books.get(loan.book_id)
            title = book.title if book else f"book {loan.book_id}"
            print(
                f"  #{loan.id} {title} | Member {loan.member_id} | "
                f"{format_date(loan.issued_at)} -> {format_date(loan.due_at)} | "
                f"Returned: {format_date(loan.returned_at)}"
            )


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print statistics in the current output mode.
    - plain: one 'Label: value' line per metric
    - json: JSON object
    - rich: Panel with the main metrics
    """
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    labels = [
        ("total_titles", "Titles"),
        ("total_copies", "Total Copies"),
        ("available_copies", "Available Copies"),
        ("active_loans", "Active Loans"),
        ("total_sales", "Sales"),
        ("sales_revenue", "Revenue"),
    ]

    def render(key: str) -> str:
        value = stats.get(key, 0)
        return format_money(value) if key == "sales_revenue" else str(value)

    if mode == "json":
        print(json.dumps({k: (str(v) if isinstance(v, Decimal) else v) for k, v in stats.items()}, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {render(key)}" for key, label in labels)
        _console.print(Panel.fit(content, title="📊 Stats", border_style="blue"))
    else:
        for key, label in labels:
            print(f"{label}: {render(key)}")
