import logging
import subprocess
import sys
import webbrowser
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from lms.config import settings
from lms.exceptions import InvalidInputError, LedgerError, NotFoundError, OutOfStockError
from lms.library import Library
from lms.seed import build_library
from lms.utils.ui_helpers import (
    format_borrower_lines,
    format_date,
    format_money,
    print_book_detail,
    print_books_result,
    print_loans_result,
    print_members_result,
    print_stats_result,
    set_output_mode,
)
from lms.utils.validators import InputValidator

APP_NAME = "Library CLI"

console = Console()


class LibraryManager:
    """Holds the one seeded ledger for the lifetime of the process."""

    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls) -> Library:
        if cls._instance is None:
            cls._instance = build_library(settings)
        return cls._instance

    @classmethod
    def set_instance(cls, library: Optional[Library]) -> None:
        cls._instance = library


def report_error(action: str, error: LedgerError) -> None:
    """Turn a ledger rejection into a user-facing message."""
    if isinstance(error, OutOfStockError):
        print(f"Cannot {action}: out of stock.")
        print(f"Earliest next-available date: {format_date(error.available_on)}")
    elif isinstance(error, NotFoundError):
        print(f"Cannot {action}: {error}")
    elif isinstance(error, InvalidInputError):
        print(f"Invalid input: {error}")
    else:
        print(f"Cannot {action}: {error}")


def issue_book(lib: Library, book_id: int, member_id: int, days: int) -> None:
    try:
        loan = lib.issue(book_id, member_id, days)
    except LedgerError as e:
        report_error("issue", e)
        return
    book = lib.find_book(book_id)
    period = (loan.due_at - loan.issued_at).days
    print(f"Issued successfully. Loan ID: {loan.id}. Due date: {format_date(loan.due_at)}")
    print(f"Estimated rental for {period} days: {format_money(book.rental_cost(period))}")


def buy_book(lib: Library, book_id: int, buyer_id: int) -> None:
    try:
        sale = lib.buy(book_id, buyer_id)
    except LedgerError as e:
        report_error("buy", e)
        return
    book = lib.find_book(book_id)
    print(f'Purchased 1 copy of "{book.title}" for {format_money(sale.unit_price)}')


def return_book(lib: Library, loan_id: int) -> None:
    try:
        lib.return_loan(loan_id)
    except LedgerError as e:
        report_error("return", e)
        return
    print("Returned. Thank you!")


# --- Typer CLI app ---
app = typer.Typer(help="Library CLI")


@app.callback(invoke_without_command=True)
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
):
    """Search, borrow and buy books. Runs the interactive menu without a command."""
    if output:
        set_output_mode(output)
    if ctx.invoked_subcommand is None:
        run_menu()


@app.command("list")
def cli_list():
    """List all books with their availability."""
    lib = LibraryManager.get_instance()
    print_books_result([(b, lib.available_copies(b.id)) for b in lib.list_books()])


@app.command("search")
def cli_search(query: str = typer.Argument(..., help="Part of the title")):
    """Search books by title (case-insensitive)."""
    lib = LibraryManager.get_instance()
    print_books_result([(b, lib.available_copies(b.id)) for b in lib.search_books(query)])


@app.command("show")
def cli_show(book_id: int):
    """Show price, stock and, when out of stock, the ETA and current borrowers."""
    lib = LibraryManager.get_instance()
    try:
        status = lib.book_status(book_id)
    except LedgerError as e:
        report_error("show book", e)
        return
    print_book_detail(status)


@app.command("members")
def cli_members():
    """List registered members."""
    print_members_result(LibraryManager.get_instance().list_members())


@app.command("loans")
def cli_loans(show_all: bool = typer.Option(False, "--all", "-a", help="Include returned loans")):
    """List outstanding loans."""
    lib = LibraryManager.get_instance()
    books = {b.id: b for b in lib.list_books()}
    print_loans_result(lib.list_loans(active_only=not show_all), books)


@app.command("issue")
def cli_issue(
    book_id: int,
    member_id: int,
    days: int = typer.Option(0, "--days", "-d", help="Days to borrow (0 = default period)"),
):
    """Issue a copy of a book to a member."""
    issue_book(LibraryManager.get_instance(), book_id, member_id, days)


@app.command("buy")
def cli_buy(book_id: int, buyer_id: int):
    """Sell a copy of a book to a member."""
    buy_book(LibraryManager.get_instance(), book_id, buyer_id)


@app.command("return")
def cli_return(loan_id: int):
    """Return a borrowed copy by loan id."""
    return_book(LibraryManager.get_instance(), loan_id)


@app.command("price")
def cli_price(book_id: int, price: str = typer.Argument(..., help="New purchase price, e.g. 549.50")):
    """Change a book's purchase price. Recorded sales keep the price they were sold at."""
    lib = LibraryManager.get_instance()
    try:
        book = lib.update_book_price(book_id, InputValidator.parse_price(price))
    except LedgerError as e:
        report_error("change price", e)
        return
    print(f"Price of \"{book.title}\" is now {format_money(book.price)}")


@app.command("stats")
def cli_stats():
    """Show library statistics."""
    print_stats_result(LibraryManager.get_instance().get_statistics())


@app.command("serve")
def cli_serve(timeout: int = typer.Option(0, "--timeout", help="Seconds to run before stopping (0 = no timeout)")):
    """Start the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        pass

    args = [
        sys.executable,
        "-m", "uvicorn",
        "lms.api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        if timeout and timeout > 0:
            proc = subprocess.Popen(args)
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.terminate()
                proc.wait(timeout=5)
        else:
            subprocess.run(args)
    except FileNotFoundError:
        print("Error: uvicorn could not be started. Make sure it is installed.")


# --- Interactive menu ---
def list_all_books(lib: Library) -> None:
    table = Table(title="📚 All books", show_lines=False, header_style="bold cyan")
    table.add_column("ID", style="magenta", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Price", justify="right")
    table.add_column("Avail", justify="right")
    for book in lib.list_books():
        avail = lib.available_copies(book.id)
        table.add_row(str(book.id), escape(book.title), format_money(book.price), f"{avail}/{book.total_copies}")
    console.print(table)


def ask_int(prompt: str, name: str, default: str = "", positive: bool = False) -> Optional[int]:
    """Prompt for a whole number; prints the problem and returns None on bad input."""
    raw = Prompt.ask(prompt, default=default, show_default=bool(default), console=console)
    parse = InputValidator.parse_id if positive else InputValidator.parse_int
    try:
        return parse(raw, name)
    except InvalidInputError as e:
        console.print(f"[yellow]Invalid input:[/] {escape(str(e))}")
        return None


def show_book_detail(lib: Library, book_id: int) -> None:
    status = lib.book_status(book_id)
    book = status.book
    lines = [
        f"[bold]Title :[/] {escape(book.title)}",
        f"[bold]Author:[/] {escape(book.author)}",
        f"[bold]Price :[/] {format_money(book.price)} | Rental/day: {format_money(book.rental_fee_per_day)}",
    ]
    if status.in_stock:
        lines.append(f"[green]Status: In stock[/] | Available copies: {status.available} of {book.total_copies}")
    else:
        lines.append("[red]Status: Out of stock.[/]")
        lines.append(f"Earliest next-available date: {format_date(status.earliest_return)}")
    console.print(Panel("\n".join(lines), title="📖 Book Detail", border_style="cyan"))

    if not status.in_stock:
        console.print("(Staff) Current borrowers and loan windows:")
        for line in format_borrower_lines(status):
            console.print(escape(line))
        return

    choice = Prompt.ask("[1] Issue Now  [2] Buy Now  [0] Back", choices=["1", "2", "0"], default="0", console=console)
    if choice == "1":
        print_members_result(lib.list_members())
        member_id = ask_int("Enter Member ID", "member id", positive=True)
        if member_id is None:
            return
        days_raw = Prompt.ask(f"Days to borrow (default {lib.default_borrow_days})", default="", show_default=False, console=console)
        try:
            days = InputValidator.parse_days(days_raw)
        except InvalidInputError as e:
            console.print(f"[yellow]Invalid input:[/] {escape(str(e))}")
            return
        issue_book(lib, book.id, member_id, days)
    elif choice == "2":
        print_members_result(lib.list_members())
        buyer_id = ask_int("Enter Buyer (Member) ID", "buyer id", positive=True)
        if buyer_id is not None:
            buy_book(lib, book.id, buyer_id)


def search_and_select(lib: Library) -> None:
    query = Prompt.ask("Search book by title", default="", show_default=False, console=console)
    matches = lib.search_books(query)
    console.print("Matches:")
    if not matches:
        console.print("  No results.")
        return
    print_books_result([(b, lib.available_copies(b.id)) for b in matches])

    book_id = ask_int("Enter Book ID to view details (0 to cancel)", "book id", default="0")
    if not book_id:
        return
    if lib.find_book(book_id) is None:
        console.print("[yellow]Invalid ID.[/]")
        return
    show_book_detail(lib, book_id)


def run_menu():
    """Interactive menu: search -> select -> stock/price/ETA -> issue or buy."""
    lib = LibraryManager.get_instance()

    def render_menu() -> None:
        menu_items = [
            ("1", "Search book", "🔎"),
            ("2", "List all books", "📚"),
            ("3", "Return a book (by Loan ID)", "↩️"),
            ("0", "Exit", "🚪"),
        ]
        table = Table.grid(padding=(0, 2))
        table.add_column(justify="right", style="bold cyan", width=4)
        table.add_column(justify="left", style="white")
        for key, label, icon in menu_items:
            table.add_row(f"[reverse]{key}[/]", f"{icon} {label}")
        console.print(Panel(table, title=settings.app_name, border_style="cyan", box=box.HEAVY, padding=(1, 2)))

    while True:
        render_menu()
        choice = Prompt.ask("Choose", choices=["1", "2", "3", "0"], default="1", console=console)

        if choice == "1":
            search_and_select(lib)
        elif choice == "2":
            list_all_books(lib)
        elif choice == "3":
            loan_id = ask_int("Enter Loan ID to return", "loan id", positive=True)
            if loan_id is not None:
                return_book(lib, loan_id)
        elif choice == "0":
            console.print("[green]Goodbye![/]")
            break
        print()


def run() -> None:
    """Console-script entry point."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    app()


if __name__ == "__main__":
    run()
