import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel

from bibliodesk.config import settings
from bibliodesk.library import Library
from bibliodesk.models import Book, LoanStatus, User, UserRole
from bibliodesk.results import Result
from bibliodesk.services.reports import open_report
from bibliodesk.ui_helpers import (
    BOOK_COLUMNS,
    LOAN_COLUMNS,
    STAT_LABELS,
    USER_COLUMNS,
    get_output_mode,
    print_records,
    print_stats_result,
    set_output_mode,
)
from bibliodesk.validators import validate_book, validate_user

console = Console()


class LibraryManager:
    """Process-wide Library used by the CLI commands."""

    _instance: Optional[Library] = None

    @classmethod
    def get_instance(cls) -> Library:
        if cls._instance is None:
            cls._instance = Library()
        return cls._instance

    @classmethod
    def use(cls, library: Optional[Library]) -> None:
        """Swap the shared instance (tests point it at a temporary database)."""
        cls._instance = library


def _check(result: Result) -> Any:
    """Return the result's value, or print its message and exit with status 1."""
    if result.is_ok:
        return result.value
    print(result.message)
    raise typer.Exit(code=1)


def _validated(check, *args, **kwargs) -> None:
    try:
        check(*args, **kwargs)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)


# --- Typer CLI application ---
app = typer.Typer(help=f"{settings.app_name} - library management CLI")
book_app = typer.Typer(help="Manage the book catalog.")
user_app = typer.Typer(help="Manage library users.")
loan_app = typer.Typer(help="Issue, return and renew loans.")
report_app = typer.Typer(help="Generate plain-text reports.")
app.add_typer(book_app, name="book")
app.add_typer(user_app, name="user")
app.add_typer(loan_app, name="loan")
app.add_typer(report_app, name="report")


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    logging.basicConfig(level="DEBUG" if settings.debug else settings.log_level)
    if output:
        set_output_mode(output)


@app.command("init-db")
def cli_init_db():
    """Create the schema and the initial administrator account."""
    lib = LibraryManager.get_instance()
    lib.seed_admin()
    print(f"Database ready: {lib.pool.db_file}")


@app.command("login")
def cli_login(
    username: str,
    password: str = typer.Option(..., prompt=True, hide_input=True),
):
    """Check a username and password against the active accounts."""
    user: User = _check(LibraryManager.get_instance().auth.authenticate(username, password))
    print(f"Welcome, {user.full_name} ({user.role})")


def _render_stats_panel(stats: dict) -> Panel:
    content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in STAT_LABELS)
    return Panel.fit(content, title=f"📊 Dashboard - {datetime.now():%d/%m/%Y %H:%M:%S}",
                     border_style="blue")


@app.command("stats")
def cli_stats(watch: int = typer.Option(0, "--watch", "-w", help="Refresh once per second this many times")):
    """Show dashboard counts."""
    lib = LibraryManager.get_instance()
    if watch <= 0:
        print_stats_result(lib.get_statistics())
        return
    if get_output_mode() == "rich":
        with Live(_render_stats_panel(lib.get_statistics()), console=console) as live:
            for _ in range(watch - 1):
                time.sleep(1)
                live.update(_render_stats_panel(lib.get_statistics()))
        return
    for tick in range(watch):
        if tick:
            time.sleep(1)
        print_stats_result(lib.get_statistics())


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Port"),
):
    """Start the HTTP API with uvicorn."""
    import uvicorn

    host = host or settings.api_host
    port = int(port or settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    uvicorn.run("bibliodesk.api:app", host=host, port=port)


# ------------------------- Books ------------------------- #
@book_app.command("add")
def book_add(
    title: str,
    author: str,
    isbn: str,
    category: str = typer.Option(..., "--category", "-c"),
    stock: int = typer.Option(1, "--stock", "-s"),
    year: Optional[int] = typer.Option(None, "--year", "-y"),
    publisher: Optional[str] = typer.Option(None, "--publisher", "-p"),
):
    """Add a book to the catalog."""
    book = Book(title=title, author=author, isbn=isbn, category=category, stock=stock,
                publication_year=year, publisher=publisher)
    _validated(validate_book, book)
    created: Book = _check(LibraryManager.get_instance().books.create(book))
    print(f"Book added with ID {created.id}: {created.title} by {created.author}")


@book_app.command("list")
def book_list(category: Optional[str] = typer.Option(None, "--category", "-c")):
    """List books, optionally only one category."""
    books = LibraryManager.get_instance().books
    found = books.list_by_category(category) if category else books.list_all()
    print_records([b.to_dict() for b in found], BOOK_COLUMNS, "📚 Books", "No books in library.")


@book_app.command("find")
def book_find(book_id: int):
    """Show one book."""
    book: Book = _check(LibraryManager.get_instance().books.get(book_id))
    print("Book Found")
    print(f"Title: {book.title}")
    print(f"Author: {book.author}")
    print(f"ISBN: {book.isbn}")
    print(f"Category: {book.category or ''}")
    print(f"Year: {book.publication_year or ''}")
    print(f"Publisher: {book.publisher or ''}")
    print(f"Stock: {book.stock}")


@book_app.command("search")
def book_search(
    text: str,
    by: str = typer.Option("any", "--by", help="title | author | any"),
):
    """Search books by partial title and/or author."""
    books = LibraryManager.get_instance().books
    if by == "title":
        found = books.search_by_title(text)
    elif by == "author":
        found = books.search_by_author(text)
    else:
        found = books.search(text)
    print_records([b.to_dict() for b in found], BOOK_COLUMNS, f"🔎 '{text}'", "No books match the criteria.")


@book_app.command("update")
def book_update(
    book_id: int,
    title: Optional[str] = typer.Option(None, "--title"),
    author: Optional[str] = typer.Option(None, "--author"),
    isbn: Optional[str] = typer.Option(None, "--isbn"),
    category: Optional[str] = typer.Option(None, "--category"),
    stock: Optional[int] = typer.Option(None, "--stock"),
    year: Optional[int] = typer.Option(None, "--year"),
    publisher: Optional[str] = typer.Option(None, "--publisher"),
):
    """Change the given fields of a book."""
    books = LibraryManager.get_instance().books
    book: Book = _check(books.get(book_id))
    if title is not None:
        book.title = title
    if author is not None:
        book.author = author
    if isbn is not None:
        book.isbn = isbn
    if category is not None:
        book.category = category
    if stock is not None:
        book.stock = stock
    if year is not None:
        book.publication_year = year
    if publisher is not None:
        book.publisher = publisher
    _validated(validate_book, book)
    _check(books.update(book))
    print(f"Book {book_id} updated.")


@book_app.command("remove")
def book_remove(book_id: int, yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Delete a book."""
    if not yes and not typer.confirm(f"Delete book {book_id}?", default=False):
        print("Deletion cancelled.")
        return
    _check(LibraryManager.get_instance().books.delete(book_id))
    print(f"Book {book_id} has been removed.")


@book_app.command("categories")
def book_categories():
    """List the distinct categories in the catalog."""
    categories = LibraryManager.get_instance().books.list_categories()
    if not categories:
        print("No categories.")
        return
    print(f"Categories ({len(categories)}):")
    for category in categories:
        print(f"- {category}")


@book_app.command("low-stock")
def book_low_stock():
    """List books with few copies left."""
    lib = LibraryManager.get_instance()
    found = lib.books.list_low_stock(lib.settings.low_stock_threshold)
    print_records([b.to_dict() for b in found], BOOK_COLUMNS, "⚠️ Low stock", "No books with low stock.")


# ------------------------- Users ------------------------- #
def _parse_role(role: str) -> UserRole:
    try:
        return UserRole[role.upper()]
    except KeyError:
        print(f"Error: unknown role '{role}'. Use admin, librarian or reader.")
        raise typer.Exit(code=1)


@user_app.command("add")
def user_add(
    name: str,
    surname: str,
    username: str,
    email: str,
    role: str = typer.Option("reader", "--role", "-r", help="admin | librarian | reader"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    phone: Optional[str] = typer.Option(None, "--phone"),
    address: Optional[str] = typer.Option(None, "--address"),
):
    """Register a new user."""
    user = User(name=name, surname=surname, username=username, email=email, role=_parse_role(role),
                phone=phone, address=address, password=password)
    _validated(validate_user, user, creating=True)
    created: User = _check(LibraryManager.get_instance().users.create(user))
    print(f"User added with ID {created.id}: {created.full_name} ({created.username})")


@user_app.command("list")
def user_list(role: Optional[str] = typer.Option(None, "--role", "-r")):
    """List users, optionally only one role."""
    users = LibraryManager.get_instance().users
    found = users.list_by_role(_parse_role(role)) if role else users.list_all()
    print_records([u.to_dict() for u in found], USER_COLUMNS, "👥 Users", "No users registered.")


@user_app.command("find")
def user_find(user_id: int):
    """Show one user."""
    user: User = _check(LibraryManager.get_instance().users.get(user_id))
    print("User Found")
    print(f"Name: {user.full_name}")
    print(f"Username: {user.username}")
    print(f"Role: {user.role}")
    print(f"Email: {user.email}")
    print(f"Registered: {user.registered_on.isoformat()}")
    print(f"Status: {'ACTIVE' if user.active else 'INACTIVE'}")


@user_app.command("search")
def user_search(text: str):
    """Search users by partial name or surname."""
    found = LibraryManager.get_instance().users.search_by_name(text)
    print_records([u.to_dict() for u in found], USER_COLUMNS, f"🔎 '{text}'", "No users match the criteria.")


@user_app.command("update")
def user_update(
    user_id: int,
    name: Optional[str] = typer.Option(None, "--name"),
    surname: Optional[str] = typer.Option(None, "--surname"),
    username: Optional[str] = typer.Option(None, "--username"),
    email: Optional[str] = typer.Option(None, "--email"),
    role: Optional[str] = typer.Option(None, "--role"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    address: Optional[str] = typer.Option(None, "--address"),
    password: Optional[str] = typer.Option(None, "--password"),
):
    """Change the given fields of a user."""
    users = LibraryManager.get_instance().users
    user: User = _check(users.get(user_id))
    if name is not None:
        user.name = name
    if surname is not None:
        user.surname = surname
    if username is not None:
        user.username = username
    if email is not None:
        user.email = email
    if role is not None:
        user.role = _parse_role(role)
    if phone is not None:
        user.phone = phone
    if address is not None:
        user.address = address
    user.password = password
    _validated(validate_user, user, creating=False)
    _check(users.update(user))
    print(f"User {user_id} updated.")


@user_app.command("remove")
def user_remove(user_id: int, yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation")):
    """Delete a user without loans on record."""
    if not yes and not typer.confirm(f"Delete user {user_id}?", default=False):
        print("Deletion cancelled.")
        return
    _check(LibraryManager.get_instance().users.delete(user_id))
    print(f"User {user_id} has been removed.")


@user_app.command("activate")
def user_activate(user_id: int):
    """Allow a user to log in and borrow again."""
    _check(LibraryManager.get_instance().users.set_active(user_id, True))
    print(f"User {user_id} activated.")


@user_app.command("deactivate")
def user_deactivate(user_id: int):
    """Block a user from logging in and borrowing."""
    _check(LibraryManager.get_instance().users.set_active(user_id, False))
    print(f"User {user_id} deactivated.")


# ------------------------- Loans ------------------------- #
@loan_app.command("issue")
def loan_issue(
    user_id: int,
    book_id: int,
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Loan length in days (1-90)"),
    loan_date: Optional[datetime] = typer.Option(None, "--date", formats=["%Y-%m-%d"]),
    notes: Optional[str] = typer.Option(None, "--notes"),
):
    """Lend a copy of a book to a user."""
    circulation = LibraryManager.get_instance().circulation
    try:
        result = circulation.issue_loan(user_id, book_id, days=days,
                                        loan_date=loan_date.date() if loan_date else None, notes=notes)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    loan = _check(result)
    print(f"Loan {loan.id} registered: '{loan.book_title}' to {loan.user_name}, "
          f"due {loan.expected_return_date.isoformat()}")


@loan_app.command("return")
def loan_return(loan_id: int):
    """Register the return of a loan."""
    loan = _check(LibraryManager.get_instance().circulation.return_loan(loan_id))
    print(f"Loan {loan.id} returned on {loan.actual_return_date.isoformat()}.")


@loan_app.command("renew")
def loan_renew(loan_id: int, days: int = typer.Argument(..., help="Extra days (1-30)")):
    """Extend the due date of a loan."""
    try:
        result = LibraryManager.get_instance().circulation.renew_loan(loan_id, days)
    except ValueError as e:
        print(f"Error: {e}")
        raise typer.Exit(code=1)
    loan = _check(result)
    print(f"Loan {loan.id} renewed for {days} days, now due {loan.expected_return_date.isoformat()}.")


@loan_app.command("list")
def loan_list(
    status: Optional[str] = typer.Option(None, "--status", help="pending | returned | overdue | renewed"),
    user_id: Optional[int] = typer.Option(None, "--user"),
    book_id: Optional[int] = typer.Option(None, "--book"),
    active: bool = typer.Option(False, "--active", help="Only loans not yet returned"),
):
    """List loans with optional filters."""
    loans = LibraryManager.get_instance().loans
    if active:
        found = loans.list_active()
    elif status:
        try:
            found = loans.list_by_status(LoanStatus[status.upper()])
        except KeyError:
            print(f"Error: unknown status '{status}'.")
            raise typer.Exit(code=1)
    elif user_id is not None:
        found = loans.list_by_user(user_id)
    elif book_id is not None:
        found = loans.list_by_book(book_id)
    else:
        found = loans.list_all()
    print_records([l.to_dict() for l in found], LOAN_COLUMNS, "📖 Loans", "No loans found.")


@loan_app.command("overdue")
def loan_overdue():
    """Refresh overdue flags and list overdue loans."""
    found = LibraryManager.get_instance().circulation.overdue_loans()
    print_records([l.to_dict() for l in found], LOAN_COLUMNS, "⏰ Overdue loans", "No overdue loans.")


@loan_app.command("refresh")
def loan_refresh():
    """Flag loans past their due date as overdue."""
    updated = _check(LibraryManager.get_instance().circulation.refresh_overdue())
    print(f"Overdue loans updated: {updated}")


# ------------------------- Reports ------------------------- #
def _emit_report(kind: str, directory: Optional[Path], open_file: bool) -> None:
    lib = LibraryManager.get_instance()
    if directory is not None:
        lib.reports.reports_dir = directory
    path = {
        "books": lib.reports.books_report,
        "users": lib.reports.users_report,
        "active-loans": lib.reports.active_loans_report,
        "overdue-loans": lib.reports.overdue_loans_report,
    }[kind]()
    if path is None:
        print("Nothing to report.")
        return
    print(f"Report generated at: {path}")
    if open_file:
        open_report(path)


_DIR_OPTION = typer.Option(None, "--dir", help="Directory for the report file")
_OPEN_OPTION = typer.Option(settings.open_reports, "--open/--no-open", help="Open the report when done")


@report_app.command("books")
def report_books(directory: Optional[Path] = _DIR_OPTION, open_file: bool = _OPEN_OPTION):
    """Catalog report."""
    _emit_report("books", directory, open_file)


@report_app.command("users")
def report_users(directory: Optional[Path] = _DIR_OPTION, open_file: bool = _OPEN_OPTION):
    """User accounts report."""
    _emit_report("users", directory, open_file)


@report_app.command("active-loans")
def report_active_loans(directory: Optional[Path] = _DIR_OPTION, open_file: bool = _OPEN_OPTION):
    """Loans not yet returned."""
    _emit_report("active-loans", directory, open_file)


@report_app.command("overdue-loans")
def report_overdue_loans(directory: Optional[Path] = _DIR_OPTION, open_file: bool = _OPEN_OPTION):
    """Overdue loans, after refreshing overdue flags."""
    _emit_report("overdue-loans", directory, open_file)


if __name__ == "__main__":
    app()
