import os
import json
from typing import Any, Dict, List, Sequence, Tuple
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BIBLIODESK_CLI_OUTPUT"

_console = Console()

BOOK_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("isbn", "ISBN"), ("title", "Title"), ("author", "Author"),
    ("category", "Category"), ("stock", "Stock"),
)
USER_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("username", "Username"), ("name", "Name"), ("surname", "Surname"),
    ("role", "Role"), ("email", "Email"), ("active", "Active"),
)
LOAN_COLUMNS: Sequence[Tuple[str, str]] = (
    ("id", "ID"), ("user_name", "User"), ("book_title", "Book"), ("loan_date", "Loaned"),
    ("expected_return_date", "Due"), ("status", "Status"), ("days_remaining", "Days left"),
)

STAT_LABELS: Sequence[Tuple[str, str]] = (
    ("total_books", "Total Books"),
    ("active_users", "Active Users"),
    ("active_loans", "Active Loans"),
    ("overdue_loans", "Overdue Loans"),
    ("low_stock_books", "Low Stock Books"),
)


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def print_records(records: List[Dict[str, Any]], columns: Sequence[Tuple[str, str]],
                  title: str, empty_message: str) -> None:
    """Print dict records according to the current output mode.
    - plain: one ' | '-separated line per record, or ``empty_message``
    - json: JSON array of the selected columns
    - rich: Rich table
    """
    mode = get_output_mode()

    if not records:
        print(empty_message)
        return

    if mode == "json":
        payload = [{key: r.get(key) for key, _ in columns} for r in records]
        print(json.dumps(payload, ensure_ascii=False, default=str))
    elif mode == "rich":
        table = Table(title=title, show_lines=True, header_style="bold cyan")
        for _, label in columns:
            table.add_column(label)
        for r in records:
            table.add_row(*("" if r.get(key) is None else str(r.get(key)) for key, _ in columns))
        _console.print(table)
    else:
        for r in records:
            print(" | ".join("" if r.get(key) is None else str(r.get(key)) for key, _ in columns))


def print_stats_result(stats: Dict[str, Any]) -> None:
    """Print dashboard counts according to the current output mode."""
    mode = get_output_mode()

    if not stats:
        print("No statistics available.")
        return

    if mode == "json":
        print(json.dumps(stats, ensure_ascii=False))
    elif mode == "rich":
        content = "\n".join(f"[bold]{label}:[/] {stats.get(key, 0)}" for key, label in STAT_LABELS)
        _console.print(Panel.fit(content, title="📊 Dashboard", border_style="blue"))
    else:
        for key, label in STAT_LABELS:
            print(f"{label}: {stats.get(key, 0)}")
