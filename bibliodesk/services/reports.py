"""Plain-text, fixed-width reports written to the reports directory.

Each report is a ``<Prefix>_YYYYmmdd_HHMMSS.txt`` file with a header (title,
generation time, total), a column table and a footer. An empty data set
produces no file.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, List, Optional

import typer

from bibliodesk.dao.books import BookDAO
from bibliodesk.dao.users import UserDAO
from bibliodesk.dao.loans import LoanDAO
from bibliodesk.services.circulation import CirculationService

logger = logging.getLogger(__name__)

RULE = "═" * 63
THIN_RULE = "─" * 63


def truncate(text: Optional[str], max_length: int) -> str:
    if text is None:
        return ""
    return text[: max_length - 3] + "..." if len(text) > max_length else text


def report_filename(prefix: str, now: datetime) -> str:
    return f"{prefix}_{now.strftime('%Y%m%d_%H%M%S')}.txt"


def open_report(path: Path) -> bool:
    """Open ``path`` with the operating system's default application."""
    try:
        return typer.launch(str(path)) == 0
    except OSError as e:
        logger.warning(f"Could not open report {path} automatically: {e}")
        return False


class ReportService:
    def __init__(self, books: BookDAO, users: UserDAO, loans: LoanDAO,
                 circulation: CirculationService, reports_dir: str | Path, app_name: str = "BiblioDesk") -> None:
        self.books = books
        self.users = users
        self.loans = loans
        self.circulation = circulation
        self.reports_dir = Path(reports_dir).expanduser()
        self.app_name = app_name

    def _write(self, prefix: str, title: str, total_label: str, total: int,
               header: str, rows: Iterable[str], now: datetime, notice: Optional[str] = None) -> Path:
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        path = self.reports_dir / report_filename(prefix, now)
        lines: List[str] = [
            RULE,
            f"{self.app_name.upper()} - {title}".center(63).rstrip(),
            RULE,
            f"Generated on: {now.strftime('%d/%m/%Y %H:%M:%S')}",
            f"{total_label}: {total}",
        ]
        if notice:
            lines.append(notice)
        lines += [RULE, "", header, THIN_RULE, *rows, RULE, "End of report"]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        logger.info(f"Report written to {path}")
        return path

    def books_report(self, now: Optional[datetime] = None) -> Optional[Path]:
        books = self.books.list_all()
        if not books:
            return None
        rows = [
            f"{b.id:<5} {truncate(b.title, 35):<35} {truncate(b.author, 25):<25} "
            f"{truncate(b.category, 15):<15} {b.publication_year or '':<6} {b.stock:<6}"
            for b in books
        ]
        header = f"{'ID':<5} {'TITLE':<35} {'AUTHOR':<25} {'CATEGORY':<15} {'YEAR':<6} {'STOCK':<6}"
        return self._write("Books_Report", "BOOKS REPORT", "Total books", len(books),
                           header, rows, now or datetime.now())

    def users_report(self, now: Optional[datetime] = None) -> Optional[Path]:
        users = self.users.list_all()
        if not users:
            return None
        rows = [
            f"{u.id:<5} {truncate(u.full_name, 30):<30} {str(u.role):<20} "
            f"{truncate(u.email, 30):<30} {'ACTIVE' if u.active else 'INACTIVE':<10}"
            for u in users
        ]
        header = f"{'ID':<5} {'FULL NAME':<30} {'TYPE':<20} {'EMAIL':<30} {'STATUS':<10}"
        return self._write("Users_Report", "USERS REPORT", "Total users", len(users),
                           header, rows, now or datetime.now())

    def active_loans_report(self, now: Optional[datetime] = None) -> Optional[Path]:
        loans = self.loans.list_active()
        if not loans:
            return None
        rows = [
            f"{l.id:<5} {truncate(l.user_name, 25):<25} {truncate(l.book_title, 25):<25} "
            f"{l.loan_date.isoformat():<12} {l.expected_return_date.isoformat():<12} {str(l.status):<10}"
            for l in loans
        ]
        header = f"{'ID':<5} {'USER':<25} {'BOOK':<25} {'LOANED':<12} {'DUE':<12} {'STATUS':<10}"
        return self._write("Active_Loans_Report", "ACTIVE LOANS", "Total active loans", len(loans),
                           header, rows, now or datetime.now())

    def overdue_loans_report(self, now: Optional[datetime] = None) -> Optional[Path]:
        """Refresh overdue flags first, then report every overdue loan."""
        now = now or datetime.now()
        today: date = now.date()
        loans = self.circulation.overdue_loans(today)
        if not loans:
            return None
        rows = [
            f"{l.id:<5} {truncate(l.user_name, 25):<25} {truncate(l.book_title, 25):<25} "
            f"{l.loan_date.isoformat():<12} {l.expected_return_date.isoformat():<12} "
            f"{abs(l.days_remaining(today))} days"
            for l in loans
        ]
        header = f"{'ID':<5} {'USER':<25} {'BOOK':<25} {'LOANED':<12} {'WAS DUE':<12} {'DELAY':<10}"
        return self._write("Overdue_Loans_Report", "OVERDUE LOANS", "Total overdue loans", len(loans),
                           header, rows, now,
                           notice="ATTENTION: these loans need urgent follow-up")
