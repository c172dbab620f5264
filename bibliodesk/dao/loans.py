import logging
import sqlite3
from datetime import date
from typing import List, Optional

from bibliodesk.dao.base import BaseDAO
from bibliodesk.models import ACTIVE_STATUSES, Loan, LoanStatus
from bibliodesk.results import Result

logger = logging.getLogger(__name__)

_SELECT = """
    SELECT l.id, l.user_id, l.book_id, l.loan_date, l.expected_return_date,
           l.actual_return_date, l.status, l.notes,
           u.name || ' ' || u.surname AS user_name, b.title AS book_title
    FROM loans l
    INNER JOIN users u ON l.user_id = u.id
    INNER JOIN books b ON l.book_id = b.id
"""

_ACTIVE = "(" + ", ".join(f"'{status.name}'" for status in ACTIVE_STATUSES) + ")"


def _to_loans(rows: List[sqlite3.Row]) -> List[Loan]:
    return [Loan.from_dict(dict(row)) for row in rows]


def _fetch(conn: sqlite3.Connection, loan_id: int) -> Optional[Loan]:
    row = conn.execute(_SELECT + " WHERE l.id = ?", (loan_id,)).fetchone()
    return Loan.from_dict(dict(row)) if row else None


class LoanDAO(BaseDAO):
    """Loans table access.

    Every write that changes whether a copy is on loan adjusts the book's
    stock in the same transaction: :meth:`create` takes a copy off the shelf,
    :meth:`mark_returned` puts it back, and :meth:`delete` of an active loan
    restores it. :meth:`update` never moves a loan into or out of RETURNED.
    """

    def create(self, loan: Loan) -> Result:
        """Take one copy of the book and insert ``loan`` as PENDING.

        NOT_FOUND for an unknown or inactive user or an unknown book, CONFLICT
        for a book with no stock left.
        """
        def work(conn: sqlite3.Connection) -> Result:
            user = conn.execute("SELECT active FROM users WHERE id = ?", (loan.user_id,)).fetchone()
            if user is None:
                return Result.not_found(f"User {loan.user_id} not found.")
            if not user["active"]:
                return Result.not_found(f"User {loan.user_id} is inactive.")
            book = conn.execute("SELECT title FROM books WHERE id = ?", (loan.book_id,)).fetchone()
            if book is None:
                return Result.not_found(f"Book {loan.book_id} not found.")
            taken = conn.execute("UPDATE books SET stock = stock - 1 WHERE id = ? AND stock > 0",
                                 (loan.book_id,))
            if taken.rowcount == 0:
                return Result.conflict(f"No copies of '{book['title']}' are available.")
            cursor = conn.execute(
                """
                INSERT INTO loans (user_id, book_id, loan_date, expected_return_date, status, notes)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (loan.user_id, loan.book_id, loan.loan_date.isoformat(),
                 loan.expected_return_date.isoformat(), LoanStatus.PENDING.name, loan.notes),
            )
            created = _fetch(conn, cursor.lastrowid)
            logger.info(f"Loan registered with id {created.id}")
            return Result.ok(created)

        return self._run("register loan", work, transactional=True)

    def mark_returned(self, loan_id: int, returned_on: date) -> Result:
        """Close an active loan and put its copy back on the shelf."""
        def work(conn: sqlite3.Connection) -> Result:
            row = conn.execute("SELECT status, book_id FROM loans WHERE id = ?", (loan_id,)).fetchone()
            if row is None:
                return Result.not_found(f"Loan {loan_id} not found.")
            if row["status"] == LoanStatus.RETURNED.name:
                return Result.conflict(f"Loan {loan_id} was already returned.")
            conn.execute("UPDATE loans SET status = ?, actual_return_date = ? WHERE id = ?",
                         (LoanStatus.RETURNED.name, returned_on.isoformat(), loan_id))
            conn.execute("UPDATE books SET stock = stock + 1 WHERE id = ?", (row["book_id"],))
            logger.info(f"Return registered for loan {loan_id}")
            return Result.ok(_fetch(conn, loan_id))

        return self._run("register return", work, transactional=True)

    def update(self, loan: Loan) -> Result:
        """Save dates, status and notes of ``loan``.

        The user and book of a loan are fixed once it is created. Moving a
        loan into or out of RETURNED is a CONFLICT; use :meth:`mark_returned`.
        """
        def work(conn: sqlite3.Connection) -> Result:
            row = conn.execute("SELECT status FROM loans WHERE id = ?", (loan.id,)).fetchone()
            if row is None:
                return Result.not_found(f"Loan {loan.id} not found.")
            was_returned = row["status"] == LoanStatus.RETURNED.name
            if was_returned != (loan.status is LoanStatus.RETURNED):
                return Result.conflict(f"Loan {loan.id} cannot change status from "
                                       f"{row['status']} to {loan.status.name} with an edit.")
            conn.execute(
                """
                UPDATE loans SET loan_date = ?, expected_return_date = ?, status = ?, notes = ?
                WHERE id = ?
                """,
                (loan.loan_date.isoformat(), loan.expected_return_date.isoformat(),
                 loan.status.name, loan.notes, loan.id),
            )
            logger.info(f"Loan updated with id {loan.id}")
            return Result.ok(_fetch(conn, loan.id))

        return self._run("update loan", work, transactional=True)

    def delete(self, loan_id: int) -> Result:
        """Delete a loan; an active one gives its copy back first."""
        def work(conn: sqlite3.Connection) -> Result:
            row = conn.execute("SELECT status, book_id FROM loans WHERE id = ?", (loan_id,)).fetchone()
            if row is None:
                return Result.not_found(f"Loan {loan_id} not found.")
            if row["status"] != LoanStatus.RETURNED.name:
                conn.execute("UPDATE books SET stock = stock + 1 WHERE id = ?", (row["book_id"],))
            conn.execute("DELETE FROM loans WHERE id = ?", (loan_id,))
            logger.info(f"Loan deleted with id {loan_id}")
            return Result.ok(loan_id)

        return self._run("delete loan", work, transactional=True)

    def get(self, loan_id: int) -> Result:
        def work(conn: sqlite3.Connection) -> Result:
            loan = _fetch(conn, loan_id)
            if loan is None:
                return Result.not_found(f"Loan {loan_id} not found.")
            return Result.ok(loan)

        return self._run("find loan", work)

    def mark_overdue(self, today: date) -> Result:
        """Bulk-move PENDING/RENEWED loans past their expected date to OVERDUE.

        Carries the number of loans changed.
        """
        def work(conn: sqlite3.Connection) -> Result:
            cursor = conn.execute(
                """
                UPDATE loans SET status = 'OVERDUE'
                WHERE status IN ('PENDING', 'RENEWED') AND expected_return_date < ?
                """,
                (today.isoformat(),),
            )
            logger.info(f"Overdue loans updated: {cursor.rowcount}")
            return Result.ok(cursor.rowcount)

        return self._run("update overdue loans", work)

    # ------------------------- Queries ------------------------- #
    def list_all(self) -> List[Loan]:
        return _to_loans(self._query("list loans", _SELECT + " ORDER BY l.loan_date DESC, l.id DESC"))

    def list_active(self) -> List[Loan]:
        return _to_loans(self._query("list active loans",
                                     _SELECT + f" WHERE l.status IN {_ACTIVE}"
                                               " ORDER BY l.expected_return_date ASC"))

    def list_overdue(self, today: date) -> List[Loan]:
        """Loans flagged OVERDUE plus PENDING/RENEWED loans already past due."""
        return _to_loans(self._query(
            "list overdue loans",
            _SELECT + " WHERE l.status = 'OVERDUE'"
                      " OR (l.status IN ('PENDING', 'RENEWED') AND l.expected_return_date < ?)"
                      " ORDER BY l.expected_return_date ASC",
            (today.isoformat(),)))

    def list_by_user(self, user_id: int) -> List[Loan]:
        return _to_loans(self._query("list loans by user",
                                     _SELECT + " WHERE l.user_id = ? ORDER BY l.loan_date DESC, l.id DESC",
                                     (user_id,)))

    def list_by_book(self, book_id: int) -> List[Loan]:
        return _to_loans(self._query("list loans by book",
                                     _SELECT + " WHERE l.book_id = ? ORDER BY l.loan_date DESC, l.id DESC",
                                     (book_id,)))

    def list_by_status(self, status: LoanStatus) -> List[Loan]:
        return _to_loans(self._query("list loans by status",
                                     _SELECT + " WHERE l.status = ? ORDER BY l.loan_date DESC, l.id DESC",
                                     (status.name,)))

    def has_active_loans(self, user_id: int) -> bool:
        return self._count("check active loans",
                           f"SELECT COUNT(*) FROM loans WHERE user_id = ? AND status IN {_ACTIVE}",
                           (user_id,)) > 0

    def count_by_status(self, status: LoanStatus) -> int:
        return self._count("count loans", "SELECT COUNT(*) FROM loans WHERE status = ?", (status.name,))
