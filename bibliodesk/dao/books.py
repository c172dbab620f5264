import logging
import sqlite3
from typing import List

from bibliodesk.dao.base import BaseDAO
from bibliodesk.models import Book, LOW_STOCK_THRESHOLD
from bibliodesk.results import Result
from bibliodesk.validators import ISBNValidator

logger = logging.getLogger(__name__)

_SELECT = """
    SELECT id, title, author, category, stock, publication_year, isbn, publisher, created_at
    FROM books
"""


def _to_books(rows: List[sqlite3.Row]) -> List[Book]:
    return [Book.from_dict(dict(row)) for row in rows]


class BookDAO(BaseDAO):
    """CRUD and catalog queries for the ``books`` table."""

    # ------------------------- Core operations ------------------------- #
    def create(self, book: Book) -> Result:
        """Insert ``book`` and set its ``id``. Duplicate ISBNs are a CONFLICT."""
        book.isbn = ISBNValidator.normalize_isbn(book.isbn)

        def work(conn: sqlite3.Connection) -> Result:
            if self._isbn_taken(conn, book.isbn, 0):
                return Result.conflict(f"Book with ISBN {book.isbn} already exists.")
            cursor = conn.execute(
                """
                INSERT INTO books (title, author, category, stock, publication_year, isbn, publisher)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (book.title, book.author, book.category, book.stock,
                 book.publication_year, book.isbn, book.publisher),
            )
            book.id = cursor.lastrowid
            logger.info(f"Book created with id {book.id}")
            return Result.ok(book)

        return self._run("create book", work)

    def update(self, book: Book) -> Result:
        """Overwrite every column of the row with ``book.id``."""
        book.isbn = ISBNValidator.normalize_isbn(book.isbn)

        def work(conn: sqlite3.Connection) -> Result:
            if self._isbn_taken(conn, book.isbn, book.id or 0):
                return Result.conflict(f"Book with ISBN {book.isbn} already exists.")
            cursor = conn.execute(
                """
                UPDATE books SET title = ?, author = ?, category = ?, stock = ?,
                       publication_year = ?, isbn = ?, publisher = ?
                WHERE id = ?
                """,
                (book.title, book.author, book.category, book.stock,
                 book.publication_year, book.isbn, book.publisher, book.id),
            )
            if cursor.rowcount == 0:
                return Result.not_found(f"Book {book.id} not found.")
            logger.info(f"Book updated with id {book.id}")
            return Result.ok(book)

        return self._run("update book", work)

    def delete(self, book_id: int) -> Result:
        """Delete a book. Books referenced by loans cannot be deleted (CONFLICT)."""
        def work(conn: sqlite3.Connection) -> Result:
            (loans,) = conn.execute("SELECT COUNT(*) FROM loans WHERE book_id = ?", (book_id,)).fetchone()
            if loans:
                return Result.conflict(f"Book {book_id} has {loans} loan(s) on record and cannot be deleted.")
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            if cursor.rowcount == 0:
                return Result.not_found(f"Book {book_id} not found.")
            logger.info(f"Book deleted with id {book_id}")
            return Result.ok(book_id)

        return self._run("delete book", work)

    def get(self, book_id: int) -> Result:
        def work(conn: sqlite3.Connection) -> Result:
            row = conn.execute(_SELECT + " WHERE id = ?", (book_id,)).fetchone()
            if row is None:
                return Result.not_found(f"Book {book_id} not found.")
            return Result.ok(Book.from_dict(dict(row)))

        return self._run("find book", work)

    def find_by_isbn(self, isbn: str) -> Result:
        isbn = ISBNValidator.normalize_isbn(isbn)

        def work(conn: sqlite3.Connection) -> Result:
            row = conn.execute(_SELECT + " WHERE isbn = ?", (isbn,)).fetchone()
            if row is None:
                return Result.not_found(f"Book with ISBN {isbn} not found.")
            return Result.ok(Book.from_dict(dict(row)))

        return self._run("find book by ISBN", work)

    def list_all(self) -> List[Book]:
        return _to_books(self._query("list books", _SELECT + " ORDER BY title"))

    # ------------------------- Filtered queries ------------------------- #
    def search_by_title(self, text: str) -> List[Book]:
        return _to_books(self._query("search books by title",
                                     _SELECT + " WHERE title LIKE ? ORDER BY title", (self._like(text),)))

    def search_by_author(self, text: str) -> List[Book]:
        return _to_books(self._query("search books by author",
                                     _SELECT + " WHERE author LIKE ? ORDER BY title", (self._like(text),)))

    def search(self, text: str) -> List[Book]:
        """Books whose title or author contains ``text``."""
        pattern = self._like(text)
        return _to_books(self._query("search books",
                                     _SELECT + " WHERE title LIKE ? OR author LIKE ? ORDER BY title",
                                     (pattern, pattern)))

    def list_by_category(self, category: str) -> List[Book]:
        return _to_books(self._query("list books by category",
                                     _SELECT + " WHERE category = ? ORDER BY title", (category,)))

    def list_low_stock(self, threshold: int = LOW_STOCK_THRESHOLD) -> List[Book]:
        return _to_books(self._query("list low-stock books",
                                     _SELECT + " WHERE stock <= ? ORDER BY stock, title", (threshold,)))

    def list_categories(self) -> List[str]:
        rows = self._query("list categories",
                           "SELECT DISTINCT category FROM books WHERE category IS NOT NULL ORDER BY category")
        return [row[0] for row in rows]

    # ------------------------- Checks and counts ------------------------- #
    def isbn_exists(self, isbn: str, exclude_id: int = 0) -> bool:
        """True if another book (not ``exclude_id``) already uses ``isbn``."""
        return self._count("check ISBN",
                           "SELECT COUNT(*) FROM books WHERE isbn = ? AND id != ?",
                           (ISBNValidator.normalize_isbn(isbn), exclude_id)) > 0

    def count(self) -> int:
        return self._count("count books", "SELECT COUNT(*) FROM books")

    @staticmethod
    def _isbn_taken(conn: sqlite3.Connection, isbn: str, exclude_id: int) -> bool:
        (n,) = conn.execute("SELECT COUNT(*) FROM books WHERE isbn = ? AND id != ?", (isbn, exclude_id)).fetchone()
        return n > 0
