import logging
import queue
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


class ConnectionPool:
    """Small pool of SQLite connections shared by the DAOs and services.

    The pool is an explicit handle: create it once, pass it to whoever needs
    storage, and call :meth:`close` on shutdown. Connections are opened lazily
    and re-opened after ``close()`` if the pool is used again.
    """

    def __init__(self, db_file: str, size: int = 5) -> None:
        self.db_file = db_file
        self.size = size
        self._idle: "queue.Queue[sqlite3.Connection]" = queue.Queue(maxsize=size)

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: single statements commit immediately and
        # transaction() issues its own BEGIN.
        conn = sqlite3.connect(self.db_file, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON;")
        conn.execute("PRAGMA busy_timeout=5000;")
        return conn

    def _acquire(self) -> sqlite3.Connection:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            return self._connect()

    def _release(self, conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.rollback()
        try:
            self._idle.put_nowait(conn)
        except queue.Full:
            conn.close()

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Borrow a connection for the duration of the block."""
        conn = self._acquire()
        try:
            yield conn
        finally:
            self._release(conn)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block inside ``BEGIN IMMEDIATE`` ... ``COMMIT``.

        Any exception rolls the whole block back and propagates.
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            else:
                conn.commit()

    def close(self) -> None:
        """Close every idle connection held by the pool."""
        closed = 0
        while True:
            try:
                conn = self._idle.get_nowait()
            except queue.Empty:
                break
            conn.close()
            closed += 1
        logger.debug(f"Connection pool closed ({closed} connections)")


def create_tables(pool: ConnectionPool) -> None:
    """Create the schema if it does not exist yet."""
    with pool.connection() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS books (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL,
                category TEXT,
                stock INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
                publication_year INTEGER,
                isbn TEXT NOT NULL UNIQUE,
                publisher TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                surname TEXT NOT NULL,
                role TEXT NOT NULL CHECK (role IN ('ADMIN', 'LIBRARIAN', 'READER')),
                email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                phone TEXT,
                address TEXT,
                registered_on TEXT NOT NULL,
                username TEXT NOT NULL UNIQUE COLLATE NOCASE,
                password_hash TEXT NOT NULL,
                active INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS loans (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL REFERENCES users(id),
                book_id INTEGER NOT NULL REFERENCES books(id),
                loan_date TEXT NOT NULL,
                expected_return_date TEXT NOT NULL,
                actual_return_date TEXT,
                status TEXT NOT NULL DEFAULT 'PENDING'
                    CHECK (status IN ('PENDING', 'RETURNED', 'OVERDUE', 'RENEWED')),
                notes TEXT,
                CHECK ((status = 'RETURNED') = (actual_return_date IS NOT NULL))
            );

            CREATE INDEX IF NOT EXISTS idx_books_title ON books(title);
            CREATE INDEX IF NOT EXISTS idx_books_author ON books(author);
            CREATE INDEX IF NOT EXISTS idx_books_category ON books(category);
            CREATE INDEX IF NOT EXISTS idx_users_name ON users(name, surname);
            CREATE INDEX IF NOT EXISTS idx_loans_user_id ON loans(user_id);
            CREATE INDEX IF NOT EXISTS idx_loans_book_id ON loans(book_id);
            CREATE INDEX IF NOT EXISTS idx_loans_status ON loans(status);
            CREATE INDEX IF NOT EXISTS idx_loans_expected ON loans(expected_return_date);
        """)


def initialize_database(db_file: str, size: int = 5, pool: Optional[ConnectionPool] = None) -> ConnectionPool:
    """Open (or reuse) a pool for ``db_file`` and make sure the schema exists."""
    pool = pool or ConnectionPool(db_file, size=size)
    create_tables(pool)
    return pool
