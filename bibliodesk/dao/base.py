import logging
import sqlite3
from typing import Any, Callable, List, Sequence

from bibliodesk.database import ConnectionPool
from bibliodesk.results import Result

logger = logging.getLogger(__name__)


class BaseDAO:
    """Shared plumbing: borrow a connection, run SQL, turn failures into Results."""

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool

    def _run(self, action: str, work: Callable[[sqlite3.Connection], Result],
             transactional: bool = False) -> Result:
        """Run ``work`` on a pooled connection, mapping storage errors to a Result.

        With ``transactional=True`` the work runs inside one transaction that
        is rolled back if any statement raises.
        """
        scope = self.pool.transaction if transactional else self.pool.connection
        try:
            with scope() as conn:
                return work(conn)
        except sqlite3.IntegrityError as e:
            logger.warning(f"Constraint violated while trying to {action}: {e}")
            return Result.conflict(f"Could not {action}: {e}")
        except sqlite3.Error as e:
            logger.error(f"Database error while trying to {action}: {e}")
            return Result.unavailable(f"Database unavailable: {e}")

    def _query(self, action: str, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Fetch rows; an unreachable database yields an empty list (logged)."""
        try:
            with self.pool.connection() as conn:
                return conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            logger.error(f"Database error while trying to {action}: {e}")
            return []

    def _count(self, action: str, sql: str, params: Sequence[Any] = ()) -> int:
        rows = self._query(action, sql, params)
        return int(rows[0][0]) if rows else 0

    @staticmethod
    def _like(text: str) -> str:
        return f"%{text.strip()}%"
