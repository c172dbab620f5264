import logging
import sqlite3
from typing import List, Optional

from bibliodesk.dao.base import BaseDAO
from bibliodesk.models import User, UserRole
from bibliodesk.results import Result
from bibliodesk.services.auth import hash_password

logger = logging.getLogger(__name__)

_SELECT = """
    SELECT id, name, surname, role, email, phone, address, registered_on,
           username, password_hash, active
    FROM users
"""


def _to_users(rows: List[sqlite3.Row]) -> List[User]:
    return [User.from_dict(dict(row)) for row in rows]


class UserDAO(BaseDAO):
    """CRUD, lookups and uniqueness checks for the ``users`` table."""

    def create(self, user: User) -> Result:
        """Insert ``user``; the plain ``user.password`` is stored only as a hash."""
        if user.password:
            user.password_hash = hash_password(user.password)
            user.password = None
        if not user.password_hash:
            raise ValueError("Password is required.")

        def work(conn: sqlite3.Connection) -> Result:
            conflict = self._uniqueness_conflict(conn, user.username, user.email, 0)
            if conflict:
                return Result.conflict(conflict)
            cursor = conn.execute(
                """
                INSERT INTO users (name, surname, role, email, phone, address, registered_on,
                                   username, password_hash, active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (user.name, user.surname, user.role.name, user.email, user.phone, user.address,
                 user.registered_on.isoformat(), user.username, user.password_hash, int(user.active)),
            )
            user.id = cursor.lastrowid
            logger.info(f"User created with id {user.id}")
            return Result.ok(user)

        return self._run("create user", work)

    def update(self, user: User) -> Result:
        """Overwrite the row with ``user.id``.

        A new plain ``user.password`` replaces the stored hash; otherwise the
        existing hash is kept.
        """
        if user.password:
            user.password_hash = hash_password(user.password)
            user.password = None

        def work(conn: sqlite3.Connection) -> Result:
            conflict = self._uniqueness_conflict(conn, user.username, user.email, user.id or 0)
            if conflict:
                return Result.conflict(conflict)
            cursor = conn.execute(
                """
                UPDATE users SET name = ?, surname = ?, role = ?, email = ?, phone = ?, address = ?,
                       username = ?, password_hash = COALESCE(?, password_hash), active = ?
                WHERE id = ?
                """,
                (user.name, user.surname, user.role.name, user.email, user.phone, user.address,
                 user.username, user.password_hash, int(user.active), user.id),
            )
            if cursor.rowcount == 0:
                return Result.not_found(f"User {user.id} not found.")
            logger.info(f"User updated with id {user.id}")
            return Result.ok(user)

        return self._run("update user", work)

    def delete(self, user_id: int) -> Result:
        """Delete a user. Users with loans on record cannot be deleted (CONFLICT)."""
        def work(conn: sqlite3.Connection) -> Result:
            (loans,) = conn.execute("SELECT COUNT(*) FROM loans WHERE user_id = ?", (user_id,)).fetchone()
            if loans:
                return Result.conflict(f"User {user_id} has {loans} loan(s) on record; deactivate instead.")
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            if cursor.rowcount == 0:
                return Result.not_found(f"User {user_id} not found.")
            logger.info(f"User deleted with id {user_id}")
            return Result.ok(user_id)

        return self._run("delete user", work)

    def get(self, user_id: int) -> Result:
        def work(conn: sqlite3.Connection) -> Result:
            row = conn.execute(_SELECT + " WHERE id = ?", (user_id,)).fetchone()
            if row is None:
                return Result.not_found(f"User {user_id} not found.")
            return Result.ok(User.from_dict(dict(row)))

        return self._run("find user", work)

    def find_by_username(self, username: str, active_only: bool = False) -> Result:
        sql = _SELECT + " WHERE username = ? COLLATE NOCASE" + (" AND active = 1" if active_only else "")

        def work(conn: sqlite3.Connection) -> Result:
            row = conn.execute(sql, (username,)).fetchone()
            if row is None:
                return Result.not_found(f"User {username} not found.")
            return Result.ok(User.from_dict(dict(row)))

        return self._run("find user by username", work)

    def list_all(self) -> List[User]:
        return _to_users(self._query("list users", _SELECT + " ORDER BY name, surname"))

    def search_by_name(self, text: str) -> List[User]:
        pattern = self._like(text)
        return _to_users(self._query("search users",
                                     _SELECT + " WHERE name LIKE ? OR surname LIKE ? ORDER BY name, surname",
                                     (pattern, pattern)))

    def list_by_role(self, role: UserRole) -> List[User]:
        return _to_users(self._query("list users by role",
                                     _SELECT + " WHERE role = ? ORDER BY name, surname", (role.name,)))

    def set_active(self, user_id: int, active: bool) -> Result:
        def work(conn: sqlite3.Connection) -> Result:
            cursor = conn.execute("UPDATE users SET active = ? WHERE id = ?", (int(active), user_id))
            if cursor.rowcount == 0:
                return Result.not_found(f"User {user_id} not found.")
            logger.info(f"User {user_id} {'activated' if active else 'deactivated'}")
            return Result.ok(user_id)

        return self._run("change user status", work)

    # ------------------------- Checks and counts ------------------------- #
    def username_exists(self, username: str, exclude_id: int = 0) -> bool:
        return self._count("check username",
                           "SELECT COUNT(*) FROM users WHERE username = ? COLLATE NOCASE AND id != ?",
                           (username, exclude_id)) > 0

    def email_exists(self, email: str, exclude_id: int = 0) -> bool:
        return self._count("check email",
                           "SELECT COUNT(*) FROM users WHERE email = ? COLLATE NOCASE AND id != ?",
                           (email, exclude_id)) > 0

    def count_active(self) -> int:
        return self._count("count active users", "SELECT COUNT(*) FROM users WHERE active = 1")

    def count(self) -> int:
        return self._count("count users", "SELECT COUNT(*) FROM users")

    @staticmethod
    def _uniqueness_conflict(conn: sqlite3.Connection, username: str, email: str,
                             exclude_id: int) -> Optional[str]:
        (n,) = conn.execute("SELECT COUNT(*) FROM users WHERE username = ? COLLATE NOCASE AND id != ?",
                            (username, exclude_id)).fetchone()
        if n:
            return f"Username {username} is already taken."
        (n,) = conn.execute("SELECT COUNT(*) FROM users WHERE email = ? COLLATE NOCASE AND id != ?",
                            (email, exclude_id)).fetchone()
        if n:
            return f"Email {email} is already registered."
        return None
