from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import bcrypt

from bibliodesk.models import User, UserRole
from bibliodesk.results import Result, Status

if TYPE_CHECKING:
    from bibliodesk.dao.users import UserDAO

logger = logging.getLogger(__name__)

# Checked against when the username is unknown so both paths cost one bcrypt round.
_DUMMY_HASH = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt()).decode("utf-8")


def hash_password(password_plain: str) -> str:
    """Return a salted bcrypt hash of ``password_plain`` as text."""
    hashed = bcrypt.hashpw(password_plain.encode("utf-8"), bcrypt.gensalt())
    return hashed.decode("utf-8")


def verify_password(password_plain: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password_plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


class AuthService:
    def __init__(self, users: "UserDAO") -> None:
        self.users = users

    def authenticate(self, username: str, password: str) -> Result:
        """Match ``username``/``password`` against active accounts.

        Unknown user, inactive user and wrong password all return the same
        NOT_FOUND result; an unreachable database returns UNAVAILABLE.
        """
        found = self.users.find_by_username(username.strip(), active_only=True)
        if found.status is Status.UNAVAILABLE:
            return found
        if found.is_ok:
            if verify_password(password, found.value.password_hash):
                logger.info(f"User {username} authenticated")
                return Result.ok(found.value)
        else:
            verify_password(password, _DUMMY_HASH)
        logger.info(f"Failed login attempt for {username}")
        return Result.not_found("Invalid username or password.")

    def ensure_admin(self, username: Optional[str], password: Optional[str]) -> Optional[User]:
        """Create the first administrator when the users table is empty."""
        if not username or not password or self.users.count() > 0:
            return None
        admin = User(name="System", surname="Administrator", username=username,
                     email=f"{username}@localhost", role=UserRole.ADMIN, password=password)
        result = self.users.create(admin)
        if not result.is_ok:
            logger.error(f"Could not create the initial administrator: {result.message}")
            return None
        logger.info(f"Initial administrator {username} created")
        return admin
