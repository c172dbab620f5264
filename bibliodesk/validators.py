import re
from datetime import date
from typing import Optional

from bibliodesk.models import Book, User

EMAIL_RE = re.compile(r"^[A-Za-z0-9+_.-]+@(.+)$")
USERNAME_RE = re.compile(r"^[a-zA-Z0-9_]+$")
MIN_PASSWORD_LENGTH = 6
MIN_PUBLICATION_YEAR = 1000


class ISBNValidator:
    """Form-level ISBN check: 10 or 13 characters once dashes are removed."""

    @staticmethod
    def normalize_isbn(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return raw.strip().replace("-", "")

    @staticmethod
    def has_valid_length(isbn: Optional[str]) -> bool:
        return len(ISBNValidator.normalize_isbn(isbn)) in (10, 13)


class TextValidator:

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not text.strip()

    @staticmethod
    def is_valid_email(email: Optional[str]) -> bool:
        return bool(email) and EMAIL_RE.match(email) is not None

    @staticmethod
    def is_valid_username(username: Optional[str]) -> bool:
        return bool(username) and USERNAME_RE.match(username) is not None


def _require(text: Optional[str], label: str) -> None:
    if TextValidator.is_blank(text):
        raise ValueError(f"{label} is required.")


def validate_book(book: Book, today: Optional[date] = None) -> None:
    """Raise ValueError describing the first invalid field of ``book``."""
    _require(book.title, "Title")
    _require(book.author, "Author")
    _require(book.category, "Category")
    _require(book.isbn, "ISBN")
    if not ISBNValidator.has_valid_length(book.isbn):
        raise ValueError("ISBN must have 10 or 13 digits.")
    if book.publication_year is not None:
        current_year = (today or date.today()).year
        if not MIN_PUBLICATION_YEAR <= book.publication_year <= current_year:
            raise ValueError(f"Year must be between {MIN_PUBLICATION_YEAR} and {current_year}.")
    if book.stock < 0:
        raise ValueError("Stock cannot be negative.")


def validate_user(user: User, creating: bool = True, confirm_password: Optional[str] = None) -> None:
    """Raise ValueError describing the first invalid field of ``user``.

    The password is mandatory when creating an account; on edits it is only
    checked when a new one was entered.
    """
    _require(user.name, "Name")
    _require(user.surname, "Surname")
    if user.role is None:
        raise ValueError("A user type must be selected.")
    _require(user.email, "Email")
    if not TextValidator.is_valid_email(user.email):
        raise ValueError("Email format is not valid.")
    _require(user.username, "Username")
    if not TextValidator.is_valid_username(user.username):
        raise ValueError("Username may only contain letters, numbers and underscores.")
    if creating or user.password:
        if not user.password:
            raise ValueError("Password is required.")
        if len(user.password) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters.")
        if confirm_password is not None and confirm_password != user.password:
            raise ValueError("Passwords do not match.")


def validate_day_count(days: int, maximum: int, label: str = "Days") -> None:
    if not 1 <= days <= maximum:
        raise ValueError(f"{label} must be between 1 and {maximum}.")
