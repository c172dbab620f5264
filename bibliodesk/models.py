from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any

LOW_STOCK_THRESHOLD = 2


def _to_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


class UserRole(Enum):
    ADMIN = "Administrator"
    LIBRARIAN = "Librarian"
    READER = "Reader"

    def __str__(self) -> str:
        return self.value


class LoanStatus(Enum):
    PENDING = "Pending"
    RETURNED = "Returned"
    OVERDUE = "Overdue"
    RENEWED = "Renewed"

    def __str__(self) -> str:
        return self.value


ACTIVE_STATUSES = (LoanStatus.PENDING, LoanStatus.OVERDUE, LoanStatus.RENEWED)


class Book:
    """A catalog entry; ``stock`` counts the copies currently on the shelf."""

    def __init__(self, title: str, author: str, isbn: str, category: str | None = None,
                 stock: int = 0, publication_year: int | None = None, publisher: str | None = None,
                 id: int | None = None, created_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = author.strip()
        self.isbn = isbn.strip()
        self.category = category.strip() if category else category
        self.stock = stock
        self.publication_year = publication_year
        self.publisher = publisher
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author} (ISBN: {self.isbn})"

    @property
    def is_available(self) -> bool:
        return self.stock > 0

    def is_low_stock(self, threshold: int = LOW_STOCK_THRESHOLD) -> bool:
        """Pass the configured ``low_stock_threshold`` to match the dashboard count."""
        return self.stock <= threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "category": self.category,
            "stock": self.stock,
            "publication_year": self.publication_year,
            "isbn": self.isbn,
            "publisher": self.publisher,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data.get("id"),
            title=data["title"],
            author=data["author"],
            isbn=data["isbn"],
            category=data.get("category"),
            stock=int(data.get("stock") or 0),
            publication_year=data.get("publication_year"),
            publisher=data.get("publisher"),
            created_at=data.get("created_at"),
        )


class User:
    """A library account.

    ``password`` is a transient plain-text value used only when creating an
    account or changing its password; storage keeps ``password_hash`` alone.
    """

    def __init__(self, name: str, surname: str, username: str, email: str,
                 role: UserRole = UserRole.READER, phone: str | None = None, address: str | None = None,
                 registered_on: date | None = None, active: bool = True, id: int | None = None,
                 password: str | None = None, password_hash: str | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.surname = surname.strip()
        self.username = username.strip()
        self.email = email.strip()
        self.role = role
        self.phone = phone
        self.address = address
        self.registered_on = registered_on or date.today()
        self.active = active
        self.password = password
        self.password_hash = password_hash

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.full_name} ({self.username})"

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}"

    def to_dict(self) -> dict:
        # Never expose the password hash.
        return {
            "id": self.id,
            "name": self.name,
            "surname": self.surname,
            "role": self.role.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "registered_on": self.registered_on.isoformat(),
            "username": self.username,
            "active": self.active,
        }

    @staticmethod
    def from_dict(data: dict) -> "User":
        role = data.get("role") or UserRole.READER
        return User(
            id=data.get("id"),
            name=data["name"],
            surname=data["surname"],
            username=data["username"],
            email=data["email"],
            role=role if isinstance(role, UserRole) else UserRole[str(role)],
            phone=data.get("phone"),
            address=data.get("address"),
            registered_on=_to_date(data.get("registered_on")),
            active=bool(data.get("active", True)),
            password_hash=data.get("password_hash"),
        )


class Loan:
    """One user borrowing one book.

    ``actual_return_date`` is set exactly when ``status`` is RETURNED. The
    date helpers accept ``today`` so callers can evaluate a loan at a fixed
    date; they default to the current date.
    """

    def __init__(self, user_id: int, book_id: int, loan_date: date, expected_return_date: date,
                 actual_return_date: date | None = None, status: LoanStatus = LoanStatus.PENDING,
                 notes: str | None = None, id: int | None = None,
                 user_name: str | None = None, book_title: str | None = None) -> None:
        self.id = id
        self.user_id = user_id
        self.book_id = book_id
        self.loan_date = loan_date
        self.expected_return_date = expected_return_date
        self.actual_return_date = actual_return_date
        self.status = status
        self.notes = notes
        # Display-only fields filled by DAO joins
        self.user_name = user_name
        self.book_title = book_title

    def __repr__(self) -> str:  # pragma: no cover
        return (f"Loan(id={self.id}, user_id={self.user_id}, book_id={self.book_id}, "
                f"expected={self.expected_return_date}, status={self.status.name})")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def is_overdue(self, today: date | None = None) -> bool:
        if self.status is LoanStatus.RETURNED:
            return False
        return (today or date.today()) > self.expected_return_date

    def days_overdue(self, today: date | None = None) -> int:
        if not self.is_overdue(today):
            return 0
        return ((today or date.today()) - self.expected_return_date).days

    def days_remaining(self, today: date | None = None) -> int:
        """Days until the expected return date; negative once it has passed."""
        if self.status is LoanStatus.RETURNED:
            return 0
        return (self.expected_return_date - (today or date.today())).days

    def to_dict(self, today: date | None = None) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "book_id": self.book_id,
            "loan_date": self.loan_date.isoformat(),
            "expected_return_date": self.expected_return_date.isoformat(),
            "actual_return_date": self.actual_return_date.isoformat() if self.actual_return_date else None,
            "status": self.status.name,
            "notes": self.notes,
            "user_name": self.user_name,
            "book_title": self.book_title,
            "overdue": self.is_overdue(today),
            "days_remaining": self.days_remaining(today),
        }

    @staticmethod
    def from_dict(data: dict) -> "Loan":
        status = data.get("status") or LoanStatus.PENDING
        return Loan(
            id=data.get("id"),
            user_id=int(data["user_id"]),
            book_id=int(data["book_id"]),
            loan_date=_to_date(data["loan_date"]),
            expected_return_date=_to_date(data["expected_return_date"]),
            actual_return_date=_to_date(data.get("actual_return_date")),
            status=status if isinstance(status, LoanStatus) else LoanStatus[str(status)],
            notes=data.get("notes"),
            user_name=data.get("user_name"),
            book_title=data.get("book_title"),
        )
