import dataclasses

import pytest

from bibliodesk.config import settings
from bibliodesk.library import Library
from bibliodesk.models import Book, User, UserRole


@pytest.fixture
def test_settings(tmp_path):
    return dataclasses.replace(
        settings,
        reports_dir=str(tmp_path / "reports"),
        open_reports=False,
        admin_username="admin",
        admin_password="admin123",
    )


@pytest.fixture
def lib(tmp_path, request, test_settings):
    # Each test gets its own database file
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    lib = Library(db_file=db_file, config=test_settings)
    yield lib
    lib.close()


@pytest.fixture
def make_book(lib):
    counter = iter(range(1, 10_000))

    def _make(title="Clean Code", author="Robert C. Martin", stock=3, isbn=None, category="Programming", **kw):
        isbn = isbn or f"978{next(counter):010d}"
        book = Book(title=title, author=author, isbn=isbn, category=category, stock=stock, **kw)
        return lib.books.create(book).unwrap()

    return _make


@pytest.fixture
def make_user(lib):
    counter = iter(range(1, 10_000))

    def _make(name="Ada", surname="Lovelace", username=None, role=UserRole.READER, password="secret1", **kw):
        n = next(counter)
        username = username or f"reader{n}"
        user = User(name=name, surname=surname, username=username, email=f"{username}@example.com",
                    role=role, password=password, **kw)
        return lib.users.create(user).unwrap()

    return _make
