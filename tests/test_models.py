from datetime import date

from bibliodesk.models import Book, Loan, LoanStatus, User, UserRole


def test_book_availability_and_low_stock():
    book = Book("  Dune ", "Frank Herbert", "9780441172719", category="Sci-Fi", stock=0)
    assert book.title == "Dune"
    assert not book.is_available
    assert book.is_low_stock()

    book.stock = 5
    assert book.is_available
    assert not book.is_low_stock()
    assert book.is_low_stock(threshold=5)
    assert not book.is_low_stock(threshold=4)


def test_book_dict_roundtrip_keeps_optional_fields():
    book = Book("Dune", "Frank Herbert", "9780441172719", category="Sci-Fi", stock=2,
                publication_year=1965, publisher="Chilton", id=7)
    again = Book.from_dict(book.to_dict())
    assert again.id == 7
    assert again.publication_year == 1965
    assert again.publisher == "Chilton"


def test_user_to_dict_hides_password_hash():
    user = User("Ada", "Lovelace", "ada", "ada@example.com", role=UserRole.LIBRARIAN,
                password_hash="$2b$12$abc")
    data = user.to_dict()
    assert "password_hash" not in data
    assert "password" not in data
    assert data["role"] == "LIBRARIAN"
    assert user.full_name == "Ada Lovelace"
    assert User.from_dict(data).role is UserRole.LIBRARIAN


def test_role_and_status_display_names():
    assert str(UserRole.ADMIN) == "Administrator"
    assert str(LoanStatus.RENEWED) == "Renewed"


def test_loan_date_helpers_at_fixed_day():
    loan = Loan(user_id=1, book_id=1, loan_date=date(2024, 1, 1), expected_return_date=date(2024, 1, 15))
    assert loan.is_active
    assert not loan.is_overdue(date(2024, 1, 15))
    assert loan.days_remaining(date(2024, 1, 10)) == 5

    later = date(2024, 1, 20)
    assert loan.is_overdue(later)
    assert loan.days_overdue(later) == 5
    assert loan.days_remaining(later) == -5


def test_returned_loan_is_never_overdue():
    loan = Loan(user_id=1, book_id=1, loan_date=date(2024, 1, 1), expected_return_date=date(2024, 1, 15),
                actual_return_date=date(2024, 2, 1), status=LoanStatus.RETURNED)
    assert not loan.is_active
    assert not loan.is_overdue(date(2024, 3, 1))
    assert loan.days_remaining(date(2024, 3, 1)) == 0
    data = loan.to_dict(date(2024, 3, 1))
    assert data["status"] == "RETURNED"
    assert data["actual_return_date"] == "2024-02-01"
    assert Loan.from_dict(data).status is LoanStatus.RETURNED
