import sqlite3
from datetime import date, timedelta

import pytest

from bibliodesk.models import Loan, LoanStatus
from bibliodesk.results import ConflictError, Status


def _stock(lib, book_id):
    return lib.books.get(book_id).value.stock


def test_issue_and_return_moves_stock(lib, make_book, make_user):
    book = make_book(stock=1)
    alice = make_user(name="Alice")
    bob = make_user(name="Bob")

    loan = lib.circulation.issue_loan(alice.id, book.id).unwrap()
    assert _stock(lib, book.id) == 0
    assert loan.status is LoanStatus.PENDING
    assert loan.actual_return_date is None
    assert loan.book_title == book.title
    assert loan.user_name == alice.full_name

    rejected = lib.circulation.issue_loan(bob.id, book.id)
    assert rejected.status is Status.CONFLICT
    assert rejected.message == f"No copies of '{book.title}' are available."
    assert _stock(lib, book.id) == 0
    assert len(lib.loans.list_by_book(book.id)) == 1

    returned = lib.circulation.return_loan(loan.id).unwrap()
    assert _stock(lib, book.id) == 1
    assert returned.status is LoanStatus.RETURNED
    assert returned.actual_return_date == date.today()

    assert lib.circulation.issue_loan(bob.id, book.id).is_ok
    assert _stock(lib, book.id) == 0


def test_default_and_custom_loan_length(lib, make_book, make_user):
    user = make_user()
    start = date(2024, 3, 1)
    default = lib.circulation.issue_loan(user.id, make_book().id, loan_date=start).unwrap()
    assert default.expected_return_date == start + timedelta(days=14)
    custom = lib.circulation.issue_loan(user.id, make_book().id, days=30, loan_date=start, notes="summer").unwrap()
    assert custom.expected_return_date == date(2024, 3, 31)
    assert custom.notes == "summer"


@pytest.mark.parametrize("days", [0, 91])
def test_loan_length_out_of_range(lib, make_book, make_user, days):
    with pytest.raises(ValueError, match="Loan days must be between 1 and 90."):
        lib.circulation.issue_loan(make_user().id, make_book().id, days=days)


def test_issue_rejections_leave_stock_alone(lib, make_book, make_user):
    book = make_book(stock=2)
    user = make_user()
    assert lib.circulation.issue_loan(999, book.id).status is Status.NOT_FOUND
    assert lib.circulation.issue_loan(user.id, 999).status is Status.NOT_FOUND

    lib.users.set_active(user.id, False)
    inactive = lib.circulation.issue_loan(user.id, book.id)
    assert inactive.status is Status.NOT_FOUND
    assert inactive.message == f"User {user.id} is inactive."
    assert _stock(lib, book.id) == 2
    assert lib.loans.list_all() == []


def test_stock_never_negative_over_sequence(lib, make_book, make_user):
    book = make_book(stock=2)
    users = [make_user() for _ in range(4)]
    issued = []
    for user in users:
        result = lib.circulation.issue_loan(user.id, book.id)
        if result.is_ok:
            issued.append(result.value)
        assert _stock(lib, book.id) >= 0
    assert len(issued) == 2

    for loan in issued:
        lib.circulation.return_loan(loan.id).unwrap()
        assert lib.circulation.return_loan(loan.id).status is Status.CONFLICT
    assert _stock(lib, book.id) == 2


def test_return_date_set_iff_returned(lib, make_book, make_user):
    user = make_user()
    kept = lib.circulation.issue_loan(user.id, make_book().id).unwrap()
    back = lib.circulation.issue_loan(user.id, make_book().id).unwrap()
    lib.circulation.return_loan(back.id, today=date(2024, 5, 5)).unwrap()

    for loan in lib.loans.list_all():
        assert (loan.status is LoanStatus.RETURNED) == (loan.actual_return_date is not None)
    assert lib.loans.get(back.id).value.actual_return_date == date(2024, 5, 5)
    assert lib.loans.get(kept.id).value.actual_return_date is None


def test_schema_rejects_returned_without_date(lib, make_book, make_user):
    loan = lib.circulation.issue_loan(make_user().id, make_book().id).unwrap()
    with pytest.raises(sqlite3.IntegrityError):
        with lib.pool.connection() as conn:
            conn.execute("UPDATE loans SET status = 'RETURNED' WHERE id = ?", (loan.id,))


def test_renew_extends_due_date(lib, make_book, make_user):
    loan = lib.circulation.issue_loan(make_user().id, make_book().id, loan_date=date.today()).unwrap()
    before = loan.expected_return_date

    renewed = lib.circulation.renew_loan(loan.id, 7).unwrap()
    assert renewed.expected_return_date == before + timedelta(days=7)
    assert renewed.status is LoanStatus.RENEWED

    again = lib.circulation.renew_loan(loan.id, 30).unwrap()
    assert again.expected_return_date == before + timedelta(days=37)


@pytest.mark.parametrize("days", [0, -3, 31])
def test_renew_rejects_out_of_range_days(lib, make_book, make_user, days):
    loan = lib.circulation.issue_loan(make_user().id, make_book().id).unwrap()
    with pytest.raises(ValueError, match="Renewal days must be between 1 and 30."):
        lib.circulation.renew_loan(loan.id, days)
    assert lib.loans.get(loan.id).value.expected_return_date == loan.expected_return_date


def test_renew_returned_or_missing_loan(lib, make_book, make_user):
    loan = lib.circulation.issue_loan(make_user().id, make_book().id).unwrap()
    lib.circulation.return_loan(loan.id).unwrap()
    assert lib.circulation.renew_loan(loan.id, 5).status is Status.CONFLICT
    assert lib.circulation.renew_loan(12345, 5).status is Status.NOT_FOUND


def test_overdue_refresh(lib, make_book, make_user):
    today = date.today()
    loan = lib.circulation.issue_loan(make_user().id, make_book().id, days=1,
                                      loan_date=today - timedelta(days=2)).unwrap()
    assert loan.expected_return_date == today - timedelta(days=1)

    assert lib.circulation.refresh_overdue().unwrap() == 1
    refreshed = lib.loans.get(loan.id).value
    assert refreshed.status is LoanStatus.OVERDUE
    assert refreshed.days_remaining() < 0


def test_overdue_refresh_is_idempotent(lib, make_book, make_user):
    user = make_user()
    today = date(2024, 6, 1)
    lib.circulation.issue_loan(user.id, make_book().id, days=5, loan_date=date(2024, 5, 1)).unwrap()
    lib.circulation.issue_loan(user.id, make_book().id, days=60, loan_date=date(2024, 5, 1)).unwrap()

    lib.circulation.refresh_overdue(today)
    first = {l.id for l in lib.loans.list_by_status(LoanStatus.OVERDUE)}
    assert lib.circulation.refresh_overdue(today).unwrap() == 0
    second = {l.id for l in lib.loans.list_by_status(LoanStatus.OVERDUE)}
    assert first == second
    assert len(first) == 1


def test_renewing_overdue_loan_sets_renewed_then_reflags(lib, make_book, make_user):
    today = date.today()
    loan = lib.circulation.issue_loan(make_user().id, make_book().id, days=1,
                                      loan_date=today - timedelta(days=20)).unwrap()
    lib.circulation.refresh_overdue()

    renewed = lib.circulation.renew_loan(loan.id, 5).unwrap()
    assert renewed.status is LoanStatus.RENEWED
    assert renewed.expected_return_date < today

    lib.circulation.refresh_overdue()
    assert lib.loans.get(loan.id).value.status is LoanStatus.OVERDUE
    assert [l.id for l in lib.circulation.overdue_loans()] == [loan.id]


def test_update_cannot_return_a_loan(lib, make_book, make_user):
    book = make_book(stock=1)
    loan = lib.circulation.issue_loan(make_user().id, book.id).unwrap()
    loan.status = LoanStatus.RETURNED
    loan.actual_return_date = date.today()
    result = lib.loans.update(loan)
    assert result.status is Status.CONFLICT
    with pytest.raises(ConflictError):
        result.unwrap()
    assert _stock(lib, book.id) == 0


def test_update_notes_and_due_date(lib, make_book, make_user):
    loan = lib.circulation.issue_loan(make_user().id, make_book().id, loan_date=date(2024, 1, 1)).unwrap()
    loan.notes = "call reader"
    loan.expected_return_date = date(2024, 2, 1)
    updated = lib.loans.update(loan).unwrap()
    assert updated.notes == "call reader"
    assert updated.expected_return_date == date(2024, 2, 1)


def test_delete_active_loan_restores_stock(lib, make_book, make_user):
    book = make_book(stock=1)
    loan = lib.circulation.issue_loan(make_user().id, book.id).unwrap()
    assert lib.loans.delete(loan.id).is_ok
    assert _stock(lib, book.id) == 1
    assert lib.loans.delete(loan.id).status is Status.NOT_FOUND


def test_transaction_rolls_back_on_error(lib, make_book):
    book = make_book(stock=1)
    with pytest.raises(sqlite3.IntegrityError):
        with lib.pool.transaction() as conn:
            conn.execute("UPDATE books SET stock = stock - 1 WHERE id = ?", (book.id,))
            conn.execute("INSERT INTO loans (user_id, book_id, loan_date, expected_return_date) "
                         "VALUES (999, ?, '2024-01-01', '2024-01-15')", (book.id,))
    assert _stock(lib, book.id) == 1


def test_queries_by_user_status_and_active(lib, make_book, make_user):
    alice, bob = make_user(), make_user()
    first = lib.circulation.issue_loan(alice.id, make_book().id).unwrap()
    lib.circulation.issue_loan(bob.id, make_book().id).unwrap()
    lib.circulation.return_loan(first.id).unwrap()

    assert [l.user_id for l in lib.loans.list_by_user(alice.id)] == [alice.id]
    assert [l.user_id for l in lib.loans.list_active()] == [bob.id]
    assert len(lib.loans.list_by_status(LoanStatus.RETURNED)) == 1
    assert lib.loans.has_active_loans(bob.id)
    assert not lib.loans.has_active_loans(alice.id)
    assert isinstance(lib.loans.get(first.id).value, Loan)
