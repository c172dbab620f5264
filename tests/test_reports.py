from datetime import date, datetime, timedelta

from bibliodesk.services.reports import report_filename, truncate

NOW = datetime(2024, 6, 1, 9, 30, 15)


def test_helpers():
    assert truncate("A very long book title indeed", 10) == "A very ..."
    assert truncate("Short", 10) == "Short"
    assert truncate(None, 10) == ""
    assert report_filename("Books_Report", NOW) == "Books_Report_20240601_093015.txt"


def test_empty_catalog_produces_no_file(lib):
    assert lib.reports.books_report(NOW) is None
    assert lib.reports.active_loans_report(NOW) is None
    assert lib.reports.overdue_loans_report(NOW) is None
    assert not lib.reports.reports_dir.exists() or not any(lib.reports.reports_dir.iterdir())


def test_books_report(lib, make_book):
    make_book(title="Dune", author="Frank Herbert", stock=4, publication_year=1965)
    make_book(title="Emma", author="Jane Austen", stock=1)

    path = lib.reports.books_report(NOW)
    assert path.name == "Books_Report_20240601_093015.txt"
    text = path.read_text(encoding="utf-8")
    assert "BOOKS REPORT" in text
    assert "Generated on: 01/06/2024 09:30:15" in text
    assert "Total books: 2" in text
    assert "Frank Herbert" in text and "1965" in text
    assert text.rstrip().endswith("End of report")


def test_users_report(lib, make_user):
    user = make_user(name="Ada", surname="Lovelace")
    lib.users.set_active(user.id, False)
    text = lib.reports.users_report(NOW).read_text(encoding="utf-8")
    assert "Total users: 1" in text
    assert "Ada Lovelace" in text
    assert "INACTIVE" in text


def test_loan_reports(lib, make_book, make_user):
    reader = make_user()
    late = lib.circulation.issue_loan(reader.id, make_book(title="Late Book").id, days=10,
                                      loan_date=date(2024, 5, 1)).unwrap()
    lib.circulation.issue_loan(reader.id, make_book(title="Fresh Book").id, days=30,
                               loan_date=date(2024, 5, 25)).unwrap()

    active = lib.reports.active_loans_report(NOW).read_text(encoding="utf-8")
    assert "Total active loans: 2" in active
    assert "Late Book" in active and "Fresh Book" in active

    overdue_path = lib.reports.overdue_loans_report(NOW)
    assert overdue_path.name.startswith("Overdue_Loans_Report_")
    overdue = overdue_path.read_text(encoding="utf-8")
    assert "Total overdue loans: 1" in overdue
    assert "ATTENTION" in overdue
    assert "Late Book" in overdue and "Fresh Book" not in overdue
    delay = (NOW.date() - late.expected_return_date).days
    assert f"{delay} days" in overdue
    assert late.expected_return_date == date(2024, 5, 1) + timedelta(days=10)
