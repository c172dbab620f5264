import sqlite3

import pytest

from bibliodesk.models import User, UserRole
from bibliodesk.results import Status


def test_create_hashes_password(lib):
    user = User("Grace", "Hopper", "ghopper", "grace@example.com", role=UserRole.LIBRARIAN, password="cobol60")
    created = lib.users.create(user)
    assert created.is_ok
    assert user.password is None
    stored = lib.users.get(user.id).value
    assert stored.password_hash.startswith("$2")
    assert stored.password_hash != "cobol60"
    assert stored.role is UserRole.LIBRARIAN


def test_create_without_password_raises(lib):
    with pytest.raises(ValueError, match="Password is required."):
        lib.users.create(User("No", "Pass", "nopass", "nopass@example.com"))


def test_username_and_email_must_be_unique(lib, make_user):
    make_user(username="ada")
    taken_name = lib.users.create(User("Other", "Person", "ada", "other@example.com", password="secret1"))
    assert taken_name.status is Status.CONFLICT
    assert taken_name.message == "Username ada is already taken."

    taken_mail = lib.users.create(User("Other", "Person", "other", "ada@example.com", password="secret1"))
    assert taken_mail.status is Status.CONFLICT
    assert taken_mail.message == "Email ada@example.com is already registered."
    assert lib.users.count() == 1


def test_update_keeps_hash_without_new_password(lib, make_user):
    user = make_user()
    original_hash = lib.users.get(user.id).value.password_hash

    user = lib.users.get(user.id).value
    user.phone = "555-0100"
    user.password_hash = None
    assert lib.users.update(user).is_ok
    reloaded = lib.users.get(user.id).value
    assert reloaded.phone == "555-0100"
    assert reloaded.password_hash == original_hash

    reloaded.password = "brandnew"
    assert lib.users.update(reloaded).is_ok
    assert lib.users.get(user.id).value.password_hash != original_hash


def test_update_may_keep_own_username(lib, make_user):
    user = make_user(username="keepme")
    user.name = "Renamed"
    assert lib.users.update(user).is_ok
    assert lib.users.username_exists("keepme")
    assert not lib.users.username_exists("keepme", exclude_id=user.id)


def test_find_by_username_active_only(lib, make_user):
    user = make_user(username="sleepy")
    assert lib.users.set_active(user.id, False).is_ok
    assert lib.users.find_by_username("sleepy").is_ok
    assert lib.users.find_by_username("sleepy", active_only=True).status is Status.NOT_FOUND
    assert lib.users.count_active() == 0


def test_search_and_roles(lib, make_user):
    make_user(name="Ada", surname="Lovelace")
    make_user(name="Alan", surname="Turing", role=UserRole.ADMIN)
    assert [u.surname for u in lib.users.search_by_name("tur")] == ["Turing"]
    assert [u.name for u in lib.users.list_by_role(UserRole.ADMIN)] == ["Alan"]
    assert [u.name for u in lib.users.list_all()] == ["Ada", "Alan"]


def test_delete_user(lib, make_user, make_book):
    lonely = make_user()
    assert lib.users.delete(lonely.id).is_ok
    assert lib.users.delete(lonely.id).status is Status.NOT_FOUND

    borrower = make_user()
    loan = lib.circulation.issue_loan(borrower.id, make_book().id).unwrap()
    lib.circulation.return_loan(loan.id).unwrap()
    assert lib.users.delete(borrower.id).status is Status.CONFLICT


def test_set_active_unknown_user(lib):
    assert lib.users.set_active(999, True).status is Status.NOT_FOUND


def test_uniqueness_ignores_case(lib, make_user):
    make_user(username="ada")
    upper_name = lib.users.create(User("Other", "Person", "ADA", "other@example.com", password="secret1"))
    assert upper_name.status is Status.CONFLICT
    assert upper_name.message == "Username ADA is already taken."

    mixed_mail = lib.users.create(User("Other", "Person", "other", "Ada@Example.com", password="secret1"))
    assert mixed_mail.status is Status.CONFLICT
    assert mixed_mail.message == "Email Ada@Example.com is already registered."

    assert lib.users.username_exists("Ada")
    assert lib.users.email_exists("ADA@EXAMPLE.COM")
    assert lib.users.find_by_username("Ada").value.username == "ada"
    assert lib.users.count() == 1


def test_unique_constraint_ignores_case(lib, make_user):
    make_user(username="ada")
    with pytest.raises(sqlite3.IntegrityError):
        with lib.pool.connection() as conn:
            conn.execute(
                "INSERT INTO users (name, surname, role, email, registered_on, username, password_hash) "
                "VALUES ('X', 'Y', 'READER', 'x@example.com', '2024-01-01', 'Ada', 'hash')"
            )


def test_update_onto_taken_username_or_email_is_conflict(lib, make_user):
    make_user(username="ada")
    other = make_user(username="grace")

    other.username = "ada"
    taken_name = lib.users.update(other)
    assert taken_name.status is Status.CONFLICT
    assert taken_name.message == "Username ada is already taken."

    other.username = "grace"
    other.email = "ADA@example.com"
    taken_mail = lib.users.update(other)
    assert taken_mail.status is Status.CONFLICT
    assert taken_mail.message == "Email ADA@example.com is already registered."

    stored = lib.users.get(other.id).value
    assert stored.username == "grace"
    assert stored.email == "grace@example.com"
