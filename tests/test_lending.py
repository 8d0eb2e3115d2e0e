from datetime import datetime, timedelta

import pytest
from bson import ObjectId

from database import BOOKS, STUDENTS
from errors import Conflict, NotFound, ValidationError
from lending import LendingService


def assert_lending_invariant(doc):
    borrow_fields = (doc.get("borrowedBy"), doc.get("borrowDate"), doc.get("dueDate"))
    if doc["available"]:
        assert all(f is None for f in borrow_fields)
    else:
        assert all(f is not None for f in borrow_fields)


def test_borrow_marks_book_borrowed(store, book, student):
    service = LendingService(store)

    result = service.borrow(str(book["_id"]), str(student["_id"]))

    assert result["available"] is False
    assert result["dueDate"] - result["borrowDate"] == timedelta(days=14)
    assert result["borrowedBy"] == {"_id": student["_id"], "name": "John Doe", "email": "john@email.com"}

    stored = store.find_by_id(BOOKS, book["_id"])
    assert stored["borrowedBy"] == student["_id"]
    assert_lending_invariant(stored)


def test_borrow_uses_configured_loan_period(store, book, student):
    result = LendingService(store, loan_period_days=7).borrow(str(book["_id"]), str(student["_id"]))
    assert result["dueDate"] - result["borrowDate"] == timedelta(days=7)


def test_borrow_unknown_book(store, student):
    with pytest.raises(NotFound, match="Book not found"):
        LendingService(store).borrow(str(ObjectId()), str(student["_id"]))


def test_borrow_unknown_student_leaves_book_available(store, book):
    with pytest.raises(NotFound, match="Student not found"):
        LendingService(store).borrow(str(book["_id"]), str(ObjectId()))
    assert store.find_by_id(BOOKS, book["_id"])["available"] is True


def test_borrow_malformed_id(store, book):
    with pytest.raises(ValidationError):
        LendingService(store).borrow(str(book["_id"]), "not-an-id")


def test_second_borrow_conflicts_without_state_change(store, book, student, other_student):
    service = LendingService(store)
    service.borrow(str(book["_id"]), str(student["_id"]))
    before = store.find_by_id(BOOKS, book["_id"])

    with pytest.raises(Conflict, match="already borrowed"):
        service.borrow(str(book["_id"]), str(other_student["_id"]))

    assert store.find_by_id(BOOKS, book["_id"]) == before


def test_borrow_that_loses_race_is_conflict(store, book, student, other_student, monkeypatch):
    service = LendingService(store)
    update_where = store.update_where
    now = datetime(2024, 1, 1)

    def racing_update(name, filter_dict, fields):
        # Another request wins between our availability check and our write.
        update_where(BOOKS, {"_id": book["_id"]}, {
            "available": False,
            "borrowedBy": other_student["_id"],
            "borrowDate": now,
            "dueDate": now + timedelta(days=14),
        })
        return update_where(name, filter_dict, fields)

    monkeypatch.setattr(store, "update_where", racing_update)

    with pytest.raises(Conflict):
        service.borrow(str(book["_id"]), str(student["_id"]))

    stored = store.find_by_id(BOOKS, book["_id"])
    assert stored["borrowedBy"] == other_student["_id"]
    assert_lending_invariant(stored)


def test_return_clears_borrow_fields(store, book, student):
    service = LendingService(store)
    service.borrow(str(book["_id"]), str(student["_id"]))

    result = service.return_book(str(book["_id"]))

    assert result["available"] is True
    assert result["borrowedBy"] is None
    assert result["borrowDate"] is None
    assert result["dueDate"] is None
    assert_lending_invariant(store.find_by_id(BOOKS, book["_id"]))


def test_return_of_available_book_conflicts(store, book):
    before = store.find_by_id(BOOKS, book["_id"])
    with pytest.raises(Conflict, match="not currently borrowed"):
        LendingService(store).return_book(str(book["_id"]))
    assert store.find_by_id(BOOKS, book["_id"]) == before


def test_return_unknown_book(store):
    with pytest.raises(NotFound):
        LendingService(store).return_book(str(ObjectId()))


def test_borrow_then_return_round_trip(store, book, student):
    service = LendingService(store)
    before = store.find_by_id(BOOKS, book["_id"])

    service.borrow(str(book["_id"]), str(student["_id"]))
    service.return_book(str(book["_id"]))

    assert store.find_by_id(BOOKS, book["_id"]) == before


def test_enrich_resolves_borrowers(store, book, student):
    service = LendingService(store)
    service.borrow(str(book["_id"]), str(student["_id"]))

    books = service.enrich(store.find(BOOKS))

    assert books[0]["borrowedBy"]["name"] == "John Doe"


def test_enrich_keeps_dangling_reference(store, book, student):
    service = LendingService(store)
    service.borrow(str(book["_id"]), str(student["_id"]))
    store.delete_by_id(STUDENTS, student["_id"])

    books = service.enrich(store.find(BOOKS))

    assert books[0]["borrowedBy"] == student["_id"]
