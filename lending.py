"""
Book lending workflow.

A book is in one of two states:

    available --borrow--> borrowed --return--> available

``LendingService`` performs each transition as a single conditional
``find_one_and_update`` keyed on the book's current ``available`` flag,
so two concurrent borrows of the same book cannot both succeed: the
second one matches nothing and is reported as a ``Conflict``.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional

from bson import ObjectId

from database import BOOKS, STUDENTS, Document, RecordStore, to_object_id
from errors import Conflict, NotFound, ValidationError, store_errors
from schemas import utcnow

logger = logging.getLogger(__name__)

DEFAULT_LOAN_PERIOD_DAYS = 14

ALREADY_BORROWED = "Book is already borrowed"
NOT_BORROWED = "Book is not currently borrowed"


class LendingService:
    """Borrow and return books on behalf of students."""

    def __init__(self, store: RecordStore, loan_period_days: int = DEFAULT_LOAN_PERIOD_DAYS):
        self.store = store
        self.loan_period = timedelta(days=loan_period_days)

    def borrow(self, book_id: str, student_id: str) -> Document:
        """Lend an available book to an existing student.

        Raises ``NotFound`` when either id does not resolve and
        ``Conflict`` when the book is already out, including the case
        where another request borrowed it between our read and our write.
        Returns the updated book with its borrower resolved.
        """
        book_oid = to_object_id(book_id)
        student_oid = to_object_id(student_id)

        with store_errors("Error borrowing book", ValidationError):
            book = self.store.find_by_id(BOOKS, book_oid)
            if not book:
                raise NotFound("Book not found")
            if not book.get("available"):
                raise Conflict(ALREADY_BORROWED)

            student = self.store.find_by_id(STUDENTS, student_oid)
            if not student:
                raise NotFound("Student not found")

            borrow_date = utcnow()
            updated = self.store.update_where(
                BOOKS,
                {"_id": book_oid, "available": True},
                {
                    "available": False,
                    "borrowedBy": student_oid,
                    "borrowDate": borrow_date,
                    "dueDate": borrow_date + self.loan_period,
                },
            )
            if updated is None:
                logger.warning("Borrow of book %s lost a race with another request", book_oid)
                self._raise_missed(book_oid, ALREADY_BORROWED)

        logger.info("Book %s borrowed by student %s, due %s", book_oid, student_oid, updated["dueDate"])
        updated["borrowedBy"] = _borrower(student)
        return updated

    def return_book(self, book_id: str) -> Document:
        """Mark a borrowed book as available again and clear its borrow fields."""
        book_oid = to_object_id(book_id)

        with store_errors("Error returning book", ValidationError):
            updated = self.store.update_where(
                BOOKS,
                {"_id": book_oid, "available": False},
                {"available": True, "borrowedBy": None, "borrowDate": None, "dueDate": None},
            )
            if updated is None:
                self._raise_missed(book_oid, NOT_BORROWED)

        logger.info("Book %s returned", book_oid)
        return updated

    def enrich(self, books: List[Document]) -> List[Document]:
        """Replace each ``borrowedBy`` id with the borrower's id, name and email.

        The reference is weak: when the student no longer exists the raw
        id is left in place.
        """
        ids = {b["borrowedBy"] for b in books if isinstance(b.get("borrowedBy"), ObjectId)}
        if not ids:
            return books
        students: Dict[ObjectId, Document] = {
            s["_id"]: s for s in self.store.find(STUDENTS, {"_id": {"$in": list(ids)}})
        }
        for book in books:
            student = students.get(book.get("borrowedBy"))
            if student is not None:
                book["borrowedBy"] = _borrower(student)
        return books

    def _raise_missed(self, book_oid: ObjectId, conflict_message: str) -> None:
        # The conditional write matched nothing: either the book is gone or
        # it is not in the state the transition starts from.
        if self.store.find_by_id(BOOKS, book_oid) is None:
            raise NotFound("Book not found")
        raise Conflict(conflict_message)


def _borrower(student: Optional[Document]) -> Optional[Document]:
    if student is None:
        return None
    return {"_id": student["_id"], "name": student.get("name"), "email": student.get("email")}
