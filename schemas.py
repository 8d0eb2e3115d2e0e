"""
Database Schemas for the Student & Library API

Each collection schema maps to a MongoDB collection:
- Student -> "students"
- Book -> "books"

Field names travel in camelCase on the wire and in the database
(``enrollmentDate``, ``borrowedBy``); the Python attributes are
snake_case.  The request models at the bottom validate request bodies
before they reach the store or the lending workflow.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def to_store_precision(value: datetime) -> datetime:
    """UTC, truncated to the milliseconds MongoDB keeps.

    Naive values are taken to be UTC already.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def utcnow() -> datetime:
    return to_store_precision(datetime.now(timezone.utc))


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
        validate_default=True,
        str_strip_whitespace=True,
    )


class StudentStatus(str, Enum):
    ENROLLED = "enrolled"
    COMPLETED = "completed"
    DROPPED = "dropped"


class Student(CamelModel):
    """
    Students collection schema
    Collection: "students"
    """
    name: str = Field(..., min_length=1, description="Full name")
    age: int = Field(..., ge=0, description="Age in years")
    course: str = Field(..., min_length=1, description="Course the student is enrolled in")
    status: StudentStatus = Field(StudentStatus.ENROLLED, description="enrolled | completed | dropped")
    enrollment_date: datetime = Field(default_factory=utcnow, description="Enrollment timestamp (default now)")
    email: Optional[str] = Field(None, description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")

    @field_validator("enrollment_date")
    @classmethod
    def store_precision(cls, value: datetime) -> datetime:
        return to_store_precision(value)


class Book(CamelModel):
    """
    Books collection schema
    Collection: "books"

    A book is either available (no borrow fields set) or borrowed (all
    three borrow fields set).  Only the lending workflow moves a book
    between the two.
    """
    title: str = Field(..., min_length=1, description="Book title")
    author: str = Field(..., min_length=1, description="Author name")
    isbn: Optional[str] = Field(None, description="ISBN, unique across books when present")
    category: Optional[str] = Field(None, description="Genre or category")
    available: bool = Field(True, description="Whether the book can be borrowed")
    borrowed_by: Optional[str] = Field(None, description="Student id of the current borrower")
    borrow_date: Optional[datetime] = Field(None, description="When the book was borrowed")
    due_date: Optional[datetime] = Field(None, description="When the book is due back")

    @model_validator(mode="after")
    def check_lending_fields(self) -> "Book":
        borrow_fields = (self.borrowed_by, self.borrow_date, self.due_date)
        if self.available and any(f is not None for f in borrow_fields):
            raise ValueError("an available book cannot carry borrowedBy, borrowDate or dueDate")
        if not self.available and any(f is None for f in borrow_fields):
            raise ValueError("a borrowed book needs borrowedBy, borrowDate and dueDate")
        return self

    def to_document(self) -> Dict[str, Any]:
        doc = self.model_dump(by_alias=True)
        # Blank counts as absent so the sparse unique index skips it.
        for optional in ("isbn", "category"):
            if not doc.get(optional):
                doc.pop(optional, None)
        return doc


# ----------------------
# Request models
# ----------------------

class StudentUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    age: Optional[int] = Field(None, ge=0)
    course: Optional[str] = Field(None, min_length=1)
    status: Optional[StudentStatus] = None
    enrollment_date: Optional[datetime] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @field_validator("enrollment_date")
    @classmethod
    def store_precision(cls, value: Optional[datetime]) -> Optional[datetime]:
        return None if value is None else to_store_precision(value)

    def to_fields(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class BulkUpdateRequest(CamelModel):
    filter: Dict[str, Any] = Field(..., description="Store filter expression")
    update: StudentUpdate


class DeleteByConditionRequest(CamelModel):
    condition: Dict[str, Any] = Field(..., min_length=1, description="Store filter expression, at least one field")


class CreateBook(CamelModel):
    """Fields a client may supply for a new book; borrow state is not one of them."""
    title: str = Field(..., min_length=1)
    author: str = Field(..., min_length=1)
    isbn: Optional[str] = None
    category: Optional[str] = None


class BorrowRequest(CamelModel):
    book_id: str = Field(..., min_length=1)
    student_id: str = Field(..., min_length=1)


class ReturnRequest(CamelModel):
    book_id: str = Field(..., min_length=1)
