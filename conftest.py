import mongomock
import pytest
from fastapi.testclient import TestClient

from database import BOOKS, STUDENTS, RecordStore, get_store
from main import app
from schemas import Book, Student


@pytest.fixture
def store():
    # Each test gets its own in-memory server
    record_store = RecordStore(database_name="studentDB_test", client=mongomock.MongoClient(tz_aware=True)).connect()
    yield record_store
    record_store.close()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def student(store):
    return store.create(STUDENTS, Student(name="John Doe", age=22, course="MERN Stack", email="john@email.com"))


@pytest.fixture
def other_student(store):
    return store.create(STUDENTS, Student(name="Jane Smith", age=24, course="Python Development"))


@pytest.fixture
def book(store):
    return store.create(BOOKS, Book(title="X", author="Someone", isbn="1").to_document())
