from datetime import datetime, timedelta

from bson import ObjectId


def create_student(client, name="John Doe", email="john@email.com"):
    response = client.post("/students/single", json={"name": name, "age": 22, "course": "MERN Stack", "email": email})
    return response.json()["data"]["id"]


def create_book(client, **fields):
    payload = {"title": "X", "author": "Someone", "isbn": "1"}
    payload.update(fields)
    response = client.post("/library/books", json=payload)
    assert response.status_code == 201
    return response.json()["data"]


def test_new_book_is_available(client):
    book = create_book(client, category="Programming")

    assert book["available"] is True
    assert book["borrowedBy"] is None
    assert book["borrowDate"] is None
    assert book["dueDate"] is None


def test_new_book_ignores_client_borrow_fields(client):
    book = create_book(client, available=False, borrowedBy=str(ObjectId()))
    assert book["available"] is True
    assert book["borrowedBy"] is None


def test_duplicate_isbn_is_rejected(client):
    create_book(client)

    response = client.post("/library/books", json={"title": "Y", "author": "Other", "isbn": "1"})

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["message"] == "Error adding book"
    assert response.json()["error"]


def test_books_without_isbn_do_not_collide(client):
    client.post("/library/books", json={"title": "A", "author": "Someone"})
    response = client.post("/library/books", json={"title": "B", "author": "Someone"})
    assert response.status_code == 201


def test_book_requires_title_and_author(client):
    assert client.post("/library/books", json={"author": "Someone"}).status_code == 400
    assert client.post("/library/books", json={"title": "X"}).status_code == 400


def test_lending_scenario(client):
    book = create_book(client)
    first = create_student(client)
    second = create_student(client, name="Jane Smith", email="jane@email.com")

    response = client.post("/library/borrow", json={"bookId": book["id"], "studentId": first})
    assert response.status_code == 200
    borrowed = response.json()["data"]
    assert borrowed["available"] is False
    assert borrowed["borrowedBy"] == {"id": first, "name": "John Doe", "email": "john@email.com"}
    due = datetime.fromisoformat(borrowed["dueDate"])
    assert due - datetime.fromisoformat(borrowed["borrowDate"]) == timedelta(days=14)

    response = client.post("/library/borrow", json={"bookId": book["id"], "studentId": second})
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Book is already borrowed"}

    response = client.post("/library/return", json={"bookId": book["id"]})
    assert response.status_code == 200
    returned = response.json()["data"]
    assert returned["available"] is True
    assert returned["borrowedBy"] is None
    assert returned["dueDate"] is None


def test_borrow_errors(client):
    book = create_book(client)
    student = create_student(client)

    response = client.post("/library/borrow", json={"bookId": str(ObjectId()), "studentId": student})
    assert response.status_code == 404
    assert response.json()["message"] == "Book not found"

    response = client.post("/library/borrow", json={"bookId": book["id"], "studentId": str(ObjectId())})
    assert response.status_code == 404
    assert response.json()["message"] == "Student not found"

    response = client.post("/library/borrow", json={"bookId": book["id"]})
    assert response.status_code == 400


def test_return_errors(client):
    book = create_book(client)

    response = client.post("/library/return", json={"bookId": book["id"]})
    assert response.status_code == 400
    assert response.json()["message"] == "Book is not currently borrowed"

    response = client.post("/library/return", json={"bookId": str(ObjectId())})
    assert response.status_code == 404


def test_books_listing_enriches_borrower(client):
    book = create_book(client)
    create_book(client, title="Other", isbn="2")
    student = create_student(client)
    client.post("/library/borrow", json={"bookId": book["id"], "studentId": student})

    data = client.get("/library/books").json()["data"]
    borrowed = [b for b in data if b["id"] == book["id"]][0]
    assert borrowed["borrowedBy"]["name"] == "John Doe"

    available = client.get("/library/available").json()
    assert available["count"] == 1
    assert available["data"][0]["title"] == "Other"


def test_books_by_category(client):
    client.post("/library/sample-data")

    response = client.get("/library/category/data science")

    assert response.json()["count"] == 1
    assert response.json()["data"][0]["title"] == "Data Science from Scratch"


def test_sample_books_twice_hits_unique_isbn(client):
    assert client.post("/library/sample-data").status_code == 201
    assert client.post("/library/sample-data").status_code == 400


def test_stats_and_health(client):
    book = create_book(client)
    create_book(client, title="Other", isbn="2")
    student = create_student(client)
    client.post("/library/borrow", json={"bookId": book["id"], "studentId": student})

    books = client.get("/stats").json()["collections"]["books"]
    assert books == {"total": 2, "available": 1, "borrowed": 1}

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["success"] is True


def test_schema_describes_collections(client):
    schema = client.get("/schema").json()
    assert "borrowedBy" in schema["book"]["properties"]
    assert "enrollmentDate" in schema["student"]["properties"]


def test_blank_isbn_is_treated_as_absent(client):
    first = create_book(client, title="A", isbn="")
    second = create_book(client, title="B", isbn="  ")

    assert "isbn" not in first
    assert "isbn" not in second


def test_borrow_dates_carry_utc_offset(client):
    book = create_book(client)
    student = create_student(client)

    borrowed = client.post("/library/borrow", json={"bookId": book["id"], "studentId": student}).json()["data"]

    assert datetime.fromisoformat(borrowed["borrowDate"]).utcoffset() == timedelta(0)
    listed = client.get("/library/books").json()["data"][0]
    assert listed["borrowDate"] == borrowed["borrowDate"]
    assert listed["dueDate"] == borrowed["dueDate"]
