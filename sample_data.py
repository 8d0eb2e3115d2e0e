"""Fixture records served by the ``/sample-data`` routes."""

SAMPLE_STUDENTS = [
    {"name": "John Doe", "age": 22, "course": "MERN Stack", "email": "john@email.com", "phone": "123-456-7890"},
    {"name": "Jane Smith", "age": 24, "course": "Python Development", "email": "jane@email.com", "phone": "123-456-7891"},
    {"name": "Mike Johnson", "age": 23, "course": "MERN Stack", "email": "mike@email.com", "phone": "123-456-7892"},
    {"name": "Sarah Wilson", "age": 25, "course": "Data Science", "email": "sarah@email.com", "phone": "123-456-7893"},
    {"name": "Alex Brown", "age": 21, "course": "MERN Stack", "status": "completed", "email": "alex@email.com", "phone": "123-456-7894"},
]

SAMPLE_BOOKS = [
    {"title": "JavaScript: The Good Parts", "author": "Douglas Crockford", "isbn": "978-0596517748", "category": "Programming"},
    {"title": "Clean Code", "author": "Robert C. Martin", "isbn": "978-0132350884", "category": "Programming"},
    {"title": "The Pragmatic Programmer", "author": "David Thomas, Andrew Hunt", "isbn": "978-0201616224", "category": "Programming"},
    {"title": "Python Crash Course", "author": "Eric Matthes", "isbn": "978-1593276034", "category": "Programming"},
    {"title": "Data Science from Scratch", "author": "Joel Grus", "isbn": "978-1492041139", "category": "Data Science"},
]
