import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import BOOKS, STUDENTS, RecordStore, get_store, serialize
from errors import ApiError, NotFound, ValidationError, store_errors
from lending import LendingService
from logging_config import setup_logging
from queries import (
    advanced_search,
    age_range,
    category_match,
    complex_query,
    exact_match,
    parse_course_list,
    set_membership,
)
from sample_data import SAMPLE_BOOKS, SAMPLE_STUDENTS
from schemas import (
    Book as BookSchema,
    BorrowRequest,
    BulkUpdateRequest,
    CreateBook,
    DeleteByConditionRequest,
    ReturnRequest,
    Student as StudentSchema,
    StudentStatus,
    StudentUpdate,
)

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "store", None) is None:
        app.state.store = RecordStore(
            settings.database_url,
            settings.database_name,
            server_selection_timeout_ms=settings.server_selection_timeout_ms,
        ).connect()
    try:
        yield
    finally:
        app.state.store.close()
        app.state.store = None


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------
# Error rendering
# ----------------------

@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    detail = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content=ValidationError("Invalid request", detail).to_dict())

@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error", "error": str(exc)})

def get_lending(store: RecordStore = Depends(get_store)) -> LendingService:
    return LendingService(store, settings.loan_period_days)

def listing(docs: list, **extra) -> dict:
    return {"success": True, **extra, "count": len(docs), "data": serialize(docs)}

# ----------------------
# Health & Schema
# ----------------------

@app.get("/")
def read_root():
    return {
        "success": True,
        "message": "Student & Library API",
        "database": settings.database_name,
        "collections": [STUDENTS, BOOKS],
        "endpoints": {
            "CRUD Operations": {
                "GET /students": "Fetch all students",
                "GET /students/filter": "Filter students by course",
                "POST /students/single": "Insert one student",
                "POST /students/multiple": "Insert multiple students",
                "PUT /students/{id}": "Update single student",
                "PUT /students/bulk": "Update multiple students",
                "DELETE /students/{id}": "Delete single student",
                "DELETE /students/all": "Delete all students",
            },
            "Query Operators": {
                "GET /students/age-range": "Students by age range ($gt, $lt)",
                "GET /students/courses": "Students by multiple courses ($in)",
                "GET /students/complex": "Complex queries ($and, $or, $exists)",
                "GET /students/advanced-search": "Combined operators",
            },
            "Library System": {
                "GET /library/books": "All books",
                "POST /library/books": "Add new book",
                "POST /library/borrow": "Borrow book",
                "POST /library/return": "Return book",
                "GET /library/available": "Available books",
                "GET /library/category/{category}": "Books by category",
            },
            "Utility": {
                "GET /health": "Health check",
                "GET /stats": "Database statistics",
                "GET /schema": "Collection schemas",
            },
        },
    }

@app.get("/health")
def health(store: RecordStore = Depends(get_store)):
    response = {
        "success": True,
        "message": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": settings.database_name,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        store.ping()
        response["connection_status"] = "Connected"
        response["collections"] = store.list_collection_names()[:10]
    except Exception as e:
        logger.warning("Health check could not reach the database: %s", e)
        response["connection_status"] = f"Error: {str(e)[:80]}"
    return response

@app.get("/stats")
def stats(store: RecordStore = Depends(get_store)):
    with store_errors("Error fetching database stats"):
        by_status = {s.value: store.count(STUDENTS, {"status": s.value}) for s in StudentStatus}
        return {
            "success": True,
            "database": settings.database_name,
            "collections": {
                STUDENTS: {"total": store.count(STUDENTS), "byStatus": by_status},
                BOOKS: {
                    "total": store.count(BOOKS),
                    "available": store.count(BOOKS, {"available": True}),
                    "borrowed": store.count(BOOKS, {"available": False}),
                },
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

@app.get("/schema")
def get_schema():
    return {
        "student": StudentSchema.model_json_schema(by_alias=True),
        "book": BookSchema.model_json_schema(by_alias=True),
    }

# ----------------------
# Students: insert
# ----------------------

@app.post("/students/single", status_code=201)
def insert_student(student: StudentSchema, store: RecordStore = Depends(get_store)):
    with store_errors("Error inserting student", ValidationError):
        created = store.create(STUDENTS, student)
    return {"success": True, "message": "Student inserted successfully", "data": serialize(created)}

@app.post("/students/multiple", status_code=201)
def insert_students(students: List[StudentSchema], store: RecordStore = Depends(get_store)):
    with store_errors("Error inserting students", ValidationError):
        created = store.create_many(STUDENTS, students)
    return {"success": True, "message": f"{len(created)} students inserted successfully", "data": serialize(created)}

@app.post("/students/sample-data", status_code=201)
def insert_sample_students(store: RecordStore = Depends(get_store)):
    with store_errors("Error inserting sample data", ValidationError):
        created = store.create_many(STUDENTS, [StudentSchema(**s) for s in SAMPLE_STUDENTS])
    return {
        "success": True,
        "message": "Sample data inserted successfully",
        "count": len(created),
        "data": serialize(created),
    }

# ----------------------
# Students: read & query
# ----------------------

@app.get("/students")
def list_students(store: RecordStore = Depends(get_store)):
    with store_errors("Error fetching students"):
        return listing(store.find(STUDENTS))

@app.get("/students/filter")
def filter_students(course: Optional[str] = Query(None, description="Exact course name"), store: RecordStore = Depends(get_store)):
    filt = exact_match("course", course) if course else {}
    with store_errors("Error fetching filtered students"):
        return listing(store.find(STUDENTS, filt), filter=filt)

@app.get("/students/mern-stack")
def mern_stack_students(store: RecordStore = Depends(get_store)):
    with store_errors("Error fetching MERN Stack students"):
        docs = store.find(STUDENTS, exact_match("course", "MERN Stack"))
    return listing(docs, message="Students enrolled in MERN Stack")

@app.get("/students/age-range")
def students_by_age_range(
    min_age: Optional[int] = Query(None, alias="minAge"),
    max_age: Optional[int] = Query(None, alias="maxAge"),
    store: RecordStore = Depends(get_store),
):
    filt = age_range(min_age, max_age)
    bounds = filt["age"]
    with store_errors("Error fetching students by age range"):
        docs = store.find(STUDENTS, filt)
    return listing(docs, message=f"Students aged between {bounds['$gt']} and {bounds['$lt']}", filter=filt)

@app.get("/students/courses")
def students_by_courses(courses: Optional[str] = Query(None, description="Comma separated course names"), store: RecordStore = Depends(get_store)):
    course_list = parse_course_list(courses)
    filt = set_membership("course", course_list)
    with store_errors("Error fetching students by courses"):
        docs = store.find(STUDENTS, filt)
    return listing(docs, message="Students enrolled in specified courses", filter=filt, courses=course_list)

@app.get("/students/complex")
def students_complex_query(query_type: str = Query("and", alias="queryType"), store: RecordStore = Depends(get_store)):
    filt, description = complex_query(query_type)
    with store_errors("Error executing complex query"):
        docs = store.find(STUDENTS, filt)
    return listing(docs, message=description, queryType=query_type, filter=filt)

@app.get("/students/advanced-search")
def students_advanced_search(store: RecordStore = Depends(get_store)):
    with store_errors("Error executing advanced search"):
        docs = store.find(STUDENTS, advanced_search())
    return listing(
        docs,
        message="Advanced search with multiple operators",
        criteria="Age 20-25, specific courses, has email, enrolled or completed",
    )

# ----------------------
# Students: update
# ----------------------

@app.put("/students/bulk")
def bulk_update_students(payload: BulkUpdateRequest, store: RecordStore = Depends(get_store)):
    fields = payload.update.to_fields()
    if not fields:
        raise ValidationError("Error updating students", "update must set at least one field")
    with store_errors("Error updating students", ValidationError):
        matched, modified = store.update_many(STUDENTS, payload.filter, fields)
    return {
        "success": True,
        "message": f"{modified} students updated successfully",
        "matchedCount": matched,
        "modifiedCount": modified,
    }

@app.put("/students/{student_id}/complete")
def complete_student(student_id: str, store: RecordStore = Depends(get_store)):
    with store_errors("Error updating student status", ValidationError):
        updated = store.update_by_id(STUDENTS, student_id, {"status": StudentStatus.COMPLETED.value})
    if updated is None:
        raise NotFound("Student not found")
    return {"success": True, "message": "Student status updated to completed", "data": serialize(updated)}

@app.put("/students/{student_id}")
def update_student(student_id: str, payload: StudentUpdate, store: RecordStore = Depends(get_store)):
    fields = payload.to_fields()
    with store_errors("Error updating student", ValidationError):
        if fields:
            updated = store.update_by_id(STUDENTS, student_id, fields)
        else:
            updated = store.find_by_id(STUDENTS, student_id)
    if updated is None:
        raise NotFound("Student not found")
    return {"success": True, "message": "Student updated successfully", "data": serialize(updated)}

# ----------------------
# Students: delete
# ----------------------

@app.delete("/students/all")
def delete_all_students(store: RecordStore = Depends(get_store)):
    with store_errors("Error deleting all students"):
        deleted = store.delete_many(STUDENTS)
    logger.info("Deleted %d students", deleted)
    return {"success": True, "message": "All students deleted successfully", "deletedCount": deleted}

@app.delete("/students/by-condition")
def delete_student_by_condition(payload: DeleteByConditionRequest, store: RecordStore = Depends(get_store)):
    with store_errors("Error deleting student", ValidationError):
        deleted = store.delete_one(STUDENTS, payload.condition)
    if deleted == 0:
        raise NotFound("No student found matching the condition")
    return {"success": True, "message": "Student deleted successfully", "deletedCount": deleted}

@app.delete("/students/{student_id}")
def delete_student(student_id: str, store: RecordStore = Depends(get_store)):
    with store_errors("Error deleting student", ValidationError):
        deleted = store.delete_by_id(STUDENTS, student_id)
    if deleted is None:
        raise NotFound("Student not found")
    return {"success": True, "message": "Student deleted successfully", "data": serialize(deleted)}

# ----------------------
# Library
# ----------------------

@app.get("/library/books")
def list_books(store: RecordStore = Depends(get_store), lending: LendingService = Depends(get_lending)):
    with store_errors("Error fetching books"):
        return listing(lending.enrich(store.find(BOOKS)))

@app.post("/library/books", status_code=201)
def add_book(book: CreateBook, store: RecordStore = Depends(get_store)):
    doc = BookSchema(**book.model_dump())
    with store_errors("Error adding book", ValidationError):
        created = store.create(BOOKS, doc.to_document())
    return {"success": True, "message": "Book added to library successfully", "data": serialize(created)}

@app.get("/library/available")
def available_books(store: RecordStore = Depends(get_store)):
    with store_errors("Error fetching available books"):
        docs = store.find(BOOKS, {"available": True})
    return listing(docs, message="Available books")

@app.post("/library/borrow")
def borrow_book(payload: BorrowRequest, lending: LendingService = Depends(get_lending)):
    updated = lending.borrow(payload.book_id, payload.student_id)
    return {"success": True, "message": "Book borrowed successfully", "data": serialize(updated)}

@app.post("/library/return")
def return_book(payload: ReturnRequest, lending: LendingService = Depends(get_lending)):
    updated = lending.return_book(payload.book_id)
    return {"success": True, "message": "Book returned successfully", "data": serialize(updated)}

@app.get("/library/category/{category}")
def books_by_category(category: str, store: RecordStore = Depends(get_store), lending: LendingService = Depends(get_lending)):
    with store_errors("Error fetching books by category"):
        docs = lending.enrich(store.find(BOOKS, category_match(category)))
    return listing(docs, category=category)

@app.post("/library/sample-data", status_code=201)
def insert_sample_books(store: RecordStore = Depends(get_store)):
    docs = [BookSchema(**b).to_document() for b in SAMPLE_BOOKS]
    with store_errors("Error inserting sample library data", ValidationError):
        created = store.create_many(BOOKS, docs)
    return {
        "success": True,
        "message": "Sample library data inserted successfully",
        "count": len(created),
        "data": serialize(created),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
