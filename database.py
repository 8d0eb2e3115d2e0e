"""
MongoDB access for the students and books collections.

``RecordStore`` owns one ``MongoClient`` and exposes the handful of
primitives the routes and the lending workflow need.  It is created
explicitly at application start-up (``connect``) and closed on shutdown
(``close``); request handlers receive it through the ``get_store``
dependency instead of a module-level global.
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument

from errors import StoreUnavailable, ValidationError

logger = logging.getLogger(__name__)

STUDENTS = "students"
BOOKS = "books"

Document = Dict[str, Any]


def to_object_id(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid ID format", f"'{id_str}' is not a valid ObjectId")


def serialize(doc: Any) -> Any:
    """Make a stored document JSON friendly.

    ``_id`` becomes ``id``; ObjectIds turn into strings and datetimes into
    ISO 8601 text, recursively through nested documents and lists.
    """
    if isinstance(doc, list):
        return [serialize(item) for item in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, (datetime, date)):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    d = {}
    for k, v in doc.items():
        d["id" if k == "_id" else k] = serialize(v)
    return d


def _as_document(data: Union[BaseModel, Document]) -> Document:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True, exclude_none=True)
    return dict(data)


class RecordStore:
    """Handle on the application database."""

    def __init__(
        self,
        url: Optional[str] = None,
        database_name: str = "studentDB",
        client: Optional[MongoClient] = None,
        server_selection_timeout_ms: int = 5000,
    ):
        self.url = url
        self.database_name = database_name
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.client = client
        self.db = None

    # ----------------------
    # Lifecycle
    # ----------------------

    def connect(self) -> "RecordStore":
        if self.client is None:
            self.client = MongoClient(
                self.url,
                tz_aware=True,
                serverSelectionTimeoutMS=self.server_selection_timeout_ms,
            )
        self.db = self.client[self.database_name]
        logger.info("Connected to MongoDB database %s", self.database_name)
        self.ensure_indexes()
        return self

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.db = None

    def ensure_indexes(self) -> None:
        # Books without an isbn omit the field, so the index must be sparse.
        self.books.create_index([("isbn", ASCENDING)], unique=True, sparse=True)
        logger.debug("Indexes ensured on %s", BOOKS)

    def ping(self) -> bool:
        self.client.admin.command("ping")
        return True

    def list_collection_names(self) -> List[str]:
        return self._db.list_collection_names()

    # ----------------------
    # Collections
    # ----------------------

    @property
    def _db(self):
        if self.db is None:
            raise StoreUnavailable("Database connection is not initialised")
        return self.db

    def collection(self, name: str):
        return self._db[name]

    @property
    def students(self):
        return self.collection(STUDENTS)

    @property
    def books(self):
        return self.collection(BOOKS)

    # ----------------------
    # Primitives
    # ----------------------

    def create(self, name: str, data: Union[BaseModel, Document]) -> Document:
        doc = _as_document(data)
        result = self.collection(name).insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def create_many(self, name: str, items: Iterable[Union[BaseModel, Document]]) -> List[Document]:
        docs = [_as_document(item) for item in items]
        if not docs:
            return []
        result = self.collection(name).insert_many(docs)
        for doc, inserted_id in zip(docs, result.inserted_ids):
            doc["_id"] = inserted_id
        return docs

    def find(self, name: str, filter_dict: Optional[Document] = None) -> List[Document]:
        return list(self.collection(name).find(filter_dict or {}))

    def find_by_id(self, name: str, id_str: Any) -> Optional[Document]:
        return self.collection(name).find_one({"_id": to_object_id(id_str)})

    def update_where(self, name: str, filter_dict: Document, fields: Document) -> Optional[Document]:
        """Apply ``$set`` to the first document matching ``filter_dict``.

        Returns the document as it is after the write, or ``None`` when
        nothing matched.  Matching and writing happen in one server-side
        operation.
        """
        return self.collection(name).find_one_and_update(
            filter_dict,
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )

    def update_by_id(self, name: str, id_str: Any, fields: Document) -> Optional[Document]:
        return self.update_where(name, {"_id": to_object_id(id_str)}, fields)

    def update_many(self, name: str, filter_dict: Document, fields: Document) -> Tuple[int, int]:
        result = self.collection(name).update_many(filter_dict, {"$set": fields})
        return result.matched_count, result.modified_count

    def delete_by_id(self, name: str, id_str: Any) -> Optional[Document]:
        return self.collection(name).find_one_and_delete({"_id": to_object_id(id_str)})

    def delete_one(self, name: str, filter_dict: Document) -> int:
        return self.collection(name).delete_one(filter_dict).deleted_count

    def delete_many(self, name: str, filter_dict: Optional[Document] = None) -> int:
        return self.collection(name).delete_many(filter_dict or {}).deleted_count

    def count(self, name: str, filter_dict: Optional[Document] = None) -> int:
        return self.collection(name).count_documents(filter_dict or {})


def get_store(request: Request) -> RecordStore:
    """FastAPI dependency returning the store opened at start-up."""
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreUnavailable("Database connection is not initialised")
    return store
