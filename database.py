"""
Database Helpers

MongoDB access for the API. Routes receive the database through the
`get_db` dependency so tests can swap in an in-memory client; services wrap
each collection in a `Repository` which exposes find/insert/update/delete by
filter and nothing else.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, List, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient

from config import Config
from errors import InvalidReference, StorageUnavailable

logger = logging.getLogger(__name__)

_client = None
db = None

if Config.DATABASE_URL:
    _client = MongoClient(Config.DATABASE_URL, serverSelectionTimeoutMS=5000)
    db = _client[Config.DATABASE_NAME]
    logger.info(f"MongoDB client configured for database {Config.DATABASE_NAME}")


def get_db():
    if db is None:
        raise StorageUnavailable("Database is not configured")
    return db


def now() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise InvalidReference()


def serialize(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    if isinstance(doc.get("_id"), ObjectId):
        doc["_id"] = str(doc["_id"])
    return doc


class Repository:
    """Filter-based access to a single collection."""

    def __init__(self, collection):
        self.collection = collection

    def find_one(self, filter_dict: dict) -> Optional[dict]:
        return serialize(self.collection.find_one(filter_dict))

    def find(self, filter_dict: Optional[dict] = None, sort: Optional[list] = None, limit: Optional[int] = None) -> List[dict]:
        cursor = self.collection.find(filter_dict or {})
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return [serialize(d) for d in cursor]

    def insert(self, data: Union[BaseModel, dict]) -> str:
        if isinstance(data, BaseModel):
            data = data.model_dump()
        return str(self.collection.insert_one(dict(data)).inserted_id)

    def update(self, filter_dict: dict, fields: dict) -> bool:
        """$set `fields` on the first document matching `filter_dict`.

        The filter and the write are applied as one atomic operation, so a
        filter that includes the expected current value acts as a
        compare-and-set. Returns whether a document was actually modified.
        """
        if not fields:
            return False
        result = self.collection.update_one(filter_dict, {"$set": fields})
        return result.modified_count > 0

    def delete(self, filter_dict: dict) -> bool:
        return self.collection.delete_one(filter_dict).deleted_count > 0


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with createdAt and return its id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    data = dict(data)
    data["createdAt"] = now()
    return Repository(database[collection_name]).insert(data)


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    return Repository(database[collection_name]).find(filter_dict, sort=[("createdAt", -1)], limit=limit)
