"""
MongoDB access.

``db`` is the database handle built from DATABASE_URL / DATABASE_NAME, or
None when those are not set. ``DocumentStore`` wraps a handle with the
whole-document operations the services use; every pymongo error is turned
into a REMOTE_FAILURE result carrying the driver's message.
"""
import os
from typing import Any, Dict, List, Optional, Tuple

import structlog
from bson import ObjectId
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from results import Ok, Result, not_found, remote_failure

logger = structlog.get_logger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

# Collections
USERS = "users"
PRODUCTS = "products"
CATEGORIES = "categories"
ORDERS = "orders"
REVIEWS = "reviews"
CARTS = "carts"
WISHLISTS = "wishlists"
NOTIFICATIONS = "notifications"


def connect(url: Optional[str] = DATABASE_URL, name: Optional[str] = DATABASE_NAME):
    if not url or not name:
        return None
    client = MongoClient(url, tz_aware=True)
    return client[name]


db = connect()


class DocumentStore:
    """Whole-document reads and writes over one MongoDB database."""

    def __init__(self, database):
        self.database = database

    def get(self, collection: str, doc_id: str) -> Result[Dict[str, Any]]:
        try:
            doc = self.database[collection].find_one({"_id": doc_id})
        except PyMongoError as e:
            return self._failed("get", collection, e)
        if doc is None:
            return not_found(f"Document not found: {collection}/{doc_id}")
        return Ok(doc)

    def put(self, collection: str, doc_id: str, document: Dict[str, Any]) -> Result[str]:
        doc = dict(document)
        doc["_id"] = doc_id
        try:
            self.database[collection].replace_one({"_id": doc_id}, doc, upsert=True)
        except PyMongoError as e:
            return self._failed("put", collection, e)
        return Ok(doc_id)

    def patch(self, collection: str, doc_id: str, updates: Dict[str, Any]) -> Result[str]:
        try:
            result = self.database[collection].update_one({"_id": doc_id}, {"$set": updates})
        except PyMongoError as e:
            return self._failed("patch", collection, e)
        if result.matched_count == 0:
            return not_found(f"Document not found: {collection}/{doc_id}")
        return Ok(doc_id)

    def add(self, collection: str, document: Dict[str, Any]) -> Result[str]:
        doc = dict(document)
        if not doc.get("_id"):
            doc["_id"] = str(ObjectId())
        try:
            self.database[collection].insert_one(doc)
        except PyMongoError as e:
            return self._failed("add", collection, e)
        return Ok(doc["_id"])

    def delete(self, collection: str, doc_id: str) -> Result[str]:
        try:
            result = self.database[collection].delete_one({"_id": doc_id})
        except PyMongoError as e:
            return self._failed("delete", collection, e)
        if result.deleted_count == 0:
            return not_found(f"Document not found: {collection}/{doc_id}")
        return Ok(doc_id)

    def delete_many(self, collection: str, query: Dict[str, Any]) -> Result[int]:
        try:
            result = self.database[collection].delete_many(query)
        except PyMongoError as e:
            return self._failed("delete_many", collection, e)
        return Ok(result.deleted_count)

    def update_many(self, collection: str, query: Dict[str, Any], updates: Dict[str, Any]) -> Result[int]:
        try:
            result = self.database[collection].update_many(query, {"$set": updates})
        except PyMongoError as e:
            return self._failed("update_many", collection, e)
        return Ok(result.modified_count)

    def find(
        self,
        collection: str,
        query: Optional[Dict[str, Any]] = None,
        sort: Optional[List[Tuple[str, int]]] = None,
        limit: Optional[int] = None,
    ) -> Result[List[Dict[str, Any]]]:
        try:
            cursor = self.database[collection].find(query or {})
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)
            return Ok(list(cursor))
        except PyMongoError as e:
            return self._failed("find", collection, e)

    def count(self, collection: str, query: Optional[Dict[str, Any]] = None) -> Result[int]:
        try:
            return Ok(self.database[collection].count_documents(query or {}))
        except PyMongoError as e:
            return self._failed("count", collection, e)

    def _failed(self, op: str, collection: str, error: PyMongoError):
        logger.warning("store.failed", op=op, collection=collection, error=str(error))
        return remote_failure(str(error))
