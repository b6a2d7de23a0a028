"""
Database access

The MongoDB handle is built explicitly with ``connect`` and handed to the
app (``create_app(db)``); route handlers receive it through ``get_db``.
Every helper takes the handle as its first argument so tests can pass an
in-memory database.

Collections:
- users, products, categories, product_categories
- carts, cart_items, orders, invoices
- sellers, stores, managers
- comments, comment_replies, reviews, review_replies
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

import config
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def connect(database_url: Optional[str] = None, database_name: Optional[str] = None) -> Database:
    url = database_url or config.DATABASE_URL
    name = database_name or config.DATABASE_NAME
    client = MongoClient(url)
    logger.info("MongoDB client created for database %s", name)
    return client[name]


def get_db(request: Request) -> Database:
    return request.app.state.db


def ensure_indexes(db: Database) -> None:
    db["users"].create_index("email", unique=True)
    db["carts"].create_index("user_id", unique=True)
    db["cart_items"].create_index("cart_id")
    db["orders"].create_index("order_number", unique=True)
    db["orders"].create_index("user_id")
    db["sellers"].create_index("user_id", unique=True)
    db["managers"].create_index("user_id", unique=True)
    db["products"].create_index("store_id")
    db["product_categories"].create_index(
        [("product_id", ASCENDING), ("category_id", ASCENDING)], unique=True
    )
    db["comments"].create_index("product_id")
    db["reviews"].create_index("product_id")


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id")


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return doc
    d = dict(doc)
    _id = d.pop("_id", None)
    if _id is not None:
        d["id"] = str(_id)
    return d


def create_document(db: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    stamp = now()
    doc["created_at"] = stamp
    doc["updated_at"] = stamp
    result = db[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(db: Database, collection_name: str, doc_id: str, label: str) -> dict:
    doc = db[collection_name].find_one({"_id": to_object_id(doc_id)})
    if not doc:
        raise NotFoundError(f"No {label} found with that ID")
    return doc


def update_document(db: Database, collection_name: str, doc_id: str, changes: dict, label: str) -> dict:
    oid = to_object_id(doc_id)
    if not changes:
        return get_document(db, collection_name, doc_id, label)
    changes = dict(changes)
    changes["updated_at"] = now()
    result = db[collection_name].update_one({"_id": oid}, {"$set": changes})
    if result.matched_count == 0:
        raise NotFoundError(f"No {label} found with that ID")
    return db[collection_name].find_one({"_id": oid})


def delete_document(db: Database, collection_name: str, doc_id: str, label: str) -> None:
    result = db[collection_name].delete_one({"_id": to_object_id(doc_id)})
    if result.deleted_count == 0:
        raise NotFoundError(f"No {label} found with that ID")
