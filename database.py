"""
MongoDB access

A single client is created at import time when DATABASE_URL and DATABASE_NAME
are configured. Route handlers get the database through `get_db` so tests can
replace it with an in-memory one.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.database import Database
from pymongo.errors import OperationFailure

from config import get_settings
from errors import InternalError

logger = logging.getLogger(__name__)

_settings = get_settings()

client: Optional[MongoClient] = None
db: Optional[Database] = None

if _settings.database_url and _settings.database_name:
    client = MongoClient(_settings.database_url, tz_aware=True)
    db = client[_settings.database_name]


def get_db() -> Database:
    if db is None:
        raise InternalError("Database not configured (DATABASE_URL / DATABASE_NAME)")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id string, returning None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def next_sequence(database: Database, name: str) -> int:
    """Atomically bump and return the named counter (starts at 1)."""
    counter = database["counter"].find_one_and_update(
        {"_id": name},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return int(counter["seq"])


def serialize_doc(doc):
    if not doc:
        return doc
    out = {}
    for k, v in dict(doc).items():
        if k == "_id":
            out["id"] = str(v) if isinstance(v, ObjectId) else v
        else:
            out[k] = _serialize_value(v)
    return out


def _serialize_value(v):
    if isinstance(v, ObjectId):
        return str(v)
    if isinstance(v, datetime):
        return v.isoformat()
    if isinstance(v, dict):
        return serialize_doc(v)
    if isinstance(v, list):
        return [_serialize_value(x) for x in v]
    return v


def ensure_indexes(database: Database, reset_ttl_minutes: int = 60) -> None:
    database["user"].create_index([("username", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["product"].create_index([("category", ASCENDING), ("subcategory", ASCENDING)])
    database["cart"].create_index([("user_id", ASCENDING)], unique=True)
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index([("order_number", ASCENDING)], unique=True)
    database["password_reset"].create_index([("email", ASCENDING)], unique=True)
    ttl_seconds = reset_ttl_minutes * 60
    try:
        database["password_reset"].create_index([("created_at", ASCENDING)], expireAfterSeconds=ttl_seconds)
    except OperationFailure:
        # index already exists with an older lifetime
        database.command(
            "collMod", "password_reset",
            index={"keyPattern": {"created_at": 1}, "expireAfterSeconds": ttl_seconds},
        )
    logger.info("Indexes ensured on %s", database.name)
