"""
MongoDB access for the novel platform.

A single MongoClient is shared by the whole process. It is created lazily on
first use (or explicitly through `init_db` from the app lifespan) and torn
down with `close_db`.
"""
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from loguru import logger
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from config import Settings, get_settings

USERS = "users"
NOVELS = "novels"
CHAPTERS = "chapters"
PAYMENTS = "payments"

_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def init_db(settings: Settings = None, client: MongoClient = None) -> Database:
    """Connect (once) and make sure indexes exist.

    Passing `client` installs an already-built client, e.g. an in-memory one.
    """
    global _client, _db
    with _lock:
        if _db is not None and client is None:
            return _db
        settings = settings or get_settings()
        if client is None:
            logger.info("Connecting to MongoDB...")
            client = MongoClient(
                settings.DATABASE_URL,
                serverSelectionTimeoutMS=settings.DATABASE_CONNECT_TIMEOUT_MS,
            )
        _client = client
        _db = client[settings.DATABASE_NAME]
        _ensure_indexes(_db)
        logger.info(f"MongoDB ready (database '{settings.DATABASE_NAME}')")
        return _db


def close_db() -> None:
    global _client, _db
    with _lock:
        if _client is not None:
            _client.close()
            logger.info("MongoDB connection closed")
        _client = None
        _db = None


def get_db() -> Database:
    if _db is None:
        return init_db()
    return _db


def _ensure_indexes(db: Database) -> None:
    db[USERS].create_index("email", unique=True)
    db[NOVELS].create_index("author")
    db[CHAPTERS].create_index([("novel_id", ASCENDING), ("chapter_number", ASCENDING)])
    db[PAYMENTS].create_index([("user_id", ASCENDING), ("payment_type", ASCENDING), ("is_active", ASCENDING)])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> ObjectId:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = get_db()[collection_name].insert_one(doc)
    return result.inserted_id


def get_documents(
    collection_name: str,
    filter_dict: Dict[str, Any] = None,
    limit: int = None,
    sort: List = None,
    skip: int = 0,
    projection: Dict[str, Any] = None,
) -> List[Dict[str, Any]]:
    cursor = get_db()[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id, returning None when it is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def serialize(value: Any) -> Any:
    """Make a document JSON friendly: ObjectIds become strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [serialize(v) for v in value]
    return value
