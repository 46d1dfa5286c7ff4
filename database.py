"""
MongoDB access for the Radioblog API

One pooled client is created at import time from DATABASE_URL / DATABASE_NAME.
Handlers never touch the module global directly: they receive the database
through the `get_db` dependency so tests can swap in another one.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if config.DATABASE_URL:
    client = MongoClient(config.DATABASE_URL, tz_aware=True, serverSelectionTimeoutMS=5000)
    db = client[config.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def ensure_indexes(database: Database) -> None:
    database["user"].create_index("email", unique=True)
    database["session"].create_index("token", unique=True)
    database["post"].create_index("slug", unique=True)
    database["category"].create_index("label", unique=True)
    for name in ("post", "sharelog", "accesslog", "view"):
        database[name].create_index([("created_at", DESCENDING)])
    database["follower"].create_index([("userId", ASCENDING), ("followerId", ASCENDING)], unique=True)


def now() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id as a string."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    stamp = now()
    data_dict.setdefault("created_at", stamp)
    data_dict["updated_at"] = stamp
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, sort: Optional[list] = None) -> List[dict]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def oid(id_str: Any) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid ID")


def maybe_oid(value: Any) -> Optional[ObjectId]:
    """ObjectId for valid ids, None for anything else (slugs, blanks)."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def populate(database: Database, docs: List[dict], field: str, collection_name: str,
             fields: tuple) -> List[dict]:
    """Replace the reference in `field` with a projection of the referenced document (or None)."""
    ids = {d.get(field) for d in docs if isinstance(d.get(field), ObjectId)}
    projection = {f: 1 for f in fields}
    found = {}
    if ids:
        found = {r["_id"]: r for r in database[collection_name].find({"_id": {"$in": list(ids)}}, projection)}
    for d in docs:
        ref = d.get(field)
        d[field] = found.get(ref) if ref is not None else None
    return docs


HIDDEN_FIELDS = ("password_hash",)


def serialize(value: Any, id_key: str = "id") -> Any:
    """Make Mongo documents JSON friendly: ObjectId -> str, _id -> id_key, secrets dropped."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [serialize(v, id_key) for v in value]
    if isinstance(value, dict):
        out: Dict[str, Any] = {}
        for key, item in value.items():
            if key in HIDDEN_FIELDS:
                continue
            out[id_key if key == "_id" else key] = serialize(item, id_key)
        return out
    return value
