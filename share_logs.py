"""
Paginated share-log query for the admin dashboard.

Filters combine with AND; blank values are dropped from the predicate. The
total comes from a second count over the same predicate, so pages are not a
snapshot: new shares arriving between requests shift later pages.
"""
from datetime import date, datetime, time, timezone
from typing import Any, Dict, Optional, Tuple

from fastapi import HTTPException
from pymongo import DESCENDING
from pymongo.database import Database

from database import maybe_oid, populate, serialize

DEFAULT_LIMIT = 25
MAX_LIMIT = 200


def parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def page_window(page: Any = None, limit: Any = None, default_limit: int = DEFAULT_LIMIT,
                max_limit: int = MAX_LIMIT) -> Tuple[int, int, int]:
    """Return (page, limit, skip) with page >= 1 and 1 <= limit <= max_limit."""
    p = max(1, parse_int(page, 1))
    l = parse_int(limit, default_limit)
    if l < 1:
        l = default_limit
    l = min(max_limit, l)
    return p, l, (p - 1) * l


def _blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()


def parse_day(value: str, end_of_day: bool = False) -> datetime:
    raw = value.strip()
    try:
        day = date.fromisoformat(raw)
    except ValueError:
        day = None
    if day is not None:
        return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    try:
        stamp = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}")
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp.astimezone(timezone.utc)


def build_filter(db: Database, platform: Optional[str] = None, post: Optional[str] = None,
                 start_date: Optional[str] = None, end_date: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Mongo predicate for the supplied filters, or None when no record can match."""
    query: Dict[str, Any] = {}
    if not _blank(platform):
        query["platform"] = platform.strip().lower()
    if not _blank(post):
        ref = post.strip()
        post_id = maybe_oid(ref)
        if post_id is None:
            match = db["post"].find_one({"slug": ref}, {"_id": 1})
            if not match:
                return None
            post_id = match["_id"]
        query["post"] = post_id
    created: Dict[str, datetime] = {}
    if not _blank(start_date):
        created["$gte"] = parse_day(start_date)
    if not _blank(end_date):
        created["$lte"] = parse_day(end_date, end_of_day=True)
    if created:
        query["created_at"] = created
    return query


def query_share_logs(db: Database, page: Any = None, limit: Any = None, platform: Optional[str] = None,
                     post: Optional[str] = None, start_date: Optional[str] = None,
                     end_date: Optional[str] = None) -> Dict[str, Any]:
    p, l, skip = page_window(page, limit)
    query = build_filter(db, platform, post, start_date, end_date)
    if query is None:
        return {"success": True, "data": [], "meta": {"total": 0, "page": p, "limit": l}}
    total = db["sharelog"].count_documents(query)
    logs = list(db["sharelog"].find(query).sort("created_at", DESCENDING).skip(skip).limit(l))
    populate(db, logs, "post", "post", ("title", "slug"))
    populate(db, logs, "user", "user", ("name", "email"))
    # rows and their populated post and user keep the _id key
    return {"success": True, "data": serialize(logs, id_key="_id"), "meta": {"total": total, "page": p, "limit": l}}
