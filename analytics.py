"""
Dashboard summary for the admin analytics page.

Totals are point-in-time counts. The month-over-month *Diff fields stay 0:
no historical snapshot is kept to compute them. viewStats buckets View
records by UTC day over the trailing window, oldest day first.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from pymongo.database import Database

VIEW_WINDOW_DAYS = 28


def window_dates(today: date, days: int = VIEW_WINDOW_DAYS) -> List[date]:
    return [today - timedelta(days=days - 1 - i) for i in range(days)]


def view_stats(db: Database, today: date) -> List[Dict[str, object]]:
    days = window_dates(today)
    start = datetime.combine(days[0], time.min, tzinfo=timezone.utc)
    # date parts of a BSON date are taken in UTC
    grouped = db["view"].aggregate([
        {"$match": {"created_at": {"$gte": start}}},
        {"$group": {
            "_id": {
                "year": {"$year": "$created_at"},
                "month": {"$month": "$created_at"},
                "day": {"$dayOfMonth": "$created_at"},
            },
            "views": {"$sum": 1},
        }},
    ])
    counts: Dict[date, int] = {d: 0 for d in days}
    for row in grouped:
        key = row["_id"]
        day = date(key["year"], key["month"], key["day"])
        if day in counts:
            counts[day] = row["views"]
    return [{"date": d.isoformat(), "views": counts[d]} for d in days]


def build_summary(db: Database, today: Optional[date] = None) -> Dict[str, object]:
    """Run every query up front; any failure propagates so callers never see partial data."""
    today = today or datetime.now(timezone.utc).date()
    total_posts = db["post"].count_documents({"status": True})
    total_writers = db["user"].count_documents({"accountType": "Writer"})
    followers = db["follower"].count_documents({})
    total_views = db["view"].count_documents({})
    stats = view_stats(db, today)
    return {
        "totalPosts": total_posts,
        "followers": followers,
        "totalViews": total_views,
        "totalWriters": total_writers,
        "postsDiff": 0,
        "followersDiff": 0,
        "viewsDiff": 0,
        "writersDiff": 0,
        "viewStats": stats,
    }
