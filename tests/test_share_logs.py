import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from database import create_document
from share_logs import page_window, parse_day


def add_share(db, post, platform="twitter", user=None, created_at=None):
    doc = {"post": post["_id"], "platform": platform, "method": "copy", "user": user, "ip": "10.0.0.1"}
    if created_at is not None:
        doc["created_at"] = created_at
    return create_document(db, "sharelog", doc)


@pytest.fixture
def seeded(db, factory):
    writer = factory.user("Writer")
    first = factory.post(writer, title="First Story")
    second = factory.post(writer, title="Second Story")
    base = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
    for i in range(30):
        add_share(db, first, platform="twitter" if i % 3 else "whatsapp", created_at=base + timedelta(hours=i))
    for i in range(5):
        add_share(db, second, platform="facebook", user=writer["_id"], created_at=base + timedelta(days=3, hours=i))
    return {"first": first, "second": second, "writer": writer}


class TestPageWindow:

    @pytest.mark.parametrize("page,limit,expected", [
        (None, None, (1, 25, 0)),
        ("3", "10", (3, 10, 20)),
        ("0", "500", (1, 200, 0)),
        ("-4", "0", (1, 25, 0)),
        ("abc", "xyz", (1, 25, 0)),
        ("", "", (1, 25, 0)),
    ])
    def test_bounds(self, page, limit, expected):
        assert page_window(page, limit) == expected


class TestParseDay:

    def test_date_covers_whole_day(self):
        assert parse_day("2024-05-13") == datetime(2024, 5, 13, tzinfo=timezone.utc)
        assert parse_day("2024-05-13", end_of_day=True) == datetime(2024, 5, 13, 23, 59, 59, 999999,
                                                                   tzinfo=timezone.utc)

    @pytest.mark.skipif(sys.version_info < (3, 11), reason="compact ISO dates need Python 3.11")
    def test_compact_date_covers_whole_day(self):
        assert parse_day("20240513", end_of_day=True) == datetime(2024, 5, 13, 23, 59, 59, 999999,
                                                                  tzinfo=timezone.utc)

    def test_datetime_is_used_as_given(self):
        assert parse_day("2024-05-13T08:30:00Z", end_of_day=True) == datetime(2024, 5, 13, 8, 30,
                                                                              tzinfo=timezone.utc)

    def test_garbage_is_rejected(self):
        with pytest.raises(HTTPException) as err:
            parse_day("13/05/2024")
        assert err.value.status_code == 400


class TestShareLogQuery:

    def get(self, client, headers, **params):
        r = client.get("/api/admin/share-logs", headers=headers, params=params)
        assert r.status_code == 200, r.text
        return r.json()

    def test_default_page(self, client, factory, admin, seeded):
        body = self.get(client, factory.headers(admin))
        assert body["success"] is True
        assert body["meta"] == {"total": 35, "page": 1, "limit": 25}
        assert len(body["data"]) == 25
        stamps = [row["created_at"] for row in body["data"]]
        assert stamps == sorted(stamps, reverse=True)

    @pytest.mark.parametrize("page,limit", [(1, 1), (2, 10), (4, 10), (1, 200), (9, 5)])
    def test_pages_hold_at_most_limit(self, client, factory, admin, seeded, page, limit):
        body = self.get(client, factory.headers(admin), page=page, limit=limit)
        assert len(body["data"]) <= limit
        assert len(body["data"]) == max(0, min(limit, 35 - (page - 1) * limit))
        assert body["meta"]["total"] == 35

    def test_empty_strings_equal_no_filters(self, client, factory, admin, seeded):
        headers = factory.headers(admin)
        bare = self.get(client, headers)
        blank = self.get(client, headers, platform="", post="", startDate="", endDate="")
        assert blank["meta"]["total"] == bare["meta"]["total"]

    def test_platform_filter(self, client, factory, admin, seeded):
        body = self.get(client, factory.headers(admin), platform="whatsapp", limit=200)
        assert body["meta"]["total"] == 10
        assert {row["platform"] for row in body["data"]} == {"whatsapp"}

    def test_post_filter_by_id_and_slug(self, client, factory, admin, seeded):
        headers = factory.headers(admin)
        by_id = self.get(client, headers, post=str(seeded["second"]["_id"]))
        by_slug = self.get(client, headers, post=seeded["second"]["slug"])
        assert by_id["meta"]["total"] == by_slug["meta"]["total"] == 5

    def test_unknown_slug_is_empty(self, client, factory, admin, seeded):
        body = self.get(client, factory.headers(admin), post="no-such-post")
        assert body["data"] == []
        assert body["meta"]["total"] == 0

    def test_date_range_includes_whole_end_day(self, client, factory, admin, seeded):
        body = self.get(client, factory.headers(admin), startDate="2024-05-13", endDate="2024-05-13")
        assert body["meta"]["total"] == 5

    def test_filters_combine(self, client, factory, admin, seeded):
        body = self.get(client, factory.headers(admin), platform="twitter", startDate="2024-05-11", limit=200)
        # shares 12..29 are on or after May 11; every third one is whatsapp
        assert body["meta"]["total"] == len([i for i in range(12, 30) if i % 3])

    def test_bad_date_is_400(self, client, factory, admin, seeded):
        r = client.get("/api/admin/share-logs", headers=factory.headers(admin), params={"startDate": "yesterday"})
        assert r.status_code == 400

    def test_rows_are_populated(self, client, factory, admin, seeded):
        body = self.get(client, factory.headers(admin), platform="facebook")
        row = body["data"][0]
        assert row["post"]["title"] == "Second Story"
        assert row["user"]["name"] == seeded["writer"]["name"]
        assert "password_hash" not in row["user"]
        assert row["_id"] and "id" not in row
        assert row["post"]["_id"] == str(seeded["second"]["_id"])
        assert row["user"]["_id"] == str(seeded["writer"]["_id"])

    def test_anonymous_shares_have_no_user(self, client, factory, admin, seeded):
        body = self.get(client, factory.headers(admin), platform="whatsapp")
        assert body["data"][0]["user"] is None
