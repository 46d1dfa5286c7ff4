"""
Pytest fixtures: an in-memory MongoDB (mongomock) wired into the app through
dependency overrides, plus builders for users, sessions and posts.
"""
import os

os.environ["DATABASE_URL"] = ""
os.environ["MONGO_URI"] = ""
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENV"] = "test"

from datetime import timedelta
from uuid import uuid4

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import hash_password
from database import create_document, get_db, now, oid
from main import app
from ratelimit import limiter
from schemas import Post, Session, User

limiter.enabled = False


@pytest.fixture
def db():
    return mongomock.MongoClient(tz_aware=True)["radioblog_test"]


@pytest.fixture
def client(db):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


class Factory:
    """Creates documents straight in the database, bypassing the API."""

    def __init__(self, db):
        self.db = db

    def user(self, accountType="User", isGeneralAdmin=False, canPost=True, name=None, password="secret123"):
        name = name or f"{accountType.lower()}-{uuid4().hex[:6]}"
        uid = create_document(self.db, "user", User(
            name=name,
            email=f"{name}@example.com",
            password_hash=hash_password(password),
            accountType=accountType,
            isGeneralAdmin=isGeneralAdmin,
            canPost=canPost,
        ))
        return self.db["user"].find_one({"_id": oid(uid)})

    def token(self, user):
        token = uuid4().hex
        create_document(self.db, "session", Session(
            user_id=user["_id"], token=token, ip="127.0.0.1", expires_at=now() + timedelta(days=1),
        ))
        return token

    def headers(self, user):
        return {"Authorization": f"Bearer {self.token(user)}"}

    def post(self, author, title=None, status=True, approved=True, **extra):
        title = title or f"Post {uuid4().hex[:8]}"
        slug = title.lower().replace(" ", "-")
        pid = create_document(self.db, "post", Post(
            user=author["_id"], title=title, slug=slug, desc="Body text", cat="News",
            status=status, approved=approved,
        ))
        if extra:
            self.db["post"].update_one({"_id": oid(pid)}, {"$set": extra})
        return self.db["post"].find_one({"_id": oid(pid)})


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def writer(factory):
    return factory.user("Writer")


@pytest.fixture
def admin(factory):
    return factory.user("Admin")


@pytest.fixture
def general_admin(factory):
    return factory.user("Admin", isGeneralAdmin=True)
