from unittest.mock import patch

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from database import create_document, ensure_indexes
from schemas import Follower


class TestFollow:

    def test_follow_and_unfollow(self, client, db, factory, writer):
        reader = factory.user()
        headers = factory.headers(reader)

        r = client.post(f"/api/users/follow/{writer['_id']}", headers=headers)
        assert r.status_code == 200
        record = db["follower"].find_one({"userId": writer["_id"], "followerId": reader["_id"]})
        assert record is not None
        assert db["user"].find_one({"_id": writer["_id"]})["followers"] == [record["_id"]]

        again = client.post(f"/api/users/follow/{writer['_id']}", headers=headers)
        assert again.json()["message"] == "Already following"
        assert db["follower"].count_documents({}) == 1

        gone = client.delete(f"/api/users/follow/{writer['_id']}", headers=headers)
        assert gone.status_code == 200
        assert db["follower"].count_documents({}) == 0
        assert db["user"].find_one({"_id": writer["_id"]})["followers"] == []

    def test_cannot_follow_self(self, client, factory, writer):
        r = client.post(f"/api/users/follow/{writer['_id']}", headers=factory.headers(writer))
        assert r.status_code == 400

    def test_only_writers_can_be_followed(self, client, factory):
        plain = factory.user()
        r = client.post(f"/api/users/follow/{plain['_id']}", headers=factory.headers(factory.user()))
        assert r.status_code == 404

    def test_unfollow_when_not_following(self, client, factory, writer):
        r = client.delete(f"/api/users/follow/{writer['_id']}", headers=factory.headers(factory.user()))
        assert r.status_code == 404

    def test_concurrent_follow_keeps_one_record(self, client, db, factory, writer):
        ensure_indexes(db)
        reader = factory.user()
        headers = factory.headers(reader)
        existing = create_document(db, "follower", Follower(userId=writer["_id"], followerId=reader["_id"]))

        # the lookup misses, as it would for a request racing the insert above
        with patch("users.find_follow", side_effect=[None, db["follower"].find_one()]):
            r = client.post(f"/api/users/follow/{writer['_id']}", headers=headers)

        assert r.status_code == 200
        assert r.json()["message"] == "Already following"
        assert r.json()["data"]["id"] == existing
        assert db["follower"].count_documents({}) == 1

    def test_follower_pairs_are_unique(self, db, factory, writer):
        ensure_indexes(db)
        reader = factory.user()
        create_document(db, "follower", Follower(userId=writer["_id"], followerId=reader["_id"]))
        with pytest.raises(DuplicateKeyError):
            create_document(db, "follower", Follower(userId=writer["_id"], followerId=reader["_id"]))


class TestProfiles:

    def test_writer_profile(self, client, factory, writer):
        factory.post(writer, title="Published")
        factory.post(writer, title="Draft", status=False, approved=False)
        client.post(f"/api/users/follow/{writer['_id']}", headers=factory.headers(factory.user()))

        data = client.get(f"/api/users/writer/{writer['_id']}").json()["data"]

        assert data["name"] == writer["name"]
        assert data["followers"] == 1
        assert [p["title"] for p in data["posts"]] == ["Published"]

    def test_get_user(self, client, factory):
        user = factory.user()
        body = client.get(f"/api/users/get-user/{user['_id']}").json()
        assert body["user"]["email"] == user["email"]
        assert client.get(f"/api/users/get-user/{ObjectId()}").status_code == 404

    def test_update_profile(self, client, db, factory):
        user = factory.user(password="oldpass1")
        headers = factory.headers(user)
        r = client.patch("/api/users/update", headers=headers,
                         json={"name": "Renamed", "image": "https://cdn/me.png", "password": "newpass1"})
        assert r.status_code == 200
        assert r.json()["user"]["name"] == "Renamed"
        login = client.post("/api/auth/login", json={"email": user["email"], "password": "newpass1"})
        assert login.status_code == 200

    def test_role_is_not_self_editable(self, client, db, factory):
        user = factory.user()
        client.patch("/api/users/update", headers=factory.headers(user), json={"accountType": "Admin"})
        assert db["user"].find_one({"_id": user["_id"]})["accountType"] == "User"
