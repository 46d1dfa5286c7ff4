import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import get_current_session, hash_password, public_user
from database import create_document, get_db, now, oid, serialize
from schemas import Follower as FollowerSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

WRITER_TYPES = ("Writer", "Admin")


class UpdateProfilePayload(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)


def find_user(db: Database, user_id: str) -> dict:
    user = db["user"].find_one({"_id": oid(user_id)})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def find_writer(db: Database, writer_id: str) -> dict:
    writer = find_user(db, writer_id)
    if writer.get("accountType") not in WRITER_TYPES:
        raise HTTPException(status_code=404, detail="Writer not found")
    return writer


@router.get("/get-user/{user_id}")
def get_user(user_id: str, db: Database = Depends(get_db)):
    return {"success": True, "user": public_user(find_user(db, user_id))}


@router.patch("/update")
def update_me(payload: UpdateProfilePayload, ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    updates: Dict[str, Any] = {}
    if payload.name is not None:
        updates["name"] = payload.name.strip()
    if payload.image is not None:
        updates["image"] = payload.image
    if payload.password is not None:
        updates["password_hash"] = hash_password(payload.password)
    if updates:
        updates["updated_at"] = now()
        db["user"].update_one({"_id": ctx["user"]["_id"]}, {"$set": updates})
    user = db["user"].find_one({"_id": ctx["user"]["_id"]})
    return {"success": True, "message": "Profile updated", "user": public_user(user)}


@router.get("/writer/{writer_id}")
def get_writer(writer_id: str, db: Database = Depends(get_db)):
    writer = find_writer(db, writer_id)
    posts = list(
        db["post"].find({"user": writer["_id"], "status": True}).sort("created_at", DESCENDING).limit(50)
    )
    data = public_user(writer)
    data["followers"] = db["follower"].count_documents({"userId": writer["_id"]})
    data["posts"] = serialize(posts)
    return {"success": True, "data": data}


def find_follow(db: Database, writer_id, follower_id) -> Optional[dict]:
    return db["follower"].find_one({"userId": writer_id, "followerId": follower_id})


@router.post("/follow/{writer_id}")
def follow_writer(writer_id: str, ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    writer = find_writer(db, writer_id)
    me = ctx["user"]
    if writer["_id"] == me["_id"]:
        raise HTTPException(status_code=400, detail="You cannot follow yourself")
    existing = find_follow(db, writer["_id"], me["_id"])
    if existing:
        return {"success": True, "message": "Already following", "data": serialize(existing)}
    try:
        fid = create_document(db, "follower", FollowerSchema(userId=writer["_id"], followerId=me["_id"]))
    except DuplicateKeyError:
        # a concurrent request inserted the same pair after the lookup
        existing = find_follow(db, writer["_id"], me["_id"])
        return {"success": True, "message": "Already following", "data": serialize(existing)}
    db["user"].update_one({"_id": writer["_id"]}, {"$addToSet": {"followers": oid(fid)}})
    logger.info("User %s now follows %s", me["_id"], writer["_id"])
    return {"success": True, "message": f"You are now following {writer.get('name')}", "data": {"id": fid}}


@router.delete("/follow/{writer_id}")
def unfollow_writer(writer_id: str, ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    writer = find_writer(db, writer_id)
    record = find_follow(db, writer["_id"], ctx["user"]["_id"])
    if not record:
        raise HTTPException(status_code=404, detail="You are not following this writer")
    db["follower"].delete_one({"_id": record["_id"]})
    db["user"].update_one({"_id": writer["_id"]}, {"$pull": {"followers": record["_id"]}})
    return {"success": True, "message": f"You unfollowed {writer.get('name')}"}
