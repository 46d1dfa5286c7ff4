import logging
import math
import re
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database

import config
from auth import client_ip, get_current_session, get_optional_session, is_admin, require_writer
from database import create_document, get_db, get_documents, maybe_oid, now, oid, populate, serialize
from ratelimit import limiter
from schemas import SHARE_PLATFORMS, Comment as CommentSchema, Post as PostSchema, Sharelog as SharelogSchema, View as ViewSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["posts"])

AUTHOR_FIELDS = ("name", "email", "image", "accountType")


class CreatePostPayload(BaseModel):
    title: str = Field(..., min_length=1)
    desc: str = Field(..., min_length=1)
    img: Optional[str] = None
    cat: str = Field(..., min_length=1)


class UpdatePostPayload(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    desc: Optional[str] = Field(None, min_length=1)
    img: Optional[str] = None
    cat: Optional[str] = None


class CommentPayload(BaseModel):
    desc: str = Field(..., min_length=1)


class SharePayload(BaseModel):
    platform: Optional[str] = None
    method: Optional[str] = None


def generate_slug(title: str) -> str:
    slug = re.sub(r"[^a-zA-Z0-9\s-]", "", title).strip()
    slug = re.sub(r"[\s-]+", "-", slug).lower()
    return slug or "post"


def unique_slug(db: Database, title: str, exclude_id=None) -> str:
    base = generate_slug(title)
    slug, counter = base, 1
    while True:
        query: Dict[str, Any] = {"slug": slug}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if not db["post"].find_one(query):
            return slug
        counter += 1
        slug = f"{base}-{counter}"


def find_post(db: Database, id_or_slug: str) -> Optional[dict]:
    post_id = maybe_oid(id_or_slug)
    if post_id is not None:
        return db["post"].find_one({"_id": post_id})
    return db["post"].find_one({"slug": id_or_slug})


def get_post_or_404(db: Database, id_or_slug: str) -> dict:
    post = find_post(db, id_or_slug)
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


def normalize_platform(value: Optional[str]) -> str:
    platform = (value or "").strip().lower()
    return platform if platform in SHARE_PLATFORMS else "unknown"


@router.get("")
def list_posts(
    cat: Optional[str] = None,
    writerId: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(9, ge=1),
    db: Database = Depends(get_db),
):
    limit = min(limit, 100)
    query: Dict[str, Any] = {"status": True}
    if cat:
        query["cat"] = cat
    if writerId:
        query["user"] = oid(writerId)
    if search:
        pattern = re.escape(search)
        query["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"desc": {"$regex": pattern, "$options": "i"}},
        ]
    total = db["post"].count_documents(query)
    posts = list(db["post"].find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit))
    populate(db, posts, "user", "user", AUTHOR_FIELDS)
    return {
        "success": True,
        "data": serialize(posts),
        "meta": {"total": total, "page": page, "limit": limit, "numOfPages": math.ceil(total / limit)},
    }


@router.get("/popular")
def popular_content(db: Database = Depends(get_db)):
    posts = list(db["post"].find({"status": True}).sort("views", DESCENDING).limit(5))
    populate(db, posts, "user", "user", AUTHOR_FIELDS)
    writers = list(db["follower"].aggregate([
        {"$group": {"_id": "$userId", "followers": {"$sum": 1}}},
        {"$sort": {"followers": -1}},
        {"$limit": 5},
    ]))
    populate(db, writers, "_id", "user", ("name", "image"))
    top_writers = [
        {"id": str(w["_id"]["_id"]), "name": w["_id"].get("name"), "image": w["_id"].get("image"),
         "followers": w["followers"]}
        for w in writers if w["_id"]
    ]
    return {"success": True, "data": {"posts": serialize(posts), "writers": top_writers}}


@router.get("/banners")
def active_banners(db: Database = Depends(get_db)):
    banners = get_documents(db, "banner", {"active": True}, sort=[("order", ASCENDING)])
    return {"success": True, "data": serialize(banners)}


@router.get("/comments/{post_id}")
def list_comments(post_id: str, db: Database = Depends(get_db)):
    comments = list(db["comment"].find({"post": oid(post_id)}).sort("created_at", DESCENDING))
    populate(db, comments, "user", "user", ("name", "image"))
    return {"success": True, "data": serialize(comments)}


@router.post("/comment/{post_id}", status_code=201)
@limiter.limit(config.RATE_LIMIT_COMMENT)
def create_comment(post_id: str, payload: CommentPayload, request: Request,
                   ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    post = get_post_or_404(db, post_id)
    comment = CommentSchema(post=post["_id"], user=ctx["user"]["_id"], desc=payload.desc.strip())
    cid = create_document(db, "comment", comment)
    doc = db["comment"].find_one({"_id": oid(cid)})
    return {"success": True, "message": "Comment published successfully", "data": serialize(doc)}


@router.delete("/comment/{comment_id}/{post_id}")
def delete_comment(comment_id: str, post_id: str, ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    comment = db["comment"].find_one({"_id": oid(comment_id), "post": oid(post_id)})
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    user = ctx["user"]
    post = db["post"].find_one({"_id": comment["post"]}) or {}
    if user["_id"] not in (comment["user"], post.get("user")) and not is_admin(user):
        raise HTTPException(status_code=403, detail="Not allowed to delete this comment")
    db["comment"].delete_one({"_id": comment["_id"]})
    return {"success": True, "message": "Comment removed"}


@router.post("/like/{post_id}")
@limiter.limit(config.RATE_LIMIT_LIKE)
def like_post(post_id: str, request: Request, ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    post = get_post_or_404(db, post_id)
    db["post"].update_one({"_id": post["_id"]}, {"$addToSet": {"likes": ctx["user"]["_id"]}})
    likes = db["post"].find_one({"_id": post["_id"]}).get("likes", [])
    return {"success": True, "liked": True, "likes": len(likes)}


@router.post("/unlike/{post_id}")
@limiter.limit(config.RATE_LIMIT_LIKE)
def unlike_post(post_id: str, request: Request, ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    post = get_post_or_404(db, post_id)
    db["post"].update_one({"_id": post["_id"]}, {"$pull": {"likes": ctx["user"]["_id"]}})
    likes = db["post"].find_one({"_id": post["_id"]}).get("likes", [])
    return {"success": True, "liked": False, "likes": len(likes)}


@router.post("/share/{post_id}", status_code=201)
def log_share(post_id: str, request: Request, payload: Optional[SharePayload] = None,
              ctx=Depends(get_optional_session), db: Database = Depends(get_db)):
    post = get_post_or_404(db, post_id)
    payload = payload or SharePayload()
    entry = SharelogSchema(
        post=post["_id"],
        platform=normalize_platform(payload.platform),
        method=(payload.method or "copy").strip() or "copy",
        user=ctx["user"]["_id"] if ctx else None,
        ip=client_ip(request),
    )
    sid = create_document(db, "sharelog", entry)
    return {"success": True, "message": "Share logged", "data": {"id": sid, "platform": entry.platform}}


@router.post("", status_code=201)
@limiter.limit(config.RATE_LIMIT_CREATE_POST)
def create_post(payload: CreatePostPayload, request: Request, ctx=Depends(require_writer), db: Database = Depends(get_db)):
    post = PostSchema(
        user=ctx["user"]["_id"],
        title=payload.title.strip(),
        slug=unique_slug(db, payload.title),
        desc=payload.desc,
        img=payload.img,
        cat=payload.cat,
    )
    pid = create_document(db, "post", post)
    logger.info("Post %s created by %s, awaiting approval", pid, ctx["user"]["_id"])
    doc = db["post"].find_one({"_id": oid(pid)})
    return {"success": True, "message": "Post created and awaiting approval", "data": serialize(doc)}


@router.get("/{post_id}")
def get_post(post_id: str, request: Request, ctx=Depends(get_optional_session), db: Database = Depends(get_db)):
    post = get_post_or_404(db, post_id)
    viewer = ctx["user"] if ctx else None
    if not post.get("status"):
        allowed = viewer is not None and (viewer["_id"] == post.get("user") or is_admin(viewer))
        if not allowed:
            raise HTTPException(status_code=404, detail="Post not found")
    else:
        # only reads of published posts count as views
        db["post"].update_one({"_id": post["_id"]}, {"$inc": {"views": 1}})
        view = ViewSchema(post=post["_id"], user=viewer["_id"] if viewer else None, ip=client_ip(request))
        create_document(db, "view", view)
        post["views"] = post.get("views", 0) + 1
    populate(db, [post], "user", "user", AUTHOR_FIELDS)
    return {"success": True, "data": serialize(post)}


@router.patch("/{post_id}")
def update_post(post_id: str, payload: UpdatePostPayload, ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    post = get_post_or_404(db, post_id)
    if post.get("user") != ctx["user"]["_id"]:
        raise HTTPException(status_code=403, detail="Only the author can edit this post")
    updates: Dict[str, Any] = {}
    if payload.title is not None:
        updates["title"] = payload.title.strip()
        updates["slug"] = unique_slug(db, payload.title, exclude_id=post["_id"])
    if payload.desc is not None:
        updates["desc"] = payload.desc
    if payload.img is not None:
        updates["img"] = payload.img
    if payload.cat is not None:
        updates["cat"] = payload.cat
    if updates:
        updates["updated_at"] = now()
        db["post"].update_one({"_id": post["_id"]}, {"$set": updates})
    doc = db["post"].find_one({"_id": post["_id"]})
    return {"success": True, "message": "Post updated", "data": serialize(doc)}


@router.delete("/{post_id}")
def delete_post(post_id: str, ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    post = get_post_or_404(db, post_id)
    user = ctx["user"]
    if post.get("user") != user["_id"] and not is_admin(user):
        raise HTTPException(status_code=403, detail="Not allowed to delete this post")
    db["post"].delete_one({"_id": post["_id"]})
    db["comment"].delete_many({"post": post["_id"]})
    logger.info("Post %s deleted by %s", post["_id"], user["_id"])
    return {"success": True, "message": "Post deleted"}
