"""
Admin routes. Two capability tiers guard them:

- admin_access: accountType == "Admin"
- general_admin_access: Admin with isGeneralAdmin, required for role changes,
  post approval and banner/category mutation

Both tiers append an access-log entry once the caller is authorized.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, StrictBool
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
from analytics import build_summary
from auth import admin_auth, client_ip, general_admin_auth, public_user
from categories import list_categories
from database import create_document, get_db, get_documents, now, oid, populate, serialize
from schemas import ACCOUNT_TYPES, Accesslog as AccesslogSchema, Banner as BannerSchema, Category as CategorySchema
from share_logs import page_window, query_share_logs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def access_log(tier):
    def record_access(request: Request, ctx=Depends(tier), db: Database = Depends(get_db)):
        entry = AccesslogSchema(
            user=ctx["user"]["_id"],
            method=request.method,
            path=request.url.path,
            ip=client_ip(request),
            userAgent=request.headers.get("user-agent"),
        )
        try:
            create_document(db, "accesslog", entry)
        except PyMongoError:
            logger.exception("Failed to write access log for %s %s", request.method, request.url.path)
        return ctx
    return record_access


admin_access = access_log(admin_auth)
general_admin_access = access_log(general_admin_auth)


@contextmanager
def db_errors(message: str):
    try:
        yield
    except PyMongoError:
        logger.exception(message)
        raise HTTPException(status_code=500, detail=message)


class RolePayload(BaseModel):
    accountType: Optional[str] = None
    isGeneralAdmin: Optional[StrictBool] = None


class TogglePostingPayload(BaseModel):
    enable: Optional[StrictBool] = None


class BannerPayload(BaseModel):
    title: str = Field(..., min_length=1)
    image: str = Field(..., min_length=1)
    link: Optional[str] = None
    active: bool = True
    order: int = 0


class BannerUpdatePayload(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = Field(None, min_length=1)
    link: Optional[str] = None
    active: Optional[bool] = None
    order: Optional[int] = None


class CategoryPayload(BaseModel):
    label: str = Field(..., min_length=1)
    color: Optional[str] = None


class CategoryUpdatePayload(BaseModel):
    label: Optional[str] = Field(None, min_length=1)
    color: Optional[str] = None


@router.get("/logs")
def access_logs(page: Optional[str] = None, limit: Optional[str] = None,
                ctx=Depends(general_admin_access), db: Database = Depends(get_db)):
    p, l, skip = page_window(page, limit, default_limit=50)
    with db_errors("Unable to fetch logs"):
        logs = list(db["accesslog"].find().sort("created_at", DESCENDING).skip(skip).limit(l))
        total = db["accesslog"].count_documents({})
    return {"success": True, "data": serialize(logs), "meta": {"total": total, "page": p, "limit": l}}


@router.get("/users")
def list_users(ctx=Depends(admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to fetch users"):
        users = list(db["user"].find({}, {"password_hash": 0}).limit(200))
    return {"success": True, "data": [public_user(u) for u in users]}


@router.post("/users/{user_id}/role")
def change_role(user_id: str, payload: RolePayload, ctx=Depends(general_admin_access), db: Database = Depends(get_db)):
    if payload.accountType not in ACCOUNT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid accountType provided")
    update: Dict[str, Any] = {"accountType": payload.accountType, "updated_at": now()}
    if payload.isGeneralAdmin is not None:
        update["isGeneralAdmin"] = payload.isGeneralAdmin
    with db_errors("Unable to update user role"):
        result = db["user"].update_one({"_id": oid(user_id)}, {"$set": update})
        if result.matched_count == 0:
            raise HTTPException(status_code=404, detail="User not found")
        user = db["user"].find_one({"_id": oid(user_id)})
    logger.info("User %s role set to %s by %s", user_id, payload.accountType, ctx["user"]["_id"])
    return {"success": True, "message": "User role updated", "user": public_user(user)}


@router.post("/users/{user_id}/toggle-posting")
def toggle_posting(user_id: str, payload: TogglePostingPayload, ctx=Depends(admin_access),
                   db: Database = Depends(get_db)):
    if payload.enable is None:
        raise HTTPException(status_code=400, detail="Missing enable boolean in body")
    with db_errors("Unable to toggle posting"):
        result = db["user"].update_one({"_id": oid(user_id)}, {"$set": {"canPost": payload.enable, "updated_at": now()}})
        if result.matched_count == 0:
            raise HTTPException(status_code=404, detail="User not found")
        user = db["user"].find_one({"_id": oid(user_id)})
    state = "enabled" if payload.enable else "disabled"
    return {"success": True, "message": f"User posting {state}", "user": public_user(user)}


@router.get("/posts/pending")
def pending_posts(page: Optional[str] = None, limit: Optional[str] = None,
                  ctx=Depends(admin_access), db: Database = Depends(get_db)):
    p, l, skip = page_window(page, limit, default_limit=20, max_limit=100)
    # documents created before the approval flag existed count as pending
    query = {"$or": [{"approved": False}, {"approved": {"$exists": False}}]}
    with db_errors("Unable to fetch pending posts"):
        total = db["post"].count_documents(query)
        posts = list(db["post"].find(query).sort("created_at", DESCENDING).skip(skip).limit(l))
        populate(db, posts, "user", "user", ("name", "email", "image"))
    return {"success": True, "data": serialize(posts), "meta": {"total": total, "page": p, "limit": l}}


def _post_or_404(db: Database, post_id: str) -> dict:
    post = db["post"].find_one({"_id": oid(post_id)})
    if not post:
        raise HTTPException(status_code=404, detail="Post not found")
    return post


@router.post("/posts/{post_id}/approve")
def approve_post(post_id: str, ctx=Depends(general_admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to approve post"):
        post = _post_or_404(db, post_id)
        stamp = now()
        db["post"].update_one({"_id": post["_id"]}, {"$set": {
            "approved": True,
            "status": True,
            "approvedBy": ctx["user"]["_id"],
            "approvedAt": stamp,
            "updated_at": stamp,
        }})
    logger.info("Post %s approved by %s", post_id, ctx["user"]["_id"])
    return {"success": True, "message": "Post approved"}


@router.post("/posts/{post_id}/unapprove")
def unapprove_post(post_id: str, ctx=Depends(general_admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to unapprove post"):
        post = _post_or_404(db, post_id)
        db["post"].update_one({"_id": post["_id"]}, {
            "$set": {"approved": False, "status": False, "updated_at": now()},
            "$unset": {"approvedBy": "", "approvedAt": ""},
        })
    logger.info("Post %s unapproved by %s", post_id, ctx["user"]["_id"])
    return {"success": True, "message": "Post unapproved"}


@router.get("/share-logs")
def share_logs(page: Optional[str] = None, limit: Optional[str] = None, platform: Optional[str] = None,
               post: Optional[str] = None, startDate: Optional[str] = None, endDate: Optional[str] = None,
               ctx=Depends(admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to fetch share logs"):
        return query_share_logs(db, page=page, limit=limit, platform=platform, post=post,
                                start_date=startDate, end_date=endDate)


@router.get("/banners")
def list_banners(ctx=Depends(admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to fetch banners"):
        banners = get_documents(db, "banner", sort=[("order", ASCENDING)])
    return {"success": True, "data": serialize(banners)}


@router.post("/banners", status_code=201)
def create_banner(payload: BannerPayload, ctx=Depends(general_admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to create banner"):
        bid = create_document(db, "banner", BannerSchema(**payload.model_dump()))
        banner = db["banner"].find_one({"_id": oid(bid)})
    return {"success": True, "message": "Banner created", "data": serialize(banner)}


@router.patch("/banners/{banner_id}")
def update_banner(banner_id: str, payload: BannerUpdatePayload, ctx=Depends(general_admin_access),
                  db: Database = Depends(get_db)):
    updates = payload.model_dump(exclude_none=True)
    with db_errors("Unable to update banner"):
        banner = db["banner"].find_one({"_id": oid(banner_id)})
        if not banner:
            raise HTTPException(status_code=404, detail="Banner not found")
        if updates:
            updates["updated_at"] = now()
            db["banner"].update_one({"_id": banner["_id"]}, {"$set": updates})
        banner = db["banner"].find_one({"_id": banner["_id"]})
    return {"success": True, "message": "Banner updated", "data": serialize(banner)}


@router.delete("/banners/{banner_id}")
def delete_banner(banner_id: str, ctx=Depends(general_admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to delete banner"):
        result = db["banner"].delete_one({"_id": oid(banner_id)})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Banner not found")
    return {"success": True, "message": "Banner deleted"}


@router.get("/categories")
def admin_categories(ctx=Depends(admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to fetch categories"):
        return {"success": True, "data": list_categories(db)}


def _label_taken(db: Database, label: str, exclude_id=None) -> bool:
    query: Dict[str, Any] = {"label": label}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return db["category"].find_one(query) is not None


@router.post("/categories", status_code=201)
def create_category(payload: CategoryPayload, ctx=Depends(general_admin_access), db: Database = Depends(get_db)):
    label = payload.label.strip()
    with db_errors("Unable to create category"):
        if _label_taken(db, label):
            raise HTTPException(status_code=400, detail="Category already exists")
        cid = create_document(db, "category", CategorySchema(label=label, color=payload.color))
        category = db["category"].find_one({"_id": oid(cid)})
    return {"success": True, "message": "Category created", "data": serialize(category)}


@router.patch("/categories/{category_id}")
def update_category(category_id: str, payload: CategoryUpdatePayload, ctx=Depends(general_admin_access),
                    db: Database = Depends(get_db)):
    updates = payload.model_dump(exclude_none=True)
    with db_errors("Unable to update category"):
        category = db["category"].find_one({"_id": oid(category_id)})
        if not category:
            raise HTTPException(status_code=404, detail="Category not found")
        if "label" in updates:
            updates["label"] = updates["label"].strip()
            if _label_taken(db, updates["label"], exclude_id=category["_id"]):
                raise HTTPException(status_code=400, detail="Category already exists")
        if updates:
            updates["updated_at"] = now()
            db["category"].update_one({"_id": category["_id"]}, {"$set": updates})
        category = db["category"].find_one({"_id": category["_id"]})
    return {"success": True, "message": "Category updated", "data": serialize(category)}


@router.delete("/categories/{category_id}")
def delete_category(category_id: str, ctx=Depends(general_admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to delete category"):
        result = db["category"].delete_one({"_id": oid(category_id)})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Category not found")
    return {"success": True, "message": "Category deleted"}


def remove_follower(db: Database, follower: dict) -> None:
    """Delete a follower record and its id in the followed user's list.

    Without USE_TRANSACTIONS the second write is best effort: a failure is
    logged and the deleted record stays deleted.
    """
    if config.USE_TRANSACTIONS:
        def both(session):
            db["follower"].delete_one({"_id": follower["_id"]}, session=session)
            db["user"].update_one({"_id": follower["userId"]}, {"$pull": {"followers": follower["_id"]}},
                                  session=session)

        with db.client.start_session() as session:
            session.with_transaction(both)
        return

    db["follower"].delete_one({"_id": follower["_id"]})
    try:
        db["user"].update_one({"_id": follower["userId"]}, {"$pull": {"followers": follower["_id"]}})
    except PyMongoError:
        logger.exception("Error removing follower reference from user %s", follower.get("userId"))


@router.delete("/followers/{follower_id}")
def delete_follower(follower_id: str, ctx=Depends(admin_access), db: Database = Depends(get_db)):
    with db_errors("Unable to remove follower"):
        follower = db["follower"].find_one({"_id": oid(follower_id)})
        if not follower:
            raise HTTPException(status_code=404, detail="Follower not found")
        remove_follower(db, follower)
    return {"success": True, "message": "Follower removed"}


@router.get("/analytics")
def analytics(ctx=Depends(admin_access), db: Database = Depends(get_db)):
    with db_errors("Error fetching analytics"):
        return build_summary(db)
