"""
Authentication: sessions, bearer-token guards and the /api/auth routes.

Guards are plain FastAPI dependencies that resolve the principal
`{"session": ..., "user": ...}` and hand it to the handler. Tiers compose:
admin_auth builds on get_current_session and general_admin_auth on admin_auth,
so a request that fails a gate is rejected before the handler runs.
"""
import hashlib
import hmac
import logging
import os
from datetime import timedelta, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from pymongo.database import Database

import config
from database import create_document, get_db, now, oid
from ratelimit import limiter
from schemas import Session as SessionSchema, User as UserSchema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

security = HTTPBearer(auto_error=False)

PBKDF2_ROUNDS = 120_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    salt = salt or os.urandom(16).hex()
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), PBKDF2_ROUNDS)
    return f"{salt}${digest.hex()}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored or "$" not in stored:
        return False
    salt, _ = stored.split("$", 1)
    return hmac.compare_digest(hash_password(password, salt), stored)


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def public_user(u: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(u.get("_id")),
        "name": u.get("name"),
        "email": u.get("email"),
        "image": u.get("image"),
        "accountType": u.get("accountType", "User"),
        "isGeneralAdmin": bool(u.get("isGeneralAdmin", False)),
        "canPost": u.get("canPost", True) is not False,
        "followers": [str(f) for f in u.get("followers", [])],
        "created_at": u.get("created_at"),
    }


def start_session(db: Database, user: dict, request: Request) -> str:
    token = uuid4().hex
    sess = SessionSchema(
        user_id=user["_id"],
        token=token,
        ip=client_ip(request),
        valid=True,
        expires_at=now() + timedelta(days=config.SESSION_TTL_DAYS),
    )
    create_document(db, "session", sess)
    return token


def _expired(sess: dict) -> bool:
    expires_at = sess.get("expires_at")
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= now()


def _resolve(db: Database, creds: Optional[HTTPAuthorizationCredentials]) -> Dict[str, Any]:
    if creds is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    sess = db["session"].find_one({"token": creds.credentials, "valid": True})
    if not sess or _expired(sess):
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    user = db["user"].find_one({"_id": sess["user_id"]})
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return {"session": sess, "user": user}


def get_current_session(creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
                        db: Database = Depends(get_db)) -> Dict[str, Any]:
    return _resolve(db, creds)


def get_optional_session(creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
                         db: Database = Depends(get_db)) -> Optional[Dict[str, Any]]:
    if creds is None:
        return None
    try:
        return _resolve(db, creds)
    except HTTPException:
        return None


def is_admin(user: dict) -> bool:
    return user.get("accountType") == "Admin"


def require_writer(ctx=Depends(get_current_session)):
    user = ctx["user"]
    if user.get("accountType") not in ("Writer", "Admin"):
        raise HTTPException(status_code=403, detail="Only writers can publish posts")
    if user.get("canPost") is False:
        raise HTTPException(status_code=403, detail="Posting is disabled for this account")
    return ctx


def admin_auth(ctx=Depends(get_current_session)):
    if not is_admin(ctx["user"]):
        raise HTTPException(status_code=403, detail="Admin only")
    return ctx


def general_admin_auth(ctx=Depends(admin_auth)):
    if ctx["user"].get("isGeneralAdmin") is not True:
        raise HTTPException(status_code=403, detail="General admin only")
    return ctx


class SignupPayload(BaseModel):
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    accountType: str = "User"
    image: Optional[str] = None


class LoginPayload(BaseModel):
    email: str
    password: str


@router.post("/signup", status_code=201)
@limiter.limit(config.RATE_LIMIT_AUTH)
def signup(payload: SignupPayload, request: Request, db: Database = Depends(get_db)):
    email = payload.email.strip().lower()
    if payload.accountType not in ("User", "Writer"):
        raise HTTPException(status_code=400, detail="Invalid accountType provided")
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already exists")
    user_data = UserSchema(
        name=payload.name.strip(),
        email=email,
        password_hash=hash_password(payload.password),
        image=payload.image,
        accountType=payload.accountType,
    )
    user_id = create_document(db, "user", user_data)
    user = db["user"].find_one({"_id": oid(user_id)})
    token = start_session(db, user, request)
    logger.info("New %s account %s", payload.accountType, user_id)
    return {"success": True, "message": "Account created successfully", "user": public_user(user), "token": token}


@router.post("/login")
@limiter.limit(config.RATE_LIMIT_AUTH)
def login(payload: LoginPayload, request: Request, db: Database = Depends(get_db)):
    user = db["user"].find_one({"email": payload.email.strip().lower()})
    if not user or not verify_password(payload.password, user.get("password_hash")):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = start_session(db, user, request)
    return {"success": True, "message": "Login successful", "user": public_user(user), "token": token}


@router.post("/logout")
def logout(ctx=Depends(get_current_session), db: Database = Depends(get_db)):
    db["session"].update_one({"_id": ctx["session"]["_id"]}, {"$set": {"valid": False, "updated_at": now()}})
    return {"success": True, "message": "Logged out"}


@router.get("/me")
def get_me(ctx=Depends(get_current_session)):
    return {"success": True, "user": public_user(ctx["user"])}
