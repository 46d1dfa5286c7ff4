"""
Database Schemas for the Radioblog API

Each Pydantic model represents a MongoDB collection (collection name is the lowercase class name).
References to other documents are stored as ObjectId.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field

ACCOUNT_TYPES = ("User", "Writer", "Admin")
SHARE_PLATFORMS = ("twitter", "facebook", "whatsapp", "native", "copy", "unknown")


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class User(Document):
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Unique, lowercased email")
    password_hash: str = Field(..., description="Salted password hash")
    image: Optional[str] = Field(None, description="Avatar URL")
    accountType: Literal["User", "Writer", "Admin"] = Field("User", description="Role")
    isGeneralAdmin: bool = Field(False, description="Elevated admin tier")
    canPost: bool = Field(True, description="Writer may create posts")
    followers: List[ObjectId] = Field(default_factory=list, description="Follower record ids")
    provider: str = "email"


class Session(Document):
    user_id: ObjectId
    token: str
    ip: Optional[str] = None
    valid: bool = True
    expires_at: datetime


class Post(Document):
    user: ObjectId = Field(..., description="Author")
    title: str
    slug: str
    desc: str
    img: Optional[str] = None
    cat: Optional[str] = Field(None, description="Category label")
    views: int = 0
    likes: List[ObjectId] = Field(default_factory=list)
    approved: bool = False
    status: bool = Field(False, description="Published")


class Comment(Document):
    post: ObjectId
    user: ObjectId
    desc: str


class Follower(Document):
    userId: ObjectId = Field(..., description="The followed writer")
    followerId: ObjectId = Field(..., description="Who follows")


class Accesslog(Document):
    user: Optional[ObjectId] = None
    method: str
    path: str
    ip: Optional[str] = None
    userAgent: Optional[str] = None


class Category(Document):
    label: str
    color: Optional[str] = None


class Banner(Document):
    title: str
    image: str
    link: Optional[str] = None
    active: bool = True
    order: int = 0


class View(Document):
    post: ObjectId
    user: Optional[ObjectId] = None
    ip: Optional[str] = None


class Sharelog(Document):
    post: ObjectId
    platform: Literal["twitter", "facebook", "whatsapp", "native", "copy", "unknown"] = "unknown"
    method: str = "copy"
    user: Optional[ObjectId] = None
    ip: Optional[str] = None
