"""
Upload relay: forwards one multipart file to Supabase object storage and
returns its public URL. One attempt per upload, no retries.
"""
import logging
import mimetypes
import os
from typing import Optional
from uuid import uuid4

import requests
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

import config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/storage", tags=["storage"])

UPLOAD_PREFIX = "uploads"


class SupabaseStorage:
    """Minimal client for the Supabase storage object API"""

    def __init__(self, base_url: str, bucket: str, service_key: Optional[str], timeout: float = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.bucket = bucket
        self.service_key = service_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.service_key)

    def object_url(self, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{UPLOAD_PREFIX}/{name}"

    def public_url(self, name: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{UPLOAD_PREFIX}/{name}"

    def upload(self, name: str, content: bytes, content_type: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
            "Content-Type": content_type,
            "x-upsert": "false",
        }
        try:
            response = self.session.post(self.object_url(name), data=content, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Storage upload of %s failed: %s", name, e)
            raise HTTPException(status_code=502, detail=f"Upload failed: {e}")
        if not response.ok:
            logger.error("Storage rejected %s: %s %s", name, response.status_code, response.text[:200])
            raise HTTPException(
                status_code=502,
                detail=f"Upload failed: {response.status_code} {response.reason} {response.text}".strip(),
            )
        return self.public_url(name)


_storage: Optional[SupabaseStorage] = None


def get_storage() -> SupabaseStorage:
    global _storage
    if _storage is None:
        _storage = SupabaseStorage(
            config.SUPABASE_URL, config.SUPABASE_BUCKET, config.SUPABASE_SERVICE_KEY, config.STORAGE_TIMEOUT
        )
    return _storage


def object_name(filename: Optional[str], content_type: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower() or (mimetypes.guess_extension(content_type) or "")
    return f"{uuid4().hex}{ext}"


@router.post("/upload")
def upload_file(file: UploadFile = File(...), storage: SupabaseStorage = Depends(get_storage)):
    if not storage.configured:
        raise HTTPException(status_code=500, detail="Storage is not configured")
    content_type = file.content_type or mimetypes.guess_type(file.filename or "")[0] or "application/octet-stream"
    name = object_name(file.filename, content_type)
    url = storage.upload(name, file.file.read(), content_type)
    logger.info("Uploaded %s (%s)", name, content_type)
    return {"success": True, "url": url}
