"""
Post image maintenance commands.

    python maintenance.py link-posts [--dry]
    python maintenance.py update-images --mappings scripts/output/file_mappings.json [--dry]

link-posts points post images at their copy in object storage when that copy
exists; update-images applies an explicit {file, url} mapping list.
"""
import argparse
import json
import logging
import os
import re
import sys
from typing import Dict, List, Optional
from urllib.parse import quote, urlparse

import requests
from pymongo.database import Database

import config
import database

logger = logging.getLogger("radioblog.maintenance")

HEAD_TIMEOUT = 5


def public_object_url(base_url: str, bucket: str, basename: str) -> str:
    return f"{base_url.rstrip('/')}/storage/v1/object/public/{bucket}/uploads/{quote(basename, safe='')}"


def image_basename(img: str) -> str:
    return os.path.basename(img.split("?")[0])


def link_candidates(posts: List[dict], base_url: str, bucket: str) -> List[Dict[str, object]]:
    """Posts whose img is not already served from the storage host, with the URL to try."""
    storage_host = urlparse(base_url).netloc
    candidates = []
    for post in posts:
        img = post.get("img") or ""
        if re.match(r"^https?://", img, re.I) and storage_host in img:
            continue
        basename = image_basename(img)
        if not basename:
            continue
        candidates.append({
            "post_id": post["_id"],
            "basename": basename,
            "url": public_object_url(base_url, bucket, basename),
            "current": img,
        })
    return candidates


def link_posts(db: Database, base_url: str, bucket: str, dry: bool = False,
               session: Optional[requests.Session] = None) -> int:
    session = session or requests.Session()
    posts = list(db["post"].find({"img": {"$exists": True, "$ne": None}}, {"img": 1}))
    logger.info("Found %d posts with img field", len(posts))
    candidates = link_candidates(posts, base_url, bucket)
    logger.info("Checking %d candidate files in storage", len(candidates))
    updated = 0
    for c in candidates:
        try:
            response = session.head(c["url"], timeout=HEAD_TIMEOUT)
        except requests.RequestException as e:
            logger.error("Error checking %s: %s", c["url"], e)
            continue
        if response.status_code != 200:
            if response.status_code != 404:
                logger.warning("Unexpected status %s for %s", response.status_code, c["url"])
            continue
        if dry:
            logger.info("[DRY] Would update post %s -> %s", c["post_id"], c["url"])
            continue
        db["post"].update_one({"_id": c["post_id"]}, {"$set": {"img": c["url"]}})
        logger.info("Updated post %s -> %s", c["post_id"], c["url"])
        updated += 1
    return updated


def update_images(db: Database, mappings: List[Dict[str, str]], dry: bool = False) -> int:
    updated = 0
    for mapping in mappings:
        file, url = mapping["file"], mapping["url"]
        candidates = [file, f"uploads/{file}", quote(file, safe="")]
        for post in db["post"].find({"img": {"$in": candidates}}, {"title": 1}):
            logger.info("%s Post %s - %s -> %s", "[DRY]" if dry else "[UPDATE]", post["_id"], post.get("title"), url)
            if not dry:
                db["post"].update_one({"_id": post["_id"]}, {"$set": {"img": url}})
                updated += 1
    return updated


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Post image maintenance")
    sub = parser.add_subparsers(dest="command", required=True)
    link = sub.add_parser("link-posts", help="point post images at existing storage objects")
    link.add_argument("--dry", action="store_true")
    upd = sub.add_parser("update-images", help="rewrite post images from a mappings file")
    upd.add_argument("--mappings", default=os.path.join("scripts", "output", "file_mappings.json"))
    upd.add_argument("--dry", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    if database.db is None:
        logger.error("DATABASE_URL is required to connect to MongoDB")
        return 1

    if args.command == "link-posts":
        if not config.SUPABASE_URL:
            logger.error("SUPABASE_URL is required to construct public URLs")
            return 1
        count = link_posts(database.db, config.SUPABASE_URL, config.SUPABASE_BUCKET, dry=args.dry)
    else:
        if not os.path.exists(args.mappings):
            logger.error("Mappings file not found at %s", args.mappings)
            return 1
        with open(args.mappings, encoding="utf-8") as fh:
            count = update_images(database.db, json.load(fh), dry=args.dry)
    logger.info("Done, %d posts updated", count)
    database.client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
