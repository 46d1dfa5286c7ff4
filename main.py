import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pymongo.database import Database
from pymongo.errors import PyMongoError
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

import admin
import auth
import categories
import config
import database
import posts
import storage
import users
from ratelimit import limiter

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("radioblog")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is None:
        logger.error("DATABASE_URL is not set, refusing to start")
        raise SystemExit(1)
    try:
        database.db.command("ping")
        database.ensure_indexes(database.db)
    except PyMongoError as e:
        logger.error("Failed to start server due to DB error: %s", e)
        raise SystemExit(1)
    logger.info("Connected to MongoDB database %s", config.DATABASE_NAME)
    yield
    database.client.close()


app = FastAPI(title="Radioblog API", lifespan=lifespan)

app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

if config.ENV == "production":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "X-Requested-With"],
        expose_headers=["Authorization"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if request.url.path.startswith("/uploads"):
        response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    logger.info("%s %s - %s - %.3fs", request.method, request.url.path, response.status_code, time.time() - start)
    return response


def envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return envelope(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", []) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return envelope(400, message)


@app.exception_handler(RateLimitExceeded)
async def rate_limited(request: Request, exc: RateLimitExceeded):
    return envelope(429, "Too many requests, please try again later")


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return envelope(500, "Something went wrong")


# Serve legacy uploaded files; the upload relay itself writes to object storage
try:
    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR), name="uploads")
except OSError:
    logger.warning("Uploads directory %s is not available", config.UPLOAD_DIR)

api = APIRouter(prefix="/api")
for module in (auth, users, posts, categories, admin, storage):
    api.include_router(module.router)
app.include_router(api)


@app.get("/", response_class=PlainTextResponse)
def read_root():
    return "Server running"


@app.get("/health")
def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/ready")
def ready(db: Database = Depends(database.get_db)):
    stamp = datetime.now(timezone.utc).isoformat()
    try:
        db.command("ping")
    except PyMongoError as e:
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(e), "timestamp": stamp})
    return {"status": "ready", "db": "connected", "timestamp": stamp}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
