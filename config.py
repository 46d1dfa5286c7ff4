import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


ENV = os.getenv("ENV", "development")
PORT = int(os.getenv("PORT", 8800))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("MONGO_URI")
DATABASE_NAME = os.getenv("DATABASE_NAME", "radioblog")
USE_TRANSACTIONS = _flag("USE_TRANSACTIONS")
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", 30))

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:3001",
    "http://127.0.0.1:3001",
    "https://radioblog-mai.onrender.com",
    "https://admin-9m1f.onrender.com",
    "https://masenoradio.onrender.com",
]


def allowed_origins(raw=None):
    """Built-in origins merged with CORS_ALLOWED_ORIGINS, order kept, no duplicates."""
    if raw is None:
        raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    extra = [o.strip().rstrip("/") for o in raw.split(",") if o.strip()]
    return list(dict.fromkeys(DEFAULT_ORIGINS + extra))


SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_BUCKET = os.getenv("SUPABASE_BUCKET", "uploads")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_KEY")
STORAGE_TIMEOUT = float(os.getenv("STORAGE_TIMEOUT", 30))

RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_GLOBAL = os.getenv("RATE_LIMIT_GLOBAL", "300/15minutes")
RATE_LIMIT_AUTH = os.getenv("RATE_LIMIT_AUTH", "20/15minutes")
RATE_LIMIT_LIKE = os.getenv("RATE_LIMIT_LIKE", "60/minute")
RATE_LIMIT_COMMENT = os.getenv("RATE_LIMIT_COMMENT", "30/minute")
RATE_LIMIT_CREATE_POST = os.getenv("RATE_LIMIT_CREATE_POST", "10/hour")

UPLOAD_DIR = os.path.join(os.getcwd(), "uploads")
