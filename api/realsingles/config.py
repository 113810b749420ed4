import os
from pathlib import Path

JWT_SECRET = os.getenv("JWT_SECRET", "")
ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "60"))
REFRESH_TOKEN_TTL_DAYS = int(os.getenv("REFRESH_TOKEN_TTL_DAYS", "30"))
ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")
DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_api_root = Path(__file__).resolve().parents[1]
MIGRATIONS_DIR = os.getenv("MIGRATIONS_DIR", "").strip()
UPLOADS_DIR = Path(os.getenv("UPLOADS_DIR", str(_api_root / "uploads")))

ALLOWED_ORIGINS = [
    o.strip()
    for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000,http://localhost:8081").split(",")
    if o.strip()
]

MIN_PHOTOS_REQUIRED = int(os.getenv("MIN_PHOTOS_REQUIRED", "1"))
MAX_GALLERY_PHOTOS = int(os.getenv("MAX_GALLERY_PHOTOS", "6"))
UNDO_WINDOW_MINUTES = int(os.getenv("UNDO_WINDOW_MINUTES", "5"))
DISCOVERY_DEFAULT_LIMIT = int(os.getenv("DISCOVERY_DEFAULT_LIMIT", "40"))
DISCOVERY_CANDIDATE_POOL = int(os.getenv("DISCOVERY_CANDIDATE_POOL", "2000"))
MESSAGE_MAX_LENGTH = int(os.getenv("MESSAGE_MAX_LENGTH", "2000"))

RL_AUTH_REGISTER_LIMIT = int(os.getenv("RL_AUTH_REGISTER_LIMIT", "20"))
RL_AUTH_LOGIN_LIMIT = int(os.getenv("RL_AUTH_LOGIN_LIMIT", "30"))
RL_AUTH_REFRESH_LIMIT = int(os.getenv("RL_AUTH_REFRESH_LIMIT", "120"))
RL_MATCH_ACTION_LIMIT = int(os.getenv("RL_MATCH_ACTION_LIMIT", "300"))
RL_MESSAGE_SEND_LIMIT = int(os.getenv("RL_MESSAGE_SEND_LIMIT", "120"))
RL_ORDER_CREATE_LIMIT = int(os.getenv("RL_ORDER_CREATE_LIMIT", "10"))
RL_WINDOW_SECONDS = int(os.getenv("RL_WINDOW_SECONDS", "60"))
