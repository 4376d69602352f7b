import os


def env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


MONGO_URL = os.getenv("DATABASE_URL") or os.getenv("MONGODB_URI") or "mongodb://localhost:27017"
DB_NAME = os.getenv("DATABASE_NAME") or "ougadgets"

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "ou_session")
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", 168))
COOKIE_SECURE = env_bool("COOKIE_SECURE")

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 10))

UPLOAD_DIR = os.getenv("UPLOAD_DIR") or os.path.join(os.getcwd(), "uploads")
MAX_AVATAR_BYTES = int(os.getenv("MAX_AVATAR_BYTES", 5 * 1024 * 1024))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "oanduadmin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin@ougadgets.com")
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@ougadgets.com")
