import os
from datetime import timedelta
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DATABASE_URL = "sqlite:///wear.db"
REMOTE_DATABASE_MARKERS = ("render.com", "railway.app", "supabase.co")


def env_flag(name: str, default: bool = False) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def normalize_database_url(url: Optional[str]) -> str:
    candidate = (url or "").strip()
    if not candidate:
        return DEFAULT_DATABASE_URL
    # SQLAlchemy 2 dropped the legacy postgres:// alias.
    if candidate.startswith("postgres://"):
        candidate = "postgresql://" + candidate[len("postgres://") :]
    return candidate


def is_remote_database(url: str) -> bool:
    return env_flag("DB_SSL") or any(marker in url for marker in REMOTE_DATABASE_MARKERS)


def build_engine_options(url: str) -> Dict[str, object]:
    if url.startswith("sqlite"):
        return {}

    options: Dict[str, object] = {
        "pool_pre_ping": True,
        "pool_size": 10,
        "max_overflow": 5,
        "pool_recycle": 300,
        "pool_timeout": 30,
        "connect_args": {
            "connect_timeout": 10,
            "application_name": "wear-backend",
            "options": "-c statement_timeout=30000",
        },
    }
    if is_remote_database(url):
        options["connect_args"]["sslmode"] = "require"
    return options


def build_allowed_origins() -> List[str]:
    allowed_origins = [
        os.getenv("FRONTEND_URL", "http://localhost:3000").strip(),
        "https://localhost:3000",
        "http://localhost:3001",
        "https://localhost:3001",
    ]
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        for origin in cors_extra.split(","):
            trimmed = origin.strip()
            if trimmed:
                allowed_origins.append(trimmed)
    return [origin for origin in allowed_origins if origin]


def load_config(root_path: str) -> Dict[str, object]:
    """Read the environment into a dict suitable for ``app.config.update``."""
    database_url = normalize_database_url(os.getenv("DATABASE_URL"))
    max_upload_mb = env_int("MAX_UPLOAD_SIZE_MB", 10)

    return {
        "SQLALCHEMY_DATABASE_URI": database_url,
        "SQLALCHEMY_ENGINE_OPTIONS": build_engine_options(database_url),
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "JWT_SECRET_KEY": os.getenv("JWT_SECRET_KEY", "change-me-in-production"),
        "JWT_ACCESS_TOKEN_EXPIRES": timedelta(days=7),
        "BCRYPT_ROUNDS": env_int("BCRYPT_ROUNDS", 12),
        "MAX_CONTENT_LENGTH": max_upload_mb * 1024 * 1024,
        "UPLOAD_FOLDER": os.getenv("UPLOAD_FOLDER")
        or os.path.join(os.path.dirname(root_path), "uploads"),
        "ALLOWED_IMAGE_EXTENSIONS": {"png", "jpg", "jpeg", "gif", "webp"},
        "CORS_ORIGINS": build_allowed_origins(),
        "TRUSTED_PROXY_HOPS": max(0, env_int("TRUSTED_PROXY_HOPS", 1)),
        "ADMIN_EMAIL": (os.getenv("ADMIN_EMAIL") or "").strip().lower(),
        "ADMIN_PASSWORD": os.getenv("ADMIN_PASSWORD") or "",
        "ADMIN_FIRST_NAME": os.getenv("ADMIN_FIRST_NAME") or "Admin",
        "ADMIN_LAST_NAME": os.getenv("ADMIN_LAST_NAME") or "User",
        "ALLOW_ADMIN_SELF_PROMOTION": env_flag("ALLOW_ADMIN_SELF_PROMOTION"),
        "EXPOSE_RESET_TOKENS": env_flag("EXPOSE_RESET_TOKENS"),
        "RESEND_API_KEY": (os.getenv("RESEND_API_KEY") or "").strip(),
        "MAIL_SENDER": os.getenv("MAIL_SENDER") or "Wear <no-reply@wear.store>",
        "AUTO_CREATE_TABLES": env_flag("AUTO_CREATE_TABLES", True),
        "LOG_LEVEL": (os.getenv("LOG_LEVEL") or "INFO").upper(),
    }
