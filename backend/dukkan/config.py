# backend/dukkan/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the process unless DATABASE_URL says otherwise
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///dukkan.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Server-side sessions: token in an httpOnly cookie, rolling expiry
    SESSION_COOKIE_NAME = os.environ.get("SESSION_COOKIE_NAME", "dukkan_session")
    SESSION_LIFETIME_DAYS = int(os.environ.get("SESSION_LIFETIME_DAYS", "30"))
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    CORS_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]

    BACKUP_DIR = os.environ.get("BACKUP_DIR", "backups")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
