# backend/workhub/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Relative SQLite paths resolve inside the Flask instance folder
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///workhub.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # bcrypt cost factor; tests lower it
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Project overview cache-aside TTLs (memory tier, persisted tier)
    OVERVIEW_MEMORY_TTL_SECONDS = _env_int("OVERVIEW_MEMORY_TTL_SECONDS", 5 * 60)
    OVERVIEW_DB_TTL_SECONDS = _env_int("OVERVIEW_DB_TTL_SECONDS", 10 * 60)

    # Generic analytics cache TTLs for other cache types
    CACHE_DEFAULT_MEMORY_TTL_SECONDS = _env_int("CACHE_DEFAULT_MEMORY_TTL_SECONDS", 10 * 60)
    CACHE_DEFAULT_DB_TTL_SECONDS = _env_int("CACHE_DEFAULT_DB_TTL_SECONDS", 15 * 60)

    # Aggregator fan-out; <= 1 runs the queries inline
    FANOUT_MAX_WORKERS = _env_int("FANOUT_MAX_WORKERS", 8)

    LINKS_DEFAULT_LIMIT = 5
    LINKS_MAX_LIMIT = 50

    DEFAULT_PAGE_SIZE = 25
    MAX_PAGE_SIZE = 100
