"""
Configuration for the SimpleCaptcha Flask app.
Production (Railway/Render): uses DATABASE_URL only; fails if missing.
Local: DATABASE_URL or DB_* fallback for backward compatibility.
"""
import os
from urllib.parse import quote_plus


def _is_production():
    """True when running on Railway, Render, or explicit production."""
    return (
        os.environ.get("RENDER") == "true"
        or os.environ.get("RAILWAY_ENVIRONMENT") is not None
        or os.environ.get("FLASK_ENV") == "production"
    )


def _normalize_database_url(url):
    """Convert postgres:// to postgresql+psycopg2:// for SQLAlchemy/psycopg2."""
    if not url:
        return url
    url = url.strip()
    if url.startswith("postgres://"):
        return "postgresql+psycopg2://" + url[11:]
    if url.startswith("postgresql://") and "psycopg2" not in url:
        return "postgresql+psycopg2://" + url[13:]
    return url


def _get_database_uri():
    """Database URI: production = DATABASE_URL only; local = DATABASE_URL or DB_*."""
    if _is_production():
        url = os.environ.get("DATABASE_URL")
        if not url or not url.strip():
            raise RuntimeError(
                "DATABASE_URL is required in production (Railway/Render). "
                "Set it in your service environment variables."
            )
        return _normalize_database_url(url.strip())

    url = os.environ.get("DATABASE_URL")
    if url and url.strip():
        return _normalize_database_url(url.strip())

    host = os.environ.get("DB_HOST", "localhost")
    port = os.environ.get("DB_PORT", "5432")
    name = os.environ.get("DB_NAME", "simplecaptcha")
    user = os.environ.get("DB_USER", "simplecaptcha")
    password = os.environ.get("DB_PASSWORD", "")
    if password:
        password = quote_plus(password)
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-key-change-in-production"

    SQLALCHEMY_DATABASE_URI = _get_database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Backing store for pending challenges: database, memory or redis.
    # Use database or redis when running more than one worker process.
    CAPTCHA_STORE = os.environ.get("CAPTCHA_STORE", "database").strip().lower()
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")

    # Glyphs never used in image challenges
    CAPTCHA_AMBIGUOUS_CHARS = os.environ.get("CAPTCHA_AMBIGUOUS_CHARS", "IOilo01")

    # Used when a setting has no row in the settings table yet
    CAPTCHA_DEFAULTS = {
        "enabled": False,
        "type": "math",
        "difficulty": "easy",
        "case_sensitive": False,
        "length": 5,
        "expiry": 300,
        "protected_forms": {
            "login": True,
            "register": True,
            "checkout_guest": True,
            "contact": True,
            "newsletter": False,
            "reviews": False,
        },
    }


class TestingConfig(Config):
    """Isolated config for the test suite: SQLite in memory, in-process store."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    CAPTCHA_STORE = "memory"
