"""
Content Portal
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'content_portal_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Redis (cache backend + rate limiter storage); empty → in-memory
    REDIS_URL = os.getenv("REDIS_URL", "")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Logging: None picks INFO in production, DEBUG otherwise
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    # Identity: comma-separated admin e-mails, forwarded user id is X-User-Id
    ADMIN_EMAILS = os.getenv("ADMIN_EMAILS", "")
    ADMIN_CACHE_TTL_SECONDS = _int_env("ADMIN_CACHE_TTL_SECONDS", 300)

    # Shared secret the worker pool sends as X-Worker-Token; empty disables worker access
    WORKER_TOKEN = os.getenv("WORKER_TOKEN", "")

    # Pipeline
    JOB_MAX_ATTEMPTS = _int_env("JOB_MAX_ATTEMPTS", 3)
    JOB_LEASE_TIMEOUT_MINUTES = _int_env("JOB_LEASE_TIMEOUT_MINUTES", 60)
    QUEUE_HISTORY_WINDOW = _int_env("QUEUE_HISTORY_WINDOW", 10)
    QUEUE_FALLBACK_MINUTES = _int_env("QUEUE_FALLBACK_MINUTES", 10)

    # Promotion
    UPSTREAM_TOKEN_BUDGET = _int_env("UPSTREAM_TOKEN_BUDGET", 4000)
    PROVISIONAL_PROJECT_TTL_MINUTES = _int_env("PROVISIONAL_PROJECT_TTL_MINUTES", 15)

    # In-process maintenance scheduler
    SCHEDULER_ENABLED = os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite rejects pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    REDIS_URL = ""
    ADMIN_EMAILS = "admin@portal.test"
    SCHEDULER_ENABLED = False
    WORKER_TOKEN = "test-worker-token"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
