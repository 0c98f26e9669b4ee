"""Configuration objects for the Flask application."""
from __future__ import annotations

import os
from pathlib import Path


def _int_from_env(name: str, default: int) -> int:
    """Return an integer value from ``name`` or ``default`` when missing/invalid."""

    raw_value = os.environ.get(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


class Config:
    """Base configuration."""

    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = (
        os.environ.get("DATABASE_URL")
        or f"sqlite:///{Path(os.environ.get('FLASK_INSTANCE_PATH', 'instance')).absolute() / 'linedefect.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MAX_CONTENT_LENGTH = _int_from_env("MAX_UPLOAD_BYTES", 10 * 1024 * 1024)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # "sql" keeps defects in SQLALCHEMY_DATABASE_URI, "supabase" uses PostgREST.
    DEFECT_BACKEND = os.environ.get("DEFECT_BACKEND", "sql")

    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_KEY = os.environ.get("SUPABASE_KEY")
    SUPABASE_TIMEOUT = _int_from_env("SUPABASE_TIMEOUT", 10)
    SUPABASE_STORAGE_BUCKET = os.environ.get("SUPABASE_STORAGE_BUCKET", "defect-images")

    SIGNED_URL_EXPIRY = _int_from_env("SIGNED_URL_EXPIRY", 3600)
    SIGNED_URL_LONG_EXPIRY = _int_from_env("SIGNED_URL_LONG_EXPIRY", 86400)

    REPORT_ID_PREFIX = os.environ.get("REPORT_ID_PREFIX", "DEF-")
    EXPORT_TIMEZONE = os.environ.get("EXPORT_TIMEZONE", "UTC")


class TestingConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    SECRET_KEY = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    DEFECT_BACKEND = "sql"
    SUPABASE_URL = None
    SUPABASE_KEY = None
