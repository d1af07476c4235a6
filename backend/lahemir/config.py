# backend/lahemir/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: str = "0") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/lahemir.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///lahemir.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Slot keys of the persisted key-value store
    STORAGE_KEYS = {
        "users": "lahemir_users",
        "products": "lahemir_products",
        "sales": "lahemir_sales",
        "settings": "lahemir_app_settings",
        "auth_user": "lahemir_auth_user",
    }

    # First-run seeding
    SEED_SAMPLE_PRODUCTS = _env_flag("LAHEMIR_SEED_PRODUCTS", "1")

    # The distinguished default admin. Credentials are stored and compared as plaintext.
    DEFAULT_ADMIN_ID = "default-admin"
    DEFAULT_ADMIN_USERNAME = os.environ.get("LAHEMIR_DEFAULT_ADMIN_USERNAME", "abdo")
    DEFAULT_ADMIN_PASSWORD = os.environ.get("LAHEMIR_DEFAULT_ADMIN_PASSWORD", "00123456")

    # Payment method recorded when checkout does not name one
    DEFAULT_PAYMENT_METHOD = "نقدي"
