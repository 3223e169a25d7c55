# backend/tillbook/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tillbook.sqlite3 unless DATABASE_URL is set
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///tillbook.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Cart calculator default, in basis points (825 = 8.25%)
    TILLBOOK_TAX_RATE_BPS = int(os.environ.get("TILLBOOK_TAX_RATE_BPS", "0"))

    TILLBOOK_SALE_PREFIX = os.environ.get("TILLBOOK_SALE_PREFIX", "S")
    TILLBOOK_TRANSFER_PREFIX = os.environ.get("TILLBOOK_TRANSFER_PREFIX", "T")

    # Retries apply only to lock conflicts / stale rows, never to business errors
    TILLBOOK_RETRY_ATTEMPTS = int(os.environ.get("TILLBOOK_RETRY_ATTEMPTS", "3"))
    TILLBOOK_RETRY_BACKOFF = float(os.environ.get("TILLBOOK_RETRY_BACKOFF", "0.1"))

    TILLBOOK_DEFAULT_REORDER_LEVEL = int(os.environ.get("TILLBOOK_DEFAULT_REORDER_LEVEL", "5"))
    TILLBOOK_DEFAULT_REORDER_QUANTITY = int(os.environ.get("TILLBOOK_DEFAULT_REORDER_QUANTITY", "10"))

    TILLBOOK_PARKED_CART_LIMIT = int(os.environ.get("TILLBOOK_PARKED_CART_LIMIT", "50"))
