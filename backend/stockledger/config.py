# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Checkout holds live for a single global TTL (not per variant/session)
    RESERVATION_TTL_SECONDS = int(os.environ.get("RESERVATION_TTL_SECONDS", "900"))

    # Expiry sweep
    SWEEP_ENABLED = _env_bool("SWEEP_ENABLED", False)
    SWEEP_INTERVAL_SECONDS = float(os.environ.get("SWEEP_INTERVAL_SECONDS", "60"))
    SWEEP_BATCH_SIZE = int(os.environ.get("SWEEP_BATCH_SIZE", "500"))

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    # Write-path retry on lock/version conflicts
    STOCK_WRITE_RETRY_ATTEMPTS = int(os.environ.get("STOCK_WRITE_RETRY_ATTEMPTS", "8"))
    STOCK_WRITE_RETRY_BACKOFF = float(os.environ.get("STOCK_WRITE_RETRY_BACKOFF", "0.02"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
