# backend/settlement/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/settlement.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///settlement.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Returns are accepted up to this many whole days after the sale
    RETURN_POLICY_DAYS = _env_int("RETURN_POLICY_DAYS", 30)

    # Currency units per base loyalty point (10 => 1 point per 10.00 spent)
    LOYALTY_POINTS_PER_UNIT = _env_int("LOYALTY_POINTS_PER_UNIT", 10)
    STORE_CREDIT_VALIDITY_MONTHS = _env_int("STORE_CREDIT_VALIDITY_MONTHS", 6)

    REQUIRE_PASSWORD_ON_VOID = _env_bool("REQUIRE_PASSWORD_ON_VOID", False)

    # Product.low_stock_threshold wins when set; HIGH_STOCK_THRESHOLD=None disables high alerts
    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 10)
    HIGH_STOCK_THRESHOLD = _env_int("HIGH_STOCK_THRESHOLD", None)

    TX_RETRY_ATTEMPTS = _env_int("TX_RETRY_ATTEMPTS", 3)
    TX_RETRY_BACKOFF = float(os.environ.get("TX_RETRY_BACKOFF", "0.1"))
