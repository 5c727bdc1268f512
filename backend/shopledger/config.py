# backend/shopledger/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///shopledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Upper bound (seconds) a multi-step operation may wait on row locks
    TRANSACTION_TIMEOUT_SECONDS = _int_env("TRANSACTION_TIMEOUT_SECONDS", 15)
    # Total attempts for a unit of work that hits a serialization conflict
    TRANSACTION_RETRY_ATTEMPTS = _int_env("TRANSACTION_RETRY_ATTEMPTS", 2)

    # Credit status turns WARNING above this share of the limit (basis points)
    CREDIT_WARNING_THRESHOLD_BPS = _int_env("CREDIT_WARNING_THRESHOLD_BPS", 8000)
    INVOICE_DUE_DAYS = _int_env("INVOICE_DUE_DAYS", 30)
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "NGN")

    # Payment gateway (Paystack-compatible API)
    PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY", "")
    PAYSTACK_BASE_URL = os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co")
    PAYSTACK_CALLBACK_URL = os.environ.get("PAYSTACK_CALLBACK_URL", "")
    PAYMENT_GATEWAY_TIMEOUT_SECONDS = _int_env("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10)
