# backend/storeledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storeledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storeledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sequence allocator: probe bound and zero-padded width of issued numbers
    SEQUENCE_MAX_ATTEMPTS = int(os.environ.get("SEQUENCE_MAX_ATTEMPTS", "50"))
    SEQUENCE_PAD_WIDTH = int(os.environ.get("SEQUENCE_PAD_WIDTH", "6"))

    # Settlement: payments must match the order total within this many currency units
    PAYMENT_TOLERANCE = os.environ.get("PAYMENT_TOLERANCE", "0.005")

    # Demand notice cascade: "independent" (every open notice sees the full arrival)
    # or "depleting" (arrival is a shared pool, oldest notice first)
    DEMAND_ALLOCATION_POLICY = os.environ.get("DEMAND_ALLOCATION_POLICY", "independent")

    # Local blob store root for selfies, count evidence and PO attachments
    UPLOAD_ROOT = os.environ.get("UPLOAD_ROOT", os.path.join(os.getcwd(), "uploads"))
