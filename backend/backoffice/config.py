# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # No authentication: every mutation is attributed to this actor unless
    # the caller names one.
    DEMO_USER_ID = os.environ.get("DEMO_USER_ID", "user-demo")

    # Payables fall due this many days after the invoice date
    PAYABLE_DUE_DAYS = int(os.environ.get("PAYABLE_DUE_DAYS", "30"))

    # Default warranty granted when a repaired item is picked up
    WARRANTY_VALIDITY_DAYS = int(os.environ.get("WARRANTY_VALIDITY_DAYS", "90"))

    # Location whose stock is consumed by repairs when the reception names none
    SERVICE_LOCATION_ID = os.environ.get("SERVICE_LOCATION_ID", "deposito-servicio")

    # First attempt + one retry with fresh reads on a write conflict
    TRANSACTION_ATTEMPTS = int(os.environ.get("TRANSACTION_ATTEMPTS", "2"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
