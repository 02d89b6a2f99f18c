"""
Application configuration.
This module defines the configuration settings for the back office, including database connection, secret key,
seller identity for tax invoices and logging. It uses environment variables for sensitive information and defaults
for development. In production, make sure to set the appropriate environment variables and secure the secret key.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'backoffice.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection; JSON clients send the token in X-CSRFToken
    WTF_CSRF_ENABLED = os.environ.get("WTF_CSRF_ENABLED", "1") not in ("0", "false", "False")

    # Seller VAT registration number used when the tenant has none of its own
    SELLER_VAT_NUMBER = os.environ.get("SELLER_VAT_NUMBER", "")

    # Business civil time for QR timestamps (fixed offset, no DST)
    BUSINESS_UTC_OFFSET_HOURS = float(os.environ.get("BUSINESS_UTC_OFFSET_HOURS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    APP_NAME = os.environ.get("APP_NAME", "Contracting Back Office")


class TestingConfig(Config):
    """In-memory database, no CSRF."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    WTF_CSRF_ENABLED = False
    SELLER_VAT_NUMBER = "300000000000003"
    LOG_LEVEL = "DEBUG"
