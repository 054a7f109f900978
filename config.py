"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
logging level and award defaults. It uses environment variables for sensitive information and defaults for development.
In production, make sure to set the appropriate environment variables and secure the secret key.
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
        f"sqlite:///{BASE_DIR / 'tender_engine.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection stays on for any form posts; the JSON API blueprints are exempt
    WTF_CSRF_ENABLED = True

    APP_NAME = "Tender Evaluation & Award Engine"

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Contract currency when the award request does not name one
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "GBP")


class TestingConfig(Config):
    """In-memory database, no CSRF."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    LOG_LEVEL = "DEBUG"
