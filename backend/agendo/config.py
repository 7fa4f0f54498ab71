# backend/agendo/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/agendo.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///agendo.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("AGENDO_LOG_LEVEL", "INFO")

    # Store round trips retried on lock/optimistic-version failures
    RETRY_ATTEMPTS = int(os.environ.get("AGENDO_RETRY_ATTEMPTS", "3"))

    # Per-subscriber buffer of the real-time feed; overflow drops the oldest delta
    FEED_QUEUE_SIZE = int(os.environ.get("AGENDO_FEED_QUEUE_SIZE", "1000"))

    # Used when a tenant has no cancellation window of its own
    DEFAULT_CANCELLATION_WINDOW_MINUTES = int(
        os.environ.get("AGENDO_DEFAULT_CANCELLATION_WINDOW_MINUTES", "0")
    )
