"""
Configuration Management for Trackwatch

This module centralizes all application configuration: download client and
tracker credentials, notification settings, watcher cadence and retry bounds.

All configuration values have sensible defaults and can be overridden via
environment variables for production deployment.
"""

import os
from typing import List


class Config:
    """
    Centralized configuration management using environment variables.

    Credentials left empty disable the matching component: a tracker without
    credentials is not registered, and Telegram without a token sends nothing.
    """

    # =============================================================================
    # APPLICATION SETTINGS
    # =============================================================================
    APP_VERSION = "1.0.0"
    APP_TITLE = "Trackwatch"
    APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
    APP_PORT = int(os.getenv("APP_PORT", os.getenv("LISTEN_PORT", "8000")))

    # =============================================================================
    # DEVELOPMENT MODE
    # =============================================================================
    DEV_MODE = os.getenv("DEV_MODE", "false").lower() == "true"

    # =============================================================================
    # LOGGING
    # =============================================================================
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
    # Emit one JSON object per line instead of plain text
    LOG_JSON = os.getenv("LOG_JSON", "false").lower() == "true"

    # =============================================================================
    # CORS CONFIGURATION
    # =============================================================================
    # Example: CORS_ORIGINS=https://app.example.com,https://api.example.com
    CORS_ORIGINS_STR = os.getenv("CORS_ORIGINS", "")
    CORS_ORIGINS: List[str] = (
        CORS_ORIGINS_STR.split(",") if CORS_ORIGINS_STR else ["http://localhost:8000"]
    )
    if DEV_MODE:
        CORS_ORIGINS = ["*"]

    # =============================================================================
    # DATABASE CONFIGURATION
    # =============================================================================
    _db_path = "./data/trackwatch.db" if os.path.exists("./data") else "./backend/data/trackwatch.db"
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"sqlite:///{_db_path}"
    )

    # =============================================================================
    # DOWNLOAD CLIENT (qBittorrent)
    # =============================================================================
    QB_URL = os.getenv("QB_URL", "http://localhost:8080")
    QB_USERNAME = os.getenv("QB_USERNAME", "")
    QB_PASSWORD = os.getenv("QB_PASSWORD", "")
    QBITTORRENT_TIMEOUT = float(os.getenv("QBITTORRENT_TIMEOUT", "30"))

    # =============================================================================
    # TRACKERS
    # =============================================================================
    KZ_USERNAME = os.getenv("KZ_USERNAME", "")
    KZ_PASSWORD = os.getenv("KZ_PASSWORD", "")
    RT_USERNAME = os.getenv("RT_USERNAME", "")
    RT_PASSWORD = os.getenv("RT_PASSWORD", "")

    USER_AGENT = os.getenv(
        "USER_AGENT",
        "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"
    )
    TRACKER_REQUEST_TIMEOUT = float(os.getenv("TRACKER_REQUEST_TIMEOUT", "100"))

    # Fetch-then-relogin attempts before a hash lookup gives up
    IDENTITY_FETCH_ATTEMPTS = int(os.getenv("IDENTITY_FETCH_ATTEMPTS", "10"))

    # =============================================================================
    # NOTIFICATIONS (Telegram)
    # =============================================================================
    TELEGRAM_TOKEN = os.getenv("TELEGRAM_TOKEN", "")
    TELEGRAM_CHAT_ID = os.getenv("TELEGRAM_CHAT_ID", "")
    TELEGRAM_TIMEOUT = float(os.getenv("TELEGRAM_TIMEOUT", "10"))

    # =============================================================================
    # WATCHERS
    # =============================================================================
    # Seconds between Store polls by the supervisor
    SUPERVISOR_POLL_INTERVAL = float(os.getenv("SUPERVISOR_POLL_INTERVAL", "5"))

    # Used when neither the download client nor the record knows a save path
    DEFAULT_SAVE_PATH = os.getenv("DEFAULT_SAVE_PATH", "/downloads")

    @classmethod
    def validate(cls) -> bool:
        """
        Validate critical configuration values.

        Returns:
            True if configuration is valid, False otherwise
        """
        if not cls.DATABASE_URL or not cls.QB_URL:
            return False

        if cls.APP_PORT < 1 or cls.APP_PORT > 65535:
            return False

        if cls.IDENTITY_FETCH_ATTEMPTS < 1 or cls.SUPERVISOR_POLL_INTERVAL <= 0:
            return False

        return True

    @classmethod
    def get_summary(cls) -> dict:
        """
        Get configuration summary for logging/debugging.

        Returns:
            Dictionary with non-sensitive configuration values
        """
        return {
            "app_version": cls.APP_VERSION,
            "dev_mode": cls.DEV_MODE,
            "app_host": cls.APP_HOST,
            "app_port": cls.APP_PORT,
            "database_url": cls.DATABASE_URL.split("@")[-1] if "@" in cls.DATABASE_URL else "sqlite",
            "qbittorrent_url": cls.QB_URL,
            "qbittorrent_configured": bool(cls.QB_USERNAME),
            "kinozal_configured": bool(cls.KZ_USERNAME and cls.KZ_PASSWORD),
            "rutracker_configured": bool(cls.RT_USERNAME and cls.RT_PASSWORD),
            "telegram_configured": bool(cls.TELEGRAM_TOKEN and cls.TELEGRAM_CHAT_ID),
            "supervisor_poll_interval": cls.SUPERVISOR_POLL_INTERVAL,
            "identity_fetch_attempts": cls.IDENTITY_FETCH_ATTEMPTS,
            "default_save_path": cls.DEFAULT_SAVE_PATH,
        }

