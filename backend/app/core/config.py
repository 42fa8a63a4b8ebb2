"""
Shared configuration for the Robyn backend.

- Reads settings from environment variables (.env) for DB, secret key, logging...
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Backend application settings.

    Environment variables make it easy to deploy the same build to several environments.
    """

    app_name: str = "ModulerERP"
    debug: bool = os.getenv("APP_DEBUG", "false").lower() == "true"
    secret_key: str = os.getenv("SECRET_KEY", "change-me-in-production")

    db_path: str = os.getenv("DB_PATH", "data/modulererp.db")

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_file: str | None = os.getenv("LOG_FILE", None)

    base_currency: str = os.getenv("BASE_CURRENCY", "TRY")
    # Wall-clock zone of the sites; attendance times are stored as local naive datetimes
    timezone: str = os.getenv("APP_TIMEZONE", "Europe/Istanbul")
    default_tenant_code: str = os.getenv("DEFAULT_TENANT", "DEFAULT")
    admin_username: str = os.getenv("ADMIN_USERNAME", "admin")
    admin_password: str = os.getenv("ADMIN_PASSWORD", "admin")
    port: int = int(os.getenv("PORT", "8000"))

    telegram_bot_token: str | None = os.getenv("TELEGRAM_BOT_TOKEN", None)
    telegram_chat_id: str | None = os.getenv("TELEGRAM_CHAT_ID", None)

    @property
    def sqlalchemy_database_uri(self) -> str:
        """Connection string for SQLite.

        Either sqlite:///path/to/database.db or sqlite:///:memory: for an in-memory database.
        """
        return f"sqlite:///{self.db_path}"


settings = Settings()
