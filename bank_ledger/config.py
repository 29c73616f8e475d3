"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env file
as a fallback. Secrets stay out of source code: the .env file is gitignored and
.env.example provides a safe template for developers.

Pydantic Settings automatically:
  1. Reads from environment variables (highest priority)
  2. Falls back to .env file values
  3. Uses defaults defined here (lowest priority)

The ledger, card service and notifier never read settings on their own. main.py
reads them once and hands the relevant values to each component's constructor.

Usage:
    from bank_ledger.config import settings
    print(settings.RESERVE_USERNAME)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the Bank Ledger API.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to sign bearer tokens
      - CARD_ENCRYPTION_KEY: Fernet key for encrypting card numbers at rest
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # --- Application ---
    APP_NAME: str = "Bank Ledger API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # --- Database ---
    # SQLite by default; swap to a PostgreSQL (asyncpg) URL for production
    DATABASE_URL: str = "sqlite+aiosqlite:///./bank_ledger.db"

    # --- Authentication ---
    # REQUIRED: No default, forces the operator to set a real secret
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    # Session lifetime; the token and its Session row expire together
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 24 * 60

    # --- Card Encryption ---
    # REQUIRED: Fernet key for encrypting card numbers at rest
    # Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    CARD_ENCRYPTION_KEY: str
    CARD_REFRESH_COOLDOWN_HOURS: int = 24

    # --- Ledger ---
    # The reserve account represents the bank itself. Its username can never
    # be registered and its balance is pinned to RESERVE_BALANCE_CENTS.
    RESERVE_USERNAME: str = "CentralBank"
    RESERVE_BALANCE_CENTS: int = 99_999_999_999  # 999,999,999.99
    ONBOARDING_CREDIT_CENTS: int = 100_000  # 1,000.00 granted at signup
    # Periodic reserve reconciliation; 0 disables the background loop
    RECONCILE_INTERVAL_SECONDS: int = 0

    # --- Notifications ---
    # Events are dropped silently when no URL is configured
    WEBHOOK_URL: str | None = None
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0

    # --- CORS ---
    # Origins allowed to make cross-origin requests (frontend URLs)
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
