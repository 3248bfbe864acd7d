"""
Runtime settings for the PPOB ledger.

Values come from the process environment first, then from a local .env file,
then from the defaults below. SECRET_KEY has no default and must be provided.

    from ppob_ledger.config import settings
    settings.MUTATION_MAX_ATTEMPTS
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Service
    APP_NAME: str = "PPOB Ledger"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Storage. The SQLite file lives under ./data; any async SQLAlchemy URL works.
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/ppob.db"
    # SQLite busy timeout: how long a writer waits on another writer's lock
    DB_LOCK_TIMEOUT_SECONDS: float = 5.0

    # Back-office login
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 12  # one cashier shift

    # Balance writes that lose a lock race are retried this many times in
    # total before ConflictError reaches the caller.
    MUTATION_MAX_ATTEMPTS: int = 3
    MUTATION_RETRY_DELAY_MS: int = 50

    # Latency of the simulated biller, 0 to settle immediately
    SETTLEMENT_DELAY_MS: int = 0

    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


settings = Settings()
