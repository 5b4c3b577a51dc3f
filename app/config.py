from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==============================
    # Application
    # ==============================
    APP_NAME: str = "Smart Shelf Ledger"
    ENVIRONMENT: str = "local"

    # ==============================
    # Storage
    # ==============================
    DATABASE_URL: str = "sqlite:///./ledger.db"
    STORAGE_BACKEND: str = "sql"

    # ==============================
    # Logging
    # ==============================
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ==============================
    # Readings
    # ==============================
    MAX_READING_WEIGHT: float = 50000.0
    READINGS_KEEP_DEFAULT: int = 1000
    READINGS_KEEP_MIN: int = 100
    READINGS_KEEP_MAX: int = 10000
    READINGS_MAX_RANGE_DAYS: int = 30

    # ==============================
    # Shelves
    # ==============================
    AUDIT_WEIGHT_TOLERANCE: float = 0.01
    SEED_DEFAULT_PRODUCTS: bool = False


@lru_cache
def get_settings() -> Settings:
    """Cached settings loader (once per process)."""
    return Settings()


__all__ = ["Settings", "get_settings"]
