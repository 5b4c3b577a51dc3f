from app.config import Settings, get_settings
from app.storage.base import LedgerStorage
from app.storage.memory import MemoryStorage


def build_storage(settings: Settings = None) -> LedgerStorage:
    """Pick the backend once, at startup."""
    settings = settings or get_settings()
    backend = settings.STORAGE_BACKEND.strip().lower()
    if backend == "memory":
        return MemoryStorage()
    if backend == "sql":
        from app.database.session import init_schema
        from app.storage.sql import SqlStorage

        init_schema()
        return SqlStorage()
    raise ValueError(f"Unsupported STORAGE_BACKEND: {settings.STORAGE_BACKEND}")


__all__ = ["LedgerStorage", "MemoryStorage", "build_storage"]
