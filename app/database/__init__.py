from app.database.base import Base
from app.database.engine import engine, ensure_sqlite_schema
from app.database.session import SessionLocal, init_schema

__all__ = ["Base", "engine", "ensure_sqlite_schema", "init_schema", "SessionLocal"]
