from sqlalchemy.orm import sessionmaker

from app.database.engine import engine

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)


def init_schema(bind=None) -> None:
    from app.database.base import Base
    from app.database.engine import ensure_sqlite_schema
    from app.models import import_all_models

    import_all_models()
    Base.metadata.create_all(bind=bind or engine)
    ensure_sqlite_schema(bind)
