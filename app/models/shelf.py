from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, Integer, String

from app.database.base import Base


class Shelf(Base):
    __tablename__ = "shelves"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    name_key = Column(String(100), nullable=False)

    # Embedded summary, always rewritten from shelf_items.
    items = Column(JSON, nullable=False, default=list)
    total_weight = Column(Float, nullable=False, default=0)

    max_capacity = Column(Float)
    location = Column(String(200))
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_shelves_name_key", "name_key"),
    )


__all__ = ["Shelf"]
