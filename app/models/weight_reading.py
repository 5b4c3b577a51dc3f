from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Index, Integer, String

from app.database.base import Base


class WeightReading(Base):
    __tablename__ = "weight_readings"

    id = Column(Integer, primary_key=True)
    product_name = Column(String(100), nullable=False)
    weight = Column(Float, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    action = Column(String(20))
    device_item_id = Column(Integer)
    device_ts = Column(Integer)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_weight_readings_timestamp", "timestamp"),
        Index("idx_weight_readings_product", "product_name"),
    )


__all__ = ["WeightReading"]
