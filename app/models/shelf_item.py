from sqlalchemy import Column, Float, ForeignKey, Integer, UniqueConstraint

from app.database.base import Base


class ShelfItem(Base):
    __tablename__ = "shelf_items"

    id = Column(Integer, primary_key=True)
    shelf_id = Column(Integer, ForeignKey("shelves.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    # Snapshot of the product unit weight taken when the item was inserted.
    unit_weight = Column(Float, nullable=False)
    total_item_weight = Column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint("shelf_id", "product_id", name="uq_shelf_items_shelf_product"),
    )


__all__ = ["ShelfItem"]
