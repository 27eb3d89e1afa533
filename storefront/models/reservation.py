# storefront/models/reservation.py

from sqlalchemy import Column, Integer, String, TIMESTAMP, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship

from storefront.core.utils import new_id, utc_now
from storefront.database import Base


class Reservation(Base):
    """
    A soft hold on a variant for one order.

    Active while ``released_at`` is NULL and ``reserved_until`` is in the
    future. ``released_at`` and ``outcome`` are written in the same statement
    and never change afterwards.
    """
    __tablename__ = "inventory_reservations"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_reservations_quantity_positive"),
        Index("ix_inventory_reservations_active", "variant_id", "released_at", "reserved_until"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), nullable=False, index=True)
    variant_id = Column(String(36), ForeignKey("product_variants.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)

    reserved_until = Column(TIMESTAMP(timezone=False), nullable=False, index=True)
    released_at = Column(TIMESTAMP(timezone=False), nullable=True)
    outcome = Column(String(20), nullable=True, index=True)  # committed, released, expired

    created_at = Column(TIMESTAMP(timezone=False), default=utc_now, nullable=False)

    variant = relationship("StockVariant")

    def is_active(self, now) -> bool:
        return self.released_at is None and self.reserved_until > now

    def __repr__(self):
        return (
            f"<Reservation {self.id} order={self.order_id} variant={self.variant_id} "
            f"qty={self.quantity} outcome={self.outcome}>"
        )
