# storefront/models/stock_variant.py
"""
Stock ledger rows.

Each product variant carries the authoritative stock count and an optimistic
version counter. Reservations never touch ``stock``; only a committed
reservation or an administrative adjustment does, and both bump ``version``.
"""

from sqlalchemy import Column, Integer, String, TIMESTAMP, CheckConstraint

from storefront.core.utils import new_id, utc_now
from storefront.database import Base


class StockVariant(Base):
    __tablename__ = "product_variants"
    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    sku = Column(String(64), unique=True, nullable=True, index=True)
    name = Column(String(255), nullable=True)

    stock = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(TIMESTAMP(timezone=False), default=utc_now, nullable=False)
    updated_at = Column(TIMESTAMP(timezone=False), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<StockVariant {self.id} sku={self.sku} stock={self.stock} v{self.version}>"
