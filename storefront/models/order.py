# storefront/models/order.py
from sqlalchemy import Column, String, Boolean, Numeric, Text, TIMESTAMP

from storefront.core.enums import OrderStatus
from storefront.core.utils import new_id, utc_now
from storefront.database import Base


class Order(Base):
    """Order header. Owned by the ordering service; settlement only updates status and the reconciliation flag."""
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=new_id)
    order_number = Column(String(50), unique=True, nullable=True)
    status = Column(String(30), nullable=False, default=OrderStatus.PENDING.value, index=True)
    total = Column(Numeric(12, 2), nullable=True)

    # Money captured but stock could not be secured
    requires_reconciliation = Column(Boolean, nullable=False, default=False, index=True)
    reconciliation_note = Column(Text, nullable=True)

    created_at = Column(TIMESTAMP(timezone=False), default=utc_now, nullable=False)
    updated_at = Column(TIMESTAMP(timezone=False), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<Order {self.id} status={self.status}>"
