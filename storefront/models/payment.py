# storefront/models/payment.py
from sqlalchemy import Column, String, Boolean, Numeric, JSON, Text, TIMESTAMP, ForeignKey

from storefront.core.enums import PaymentStatus
from storefront.core.utils import new_id, utc_now
from storefront.database import Base


class Payment(Base):
    """
    One payment intent against an order, keyed by the gateway reference.

    ``status`` follows initialized -> paid -> committed, or
    initialized -> failed / released.
    """
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=new_id)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    gateway = Column(String(30), nullable=False, default="paystack")
    reference = Column(String(100), unique=True, nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False, default=PaymentStatus.INITIALIZED.value, index=True)

    authorization_url = Column(Text, nullable=True)
    raw_response = Column(JSON, nullable=True)
    requires_reconciliation = Column(Boolean, nullable=False, default=False)

    settled_at = Column(TIMESTAMP(timezone=False), nullable=True)
    created_at = Column(TIMESTAMP(timezone=False), default=utc_now, nullable=False)
    updated_at = Column(TIMESTAMP(timezone=False), default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self):
        return f"<Payment {self.reference} order={self.order_id} status={self.status}>"
