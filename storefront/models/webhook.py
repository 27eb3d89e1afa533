# storefront/models/webhook.py
from sqlalchemy import Column, Integer, String, JSON, Text, TIMESTAMP

from storefront.core.enums import WebhookEventStatus
from storefront.core.utils import new_id, utc_now
from storefront.database import Base


class WebhookEvent(Base):
    """
    Every verified gateway delivery, keyed by ``event_id`` for deduplication.

    A failed row may be retried by a later delivery of the same event, and
    so may a processing row whose claim is older than the processing
    timeout. Any other row turns later deliveries into duplicates.
    """
    __tablename__ = "webhook_events"

    id = Column(String(36), primary_key=True, default=new_id)
    gateway = Column(String(30), nullable=False, default="paystack")
    event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    reference = Column(String(100), nullable=True, index=True)
    payload = Column(JSON, nullable=True)

    status = Column(String(20), nullable=False, default=WebhookEventStatus.PROCESSING.value, index=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)

    claimed_at = Column(TIMESTAMP(timezone=False), nullable=True)
    processed_at = Column(TIMESTAMP(timezone=False), nullable=True)
    created_at = Column(TIMESTAMP(timezone=False), default=utc_now, nullable=False)

    def __repr__(self):
        return f"<WebhookEvent {self.event_id} status={self.status}>"
