# storefront/models/audit_log.py
from sqlalchemy import Column, Integer, String, JSON, TIMESTAMP

from storefront.core.utils import utc_now
from storefront.database import Base


class AuditLog(Base):
    """
    Append-only record of administrative and settlement actions.

    This includes:
    - Stock adjustments made by admins
    - Payment settlement, failure and cancellation
    - Orders flagged for manual reconciliation
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    actor_id = Column(String(36), nullable=True, index=True)  # NULL for system actions
    action = Column(String(50), nullable=False, index=True)
    entity = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(100), nullable=True, index=True)

    changes = Column(JSON, nullable=True)

    created_at = Column(TIMESTAMP(timezone=False), default=utc_now, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity} {self.entity_id}>"
