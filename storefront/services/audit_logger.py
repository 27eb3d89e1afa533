# storefront/services/audit_logger.py
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from storefront.core.utils import Clock, utc_now
from storefront.database import Database
from storefront.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


class AuditLogger:
    """
    Records administrative and settlement actions in the audit log.

    Each entry is written in its own short transaction after the action it
    describes has committed, so an audit failure never rolls back the action.
    """

    def __init__(self, db: Database, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    async def record(
        self,
        actor_id: Optional[str],
        action: str,
        entity: str,
        entity_id: Optional[str],
        changes: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditLog]:
        """
        Append an audit entry.

        Args:
            actor_id: Who performed the action, None for the system
            action: stock_updated, payment_settled, payment_failed, ...
            entity: The kind of entity affected (variant, payment, order)
            entity_id: The ID of the affected entity
            changes: Optional before/after values

        Returns:
            The created AuditLog, or None if it could not be written
        """
        try:
            async with self.db.transaction() as session:
                entry = AuditLog(
                    actor_id=actor_id,
                    action=action,
                    entity=entity,
                    entity_id=str(entity_id) if entity_id is not None else None,
                    changes=changes,
                    created_at=self.clock(),
                )
                session.add(entry)

            logger.debug(f"Audit: {action} {entity} {entity_id} (actor: {actor_id or 'system'})")
            return entry

        except SQLAlchemyError as e:
            logger.error(f"Error writing audit entry {action} {entity} {entity_id}: {str(e)}")
            # Don't raise, the audited action has already committed
            return None
