"""
Activity service — the audit trail of operator and cashier actions.

Every mutating ledger operation records one ActivityLog row naming the
actor, the action, and the affected entity. The row joins the caller's
unit of work, so it commits exactly when the ledger change it describes
commits and disappears with it on rollback.
"""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from ppob_ledger.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)

MODULE_TRANSACTION = "TRANSACTION"
MODULE_BALANCE = "BALANCE"


def record_activity(
    db: AsyncSession,
    actor_id: uuid.UUID,
    action: str,
    module: str,
    entity_id: uuid.UUID | None = None,
    details: str | None = None,
) -> ActivityLog | None:
    """Add an activity row to the session; it is flushed with the ledger writes."""
    try:
        activity = ActivityLog(
            user_id=actor_id,
            action=action,
            module=module,
            entity_id=entity_id,
            details=details,
        )
    except (TypeError, ValueError):
        # Audit is advisory; a malformed record must not block a ledger write.
        logger.warning(
            "Activity record could not be built",
            extra={"action": action, "actor_id": str(actor_id)},
            exc_info=True,
        )
        return None

    db.add(activity)
    logger.info(
        "Activity recorded",
        extra={
            "action": action,
            "module": module,
            "actor_id": str(actor_id),
            "entity_id": str(entity_id) if entity_id else None,
        },
    )
    return activity
