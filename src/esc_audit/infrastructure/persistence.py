"""AuditRepository — raw SQL insert into audit_events.

Called from the engines within their transaction, so an audit row exists
if and only if the state change it describes was committed.
"""
import json

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.esc_audit.domain.models import AuditEvent

_INSERT_AUDIT_SQL = text("""
    INSERT INTO audit_events (entity_type, entity_id, actor_id, actor_type, action, diff)
    VALUES (:entity_type, :entity_id, :actor_id, :actor_type, :action, CAST(:diff AS JSONB))
""")


class AuditRepository:
    async def append(self, event: AuditEvent, db: AsyncSession) -> None:
        """Insert one row into audit_events within the caller's transaction."""
        await db.execute(
            _INSERT_AUDIT_SQL,
            {
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "actor_id": event.actor_id,
                "actor_type": event.actor_type,
                "action": event.action,
                "diff": json.dumps(event.diff, default=str),
            },
        )
