"""Lightweight helper for recording activity log entries.

Usage:
    await log_activity(
        db, identity, action="state_changed", entity_type="data_object",
        entity_id=obj.id, summary="Moved Order from New to Paid",
        details={"from_state_id": old, "to_state_id": new},
    )

The row is added to the current session and committed with the
enclosing transaction; no extra flush is performed.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ActingIdentity
from app.models.activity_log import ActivityLog


async def log_activity(
    db: AsyncSession,
    identity: ActingIdentity,
    *,
    action: str,
    entity_type: str,
    entity_id: str | None = None,
    summary: str | None = None,
    details: dict | None = None,
) -> None:
    """Append an activity log entry to the current DB session."""
    entry = ActivityLog(
        user_id=identity.user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        summary=summary,
        details=details,
    )
    db.add(entry)
