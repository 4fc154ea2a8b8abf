"""ActivityLog: append-only audit trail of data changes made by the core.

Records who changed what, when, and to which entity: workflow state
transitions, batch property updates, and objects created by wizard runs.
Entries are written into the same transaction as the change they describe,
so a rolled-back batch or wizard commit leaves no trail either.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Who ────────────────────────────────────────────────────
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── What ───────────────────────────────────────────────────
    # created | updated | state_changed | wizard_completed | wizard_abandoned
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # ── Target ─────────────────────────────────────────────────
    # data_object | wizard_run
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(40), index=True)

    # ── Context ────────────────────────────────────────────────
    summary: Mapped[str | None] = mapped_column(Text)
    # e.g. {"property": "price", "old": 10, "new": 12}
    details: Mapped[dict | None] = mapped_column(JSON)

    # ── Timestamp ──────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )
