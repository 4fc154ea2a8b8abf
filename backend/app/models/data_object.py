"""DataObject: one instance of a Model.

Attributes are an open JSON map whose shape is governed by the Model's
Property list; the map is coerced at the edges, never by this table.
current_state_id is null until the object enters its model's workflow.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class DataObject(Base):
    __tablename__ = "data_objects"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    model_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("models.id"), nullable=False, index=True
    )
    # Always reassign a new dict; in-place mutation is not change-tracked.
    attributes: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # No FK: an object whose state was deleted keeps the stale id and the
    # workflow engine reports it as UNKNOWN_STATE.
    current_state_id: Mapped[str | None] = mapped_column(String(36), index=True)
    owner_id: Mapped[str | None] = mapped_column(String(36), index=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
