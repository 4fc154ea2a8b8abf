"""Wizard definitions and wizard runs.

Wizard / WizardStep: an ordered list of steps, each bound to a Model. A
step is exercised as either "create" or "lookup" per run submission.
property_mappings copy a value (or the object id) from an earlier step
into the step's object at commit time:

    [{"source_step_index": 0,
      "source_property_id": "__OBJECT_ID__",
      "target_property_id": "<property id>"}]

WizardRun: one user's progress through a wizard. Intermediate steps only
buffer their submission in step_data; objects are created all at once
when the final step is accepted.

Lifecycle:  IN_PROGRESS → COMPLETED | ABANDONED   (both terminal)
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class WizardRunStatus(str, enum.Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


class Wizard(Base):
    __tablename__ = "wizards"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    steps = relationship(
        "WizardStep", back_populates="wizard", lazy="selectin",
        order_by="WizardStep.order_index", cascade="all, delete-orphan",
    )


class WizardStep(Base):
    __tablename__ = "wizard_steps"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    wizard_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("wizards.id"), nullable=False, index=True
    )
    model_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("models.id"), nullable=False
    )
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    instructions: Mapped[str | None] = mapped_column(Text)
    # Which of the model's properties the step form shows
    property_ids: Mapped[list] = mapped_column(JSON, default=list)
    property_mappings: Mapped[list] = mapped_column(JSON, default=list)

    wizard = relationship("Wizard", back_populates="steps")


class WizardRun(Base):
    __tablename__ = "wizard_runs"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: f"run_{uuid.uuid4()}"
    )
    wizard_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("wizards.id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=WizardRunStatus.IN_PROGRESS.value, index=True
    )
    # Index of the last accepted step; -1 before the first submission
    current_step_index: Mapped[int] = mapped_column(Integer, default=-1)
    # {"0": {"step_type": "create", "form_data": {...}},
    #  "1": {"step_type": "lookup", "object_id": "..."}}
    step_data: Mapped[dict] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)

    wizard = relationship("Wizard", lazy="selectin")
