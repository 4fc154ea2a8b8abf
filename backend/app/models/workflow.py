"""Workflow: states and directed transitions attached to a Model.

A state flagged is_initial seeds newly created objects. A state with no
outgoing transition is terminal. Definitions are edited only through the
workflow admin endpoints; the engine reads them.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Workflow(Base):
    __tablename__ = "workflows"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    states = relationship(
        "WorkflowState", back_populates="workflow", lazy="selectin",
        order_by="WorkflowState.order_index", cascade="all, delete-orphan",
    )
    transitions = relationship(
        "WorkflowStateTransition", back_populates="workflow", lazy="selectin",
        cascade="all, delete-orphan",
    )


class WorkflowState(Base):
    __tablename__ = "workflow_states"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    workflow_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workflows.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    color: Mapped[str | None] = mapped_column(String(20))
    is_initial: Mapped[bool] = mapped_column(Boolean, default=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0)

    workflow = relationship("Workflow", back_populates="states")


class WorkflowStateTransition(Base):
    __tablename__ = "workflow_state_transitions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    workflow_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workflows.id"), nullable=False, index=True
    )
    from_state_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workflow_states.id"), nullable=False, index=True
    )
    to_state_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("workflow_states.id"), nullable=False
    )

    workflow = relationship("Workflow", back_populates="transitions")
