"""Model (a user-defined schema) and its typed Property list.

A Model optionally references one Workflow. Data Objects of that Model
either have no current state yet or sit in one of that workflow's states.

Property types:  string | markdown | image | number | rating | boolean |
                 date | relationship
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class PropertyType(str, enum.Enum):
    STRING = "string"
    MARKDOWN = "markdown"
    IMAGE = "image"
    NUMBER = "number"
    RATING = "rating"
    BOOLEAN = "boolean"
    DATE = "date"
    RELATIONSHIP = "relationship"


class Model(Base):
    __tablename__ = "models"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    workflow_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("workflows.id"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    properties = relationship(
        "Property", back_populates="model", lazy="selectin",
        order_by="Property.order_index", cascade="all, delete-orphan",
    )

    def property_by_name(self, name: str) -> "Property | None":
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    model_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("models.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)

    # ── Constraints ──────────────────────────────────────────
    required: Mapped[bool] = mapped_column(Boolean, default=False)
    is_unique: Mapped[bool] = mapped_column(Boolean, default=False)
    # number only
    min_value: Mapped[float | None] = mapped_column(Float)
    max_value: Mapped[float | None] = mapped_column(Float)
    precision: Mapped[int | None] = mapped_column(Integer)
    unit: Mapped[str | None] = mapped_column(String(50))

    # ── Relationship properties ──────────────────────────────
    related_model_id: Mapped[str | None] = mapped_column(String(36))
    # one | many
    relationship_type: Mapped[str | None] = mapped_column(String(10))

    # ── Date properties ──────────────────────────────────────
    auto_set_on_create: Mapped[bool] = mapped_column(Boolean, default=False)
    auto_set_on_update: Mapped[bool] = mapped_column(Boolean, default=False)

    order_index: Mapped[int] = mapped_column(Integer, default=0)

    model = relationship("Model", back_populates="properties")
