"""Pydantic schemas for Models and their Properties."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from app.models.model import PropertyType


class PropertyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: PropertyType
    required: bool = False
    is_unique: bool = False
    min_value: float | None = None
    max_value: float | None = None
    precision: int | None = Field(None, ge=0, le=10)
    unit: str | None = Field(None, max_length=50)
    related_model_id: str | None = None
    relationship_type: Literal["one", "many"] | None = None
    auto_set_on_create: bool = False
    auto_set_on_update: bool = False

    @model_validator(mode="after")
    def _bounds_and_links(self):
        if (
            self.min_value is not None
            and self.max_value is not None
            and self.min_value > self.max_value
        ):
            raise ValueError("min_value must not exceed max_value")
        if self.type == PropertyType.RELATIONSHIP and not self.related_model_id:
            raise ValueError("Relationship properties need related_model_id")
        return self


class ModelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    workflow_id: str | None = None
    properties: list[PropertyCreate] = []

    @model_validator(mode="after")
    def _unique_property_names(self):
        names = [p.name for p in self.properties]
        if len(set(names)) != len(names):
            raise ValueError("Property names must be unique within a model")
        return self


class PropertyOut(BaseModel):
    id: str
    name: str
    type: str
    required: bool
    is_unique: bool
    min_value: float | None = None
    max_value: float | None = None
    precision: int | None = None
    unit: str | None = None
    related_model_id: str | None = None
    relationship_type: str | None = None
    auto_set_on_create: bool = False
    auto_set_on_update: bool = False
    order_index: int

    model_config = {"from_attributes": True}


class ModelOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    workflow_id: str | None = None
    properties: list[PropertyOut] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
