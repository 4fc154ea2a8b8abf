"""Pydantic schemas for Data Objects, single transitions and batch updates."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

# Pseudo-property that turns a batch update into a workflow-state batch
WORKFLOW_STATE_PROPERTY = "__workflowStateUpdate__"
WORKFLOW_STATE_TYPE = "workflow_state"


# ── Objects ──────────────────────────────────────────────────

class DataObjectCreate(BaseModel):
    attributes: dict[str, Any] = {}


class DataObjectOut(BaseModel):
    id: str
    model_id: str
    attributes: dict[str, Any]
    current_state_id: str | None = None
    owner_id: str | None = None
    is_deleted: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class StateTransitionRequest(BaseModel):
    target_state_id: str = Field(..., min_length=1)


# ── Batch update ─────────────────────────────────────────────

class BatchUpdateRequest(BaseModel):
    """Payload for POST /api/models/{model_id}/objects/batch-update.

    For a workflow-state batch send
    ``property_name="__workflowStateUpdate__"``,
    ``property_type="workflow_state"`` and the target state id as
    ``new_value``.
    """
    object_ids: list[str] = Field(..., min_length=1)
    property_name: str = Field(..., min_length=1)
    property_type: str = Field(..., min_length=1)
    new_value: Any = None

    @model_validator(mode="after")
    def _workflow_batch_shape(self):
        is_state_name = self.property_name == WORKFLOW_STATE_PROPERTY
        is_state_type = self.property_type == WORKFLOW_STATE_TYPE
        if is_state_name != is_state_type:
            raise ValueError(
                f'Workflow state updates require property_name "{WORKFLOW_STATE_PROPERTY}" '
                f'together with property_type "{WORKFLOW_STATE_TYPE}"'
            )
        if is_state_name and (not isinstance(self.new_value, str) or not self.new_value):
            raise ValueError("new_value must be the target state id for workflow state updates")
        return self

    @property
    def is_workflow_state_update(self) -> bool:
        return self.property_name == WORKFLOW_STATE_PROPERTY

    def unique_object_ids(self) -> list[str]:
        """object_ids with duplicates removed, first occurrence kept."""
        return list(dict.fromkeys(self.object_ids))


class BatchItemError(BaseModel):
    object_id: str
    code: Literal[
        "NOT_FOUND", "ILLEGAL_TRANSITION", "UNKNOWN_STATE", "VALIDATION_ERROR", "CONFLICT"
    ]
    message: str
    property_name: str | None = None
    current_state_id: str | None = None
    target_state_id: str | None = None
    conflicting_object_id: str | None = None


class BatchUpdateResult(BaseModel):
    """Outcome of a batch update.

    status:
        applied   every object passed validation; all changes written
        partial   some objects would have succeeded; nothing written
        rejected  no object would have succeeded; nothing written
    """
    status: Literal["applied", "partial", "rejected"]
    applied: bool
    requested_count: int
    would_have_succeeded: int
    updated_count: int
    errors: list[BatchItemError] = []
    message: str
