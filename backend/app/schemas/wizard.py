"""Pydantic schemas for wizard definitions and wizard runs.

Run progress is stored as step_data, a map of step index to a tagged
StepSubmission. The JSON column keys the map by stringified index;
decode_step_data / encode_step_data convert at the storage boundary.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, model_validator

# Mapping source that stands for the source step's object id
OBJECT_ID_SOURCE = "__OBJECT_ID__"


# ── Definitions ──────────────────────────────────────────────

class PropertyMapping(BaseModel):
    source_step_index: int = Field(..., ge=0)
    source_property_id: str = Field(..., min_length=1)
    target_property_id: str = Field(..., min_length=1)


class WizardStepCreate(BaseModel):
    model_id: str
    instructions: str | None = None
    property_ids: list[str] = []
    property_mappings: list[PropertyMapping] = []


class WizardCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    steps: list[WizardStepCreate] = Field(..., min_length=1)


class WizardStepOut(BaseModel):
    id: str
    model_id: str
    order_index: int
    instructions: str | None = None
    property_ids: list[str] = []
    property_mappings: list[dict[str, Any]] = []

    model_config = {"from_attributes": True}


class WizardOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    steps: list[WizardStepOut] = []
    created_at: datetime

    model_config = {"from_attributes": True}


class WizardSummary(BaseModel):
    id: str
    name: str
    description: str | None = None
    step_count: int


# ── Step submissions ─────────────────────────────────────────

class CreateStepData(BaseModel):
    step_type: Literal["create"] = "create"
    form_data: dict[str, Any] = {}
    # Filled in with the new object's id once the run completes
    object_id: str | None = None


class LookupStepData(BaseModel):
    step_type: Literal["lookup"] = "lookup"
    object_id: str = Field(..., min_length=1)
    # Filled in with the looked-up object's attributes at commit
    form_data: dict[str, Any] | None = None


StepSubmission = Annotated[
    Union[CreateStepData, LookupStepData], Field(discriminator="step_type")
]

_step_data_adapter = TypeAdapter(dict[int, StepSubmission])


def decode_step_data(raw: dict | None) -> dict[int, CreateStepData | LookupStepData]:
    return _step_data_adapter.validate_python(raw or {})


def encode_step_data(step_data: dict[int, CreateStepData | LookupStepData]) -> dict[str, dict]:
    return {
        str(index): submission.model_dump(mode="json", exclude_none=True)
        for index, submission in sorted(step_data.items())
    }


class StepSubmitRequest(BaseModel):
    """Payload for POST /api/wizards/run/{run_id}/step."""
    # Negative and skipped indexes are rejected by the run engine as out of order
    step_index: int
    step_type: Literal["create", "lookup"]
    form_data: dict[str, Any] | None = None
    lookup_object_id: str | None = None

    @model_validator(mode="after")
    def _lookup_needs_target(self):
        if self.step_type == "lookup" and not self.lookup_object_id:
            raise ValueError("lookup_object_id is required for lookup steps")
        return self

    def to_submission(self) -> CreateStepData | LookupStepData:
        if self.step_type == "lookup":
            return LookupStepData(object_id=self.lookup_object_id)
        return CreateStepData(form_data=dict(self.form_data or {}))


# ── Runs ─────────────────────────────────────────────────────

class WizardRunStarted(BaseModel):
    run_id: str


class StepSubmitResponse(BaseModel):
    accepted: bool
    is_final_step: bool
    run_id: str
    status: str
    current_step_index: int
    created_object_ids: list[str] = []


class WizardRunOut(BaseModel):
    id: str
    wizard_id: str
    user_id: str
    status: str
    current_step_index: int
    step_data: dict[int, StepSubmission] = {}
    wizard: WizardOut
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class WizardRunSummary(BaseModel):
    id: str
    wizard_id: str
    wizard_name: str
    current_step_index: int
    total_steps: int
    updated_at: datetime
