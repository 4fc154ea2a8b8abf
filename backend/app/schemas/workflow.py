"""Pydantic schemas for workflow definitions and transition checks."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


# ── Create / update ──────────────────────────────────────────

class WorkflowStateIn(BaseModel):
    """One state of a workflow definition.

    ``id`` keeps an existing state on update (objects in that state stay
    valid); states without a known id are created fresh. Successors are
    referenced by state name so new states can point at each other.
    """
    id: str | None = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    color: str | None = Field(None, max_length=20)
    is_initial: bool = False
    successor_names: list[str] = []


class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    states: list[WorkflowStateIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _consistent_states(self):
        names = [s.name.strip() for s in self.states]
        if any(not n for n in names):
            raise ValueError("State names must not be blank")
        if len(set(names)) != len(names):
            raise ValueError("State names must be unique within a workflow")
        initial = [s for s in self.states if s.is_initial]
        if len(initial) != 1:
            raise ValueError("A workflow must have exactly one initial state")
        known = set(names)
        for state in self.states:
            unknown = [n for n in state.successor_names if n not in known]
            if unknown:
                raise ValueError(
                    f'State "{state.name}" lists unknown successor(s): {", ".join(unknown)}'
                )
        return self


class WorkflowUpdate(WorkflowCreate):
    pass


# ── Read ─────────────────────────────────────────────────────

class WorkflowStateOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    color: str | None = None
    is_initial: bool
    order_index: int
    successor_state_ids: list[str] = []


class WorkflowOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    initial_state_id: str | None = None
    states: list[WorkflowStateOut] = []
    created_at: datetime
    updated_at: datetime


class WorkflowSummary(BaseModel):
    id: str
    name: str
    description: str | None = None
    state_count: int


# ── Transition check ─────────────────────────────────────────

class TransitionCheckRequest(BaseModel):
    from_state_id: str | None = None
    to_state_id: str = Field(..., min_length=1)


class TransitionCheckResponse(BaseModel):
    legal: bool
    reason: str | None = None
    error_code: str | None = None
