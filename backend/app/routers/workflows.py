"""Workflow router: workflow definitions and transition checks.

Endpoints:
    GET    /api/workflows/                                List workflows
    POST   /api/workflows/                                Create a workflow
    GET    /api/workflows/{workflow_id}                   Single workflow with states
    PUT    /api/workflows/{workflow_id}                   Replace states and transitions
    DELETE /api/workflows/{workflow_id}                   Delete (only when unused)
    POST   /api/workflows/{workflow_id}/check-transition  Is from → to legal?
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ActingIdentity, require_permission
from app.database import get_db
from app.middleware.exceptions import (
    ConflictError,
    IllegalTransitionError,
    ResourceNotFoundError,
    UnknownStateError,
)
from app.models.model import Model
from app.models.workflow import Workflow, WorkflowState, WorkflowStateTransition
from app.schemas.workflow import (
    TransitionCheckRequest,
    TransitionCheckResponse,
    WorkflowCreate,
    WorkflowOut,
    WorkflowStateOut,
    WorkflowSummary,
    WorkflowUpdate,
)
from app.services.workflow_engine import WorkflowGraph, check_transition, initial_state_for

logger = logging.getLogger(__name__)

router = APIRouter()


def _workflow_out(workflow: Workflow) -> WorkflowOut:
    graph = WorkflowGraph.from_workflow(workflow)
    return WorkflowOut(
        id=workflow.id,
        name=workflow.name,
        description=workflow.description,
        initial_state_id=initial_state_for(graph),
        states=[
            WorkflowStateOut(
                id=s.id,
                name=s.name,
                description=s.description,
                color=s.color,
                is_initial=s.is_initial,
                order_index=s.order_index,
                successor_state_ids=sorted(graph.successors.get(s.id, ())),
            )
            for s in workflow.states
        ],
        created_at=workflow.created_at,
        updated_at=workflow.updated_at,
    )


async def _get_workflow(db: AsyncSession, workflow_id: str) -> Workflow:
    result = await db.execute(select(Workflow).where(Workflow.id == workflow_id))
    workflow = result.scalar_one_or_none()
    if not workflow:
        raise ResourceNotFoundError("Workflow", workflow_id)
    return workflow


async def _ensure_name_free(db: AsyncSession, name: str, exclude_id: str | None = None) -> None:
    stmt = select(Workflow.id).where(Workflow.name == name)
    if exclude_id:
        stmt = stmt.where(Workflow.id != exclude_id)
    if (await db.execute(stmt)).scalar_one_or_none():
        raise ConflictError(f'A workflow named "{name}" already exists')


async def _write_transitions(
    db: AsyncSession,
    workflow_id: str,
    body: WorkflowCreate,
    ids_by_name: dict[str, str],
) -> None:
    for state_in in body.states:
        from_id = ids_by_name[state_in.name.strip()]
        for successor in dict.fromkeys(state_in.successor_names):
            db.add(WorkflowStateTransition(
                workflow_id=workflow_id,
                from_state_id=from_id,
                to_state_id=ids_by_name[successor.strip()],
            ))
    await db.flush()


# ── List / read ──────────────────────────────────────────────

@router.get("/", response_model=list[WorkflowSummary])
async def list_workflows(
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("workflows.read")),
):
    result = await db.execute(select(Workflow).order_by(Workflow.name))
    return [
        WorkflowSummary(
            id=w.id, name=w.name, description=w.description, state_count=len(w.states)
        )
        for w in result.scalars().all()
    ]


@router.get("/{workflow_id}", response_model=WorkflowOut)
async def get_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("workflows.read")),
):
    return _workflow_out(await _get_workflow(db, workflow_id))


# ── Create ───────────────────────────────────────────────────

@router.post("/", response_model=WorkflowOut, status_code=status.HTTP_201_CREATED)
async def create_workflow(
    body: WorkflowCreate,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("workflows.manage")),
):
    await _ensure_name_free(db, body.name)

    workflow = Workflow(name=body.name, description=body.description)
    db.add(workflow)
    await db.flush()

    ids_by_name: dict[str, str] = {}
    for index, state_in in enumerate(body.states):
        state = WorkflowState(
            workflow_id=workflow.id,
            name=state_in.name.strip(),
            description=state_in.description,
            color=state_in.color,
            is_initial=state_in.is_initial,
            order_index=index,
        )
        db.add(state)
        await db.flush()
        ids_by_name[state.name] = state.id

    await _write_transitions(db, workflow.id, body, ids_by_name)
    await db.refresh(workflow)
    return _workflow_out(workflow)


# ── Update ───────────────────────────────────────────────────

@router.put("/{workflow_id}", response_model=WorkflowOut)
async def update_workflow(
    workflow_id: str,
    body: WorkflowUpdate,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("workflows.manage")),
):
    """Replace the workflow's states and transitions.

    States whose id is sent back are updated in place, so objects sitting
    in them keep a valid state. Dropped states are deleted; objects left
    in them are reported as orphaned by the engine.
    """
    workflow = await _get_workflow(db, workflow_id)
    await _ensure_name_free(db, body.name, exclude_id=workflow.id)

    # Transitions reference states, so they go first
    for transition in list(workflow.transitions):
        await db.delete(transition)
    await db.flush()

    existing = {s.id: s for s in workflow.states}
    kept_ids = {s.id for s in body.states if s.id in existing}
    for state_id, state in existing.items():
        if state_id not in kept_ids:
            await db.delete(state)
    await db.flush()

    ids_by_name: dict[str, str] = {}
    for index, state_in in enumerate(body.states):
        state = existing.get(state_in.id) if state_in.id in kept_ids else None
        if state is None:
            state = WorkflowState(workflow_id=workflow.id)
            db.add(state)
        state.name = state_in.name.strip()
        state.description = state_in.description
        state.color = state_in.color
        state.is_initial = state_in.is_initial
        state.order_index = index
        await db.flush()
        ids_by_name[state.name] = state.id

    workflow.name = body.name
    workflow.description = body.description
    await _write_transitions(db, workflow.id, body, ids_by_name)
    await db.refresh(workflow)

    logger.info(
        "Workflow %s updated: %d state(s), %d removed",
        workflow.id,
        len(body.states),
        len(existing) - len(kept_ids),
    )
    return _workflow_out(workflow)


# ── Delete ───────────────────────────────────────────────────

@router.delete("/{workflow_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_workflow(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("workflows.manage")),
):
    workflow = await _get_workflow(db, workflow_id)

    in_use = (
        await db.execute(select(func.count(Model.id)).where(Model.workflow_id == workflow.id))
    ).scalar() or 0
    if in_use:
        raise ConflictError(
            f'Workflow "{workflow.name}" is assigned to {in_use} model(s) and cannot be deleted',
            details={"workflow_id": workflow.id, "model_count": in_use},
        )

    # States and transitions go with it through the relationship cascade
    await db.delete(workflow)
    await db.flush()


# ── Transition check ─────────────────────────────────────────

@router.post("/{workflow_id}/check-transition", response_model=TransitionCheckResponse)
async def check_workflow_transition(
    workflow_id: str,
    body: TransitionCheckRequest,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("workflows.read")),
):
    """Report whether from_state_id → to_state_id is legal. Changes nothing."""
    graph = WorkflowGraph.from_workflow(await _get_workflow(db, workflow_id))
    try:
        check_transition(graph, body.from_state_id, body.to_state_id)
    except (UnknownStateError, IllegalTransitionError) as exc:
        return TransitionCheckResponse(legal=False, reason=exc.message, error_code=exc.error_code)
    return TransitionCheckResponse(legal=True)
