"""Workflow engine: transition legality and initial-state lookup.

The rules:
  - An object with no current state may only enter the workflow's
    initial state.
  - An object in state S may only move to a direct successor of S.
  - Anything else is illegal: unknown current state (orphaned), unknown
    target state, or a target more than one hop away.

WorkflowGraph is an immutable snapshot of one workflow definition. The
check functions are pure; only the loaders touch the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.middleware.exceptions import (
    IllegalTransitionError,
    NoWorkflowError,
    ResourceNotFoundError,
    UnknownStateError,
)
from app.models.model import Model
from app.models.workflow import Workflow

logger = logging.getLogger(__name__)


# ── Snapshot types ───────────────────────────────────────────

@dataclass(frozen=True)
class StateNode:
    id: str
    name: str
    is_initial: bool
    order_index: int


@dataclass(frozen=True)
class WorkflowGraph:
    id: str
    name: str
    states: dict[str, StateNode]
    successors: dict[str, frozenset[str]]

    @classmethod
    def from_workflow(cls, workflow: Workflow) -> WorkflowGraph:
        """Build a snapshot from a Workflow row with states/transitions loaded."""
        states = {
            s.id: StateNode(
                id=s.id,
                name=s.name,
                is_initial=bool(s.is_initial),
                order_index=s.order_index or 0,
            )
            for s in workflow.states
        }
        edges: dict[str, set[str]] = {state_id: set() for state_id in states}
        for t in workflow.transitions:
            edges.setdefault(t.from_state_id, set()).add(t.to_state_id)
        return cls(
            id=workflow.id,
            name=workflow.name,
            states=states,
            successors={k: frozenset(v) for k, v in edges.items()},
        )

    def has_state(self, state_id: str | None) -> bool:
        return state_id is not None and state_id in self.states

    def state_label(self, state_id: str | None) -> str:
        if state_id is None:
            return "None"
        node = self.states.get(state_id)
        return node.name if node else state_id


# ── Pure checks ──────────────────────────────────────────────

def initial_state_for(graph: WorkflowGraph) -> str | None:
    """Return the id of the state that seeds new objects, or None.

    More than one initial state is a configuration error; the lowest
    order_index wins so the choice is at least deterministic.
    """
    initial = [s for s in graph.states.values() if s.is_initial]
    if not initial:
        return None
    initial.sort(key=lambda s: (s.order_index, s.name, s.id))
    if len(initial) > 1:
        logger.warning(
            "Workflow %s (%s) has %d initial states; using %s",
            graph.name,
            graph.id,
            len(initial),
            initial[0].name,
            extra={"workflow_id": graph.id, "initial_state_ids": [s.id for s in initial]},
        )
    return initial[0].id


def is_legal_transition(
    graph: WorkflowGraph,
    from_state_id: str | None,
    to_state_id: str,
) -> bool:
    if not graph.has_state(to_state_id):
        return False
    if from_state_id is None:
        return to_state_id == initial_state_for(graph)
    if not graph.has_state(from_state_id):
        return False
    return to_state_id in graph.successors.get(from_state_id, frozenset())


def is_terminal(graph: WorkflowGraph, state_id: str) -> bool:
    return graph.has_state(state_id) and not graph.successors.get(state_id)


def check_transition(
    graph: WorkflowGraph,
    from_state_id: str | None,
    to_state_id: str,
) -> None:
    """Raise if moving from_state_id → to_state_id is not allowed.

    Raises:
        UnknownStateError       target, or non-null current state, not in the workflow
        IllegalTransitionError  both known but the edge does not exist
    """
    details = {
        "workflow_id": graph.id,
        "current_state_id": from_state_id,
        "target_state_id": to_state_id,
    }
    if not graph.has_state(to_state_id):
        raise UnknownStateError(
            f'Target state ID "{to_state_id}" does not exist in workflow "{graph.name}"',
            details=details,
        )
    if from_state_id is not None and not graph.has_state(from_state_id):
        raise UnknownStateError(
            f'Current state ID "{from_state_id}" not found in workflow "{graph.name}". '
            "Cannot validate transition.",
            details=details,
        )
    if is_legal_transition(graph, from_state_id, to_state_id):
        return

    target = graph.state_label(to_state_id)
    if from_state_id is None:
        message = (
            f'Cannot move to non-initial state "{target}" as object has no current state'
        )
    else:
        message = (
            f'Invalid transition from "{graph.state_label(from_state_id)}" to "{target}"'
        )
    raise IllegalTransitionError(message, details=details)


# ── Loaders ──────────────────────────────────────────────────

async def load_workflow_graph(db: AsyncSession, workflow_id: str) -> WorkflowGraph:
    result = await db.execute(select(Workflow).where(Workflow.id == workflow_id))
    workflow = result.scalar_one_or_none()
    if not workflow:
        raise ResourceNotFoundError("Workflow", workflow_id)
    return WorkflowGraph.from_workflow(workflow)


async def graph_for_model(db: AsyncSession, model: Model) -> WorkflowGraph:
    if not model.workflow_id:
        raise NoWorkflowError(model.name)
    return await load_workflow_graph(db, model.workflow_id)


async def optional_graph_for_model(db: AsyncSession, model: Model) -> WorkflowGraph | None:
    """Like graph_for_model, but None when the model has no usable workflow."""
    if not model.workflow_id:
        return None
    result = await db.execute(select(Workflow).where(Workflow.id == model.workflow_id))
    workflow = result.scalar_one_or_none()
    if not workflow:
        logger.warning(
            "Workflow %s for model %s not found; objects get no initial state",
            model.workflow_id,
            model.id,
        )
        return None
    return WorkflowGraph.from_workflow(workflow)


async def initial_state_for_model(db: AsyncSession, model: Model) -> str | None:
    graph = await optional_graph_for_model(db, model)
    if graph is None:
        return None
    state_id = initial_state_for(graph)
    if state_id is None:
        logger.warning(
            "Workflow %s for model %s has no initial state; object gets none",
            graph.id,
            model.id,
        )
    return state_id
