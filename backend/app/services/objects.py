"""Data Object service: lookups, creation, uniqueness and single transitions.

Shared by the objects router, the batch validator and the wizard commit:
  - get_model / get_live_object   resolve rows or raise ResourceNotFoundError
  - find_unique_conflict          probe for another live object holding a value
  - create_data_object            coerce, check uniqueness, seed initial state
  - transition_object             move one object along its workflow
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ActingIdentity
from app.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.data_object import DataObject
from app.models.model import Model, Property
from app.services.values import (
    BOOLEAN_TYPES,
    NUMERIC_TYPES,
    TEXT_TYPES,
    UNIQUE_PROBE_TYPES,
    PropertyValueError,
    is_blank,
    prepare_attributes,
)
from app.services.workflow_engine import (
    check_transition,
    graph_for_model,
    initial_state_for_model,
)
from app.utils.activity import log_activity

logger = logging.getLogger(__name__)


# ── Lookups ──────────────────────────────────────────────────

async def get_model(db: AsyncSession, model_id: str) -> Model:
    result = await db.execute(select(Model).where(Model.id == model_id))
    model = result.scalar_one_or_none()
    if not model:
        raise ResourceNotFoundError("Model", model_id)
    return model


async def get_live_object(
    db: AsyncSession,
    object_id: str,
    model_id: str | None = None,
    *,
    for_update: bool = False,
) -> DataObject:
    """Fetch a non-deleted object, optionally restricted to one model."""
    stmt = select(DataObject).where(
        DataObject.id == object_id,
        DataObject.is_deleted == False,  # noqa: E712
    )
    if model_id is not None:
        stmt = stmt.where(DataObject.model_id == model_id)
    if for_update:
        stmt = stmt.with_for_update()
    obj = (await db.execute(stmt)).scalar_one_or_none()
    if not obj:
        raise ResourceNotFoundError("Data object", object_id)
    return obj


# ── Uniqueness ───────────────────────────────────────────────

async def find_unique_conflict(
    db: AsyncSession,
    model_id: str,
    prop: Property,
    value: Any,
    exclude_ids: Iterable[str] = (),
) -> str | None:
    """Return the id of another live object of the model holding ``value``.

    Only text, numeric and boolean properties can be probed; blank values
    never conflict.
    """
    if is_blank(value) or prop.type not in UNIQUE_PROBE_TYPES:
        return None

    stmt = select(DataObject.id).where(
        DataObject.model_id == model_id,
        DataObject.is_deleted == False,  # noqa: E712
    )
    if prop.type in TEXT_TYPES:
        stmt = stmt.where(DataObject.attributes[prop.name].as_string() == str(value))
    elif prop.type in NUMERIC_TYPES:
        stmt = stmt.where(DataObject.attributes[prop.name].as_float() == float(value))
    elif prop.type in BOOLEAN_TYPES:
        stmt = stmt.where(DataObject.attributes[prop.name].as_boolean() == bool(value))

    excluded = list(exclude_ids)
    if excluded:
        stmt = stmt.where(DataObject.id.not_in(excluded))

    return (await db.execute(stmt.limit(1))).scalar_one_or_none()


async def _ensure_unique(db: AsyncSession, model: Model, attributes: dict) -> None:
    for prop in model.properties:
        if not prop.is_unique:
            continue
        conflicting_id = await find_unique_conflict(
            db, model.id, prop, attributes.get(prop.name)
        )
        if conflicting_id:
            raise ConflictError(
                f"Value '{attributes[prop.name]}' for unique property "
                f"'{prop.name}' already exists in another object",
                details={
                    "model_id": model.id,
                    "property_name": prop.name,
                    "conflicting_object_id": conflicting_id,
                },
            )


# ── Create ───────────────────────────────────────────────────

async def create_data_object(
    db: AsyncSession,
    model: Model,
    raw_attributes: dict,
    identity: ActingIdentity,
    *,
    enforce_required: bool = True,
    source: str | None = None,
) -> DataObject:
    """Create one object: coerce attributes, check uniqueness, seed state.

    The row is flushed so its id is usable by the caller; the commit belongs
    to the request's unit of work.
    """
    try:
        attributes = prepare_attributes(
            model, raw_attributes, enforce_required=enforce_required
        )
    except PropertyValueError as exc:
        raise ValidationFailedError(
            str(exc), details={"model_id": model.id, "property_name": exc.property_name}
        ) from exc

    await _ensure_unique(db, model, attributes)

    obj = DataObject(
        model_id=model.id,
        attributes=attributes,
        current_state_id=await initial_state_for_model(db, model),
        owner_id=identity.user_id,
    )
    db.add(obj)
    await db.flush()

    details = {"model_id": model.id, "initial_state_id": obj.current_state_id}
    if source:
        details["source"] = source
    await log_activity(
        db, identity,
        action="created",
        entity_type="data_object",
        entity_id=obj.id,
        summary=f"Created {model.name} object",
        details=details,
    )
    return obj


# ── Single transition ────────────────────────────────────────

async def transition_object(
    db: AsyncSession,
    model: Model,
    object_id: str,
    target_state_id: str,
    identity: ActingIdentity,
) -> DataObject:
    """Move one object to ``target_state_id`` if the workflow allows it."""
    graph = await graph_for_model(db, model)
    obj = await get_live_object(db, object_id, model.id, for_update=True)

    previous_state_id = obj.current_state_id
    check_transition(graph, previous_state_id, target_state_id)

    obj.current_state_id = target_state_id
    await db.flush()

    await log_activity(
        db, identity,
        action="state_changed",
        entity_type="data_object",
        entity_id=obj.id,
        summary=(
            f"Moved {model.name} object from {graph.state_label(previous_state_id)} "
            f"to {graph.state_label(target_state_id)}"
        ),
        details={"from_state_id": previous_state_id, "to_state_id": target_state_id},
    )
    logger.info(
        "Object %s moved %s → %s",
        obj.id,
        previous_state_id,
        target_state_id,
        extra={"model_id": model.id, "user_id": identity.user_id},
    )
    return obj
