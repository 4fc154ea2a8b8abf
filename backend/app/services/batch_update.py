"""Batch mutation validator.

Applies one property change (or one workflow-state change) to many Data
Objects of a model, all or nothing:

  1. Resolve the property or workflow once; reject the request up front
     when it cannot apply to this model at all.
  2. Validate every target object, collecting per-object errors without
     stopping early.
  3. If any object failed, roll back and report. Otherwise apply every
     staged change and flush it into the request's transaction.

The caller receives the itemized errors and how many objects would have
succeeded either way.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ActingIdentity
from app.middleware.exceptions import (
    IllegalTransitionError,
    StoreFailureError,
    UnknownStateError,
    ValidationFailedError,
)
from app.models.data_object import DataObject
from app.models.model import Model, Property
from app.schemas.data_object import BatchItemError, BatchUpdateRequest, BatchUpdateResult
from app.services.objects import find_unique_conflict, get_model
from app.services.values import (
    BATCH_UPDATABLE_TYPES,
    UNIQUE_PROBE_TYPES,
    PropertyValueError,
    coerce_value,
    is_blank,
    stamp_updated_dates,
)
from app.services.workflow_engine import WorkflowGraph, check_transition, graph_for_model
from app.utils.activity import log_activity

logger = logging.getLogger(__name__)


async def _load_targets(
    db: AsyncSession, model_id: str, object_ids: list[str]
) -> dict[str, DataObject]:
    """Lock and load the live objects of the model among ``object_ids``."""
    result = await db.execute(
        select(DataObject)
        .where(
            DataObject.id.in_(object_ids),
            DataObject.model_id == model_id,
            DataObject.is_deleted == False,  # noqa: E712
        )
        .with_for_update()
    )
    return {obj.id: obj for obj in result.scalars().all()}


def _not_found(object_id: str, model: Model) -> BatchItemError:
    return BatchItemError(
        object_id=object_id,
        code="NOT_FOUND",
        message=f'Object "{object_id}" not found in model "{model.name}"',
    )


# ── Workflow-state batches ───────────────────────────────────

def _validate_state_batch(
    graph: WorkflowGraph,
    model: Model,
    object_ids: list[str],
    targets: dict[str, DataObject],
    target_state_id: str,
) -> tuple[list[DataObject], list[BatchItemError]]:
    staged: list[DataObject] = []
    errors: list[BatchItemError] = []
    for object_id in object_ids:
        obj = targets.get(object_id)
        if obj is None:
            errors.append(_not_found(object_id, model))
            continue
        try:
            check_transition(graph, obj.current_state_id, target_state_id)
        except (UnknownStateError, IllegalTransitionError) as exc:
            errors.append(BatchItemError(
                object_id=object_id,
                code=exc.error_code,
                message=exc.message,
                current_state_id=obj.current_state_id,
                target_state_id=target_state_id,
            ))
            continue
        staged.append(obj)
    return staged, errors


# ── Plain-property batches ───────────────────────────────────

def _resolve_property(model: Model, body: BatchUpdateRequest) -> Property:
    prop = model.property_by_name(body.property_name)
    if prop is None:
        raise ValidationFailedError(
            f'Property "{body.property_name}" not found in model "{model.name}"',
            details={"model_id": model.id, "property_name": body.property_name},
        )
    if prop.type != body.property_type:
        raise ValidationFailedError(
            f'Property "{prop.name}" is of type "{prop.type}", '
            f'not "{body.property_type}"',
            details={"property_name": prop.name, "declared_type": prop.type},
        )
    if prop.type not in BATCH_UPDATABLE_TYPES:
        raise ValidationFailedError(
            f'Batch updates are not supported for properties of type "{prop.type}"',
            details={"property_name": prop.name, "declared_type": prop.type},
        )
    return prop


async def _validate_property_batch(
    db: AsyncSession,
    model: Model,
    prop: Property,
    object_ids: list[str],
    targets: dict[str, DataObject],
    raw_value: Any,
) -> tuple[list[DataObject], list[BatchItemError], Any]:
    staged: list[DataObject] = []
    errors: list[BatchItemError] = []

    try:
        value = coerce_value(prop, raw_value)
        coerce_error = None
    except PropertyValueError as exc:
        value = None
        coerce_error = str(exc)

    checks_unique = (
        coerce_error is None
        and prop.is_unique
        and prop.type in UNIQUE_PROBE_TYPES
        and not is_blank(value)
    )
    external_holder = None
    if checks_unique:
        external_holder = await find_unique_conflict(
            db, model.id, prop, value, exclude_ids=object_ids
        )

    first_holder: str | None = None
    for object_id in object_ids:
        obj = targets.get(object_id)
        if obj is None:
            errors.append(_not_found(object_id, model))
            continue
        if coerce_error is not None:
            errors.append(BatchItemError(
                object_id=object_id,
                code="VALIDATION_ERROR",
                message=coerce_error,
                property_name=prop.name,
            ))
            continue
        if checks_unique:
            conflicting = external_holder or first_holder
            if conflicting:
                errors.append(BatchItemError(
                    object_id=object_id,
                    code="CONFLICT",
                    message=(
                        f"Value '{value}' for unique property '{prop.name}' "
                        f"is already held by object {conflicting}"
                    ),
                    property_name=prop.name,
                    conflicting_object_id=conflicting,
                ))
                continue
            first_holder = object_id
        staged.append(obj)
    return staged, errors, value


# ── Entry point ──────────────────────────────────────────────

def _summarize(requested: int, staged: int, errors: list[BatchItemError]) -> BatchUpdateResult:
    if not errors:
        return BatchUpdateResult(
            status="applied",
            applied=True,
            requested_count=requested,
            would_have_succeeded=staged,
            updated_count=staged,
            message=f"Successfully updated {staged} object(s)",
        )
    if staged:
        return BatchUpdateResult(
            status="partial",
            applied=False,
            requested_count=requested,
            would_have_succeeded=staged,
            updated_count=0,
            errors=errors,
            message=(
                f"{len(errors)} of {requested} object(s) failed validation; "
                "no changes were applied"
            ),
        )
    return BatchUpdateResult(
        status="rejected",
        applied=False,
        requested_count=requested,
        would_have_succeeded=0,
        updated_count=0,
        errors=errors,
        message=f"All {requested} object(s) failed validation; no changes were applied",
    )


async def apply_batch_update(
    db: AsyncSession,
    model_id: str,
    body: BatchUpdateRequest,
    identity: ActingIdentity,
) -> BatchUpdateResult:
    """Validate every target, then apply all changes or none.

    Raises (before any object is examined):
        ResourceNotFoundError   unknown model
        NoWorkflowError         state batch on a model without workflow
        UnknownStateError       target state not in the model's workflow
        ValidationFailedError   unknown property, type mismatch, unsupported type
        StoreFailureError       the apply step failed in the store
    """
    model = await get_model(db, model_id)
    object_ids = body.unique_object_ids()

    if body.is_workflow_state_update:
        graph = await graph_for_model(db, model)
        target_state_id = body.new_value
        if not graph.has_state(target_state_id):
            raise UnknownStateError(
                f'Target state ID "{target_state_id}" does not exist in workflow "{graph.name}"',
                details={"workflow_id": graph.id, "target_state_id": target_state_id},
            )
        targets = await _load_targets(db, model.id, object_ids)
        staged, errors = _validate_state_batch(
            graph, model, object_ids, targets, target_state_id
        )
        prop, value = None, target_state_id
    else:
        graph = None
        prop = _resolve_property(model, body)
        targets = await _load_targets(db, model.id, object_ids)
        staged, errors, value = await _validate_property_batch(
            db, model, prop, object_ids, targets, body.new_value
        )

    outcome = _summarize(len(object_ids), len(staged), errors)
    if errors:
        logger.info(
            "Batch update on model %s discarded: %d error(s), %d would have succeeded",
            model.id,
            len(errors),
            len(staged),
            extra={"user_id": identity.user_id, "property_name": body.property_name},
        )
        await db.rollback()
        return outcome

    try:
        for obj in staged:
            if prop is None:
                old_value = obj.current_state_id
                obj.current_state_id = value
                action, summary = "state_changed", (
                    f"Moved {model.name} object from {graph.state_label(old_value)} "
                    f"to {graph.state_label(value)}"
                )
                details = {"from_state_id": old_value, "to_state_id": value, "batch": True}
            else:
                old_value = obj.attributes.get(prop.name)
                obj.attributes = stamp_updated_dates(
                    model, {**obj.attributes, prop.name: value}
                )
                action, summary = "updated", f"Set {prop.name} on {model.name} object"
                details = {"property": prop.name, "old": old_value, "new": value, "batch": True}
            await log_activity(
                db, identity,
                action=action,
                entity_type="data_object",
                entity_id=obj.id,
                summary=summary,
                details=details,
            )
        await db.flush()
    except SQLAlchemyError as exc:
        logger.error(
            "Batch update on model %s failed while applying: %s",
            model_id,
            exc,
            extra={"user_id": identity.user_id},
        )
        await db.rollback()
        raise StoreFailureError("Batch update could not be applied; no changes were made") from exc

    logger.info(
        "Batch update on model %s applied to %d object(s)",
        model.id,
        len(staged),
        extra={"user_id": identity.user_id, "property_name": body.property_name},
    )
    return outcome
