"""Wizard run engine.

A run walks a wizard's steps strictly in order. Intermediate submissions
are only buffered in run.step_data; nothing else is written until the
final step, which runs the commit protocol:

  1. Resolve lookups: every lookup step's target object is fetched and its
     attributes become that step's form_data.
  2. Materialize steps in definition order. A lookup step contributes its
     existing object id. A create step starts from its submitted form_data,
     applies the property mappings that target it, and persists a new
     object (initial workflow state, owner = acting user).
  3. Mark the run COMPLETED with the fully resolved step_data.

All of it happens in the request's transaction: any error propagates, the
session rolls back, no object from the run survives and the run stays
IN_PROGRESS at its previous step.

Run lifecycle:  IN_PROGRESS → COMPLETED | ABANDONED   (both terminal)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ActingIdentity
from app.config import settings
from app.middleware.exceptions import (
    AlreadyTerminalError,
    InvalidStepOrderError,
    PermissionDeniedError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.model import Model, Property
from app.models.wizard import Wizard, WizardRun, WizardRunStatus, WizardStep
from app.schemas.wizard import (
    OBJECT_ID_SOURCE,
    CreateStepData,
    LookupStepData,
    StepSubmitRequest,
    StepSubmitResponse,
    WizardOut,
    WizardRunOut,
    WizardRunSummary,
    decode_step_data,
    encode_step_data,
)
from app.services.objects import create_data_object, get_live_object, get_model
from app.utils.activity import log_activity

logger = logging.getLogger(__name__)

RUN_OVERRIDE_PERMISSION = "wizard_runs.manage"

StepData = dict[int, CreateStepData | LookupStepData]


class MappingError(Exception):
    """A property mapping that cannot be applied."""


# ── Loading and authorization ────────────────────────────────

async def _load_run(db: AsyncSession, run_id: str, *, for_update: bool = False) -> WizardRun:
    stmt = select(WizardRun).where(WizardRun.id == run_id)
    if for_update:
        stmt = stmt.with_for_update()
    run = (await db.execute(stmt)).scalar_one_or_none()
    if not run:
        raise ResourceNotFoundError("Wizard run", run_id)
    return run


def _authorize(run: WizardRun, identity: ActingIdentity) -> None:
    if run.user_id != identity.user_id and not identity.can(RUN_OVERRIDE_PERMISSION):
        raise PermissionDeniedError("You are not allowed to act on this wizard run")


def _ensure_in_progress(run: WizardRun) -> None:
    if run.status != WizardRunStatus.IN_PROGRESS.value:
        raise AlreadyTerminalError(run.id, run.status)


async def _advance(
    db: AsyncSession,
    run: WizardRun,
    previous_index: int,
    submitted_index: int,
    **values: Any,
) -> None:
    """Compare-and-set the run's progress.

    The UPDATE only matches while the run is still IN_PROGRESS at
    ``previous_index``; a concurrent submission that got there first
    leaves zero matched rows.
    """
    result = await db.execute(
        update(WizardRun)
        .where(
            WizardRun.id == run.id,
            WizardRun.status == WizardRunStatus.IN_PROGRESS.value,
            WizardRun.current_step_index == previous_index,
        )
        .values(updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "Wizard run %s lost a concurrent update at step %d",
            run.id,
            submitted_index,
        )
        raise InvalidStepOrderError(previous_index + 1, submitted_index)
    await db.refresh(run)


# ── Start / fetch / list ─────────────────────────────────────

async def start_run(db: AsyncSession, wizard_id: str, identity: ActingIdentity) -> WizardRun:
    wizard = (
        await db.execute(select(Wizard).where(Wizard.id == wizard_id))
    ).scalar_one_or_none()
    if not wizard:
        raise ResourceNotFoundError("Wizard", wizard_id)
    if not wizard.steps:
        raise ValidationFailedError(f'Wizard "{wizard.name}" has no steps')

    run = WizardRun(
        wizard_id=wizard.id,
        user_id=identity.user_id,
        status=WizardRunStatus.IN_PROGRESS.value,
        current_step_index=-1,
        step_data={},
    )
    db.add(run)
    await db.flush()

    logger.info(
        "Started wizard run %s for wizard %s",
        run.id,
        wizard.id,
        extra={"user_id": identity.user_id},
    )
    return run


async def get_run(db: AsyncSession, run_id: str, identity: ActingIdentity) -> WizardRun:
    run = await _load_run(db, run_id)
    _authorize(run, identity)
    return run


def run_view(run: WizardRun) -> WizardRunOut:
    return WizardRunOut(
        id=run.id,
        wizard_id=run.wizard_id,
        user_id=run.user_id,
        status=run.status,
        current_step_index=run.current_step_index,
        step_data=decode_step_data(run.step_data),
        wizard=WizardOut.model_validate(run.wizard),
        created_at=run.created_at,
        updated_at=run.updated_at,
        completed_at=run.completed_at,
    )


async def list_active_runs(db: AsyncSession, identity: ActingIdentity) -> list[WizardRunSummary]:
    result = await db.execute(
        select(WizardRun)
        .where(
            WizardRun.user_id == identity.user_id,
            WizardRun.status == WizardRunStatus.IN_PROGRESS.value,
        )
        .order_by(WizardRun.updated_at.desc())
    )
    return [
        WizardRunSummary(
            id=run.id,
            wizard_id=run.wizard_id,
            wizard_name=run.wizard.name,
            current_step_index=run.current_step_index,
            total_steps=len(run.wizard.steps),
            updated_at=run.updated_at,
        )
        for run in result.scalars().all()
    ]


# ── Abandon ──────────────────────────────────────────────────

async def abandon_run(db: AsyncSession, run_id: str, identity: ActingIdentity) -> WizardRun:
    """Mark an in-progress run ABANDONED. Intermediate steps created nothing,
    so there is nothing to undo."""
    run = await _load_run(db, run_id, for_update=True)
    _authorize(run, identity)
    _ensure_in_progress(run)

    run.status = WizardRunStatus.ABANDONED.value
    await db.flush()

    await log_activity(
        db, identity,
        action="wizard_abandoned",
        entity_type="wizard_run",
        entity_id=run.id,
        summary=f"Abandoned wizard run at step {run.current_step_index + 1}",
        details={"wizard_id": run.wizard_id},
    )
    logger.info("Abandoned wizard run %s", run.id, extra={"user_id": identity.user_id})
    return run


# ── Submit ───────────────────────────────────────────────────

async def submit_step(
    db: AsyncSession,
    run_id: str,
    identity: ActingIdentity,
    body: StepSubmitRequest,
) -> StepSubmitResponse:
    """Accept the next step of a run; commit the whole run on the last one.

    Raises, in this order of precedence:
        ResourceNotFoundError   no such run
        PermissionDeniedError   not the owner and no override permission
        AlreadyTerminalError    run completed or abandoned
        InvalidStepOrderError   step_index != current_step_index + 1
        ValidationFailedError   step_index beyond the wizard's steps
    plus anything the commit protocol raises on the final step.
    """
    run = await _load_run(db, run_id, for_update=True)
    _authorize(run, identity)
    _ensure_in_progress(run)

    previous_index = run.current_step_index
    if body.step_index != previous_index + 1:
        raise InvalidStepOrderError(previous_index + 1, body.step_index)

    steps = list(run.wizard.steps)
    if body.step_index >= len(steps):
        raise ValidationFailedError(
            f"Step {body.step_index + 1} does not exist; wizard has {len(steps)} step(s)",
            details={"step_index": body.step_index, "step_count": len(steps)},
        )

    step_data = decode_step_data(run.step_data)
    step_data[body.step_index] = body.to_submission()
    is_final = body.step_index == len(steps) - 1

    if not is_final:
        await _advance(
            db, run, previous_index, body.step_index,
            current_step_index=body.step_index,
            step_data=encode_step_data(step_data),
        )
        return StepSubmitResponse(
            accepted=True,
            is_final_step=False,
            run_id=run.id,
            status=run.status,
            current_step_index=run.current_step_index,
        )

    created_ids = await _commit_run(db, run, steps, step_data, identity)

    await _advance(
        db, run, previous_index, body.step_index,
        current_step_index=body.step_index,
        step_data=encode_step_data(step_data),
        status=WizardRunStatus.COMPLETED.value,
        completed_at=datetime.utcnow(),
    )
    await log_activity(
        db, identity,
        action="wizard_completed",
        entity_type="wizard_run",
        entity_id=run.id,
        summary=f"Completed wizard run creating {len(created_ids)} object(s)",
        details={"wizard_id": run.wizard_id, "created_object_ids": created_ids},
    )
    logger.info(
        "Completed wizard run %s (%d object(s) created)",
        run.id,
        len(created_ids),
        extra={"user_id": identity.user_id, "wizard_id": run.wizard_id},
    )
    return StepSubmitResponse(
        accepted=True,
        is_final_step=True,
        run_id=run.id,
        status=run.status,
        current_step_index=run.current_step_index,
        created_object_ids=created_ids,
    )


# ── Commit protocol ──────────────────────────────────────────

async def _load_mapping_properties(
    db: AsyncSession, steps: list[WizardStep]
) -> dict[str, Property]:
    ids: set[str] = set()
    for step in steps:
        for mapping in step.property_mappings or []:
            if not isinstance(mapping, dict):
                continue
            for key in ("source_property_id", "target_property_id"):
                value = mapping.get(key)
                if isinstance(value, str) and value != OBJECT_ID_SOURCE:
                    ids.add(value)
    if not ids:
        return {}
    result = await db.execute(select(Property).where(Property.id.in_(ids)))
    return {prop.id: prop for prop in result.scalars().all()}


def _resolve_mapping(
    mapping: Any,
    target_index: int,
    target_model: Model,
    steps: list[WizardStep],
    step_data: StepData,
    result_ids: dict[int, str],
    properties: dict[str, Property],
) -> tuple[str, Any] | None:
    """Return (target property name, value) for one mapping.

    None means the source step holds no value for the property. Raises
    MappingError when the mapping itself cannot be applied.
    """
    if not isinstance(mapping, dict):
        raise MappingError("mapping is not an object")

    source_index = mapping.get("source_step_index")
    if isinstance(source_index, bool) or not isinstance(source_index, int):
        raise MappingError(f"invalid source step index {source_index!r}")
    if source_index < 0 or source_index >= len(steps):
        raise MappingError(f"source step index {source_index} is out of range")
    if source_index >= target_index:
        raise MappingError(
            f"source step {source_index + 1} does not precede target step {target_index + 1}"
        )

    target = properties.get(mapping.get("target_property_id"))
    if target is None or target.model_id != target_model.id:
        raise MappingError(
            f"target property {mapping.get('target_property_id')!r} "
            f"not found in model {target_model.name!r}"
        )

    source_property_id = mapping.get("source_property_id")
    if source_property_id == OBJECT_ID_SOURCE:
        return target.name, result_ids[source_index]

    source = properties.get(source_property_id)
    if source is None or source.model_id != steps[source_index].model_id:
        raise MappingError(
            f"source property {source_property_id!r} not found in the model of "
            f"step {source_index + 1}"
        )
    source_form = step_data[source_index].form_data or {}
    if source.name not in source_form:
        return None
    return target.name, source_form[source.name]


async def _commit_run(
    db: AsyncSession,
    run: WizardRun,
    steps: list[WizardStep],
    step_data: StepData,
    identity: ActingIdentity,
) -> list[str]:
    """Materialize every step of the run; return the created object ids."""
    missing = [i for i in range(len(steps)) if i not in step_data]
    if missing:
        raise ValidationFailedError(
            f"Wizard run {run.id} has no data for step(s) "
            + ", ".join(str(i + 1) for i in missing),
            details={"missing_step_indexes": missing},
        )

    # 1. Resolve lookups
    for index, step in enumerate(steps):
        submission = step_data[index]
        if isinstance(submission, LookupStepData):
            target = await get_live_object(db, submission.object_id, step.model_id)
            submission.form_data = dict(target.attributes or {})

    # 2. Materialize in order
    properties = await _load_mapping_properties(db, steps)
    result_ids: dict[int, str] = {}
    created_ids: list[str] = []

    for index, step in enumerate(steps):
        submission = step_data[index]
        if isinstance(submission, LookupStepData):
            result_ids[index] = submission.object_id
            continue

        model = await get_model(db, step.model_id)
        form = dict(submission.form_data)
        for mapping in step.property_mappings or []:
            try:
                resolved = _resolve_mapping(
                    mapping, index, model, steps, step_data, result_ids, properties
                )
            except MappingError as exc:
                if settings.wizard_strict_mappings:
                    raise ValidationFailedError(
                        f"Step {index + 1}: cannot apply property mapping: {exc}",
                        details={"step_index": index, "mapping": mapping},
                    ) from exc
                logger.warning(
                    "Skipping property mapping for step %d of run %s: %s",
                    index,
                    run.id,
                    exc,
                    extra={"wizard_id": run.wizard_id, "mapping": mapping},
                )
                continue
            if resolved is not None:
                name, value = resolved
                form[name] = value

        obj = await create_data_object(
            db, model, form, identity,
            enforce_required=False,
            source=f"wizard_run:{run.id}",
        )
        submission.form_data = dict(obj.attributes)
        submission.object_id = obj.id
        result_ids[index] = obj.id
        created_ids.append(obj.id)

    return created_ids


# ── Maintenance ──────────────────────────────────────────────

async def expire_stale_runs(db: AsyncSession, older_than_days: int | None = None) -> int:
    """Mark IN_PROGRESS runs untouched for too long as ABANDONED."""
    days = older_than_days if older_than_days is not None else settings.wizard_run_stale_days
    cutoff = datetime.utcnow() - timedelta(days=days)
    result = await db.execute(
        update(WizardRun)
        .where(
            WizardRun.status == WizardRunStatus.IN_PROGRESS.value,
            WizardRun.updated_at < cutoff,
        )
        .values(status=WizardRunStatus.ABANDONED.value, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    logger.info("Expired %d stale wizard run(s) older than %d days", result.rowcount, days)
    return result.rowcount
