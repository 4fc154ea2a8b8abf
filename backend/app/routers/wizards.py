"""Wizard router: wizard definitions and resumable wizard runs.

Endpoints:
    GET    /api/wizards/                       List wizards
    POST   /api/wizards/                       Create a wizard definition
    GET    /api/wizards/runs                   Caller's in-progress runs
    GET    /api/wizards/{wizard_id}            Single wizard with ordered steps
    POST   /api/wizards/{wizard_id}/start      Start a run → {run_id}
    GET    /api/wizards/run/{run_id}           Run status, definition and step data
    POST   /api/wizards/run/{run_id}/step      Submit the next step
    DELETE /api/wizards/run/{run_id}           Abandon the run
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ActingIdentity, require_permission
from app.database import get_db
from app.middleware.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    ValidationFailedError,
)
from app.models.model import Model
from app.models.wizard import Wizard, WizardStep
from app.schemas.wizard import (
    OBJECT_ID_SOURCE,
    StepSubmitRequest,
    StepSubmitResponse,
    WizardCreate,
    WizardOut,
    WizardRunOut,
    WizardRunStarted,
    WizardRunSummary,
    WizardSummary,
)
from app.services import wizard_runs

router = APIRouter()


async def _validate_steps(db: AsyncSession, body: WizardCreate) -> None:
    """Check models exist and every property id / mapping points where it should."""
    model_ids = {step.model_id for step in body.steps}
    result = await db.execute(select(Model).where(Model.id.in_(model_ids)))
    models = {m.id: m for m in result.scalars().all()}

    for index, step in enumerate(body.steps):
        model = models.get(step.model_id)
        if model is None:
            raise ResourceNotFoundError("Model", step.model_id)
        own_props = {p.id for p in model.properties}

        stray = [pid for pid in step.property_ids if pid not in own_props]
        if stray:
            raise ValidationFailedError(
                f"Step {index + 1}: properties {', '.join(stray)} do not belong to "
                f'model "{model.name}"',
                details={"step_index": index, "property_ids": stray},
            )

        for mapping in step.property_mappings:
            if mapping.source_step_index >= index:
                raise ValidationFailedError(
                    f"Step {index + 1}: mappings may only read from earlier steps",
                    details={"step_index": index, "mapping": mapping.model_dump()},
                )
            if mapping.target_property_id not in own_props:
                raise ValidationFailedError(
                    f"Step {index + 1}: target property {mapping.target_property_id} "
                    f'is not a property of model "{model.name}"',
                    details={"step_index": index, "mapping": mapping.model_dump()},
                )
            if mapping.source_property_id == OBJECT_ID_SOURCE:
                continue
            source_model = models[body.steps[mapping.source_step_index].model_id]
            if mapping.source_property_id not in {p.id for p in source_model.properties}:
                raise ValidationFailedError(
                    f"Step {index + 1}: source property {mapping.source_property_id} "
                    f'is not a property of model "{source_model.name}"',
                    details={"step_index": index, "mapping": mapping.model_dump()},
                )


# ── Definitions ──────────────────────────────────────────────

@router.get("/", response_model=list[WizardSummary])
async def list_wizards(
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("wizards.read")),
):
    result = await db.execute(select(Wizard).order_by(Wizard.name))
    return [
        WizardSummary(id=w.id, name=w.name, description=w.description, step_count=len(w.steps))
        for w in result.scalars().all()
    ]


@router.post("/", response_model=WizardOut, status_code=status.HTTP_201_CREATED)
async def create_wizard(
    body: WizardCreate,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("wizards.manage")),
):
    existing = await db.execute(select(Wizard.id).where(Wizard.name == body.name))
    if existing.scalar_one_or_none():
        raise ConflictError(f'A wizard named "{body.name}" already exists')
    await _validate_steps(db, body)

    wizard = Wizard(name=body.name, description=body.description)
    db.add(wizard)
    await db.flush()

    for index, step in enumerate(body.steps):
        db.add(WizardStep(
            wizard_id=wizard.id,
            model_id=step.model_id,
            order_index=index,
            instructions=step.instructions,
            property_ids=list(step.property_ids),
            property_mappings=[m.model_dump() for m in step.property_mappings],
        ))
    await db.flush()
    await db.refresh(wizard)
    return wizard


# ── Runs (literal paths before /{wizard_id}) ─────────────────

@router.get("/runs", response_model=list[WizardRunSummary])
async def list_my_active_runs(
    db: AsyncSession = Depends(get_db),
    identity: ActingIdentity = Depends(require_permission("wizards.run")),
):
    """In-progress runs owned by the caller, most recently touched first."""
    return await wizard_runs.list_active_runs(db, identity)


@router.get("/run/{run_id}", response_model=WizardRunOut)
async def get_wizard_run(
    run_id: str,
    db: AsyncSession = Depends(get_db),
    identity: ActingIdentity = Depends(require_permission("wizards.run")),
):
    run = await wizard_runs.get_run(db, run_id, identity)
    return wizard_runs.run_view(run)


@router.post("/run/{run_id}/step", response_model=StepSubmitResponse)
async def submit_wizard_step(
    run_id: str,
    body: StepSubmitRequest,
    db: AsyncSession = Depends(get_db),
    identity: ActingIdentity = Depends(require_permission("wizards.run")),
):
    """Submit the next step. The final step creates every object of the run
    in one transaction; if anything fails, nothing is created and the run
    stays at its previous step."""
    return await wizard_runs.submit_step(db, run_id, identity, body)


@router.delete("/run/{run_id}", response_model=WizardRunOut)
async def abandon_wizard_run(
    run_id: str,
    db: AsyncSession = Depends(get_db),
    identity: ActingIdentity = Depends(require_permission("wizards.run")),
):
    run = await wizard_runs.abandon_run(db, run_id, identity)
    return wizard_runs.run_view(run)


# ── Single wizard ────────────────────────────────────────────

@router.get("/{wizard_id}", response_model=WizardOut)
async def get_wizard(
    wizard_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("wizards.read")),
):
    result = await db.execute(select(Wizard).where(Wizard.id == wizard_id))
    wizard = result.scalar_one_or_none()
    if not wizard:
        raise ResourceNotFoundError("Wizard", wizard_id)
    return wizard


@router.post(
    "/{wizard_id}/start",
    response_model=WizardRunStarted,
    status_code=status.HTTP_201_CREATED,
)
async def start_wizard_run(
    wizard_id: str,
    db: AsyncSession = Depends(get_db),
    identity: ActingIdentity = Depends(require_permission("wizards.run")),
):
    run = await wizard_runs.start_run(db, wizard_id, identity)
    return WizardRunStarted(run_id=run.id)
