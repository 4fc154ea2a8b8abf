"""Model router: the minimal schema-store surface.

Endpoints:
    GET  /api/models/             List models
    POST /api/models/             Create a model with its properties
    GET  /api/models/{model_id}   Single model with properties
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ActingIdentity, require_permission
from app.database import get_db
from app.middleware.exceptions import ConflictError, ResourceNotFoundError
from app.models.model import Model, Property
from app.models.workflow import Workflow
from app.schemas.model import ModelCreate, ModelOut
from app.services.objects import get_model

router = APIRouter()


@router.get("/", response_model=list[ModelOut])
async def list_models(
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("models.read")),
):
    result = await db.execute(select(Model).order_by(Model.name))
    return result.scalars().all()


@router.post("/", response_model=ModelOut, status_code=status.HTTP_201_CREATED)
async def create_model(
    body: ModelCreate,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("models.manage")),
):
    existing = await db.execute(select(Model.id).where(Model.name == body.name))
    if existing.scalar_one_or_none():
        raise ConflictError(f'A model named "{body.name}" already exists')

    if body.workflow_id:
        workflow = await db.execute(select(Workflow.id).where(Workflow.id == body.workflow_id))
        if not workflow.scalar_one_or_none():
            raise ResourceNotFoundError("Workflow", body.workflow_id)

    model = Model(
        name=body.name,
        description=body.description,
        workflow_id=body.workflow_id,
    )
    db.add(model)
    await db.flush()

    for index, prop in enumerate(body.properties):
        db.add(Property(
            model_id=model.id,
            order_index=index,
            **prop.model_dump(exclude={"type"}),
            type=prop.type.value,
        ))
    await db.flush()
    await db.refresh(model)
    return model


@router.get("/{model_id}", response_model=ModelOut)
async def get_model_detail(
    model_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("models.read")),
):
    return await get_model(db, model_id)
