"""Data Object router: create, browse, transition and batch-update objects.

Endpoints:
    POST  /api/models/{model_id}/objects                      Create one object
    GET   /api/models/{model_id}/objects                      List objects (paginated)
    POST  /api/models/{model_id}/objects/batch-update         Batch property / state update
    GET   /api/models/{model_id}/objects/{object_id}          Single object
    PATCH /api/models/{model_id}/objects/{object_id}/state    Workflow transition
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import ActingIdentity, require_permission
from app.database import get_db
from app.models.data_object import DataObject
from app.schemas.common import PaginatedResponse
from app.schemas.data_object import (
    BatchUpdateRequest,
    BatchUpdateResult,
    DataObjectCreate,
    DataObjectOut,
    StateTransitionRequest,
)
from app.services.batch_update import apply_batch_update
from app.services.objects import (
    create_data_object,
    get_live_object,
    get_model,
    transition_object,
)

router = APIRouter()

_BATCH_STATUS_CODES = {
    "applied": status.HTTP_200_OK,
    "partial": status.HTTP_207_MULTI_STATUS,
    "rejected": status.HTTP_400_BAD_REQUEST,
}


# ── Create ───────────────────────────────────────────────────

@router.post(
    "/{model_id}/objects",
    response_model=DataObjectOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_object(
    model_id: str,
    body: DataObjectCreate,
    db: AsyncSession = Depends(get_db),
    identity: ActingIdentity = Depends(require_permission("objects.write")),
):
    """Create an object; it enters its model's workflow at the initial state."""
    model = await get_model(db, model_id)
    return await create_data_object(db, model, body.attributes, identity)


# ── List ─────────────────────────────────────────────────────

@router.get("/{model_id}/objects", response_model=PaginatedResponse[DataObjectOut])
async def list_objects(
    model_id: str,
    state_id: str | None = Query(None, description="Only objects in this workflow state"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("objects.read")),
):
    model = await get_model(db, model_id)
    base = select(DataObject).where(
        DataObject.model_id == model.id,
        DataObject.is_deleted == False,  # noqa: E712
    )
    if state_id:
        base = base.where(DataObject.current_state_id == state_id)

    total = (
        await db.execute(select(func.count()).select_from(base.subquery()))
    ).scalar() or 0
    result = await db.execute(
        base.order_by(DataObject.created_at.desc(), DataObject.id).limit(limit).offset(offset)
    )
    return PaginatedResponse[DataObjectOut](
        items=[DataObjectOut.model_validate(obj) for obj in result.scalars().all()],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── Batch update ─────────────────────────────────────────────
# Declared before /{object_id} routes so the literal path wins.

@router.post(
    "/{model_id}/objects/batch-update",
    response_model=BatchUpdateResult,
    responses={
        207: {"model": BatchUpdateResult, "description": "Some objects failed; nothing applied"},
        400: {"model": BatchUpdateResult, "description": "All objects failed; nothing applied"},
    },
)
async def batch_update_objects(
    model_id: str,
    body: BatchUpdateRequest,
    db: AsyncSession = Depends(get_db),
    identity: ActingIdentity = Depends(require_permission("objects.write")),
):
    """Apply one property or workflow-state change to many objects.

    Either every object is updated or none is. The response lists every
    per-object error and how many objects would have succeeded.
    """
    outcome = await apply_batch_update(db, model_id, body, identity)
    return JSONResponse(
        status_code=_BATCH_STATUS_CODES[outcome.status],
        content=outcome.model_dump(mode="json"),
    )


# ── Single object ────────────────────────────────────────────

@router.get("/{model_id}/objects/{object_id}", response_model=DataObjectOut)
async def get_object(
    model_id: str,
    object_id: str,
    db: AsyncSession = Depends(get_db),
    _identity: ActingIdentity = Depends(require_permission("objects.read")),
):
    return await get_live_object(db, object_id, model_id)


@router.patch("/{model_id}/objects/{object_id}/state", response_model=DataObjectOut)
async def transition_object_state(
    model_id: str,
    object_id: str,
    body: StateTransitionRequest,
    db: AsyncSession = Depends(get_db),
    identity: ActingIdentity = Depends(require_permission("objects.write")),
):
    """Move an object to a new workflow state along a legal transition."""
    model = await get_model(db, model_id)
    return await transition_object(db, model, object_id, body.target_state_id, identity)
