"""Pytest configuration and fixtures for Codex Structure tests.

Each test gets its own SQLite database file (aiosqlite) built from the ORM
metadata. The app's get_db dependency is overridden with a session factory
bound to that file, with the same commit-on-success / rollback-on-error
behaviour, so tests can check atomicity from a separate session.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.auth.deps import ActingIdentity
from app.auth.jwt import create_access_token
from app.auth.permissions import ALL_PERMISSIONS
from app.database import Base, get_db
from app.main import app
from app.models.data_object import DataObject
from app.models.model import Model, Property
from app.models.wizard import Wizard, WizardStep
from app.models.workflow import Workflow, WorkflowState, WorkflowStateTransition

OWNER_ID = "user-owner"
OTHER_ID = "user-other"
ADMIN_ID = "user-admin"

# Everything except the override for other users' wizard runs
MEMBER_PERMISSIONS = sorted(ALL_PERMISSIONS - {"wizard_runs.manage"})


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a throwaway SQLite database with every table."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'codex.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and direct service calls. Commit explicitly."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database dependency."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Identities ───────────────────────────────────────────────────

def _headers(user_id: str, permissions: list[str]) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, permissions)}"}


@pytest.fixture
def owner() -> ActingIdentity:
    return ActingIdentity(user_id=OWNER_ID, permissions=frozenset(MEMBER_PERMISSIONS))


@pytest.fixture
def auth_headers() -> dict:
    """Headers for the owning member."""
    return _headers(OWNER_ID, MEMBER_PERMISSIONS)


@pytest.fixture
def other_headers() -> dict:
    """Headers for a second member without the run override."""
    return _headers(OTHER_ID, MEMBER_PERMISSIONS)


@pytest.fixture
def admin_headers() -> dict:
    return _headers(ADMIN_ID, ["*"])


@pytest.fixture
def read_only_headers() -> dict:
    return _headers(OTHER_ID, ["models.read", "objects.read", "workflows.read", "wizards.read"])


# ── Seed helpers ─────────────────────────────────────────────────

async def seed_workflow(
    session: AsyncSession,
    name: str,
    states: list[tuple[str, bool]],
    edges: list[tuple[str, str]],
) -> dict[str, str]:
    """Create a workflow; return {"__id__": workflow id, state name: state id}."""
    workflow = Workflow(name=name)
    session.add(workflow)
    await session.flush()

    ids = {"__id__": workflow.id}
    for index, (state_name, is_initial) in enumerate(states):
        state = WorkflowState(
            workflow_id=workflow.id, name=state_name, is_initial=is_initial, order_index=index
        )
        session.add(state)
        await session.flush()
        ids[state_name] = state.id

    for src, dst in edges:
        session.add(WorkflowStateTransition(
            workflow_id=workflow.id, from_state_id=ids[src], to_state_id=ids[dst]
        ))
    await session.commit()
    return ids


async def seed_model(
    session: AsyncSession,
    name: str,
    properties: list[dict],
    workflow_id: str | None = None,
) -> tuple[str, dict[str, str]]:
    """Create a model; return (model id, {property name: property id})."""
    model = Model(name=name, workflow_id=workflow_id)
    session.add(model)
    await session.flush()

    prop_ids = {}
    for index, fields in enumerate(properties):
        prop = Property(model_id=model.id, order_index=index, **fields)
        session.add(prop)
        await session.flush()
        prop_ids[prop.name] = prop.id
    await session.commit()
    return model.id, prop_ids


async def seed_object(
    session: AsyncSession,
    model_id: str,
    attributes: dict,
    state_id: str | None = None,
    is_deleted: bool = False,
) -> str:
    obj = DataObject(
        model_id=model_id,
        attributes=attributes,
        current_state_id=state_id,
        owner_id=OWNER_ID,
        is_deleted=is_deleted,
    )
    session.add(obj)
    await session.commit()
    return obj.id


async def seed_wizard(
    session: AsyncSession,
    name: str,
    steps: list[dict],
) -> str:
    """Create a wizard; each step dict holds model_id and optional property_mappings."""
    wizard = Wizard(name=name)
    session.add(wizard)
    await session.flush()
    for index, step in enumerate(steps):
        session.add(WizardStep(
            wizard_id=wizard.id,
            model_id=step["model_id"],
            order_index=index,
            property_ids=step.get("property_ids", []),
            property_mappings=step.get("property_mappings", []),
        ))
    await session.commit()
    return wizard.id


async def fetch_objects(session_factory, model_id: str) -> list[DataObject]:
    """Read a model's objects through a fresh session."""
    async with session_factory() as session:
        result = await session.execute(
            select(DataObject).where(DataObject.model_id == model_id).order_by(DataObject.created_at)
        )
        return list(result.scalars().all())


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "workflow: Workflow engine tests")
    config.addinivalue_line("markers", "wizard: Wizard run tests")
    config.addinivalue_line("markers", "batch: Batch mutation tests")
