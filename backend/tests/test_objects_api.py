"""Model and object API tests, plus run expiry and health checks."""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models.wizard import WizardRun
from app.services.wizard_runs import expire_stale_runs
from conftest import OWNER_ID, seed_model, seed_object, seed_wizard


@pytest.mark.api
@pytest.mark.asyncio
class TestModelApi:

    async def test_create_model_with_properties(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/models/", headers=auth_headers, json={
            "name": "Product",
            "properties": [
                {"name": "sku", "type": "string", "required": True, "is_unique": True},
                {"name": "price", "type": "number", "min_value": 0, "precision": 2},
            ],
        })
        assert resp.status_code == 201, resp.text
        model = resp.json()
        assert [p["name"] for p in model["properties"]] == ["sku", "price"]
        assert [p["order_index"] for p in model["properties"]] == [0, 1]

        resp = await client.get(f"/api/models/{model['id']}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json()["name"] == "Product"

    async def test_duplicate_model_name(self, client: AsyncClient, auth_headers):
        body = {"name": "Thing", "properties": []}
        await client.post("/api/models/", headers=auth_headers, json=body)
        resp = await client.post("/api/models/", headers=auth_headers, json=body)
        assert resp.status_code == 409

    async def test_unknown_workflow(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/models/", headers=auth_headers, json={
            "name": "Thing", "workflow_id": "missing",
        })
        assert resp.status_code == 404

    async def test_invalid_bounds_rejected(self, client: AsyncClient, auth_headers):
        resp = await client.post("/api/models/", headers=auth_headers, json={
            "name": "Thing",
            "properties": [{"name": "n", "type": "number", "min_value": 5, "max_value": 1}],
        })
        assert resp.status_code == 422

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer not-a-jwt"}])
    async def test_bearer_token_required(self, client: AsyncClient, headers):
        resp = await client.get("/api/models/", headers=headers)
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    async def test_read_only_cannot_create(self, client: AsyncClient, read_only_headers):
        resp = await client.post("/api/models/", headers=read_only_headers, json={"name": "X"})
        assert resp.status_code == 403


@pytest.mark.api
@pytest.mark.asyncio
class TestObjectApi:

    async def _product(self, db_session) -> str:
        model_id, _ = await seed_model(db_session, "Product", [
            {"name": "sku", "type": "string", "required": True, "is_unique": True},
            {"name": "price", "type": "number", "min_value": 0},
        ])
        return model_id

    async def test_create_and_get(self, client: AsyncClient, auth_headers, db_session):
        model_id = await self._product(db_session)

        resp = await client.post(
            f"/api/models/{model_id}/objects",
            headers=auth_headers,
            json={"attributes": {"sku": "A-1", "price": "9.5"}},
        )
        assert resp.status_code == 201, resp.text
        obj = resp.json()
        assert obj["attributes"] == {"sku": "A-1", "price": 9.5}
        assert obj["current_state_id"] is None

        resp = await client.get(f"/api/models/{model_id}/objects/{obj['id']}", headers=auth_headers)
        assert resp.status_code == 200

    async def test_missing_required_value(self, client: AsyncClient, auth_headers, db_session):
        model_id = await self._product(db_session)
        resp = await client.post(
            f"/api/models/{model_id}/objects",
            headers=auth_headers,
            json={"attributes": {"price": 1}},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["details"]["property_name"] == "sku"

    async def test_unique_value_conflicts(self, client: AsyncClient, auth_headers, db_session):
        model_id = await self._product(db_session)
        await seed_object(db_session, model_id, {"sku": "A-1"})

        resp = await client.post(
            f"/api/models/{model_id}/objects",
            headers=auth_headers,
            json={"attributes": {"sku": "A-1"}},
        )
        assert resp.status_code == 409

    async def test_unique_boolean_conflicts(self, client: AsyncClient, auth_headers, db_session):
        model_id, _ = await seed_model(db_session, "Banner", [
            {"name": "primary", "type": "boolean", "is_unique": True},
        ])
        holder = await seed_object(db_session, model_id, {"primary": True})

        resp = await client.post(
            f"/api/models/{model_id}/objects",
            headers=auth_headers,
            json={"attributes": {"primary": "on"}},
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["details"]["conflicting_object_id"] == holder

        resp = await client.post(
            f"/api/models/{model_id}/objects",
            headers=auth_headers,
            json={"attributes": {"primary": False}},
        )
        assert resp.status_code == 201

    async def test_unique_ignores_deleted_objects(
        self, client: AsyncClient, auth_headers, db_session
    ):
        model_id = await self._product(db_session)
        await seed_object(db_session, model_id, {"sku": "A-1"}, is_deleted=True)

        resp = await client.post(
            f"/api/models/{model_id}/objects",
            headers=auth_headers,
            json={"attributes": {"sku": "A-1"}},
        )
        assert resp.status_code == 201

    async def test_list_skips_deleted(self, client: AsyncClient, auth_headers, db_session):
        model_id = await self._product(db_session)
        live = await seed_object(db_session, model_id, {"sku": "A"})
        gone = await seed_object(db_session, model_id, {"sku": "B"}, is_deleted=True)

        resp = await client.get(f"/api/models/{model_id}/objects", headers=auth_headers)
        assert resp.status_code == 200
        page = resp.json()
        assert page["total"] == 1
        assert [o["id"] for o in page["items"]] == [live]

        resp = await client.get(f"/api/models/{model_id}/objects/{gone}", headers=auth_headers)
        assert resp.status_code == 404

    async def test_object_of_another_model_not_found(
        self, client: AsyncClient, auth_headers, db_session
    ):
        model_id = await self._product(db_session)
        other_id, _ = await seed_model(db_session, "Other", [])
        obj = await seed_object(db_session, other_id, {})

        resp = await client.get(f"/api/models/{model_id}/objects/{obj}", headers=auth_headers)
        assert resp.status_code == 404


@pytest.mark.wizard
@pytest.mark.asyncio
class TestRunExpiry:

    async def test_expire_stale_runs(self, db_session, session_factory):
        model_id, _ = await seed_model(db_session, "Note", [])
        wizard_id = await seed_wizard(db_session, "Notes", [{"model_id": model_id}])

        old = datetime.utcnow() - timedelta(days=30)
        stale = WizardRun(wizard_id=wizard_id, user_id=OWNER_ID, updated_at=old)
        fresh = WizardRun(wizard_id=wizard_id, user_id=OWNER_ID)
        done = WizardRun(wizard_id=wizard_id, user_id=OWNER_ID, status="COMPLETED", updated_at=old)
        db_session.add_all([stale, fresh, done])
        await db_session.commit()

        assert await expire_stale_runs(db_session, older_than_days=7) == 1
        await db_session.commit()

        async with session_factory() as session:
            rows = (await session.execute(select(WizardRun))).scalars().all()
            statuses = {run.id: run.status for run in rows}
        assert statuses == {
            stale.id: "ABANDONED",
            fresh.id: "IN_PROGRESS",
            done.id: "COMPLETED",
        }


@pytest.mark.api
@pytest.mark.asyncio
class TestHealth:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
