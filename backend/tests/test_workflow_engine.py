"""Workflow engine tests: pure transition rules and the HTTP surface."""

import warnings

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.exc import SAWarning

from app.middleware.exceptions import IllegalTransitionError, UnknownStateError
from app.models.workflow import Workflow, WorkflowState, WorkflowStateTransition
from app.services.workflow_engine import (
    StateNode,
    WorkflowGraph,
    check_transition,
    initial_state_for,
    is_legal_transition,
    is_terminal,
)
from conftest import seed_model, seed_object, seed_workflow


def _graph(states: list[tuple[str, bool, int]], edges: list[tuple[str, str]]) -> WorkflowGraph:
    successors: dict[str, set[str]] = {name: set() for name, _, _ in states}
    for src, dst in edges:
        successors[src].add(dst)
    return WorkflowGraph(
        id="wf-order",
        name="Order",
        states={
            name: StateNode(id=name, name=name, is_initial=initial, order_index=order)
            for name, initial, order in states
        },
        successors={k: frozenset(v) for k, v in successors.items()},
    )


ORDER = _graph(
    [("new", True, 0), ("paid", False, 1), ("shipped", False, 2)],
    [("new", "paid"), ("paid", "shipped")],
)


@pytest.mark.unit
@pytest.mark.workflow
class TestTransitionRules:

    def test_initial_state(self):
        assert initial_state_for(ORDER) == "new"

    def test_no_initial_state(self):
        graph = _graph([("a", False, 0), ("b", False, 1)], [("a", "b")])
        assert initial_state_for(graph) is None

    def test_multiple_initial_states_pick_lowest_order(self, caplog):
        graph = _graph([("late", True, 5), ("early", True, 1), ("other", False, 0)], [])
        assert initial_state_for(graph) == "early"
        assert "initial states" in caplog.text

    @pytest.mark.parametrize("target,legal", [("new", True), ("paid", False), ("shipped", False)])
    def test_from_null_only_to_initial(self, target, legal):
        assert is_legal_transition(ORDER, None, target) is legal

    @pytest.mark.parametrize(
        "source,target,legal",
        [
            ("new", "paid", True),
            ("paid", "shipped", True),
            ("new", "shipped", False),
            ("shipped", "new", False),
            ("paid", "paid", False),
        ],
    )
    def test_only_direct_successors(self, source, target, legal):
        assert is_legal_transition(ORDER, source, target) is legal

    def test_unknown_ids_are_illegal(self):
        assert is_legal_transition(ORDER, "ghost", "paid") is False
        assert is_legal_transition(ORDER, "new", "ghost") is False

    def test_terminal_state(self):
        assert is_terminal(ORDER, "shipped")
        assert not is_terminal(ORDER, "new")

    def test_order_scenario(self):
        """null → Paid rejected, null → New ok, New → Shipped rejected, New → Paid ok."""
        with pytest.raises(IllegalTransitionError, match="non-initial"):
            check_transition(ORDER, None, "paid")
        check_transition(ORDER, None, "new")
        with pytest.raises(IllegalTransitionError, match="Invalid transition"):
            check_transition(ORDER, "new", "shipped")
        check_transition(ORDER, "new", "paid")

    def test_unknown_target_raises_unknown_state(self):
        with pytest.raises(UnknownStateError) as exc_info:
            check_transition(ORDER, "new", "ghost")
        assert exc_info.value.details["target_state_id"] == "ghost"

    def test_orphaned_current_state_raises_unknown_state(self):
        with pytest.raises(UnknownStateError, match="Current state"):
            check_transition(ORDER, "deleted-state", "paid")

    def test_graph_from_orm_rows(self):
        workflow = Workflow(id="wf-1", name="Ticket")
        workflow.states = [
            WorkflowState(id="s-open", name="Open", is_initial=True, order_index=0),
            WorkflowState(id="s-done", name="Done", is_initial=False, order_index=1),
        ]
        workflow.transitions = [
            WorkflowStateTransition(from_state_id="s-open", to_state_id="s-done"),
        ]
        graph = WorkflowGraph.from_workflow(workflow)
        assert initial_state_for(graph) == "s-open"
        assert graph.successors["s-open"] == frozenset({"s-done"})
        assert graph.successors["s-done"] == frozenset()


@pytest.mark.api
@pytest.mark.workflow
@pytest.mark.asyncio
class TestWorkflowApi:

    async def _order_workflow(self, client: AsyncClient, headers: dict) -> dict:
        resp = await client.post(
            "/api/workflows/",
            headers=headers,
            json={
                "name": "Order",
                "states": [
                    {"name": "New", "is_initial": True, "successor_names": ["Paid"]},
                    {"name": "Paid", "successor_names": ["Shipped"]},
                    {"name": "Shipped"},
                ],
            },
        )
        assert resp.status_code == 201, resp.text
        return resp.json()

    async def test_create_and_fetch(self, client: AsyncClient, auth_headers):
        created = await self._order_workflow(client, auth_headers)
        states = {s["name"]: s for s in created["states"]}
        assert created["initial_state_id"] == states["New"]["id"]
        assert states["New"]["successor_state_ids"] == [states["Paid"]["id"]]
        assert states["Shipped"]["successor_state_ids"] == []

        resp = await client.get(f"/api/workflows/{created['id']}", headers=auth_headers)
        assert resp.status_code == 200
        assert [s["name"] for s in resp.json()["states"]] == ["New", "Paid", "Shipped"]

    async def test_create_requires_exactly_one_initial_state(self, client: AsyncClient, auth_headers):
        resp = await client.post(
            "/api/workflows/",
            headers=auth_headers,
            json={"name": "Broken", "states": [{"name": "A"}, {"name": "B"}]},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_duplicate_name_conflicts(self, client: AsyncClient, auth_headers):
        await self._order_workflow(client, auth_headers)
        resp = await client.post(
            "/api/workflows/",
            headers=auth_headers,
            json={"name": "Order", "states": [{"name": "Only", "is_initial": True}]},
        )
        assert resp.status_code == 409

    async def test_check_transition(self, client: AsyncClient, auth_headers):
        created = await self._order_workflow(client, auth_headers)
        ids = {s["name"]: s["id"] for s in created["states"]}
        url = f"/api/workflows/{created['id']}/check-transition"

        resp = await client.post(url, headers=auth_headers, json={"to_state_id": ids["Paid"]})
        assert resp.status_code == 200
        assert resp.json()["legal"] is False
        assert resp.json()["error_code"] == "ILLEGAL_TRANSITION"
        resp = await client.post(
            url, headers=auth_headers,
            json={"from_state_id": ids["New"], "to_state_id": ids["Paid"]},
        )
        assert resp.json()["legal"] is True

    async def test_update_keeps_state_ids(self, client: AsyncClient, auth_headers):
        created = await self._order_workflow(client, auth_headers)
        ids = {s["name"]: s["id"] for s in created["states"]}

        resp = await client.put(
            f"/api/workflows/{created['id']}",
            headers=auth_headers,
            json={
                "name": "Order",
                "states": [
                    {"id": ids["New"], "name": "New", "is_initial": True,
                     "successor_names": ["Paid", "Cancelled"]},
                    {"id": ids["Paid"], "name": "Paid", "successor_names": ["Cancelled"]},
                    {"name": "Cancelled"},
                ],
            },
        )
        assert resp.status_code == 200, resp.text
        states = {s["name"]: s for s in resp.json()["states"]}
        assert set(states) == {"New", "Paid", "Cancelled"}
        assert states["New"]["id"] == ids["New"]
        assert set(states["New"]["successor_state_ids"]) == {
            ids["Paid"], states["Cancelled"]["id"]
        }

    async def test_delete_in_use_workflow_conflicts(
        self, client: AsyncClient, auth_headers, db_session
    ):
        ids = await seed_workflow(db_session, "Used", [("Open", True)], [])
        await seed_model(db_session, "Ticket", [], workflow_id=ids["__id__"])

        resp = await client.delete(f"/api/workflows/{ids['__id__']}", headers=auth_headers)
        assert resp.status_code == 409

    async def test_delete_unused_workflow(
        self, client: AsyncClient, auth_headers, session_factory
    ):
        created = await self._order_workflow(client, auth_headers)
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            resp = await client.delete(f"/api/workflows/{created['id']}", headers=auth_headers)
        assert resp.status_code == 204
        assert not [w for w in caught if issubclass(w.category, SAWarning)]

        async with session_factory() as session:
            for table in (WorkflowState, WorkflowStateTransition):
                rows = (await session.execute(select(table))).scalars().all()
                assert rows == []
        resp = await client.get(f"/api/workflows/{created['id']}", headers=auth_headers)
        assert resp.status_code == 404


@pytest.mark.api
@pytest.mark.workflow
@pytest.mark.asyncio
class TestObjectTransitions:

    async def test_order_scenario_over_http(self, client: AsyncClient, auth_headers, db_session):
        ids = await seed_workflow(
            db_session, "Order",
            [("New", True), ("Paid", False), ("Shipped", False)],
            [("New", "Paid"), ("Paid", "Shipped")],
        )
        model_id, _ = await seed_model(
            db_session, "Order", [{"name": "ref", "type": "string"}], workflow_id=ids["__id__"]
        )
        object_id = await seed_object(db_session, model_id, {"ref": "O-1"})
        url = f"/api/models/{model_id}/objects/{object_id}/state"

        resp = await client.patch(url, headers=auth_headers, json={"target_state_id": ids["Paid"]})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "ILLEGAL_TRANSITION"

        resp = await client.patch(url, headers=auth_headers, json={"target_state_id": ids["New"]})
        assert resp.status_code == 200
        assert resp.json()["current_state_id"] == ids["New"]

        resp = await client.patch(
            url, headers=auth_headers, json={"target_state_id": ids["Shipped"]}
        )
        assert resp.status_code == 422
        details = resp.json()["error"]["details"]
        assert details["current_state_id"] == ids["New"]
        assert details["target_state_id"] == ids["Shipped"]

        resp = await client.patch(url, headers=auth_headers, json={"target_state_id": ids["Paid"]})
        assert resp.status_code == 200
        assert resp.json()["current_state_id"] == ids["Paid"]

    async def test_model_without_workflow(self, client: AsyncClient, auth_headers, db_session):
        model_id, _ = await seed_model(db_session, "Note", [{"name": "text", "type": "string"}])
        object_id = await seed_object(db_session, model_id, {"text": "hi"})

        resp = await client.patch(
            f"/api/models/{model_id}/objects/{object_id}/state",
            headers=auth_headers,
            json={"target_state_id": "anything"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "NO_WORKFLOW"

    async def test_created_object_gets_initial_state(
        self, client: AsyncClient, auth_headers, db_session
    ):
        ids = await seed_workflow(db_session, "Flow", [("Draft", True), ("Live", False)],
                                  [("Draft", "Live")])
        model_id, _ = await seed_model(
            db_session, "Page", [{"name": "title", "type": "string", "required": True}],
            workflow_id=ids["__id__"],
        )

        resp = await client.post(
            f"/api/models/{model_id}/objects",
            headers=auth_headers,
            json={"attributes": {"title": "Home"}},
        )
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert body["current_state_id"] == ids["Draft"]
        assert body["owner_id"] == "user-owner"
