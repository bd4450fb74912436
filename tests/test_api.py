"""Tests for the manager API (snapcheck.api.server).

Drives the FastAPI app through TestClient against a temporary SQLite
database, with the worker client replaced by an AsyncMock.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from snapcheck.api.auth import extract_key
from snapcheck.api.server import create_app
from snapcheck.errors import WorkerUnavailableError
from snapcheck.run.worker_client import WorkerClient
from snapcheck.schemas.run import ObservedAssertion, ObservedFlow
from snapcheck.schemas.settings import ManagerSettings

# ── Factories ──────────────────────────────────────────────────────


def _make_settings(tmp_path, **overrides) -> ManagerSettings:
    defaults = {
        "env": "test",
        "database_path": str(tmp_path / "api.db"),
        "scheduler_enabled": False,
    }
    defaults.update(overrides)
    return ManagerSettings(**defaults)


def _make_worker() -> WorkerClient:
    client = WorkerClient()
    client.invoke = AsyncMock(return_value=[])
    return client


def _make_observed(name: str, *assertions: tuple[str, str]) -> ObservedFlow:
    return ObservedFlow(
        name=name,
        assertions=[ObservedAssertion(name=n, snapshot=s) for n, s in assertions],
    )


@pytest.fixture
def worker():
    return _make_worker()


@pytest.fixture
def client(tmp_path, worker):
    app = create_app(_make_settings(tmp_path), worker_client=worker)
    with TestClient(app) as test_client:
        yield test_client


def _create_key(client: TestClient) -> dict[str, str]:
    resp = client.post("/api-keys")
    assert resp.status_code == 201
    return {"Authorization": f"Bearer {resp.json()['data']['api_key']}"}


def _create_checklist(client: TestClient, headers, origin: str = "http://worker.test") -> int:
    resp = client.post("/v1/checklists", json={"workerOrigin": origin}, headers=headers)
    assert resp.status_code == 201
    return resp.json()["data"]["checklist"]["id"]


# ── Auth ──────────────────────────────────────────────────────────


class TestExtractKey:
    def test_bearer(self):
        assert extract_key("Bearer sk_snap_abc") == "sk_snap_abc"

    def test_basic_uses_username(self):
        # base64("sk_snap_abc:")
        assert extract_key("Basic c2tfc25hcF9hYmM6") == "sk_snap_abc"

    def test_garbage(self):
        assert extract_key("") == ""
        assert extract_key("Basic !!!") == ""
        assert extract_key("Token abc") == ""


class TestAuth:
    def test_index_is_public(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json() == {}

    def test_missing_key_is_401(self, client):
        resp = client.get("/v1/checklists")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == 4000

    def test_unknown_key_is_401(self, client):
        resp = client.get("/v1/checklists", headers={"Authorization": "Bearer sk_snap_nope"})
        assert resp.status_code == 401

    def test_unauthenticated_resource_is_404(self, client):
        resp = client.post("/v1/checklists/1/run")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == 4002

    def test_basic_auth_accepted(self, client):
        raw_key = client.post("/api-keys").json()["data"]["api_key"]
        resp = client.get("/v1/checklists", auth=(raw_key, ""))
        assert resp.status_code == 200

    def test_unknown_route_is_404(self, client):
        resp = client.get("/asdf")
        assert resp.status_code == 404
        assert resp.json() == {"error": {
            "cause": "The request's URI points to a resource which does not exist.",
            "code": 4002,
            "message": "Requested resource not found",
        }}

    def test_delete_api_key(self, client):
        headers = _create_key(client)
        _create_checklist(client, headers)

        resp = client.delete("/api-keys", headers=headers)
        assert resp.json() == {"message": "Successfully deleted."}
        assert client.get("/v1/checklists", headers=headers).status_code == 401


# ── Checklists ────────────────────────────────────────────────────


class TestChecklists:
    def test_crud(self, client):
        headers = _create_key(client)
        checklist_id = _create_checklist(client, headers)

        listed = client.get("/v1/checklists", headers=headers).json()
        assert listed == {"data": {"checklists": [
            {"id": checklist_id, "workerOrigin": "http://worker.test"},
        ]}}

        resp = client.put(
            f"/v1/checklists/{checklist_id}",
            json={"workerOrigin": "http://other.test"},
            headers=headers,
        )
        assert resp.json()["data"]["checklist"]["workerOrigin"] == "http://other.test"

        resp = client.delete(f"/v1/checklists/{checklist_id}", headers=headers)
        assert resp.json() == {"message": "Successfully deleted."}
        assert client.get("/v1/checklists", headers=headers).json()["data"]["checklists"] == []

    def test_invalid_payload_is_400(self, client):
        headers = _create_key(client)
        resp = client.post("/v1/checklists", json={"wrong": "shape"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == 4001

        resp = client.post("/v1/checklists", json={"workerOrigin": 42}, headers=headers)
        assert resp.status_code == 400

    def test_other_owner_sees_404(self, client):
        owner = _create_key(client)
        stranger = _create_key(client)
        checklist_id = _create_checklist(client, owner)

        resp = client.delete(f"/v1/checklists/{checklist_id}", headers=stranger)
        assert resp.status_code == 404
        resp = client.post(f"/v1/checklists/{checklist_id}/run", headers=stranger)
        assert resp.status_code == 404


# ── Runs & snapshots ──────────────────────────────────────────────


class TestRun:
    def test_first_run_response(self, client, worker):
        headers = _create_key(client)
        checklist_id = _create_checklist(client, headers)
        worker.invoke.return_value = [_make_observed("F", ("a", '{"x":1}'))]

        resp = client.post(f"/v1/checklists/{checklist_id}/run", headers=headers)

        assert resp.status_code == 200
        assert resp.json() == {"data": {"flows": [{
            "name": "F",
            "assertions": [{"name": "a", "snapshot": '{"x":1}', "result": "NEW"}],
            "summary": {"match": 0, "miss": 0, "new": 1},
        }]}}
        origin, known = worker.invoke.call_args.args
        assert origin == "http://worker.test"
        assert known == []

    def test_miss_carries_expected_snapshot(self, client, worker):
        headers = _create_key(client)
        checklist_id = _create_checklist(client, headers)
        worker.invoke.return_value = [_make_observed("F", ("a", "1"))]
        client.post(f"/v1/checklists/{checklist_id}/run", headers=headers)

        worker.invoke.return_value = [_make_observed("F", ("a", "2"))]
        resp = client.post(f"/v1/checklists/{checklist_id}/run", headers=headers)

        assertion = resp.json()["data"]["flows"][0]["assertions"][0]
        assert assertion == {"name": "a", "snapshot": "2", "result": "MISS", "expectedSnapshot": "1"}

    def test_worker_unavailable_is_502(self, client, worker):
        headers = _create_key(client)
        checklist_id = _create_checklist(client, headers)
        worker.invoke.side_effect = WorkerUnavailableError("down")

        resp = client.post(f"/v1/checklists/{checklist_id}/run", headers=headers)

        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == 5002

    def test_missing_checklist_is_404(self, client):
        headers = _create_key(client)
        resp = client.post("/v1/checklists/999/run", headers=headers)
        assert resp.status_code == 404

    def test_seed_snapshots_then_run_matches(self, client, worker):
        headers = _create_key(client)
        checklist_id = _create_checklist(client, headers)
        payload = {"flows": [{"name": "F", "snapshots": [{"name": "a", "value": '"seeded"'}]}]}

        resp = client.post(
            f"/v1/checklists/{checklist_id}/snapshots", json=payload, headers=headers,
        )
        assert resp.status_code == 201
        assert resp.json() == {"data": payload}

        # Seeding again with another value never overwrites
        client.post(
            f"/v1/checklists/{checklist_id}/snapshots",
            json={"flows": [{"name": "F", "snapshots": [{"name": "a", "value": '"other"'}]}]},
            headers=headers,
        )

        worker.invoke.return_value = [_make_observed("F", ("a", '"seeded"'))]
        resp = client.post(f"/v1/checklists/{checklist_id}/run", headers=headers)
        assert resp.json()["data"]["flows"][0]["assertions"][0]["result"] == "MATCH"

    def test_seed_invalid_payload_is_400(self, client):
        headers = _create_key(client)
        checklist_id = _create_checklist(client, headers)
        resp = client.post(
            f"/v1/checklists/{checklist_id}/snapshots",
            json={"flows": [{"name": "F", "snapshots": [{"name": "a", "value": 1}]}]},
            headers=headers,
        )
        assert resp.status_code == 400


# ── Schedules & webhooks ──────────────────────────────────────────


class TestSchedules:
    def test_crud(self, client):
        headers = _create_key(client)
        checklist_id = _create_checklist(client, headers)

        resp = client.post(
            "/v1/schedules", json={"checklistId": checklist_id, "cron": "*/5 * * * *"},
            headers=headers,
        )
        assert resp.status_code == 201
        schedule = resp.json()["data"]["schedule"]
        assert schedule["checklistId"] == checklist_id

        resp = client.put(
            f"/v1/schedules/{schedule['id']}",
            json={"checklistId": checklist_id, "cron": "0 * * * *"},
            headers=headers,
        )
        assert resp.json()["data"]["schedule"]["cron"] == "0 * * * *"

        listed = client.get("/v1/schedules", headers=headers).json()["data"]["schedules"]
        assert [s["id"] for s in listed] == [schedule["id"]]

        resp = client.delete(f"/v1/schedules/{schedule['id']}", headers=headers)
        assert resp.json() == {"message": "Successfully deleted."}

    def test_invalid_cron_is_400(self, client):
        headers = _create_key(client)
        checklist_id = _create_checklist(client, headers)
        resp = client.post(
            "/v1/schedules", json={"checklistId": checklist_id, "cron": "whenever"},
            headers=headers,
        )
        assert resp.status_code == 400

    def test_foreign_checklist_is_404(self, client):
        owner = _create_key(client)
        stranger = _create_key(client)
        checklist_id = _create_checklist(client, owner)
        resp = client.post(
            "/v1/schedules", json={"checklistId": checklist_id, "cron": "* * * * *"},
            headers=stranger,
        )
        assert resp.status_code == 404


class TestWebhooks:
    def test_crud(self, client):
        headers = _create_key(client)
        resp = client.post(
            "/v1/webhooks",
            json={"eventType": "SCHEDULED_CHECKLIST_END", "url": "https://hooks.test/x"},
            headers=headers,
        )
        assert resp.status_code == 201
        webhook = resp.json()["data"]["webhook"]
        assert webhook["eventType"] == "SCHEDULED_CHECKLIST_END"

        listed = client.get("/v1/webhooks", headers=headers).json()["data"]["webhooks"]
        assert [w["id"] for w in listed] == [webhook["id"]]

        resp = client.delete(f"/v1/webhooks/{webhook['id']}", headers=headers)
        assert resp.status_code == 200
        assert client.delete(f"/v1/webhooks/{webhook['id']}", headers=headers).status_code == 404

    def test_invalid_event_type_is_400(self, client):
        headers = _create_key(client)
        resp = client.post(
            "/v1/webhooks", json={"eventType": "NOPE", "url": "https://hooks.test"},
            headers=headers,
        )
        assert resp.status_code == 400

    def test_non_http_url_is_400(self, client):
        headers = _create_key(client)
        resp = client.post(
            "/v1/webhooks",
            json={"eventType": "SCHEDULED_CHECKLIST_START", "url": "ftp://hooks.test"},
            headers=headers,
        )
        assert resp.status_code == 400
