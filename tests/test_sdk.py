"""Tests for the worker SDK: RunContext flows and the worker app."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from snapcheck.schemas.run import ObservedAssertion, ObservedFlow
from snapcheck.sdk.context import RunContext, serialize_snapshot
from snapcheck.sdk.server import create_worker_app

# ── Factories ──────────────────────────────────────────────────────


def _make_context() -> RunContext:
    ctx = RunContext()

    async def create_todo(_):
        return {"data": {"todo": {"id": 9, "text": "brush teeth"}}}

    def strip_id(res):
        return {"text": res["data"]["todo"]["text"]}

    with ctx.flow("todos") as f:
        f.act("create", create_todo)
        f.check("created", strip_id)
        f.check("raw")

    with ctx.flow("status") as f:
        f.act("ping", lambda _: [True, None, 1.5])
        f.check("pong")
        f.check("pong")

    return ctx


# ── RunContext ────────────────────────────────────────────────────


class TestRunContext:
    def test_serialize_snapshot_is_compact(self):
        assert serialize_snapshot({"a": [1, 2]}) == '{"a":[1,2]}'

    def test_nested_flow_raises(self):
        ctx = RunContext()
        with pytest.raises(RuntimeError):
            with ctx.flow("outer"):
                with ctx.flow("inner"):
                    pass

    def test_duplicate_flow_name_raises(self):
        ctx = RunContext()
        with ctx.flow("F"):
            pass
        with pytest.raises(RuntimeError):
            with ctx.flow("F"):
                pass

    def test_flow_registers_checks_in_order(self):
        ctx = _make_context()
        assert [f.name for f in ctx.flows] == ["todos", "status"]
        assert ctx.flows[0].check_names == ["created", "raw"]

    @pytest.mark.asyncio
    async def test_run_records_checks(self):
        observed = await _make_context().run()

        assert [f.name for f in observed] == ["todos", "status"]
        todos = observed[0]
        assert [(a.name, a.snapshot) for a in todos.assertions] == [
            ("created", '{"text":"brush teeth"}'),
            ("raw", '{"data":{"todo":{"id":9,"text":"brush teeth"}}}'),
        ]
        status = observed[1]
        assert [a.name for a in status.assertions] == ["pong", "pong"]
        assert status.assertions[0].snapshot == "[true,null,1.5]"

    @pytest.mark.asyncio
    async def test_run_with_known_snapshots(self):
        known = [ObservedFlow(
            name="status",
            assertions=[
                ObservedAssertion(name="pong", snapshot="[true,null,1.5]"),
                ObservedAssertion(name="pong", snapshot='"stale"'),
            ],
        )]
        observed = await _make_context().run(known)
        # Known snapshots never change what the worker reports
        assert observed[1].assertions[1].snapshot == "[true,null,1.5]"

    @pytest.mark.asyncio
    async def test_failing_step_ends_flow(self):
        ctx = RunContext()

        def explode(_):
            raise ValueError("boom")

        with ctx.flow("F") as f:
            f.act("start", lambda _: 1)
            f.check("one")
            f.act("explode", explode)
            f.check("never")

        observed = await ctx.run()
        assert [a.name for a in observed[0].assertions] == ["one"]


# ── Worker app ────────────────────────────────────────────────────


class TestWorkerApp:
    def test_index(self):
        client = TestClient(create_worker_app(_make_context(), env="test"))
        assert client.get("/").json() == {}

    def test_run(self):
        client = TestClient(create_worker_app(_make_context(), env="test"))
        resp = client.post("/v0/run", json={"flows": []})

        assert resp.status_code == 200
        flows = resp.json()["flows"]
        assert [f["name"] for f in flows] == ["todos", "status"]
        assert flows[0]["assertions"][0] == {"name": "created", "snapshot": '{"text":"brush teeth"}'}

    def test_bad_payload_is_400(self):
        client = TestClient(create_worker_app(_make_context(), env="test"))
        resp = client.post("/v0/run", json={"flows": [{"assertions": []}]})

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == 4001

    def test_non_json_body_is_400(self):
        client = TestClient(create_worker_app(_make_context(), env="test"))
        resp = client.post("/v0/run", content=b"not json")
        assert resp.status_code == 400

    def test_unknown_route_is_404(self):
        client = TestClient(create_worker_app(_make_context(), env="test"))
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == 4002
