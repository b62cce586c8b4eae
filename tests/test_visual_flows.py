from __future__ import annotations

import httpx
import pytest

from conftest import RecordingTransport, json_response

BRANCHING_FLOW = {
    "name": "Order size",
    "operations": [
        {
            "operation_key": "check",
            "operation_type": "condition",
            "options": {
                "rules": [{"field": "$trigger.payload.amount", "operator": "gt", "value": 100}]
            },
        },
        {
            "operation_key": "big",
            "operation_type": "set_data",
            "options": {"data": {"size": "big", "amount": "{{ $trigger.payload.amount }}"}},
            "position_x": 1,
        },
        {
            "operation_key": "small",
            "operation_type": "set_data",
            "options": {"data": {"size": "small"}},
            "position_x": 2,
        },
    ],
    "connections": [
        {"source_id": "trigger", "target_id": "check"},
        {"source_id": "check", "target_id": "big", "connection_type": "success"},
        {"source_id": "check", "target_id": "small", "connection_type": "failure"},
    ],
}


async def _active_flow(client: httpx.AsyncClient, admin: dict[str, str], body: dict) -> str:
    r = await client.post("/admin/visual-flows", json=body, headers=admin)
    assert r.status_code == 201, r.text
    flow_id = r.json()["flow"]["id"]
    r = await client.post(f"/admin/visual-flows/{flow_id}/activate", headers=admin)
    assert r.status_code == 200, r.text
    assert r.json()["flow"]["status"] == "active"
    return flow_id


@pytest.mark.asyncio
async def test_condition_branches(client: httpx.AsyncClient, admin) -> None:
    flow_id = await _active_flow(client, admin, BRANCHING_FLOW)

    r = await client.post(
        f"/admin/visual-flows/{flow_id}/execute", json={"payload": {"amount": 250}}, headers=admin
    )
    assert r.status_code == 200
    result = r.json()
    assert result["status"] == "completed"
    chain = result["dataChain"]
    assert chain["big"] == {"size": "big", "amount": 250}
    assert "small" not in chain
    assert chain["$accountability"]["triggered_by"] == "admin@jyt.test"

    r = await client.post(
        f"/admin/visual-flows/{flow_id}/execute", json={"payload": {"amount": 5}}, headers=admin
    )
    assert r.json()["dataChain"]["$last"] == {"size": "small"}

    r = await client.get(f"/admin/visual-flows/{flow_id}/executions", headers=admin)
    executions = r.json()["executions"]
    assert len(executions) == 2

    r = await client.get(
        f"/admin/visual-flows/{flow_id}/executions/{result['executionId']}", headers=admin
    )
    logs = r.json()["execution"]["logs"]
    assert [(log["operation_key"], log["status"]) for log in logs] == [
        ("$trigger", "success"),
        ("check", "success"),
        ("big", "success"),
        ("small", "skipped"),
    ]
    assert logs[0]["output_data"]["payload"] == {"amount": 250}
    assert logs[1]["input_data"]["rules"][0]["value"] == 100
    assert logs[2]["output_data"] == {"size": "big", "amount": 250}
    assert logs[3]["input_data"] is None


@pytest.mark.asyncio
async def test_failure_edge_and_http_request(
    client: httpx.AsyncClient, admin, outbound: RecordingTransport
) -> None:
    outbound.on("/orders", json_response(200, {"orders": [{"sku": "IND-1"}]}))
    flow = {
        "name": "Sync orders",
        "operations": [
            {
                "operation_key": "fetch",
                "operation_type": "http_request",
                "options": {
                    "url": "https://api.test/orders",
                    "query": {"since": "{{ $trigger.payload.since }}"},
                },
            },
            {
                "operation_key": "push",
                "operation_type": "http_request",
                "options": {
                    "url": "https://api.test/missing",
                    "method": "POST",
                    "body": "{{ fetch.data }}",
                },
            },
            {
                "operation_key": "recover",
                "operation_type": "transform",
                "options": {
                    "mapping": {
                        "failed": "{{ $last.error }}",
                        "first": "{{ fetch.data.orders[0].sku }}",
                    }
                },
            },
        ],
        "connections": [
            {"source_id": "trigger", "target_id": "fetch"},
            {"source_id": "fetch", "target_id": "push"},
            {"source_id": "push", "target_id": "recover", "connection_type": "failure"},
        ],
    }
    flow_id = await _active_flow(client, admin, flow)

    r = await client.post(
        f"/admin/visual-flows/{flow_id}/execute",
        json={"payload": {"since": "2026-01-01"}},
        headers=admin,
    )
    result = r.json()
    assert result["status"] == "completed"
    assert result["dataChain"]["recover"]["first"] == "IND-1"
    assert "404" in result["dataChain"]["recover"]["failed"]

    fetch = outbound.requests[0]
    assert fetch.url.params["since"] == "2026-01-01"
    assert outbound.requests[1].method == "POST"


@pytest.mark.asyncio
async def test_unhandled_failure_marks_execution_failed(client: httpx.AsyncClient, admin) -> None:
    flow = {
        "name": "Broken",
        "operations": [
            {
                "operation_key": "read",
                "operation_type": "read_data",
                "options": {"entity": "secrets"},
            }
        ],
        "connections": [{"source_id": "trigger", "target_id": "read"}],
    }
    flow_id = await _active_flow(client, admin, flow)
    r = await client.post(f"/admin/visual-flows/{flow_id}/execute", headers=admin)
    assert r.status_code == 200
    assert r.json()["status"] == "failed"
    assert "cannot be read from flows" in r.json()["error"]

    r = await client.get(
        f"/admin/visual-flows/{flow_id}/executions/{r.json()['executionId']}", headers=admin
    )
    logs = r.json()["execution"]["logs"]
    assert [(log["operation_key"], log["status"]) for log in logs] == [
        ("$trigger", "success"),
        ("read", "failure"),
    ]
    assert "cannot be read from flows" in logs[1]["error"]
    assert logs[1]["duration_ms"] is not None


@pytest.mark.asyncio
async def test_invalid_definitions_are_rejected(client: httpx.AsyncClient, admin) -> None:
    body = {
        "name": "Cyclic",
        "operations": [
            {"operation_key": "a", "operation_type": "log"},
            {"operation_key": "b", "operation_type": "teleport"},
        ],
        "connections": [
            {"source_id": "a", "target_id": "b"},
            {"source_id": "b", "target_id": "a"},
            {"source_id": "a", "target_id": "ghost"},
        ],
    }
    r = await client.post("/admin/visual-flows", json=body, headers=admin)
    assert r.status_code == 400
    problems = r.json()["details"]["problems"]
    assert "Unknown operation_type for b: teleport" in problems
    assert "Connection target does not exist: ghost" in problems
    assert "Flow contains a cycle" in problems

    r = await client.post(
        "/admin/visual-flows",
        json={"name": "Bad cron", "trigger_type": "schedule", "trigger_config": {"cron": "* *"}},
        headers=admin,
    )
    assert r.status_code == 400

    r = await client.post("/admin/visual-flows", json={"name": "Empty"}, headers=admin)
    flow_id = r.json()["flow"]["id"]
    r = await client.post(f"/admin/visual-flows/{flow_id}/activate", headers=admin)
    assert r.status_code == 400
    r = await client.post(f"/admin/visual-flows/{flow_id}/execute", headers=admin)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_duplicate_update_and_delete(client: httpx.AsyncClient, admin) -> None:
    flow_id = await _active_flow(client, admin, BRANCHING_FLOW)

    r = await client.post(f"/admin/visual-flows/{flow_id}/duplicate", headers=admin)
    assert r.status_code == 201
    copy = r.json()["flow"]
    assert copy["name"] == "Order size (Copy)"
    assert copy["status"] == "draft"
    assert sorted(op["operation_key"] for op in copy["operations"]) == ["big", "check", "small"]

    r = await client.put(
        f"/admin/visual-flows/{copy['id']}/canvas",
        json={"canvas_state": {"zoom": 2}},
        headers=admin,
    )
    assert r.json()["flow"]["canvas_state"] == {"zoom": 2}

    r = await client.put(
        f"/admin/visual-flows/{copy['id']}",
        json={"connections": [{"source_id": "trigger", "target_id": "nowhere"}]},
        headers=admin,
    )
    assert r.status_code == 400

    r = await client.get("/admin/visual-flows/metadata", headers=admin)
    meta = r.json()
    assert "condition" in {op["type"] for op in meta["operations"]}
    assert [f["id"] for f in meta["flows"]] == [flow_id]

    r = await client.delete(f"/admin/visual-flows/{flow_id}", headers=admin)
    assert r.status_code == 200
    r = await client.get(f"/admin/visual-flows/{flow_id}", headers=admin)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_webhook_trigger_checks_secret(client: httpx.AsyncClient, admin) -> None:
    body = {
        **BRANCHING_FLOW,
        "name": "Hooked",
        "trigger_type": "webhook",
        "trigger_config": {"secret": "s3cret"},
    }
    flow_id = await _active_flow(client, admin, body)

    r = await client.post(f"/hooks/flows/{flow_id}", json={"amount": 500})
    assert r.status_code == 401

    r = await client.post(
        f"/hooks/flows/{flow_id}", json={"amount": 500}, headers={"x-flow-secret": "s3cret"}
    )
    assert r.status_code == 200
    assert r.json()["dataChain"]["big"]["amount"] == 500
    assert r.json()["dataChain"]["$trigger"]["event"] == "webhook"

    manual_id = await _active_flow(client, admin, {**BRANCHING_FLOW, "name": "Manual"})
    r = await client.post(f"/hooks/flows/{manual_id}", json={})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_nested_flow_trigger(client: httpx.AsyncClient, admin) -> None:
    child_id = await _active_flow(client, admin, BRANCHING_FLOW)
    parent = {
        "name": "Parent",
        "operations": [
            {
                "operation_key": "call",
                "operation_type": "trigger_flow",
                "options": {
                    "flow_id": child_id,
                    "payload": {"amount": "{{ $trigger.payload.total }}"},
                },
            }
        ],
        "connections": [{"source_id": "trigger", "target_id": "call"}],
    }
    parent_id = await _active_flow(client, admin, parent)

    r = await client.post(
        f"/admin/visual-flows/{parent_id}/execute", json={"payload": {"total": 900}}, headers=admin
    )
    result = r.json()
    assert result["status"] == "completed"
    nested = result["dataChain"]["call"]
    assert nested["dataChain"]["big"]["amount"] == 900
    assert nested["dataChain"]["$accountability"]["triggered_by"] == f"flow:{parent_id}"
