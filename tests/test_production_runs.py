from __future__ import annotations

import uuid

import httpx
import pytest


async def _setup(client: httpx.AsyncClient, admin: dict[str, str]) -> dict[str, str]:
    r = await client.post("/admin/designs", json={"name": "Indigo Scarf"}, headers=admin)
    design_id = r.json()["design"]["id"]
    partners = []
    for handle in ("loom-works", "dye-house"):
        r = await client.post(
            "/admin/partners", json={"name": handle.title(), "handle": handle}, headers=admin
        )
        partners.append(r.json()["partner"]["id"])
    for name in ("cutting", "stitching"):
        await client.post("/admin/task-templates", json={"name": name}, headers=admin)
    return {"design": design_id, "partner_a": partners[0], "partner_b": partners[1]}


async def _approved_children(
    client: httpx.AsyncClient, admin: dict[str, str], ids: dict[str, str]
) -> tuple[str, list[dict]]:
    r = await client.post(
        "/admin/production-runs", json={"design_id": ids["design"], "quantity": 40}, headers=admin
    )
    assert r.status_code == 201
    run = r.json()["production_run"]
    assert run["status"] == "pending_review"
    assert run["snapshot"]["design"]["name"] == "Indigo Scarf"

    r = await client.post(
        f"/admin/production-runs/{run['id']}/approve",
        json={
            "assignments": [
                {"partner_id": ids["partner_a"], "role": "weaving", "quantity": 20},
                {"partner_id": ids["partner_b"], "role": "dyeing", "quantity": 20},
            ]
        },
        headers=admin,
    )
    assert r.status_code == 200
    result = r.json()["result"]
    assert result["parent"]["status"] == "approved"
    return run["id"], result["children"]


async def _dispatch(client: httpx.AsyncClient, admin: dict[str, str], run_id: str) -> dict:
    r = await client.post(f"/admin/production-runs/{run_id}/start-dispatch", headers=admin)
    assert r.status_code == 202
    started = r.json()
    assert started["status"] == "waiting"
    assert started["waiting"]["reason"] == "Awaiting task template selection"

    r = await client.post(
        f"/admin/production-runs/{run_id}/resume-dispatch",
        json={
            "transaction_id": started["transaction_id"],
            "template_names": ["cutting", "stitching"],
        },
        headers=admin,
    )
    assert r.status_code == 200, r.text
    return r.json()["result"]


@pytest.mark.asyncio
async def test_run_lifecycle_cascades_to_parent(
    client: httpx.AsyncClient, admin, token_for
) -> None:
    ids = await _setup(client, admin)
    parent_id, children = await _approved_children(client, admin, ids)
    child_a, child_b = children

    dispatched = await _dispatch(client, admin, child_a["id"])
    assert dispatched["production_run"]["status"] == "sent_to_partner"
    # One parent task plus one per template.
    assert len(dispatched["tasks"]) == 3
    await _dispatch(client, admin, child_b["id"])

    partner_a = token_for("a@loom.test", roles=["partner"], partner_id=ids["partner_a"])
    partner_b = token_for("b@dye.test", roles=["partner"], partner_id=ids["partner_b"])

    r = await client.get("/partners/production-runs", headers=partner_a)
    assert [run["id"] for run in r.json()["production_runs"]] == [child_a["id"]]

    # Other partners' runs look missing.
    r = await client.post(f"/partners/production-runs/{child_b['id']}/accept", headers=partner_a)
    assert r.status_code == 404

    r = await client.post(f"/partners/production-runs/{child_a['id']}/accept", headers=partner_a)
    assert r.status_code == 200
    assert r.json()["production_run"]["status"] == "in_progress"

    r = await client.get(f"/admin/production-runs/{parent_id}", headers=admin)
    assert r.json()["production_run"]["status"] == "in_progress"

    r = await client.post(
        f"/partners/production-runs/{child_a['id']}/complete", headers=partner_a
    )
    assert r.json()["production_run"]["status"] == "completed"
    r = await client.get(f"/admin/production-runs/{parent_id}", headers=admin)
    assert r.json()["production_run"]["status"] == "in_progress"

    await client.post(f"/partners/production-runs/{child_b['id']}/accept", headers=partner_b)
    await client.post(f"/partners/production-runs/{child_b['id']}/complete", headers=partner_b)
    r = await client.get(f"/admin/production-runs/{parent_id}", headers=admin)
    assert r.json()["production_run"]["status"] == "completed"


@pytest.mark.asyncio
async def test_dispatch_requires_approval(client: httpx.AsyncClient, admin) -> None:
    ids = await _setup(client, admin)
    r = await client.post(
        "/admin/production-runs",
        json={"design_id": ids["design"], "partner_id": ids["partner_a"]},
        headers=admin,
    )
    run_id = r.json()["production_run"]["id"]

    r = await client.post(f"/admin/production-runs/{run_id}/start-dispatch", headers=admin)
    assert r.status_code == 400
    assert r.json()["type"] == "not_allowed"


@pytest.mark.asyncio
async def test_resume_with_unknown_template_compensates(client: httpx.AsyncClient, admin) -> None:
    ids = await _setup(client, admin)
    _, children = await _approved_children(client, admin, ids)
    child_id = children[0]["id"]

    r = await client.post(f"/admin/production-runs/{child_id}/start-dispatch", headers=admin)
    tid = r.json()["transaction_id"]
    r = await client.post(
        f"/admin/production-runs/{child_id}/resume-dispatch",
        json={"transaction_id": tid, "template_names": ["embroidery"]},
        headers=admin,
    )
    assert r.status_code == 400
    assert "embroidery" in r.json()["message"]

    r = await client.get(f"/admin/workflows/executions/{tid}", headers=admin)
    assert r.json()["execution"]["status"] == "failed"

    r = await client.get(f"/admin/production-runs/{child_id}", headers=admin)
    run = r.json()["production_run"]
    assert run["status"] == "approved"
    assert run["tasks"] == []

    # A transaction of another run cannot be resumed through this one.
    r = await client.post(
        f"/admin/production-runs/{children[1]['id']}/resume-dispatch",
        json={"transaction_id": tid, "template_names": ["cutting"]},
        headers=admin,
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_cancel_parent_cancels_open_children(client: httpx.AsyncClient, admin) -> None:
    ids = await _setup(client, admin)
    parent_id, children = await _approved_children(client, admin, ids)

    r = await client.post(f"/admin/production-runs/{parent_id}/cancel", headers=admin)
    assert r.status_code == 200
    assert r.json()["production_run"]["status"] == "cancelled"

    r = await client.get(
        "/admin/production-runs", params={"parent_run_id": parent_id}, headers=admin
    )
    assert {c["status"] for c in r.json()["production_runs"]} == {"cancelled"}

    r = await client.post(f"/admin/production-runs/{parent_id}/cancel", headers=admin)
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_resume_after_cancel_is_rejected(client: httpx.AsyncClient, admin) -> None:
    ids = await _setup(client, admin)
    _, children = await _approved_children(client, admin, ids)
    child_id = children[0]["id"]

    r = await client.post(f"/admin/production-runs/{child_id}/start-dispatch", headers=admin)
    assert r.status_code == 202
    tid = r.json()["transaction_id"]

    r = await client.post(f"/admin/production-runs/{child_id}/cancel", headers=admin)
    assert r.status_code == 200

    r = await client.post(
        f"/admin/production-runs/{child_id}/resume-dispatch",
        json={"transaction_id": tid, "template_names": ["cutting"]},
        headers=admin,
    )
    assert r.status_code == 400
    assert r.json()["type"] == "not_allowed"

    r = await client.get(f"/admin/production-runs/{child_id}", headers=admin)
    run = r.json()["production_run"]
    assert run["status"] == "cancelled"
    assert run["tasks"] == []


@pytest.mark.asyncio
async def test_dispatch_runs_event_flows(client: httpx.AsyncClient, admin) -> None:
    r = await client.post(
        "/admin/visual-flows",
        json={
            "name": "Notify partner",
            "trigger_type": "event",
            "trigger_config": {"event": "production_run.sent_to_partner"},
            "operations": [
                {
                    "operation_key": "note",
                    "operation_type": "set_data",
                    "options": {"data": {"run": "{{ $trigger.payload.production_run_id }}"}},
                }
            ],
            "connections": [{"source_id": "trigger", "target_id": "note"}],
        },
        headers=admin,
    )
    flow_id = r.json()["flow"]["id"]
    await client.post(f"/admin/visual-flows/{flow_id}/activate", headers=admin)

    ids = await _setup(client, admin)
    _, children = await _approved_children(client, admin, ids)
    await _dispatch(client, admin, children[0]["id"])

    r = await client.get(f"/admin/visual-flows/{flow_id}/executions", headers=admin)
    (execution,) = r.json()["executions"]
    assert execution["status"] == "completed"
    assert execution["triggered_by"] == "admin@jyt.test"
    assert execution["trigger_data"]["partner_id"] == ids["partner_a"]
    assert execution["data_chain"]["note"] == {"run": children[0]["id"]}


@pytest.mark.asyncio
async def test_partner_identity_and_dispatch_history(
    client: httpx.AsyncClient, admin, token_for
) -> None:
    ids = await _setup(client, admin)
    _, children = await _approved_children(client, admin, ids)
    await _dispatch(client, admin, children[0]["id"])

    portal = token_for("a@loom.test", roles=["partner"], partner_id=ids["partner_a"])
    r = await client.get("/partners/me", headers=portal)
    assert r.json()["partner"]["handle"] == "loom-works"
    r = await client.get("/partners/me", headers=token_for("a@loom.test", roles=["partner"]))
    assert r.status_code == 403
    stale = token_for("a@loom.test", roles=["partner"], partner_id=uuid.uuid4())
    r = await client.get("/partners/me", headers=stale)
    assert r.status_code == 404

    r = await client.get(
        "/admin/workflows/executions",
        params={"workflow_name": "dispatch-production-run"},
        headers=admin,
    )
    (execution,) = r.json()["executions"]
    assert execution["status"] == "completed"
    assert execution["waiting_reason"] is None
