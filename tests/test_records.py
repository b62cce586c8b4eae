from __future__ import annotations

import httpx
import pytest


@pytest.mark.asyncio
async def test_partner_crud_and_filters(client: httpx.AsyncClient, admin) -> None:
    r = await client.post(
        "/admin/partners",
        json={"name": "Loom Works", "handle": "loom-works", "email": "hi@loom.test"},
        headers=admin,
    )
    assert r.status_code == 201
    partner = r.json()["partner"]
    assert partner["status"] == "active"

    await client.post(
        "/admin/partners",
        json={"name": "Dye House", "handle": "dye-house", "status": "pending"},
        headers=admin,
    )

    r = await client.get("/admin/partners", params={"status": "pending"}, headers=admin)
    body = r.json()
    assert body["count"] == 1
    assert body["partners"][0]["handle"] == "dye-house"

    r = await client.get(
        "/admin/partners", params=[("status", "active"), ("status", "pending")], headers=admin
    )
    assert r.json()["count"] == 2

    r = await client.put(
        f"/admin/partners/{partner['id']}", json={"name": "Loom Works Ltd"}, headers=admin
    )
    assert r.status_code == 200
    assert r.json()["partner"]["name"] == "Loom Works Ltd"

    r = await client.delete(f"/admin/partners/{partner['id']}", headers=admin)
    assert r.status_code == 200
    r = await client.get(f"/admin/partners/{partner['id']}", headers=admin)
    assert r.status_code == 404
    assert r.json()["type"] == "not_found"


@pytest.mark.asyncio
async def test_duplicate_handle_is_rejected(client: httpx.AsyncClient, admin) -> None:
    payload = {"name": "Loom Works", "handle": "loom-works"}
    assert (await client.post("/admin/partners", json=payload, headers=admin)).status_code == 201
    r = await client.post("/admin/partners", json=payload, headers=admin)
    assert r.status_code == 422
    assert r.json()["type"] == "duplicate_error"


@pytest.mark.asyncio
async def test_unknown_fields_fail_validation(client: httpx.AsyncClient, admin) -> None:
    r = await client.post(
        "/admin/designs", json={"name": "Indigo", "colour": "blue"}, headers=admin
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_person_tags_merge_without_duplicates(client: httpx.AsyncClient, admin) -> None:
    r = await client.post(
        "/admin/persons",
        json={"first_name": "Asha", "email": "asha@jyt.test", "tags": ["vip"]},
        headers=admin,
    )
    person = r.json()["person"]

    r = await client.post(
        f"/admin/persons/{person['id']}/tags", json={"tags": ["vip", "wholesale"]}, headers=admin
    )
    assert r.status_code == 200
    assert r.json()["person"]["tags"] == ["vip", "wholesale"]


@pytest.mark.asyncio
async def test_person_import_reports_per_row(client: httpx.AsyncClient, admin) -> None:
    rows = [
        {"first_name": "Asha", "email": "asha@jyt.test"},
        {"first_name": "Ravi", "email": "ravi@jyt.test", "state": "KA"},
        {"first_name": "Dup", "email": "asha@jyt.test"},
    ]
    r = await client.post("/admin/persons/import", json={"persons": rows}, headers=admin)
    assert r.status_code == 207
    body = r.json()
    assert [p["email"] for p in body["persons"]] == ["asha@jyt.test", "ravi@jyt.test"]
    assert len(body["errors"]) == 1
    assert body["errors"][0]["row"] == 2

    r = await client.post("/admin/persons/import", json={"persons": rows[:1]}, headers=admin)
    assert r.status_code == 400

    r = await client.post(
        "/admin/persons/import",
        json={"persons": [{"first_name": "Mira", "email": "mira@jyt.test"}]},
        headers=admin,
    )
    assert r.status_code == 201

    r = await client.get("/admin/persons", params={"state": "KA"}, headers=admin)
    assert r.json()["count"] == 1


@pytest.mark.asyncio
async def test_segment_crud_and_active_filter(client: httpx.AsyncClient, admin) -> None:
    r = await client.post(
        "/admin/ad-planning/segments",
        json={
            "name": "High Value Customers",
            "segment_type": "behavioral",
            "criteria": {
                "rules": [{"field": "clv_score", "operator": ">=", "value": 10000}],
                "logic": "AND",
            },
            "auto_update": True,
            "color": "#4CAF50",
        },
        headers=admin,
    )
    assert r.status_code == 201, r.text
    segment = r.json()["segment"]
    assert segment["is_active"] is True
    assert segment["customer_count"] == 0
    assert segment["criteria"]["rules"][0]["field"] == "clv_score"

    r = await client.post(
        "/admin/ad-planning/segments",
        json={"name": "Empty", "criteria": {"rules": [], "logic": "AND"}},
        headers=admin,
    )
    assert r.status_code == 422
    r = await client.post(
        "/admin/ad-planning/segments",
        json={
            "name": "Odd",
            "criteria": {"rules": [{"field": "x", "operator": "~", "value": 1}]},
        },
        headers=admin,
    )
    assert r.status_code == 422

    r = await client.put(
        f"/admin/ad-planning/segments/{segment['id']}",
        json={
            "is_active": False,
            "criteria": {
                "rules": [
                    {"field": "clv_score", "operator": ">=", "value": 5000},
                    {"field": "orders", "operator": ">", "value": 2},
                ],
                "logic": "OR",
            },
        },
        headers=admin,
    )
    assert r.status_code == 200
    updated = r.json()["segment"]
    assert updated["is_active"] is False
    assert updated["criteria"]["logic"] == "OR"
    assert len(updated["criteria"]["rules"]) == 2

    r = await client.get(
        "/admin/ad-planning/segments", params={"is_active": "false"}, headers=admin
    )
    assert [s["id"] for s in r.json()["segments"]] == [segment["id"]]


@pytest.mark.asyncio
async def test_lead_status_updates_and_person_link(client: httpx.AsyncClient, admin) -> None:
    r = await client.post(
        "/admin/persons", json={"first_name": "Asha", "email": "asha@jyt.test"}, headers=admin
    )
    person_id = r.json()["person"]["id"]

    r = await client.post(
        "/admin/leads",
        json={"email": "asha@jyt.test", "full_name": "Asha R", "source": "meta_ads"},
        headers=admin,
    )
    assert r.status_code == 201
    lead = r.json()["lead"]
    assert lead["status"] == "new"

    r = await client.put(
        f"/admin/leads/{lead['id']}",
        json={"status": "converted", "person_id": person_id, "notes": "Ordered samples"},
        headers=admin,
    )
    assert r.status_code == 200
    assert r.json()["lead"]["person_id"] == person_id

    r = await client.get("/admin/leads", params={"status": "converted"}, headers=admin)
    assert r.json()["count"] == 1
    r = await client.put(f"/admin/leads/{lead['id']}", json={"status": "won"}, headers=admin)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_agreement_and_email_template_records(client: httpx.AsyncClient, admin) -> None:
    r = await client.post(
        "/admin/email-templates",
        json={
            "name": "Agreement invite",
            "template_key": "multi-signer-agreement",
            "subject": "Agreement: {{agreement.title}}",
            "html_content": "<p>Please review {{agreement.title}}</p>",
            "variables": {"agreement.title": "Agreement title"},
        },
        headers=admin,
    )
    assert r.status_code == 201, r.text
    assert r.json()["email_template"]["is_active"] is True

    r = await client.post(
        "/admin/email-templates",
        json={
            "name": "Copy",
            "template_key": "multi-signer-agreement",
            "subject": "Again",
            "html_content": "<p>x</p>",
        },
        headers=admin,
    )
    assert r.status_code == 422
    assert r.json()["type"] == "duplicate_error"

    r = await client.post(
        "/admin/agreements",
        json={
            "title": "Supplier terms",
            "content": "<h1>{{agreement.title}}</h1>",
            "template_key": "multi-signer-agreement",
            "from_email": "agreements@jyt.test",
            "status": "active",
            "valid_from": "2026-01-01T00:00:00",
            "valid_until": "2026-12-31T00:00:00",
        },
        headers=admin,
    )
    assert r.status_code == 201, r.text
    agreement = r.json()["agreement"]
    assert agreement["status"] == "active"
    assert agreement["valid_until"].startswith("2026-12-31")

    r = await client.post(
        "/admin/agreements",
        json={
            "title": "Backwards",
            "content": "x",
            "valid_from": "2026-02-01T00:00:00",
            "valid_until": "2026-01-01T00:00:00",
        },
        headers=admin,
    )
    assert r.status_code == 422

    r = await client.get(
        "/admin/agreements", params={"template_key": "multi-signer-agreement"}, headers=admin
    )
    assert [a["id"] for a in r.json()["agreements"]] == [agreement["id"]]
