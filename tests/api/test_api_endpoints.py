import httpx
import pytest
import pytest_asyncio

from fieldflow.main import app

DEFINITION = {
    "name": "Invoice reminder",
    "trigger_event": "invoice.created",
    "trigger_conditions": {"balance": {"$gt": 0}},
    "steps": [
        {"name": "wait", "action": "delay", "config": {"duration": "3d"}},
        {"name": "remind", "action": "send_email", "config": {"to": "a@b.c", "subject": "Reminder", "body": "Please pay"}},
    ],
}


@pytest_asyncio.fixture
async def client(engine):
    app.state.engine = engine
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.state.engine = None


async def create_definition(client):
    resp = await client.post("/workflow_definitions", json=DEFINITION)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_create_and_get_definition(client):
    data = await create_definition(client)
    assert data["version"] == 1
    assert data["trigger_event"] == "invoice.created"

    resp = await client.get(f"/workflow_definitions/{data['id']}")
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "Invoice reminder"

    assert (await client.get("/workflow_definitions/missing")).status_code == 404


@pytest.mark.asyncio
async def test_invalid_definition_is_422(client):
    resp = await client.post("/workflow_definitions", json={**DEFINITION, "steps": [{"action": "send_fax"}]})
    assert resp.status_code == 422
    assert "Unknown action type: send_fax" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_event_trigger_and_instance_lifecycle(client, engine):
    await create_definition(client)

    resp = await client.post("/events", json={
        "event_name": "invoice.created",
        "entity_type": "invoice",
        "entity_id": "inv-1",
        "context": {"balance": 250},
    })
    assert resp.status_code == 200
    [instance] = resp.json()["data"]
    assert instance["status"] == "pending"
    assert instance["triggered_by"] == "api"

    # not running yet, so pause does not apply
    assert (await client.post(f"/workflow_instances/{instance['id']}/pause")).status_code == 409

    await engine.execute_workflow(instance["id"])
    resp = await client.post(f"/workflow_instances/{instance['id']}/pause", json={"reason": "customer called"})
    assert resp.status_code == 200
    assert resp.json()["data"]["applied"] is True

    assert (await client.post(f"/workflow_instances/{instance['id']}/resume")).status_code == 200
    assert (await client.post(f"/workflow_instances/{instance['id']}/cancel")).status_code == 200

    resp = await client.get(f"/workflow_instances/{instance['id']}")
    body = resp.json()["data"]
    assert body["status"] == "cancelled"
    assert body["workflow_name"] == "Invoice reminder"
    assert [log["action_type"] for log in body["step_logs"]] == ["delay"]


@pytest.mark.asyncio
async def test_unmatched_event_and_unknown_instance(client):
    await create_definition(client)
    resp = await client.post("/events", json={"event_name": "invoice.created", "context": {"balance": 0}})
    assert resp.json()["data"] == []

    assert (await client.get("/workflow_instances/missing")).status_code == 404
    assert (await client.post("/workflow_instances/missing/cancel")).status_code == 404
