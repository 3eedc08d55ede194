"""API tests for POST /api/v1/triggers."""

from httpx import AsyncClient

from tests.fakes import make_action, make_rule, make_workflow

TENANT = {"X-Tenant-ID": "tenant-1"}


def _body(**overrides) -> dict:
    body = {
        "entity_type": "Ticket",
        "entity_id": "T-1",
        "trigger_type": "Create",
        "snapshot": {"id": "T-1", "priority": "Critical", "owner_id": None},
    }
    body.update(overrides)
    return body


async def test_tenant_header_required(client: AsyncClient) -> None:
    response = await client.post("/api/v1/triggers", json=_body())
    assert response.status_code == 400
    assert response.json()["error"] == "HTTP_ERROR"


async def test_malformed_tenant_header_rejected(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/triggers", json=_body(), headers={"X-Tenant-ID": "bad tenant!"}
    )
    assert response.status_code == 400


async def test_invalid_trigger_type_is_422(client: AsyncClient) -> None:
    response = await client.post("/api/v1/triggers", json=_body(trigger_type="archive"), headers=TENANT)
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"


async def test_trigger_runs_immediate_actions(client: AsyncClient, store) -> None:
    store.add_record("Ticket", {"id": "T-1", "owner_id": None})
    store.add_workflow(
        make_workflow(
            [
                make_rule(
                    None,
                    [
                        make_action("assign_owner", {"userId": "u1"}, order=0),
                        make_action("send_notification", {"title": "Later"}, order=1, delay_minutes=30),
                    ],
                )
            ]
        )
    )
    response = await client.post(
        "/api/v1/triggers", json=_body(trigger_instance_id="evt-42"), headers=TENANT
    )
    assert response.status_code == 200
    data = response.json()
    assert data["trigger_instance_id"] == "evt-42"
    assert (data["succeeded"], data["failed"], data["skipped"]) == (1, 0, 0)
    assert data["executions"][0]["status"] == "success"
    assert data["executions"][0]["details"]["user_id"] == "u1"
    assert store.records[("Ticket", "T-1")]["owner_id"] == "u1"
    assert len(store.pending()) == 1


async def test_trigger_instance_id_generated_when_absent(client: AsyncClient) -> None:
    response = await client.post("/api/v1/triggers", json=_body(), headers=TENANT)
    assert response.status_code == 200
    data = response.json()
    assert data["trigger_instance_id"]
    assert data["executions"] == []


async def test_other_tenant_workflows_do_not_run(client: AsyncClient, store) -> None:
    store.add_workflow(
        make_workflow([make_rule(None, [make_action("assign_owner", {"user_id": "u1"})])], tenant_id="tenant-2")
    )
    response = await client.post("/api/v1/triggers", json=_body(), headers=TENANT)
    assert response.json()["executions"] == []
