import asyncio
import os
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../..')))
from siteworks.main import app
from siteworks.core.security import AuthenticatedUser, get_current_active_user
from siteworks.dependencies import get_audit_repository, get_task_repository
from siteworks.models import Invoice, Site
from siteworks.repository import InMemoryAuditEventRepository, InMemoryTaskRepository

client = TestClient(app)

# Mock user for authentication
mock_user = AuthenticatedUser(user_id="test_user", username="testuser", email="test@example.com")


def override_get_current_active_user():
    return mock_user


app.dependency_overrides[get_current_active_user] = override_get_current_active_user


@pytest.fixture
def repositories(monkeypatch):
    task_repo = InMemoryTaskRepository()
    audit_repo = InMemoryAuditEventRepository()
    asyncio.run(task_repo.create_site(Site(id="site_1", name="Tripoli Tower")))
    asyncio.run(task_repo.create_invoice(Invoice(id="inv_1", client_id="client_1", site_id="site_1",
                                                 title="September works", total=4000.0, paid=1500.0,
                                                 created_by="acc_1")))
    monkeypatch.setitem(app.dependency_overrides, get_task_repository, lambda: task_repo)
    monkeypatch.setitem(app.dependency_overrides, get_audit_repository, lambda: audit_repo)
    return task_repo, audit_repo


def create_task(**overrides):
    payload = {"name": "Ceiling gypsum boards", "description": "Install gypsum boards in the lobby ceiling"}
    payload.update(overrides)
    return client.post("/api/sites/site_1/tasks", json=payload)


def test_healthcheck():
    # Act
    response = client.get("/api/healthz")

    # Assert
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_task_generates_sequential_codes(repositories):
    first = create_task()
    second = create_task(name="Lobby lighting", description="Fit LED downlights in the lobby")

    assert first.status_code == 201
    assert first.json()["code"] == "TT-TASK-0001"
    assert first.json()["created_by"] == "test_user"
    assert second.json()["code"] == "TT-TASK-0002"


def test_create_task_on_unknown_site(repositories):
    response = client.post("/api/sites/nowhere/tasks", json={"name": "Task", "description": "Some description"})

    assert response.status_code == 404
    assert "nowhere" in response.json()["detail"]


def test_create_billable_task_without_budget_is_rejected(repositories):
    response = create_task(billable=True)

    assert response.status_code == 400
    body = response.json()
    assert body["errors"]["budget_amount"] == ["Budget amount is required for billable tasks"]


def test_billable_task_gets_three_pending_approvals(repositories):
    task = create_task(billable=True, budget_amount=12000).json()

    response = client.get(f"/api/tasks/{task['id']}/approvals")

    assert response.status_code == 200
    approvals = response.json()
    assert [a["level"] for a in approvals] == ["ENGINEER", "SITE_MANAGER", "PROJECT_MANAGER"]
    assert {a["status"] for a in approvals} == {"PENDING"}


def test_progress_updates(repositories):
    task = create_task(progress=65, status="IN_PROGRESS").json()

    ok = client.post(f"/api/tasks/{task['id']}/updates", json={"progress_delta": 15, "note": "Second floor"})
    too_much = client.post(f"/api/tasks/{task['id']}/updates", json={"progress_delta": 30, "note": "Overshoot"})

    assert ok.status_code == 201
    assert ok.json()["progress_after"] == 80
    assert too_much.status_code == 409
    current = client.get(f"/api/tasks/{task['id']}").json()
    assert current["progress"] == 80
    assert current["status"] == "IN_PROGRESS"
    assert len(client.get(f"/api/tasks/{task['id']}/updates").json()) == 1


def test_quick_update_completes_task(repositories):
    task = create_task(progress=90).json()

    response = client.post(f"/api/tasks/{task['id']}/quick-updates", json={
        "time": "16:45", "progress_delta": 10, "work_description": "Final boards fixed", "manpower": 4,
        "executed_by": "emp_1",
    })

    assert response.status_code == 201
    current = client.get(f"/api/tasks/{task['id']}").json()
    assert current["status"] == "COMPLETED"
    assert current["actual_completion_date"] is not None


def test_patch_task(repositories):
    task = create_task().json()

    response = client.patch(f"/api/tasks/{task['id']}", json={"location": "Block B", "manpower": 12})

    assert response.status_code == 200
    assert response.json()["location"] == "Block B"
    assert response.json()["name"] == "Ceiling gypsum boards"


def test_archive_hides_task_from_site_listing(repositories):
    task = create_task().json()

    archive = client.post(f"/api/tasks/{task['id']}/archive")
    listing = client.get("/api/sites/site_1/tasks")
    with_archived = client.get("/api/sites/site_1/tasks", params={"include_archived": True})
    direct = client.get(f"/api/tasks/{task['id']}")

    assert archive.status_code == 200
    assert listing.json() == []
    assert [t["id"] for t in with_archived.json()] == [task["id"]]
    assert direct.status_code == 200
    assert direct.json()["archived"] is True

    restore = client.post(f"/api/tasks/{task['id']}/restore")
    assert restore.json()["archived"] is False


def test_approve_level(repositories):
    task = create_task(priority="HIGH").json()

    approved = client.post(f"/api/tasks/{task['id']}/approvals/ENGINEER",
                           json={"decision": "APPROVED", "remark": "Checked on site"})
    pending_engineer = client.get("/api/approvals/pending", params={"level": "ENGINEER"})
    pending_site_manager = client.get("/api/approvals/pending", params={"level": "SITE_MANAGER"})

    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    assert approved.json()["approved_by_id"] == "test_user"
    assert pending_engineer.json() == []
    assert [t["id"] for t in pending_site_manager.json()] == [task["id"]]


def test_approve_without_workflow_is_not_found(repositories):
    task = create_task().json()

    response = client.post(f"/api/tasks/{task['id']}/approvals/SITE_MANAGER", json={"decision": "APPROVED"})

    assert response.status_code == 404


def test_request_approval_on_demand(repositories):
    task = create_task().json()

    first = client.post(f"/api/tasks/{task['id']}/request-approval")
    second = client.post(f"/api/tasks/{task['id']}/request-approval")

    assert first.status_code == 201
    assert len(first.json()) == 3
    assert second.status_code == 409


def test_link_invoice(repositories):
    task = create_task(billable=True, budget_amount=12000).json()

    response = client.post(f"/api/tasks/{task['id']}/invoice-links",
                           json={"invoice_id": "inv_1", "amount_billed": 2500})

    assert response.status_code == 201
    link = response.json()
    assert (link["amount_billed"], link["amount_paid"], link["balance"]) == (2500, 1500, 1000)
    assert client.get(f"/api/tasks/{task['id']}").json()["cost_to_date"] == 2500
    details = client.get(f"/api/tasks/{task['id']}/details").json()
    assert len(details["invoice_links"]) == 1
    assert len(details["approvals"]) == 3


def test_search_and_bulk_routes(repositories):
    first = create_task(location="Lobby").json()
    second = create_task(name="Roof membrane", description="Waterproof the roof deck").json()

    search = client.get("/api/tasks/search", params={"q": "roof"})
    bulk = client.patch("/api/tasks/bulk/status", json={"task_ids": [first["id"], second["id"]],
                                                         "status": "ON_HOLD"})
    stats = client.get("/api/sites/site_1/tasks/statistics")

    assert [t["id"] for t in search.json()] == [second["id"]]
    assert {t["status"] for t in bulk.json()} == {"ON_HOLD"}
    assert stats.json()["total"] == 2


def test_audit_trail_for_task(repositories):
    task = create_task(billable=True, budget_amount=500).json()
    client.post(f"/api/tasks/{task['id']}/archive")

    trail = client.get(f"/api/audit/TASK/{task['id']}")
    export = client.get("/api/audit/export", params={"user_id": "test_user"})

    assert trail.status_code == 200
    assert [e["event_type"] for e in trail.json()] == ["TASK_ARCHIVED", "APPROVAL_REQUESTED", "TASK_CREATED"]
    assert export.json()["summary"]["total_events"] == 3
    assert export.json()["summary"]["event_types"]["TASK_CREATED"] == 1
