"""
REST API 测试
"""
import pytest
from fastapi.testclient import TestClient

from workflow_orchestrator.api import create_app
from workflow_orchestrator.bootstrap import build_runtime
from workflow_orchestrator.config import Settings
from workflow_orchestrator.integrations import UserProfile


EXPENSE_CLAIM = {
    "workflow": {
        "id": "expense-claim",
        "name": "Expense claim",
        "variables": [{"id": "note", "type": "text"}],
        "activities": [
            {"id": "enter", "type": "enter"},
            {
                "id": "review",
                "type": "user",
                "config": {
                    "task_type": "approval",
                    "variable_id": "note",
                    "crowds": [{"crowd_type": "user", "user_id": "alice"}],
                },
            },
            {"id": "paid", "type": "exit", "config": {"result_code": "paid"}},
            {"id": "refused", "type": "exit", "config": {"result_code": "refused"}},
        ],
        "transitions": [
            {"from": "enter", "to": "review"},
            {"from": "review", "to": "paid"},
            {"from": "review", "port": "failure", "to": "refused"},
        ],
    }
}


@pytest.fixture
def runtime():
    runtime = build_runtime(Settings(database_url="sqlite://", worker_id="api-worker"))
    runtime.directory.add_user(UserProfile("alice", "alice", "alice@example.com", "Alice"))
    runtime.directory.add_user(UserProfile("bob", "bob", "bob@example.com", "Bob"))
    yield runtime
    runtime.close()


@pytest.fixture
def client(runtime):
    with TestClient(create_app(runtime=runtime)) as client:
        yield client


@pytest.fixture
def loaded(client):
    response = client.post("/api/v1/workflows", json={"definition": EXPENSE_CLAIM})
    assert response.status_code == 201
    return response.json()


@pytest.fixture
def started_instance(client, loaded):
    response = client.post("/api/v1/instances", json={
        "workflow_id": "expense-claim",
        "primary_key_value": "EXP-1",
        "input_user_id": "bob",
        "start": True,
    })
    assert response.status_code == 201
    return response.json()


class TestRoot:
    """根路径与健康检查"""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["worker_id"] == "api-worker"

    def test_request_id_is_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-42"})

        assert response.headers["X-Request-ID"] == "req-42"
        assert "X-Process-Time" in response.headers

    def test_request_id_is_generated(self, client):
        assert client.get("/").headers["X-Request-ID"]


class TestWorkflowsApi:
    """工作流定义接口"""

    def test_load_and_get(self, client, loaded):
        assert loaded["id"] == "expense-claim"
        assert loaded["activity_count"] == 4
        assert loaded["transition_count"] == 3

        assert client.get("/api/v1/workflows/expense-claim").json()["name"] == "Expense claim"
        assert [w["id"] for w in client.get("/api/v1/workflows").json()] == ["expense-claim"]

    def test_load_yaml_document(self, client):
        document = (
            "id: ping\n"
            "activities:\n"
            "  - {id: enter, type: enter}\n"
            "  - {id: done, type: exit}\n"
            "transitions:\n"
            "  - {from: enter, to: done}\n"
        )
        response = client.post("/api/v1/workflows", json={"document": document})

        assert response.status_code == 201
        assert response.json()["id"] == "ping"

    def test_load_requires_exactly_one_source(self, client):
        response = client.post("/api/v1/workflows", json={})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "validation_error"

    def test_invalid_definition(self, client):
        response = client.post("/api/v1/workflows", json={"definition": {"id": "broken"}})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_unknown_workflow(self, client):
        assert client.get("/api/v1/workflows/missing").status_code == 404

    def test_disable_and_enable(self, client, loaded):
        response = client.post("/api/v1/workflows/expense-claim/disable")

        assert response.status_code == 200
        assert response.json()["disabled"] is True
        blocked = client.post("/api/v1/instances", json={
            "workflow_id": "expense-claim", "primary_key_value": "EXP-9"
        })
        assert blocked.status_code == 400
        assert blocked.json()["error"] == "validation_error"

        response = client.post("/api/v1/workflows/expense-claim/enable")

        assert response.json()["disabled"] is False
        assert client.get("/api/v1/workflows/expense-claim").json()["disabled"] is False
        created = client.post("/api/v1/instances", json={
            "workflow_id": "expense-claim", "primary_key_value": "EXP-9"
        })
        assert created.status_code == 201

    def test_disable_unknown_workflow(self, client):
        response = client.post("/api/v1/workflows/missing/disable")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestInstancesApi:
    """实例接口"""

    def test_create_and_start(self, client, started_instance):
        assert started_instance["status"] == "active"
        assert started_instance["activity_id"] == "review"

        detail = client.get(f"/api/v1/instances/{started_instance['id']}").json()
        assert detail["variables"] == [{"variable_id": "note", "name": "note", "type": "text", "value": None}]

    def test_create_without_start_then_start(self, client, loaded):
        created = client.post("/api/v1/instances", json={
            "workflow_id": "expense-claim", "primary_key_value": "EXP-2"
        }).json()
        assert created["status"] == "pending"

        response = client.post(f"/api/v1/instances/{created['id']}/start")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["instance"]["activity_id"] == "review"

    def test_unknown_workflow(self, client):
        response = client.post("/api/v1/instances", json={
            "workflow_id": "missing", "primary_key_value": "EXP-1"
        })

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"
        assert response.json()["request_id"]

    def test_duplicate_instance(self, client, started_instance):
        response = client.post("/api/v1/instances", json={
            "workflow_id": "expense-claim", "primary_key_value": "EXP-1"
        })

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_suspend_resume_abort(self, client, started_instance):
        instance_id = started_instance["id"]

        suspended = client.post(f"/api/v1/instances/{instance_id}/suspend").json()
        assert suspended["success"] is True
        assert suspended["instance"]["status"] == "suspended"

        resumed = client.post(f"/api/v1/instances/{instance_id}/resume").json()
        assert resumed["instance"]["status"] == "active"

        aborted = client.post(f"/api/v1/instances/{instance_id}/abort").json()
        assert aborted["instance"]["status"] == "aborted"

        assert client.post(f"/api/v1/instances/{instance_id}/resume").status_code == 400

    def test_update_variable(self, client, started_instance):
        response = client.put(
            f"/api/v1/instances/{started_instance['id']}/variables/note",
            json={"expression": "'receipt ' + str(40 + 2)"}
        )

        assert response.status_code == 200
        assert response.json()["value"] == "receipt 42"

    def test_update_unknown_variable(self, client, started_instance):
        response = client.put(
            f"/api/v1/instances/{started_instance['id']}/variables/missing",
            json={"expression": "1"}
        )

        assert response.status_code == 404

    def test_events(self, client, started_instance):
        events = client.get(f"/api/v1/instances/{started_instance['id']}/events").json()

        assert events[0]["event_type"] == "start"
        assert "transition" in [e["event_type"] for e in events]

    def test_unknown_instance(self, client):
        assert client.get("/api/v1/instances/missing").status_code == 404


class TestTasksApi:
    """任务接口"""

    def test_inbox(self, client, started_instance):
        inbox = client.get("/api/v1/tasks", params={"user_id": "alice", "status": ["pending"]}).json()

        assert len(inbox["items"]) == 1
        assert inbox["items"][0]["instance_id"] == started_instance["id"]
        assert client.get("/api/v1/tasks", params={"user_id": "bob"}).json()["items"] == []

    def test_inbox_count(self, client, started_instance):
        count = client.get("/api/v1/tasks/count", params={"user_id": "alice", "status": ["pending"]})

        assert count.status_code == 200
        assert count.json() == {"count": 1}
        assert client.get("/api/v1/tasks/count", params={"user_id": "bob"}).json()["count"] == 0
        assert client.get("/api/v1/tasks/count", params={"status": ["approved"]}).json()["count"] == 0

    def test_approve_completes_instance(self, client, started_instance):
        task = client.get("/api/v1/tasks", params={"user_id": "alice"}).json()["items"][0]

        response = client.put(f"/api/v1/tasks/{task['id']}", json={
            "status": "approved", "value": "looks fine", "user_id": "alice"
        })

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        detail = client.get(f"/api/v1/instances/{started_instance['id']}").json()
        assert detail["status"] == "complete"
        assert detail["result_code"] == "paid"
        assert detail["variables"][0]["value"] == "looks fine"

    def test_wrong_user_is_forbidden(self, client, started_instance):
        task = client.get("/api/v1/tasks", params={"user_id": "alice"}).json()["items"][0]

        response = client.put(f"/api/v1/tasks/{task['id']}", json={
            "status": "rejected", "user_id": "bob"
        })

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_unknown_task(self, client):
        response = client.put("/api/v1/tasks/missing", json={"status": "done"})

        assert response.status_code == 404

    def test_invalid_status(self, client, started_instance):
        task = client.get("/api/v1/tasks", params={"user_id": "alice"}).json()["items"][0]

        assert client.put(f"/api/v1/tasks/{task['id']}", json={"status": "maybe"}).status_code == 422


class TestMaintenanceApi:
    """维护接口"""

    def test_sweep_without_elapsed_instances(self, client, started_instance):
        response = client.post("/api/v1/maintenance/sweep")

        assert response.status_code == 200
        assert response.json() == {"started": 0}
