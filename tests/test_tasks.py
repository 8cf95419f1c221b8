from sqlalchemy.exc import OperationalError

from tasktree.core.database import get_db
from tasktree.main import app


def create(client, **payload):
    response = client.post("/tasks", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


# ========== TEST HEALTH ==========
def test_healthz(client):
    response = client.get("/health/z")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_healthz_database_down(client):
    """Base injoignable: 503 simple, pas un corps d'erreur StorageError"""
    class DeadSession:
        def execute(self, statement):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    previous = app.dependency_overrides[get_db]
    app.dependency_overrides[get_db] = lambda: DeadSession()
    try:
        response = client.get("/health/z")
    finally:
        app.dependency_overrides[get_db] = previous

    assert response.status_code == 503
    assert response.json() == {"status": "error", "database": "unreachable"}


# ========== TEST CREATE TASK ==========
def test_create_task_success(client):
    """Tester la création réussie d'une tâche"""
    data = create(client, title="  Ma première tâche  ", priority="HIGH")

    assert data["title"] == "Ma première tâche"
    assert data["priority"] == "HIGH"
    assert data["status"] == "pending"
    assert data["completed"] is False
    assert data["parent_id"] is None
    assert data["subtasks"] == []
    assert data["tags"] == []


def test_create_task_defaults_priority(client):
    data = create(client, title="Sans priorité")
    assert data["priority"] == "MEDIUM"


def test_create_task_blank_title(client):
    """Un titre vide renvoie une erreur de validation avec le champ"""
    response = client.post("/tasks", json={"title": "   "})
    assert response.status_code == 400
    body = response.json()
    assert body["type"] == "ValidationError"
    assert body["field"] == "title"


def test_create_task_title_too_long(client):
    response = client.post("/tasks", json={"title": "x" * 201})
    assert response.status_code == 400
    assert response.json()["limit"] == 200


def test_create_task_invalid_priority(client):
    response = client.post("/tasks", json={"title": "T", "priority": "CRITICAL"})
    assert response.status_code == 400
    assert response.json()["field"] == "priority"


def test_create_task_start_after_due(client):
    response = client.post("/tasks", json={
        "title": "Dates",
        "start_date": "2026-03-20T00:00:00",
        "due_date": "2026-03-10T00:00:00",
    })
    assert response.status_code == 400
    assert response.json()["field"] == "start_date"


def test_create_task_unknown_group(client):
    response = client.post("/tasks", json={"title": "T", "group_id": "missing"})
    assert response.status_code == 404
    assert response.json()["entity"] == "group"


def test_create_task_with_tags(client):
    tag = client.post("/tags", json={"name": "urgent", "color": "#FF0000"}).json()
    data = create(client, title="Tagged", tag_ids=[tag["id"]])
    assert [t["name"] for t in data["tags"]] == ["urgent"]


# ========== TEST SUBTASKS ==========
def test_create_subtasks_nested_in_response(client):
    root = create(client, title="Root")
    child = create(client, title="Child", parent_id=root["id"])
    create(client, title="Grandchild", parent_id=child["id"])

    data = client.get(f"/tasks/{root['id']}").json()
    assert data["subtasks"][0]["title"] == "Child"
    assert data["subtasks"][0]["subtasks"][0]["title"] == "Grandchild"


def test_create_subtask_too_deep(client):
    root = create(client, title="Root")
    child = create(client, title="Child", parent_id=root["id"])
    grandchild = create(client, title="Grandchild", parent_id=child["id"])

    response = client.post("/tasks", json={"title": "Nope", "parent_id": grandchild["id"]})
    assert response.status_code == 422
    body = response.json()
    assert body["type"] == "DepthLimitExceeded"
    assert body["parent_id"] == grandchild["id"]
    assert body["depth"] == 2


def test_create_subtask_unknown_parent(client):
    response = client.post("/tasks", json={"title": "Lost", "parent_id": "missing"})
    assert response.status_code == 404


# ========== TEST LIST TASKS ==========
def test_list_root_tasks_order(client):
    """URGENT d'abord, puis échéance la plus proche, sans échéance en dernier"""
    create(client, title="low", priority="LOW")
    create(client, title="high later", priority="HIGH", due_date="2026-03-20T00:00:00")
    create(client, title="urgent", priority="URGENT")
    create(client, title="high no date", priority="HIGH")
    create(client, title="high sooner", priority="HIGH", due_date="2026-03-15T00:00:00")

    response = client.get("/tasks", params={"parent_id": "null"})
    assert response.status_code == 200
    assert [t["title"] for t in response.json()] == [
        "urgent", "high sooner", "high later", "high no date", "low",
    ]


def test_list_filters(client):
    root = create(client, title="Root", priority="LOW")
    create(client, title="Child", parent_id=root["id"])

    roots = client.get("/tasks", params={"parent_id": "null"}).json()
    children = client.get("/tasks", params={"parent_id": root["id"]}).json()
    low = client.get("/tasks", params={"priority": "LOW"}).json()

    assert [t["title"] for t in roots] == ["Root"]
    assert [t["title"] for t in children] == ["Child"]
    assert [t["title"] for t in low] == ["Root"]


def test_get_task_not_found(client):
    response = client.get("/tasks/missing")
    assert response.status_code == 404
    assert response.json()["error"] == "Task not found"


# ========== TEST UPDATE TASK ==========
def test_update_task_fields_logs_changes(client):
    task = create(client, title="Avant", priority="LOW")

    response = client.put(f"/tasks/{task['id']}", json={"title": "Après", "priority": "HIGH"})
    assert response.status_code == 200
    assert response.json()["title"] == "Après"

    activity = client.get(f"/tasks/{task['id']}/activity").json()["activities"]
    assert activity[0]["action"] == "UPDATED"
    assert 'title changed from "Avant" to "Après"' in activity[0]["details"]
    assert "priority changed from LOW to HIGH" in activity[0]["details"]


def test_update_task_status_through_put(client):
    root = create(client, title="Root")
    child = create(client, title="Child", parent_id=root["id"])

    response = client.put(f"/tasks/{child['id']}", json={"completed": True})
    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert client.get(f"/tasks/{root['id']}").json()["status"] == "completed"


def test_update_task_status_with_completed_false(client):
    """completed=false et status=ongoing ne se contredisent pas"""
    task = create(client, title="En cours")

    response = client.put(f"/tasks/{task['id']}", json={"status": "ongoing", "completed": False})
    assert response.status_code == 200, response.text
    assert response.json()["status"] == "ongoing"
    assert response.json()["started_date"] is not None

    response = client.put(f"/tasks/{task['id']}", json={"status": "ongoing", "completed": True})
    assert response.status_code == 400
    assert response.json()["field"] == "completed"


def test_update_task_dates_checked_against_stored_values(client):
    task = create(client, title="Dates", due_date="2026-03-10T00:00:00")

    response = client.put(f"/tasks/{task['id']}", json={"start_date": "2026-03-20T00:00:00"})
    assert response.status_code == 400
    assert response.json()["task_id"] == task["id"]


def test_update_task_clears_field_with_null(client):
    task = create(client, title="Dates", due_date="2026-03-10T00:00:00")

    response = client.put(f"/tasks/{task['id']}", json={"due_date": None})
    assert response.status_code == 200
    assert response.json()["due_date"] is None


def test_update_task_empty_body(client):
    task = create(client, title="Rien")
    response = client.put(f"/tasks/{task['id']}", json={})
    assert response.status_code == 400


# ========== TEST STATUS ==========
def test_status_endpoint_returns_cascade(client):
    root = create(client, title="Root", due_date="2026-03-12T00:00:00")
    child = create(client, title="Child", parent_id=root["id"])

    response = client.post(f"/tasks/{root['id']}/status", json={"status": "completed"})
    assert response.status_code == 200
    body = response.json()
    assert body["changed"] is True
    assert body["previous"]["status"] == "pending"
    assert body["task"]["completed"] is True
    assert body["task"]["original_due_date"] == "2026-03-12T00:00:00"
    assert [t["id"] for t in body["cascaded_tasks"]] == [child["id"]]
    assert body["completion_message"].startswith("Completed")


def test_status_endpoint_invalid_status(client):
    task = create(client, title="T")
    response = client.post(f"/tasks/{task['id']}/status", json={"status": "done"})
    assert response.status_code == 400


# ========== TEST DELETE TASK ==========
def test_delete_task_cascades(client):
    root = create(client, title="Root")
    child = create(client, title="Child", parent_id=root["id"])
    grandchild = create(client, title="Grandchild", parent_id=child["id"])

    response = client.delete(f"/tasks/{root['id']}")
    assert response.status_code == 200
    body = response.json()
    assert body["deleted_id"] == root["id"]
    assert set(body["cascade_deleted_ids"]) == {child["id"], grandchild["id"]}

    assert client.get(f"/tasks/{child['id']}").status_code == 404
    assert client.get("/tasks").json() == []


def test_delete_task_not_found(client):
    response = client.delete("/tasks/missing")
    assert response.status_code == 404
