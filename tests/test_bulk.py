from datetime import datetime

import pytest

from tasktree.core.errors import ConcurrencyError, ConflictError, DepthLimitExceeded, NotFound, ValidationError
from tasktree.models.activity_log import ActivityLog, UPDATED
from tasktree.models.task import Task
from tasktree.services import bulk_service, group_service, tag_service, task_service
from tasktree.services.status_service import in_flight

NOW = datetime(2026, 3, 10, 9, 0, 0)


def updated_entries(db):
    return db.query(ActivityLog).filter(ActivityLog.action == UPDATED).all()


@pytest.fixture
def three(db):
    return [
        task_service.create_task(db, f"Task {i}", due_date=datetime(2026, 3, 20), now=NOW).id
        for i in range(1, 4)
    ]


# ========== TEST BULK UPDATE ==========
def test_bulk_update_common_fields(db, three):
    updated = bulk_service.bulk_update(db, three, common={"priority": "URGENT"}, now=NOW)

    assert [t.id for t in updated] == three
    assert {t.priority for t in updated} == {"URGENT"}
    assert len(updated_entries(db)) == 3
    assert updated_entries(db)[0].details.startswith("Updated via bulk edit")


def test_bulk_update_individual_override_wins(db, three):
    bulk_service.bulk_update(
        db, three,
        common={"priority": "HIGH", "description": "shared"},
        individual={three[1]: {"priority": "LOW", "title": "Renamed"}},
        now=NOW,
    )

    db.expire_all()
    second = db.get(Task, three[1])
    assert second.priority == "LOW"
    assert second.title == "Renamed"
    assert second.description == "shared"
    assert db.get(Task, three[0]).priority == "HIGH"

    entry = db.query(ActivityLog).filter(
        ActivityLog.task_id == three[1], ActivityLog.action == UPDATED
    ).one()
    assert entry.details == "Updated via bulk edit with individual overrides"


def test_bulk_update_is_atomic_on_invalid_dates(db, three):
    """Une date invalide sur la 3e tâche: aucune tâche modifiée"""
    with pytest.raises(ValidationError) as exc:
        bulk_service.bulk_update(
            db, three,
            common={"priority": "HIGH"},
            individual={three[2]: {"start_date": datetime(2026, 3, 25)}},
            now=NOW,
        )

    assert exc.value.task_id == three[2]
    db.expire_all()
    assert {db.get(Task, i).priority for i in three} == {"MEDIUM"}
    assert updated_entries(db) == []


def test_bulk_update_merged_dates_use_stored_values(db, three):
    with pytest.raises(ValidationError) as exc:
        bulk_service.bulk_update(db, three, common={"start_date": datetime(2026, 4, 1)}, now=NOW)
    assert exc.value.field == "start_date"
    assert exc.value.task_id == three[0]


def test_bulk_update_empty_is_rejected(db, three):
    with pytest.raises(ValidationError):
        bulk_service.bulk_update(db, three, common={}, individual={three[0]: {}}, now=NOW)


def test_bulk_update_unknown_task(db, three):
    with pytest.raises(NotFound) as exc:
        bulk_service.bulk_update(db, three + ["missing"], common={"priority": "LOW"}, now=NOW)
    assert exc.value.context["missing"] == ["missing"]
    assert updated_entries(db) == []


def test_bulk_update_unknown_group(db, three):
    with pytest.raises(NotFound):
        bulk_service.bulk_update(db, three, common={"group_id": "missing"}, now=NOW)


def test_bulk_update_override_for_unselected_task(db, three):
    with pytest.raises(ValidationError):
        bulk_service.bulk_update(db, three[:2], individual={three[2]: {"priority": "LOW"}}, now=NOW)


def test_bulk_update_rejects_status_completed_mismatch(db, three):
    with pytest.raises(ValidationError) as exc:
        bulk_service.bulk_update(db, three, common={"status": "ongoing", "completed": True}, now=NOW)
    assert exc.value.field == "completed"


def test_bulk_update_status_with_completed_false(db, three):
    """completed=False est compatible avec un statut ongoing explicite"""
    updated = bulk_service.bulk_update(db, three[:1], common={"status": "ongoing", "completed": False}, now=NOW)
    assert updated[0].status == "ongoing"
    assert updated[0].started_date == NOW

    with pytest.raises(ValidationError):
        bulk_service.bulk_update(db, three[:1], common={"status": "completed", "completed": False}, now=NOW)


def test_bulk_update_subtask_override(db, tree):
    bulk_service.bulk_update(
        db, [tree["R"]],
        common={"priority": "HIGH"},
        subtasks={tree["S1"]: {"title": "S1 renamed"}, tree["S2a"]: {"completed": True}},
        now=NOW,
    )

    db.expire_all()
    assert db.get(Task, tree["S1"]).title == "S1 renamed"
    # S2a complétée: S2 se complète, R passe ongoing
    assert db.get(Task, tree["S2"]).status == "completed"
    assert db.get(Task, tree["R"]).status == "ongoing"
    assert db.get(Task, tree["S1"]).priority == "MEDIUM"

    root_entry = db.query(ActivityLog).filter(
        ActivityLog.task_id == tree["R"], ActivityLog.details.like("Updated via bulk edit%")
    ).one()
    assert root_entry.details == "Updated via bulk edit - 2 subtasks modified"
    sub_entry = db.query(ActivityLog).filter(
        ActivityLog.task_id == tree["S1"], ActivityLog.action == UPDATED
    ).one()
    assert sub_entry.details == "Updated via bulk edit subtask override"


def test_bulk_update_subtask_outside_selection(db, tree, three):
    with pytest.raises(ValidationError) as exc:
        bulk_service.bulk_update(db, three, subtasks={tree["S1"]: {"title": "x"}}, now=NOW)
    assert exc.value.task_id == tree["S1"]


def test_bulk_update_common_completed_cascades(db, tree):
    bulk_service.bulk_update(db, [tree["R"]], common={"completed": True}, now=NOW)

    db.expire_all()
    assert {db.get(Task, i).status for i in tree.values()} == {"completed"}


def test_bulk_update_replaces_tags(db, three):
    red = tag_service.create_tag(db, "red")
    blue = tag_service.create_tag(db, "blue")
    task_service.update_task_fields(db, three[0], {"tag_ids": [red.id]}, now=NOW)

    bulk_service.bulk_update(db, three, common={"tag_ids": [blue.id]}, now=NOW)

    db.expire_all()
    assert [t.name for t in db.get(Task, three[0]).tags] == ["blue"]


def test_bulk_update_adds_subtasks(db, three, tree):
    bulk_service.bulk_update(
        db, [three[0], tree["S2"]],
        new_subtasks=["Common"],
        individual_new_subtasks={three[0]: ["Only first"]},
        now=NOW,
    )

    db.expire_all()
    first = db.get(Task, three[0])
    assert sorted(s.title for s in first.subtasks) == ["Common", "Only first"]
    assert all(s.due_date == datetime(2026, 3, 20) for s in first.subtasks)
    assert [s.title for s in db.get(Task, tree["S2"]).subtasks if s.title == "Common"] == ["Common"]

    entry = db.query(ActivityLog).filter(
        ActivityLog.task_id == three[0], ActivityLog.action == UPDATED
    ).one()
    assert entry.details == "Updated via bulk edit - 2 subtasks added"


def test_bulk_update_adding_subtask_too_deep(db, tree):
    with pytest.raises(DepthLimitExceeded):
        bulk_service.bulk_update(db, [tree["S2a"]], new_subtasks=["deeper"], now=NOW)
    assert db.query(Task).count() == 4


# ========== TEST BULK CREATE ==========
def test_bulk_create_with_overrides_and_subtasks(db):
    group = group_service.create_group(db, "Sprint")
    created = bulk_service.bulk_create(
        db,
        ["Write", "Review"],
        shared={"priority": "HIGH", "group_id": group.id, "due_date": datetime(2026, 3, 20)},
        overrides=[None, {"priority": "LOW"}],
        subtask_titles=["Draft", "  ", "Polish"],
        now=NOW,
    )

    assert [t.title for t in created] == ["Write", "Review"]
    assert [t.priority for t in created] == ["HIGH", "LOW"]
    assert db.query(Task).count() == 6
    for task in created:
        assert sorted(s.title for s in task.subtasks) == ["Draft", "Polish"]
        for sub in task.subtasks:
            assert sub.priority == "MEDIUM"
            assert sub.group_id == group.id
            assert sub.due_date == datetime(2026, 3, 20)

    entry = db.query(ActivityLog).filter(ActivityLog.task_id == created[0].id).one()
    assert entry.details == 'Task "Write" was created via bulk creation in group "Sprint"'


def test_bulk_create_rejects_duplicate_titles(db):
    """Doublons insensibles à la casse: aucune tâche créée"""
    with pytest.raises(ConflictError) as exc:
        bulk_service.bulk_create(db, ["A", "a"], now=NOW)
    assert exc.value.context["duplicates"] == ["a"]
    assert db.query(Task).count() == 0


def test_bulk_create_rejects_bad_dates(db):
    with pytest.raises(ValidationError):
        bulk_service.bulk_create(
            db, ["A", "B"],
            overrides=[None, {"start_date": datetime(2026, 3, 25), "due_date": datetime(2026, 3, 20)}],
            now=NOW,
        )
    assert db.query(Task).count() == 0


def test_bulk_create_unknown_tag(db):
    with pytest.raises(NotFound):
        bulk_service.bulk_create(db, ["A"], shared={"tag_ids": ["missing"]}, now=NOW)
    assert db.query(Task).count() == 0


# ========== TEST BULK DELETE ==========
def test_bulk_delete_reports_cascades(db, tree, three):
    result = bulk_service.bulk_delete(db, [tree["S2a"], tree["R"], three[0]], now=NOW)

    assert result["deleted_ids"] == [tree["R"], three[0]]
    assert set(result["cascade_deleted_ids"]) == {tree["S1"], tree["S2"], tree["S2a"]}
    assert db.query(Task).count() == 2


def test_bulk_delete_unknown_id(db, three):
    with pytest.raises(NotFound):
        bulk_service.bulk_delete(db, [three[0], "missing"], now=NOW)
    assert db.query(Task).count() == 3


# ========== TEST API ==========
def test_bulk_routes(client):
    created = client.post("/tasks/bulk", json={"titles": ["One", "Two"], "subtask_titles": ["Step"]})
    assert created.status_code == 201
    ids = [t["id"] for t in created.json()["created_tasks"]]
    assert created.json()["count"] == 2

    updated = client.put("/tasks/bulk", json={
        "task_ids": ids,
        "common": {"priority": "URGENT"},
        "individual": {ids[1]: {"completed": True}},
    })
    assert updated.status_code == 200
    tasks = updated.json()["updated_tasks"]
    assert [t["priority"] for t in tasks] == ["URGENT", "URGENT"]
    assert tasks[1]["status"] == "completed"
    assert tasks[1]["subtasks"][0]["status"] == "completed"

    deleted = client.post("/tasks/bulk/delete", json={"task_ids": ids})
    assert deleted.status_code == 200
    assert client.get("/tasks").json() == []


def test_bulk_route_duplicate_titles(client):
    response = client.post("/tasks/bulk", json={"titles": ["Same", "SAME"]})
    assert response.status_code == 409
    assert response.json()["type"] == "ConflictError"


def test_bulk_route_empty_update(client):
    task = client.post("/tasks", json={"title": "T"}).json()
    response = client.put("/tasks/bulk", json={"task_ids": [task["id"]]})
    assert response.status_code == 400


# ========== TEST ROLLBACK ==========
def test_bulk_update_rolls_back_after_writes_started(db, three):
    """La 2e tâche est bloquée: les écritures déjà faites sur la 1re sont annulées"""
    entries_before = db.query(ActivityLog).count()
    in_flight.claim(three[1])
    try:
        with pytest.raises(ConcurrencyError):
            bulk_service.bulk_update(
                db, three[:2], common={"priority": "HIGH", "status": "completed"}, now=NOW,
            )
    finally:
        in_flight.release(three[1])

    db.expire_all()
    assert {db.get(Task, i).priority for i in three} == {"MEDIUM"}
    assert {db.get(Task, i).status for i in three} == {"pending"}
    assert db.query(ActivityLog).count() == entries_before
    assert three[0] not in in_flight
