"""Task service - create, update, delete, read"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from tasktree.core.database import get_now, transaction
from tasktree.core.errors import DepthLimitExceeded, NotFound, ValidationError
from tasktree.models.activity_log import ActivityLog, CREATED, SUBTASK_DELETED, UPDATED
from tasktree.models.task import MAX_DEPTH, Task, new_id, task_tags
from tasktree.services import activity_service
from tasktree.services.hierarchy import TaskArena
from tasktree.services.status_service import StatusPropagator, validate_status
from tasktree.services.validation import (
    check_date_range,
    check_estimated_hours,
    check_priority,
    clean_description,
    clean_title,
    require_group,
    require_tags,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "title", "description", "priority", "status", "completed", "start_date",
    "due_date", "estimated_hours", "group_id", "tag_ids",
}

PRIORITY_RANK = {"URGENT": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3}


# ============ READ ============

def list_tasks(
    db: Session,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    parent_id: Optional[str] = None,
    group_id: Optional[str] = None,
) -> List[Task]:
    """
    Liste filtrée. `parent_id="null"` ne garde que les racines.

    Ordre: priorité (URGENT d'abord), échéance (sans date en dernier),
    puis création la plus récente.
    """
    query = db.query(Task)
    if status:
        query = query.filter(Task.status == status)
    if priority:
        query = query.filter(Task.priority == priority)
    if parent_id == "null":
        query = query.filter(Task.parent_id.is_(None))
    elif parent_id:
        query = query.filter(Task.parent_id == parent_id)
    if group_id:
        query = query.filter(Task.group_id == group_id)

    rank = case(PRIORITY_RANK, value=Task.priority, else_=len(PRIORITY_RANK))
    return query.order_by(
        rank,
        Task.due_date.is_(None),
        Task.due_date.asc(),
        Task.created_at.desc(),
    ).all()


def get_task(db: Session, task_id: str) -> Task:
    task = db.get(Task, task_id)
    if task is None:
        raise NotFound("task", task_id)
    return task


# ============ CREATE ============

def create_task(
    db: Session,
    title: str,
    description: Optional[str] = None,
    priority: str = "MEDIUM",
    start_date: Optional[datetime] = None,
    due_date: Optional[datetime] = None,
    estimated_hours: Optional[float] = None,
    parent_id: Optional[str] = None,
    group_id: Optional[str] = None,
    tag_ids: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Task:
    """
    Create a root task, or a subtask when `parent_id` is given.

    The depth of the parent is checked against the persisted tree inside the
    same transaction as the insert. A completed parent is reverted to pending.
    """
    now = now or get_now()
    title = clean_title(title)
    description = clean_description(description)
    check_priority(priority)
    check_estimated_hours(estimated_hours)
    check_date_range(start_date, due_date)

    with transaction(db):
        arena = TaskArena.load(db)
        parent = None
        if parent_id:
            parent = arena.get(parent_id)
            if parent is None:
                raise NotFound("task", parent_id, message="Parent task not found")
            depth = arena.depth_of(parent)
            if depth >= MAX_DEPTH:
                logger.warning(f"Subtask refused under {parent_id}: parent at depth {depth}")
                raise DepthLimitExceeded(parent_id, depth, MAX_DEPTH)
        require_group(db, group_id)
        tags = require_tags(db, tag_ids)

        task = new_task(
            db, arena, title,
            description=description,
            priority=priority,
            start_date=start_date,
            due_date=due_date,
            estimated_hours=estimated_hours,
            parent=parent,
            group_id=group_id,
            now=now,
        )
        task.tags = tags
        if parent is not None:
            StatusPropagator(db, arena, now=now).reactivate(parent, task)

    db.refresh(task)
    logger.info(f"Task {task.id} created" + (f" under {parent_id}" if parent_id else ""))
    return task


def new_task(db: Session, arena: TaskArena, title: str, parent: Optional[Task] = None,
             now: Optional[datetime] = None, details: Optional[str] = None, **fields) -> Task:
    """Insère une tâche (déjà validée) et son entrée CREATED, sans commit."""
    task = Task(
        id=new_id(),
        title=title,
        parent_id=parent.id if parent is not None else None,
        status="pending",
        **fields,
    )
    if task.priority is None:
        task.priority = "MEDIUM"
    db.add(task)
    db.flush()
    arena.add(task)

    if details is None:
        details = f'Task "{title}" was created'
        if parent is not None:
            details = f'Subtask "{title}" was created under "{parent.title}"'
    activity_service.record(db, task.id, CREATED, details, now=now)
    return task


# ============ UPDATE ============

def update_task_fields(db: Session, task_id: str, updates: dict, now: Optional[datetime] = None) -> Task:
    """
    Partial update of one task. Only keys present in `updates` are touched;
    an explicit None clears the field. A `status` goes through the status
    propagation engine.
    """
    now = now or get_now()
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0], task_id=task_id)
    if not updates:
        raise ValidationError("No fields to update", task_id=task_id)

    fields = normalize_fields(updates, task_id)

    with transaction(db):
        arena = TaskArena.load(db)
        task = arena.get(task_id)
        if task is None:
            raise NotFound("task", task_id)
        check_date_range(
            fields.get("start_date", task.start_date),
            fields.get("due_date", task.due_date),
            task_id,
        )
        require_group(db, fields.get("group_id"))
        tags = require_tags(db, fields["tag_ids"]) if "tag_ids" in fields else None

        changes = apply_fields(task, fields, tags)
        if changes:
            activity_service.record(db, task.id, UPDATED, ", ".join(changes), now=now)

        if "status" in fields:
            StatusPropagator(db, arena, now=now).apply_manual(task, fields["status"])

    db.refresh(task)
    logger.info(f"Task {task_id} updated: {sorted(fields)}")
    return task


def normalize_fields(fields: dict, task_id: Optional[str] = None) -> dict:
    """Valide et nettoie un jeu de champs, sans accès à la base."""
    cleaned = dict(fields)
    if "title" in cleaned:
        cleaned["title"] = clean_title(cleaned["title"], task_id)
    if "description" in cleaned:
        cleaned["description"] = clean_description(cleaned["description"], task_id)
    if "priority" in cleaned:
        check_priority(cleaned["priority"], task_id)
    if "estimated_hours" in cleaned:
        check_estimated_hours(cleaned["estimated_hours"], task_id)
    if "completed" in cleaned:
        # completed=False veut seulement dire "pas terminée": un statut explicite gagne
        flag = bool(cleaned.pop("completed"))
        explicit = cleaned.get("status")
        if explicit is None:
            cleaned["status"] = "completed" if flag else "pending"
        elif (explicit == "completed") != flag:
            raise ValidationError(
                "status and completed disagree", field="completed", task_id=task_id,
            )
    if "status" in cleaned:
        validate_status(cleaned["status"], task_id)
    if "group_id" in cleaned:
        cleaned["group_id"] = cleaned["group_id"] or None
    if "tag_ids" in cleaned and cleaned["tag_ids"] is None:
        cleaned["tag_ids"] = []
    if "start_date" in cleaned or "due_date" in cleaned:
        check_date_range(cleaned.get("start_date"), cleaned.get("due_date"), task_id)
    return cleaned


def apply_fields(task: Task, fields: dict, tags=None) -> List[str]:
    """Applique les champs (hors statut) et décrit ce qui a changé."""
    changes = []
    if "title" in fields and fields["title"] != task.title:
        changes.append(f'title changed from "{task.title}" to "{fields["title"]}"')
        task.title = fields["title"]
    if "description" in fields and fields["description"] != task.description:
        changes.append("description changed")
        task.description = fields["description"]
    if "priority" in fields and fields["priority"] != task.priority:
        changes.append(f"priority changed from {task.priority} to {fields['priority']}")
        task.priority = fields["priority"]
    for key, label in (("start_date", "start date"), ("due_date", "due date")):
        if key in fields and fields[key] != getattr(task, key):
            changes.append(f"{label} changed from {_day(getattr(task, key))} to {_day(fields[key])}")
            setattr(task, key, fields[key])
    if "estimated_hours" in fields and fields["estimated_hours"] != task.estimated_hours:
        changes.append(f"estimated hours changed from {task.estimated_hours or 0}h to {fields['estimated_hours'] or 0}h")
        task.estimated_hours = fields["estimated_hours"]
    if "group_id" in fields and fields["group_id"] != task.group_id:
        changes.append("group changed")
        task.group_id = fields["group_id"]
    if tags is not None:
        task.tags = tags
        changes.append("tags updated")
    return changes


def _day(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value else "none"


# ============ DELETE ============

def delete_task(db: Session, task_id: str, now: Optional[datetime] = None) -> dict:
    """Supprime la tâche et tout son sous-arbre."""
    now = now or get_now()
    with transaction(db):
        arena = TaskArena.load(db)
        task = arena.get(task_id)
        if task is None:
            raise NotFound("task", task_id)
        deleted = delete_subtrees(db, arena, [task], now)

    logger.info(f"Task {task_id} deleted with {len(deleted) - 1} descendants")
    return {"deleted_id": task_id, "cascade_deleted_ids": deleted[1:]}


def delete_subtrees(db: Session, arena: TaskArena, roots: List[Task], now: datetime) -> List[str]:
    """
    Delete every root with its descendants, inside the caller's transaction.

    Surviving parents of deleted subtasks get a SUBTASK_DELETED entry and are
    re-derived from their remaining children. Returns the deleted ids, roots
    first in the given order.
    """
    ids: List[str] = []
    for root in roots:
        for t in [root] + arena.descendants_of(root):
            if t.id not in ids:
                ids.append(t.id)
    doomed = set(ids)

    survivors = []
    for root in roots:
        parent = arena.parent_of(root)
        if parent is not None and parent.id not in doomed:
            survivors.append((root, parent))

    db.query(ActivityLog).filter(ActivityLog.task_id.in_(ids)).delete(synchronize_session=False)
    db.execute(task_tags.delete().where(task_tags.c.task_id.in_(ids)))
    db.query(Task).filter(Task.id.in_(ids)).delete(synchronize_session=False)
    for task_id in ids:
        task = arena.get(task_id)
        if task is not None:
            db.expunge(task)
    arena.remove(ids)

    propagator = StatusPropagator(db, arena, now=now)
    for root, parent in survivors:
        activity_service.record(db, parent.id, SUBTASK_DELETED, f'Subtask "{root.title}" was deleted', now=now)
        propagator.rederive_parent(root)
    return ids
