"""Activity service - append-only task history"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, aliased

from tasktree.core.config import settings
from tasktree.core.database import get_now, transaction
from tasktree.core.errors import NotFound, ValidationError
from tasktree.models.activity_log import ActivityLog, COMMENT, COMMENT_MAX_LENGTH
from tasktree.models.task import Task
from tasktree.models.task_group import TaskGroup

logger = logging.getLogger(__name__)


def record(db: Session, task_id: str, action: str, details: Optional[str] = None,
           now: Optional[datetime] = None) -> ActivityLog:
    """Ajoute une entrée au journal, dans la transaction de l'appelant."""
    entry = ActivityLog(
        task_id=task_id,
        action=action,
        details=details,
        is_user_comment=False,
        created_at=now or get_now(),
    )
    db.add(entry)
    return entry


def add_comment(db: Session, task_id: str, text: Optional[str], now: Optional[datetime] = None) -> ActivityLog:
    comment = (text or "").strip()
    if not comment:
        raise ValidationError("Comment cannot be empty", field="comment", task_id=task_id)
    if len(comment) > COMMENT_MAX_LENGTH:
        raise ValidationError(
            f"Comment must be {COMMENT_MAX_LENGTH} characters or less",
            field="comment", task_id=task_id, limit=COMMENT_MAX_LENGTH,
        )

    with transaction(db):
        if db.get(Task, task_id) is None:
            raise NotFound("task", task_id)
        entry = ActivityLog(
            task_id=task_id,
            action=COMMENT,
            comment=comment,
            is_user_comment=True,
            created_at=now or get_now(),
        )
        db.add(entry)

    db.refresh(entry)
    logger.info(f"Comment added to task {task_id}")
    return entry


def _page(limit: Optional[int], offset: Optional[int]):
    limit = settings.ACTIVITY_PAGE_SIZE if limit is None else limit
    limit = max(0, min(limit, settings.ACTIVITY_MAX_PAGE_SIZE))
    offset = max(0, offset or 0)
    return limit, offset


def _newest_first(query):
    return query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())


def get_task_activity(db: Session, task_id: str, limit: Optional[int] = None, offset: Optional[int] = None) -> dict:
    """
    Historique d'une tâche et de ses sous-tâches directes.

    Les entrées des sous-tâches sont marquées `is_subtask` avec le titre
    de la sous-tâche.
    """
    task = db.get(Task, task_id)
    if task is None:
        raise NotFound("task", task_id)

    limit, offset = _page(limit, offset)
    query = (
        db.query(ActivityLog, Task)
        .select_from(ActivityLog)
        .join(Task, ActivityLog.task_id == Task.id)
        .filter(or_(ActivityLog.task_id == task_id, Task.parent_id == task_id))
    )
    total = query.count()
    rows = _newest_first(query).offset(offset).limit(limit).all()

    activities = []
    for entry, owner in rows:
        is_subtask = owner.parent_id == task_id
        activities.append(_serialize(entry, owner, is_subtask=is_subtask,
                                     subtask_title=owner.title if is_subtask else None))

    return {
        "task_id": task_id,
        "activities": activities,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(activities) < total,
    }


def get_group_activity(db: Session, group_id: str, limit: Optional[int] = None, offset: Optional[int] = None) -> dict:
    """Historique des tâches d'un groupe et de leurs sous-tâches."""
    group = db.get(TaskGroup, group_id)
    if group is None:
        raise NotFound("group", group_id)

    limit, offset = _page(limit, offset)
    parent = aliased(Task)
    query = (
        db.query(ActivityLog, Task)
        .select_from(ActivityLog)
        .join(Task, ActivityLog.task_id == Task.id)
        .outerjoin(parent, Task.parent_id == parent.id)
        .filter(or_(Task.group_id == group_id, parent.group_id == group_id))
    )
    total = query.count()
    rows = _newest_first(query).offset(offset).limit(limit).all()

    activities = [
        _serialize(
            entry, owner,
            is_subtask=owner.parent_id is not None,
            is_direct_group_task=owner.group_id == group_id,
        )
        for entry, owner in rows
    ]
    total_tasks = db.query(Task).filter(Task.group_id == group_id).count()

    return {
        "group_id": group.id,
        "group_name": group.name,
        "total_tasks": total_tasks,
        "activities": activities,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + len(activities) < total,
    }


def _serialize(entry: ActivityLog, owner: Task, **flags) -> dict:
    data = {
        "id": entry.id,
        "task_id": entry.task_id,
        "task_title": owner.title,
        "action": entry.action,
        "details": entry.details,
        "comment": entry.comment,
        "is_user_comment": entry.is_user_comment,
        "created_at": entry.created_at,
    }
    data.update(flags)
    return data
