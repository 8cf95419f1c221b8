"""Field checks shared by single-task and bulk operations.

Every check raises `ValidationError` / `NotFound` before anything is written.
"""

import re
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from tasktree.core.errors import NotFound, ValidationError
from tasktree.models.tag import Tag
from tasktree.models.task import (
    DESCRIPTION_MAX_LENGTH,
    ESTIMATED_HOURS_MAX,
    PRIORITIES,
    TITLE_MAX_LENGTH,
)
from tasktree.models.task_group import TaskGroup

HEX_COLOR = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")


def clean_title(title: Optional[str], task_id: Optional[str] = None) -> str:
    cleaned = (title or "").strip()
    if not cleaned:
        raise ValidationError("Title is required", field="title", task_id=task_id)
    if len(cleaned) > TITLE_MAX_LENGTH:
        raise ValidationError(
            f"Title must be {TITLE_MAX_LENGTH} characters or less",
            field="title", task_id=task_id, limit=TITLE_MAX_LENGTH,
        )
    return cleaned


def clean_description(description: Optional[str], task_id: Optional[str] = None) -> Optional[str]:
    if description is None:
        return None
    cleaned = description.strip()
    if len(cleaned) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be {DESCRIPTION_MAX_LENGTH} characters or less",
            field="description", task_id=task_id, limit=DESCRIPTION_MAX_LENGTH,
        )
    return cleaned or None


def check_priority(priority: Optional[str], task_id: Optional[str] = None) -> None:
    if priority not in PRIORITIES:
        raise ValidationError(
            f"Invalid priority. Must be one of: {', '.join(PRIORITIES)}",
            field="priority", task_id=task_id, limit=list(PRIORITIES),
        )


def check_estimated_hours(hours: Optional[float], task_id: Optional[str] = None) -> None:
    if hours is None:
        return
    if hours < 0 or hours > ESTIMATED_HOURS_MAX:
        raise ValidationError(
            f"Estimated hours must be between 0 and {ESTIMATED_HOURS_MAX}",
            field="estimated_hours", task_id=task_id, limit=[0, ESTIMATED_HOURS_MAX],
        )


def check_date_range(start_date: Optional[datetime], due_date: Optional[datetime],
                     task_id: Optional[str] = None) -> None:
    if start_date is not None and due_date is not None and start_date > due_date:
        raise ValidationError(
            "Start date cannot be after due date",
            field="start_date", task_id=task_id,
        )


def check_color(color: Optional[str]) -> None:
    if color is None or not HEX_COLOR.match(color):
        raise ValidationError(
            "Invalid color format. Use hex color (e.g., #3B82F6)",
            field="color", limit="#RRGGBB",
        )


def require_group(db: Session, group_id: Optional[str]) -> Optional[TaskGroup]:
    if not group_id:
        return None
    group = db.get(TaskGroup, group_id)
    if group is None:
        raise NotFound("group", group_id)
    return group


def require_tags(db: Session, tag_ids: Optional[Iterable[str]]) -> List[Tag]:
    # Ignore les ids vides envoyés par les formulaires
    wanted = list(dict.fromkeys(t for t in (tag_ids or []) if t and t.strip()))
    if not wanted:
        return []
    tags = db.query(Tag).filter(Tag.id.in_(wanted)).all()
    found = {t.id for t in tags}
    missing = [t for t in wanted if t not in found]
    if missing:
        raise NotFound("tag", missing[0], message="One or more tags do not exist", missing=missing)
    by_id = {t.id: t for t in tags}
    return [by_id[t] for t in wanted]
