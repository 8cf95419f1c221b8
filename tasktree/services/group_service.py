"""Task group service"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from tasktree.core.database import transaction
from tasktree.core.errors import ConflictError, NotFound, ValidationError
from tasktree.models.task import Task, new_id
from tasktree.models.task_group import (
    DEFAULT_GROUP_COLOR,
    GROUP_DESCRIPTION_MAX_LENGTH,
    GROUP_NAME_MAX_LENGTH,
    TaskGroup,
)
from tasktree.services.validation import check_color

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"name", "description", "color"}


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Group name is required", field="name")
    if len(cleaned) > GROUP_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Group name must be {GROUP_NAME_MAX_LENGTH} characters or less",
            field="name", limit=GROUP_NAME_MAX_LENGTH,
        )
    return cleaned


def _clean_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    cleaned = description.strip()
    if len(cleaned) > GROUP_DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be {GROUP_DESCRIPTION_MAX_LENGTH} characters or less",
            field="description", limit=GROUP_DESCRIPTION_MAX_LENGTH,
        )
    return cleaned or None


def _check_unique(db: Session, name: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(TaskGroup).filter(TaskGroup.name == name)
    if exclude_id:
        query = query.filter(TaskGroup.id != exclude_id)
    if query.first():
        raise ConflictError("A group with this name already exists", field="name", name=name)


def list_groups(db: Session) -> List[TaskGroup]:
    return db.query(TaskGroup).order_by(TaskGroup.name).all()


def get_group(db: Session, group_id: str) -> TaskGroup:
    group = db.get(TaskGroup, group_id)
    if group is None:
        raise NotFound("group", group_id)
    return group


def create_group(db: Session, name: str, description: Optional[str] = None,
                 color: Optional[str] = None) -> TaskGroup:
    name = _clean_name(name)
    description = _clean_description(description)
    color = color or DEFAULT_GROUP_COLOR
    check_color(color)

    with transaction(db):
        _check_unique(db, name)
        group = TaskGroup(id=new_id(), name=name, description=description, color=color)
        db.add(group)

    db.refresh(group)
    logger.info(f"Group {group.id} created: {name}")
    return group


def update_group(db: Session, group_id: str, updates: dict) -> TaskGroup:
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])
    if not updates:
        raise ValidationError("No fields to update")

    fields = dict(updates)
    if "name" in fields:
        fields["name"] = _clean_name(fields["name"])
    if "description" in fields:
        fields["description"] = _clean_description(fields["description"])
    if "color" in fields:
        check_color(fields["color"])

    with transaction(db):
        group = get_group(db, group_id)
        if "name" in fields:
            _check_unique(db, fields["name"], exclude_id=group_id)
        for key, value in fields.items():
            setattr(group, key, value)

    db.refresh(group)
    return group


def delete_group(db: Session, group_id: str) -> int:
    """Supprime le groupe; ses tâches restent, sans groupe. Retourne leur nombre."""
    with transaction(db):
        group = get_group(db, group_id)
        detached = (
            db.query(Task)
            .filter(Task.group_id == group_id)
            .update({Task.group_id: None}, synchronize_session=False)
        )
        db.delete(group)

    logger.info(f"Group {group_id} deleted, {detached} tasks ungrouped")
    return detached
