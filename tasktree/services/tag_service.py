"""Tag service"""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from tasktree.core.database import transaction
from tasktree.core.errors import ConflictError, NotFound, ValidationError
from tasktree.models.tag import DEFAULT_TAG_COLOR, TAG_NAME_MAX_LENGTH, Tag
from tasktree.models.task import Task, new_id
from tasktree.services.validation import check_color

logger = logging.getLogger(__name__)


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Tag name is required", field="name")
    if len(cleaned) > TAG_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Tag name must be {TAG_NAME_MAX_LENGTH} characters or less",
            field="name", limit=TAG_NAME_MAX_LENGTH,
        )
    return cleaned


def _check_unique(db: Session, name: str, exclude_id: Optional[str] = None) -> None:
    query = db.query(Tag).filter(Tag.name == name)
    if exclude_id:
        query = query.filter(Tag.id != exclude_id)
    if query.first():
        raise ConflictError("A tag with this name already exists", field="name", name=name)


def list_tags(db: Session) -> List[Tag]:
    return db.query(Tag).order_by(Tag.name).all()


def get_tag(db: Session, tag_id: str) -> Tag:
    tag = db.get(Tag, tag_id)
    if tag is None:
        raise NotFound("tag", tag_id)
    return tag


def create_tag(db: Session, name: str, color: Optional[str] = None) -> Tag:
    name = _clean_name(name)
    color = color or DEFAULT_TAG_COLOR
    check_color(color)

    with transaction(db):
        _check_unique(db, name)
        tag = Tag(id=new_id(), name=name, color=color)
        db.add(tag)

    db.refresh(tag)
    logger.info(f"Tag {tag.id} created: {name}")
    return tag


def update_tag(db: Session, tag_id: str, name: Optional[str] = None, color: Optional[str] = None) -> Tag:
    if name is None and color is None:
        raise ValidationError("No fields to update")
    if name is not None:
        name = _clean_name(name)
    if color is not None:
        check_color(color)

    with transaction(db):
        tag = get_tag(db, tag_id)
        if name is not None:
            _check_unique(db, name, exclude_id=tag_id)
            tag.name = name
        if color is not None:
            tag.color = color

    db.refresh(tag)
    return tag


def delete_tag(db: Session, tag_id: str) -> None:
    """Refusé tant qu'une tâche utilise le tag."""
    with transaction(db):
        tag = get_tag(db, tag_id)
        used_by = db.query(Task).filter(Task.tags.any(Tag.id == tag_id)).all()
        if used_by:
            logger.warning(f"Tag {tag_id} still used by {len(used_by)} tasks, not deleted")
            raise ConflictError(
                f"Cannot delete tag. It is used by {len(used_by)} task(s)",
                tag_id=tag_id,
                task_ids=[t.id for t in used_by],
                task_titles=[t.title for t in used_by],
            )
        db.delete(tag)
    logger.info(f"Tag {tag_id} deleted")
