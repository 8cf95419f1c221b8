"""
Bulk service - update, create and delete many tasks in one transaction.

A bulk update is described by three layers, merged per task in this order
(later wins for the same field):

    common      -> every selected task
    individual  -> {task_id: fields}, ids must be selected
    subtasks    -> {subtask_id: fields}, ids must sit under a selected task

The merged "effective" field set of every target is built and validated
first. Only when the whole batch is valid does anything get written, and
all writes share a single transaction.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from tasktree.core.database import get_now, transaction
from tasktree.core.errors import ConflictError, DepthLimitExceeded, NotFound, ValidationError
from tasktree.models.activity_log import UPDATED
from tasktree.models.task import MAX_DEPTH, Task
from tasktree.services import activity_service
from tasktree.services.hierarchy import TaskArena
from tasktree.services.status_service import StatusPropagator
from tasktree.services.task_service import apply_fields, delete_subtrees, new_task, normalize_fields
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

COMMON_FIELDS = {
    "title", "description", "priority", "status", "completed", "start_date",
    "due_date", "group_id", "estimated_hours", "tag_ids",
}
INDIVIDUAL_FIELDS = {
    "start_date", "due_date", "group_id", "tag_ids", "title", "description",
    "priority", "completed",
}
SUBTASK_FIELDS = {
    "title", "description", "priority", "start_date", "due_date", "completed",
}
CREATE_OVERRIDE_FIELDS = {"priority", "start_date", "due_date", "group_id", "tag_ids"}


def _check_keys(fields: dict, allowed: set, layer: str, task_id: Optional[str] = None) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise ValidationError(
            f"Field(s) not allowed in {layer}: {', '.join(sorted(unknown))}",
            field=sorted(unknown)[0], task_id=task_id, layer=layer,
        )


def _unique(ids: Optional[Iterable[str]]) -> List[str]:
    return list(dict.fromkeys(i for i in (ids or []) if i))


# ============ BULK UPDATE ============

def bulk_update(
    db: Session,
    task_ids: Iterable[str],
    common: Optional[dict] = None,
    individual: Optional[Dict[str, dict]] = None,
    subtasks: Optional[Dict[str, dict]] = None,
    new_subtasks: Optional[List[str]] = None,
    individual_new_subtasks: Optional[Dict[str, List[str]]] = None,
    now: Optional[datetime] = None,
) -> List[Task]:
    """
    Apply layered field updates to the selected tasks and their subtasks.

    `new_subtasks` titles are added under every selected task,
    `individual_new_subtasks` under one task each. Returns the selected tasks,
    refreshed, in input order.
    """
    now = now or get_now()
    ids = _unique(task_ids)
    if not ids:
        raise ValidationError("At least one task must be selected", field="task_ids")

    common = dict(common or {})
    individual = {k: dict(v) for k, v in (individual or {}).items() if v}
    subtasks = {k: dict(v) for k, v in (subtasks or {}).items() if v}
    added_common = [clean_title(t) for t in (new_subtasks or []) if t and t.strip()]
    added_individual = {
        k: [clean_title(t, k) for t in v if t and t.strip()]
        for k, v in (individual_new_subtasks or {}).items()
    }
    added_individual = {k: v for k, v in added_individual.items() if v}

    if not (common or individual or subtasks or added_common or added_individual):
        raise ValidationError("At least one field must be selected for update")

    # ---- layers: forme et appartenance ----
    _check_keys(common, COMMON_FIELDS, "common")
    for task_id, fields in individual.items():
        _check_keys(fields, INDIVIDUAL_FIELDS, "individual", task_id)
    for sub_id, fields in subtasks.items():
        _check_keys(fields, SUBTASK_FIELDS, "subtasks", sub_id)

    selected = set(ids)
    for task_id in list(individual) + list(added_individual):
        if task_id not in selected:
            raise ValidationError(
                "Override given for a task that is not selected",
                field="individual", task_id=task_id,
            )

    # Un seul jeu effectif par cible, partagé par la validation et l'écriture
    effective: Dict[str, dict] = {}
    layers: Dict[str, List[str]] = {}
    for task_id in ids:
        merged = normalize_fields(common)
        if task_id in individual:
            merged.update(normalize_fields(individual[task_id], task_id))
            layers.setdefault(task_id, []).append("individual")
        effective[task_id] = merged
    for sub_id, fields in subtasks.items():
        merged = dict(effective.get(sub_id, {}))
        merged.update(normalize_fields(fields, sub_id))
        effective[sub_id] = merged
        layers.setdefault(sub_id, []).append("subtask")

    with transaction(db):
        arena = TaskArena.load(db)

        missing = [i for i in ids if i not in arena]
        if missing:
            raise NotFound("task", missing[0], missing=missing)

        reachable = set()
        for task_id in ids:
            reachable.update(t.id for t in arena.descendants_of(arena.get(task_id)))
        for sub_id in subtasks:
            if sub_id not in arena:
                raise NotFound("task", sub_id, message="Subtask not found")
            if sub_id not in reachable and sub_id not in selected:
                raise ValidationError(
                    "Subtask does not belong to any selected task",
                    field="subtasks", task_id=sub_id,
                )

        for task_id in list(added_individual) + (ids if added_common else []):
            parent = arena.get(task_id)
            depth = arena.depth_of(parent)
            if depth >= MAX_DEPTH:
                raise DepthLimitExceeded(task_id, depth, MAX_DEPTH)

        groups = {}
        tags = {}
        for target_id, fields in effective.items():
            task = arena.get(target_id)
            check_date_range(
                fields.get("start_date", task.start_date),
                fields.get("due_date", task.due_date),
                target_id,
            )
            group_id = fields.get("group_id")
            if group_id and group_id not in groups:
                groups[group_id] = require_group(db, group_id)
            if "tag_ids" in fields:
                tags[target_id] = require_tags(db, fields["tag_ids"])

        # ---- écriture: plus aucune validation à partir d'ici ----
        propagator = StatusPropagator(db, arena, now=now)

        for target_id, fields in effective.items():
            apply_fields(arena.get(target_id), fields, tags.get(target_id))

        added_count: Dict[str, int] = {}
        for task_id in ids:
            parent = arena.get(task_id)
            titles = added_common + added_individual.get(task_id, [])
            for title in titles:
                sub = new_task(
                    db, arena, title,
                    parent=parent,
                    now=now,
                    priority="MEDIUM",
                    start_date=parent.start_date,
                    due_date=parent.due_date,
                    group_id=parent.group_id,
                    details=f'Subtask "{title}" added via bulk edit',
                )
                propagator.reactivate(parent, sub)
            added_count[task_id] = len(titles)

        for target_id, fields in effective.items():
            if "status" in fields:
                propagator.apply_manual(arena.get(target_id), fields["status"])

        for target_id in effective:
            task = arena.get(target_id)
            modified = 0
            if target_id in selected:
                modified = sum(1 for t in arena.descendants_of(task) if t.id in subtasks)
            activity_service.record(
                db, target_id, UPDATED,
                _summary(target_id in selected, layers.get(target_id, []), modified, added_count.get(target_id, 0)),
                now=now,
            )

    updated = [arena.get(i) for i in ids]
    for task in updated:
        db.refresh(task)
    logger.info(
        f"Bulk update: {len(ids)} tasks, {len(subtasks)} subtask overrides, "
        f"{sum(added_count.values())} subtasks added"
    )
    return updated


def _summary(is_selected: bool, layers: List[str], modified: int, added: int) -> str:
    if is_selected:
        details = "Updated via bulk edit"
        if "individual" in layers:
            details += " with individual overrides"
    else:
        details = "Updated via bulk edit subtask override"
    if modified:
        details += f" - {modified} subtask{'' if modified == 1 else 's'} modified"
    if added:
        details += f" - {added} subtask{'' if added == 1 else 's'} added"
    return details


# ============ BULK CREATE ============

def bulk_create(
    db: Session,
    titles: Iterable[str],
    shared: Optional[dict] = None,
    overrides: Optional[List[Optional[dict]]] = None,
    subtask_titles: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> List[Task]:
    """
    Crée N tâches racines, chacune avec la même liste de sous-tâches.

    `overrides[i]` s'applique au titre `titles[i]`. Les titres en double
    (insensible à la casse) sont refusés avant toute écriture.
    """
    now = now or get_now()
    titles = [clean_title(t) for t in (titles or [])]
    if not titles:
        raise ValidationError("At least one title is required", field="titles")

    seen = set()
    duplicates = []
    for title in titles:
        key = title.lower()
        if key in seen and title not in duplicates:
            duplicates.append(title)
        seen.add(key)
    if duplicates:
        logger.warning(f"Bulk create refused, duplicate titles: {duplicates}")
        raise ConflictError("Duplicate titles are not allowed", duplicates=duplicates)

    shared = dict(shared or {})
    overrides = list(overrides or [])
    if len(overrides) > len(titles):
        raise ValidationError("More overrides than titles", field="overrides")
    _check_keys(shared, CREATE_OVERRIDE_FIELDS | {"description", "estimated_hours"}, "shared")
    for override in overrides:
        _check_keys(override or {}, CREATE_OVERRIDE_FIELDS, "overrides")

    shared["description"] = clean_description(shared.get("description"))
    check_estimated_hours(shared.get("estimated_hours"))
    subtask_titles = [clean_title(t) for t in (subtask_titles or []) if t and t.strip()]

    plans = []
    for index, title in enumerate(titles):
        fields = {"priority": "MEDIUM", **{k: v for k, v in shared.items() if v is not None}}
        if index < len(overrides) and overrides[index]:
            fields.update({k: v for k, v in overrides[index].items() if v is not None})
        check_priority(fields["priority"])
        try:
            check_date_range(fields.get("start_date"), fields.get("due_date"))
        except ValidationError as e:
            raise ValidationError(e.message, field="start_date", title=title) from e
        plans.append((title, fields))

    with transaction(db):
        arena = TaskArena.load(db)
        groups = {}
        tag_sets = []
        for _, fields in plans:
            group_id = fields.get("group_id")
            if group_id and group_id not in groups:
                groups[group_id] = require_group(db, group_id)
            tag_sets.append(require_tags(db, fields.pop("tag_ids", None)))

        created = []
        for (title, fields), tags in zip(plans, tag_sets):
            group = groups.get(fields.get("group_id"))
            details = f'Task "{title}" was created via bulk creation'
            if group is not None:
                details += f' in group "{group.name}"'
            task = new_task(db, arena, title, now=now, details=details, **fields)
            task.tags = tags
            for sub_title in subtask_titles:
                new_task(
                    db, arena, sub_title,
                    parent=task,
                    now=now,
                    priority="MEDIUM",
                    start_date=task.start_date,
                    due_date=task.due_date,
                    group_id=task.group_id,
                    details="Subtask created as part of bulk creation",
                )
            created.append(task)

    for task in created:
        db.refresh(task)
    logger.info(f"Bulk create: {len(created)} tasks, {len(subtask_titles)} subtasks each")
    return created


# ============ BULK DELETE ============

def bulk_delete(db: Session, task_ids: Iterable[str], now: Optional[datetime] = None) -> dict:
    now = now or get_now()
    ids = _unique(task_ids)
    if not ids:
        raise ValidationError("At least one task must be selected", field="task_ids")

    with transaction(db):
        arena = TaskArena.load(db)
        missing = [i for i in ids if i not in arena]
        if missing:
            raise NotFound("task", missing[0], missing=missing)
        # Une tâche sélectionnée sous une autre tâche sélectionnée part en cascade
        selected = set(ids)
        tops = [
            arena.get(i) for i in ids
            if not any(a.id in selected for a in arena.ancestors_of(arena.get(i)))
        ]
        deleted = delete_subtrees(db, arena, tops, now)

    top_ids = [t.id for t in tops]
    logger.info(f"Bulk delete: {len(deleted)} tasks removed")
    return {
        "deleted_ids": top_ids,
        "cascade_deleted_ids": [i for i in deleted if i not in top_ids],
    }
