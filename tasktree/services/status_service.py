"""
Status propagation - cascade completion and the domino effect.

Every status change in the core goes through `StatusPropagator`:

- a manual transition stamps started/completed dates, and completing a task
  forces its whole subtree to completed (cascade);
- after any status change the parent is re-derived from its children
  (domino effect) and, if it changes, the same transition runs on it, which
  continues up to the root;
- adding a subtask under a completed parent reverts that parent to pending.

The propagator never commits. It flushes in order (originating task, then
cascaded descendants) so that the re-derivation reads what the operation
just wrote, and the caller's transaction commits or rolls back everything.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from tasktree.core.database import get_now, transaction
from tasktree.core.errors import ConcurrencyError, NotFound, ValidationError
from tasktree.models.activity_log import COMPLETED, UPDATED
from tasktree.models.task import STATUSES, Task
from tasktree.services import activity_service
from tasktree.services.hierarchy import TaskArena, derive_status

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """Ids of tasks currently mid-transition, shared by every request."""

    def __init__(self):
        self._lock = threading.Lock()
        self._ids: Set[str] = set()

    def claim(self, task_id: str) -> bool:
        with self._lock:
            if task_id in self._ids:
                return False
            self._ids.add(task_id)
            return True

    def release(self, task_id: str) -> None:
        with self._lock:
            self._ids.discard(task_id)

    def __contains__(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._ids


in_flight = InFlightRegistry()


@dataclass
class TransitionResult:
    task: Task
    previous: dict
    completion_message: Optional[str] = None
    cascaded: List[Task] = field(default_factory=list)


def completion_timing(planned: Optional[datetime], completed_at: datetime) -> str:
    """Écart entre la date prévue et la date de complétion, en jours calendaires."""
    if planned is None:
        return "Completed (no prior due date)"
    days = (completed_at.date() - planned.date()).days
    if days < 0:
        return f"Completed {-days} day{'' if days == -1 else 's'} early"
    if days > 0:
        return f"Completed {days} day{'' if days == 1 else 's'} late"
    return "Completed on time"


def validate_status(status: Optional[str], task_id: Optional[str] = None) -> None:
    if status not in STATUSES:
        raise ValidationError(
            f"Invalid status. Must be one of: {', '.join(STATUSES)}",
            field="status", task_id=task_id, limit=list(STATUSES),
        )


class StatusPropagator:
    """One instance per logical operation (request, bulk batch)."""

    def __init__(self, db: Session, arena: TaskArena, now: Optional[datetime] = None,
                 registry: InFlightRegistry = in_flight):
        self.db = db
        self.arena = arena
        self.now = now or get_now()
        self.registry = registry
        # tâches dont le statut a changé pendant l'opération, dans l'ordre
        self.changed: Dict[str, Task] = {}

    # ============ ENTRY POINTS ============

    def apply_manual(self, task: Task, target: str) -> Optional[TransitionResult]:
        """
        User-requested status change.

        A task with children cannot hold a status its children contradict:
        completing it cascades down, any other target is replaced by the
        status derived from the children. Returns None when nothing changes.
        """
        validate_status(target, task.id)
        children = self.arena.children_of(task)
        if children and target != "completed":
            derived = derive_status(c.status for c in children)
            if derived != target:
                logger.info(f"Task {task.id} has subtasks, status {target} replaced by derived {derived}")
                target = derived
        return self.transition(task, target, strict=True)

    def reactivate(self, parent: Task, subtask: Task) -> Optional[TransitionResult]:
        """A new subtask invalidates the completion of its parent."""
        if parent.status != "completed":
            return None
        return self.transition(parent, "pending", reason=f'new subtask "{subtask.title}" added')

    def rederive_parent(self, task: Task) -> Optional[TransitionResult]:
        """Effet domino: aligne le parent sur le statut de ses enfants."""
        parent = self.arena.parent_of(task)
        if parent is None:
            return None
        target = derive_status(c.status for c in self.arena.children_of(parent))
        if target is None or parent.status == target:
            return None
        return self.transition(parent, target, reason=_derivation_reason(target))

    # ============ TRANSITION ============

    def transition(self, task: Task, target: str, reason: Optional[str] = None,
                   strict: bool = False) -> Optional[TransitionResult]:
        validate_status(target, task.id)
        if task.status == target:
            return None

        if not self.registry.claim(task.id):
            if strict:
                raise ConcurrencyError(
                    "Task is already being updated, please retry", task_id=task.id,
                )
            logger.warning(f"Task {task.id} already mid-transition, skipping re-derivation")
            return None

        try:
            previous = {
                "status": task.status,
                "started_date": task.started_date,
                "completed_date": task.completed_date,
            }
            self._stamp(task, target)
            timing = self._record_completion(task) if target == "completed" else None
            self._log(task, previous["status"], target, reason, timing)
            self.db.flush()

            cascaded = []
            if target == "completed":
                cascaded = self._cascade_complete(task)
                if cascaded:
                    self.db.flush()

            logger.info(
                f"Task {task.id} {previous['status']} -> {target}"
                + (f", {len(cascaded)} descendants completed" if cascaded else "")
            )
            result = TransitionResult(task=task, previous=previous, completion_message=timing, cascaded=cascaded)

            self.rederive_parent(task)
            return result
        finally:
            self.registry.release(task.id)

    # ============ INTERNALS ============

    def _stamp(self, task: Task, target: str) -> None:
        current = task.status
        if target == "ongoing":
            if current == "pending" and task.started_date is None:
                task.started_date = self.now
            task.completed_date = None
        elif target == "completed":
            task.completed_date = self.now
            if task.started_date is None:
                task.started_date = self.now
        else:
            task.started_date = None
            task.completed_date = None
        task.status = target
        self.changed[task.id] = task

    def _record_completion(self, task: Task) -> str:
        # La date prévue d'origine n'est copiée qu'une fois
        planned = task.original_due_date or task.due_date
        if task.due_date is not None and task.original_due_date is None:
            task.original_due_date = task.due_date
        task.due_date = self.now
        return completion_timing(planned, self.now)

    def _cascade_complete(self, task: Task) -> List[Task]:
        cascaded = []
        for descendant in self.arena.descendants_of(task):
            if descendant.status == "completed":
                continue
            previous = descendant.status
            self._stamp(descendant, "completed")
            timing = self._record_completion(descendant)
            self._log(descendant, previous, "completed", f'parent "{task.title}" was completed', timing)
            cascaded.append(descendant)
        return cascaded

    def _log(self, task: Task, previous: str, target: str, reason: Optional[str], timing: Optional[str]) -> None:
        details = f"Status changed from {previous} to {target}"
        if reason:
            details += f" ({reason})"
        if timing:
            details += f". {timing}"
        action = COMPLETED if target == "completed" else UPDATED
        activity_service.record(self.db, task.id, action, details, now=self.now)


def _derivation_reason(target: str) -> str:
    if target == "completed":
        return "all subtasks completed"
    if target == "pending":
        return "all subtasks pending"
    return "subtasks in progress"


# ============ SERVICE ============

def update_task_status(db: Session, task_id: str, target: str, now: Optional[datetime] = None) -> dict:
    """
    Change the status of one task and settle the tree around it.

    Returns the task, every other task whose status changed (descendants
    completed by cascade, ancestors re-derived), the previous state for undo
    and the completion timing message.
    """

    validate_status(target, task_id)
    with transaction(db):
        arena = TaskArena.load(db)
        task = arena.get(task_id)
        if task is None:
            raise NotFound("task", task_id)

        previous = {
            "status": task.status,
            "started_date": task.started_date,
            "completed_date": task.completed_date,
        }
        propagator = StatusPropagator(db, arena, now=now)
        result = propagator.apply_manual(task, target)
        others = [t for t in propagator.changed.values() if t.id != task.id]

    db.refresh(task)
    for other in others:
        db.refresh(other)

    return {
        "task": task,
        "cascaded_tasks": others,
        "previous": previous,
        "changed": result is not None,
        "completion_message": result.completion_message if result else None,
    }
