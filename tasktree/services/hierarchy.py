"""
Task tree rules - depth, eligibility, descendants.

The tree is never walked through in-memory child pointers: every function
works on a flat collection of tasks indexed by id, following `parent_id`.
Anything with `id`, `parent_id` (and `status` for derivation) attributes
works, ORM rows or plain objects.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy.orm import Session

from tasktree.models.task import MAX_DEPTH, Task

TaskCollection = Union[Mapping[str, object], Iterable[object]]


def index_by_id(all_tasks: TaskCollection) -> Mapping[str, object]:
    if isinstance(all_tasks, Mapping):
        return all_tasks
    return {t.id: t for t in all_tasks}


def depth_of(task, all_tasks: TaskCollection) -> int:
    """
    Nombre de sauts parent jusqu'à la racine (0 = racine).

    Un parent introuvable compte comme une racine: la tâche est alors au
    niveau 1, sans lever d'erreur.
    """
    by_id = index_by_id(all_tasks)
    depth = 0
    seen = {task.id}
    current = task
    while current.parent_id is not None:
        depth += 1
        parent = by_id.get(current.parent_id)
        if parent is None or parent.id in seen:
            break
        seen.add(parent.id)
        current = parent
    return depth


def can_have_subtasks(task, all_tasks: TaskCollection) -> bool:
    return depth_of(task, all_tasks) < MAX_DEPTH


def derive_status(child_statuses: Iterable[str]) -> Optional[str]:
    """
    Statut attendu d'un parent selon ses enfants.

    all completed → completed
    all pending → pending
    otherwise → ongoing
    Returns None when there are no children.
    """
    statuses = list(child_statuses)
    if not statuses:
        return None
    if all(s == "completed" for s in statuses):
        return "completed"
    if all(s == "pending" for s in statuses):
        return "pending"
    return "ongoing"


class TaskArena:
    """Id-indexed view of the whole task table for one operation."""

    def __init__(self, tasks: Iterable[Task]):
        self.by_id: Dict[str, Task] = {}
        self._children: Dict[str, List[Task]] = defaultdict(list)
        for task in tasks:
            self.add(task)

    @classmethod
    def load(cls, db: Session) -> "TaskArena":
        # Relit l'état persisté courant, jamais un cache client
        return cls(db.query(Task).order_by(Task.created_at, Task.id).all())

    def add(self, task: Task) -> None:
        self.by_id[task.id] = task
        if task.parent_id is not None:
            self._children[task.parent_id].append(task)

    def remove(self, task_ids: Iterable[str]) -> None:
        ids = set(task_ids)
        for task_id in ids:
            task = self.by_id.pop(task_id, None)
            if task is not None and task.parent_id in self._children:
                self._children[task.parent_id] = [c for c in self._children[task.parent_id] if c.id != task_id]
        for task_id in ids:
            self._children.pop(task_id, None)

    def get(self, task_id: Optional[str]) -> Optional[Task]:
        if task_id is None:
            return None
        return self.by_id.get(task_id)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self.by_id

    def parent_of(self, task: Task) -> Optional[Task]:
        return self.get(task.parent_id)

    def children_of(self, task: Task) -> List[Task]:
        return list(self._children.get(task.id, []))

    def descendants_of(self, task: Task) -> List[Task]:
        """All descendants, parents before their children."""
        result = []
        stack = list(reversed(self.children_of(task)))
        seen = {task.id}
        while stack:
            child = stack.pop()
            if child.id in seen:
                continue
            seen.add(child.id)
            result.append(child)
            stack.extend(reversed(self.children_of(child)))
        return result

    def ancestors_of(self, task: Task) -> List[Task]:
        result = []
        seen = {task.id}
        parent = self.parent_of(task)
        while parent is not None and parent.id not in seen:
            seen.add(parent.id)
            result.append(parent)
            parent = self.parent_of(parent)
        return result

    def depth_of(self, task: Task) -> int:
        return depth_of(task, self.by_id)

    def can_have_subtasks(self, task: Task) -> bool:
        return can_have_subtasks(task, self.by_id)
