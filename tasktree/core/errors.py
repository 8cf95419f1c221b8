"""
Error taxonomy for the task hierarchy core.

Every error carries the context a caller needs to render an actionable
message (offending task id, field name, violated limit) and the HTTP status
the API layer answers with.

    TaskTreeError
    ├── ValidationError      400  malformed or out-of-range input
    ├── NotFound             404  task/tag/group id does not exist
    ├── DepthLimitExceeded   422  subtask under a depth-2 task
    ├── ConflictError        409  duplicate titles or names, tag still in use
    └── StorageError         503  transaction/connection failure (retryable)
        └── ConcurrencyError 409  task already mid-transition or stale row
"""

from typing import Any, Dict, Optional


class TaskTreeError(Exception):
    """Base error for every failure the core reports to its callers."""

    status_code = 500
    retryable = False

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}
        super().__init__(message)

    @property
    def error_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": self.message, "type": self.error_type}
        if self.retryable:
            data["retryable"] = True
        data.update({k: _jsonable(v) for k, v in self.context.items()})
        return data

    def __repr__(self) -> str:
        parts = [f"{self.error_type}: {self.message}"]
        parts.extend(f"{k}={v}" for k, v in self.context.items())
        return " | ".join(parts)


class ValidationError(TaskTreeError):
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, task_id: Optional[str] = None,
                 limit: Any = None, **context: Any):
        self.field = field
        self.task_id = task_id
        self.limit = limit
        super().__init__(message, field=field, task_id=task_id, limit=limit, **context)


class NotFound(TaskTreeError):
    status_code = 404

    def __init__(self, entity: str, entity_id: Any = None, message: Optional[str] = None, **context: Any):
        self.entity = entity
        self.entity_id = entity_id
        if message is None:
            message = f"{entity.capitalize()} not found"
        super().__init__(message, entity=entity, entity_id=entity_id, **context)


class DepthLimitExceeded(TaskTreeError):
    status_code = 422

    def __init__(self, parent_id: str, depth: int, max_depth: int):
        self.parent_id = parent_id
        self.depth = depth
        super().__init__(
            f"Task {parent_id} is at depth {depth} and cannot receive subtasks (max depth {max_depth})",
            parent_id=parent_id,
            depth=depth,
            limit=max_depth,
        )


class ConflictError(TaskTreeError):
    status_code = 409


class StorageError(TaskTreeError):
    status_code = 503
    retryable = True


class ConcurrencyError(StorageError):
    status_code = 409


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)
