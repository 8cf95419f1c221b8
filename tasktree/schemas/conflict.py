from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional


class ConflictCheckRequest(BaseModel):
    task_id: Optional[str] = None  # tâche en cours d'édition, exclue
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    priority: str = "MEDIUM"


class ConflictResponse(BaseModel):
    type: str
    severity: str
    message: str
    conflicting_task_id: str
    conflicting_task_title: str
    suggestions: List[str]


class ConflictCheckResponse(BaseModel):
    has_conflicts: bool
    conflicts: List[ConflictResponse]
