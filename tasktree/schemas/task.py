"""Pydantic schemas for task request/response validation."""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional, List

# Les règles métier (longueurs, priorités, dates) sont vérifiées par les services


class TagSummary(BaseModel):
    id: str
    name: str
    color: str

    model_config = ConfigDict(from_attributes=True)


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    priority: str = "MEDIUM"
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    parent_id: Optional[str] = None
    group_id: Optional[str] = None
    tag_ids: Optional[List[str]] = None


class TaskUpdate(BaseModel):
    """Partial update: only the fields sent are applied."""

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    completed: Optional[bool] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = None
    group_id: Optional[str] = None
    tag_ids: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class StatusUpdate(BaseModel):
    status: str


class TaskResponse(BaseModel):
    id: str
    parent_id: Optional[str]
    group_id: Optional[str]
    title: str
    description: Optional[str]
    priority: str
    status: str
    completed: bool
    start_date: Optional[datetime]
    due_date: Optional[datetime]
    original_due_date: Optional[datetime]
    started_date: Optional[datetime]
    completed_date: Optional[datetime]
    estimated_hours: Optional[float]
    created_at: datetime
    updated_at: datetime
    tags: List[TagSummary] = []
    subtasks: List["TaskResponse"] = []

    model_config = ConfigDict(from_attributes=True)


TaskResponse.model_rebuild()


class TaskState(BaseModel):
    """État d'une tâche avant transition, pour l'annulation côté client."""

    status: str
    started_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None


class ChangedTask(BaseModel):
    id: str
    title: str
    status: str
    completed_date: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class StatusUpdateResponse(BaseModel):
    task: TaskResponse
    cascaded_tasks: List[ChangedTask]
    previous: TaskState
    changed: bool
    completion_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DeleteResponse(BaseModel):
    deleted_id: str
    cascade_deleted_ids: List[str]
