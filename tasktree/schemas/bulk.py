"""Schemas for bulk create / update / delete."""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List, Dict

from tasktree.schemas.task import TaskResponse


class CommonFields(BaseModel):
    """Champs appliqués à toutes les tâches sélectionnées."""

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    completed: Optional[bool] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    group_id: Optional[str] = None
    estimated_hours: Optional[float] = None
    tag_ids: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class IndividualOverride(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    completed: Optional[bool] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    group_id: Optional[str] = None
    tag_ids: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class SubtaskOverride(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    completed: Optional[bool] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


class BulkUpdateRequest(BaseModel):
    task_ids: List[str]
    common: CommonFields = Field(default_factory=CommonFields)
    individual: Dict[str, IndividualOverride] = {}
    subtasks: Dict[str, SubtaskOverride] = {}
    new_subtasks: List[str] = []
    individual_new_subtasks: Dict[str, List[str]] = {}


class BulkUpdateResponse(BaseModel):
    updated_tasks: List[TaskResponse]
    count: int

    model_config = ConfigDict(from_attributes=True)


class SharedFields(BaseModel):
    description: Optional[str] = None
    priority: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    group_id: Optional[str] = None
    estimated_hours: Optional[float] = None
    tag_ids: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class TitleOverride(BaseModel):
    priority: Optional[str] = None
    start_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    group_id: Optional[str] = None
    tag_ids: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class BulkCreateRequest(BaseModel):
    titles: List[str]
    shared: SharedFields = Field(default_factory=SharedFields)
    # aligné sur `titles`, null = pas d'override
    overrides: List[Optional[TitleOverride]] = []
    subtask_titles: List[str] = []


class BulkCreateResponse(BaseModel):
    created_tasks: List[TaskResponse]
    count: int

    model_config = ConfigDict(from_attributes=True)


class BulkDeleteRequest(BaseModel):
    task_ids: List[str]


class BulkDeleteResponse(BaseModel):
    deleted_ids: List[str]
    cascade_deleted_ids: List[str]
