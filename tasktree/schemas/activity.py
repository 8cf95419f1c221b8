"""Schemas for the activity log (read API and comments)."""

from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Optional, List


class CommentCreate(BaseModel):
    comment: str


class ActivityResponse(BaseModel):
    id: int
    task_id: str
    action: str
    details: Optional[str]
    comment: Optional[str]
    is_user_comment: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ActivityEntry(ActivityResponse):
    task_title: str
    is_subtask: bool = False
    subtask_title: Optional[str] = None
    is_direct_group_task: Optional[bool] = None


class TaskActivityPage(BaseModel):
    task_id: str
    activities: List[ActivityEntry]
    total: int
    limit: int
    offset: int
    has_more: bool


class GroupActivityPage(BaseModel):
    group_id: str
    group_name: str
    total_tasks: int
    activities: List[ActivityEntry]
    total: int
    limit: int
    offset: int
    has_more: bool
