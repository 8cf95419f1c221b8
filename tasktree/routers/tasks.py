from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from tasktree.core.database import get_db
from tasktree.schemas.activity import ActivityResponse, CommentCreate, TaskActivityPage
from tasktree.schemas.task import (
    DeleteResponse,
    StatusUpdate,
    StatusUpdateResponse,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
)
from tasktree.services import activity_service, status_service, task_service

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=List[TaskResponse])
def list_tasks(
    status: Optional[str] = None,
    priority: Optional[str] = None,
    parent_id: Optional[str] = Query(None, description='"null" pour les tâches racines'),
    group_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return task_service.list_tasks(db, status=status, priority=priority, parent_id=parent_id, group_id=group_id)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(task_data: TaskCreate, db: Session = Depends(get_db)):
    return task_service.create_task(db, **task_data.model_dump())


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(task_id: str, db: Session = Depends(get_db)):
    return task_service.get_task(db, task_id)


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(task_id: str, task_data: TaskUpdate, db: Session = Depends(get_db)):
    # Seuls les champs envoyés sont pris en compte (null = effacer)
    return task_service.update_task_fields(db, task_id, task_data.model_dump(exclude_unset=True))


@router.delete("/{task_id}", response_model=DeleteResponse)
def delete_task(task_id: str, db: Session = Depends(get_db)):
    return task_service.delete_task(db, task_id)


@router.post("/{task_id}/status", response_model=StatusUpdateResponse)
def update_status(task_id: str, body: StatusUpdate, db: Session = Depends(get_db)):
    """Change le statut et propage: cascade vers le bas, dérivation vers le haut."""
    return status_service.update_task_status(db, task_id, body.status)


@router.get("/{task_id}/activity", response_model=TaskActivityPage)
def get_task_activity(
    task_id: str,
    limit: Optional[int] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return activity_service.get_task_activity(db, task_id, limit=limit, offset=offset)


@router.post("/{task_id}/comments", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED)
def add_comment(task_id: str, body: CommentCreate, db: Session = Depends(get_db)):
    return activity_service.add_comment(db, task_id, body.comment)
