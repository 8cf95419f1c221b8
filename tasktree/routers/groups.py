from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from tasktree.core.database import get_db
from tasktree.schemas.activity import GroupActivityPage
from tasktree.schemas.task_group import GroupCreate, GroupResponse, GroupUpdate
from tasktree.services import activity_service, group_service

router = APIRouter(prefix="/groups", tags=["groups"])


@router.get("", response_model=List[GroupResponse])
def list_groups(db: Session = Depends(get_db)):
    return group_service.list_groups(db)


@router.post("", response_model=GroupResponse, status_code=status.HTTP_201_CREATED)
def create_group(group_data: GroupCreate, db: Session = Depends(get_db)):
    return group_service.create_group(db, group_data.name, group_data.description, group_data.color)


@router.put("/{group_id}", response_model=GroupResponse)
def update_group(group_id: str, group_data: GroupUpdate, db: Session = Depends(get_db)):
    return group_service.update_group(db, group_id, group_data.model_dump(exclude_unset=True))


@router.delete("/{group_id}")
def delete_group(group_id: str, db: Session = Depends(get_db)):
    ungrouped = group_service.delete_group(db, group_id)
    return {"deleted_id": group_id, "ungrouped_tasks": ungrouped}


@router.get("/{group_id}/activity", response_model=GroupActivityPage)
def get_group_activity(
    group_id: str,
    limit: Optional[int] = Query(None, ge=0),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return activity_service.get_group_activity(db, group_id, limit=limit, offset=offset)
