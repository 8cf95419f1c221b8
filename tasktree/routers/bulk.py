from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from tasktree.core.database import get_db
from tasktree.schemas.bulk import (
    BulkCreateRequest,
    BulkCreateResponse,
    BulkDeleteRequest,
    BulkDeleteResponse,
    BulkUpdateRequest,
    BulkUpdateResponse,
)
from tasktree.services import bulk_service

# Inclus avant le router /tasks pour que /tasks/bulk ne soit pas pris pour un id
router = APIRouter(prefix="/tasks/bulk", tags=["bulk"])


@router.post("", response_model=BulkCreateResponse, status_code=status.HTTP_201_CREATED)
def bulk_create(body: BulkCreateRequest, db: Session = Depends(get_db)):
    created = bulk_service.bulk_create(
        db,
        body.titles,
        shared=body.shared.model_dump(exclude_unset=True),
        overrides=[o.model_dump(exclude_unset=True) if o else None for o in body.overrides],
        subtask_titles=body.subtask_titles,
    )
    return {"created_tasks": created, "count": len(created)}


@router.put("", response_model=BulkUpdateResponse)
def bulk_update(body: BulkUpdateRequest, db: Session = Depends(get_db)):
    updated = bulk_service.bulk_update(
        db,
        body.task_ids,
        common=body.common.model_dump(exclude_unset=True),
        individual={k: v.model_dump(exclude_unset=True) for k, v in body.individual.items()},
        subtasks={k: v.model_dump(exclude_unset=True) for k, v in body.subtasks.items()},
        new_subtasks=body.new_subtasks,
        individual_new_subtasks=body.individual_new_subtasks,
    )
    return {"updated_tasks": updated, "count": len(updated)}


@router.post("/delete", response_model=BulkDeleteResponse)
def bulk_delete(body: BulkDeleteRequest, db: Session = Depends(get_db)):
    return bulk_service.bulk_delete(db, body.task_ids)
