from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from tasktree.core.database import get_db
from tasktree.schemas.conflict import ConflictCheckRequest, ConflictCheckResponse
from tasktree.services import conflict_service

router = APIRouter(prefix="/conflicts", tags=["conflicts"])


@router.post("/check", response_model=ConflictCheckResponse)
def check_conflicts(request: ConflictCheckRequest, db: Session = Depends(get_db)):
    return conflict_service.check_conflicts(
        db,
        start_date=request.start_date,
        due_date=request.due_date,
        estimated_hours=request.estimated_hours,
        priority=request.priority,
        exclude_task_id=request.task_id,
    )
