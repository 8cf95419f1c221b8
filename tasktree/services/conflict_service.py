"""Date conflict check - overlapping schedules and daily workload.

Read-only: candidate tasks are compared against a planned date range, and
nothing is written back.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from tasktree.models.task import Task
from tasktree.services.validation import check_date_range, check_estimated_hours, check_priority

logger = logging.getLogger(__name__)

PRIORITY_WEIGHT = {"LOW": 1, "MEDIUM": 2, "HIGH": 3, "URGENT": 4}
DAILY_HOURS_LIMIT = 8


def span_days(start: datetime, end: datetime) -> int:
    """Jours calendaires couverts, bornes incluses."""
    return math.ceil((end - start) / timedelta(days=1)) + 1


def overlap_days(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> int:
    overlap_start = max(start1, start2)
    overlap_end = min(end1, end2)
    if overlap_start > overlap_end:
        return 0
    return span_days(overlap_start, overlap_end)


def overlap_severity(days: int, priority: str, other_priority: str) -> str:
    weight = max(PRIORITY_WEIGHT.get(priority, 2), PRIORITY_WEIGHT.get(other_priority, 2))
    if days >= 7 or weight >= 4:
        return "HIGH"
    if days >= 3 or weight >= 3:
        return "MEDIUM"
    return "LOW"


def overload_severity(hours_per_day: float) -> str:
    if hours_per_day > 12:
        return "HIGH"
    if hours_per_day > 10:
        return "MEDIUM"
    return "LOW"


def overlap_suggestions(priority: str, other: Task, days: int) -> List[str]:
    suggestions = []
    if priority in ("LOW", "MEDIUM"):
        suggestions.append("Consider postponing this task until the conflicting task is done")
    if other.priority in ("LOW", "MEDIUM"):
        suggestions.append("Consider rescheduling the conflicting task")
    if days <= 2:
        suggestions.append("Adjust the dates so the overlap falls on non-working days")
    suggestions.append("Split one of the tasks into smaller subtasks")
    suggestions.append("Assign the task to another team member if possible")
    return suggestions


def overload_suggestions(hours_per_day: float) -> List[str]:
    suggestions = [
        "Extend the deadline of one of the tasks to spread the workload",
        "Reduce the scope or split the tasks into smaller parts",
    ]
    if hours_per_day > 12:
        suggestions.append("Consider adding resources or delegating part of the work")
    suggestions.append("Reschedule one of the tasks to a quieter period")
    suggestions.append("Check whether a task can be automated or simplified")
    return suggestions


def _conflict(kind: str, severity: str, message: str, other: Task, suggestions: List[str]) -> dict:
    return {
        "type": kind,
        "severity": severity,
        "message": message,
        "conflicting_task_id": other.id,
        "conflicting_task_title": other.title,
        "suggestions": suggestions,
    }


def check_conflicts(
    db: Session,
    start_date: Optional[datetime] = None,
    due_date: Optional[datetime] = None,
    estimated_hours: Optional[float] = None,
    priority: str = "MEDIUM",
    exclude_task_id: Optional[str] = None,
) -> dict:
    """
    Compare a planned task against every unfinished task.

    OVERLAP needs both dates on both sides. OVERLOAD also needs estimated
    hours: hours are spread evenly over each task's days and any day above
    8 hours flags every task sharing it, once per task.
    """
    check_priority(priority)
    check_estimated_hours(estimated_hours)
    check_date_range(start_date, due_date)

    if start_date is None or due_date is None:
        return {"has_conflicts": False, "conflicts": []}

    query = db.query(Task).filter(
        Task.status != "completed",
        or_(
            and_(Task.start_date.isnot(None), Task.due_date.isnot(None)),
            Task.estimated_hours.isnot(None),
        ),
    )
    if exclude_task_id:
        query = query.filter(Task.id != exclude_task_id)
    candidates = query.order_by(Task.created_at.asc()).all()
    scheduled = [t for t in candidates if t.start_date and t.due_date]

    conflicts = []
    for other in scheduled:
        days = overlap_days(start_date, due_date, other.start_date, other.due_date)
        if days:
            conflicts.append(_conflict(
                "OVERLAP",
                overlap_severity(days, priority, other.priority),
                f'Dates overlap with "{other.title}" for {days} day(s)',
                other,
                overlap_suggestions(priority, other, days),
            ))

    if estimated_hours:
        conflicts.extend(_overload(start_date, due_date, estimated_hours, scheduled))

    if conflicts:
        logger.info(f"Conflict check {start_date.date()}..{due_date.date()}: {len(conflicts)} conflicts")
    return {"has_conflicts": bool(conflicts), "conflicts": conflicts}


def _overload(start_date: datetime, due_date: datetime, hours: float, scheduled: List[Task]) -> List[dict]:
    loaded = [t for t in scheduled if t.estimated_hours]
    hours_per_day = hours / span_days(start_date, due_date)

    conflicts = []
    seen = set()
    day = start_date
    while day <= due_date:
        day_end = day.replace(hour=23, minute=59, second=59, microsecond=999999)
        total = hours_per_day
        sharing = []
        for other in loaded:
            if other.start_date <= day_end and other.due_date >= day:
                total += other.estimated_hours / span_days(other.start_date, other.due_date)
                sharing.append(other)

        if total > DAILY_HOURS_LIMIT:
            for other in sharing:
                if other.id in seen:
                    continue
                seen.add(other.id)
                conflicts.append(_conflict(
                    "OVERLOAD",
                    overload_severity(total),
                    f'Workload overload: {total:.1f} hours/day estimated with "{other.title}"',
                    other,
                    overload_suggestions(total),
                ))
        day += timedelta(days=1)
    return conflicts
