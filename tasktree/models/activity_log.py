"""Activity log model - append-only history of a task"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from tasktree.core.database import Base, get_now

# Actions écrites par le core
CREATED = "CREATED"
UPDATED = "UPDATED"
COMPLETED = "COMPLETED"
SUBTASK_DELETED = "SUBTASK_DELETED"
COMMENT = "COMMENT"

COMMENT_MAX_LENGTH = 500


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    details = Column(String, nullable=True)
    comment = Column(String(COMMENT_MAX_LENGTH), nullable=True)
    is_user_comment = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=get_now, index=True)

    task = relationship("Task", back_populates="activities")
