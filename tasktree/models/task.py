"""Task model"""

import uuid

from sqlalchemy import Column, String, DateTime, Float, ForeignKey, Table
from sqlalchemy.orm import relationship

from tasktree.core.database import Base, get_now

PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")
STATUSES = ("pending", "ongoing", "completed")

# root=0, subtask=1, sub-subtask=2
MAX_DEPTH = 2

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 1000
ESTIMATED_HOURS_MAX = 1000


def new_id() -> str:
    return str(uuid.uuid4())


task_tags = Table(
    "task_tags",
    Base.metadata,
    Column("task_id", String(36), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    parent_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    group_id = Column(String(36), ForeignKey("task_groups.id", ondelete="SET NULL"), nullable=True, index=True)

    title = Column(String(TITLE_MAX_LENGTH), nullable=False)
    description = Column(String(DESCRIPTION_MAX_LENGTH), nullable=True)
    priority = Column(String(10), default="MEDIUM", nullable=False)
    status = Column(String(10), default="pending", nullable=False, index=True)

    start_date = Column(DateTime, nullable=True)
    due_date = Column(DateTime, nullable=True, index=True)
    original_due_date = Column(DateTime, nullable=True)  # écrite une seule fois
    started_date = Column(DateTime, nullable=True)
    completed_date = Column(DateTime, nullable=True)
    estimated_hours = Column(Float, nullable=True)

    created_at = Column(DateTime, default=get_now)
    updated_at = Column(DateTime, default=get_now, onupdate=get_now)

    subtasks = relationship("Task", order_by="Task.created_at", back_populates="parent")
    parent = relationship("Task", remote_side=[id], back_populates="subtasks")
    group = relationship("TaskGroup", back_populates="tasks")
    tags = relationship("Tag", secondary=task_tags, back_populates="tasks", order_by="Tag.name")
    activities = relationship("ActivityLog", back_populates="task", passive_deletes=True)

    @property
    def completed(self) -> bool:
        # Vue booléenne historique, dérivée du statut
        return self.status == "completed"

    def __repr__(self) -> str:
        return f"<Task {self.id} {self.title!r} {self.status}>"
