"""TaskGroup model"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from tasktree.core.database import Base, get_now
from tasktree.models.task import new_id

GROUP_NAME_MAX_LENGTH = 100
GROUP_DESCRIPTION_MAX_LENGTH = 500
DEFAULT_GROUP_COLOR = "#6366F1"


class TaskGroup(Base):
    __tablename__ = "task_groups"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(GROUP_NAME_MAX_LENGTH), unique=True, nullable=False)
    description = Column(String(GROUP_DESCRIPTION_MAX_LENGTH), nullable=True)
    color = Column(String(7), default=DEFAULT_GROUP_COLOR, nullable=False)
    created_at = Column(DateTime, default=get_now)
    updated_at = Column(DateTime, default=get_now, onupdate=get_now)

    # ON DELETE SET NULL: supprimer un groupe ne supprime jamais ses tâches
    tasks = relationship("Task", back_populates="group", passive_deletes=True)
