"""Tag model"""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship

from tasktree.core.database import Base, get_now
from tasktree.models.task import new_id, task_tags

TAG_NAME_MAX_LENGTH = 50
DEFAULT_TAG_COLOR = "#3B82F6"


class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(TAG_NAME_MAX_LENGTH), unique=True, nullable=False)
    color = Column(String(7), default=DEFAULT_TAG_COLOR, nullable=False)
    created_at = Column(DateTime, default=get_now)

    tasks = relationship("Task", secondary=task_tags, back_populates="tags")
