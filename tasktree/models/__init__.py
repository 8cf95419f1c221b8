from tasktree.models.task import Task, task_tags
from tasktree.models.tag import Tag
from tasktree.models.task_group import TaskGroup
from tasktree.models.activity_log import ActivityLog

__all__ = ["Task", "task_tags", "Tag", "TaskGroup", "ActivityLog"]
