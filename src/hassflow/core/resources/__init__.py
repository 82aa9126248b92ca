from .base import Resource
from .tasks import TaskBucket

__all__ = ["Resource", "TaskBucket"]
