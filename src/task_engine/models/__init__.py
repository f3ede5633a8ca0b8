"""
Модели данных движка задач.
"""

from .task import Task, TaskOptions, TaskStatus
from .worker import JobConfig, ShellType, WorkerResult
from .queue_stats import QueueStats
from .run import ClaimedRun, OfflineSyncResult

__all__ = [
    "Task",
    "TaskOptions",
    "TaskStatus",
    "JobConfig",
    "ShellType",
    "WorkerResult",
    "QueueStats",
    "ClaimedRun",
    "OfflineSyncResult"
]
