"""
Основные компоненты движка задач.
"""

from .task_queue import TaskQueue, QueueConfig, is_cancellation_error
from .registry import QueueRegistry, default_registry, get_queue
from .process_runner import ProcessOutcome, ProcessSupervisor, OutputBuffer, run_process, truncate_text

__all__ = [
    "TaskQueue",
    "QueueConfig",
    "is_cancellation_error",
    "QueueRegistry",
    "default_registry",
    "get_queue",
    "ProcessOutcome",
    "ProcessSupervisor",
    "OutputBuffer",
    "run_process",
    "truncate_text"
]
