"""
Движок выполнения задач: именованные очереди с приоритетами и
ограничением конкурентности плюс воркеры для команд оболочки,
промптов LLM и навыков.

Основные компоненты:
- TaskQueue: очередь с приоритетами, отменой и статистикой
- QueueRegistry: реестр именованных очередей
- ExecWorker, AIWorker, SkillWorker: воркеры с единым контрактом
- Dispatcher: опрос хранилища запусков и выполнение через очередь
"""

from .core.task_queue import TaskQueue, QueueConfig
from .core.registry import QueueRegistry, default_registry, get_queue
from .models.task import Task, TaskOptions, TaskStatus
from .models.worker import JobConfig, ShellType, WorkerResult
from .models.queue_stats import QueueStats
from .models.run import ClaimedRun, OfflineSyncResult
from .workers import (
    Worker,
    ExecWorker,
    AIWorker,
    SkillWorker,
    PromptRunner,
    CopilotCliRunner,
    create_workers,
    get_worker
)
from .dispatcher import Dispatcher, RunStore
from .utils.cancellation import CancellationToken
from .utils.config import Config, WorkerConfig, DispatcherConfig, load_config
from .utils.logger import get_logger, setup_logging
from .exceptions import (
    TaskEngineError,
    TaskCancelledError,
    ConfigurationError,
    UnknownWorkerError,
    PromptExecutionError
)

__version__ = "1.0.0"

__all__ = [
    "TaskQueue",
    "QueueConfig",
    "QueueRegistry",
    "default_registry",
    "get_queue",
    "Task",
    "TaskOptions",
    "TaskStatus",
    "JobConfig",
    "ShellType",
    "WorkerResult",
    "QueueStats",
    "ClaimedRun",
    "OfflineSyncResult",
    "Worker",
    "ExecWorker",
    "AIWorker",
    "SkillWorker",
    "PromptRunner",
    "CopilotCliRunner",
    "create_workers",
    "get_worker",
    "Dispatcher",
    "RunStore",
    "CancellationToken",
    "Config",
    "WorkerConfig",
    "DispatcherConfig",
    "load_config",
    "get_logger",
    "setup_logging",
    "TaskEngineError",
    "TaskCancelledError",
    "ConfigurationError",
    "UnknownWorkerError",
    "PromptExecutionError"
]
