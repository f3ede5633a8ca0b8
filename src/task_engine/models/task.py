"""
Модели задач очереди.
"""

import time
from enum import Enum
from typing import Any, Callable, Optional
from dataclasses import dataclass, field
from concurrent.futures import Future

from ..utils.cancellation import CancellationToken


class TaskStatus(Enum):
    """Статусы задач."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED, TaskStatus.FAILED)


@dataclass
class TaskOptions:
    """Параметры постановки задачи в очередь."""
    priority: int = 0  # Больше - раньше
    name: Optional[str] = None  # Только для отладки


@dataclass
class Task:
    """
    Внутренняя запись очереди: функция пользователя плюс учетные данные.

    Изменяется только владеющей очередью под ее блокировкой.
    """
    
    id: str
    execute: Callable[[CancellationToken], Any]
    future: Future
    name: Optional[str] = None
    priority: int = 0
    status: TaskStatus = TaskStatus.PENDING
    token: CancellationToken = field(default_factory=CancellationToken)
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    
    def __post_init__(self):
        """Валидация после инициализации."""
        if not callable(self.execute):
            raise ValueError("Task function must be callable")
    
    @property
    def label(self) -> str:
        """Имя задачи для логов."""
        return f"{self.id} ({self.name})" if self.name else self.id
