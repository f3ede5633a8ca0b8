"""
Базовый контракт воркеров.
"""

import functools
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Union

from ..models.worker import JobConfig, WorkerResult
from ..utils.cancellation import CancellationToken
from ..utils.config import WorkerConfig
from ..utils.logger import get_logger


logger = get_logger(__name__)


CANCELLED_MESSAGE = "Cancelled by user"


def timeout_message(timeout_ms: int) -> str:
    return f"Killed after {timeout_ms}ms timeout"


def elapsed_ms(start: float) -> int:
    """Миллисекунды, прошедшие с момента start (time.monotonic())."""
    return int((time.monotonic() - start) * 1000)


class Worker(ABC):
    """
    Стратегия выполнения задания: JobConfig -> WorkerResult.

    execute() никогда не выбрасывает исключений, любые сбои
    возвращаются в виде неуспешного результата.
    """

    worker_type: str = ""

    def __init__(self, config: Optional[WorkerConfig] = None):
        self.config = config or WorkerConfig()

    def execute(
        self,
        job: Union[JobConfig, Dict[str, Any]],
        token: Optional[CancellationToken] = None
    ) -> WorkerResult:
        """
        Выполнение задания.

        Args:
            job: Конфигурация задания или словарь хранимой записи
            token: Токен отмены вызывающей стороны

        Returns:
            Результат выполнения
        """
        start = time.monotonic()
        try:
            if not isinstance(job, JobConfig):
                job = JobConfig.from_dict(job)
            return self._execute(job, token, start)
        except Exception as e:
            logger.exception(f"{type(self).__name__} crashed: {e}")
            return WorkerResult.failure(f"{type(e).__name__}: {e}", elapsed_ms(start))

    @abstractmethod
    def _execute(self, job: JobConfig, token: Optional[CancellationToken], start: float) -> WorkerResult:
        """Собственно выполнение; start - момент начала по time.monotonic()."""

    def as_task(self, job: Union[JobConfig, Dict[str, Any]]) -> Callable[[CancellationToken], WorkerResult]:
        """Функция задачи для TaskQueue.enqueue: token -> WorkerResult."""
        return functools.partial(self.execute, job)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self.worker_type!r})"
