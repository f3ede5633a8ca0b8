"""
Именованная очередь задач с приоритетами и ограничением конкурентности.
"""

import threading
import time
from concurrent.futures import CancelledError, Future
from typing import Any, Callable, Dict, List, Optional, Tuple
from dataclasses import dataclass

from ..models.task import Task, TaskOptions, TaskStatus
from ..models.queue_stats import QueueStats
from ..utils.cancellation import CancellationToken
from ..utils.logger import get_logger
from ..exceptions import ConfigurationError, TaskCancelledError


logger = get_logger(__name__)


@dataclass
class QueueConfig:
    """Конфигурация очереди задач."""
    concurrency: int = 1  # 1 - последовательное выполнение
    on_task_start: Optional[Callable[[str, Optional[str]], None]] = None
    on_task_complete: Optional[Callable[[str, Optional[str]], None]] = None
    on_task_error: Optional[Callable[[str, BaseException, Optional[str]], None]] = None


def is_cancellation_error(error: BaseException) -> bool:
    """Проверка, является ли ошибка отменой, а не сбоем."""
    return isinstance(error, (TaskCancelledError, CancelledError))


class TaskQueue:
    """
    Очередь задач с приоритетами, ограничением конкурентности и отменой.

    Задачи с большим приоритетом стартуют раньше, равные - в порядке
    постановки. Одновременно выполняется не больше concurrency задач.
    Каждая выполняемая задача работает в собственном потоке.
    """

    def __init__(self, name: str, config: Optional[QueueConfig] = None):
        self.name = name
        self.config = config or QueueConfig()
        if self.config.concurrency < 1:
            raise ConfigurationError(f"Queue concurrency must be >= 1, got {self.config.concurrency}")

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending: List[Task] = []
        self._running: Dict[str, Task] = {}
        self._stats = QueueStats()
        self._task_counter = 0

        logger.debug(f"TaskQueue '{name}' initialized with concurrency {self.config.concurrency}")

    @property
    def concurrency(self) -> int:
        return self.config.concurrency

    def enqueue(
        self,
        execute: Callable[[CancellationToken], Any],
        options: Optional[TaskOptions] = None,
        *,
        priority: Optional[int] = None,
        name: Optional[str] = None
    ) -> Tuple[str, Future]:
        """
        Постановка задачи в очередь.

        Args:
            execute: Функция задачи, получает токен отмены
            options: Параметры задачи (приоритет, имя)
            priority: Приоритет, переопределяет options.priority
            name: Имя для отладки, переопределяет options.name

        Returns:
            Кортеж (ID задачи, Future с результатом функции)
        """
        options = options or TaskOptions()
        if priority is None:
            priority = options.priority
        if name is None:
            name = options.name

        with self._lock:
            self._task_counter += 1
            task = Task(
                id=f"{self.name}-{self._task_counter}-{int(time.time() * 1000)}",
                execute=execute,
                future=Future(),
                name=name,
                priority=priority,
            )

            # Вставка перед первой задачей со строго меньшим приоритетом
            insert_index = next(
                (i for i, t in enumerate(self._pending) if t.priority < task.priority),
                len(self._pending)
            )
            self._pending.insert(insert_index, task)
            self._stats.pending += 1

            logger.debug(f"Task {task.label} enqueued on '{self.name}' with priority {priority}")
            started = self._drain_pending()

        self._start_threads(started)
        return task.id, task.future

    def cancel(self, task_id: str) -> bool:
        """
        Отмена задачи по ID.

        Ожидающая задача удаляется сразу, ее функция не будет вызвана.
        Для выполняемой задачи только запрашивается отмена, слот
        освобождается, когда функция сама завершится.

        Args:
            task_id: ID задачи

        Returns:
            True если задача найдена
        """
        pending_task = None
        running_task = None

        with self._lock:
            for index, task in enumerate(self._pending):
                if task.id == task_id:
                    pending_task = self._pending.pop(index)
                    self._stats.pending -= 1
                    self._stats.cancelled += 1
                    pending_task.status = TaskStatus.CANCELLED
                    pending_task.completed_at = time.time()
                    self._idle.notify_all()
                    break
            else:
                running_task = self._running.get(task_id)
                if running_task is not None:
                    running_task.status = TaskStatus.CANCELLED

        if pending_task is not None:
            pending_task.token.cancel("Task cancelled")
            self._settle(pending_task, error=TaskCancelledError(task_id=task_id))
            logger.debug(f"Pending task {pending_task.label} cancelled")
            return True

        if running_task is not None:
            running_task.token.cancel("Task cancelled")
            logger.debug(f"Cancellation requested for running task {running_task.label}")
            return True

        return False

    def cancel_all(self):
        """Отмена всех ожидающих задач и запрос отмены всех выполняемых."""
        with self._lock:
            pending = self._pending
            self._pending = []
            now = time.time()
            for task in pending:
                task.status = TaskStatus.CANCELLED
                task.completed_at = now
            self._stats.cancelled += len(pending)
            self._stats.pending = 0

            running = list(self._running.values())
            for task in running:
                task.status = TaskStatus.CANCELLED

            self._idle.notify_all()

        for task in pending:
            task.token.cancel("Task cancelled")
            self._settle(task, error=TaskCancelledError(task_id=task.id))

        for task in running:
            task.token.cancel("Task cancelled")

        if pending or running:
            logger.info(f"Queue '{self.name}': cancelled {len(pending)} pending, "
                        f"requested cancellation of {len(running)} running tasks")

    def get_stats(self) -> QueueStats:
        """Снимок статистики очереди."""
        with self._lock:
            return self._stats.copy()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def running_count(self) -> int:
        return len(self._running)

    @property
    def is_empty(self) -> bool:
        """Нет ни ожидающих, ни выполняемых задач."""
        with self._lock:
            return not self._pending and not self._running

    def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """
        Ожидание опустошения очереди.

        Args:
            timeout: Таймаут ожидания в секундах

        Returns:
            True если очередь пуста, False если таймаут
        """
        with self._idle:
            return self._idle.wait_for(
                lambda: not self._pending and not self._running,
                timeout=timeout
            )

    def _drain_pending(self) -> List[Task]:
        """Перевод задач из ожидания в выполнение, пока есть слоты. Вызывается под блокировкой."""
        started = []
        while self._pending and len(self._running) < self.config.concurrency:
            task = self._pending.pop(0)
            self._stats.pending -= 1
            task.status = TaskStatus.RUNNING
            task.started_at = time.time()
            self._running[task.id] = task
            self._stats.running += 1
            started.append(task)
        return started

    def _start_threads(self, tasks: List[Task]):
        for task in tasks:
            thread = threading.Thread(
                target=self._run_task,
                args=(task,),
                name=f"{self.name}-task-{task.id.split('-')[-2]}",
                daemon=True
            )
            thread.start()

    def _run_task(self, task: Task):
        """Выполнение одной задачи в собственном потоке."""
        self._notify(self.config.on_task_start, task.id, task.name)

        result = None
        error: Optional[BaseException] = None
        fatal: Optional[BaseException] = None
        holder_cancelled = False

        if not task.future.set_running_or_notify_cancel():
            # Future отменен держателем, пока задача ожидала
            holder_cancelled = True
            task.token.cancel("Future cancelled")
            error = CancelledError()
        elif task.token.is_cancelled:
            # Отмена пришла до входа в функцию
            error = TaskCancelledError(task_id=task.id)
        else:
            try:
                result = task.execute(task.token)
            except Exception as e:
                error = e
            except BaseException as e:
                # SystemExit и KeyboardInterrupt выбрасываются повторно после учета
                error = e
                fatal = e

        with self._lock:
            del self._running[task.id]
            self._stats.running -= 1
            task.completed_at = time.time()

            if task.status == TaskStatus.CANCELLED or (error is not None and is_cancellation_error(error)):
                # Отмена во время выполнения побеждает естественное завершение
                task.status = TaskStatus.CANCELLED
                self._stats.cancelled += 1
                if error is None or not is_cancellation_error(error):
                    error = TaskCancelledError(task_id=task.id)
                outcome = TaskStatus.CANCELLED
            elif error is not None:
                task.status = TaskStatus.FAILED
                self._stats.failed += 1
                outcome = TaskStatus.FAILED
            else:
                task.status = TaskStatus.COMPLETED
                self._stats.completed += 1
                outcome = TaskStatus.COMPLETED

            started = self._drain_pending()
            self._idle.notify_all()

        if outcome == TaskStatus.COMPLETED:
            self._settle(task, result=result)
            logger.debug(f"Task {task.label} completed in {task.completed_at - task.started_at:.3f}s")
            self._notify(self.config.on_task_complete, task.id, task.name)
        elif outcome == TaskStatus.CANCELLED:
            if not holder_cancelled:
                self._settle(task, error=error)
            logger.debug(f"Task {task.label} cancelled")
        else:
            self._settle(task, error=error)
            logger.warning(f"Task {task.label} failed: {error!r}")
            self._notify(self.config.on_task_error, task.id, error, task.name)

        self._start_threads(started)

        if fatal is not None:
            raise fatal

    @staticmethod
    def _settle(task: Task, result: Any = None, error: Optional[BaseException] = None):
        """
        Разрешение Future задачи. Вызывается вне блокировки очереди.

        Future выполняемой задачи уже переведен в RUNNING и не может быть
        отменен держателем; Future ожидающей задачи переводится здесь.
        """
        if not task.future.running() and not task.future.set_running_or_notify_cancel():
            logger.debug(f"Future of task {task.label} was cancelled by its holder")
            return
        if error is not None:
            task.future.set_exception(error)
        else:
            task.future.set_result(result)

    def _notify(self, callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.error(f"Error in queue '{self.name}' callback {callback}: {e}")

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (f"TaskQueue(name={self.name!r}, concurrency={self.config.concurrency}, "
                f"pending={stats.pending}, running={stats.running})")
